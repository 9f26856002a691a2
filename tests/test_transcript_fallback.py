import pytest

from voice_intake.schemas.fields import CanonicalField as F
from voice_intake.schemas.fields import FieldSource
from voice_intake.services.transcript_fallback import (
    build_refinement_map,
    extract_from_transcript,
    is_transcript_sufficient,
    user_turns,
)

TRANSCRIPT = """\
Assistant: Hi! Can I get your full name please?
User: Sure, my name is john smith.
Assistant: Thanks. Are you male or female? You can reach us at help@clinic.com.
User: I'm female.
Assistant: What's your email?
User: it's johnsmith at gmail dot com
User: My phone is 555-123-4567 and I live at 123 Main St, Springfield, IL 62704.
User: I was born on March 4th, 1990.
"""


def values(field_map):
    return {field: (v.value, v.confidence) for field, v in field_map.items()}


def test_extracts_from_user_turns():
    assert values(extract_from_transcript(TRANSCRIPT)) == {
        F.FIRST_NAME: ("John", 0.75),
        F.LAST_NAME: ("Smith", 0.75),
        F.SEX: ("F", 0.8),
        F.EMAIL: ("johnsmith@gmail.com", 0.75),
        F.PHONE: ("(555) 123-4567", 0.8),
        F.ADDRESS_ZIP: ("62704", 0.85),
        F.ADDRESS_STATE: ("IL", 0.8),
        F.DATE_OF_BIRTH: ("1990-03-04", 0.9),
    }


def test_extracted_fields_are_refinements():
    assert all(v.source == FieldSource.REFINEMENT for v in extract_from_transcript(TRANSCRIPT).values())


def test_assistant_turns_are_ignored():
    found = extract_from_transcript("Assistant: Email us at help@clinic.com, are you male?\nUser: no thanks")
    assert found == {}


def test_transcript_without_roles_is_used_whole():
    found = extract_from_transcript("my name is Jane Doe and my email is Jane.Doe@Example.com")
    assert values(found) == {
        F.FIRST_NAME: ("Jane", 0.75),
        F.LAST_NAME: ("Doe", 0.75),
        F.EMAIL: ("jane.doe@example.com", 0.85),
    }


def test_name_rule_stops_at_connecting_words():
    found = extract_from_transcript("User: my name is Jane and I need a test")
    assert values(found) == {F.FIRST_NAME: ("Jane", 0.75)}


def test_stand_alone_state_codes_are_not_states():
    found = extract_from_transcript("User: OK, my name is Jane Doe. ME too, I am IN for OR against it.")
    assert F.ADDRESS_STATE not in found
    assert values(found)[F.FIRST_NAME] == ("Jane", 0.75)


@pytest.mark.parametrize("text,state", [
    ("User: I live in Austin, TX", "TX"),
    ("User: my state is OK", "OK"),
    ("User: the zip is OR 97201", "OR"),
])
def test_state_next_to_an_address_signal(text, state):
    assert extract_from_transcript(text)[F.ADDRESS_STATE].value == state


def test_unparseable_birth_date_is_left_out():
    assert extract_from_transcript("User: my birthday is sometime in spring") == {}


def test_empty_transcript():
    assert extract_from_transcript("") == {}
    assert extract_from_transcript(None) == {}


def test_user_turns():
    assert user_turns("USER: one\nassistant: two\nUser: three") == "one\nthree"
    assert user_turns("no roles here") == "no roles here"


def test_is_transcript_sufficient(configure):
    assert not is_transcript_sufficient(None)
    assert not is_transcript_sufficient("User: hi")
    assert is_transcript_sufficient("x" * 50)
    configure(min_refinement_transcript_chars=5)
    assert is_transcript_sufficient("User: hi")


# ── Refinement payloads ──


def test_build_refinement_map_uses_reported_scores():
    refinement = build_refinement_map({
        "test": "Complete Blood Count",
        "first_name": "john",
        "phone": "555-12",
        "city": "Boston",
        "confidence": {"test": 0.7, "first_name": 1.4},
    })
    assert values(refinement) == {
        F.TEST: ("Complete Blood Count (CBC)", 0.7),
        F.FIRST_NAME: ("John", 1.0),
        F.PHONE: ("55512", 0.4),
    }
    assert all(v.source == FieldSource.REFINEMENT for v in refinement.values())


def test_build_refinement_map_accepts_canonical_score_keys():
    refinement = build_refinement_map({"dob": "03/04/1990", "confidence": {"dateOfBirth": 0.6}})
    assert values(refinement) == {F.DATE_OF_BIRTH: ("1990-03-04", 0.6)}


def test_build_refinement_map_keeps_rejected_values_low():
    refinement = build_refinement_map({"dob": "02/30/1990", "confidence": {"dob": 0.95}})
    assert values(refinement) == {F.DATE_OF_BIRTH: ("02/30/1990", 0.3)}


def test_build_refinement_map_keeps_best_duplicate():
    refinement = build_refinement_map({"phone": "555-12", "cell": "555-123-4567"})
    assert refinement[F.PHONE].value == "(555) 123-4567"


def test_build_refinement_map_splits_address():
    refinement = build_refinement_map({"address": "9 Elm Rd, Austin, TX 73301"})
    assert set(refinement) == {F.ADDRESS_STREET, F.ADDRESS_CITY, F.ADDRESS_STATE, F.ADDRESS_ZIP}


def test_build_refinement_map_of_nothing():
    assert build_refinement_map(None) == {}
    assert build_refinement_map({"confidence": {"test": 0.9}}) == {}


def test_refinement_end_to_end(session):
    session.ingest("test", "cbc", confidence=0.9)
    session.ingest("phone", "555-12")
    result = session.finalize(build_refinement_map({
        "test": "Complete Blood Count",
        "phone": "5551234567",
        "confidence": {"test": 0.7, "phone": 0.8},
    }))
    assert result.snapshot.as_values() == {"test": "Complete Blood Count (CBC)", "phone": "(555) 123-4567"}
    assert result.fields_needing_review == []
