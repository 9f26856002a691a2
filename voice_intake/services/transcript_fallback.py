"""
Second-pass extraction helpers.

When the call ends, a careful extraction over the whole transcript is
merged into the real-time map once. This module produces that
refinement map, either from a model-reported payload
(``build_refinement_map``) or, when no model result is available, from a
rules-based pass over the caller's own turns (``extract_from_transcript``).
"""

from __future__ import annotations

import re
from typing import Any, Mapping

from voice_intake.config import get_settings
from voice_intake.logging_config import get_logger
from voice_intake.schemas.fields import CanonicalField, FieldMap, FieldSource, FieldValue
from voice_intake.services import merge_engine
from voice_intake.services.date_parsing import UNPARSEABLE_CONFIDENCE
from voice_intake.services.field_resolver import resolve
from voice_intake.services.normalizer import US_STATES, normalize, normalize_with_parts, score_with_reported

logger = get_logger(__name__)

# Rule confidences for the transcript pass
WRITTEN_EMAIL_CONFIDENCE = 0.85
SPOKEN_EMAIL_CONFIDENCE = 0.75
PHONE_CONFIDENCE = 0.8
ZIP_CONFIDENCE = 0.85
STATE_CONFIDENCE = 0.8
NAME_CONFIDENCE = 0.75
SEX_CONFIDENCE = 0.8

CONFIDENCE_KEY = "confidence"

_ROLE_RE = re.compile(r"^\s*(user|assistant|agent|ai|bot|system)\s*:\s*(.*)$", re.IGNORECASE)
_EMAIL_RE = re.compile(r"([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})")
_SPOKEN_EMAIL_RE = re.compile(
    r"([a-zA-Z0-9._%+-]+)\s+at\s+([a-zA-Z0-9.-]+)\s+dot\s+(com|org|net|edu|gov|io)\b", re.IGNORECASE
)
_PHONE_RE = re.compile(r"(?<!\d)(\d{3}[-.\s]?\d{3}[-.\s]?\d{4})(?!\d)")
_ZIP_RE = re.compile(r"(?<![\d-])(\d{5}(?:-\d{4})?)(?![\d-])")
# A two-letter code only counts as a state next to an address signal:
# right before a ZIP, or after "I live in ...", "state is ...".
_STATE_BEFORE_ZIP_RE = re.compile(r"\b([A-Z]{2})\b,?\s+\d{5}(?!\d)")
_STATE_PHRASE_RE = re.compile(
    r"(?i:\b(?:live|living|located|reside|residing)\s+in|\bstate(?:\s+is|\s+of)?)"
    r"\s+(?:[A-Za-z .'-]+?,\s*)?([A-Z]{2})\b"
)
_NAME_RE = re.compile(r"\b(?:my name is|my name's)\s+([a-z][a-z'-]+)(?:\s+([a-z][a-z'-]+))?", re.IGNORECASE)
_NAME_STOPWORDS = frozenset({"and", "but", "so", "i", "im", "i'm", "my", "from", "at", "here", "calling"})
_SEX_RE = re.compile(r"\b(male|female|man|woman)\b", re.IGNORECASE)
_DOB_RE = re.compile(
    r"\b(?:born|birthday|date of birth)\b(?:\s+(?:is|was|on|in))*[\s:,]*([^.\n]+)", re.IGNORECASE
)


def user_turns(transcript: str) -> str:
    """
    Join the caller's turns of a ``Role: text`` transcript.

    A transcript with no role prefixes at all is returned whole.
    """
    lines = transcript.splitlines()
    matches = [_ROLE_RE.match(line) for line in lines]
    if not any(matches):
        return transcript
    return "\n".join(m.group(2) for m in matches if m and m.group(1).lower() == "user")


def is_transcript_sufficient(transcript: str | None) -> bool:
    """True when the transcript is long enough to be worth a second pass."""
    if not transcript:
        return False
    return len(transcript.strip()) >= get_settings().min_refinement_transcript_chars


def _refinement_value(field: CanonicalField, raw: str, confidence: float | None = None) -> FieldValue | None:
    normalized = normalize(field, raw)
    if normalized.value is None:
        return None
    return FieldValue(
        value=normalized.value,
        confidence=score_with_reported(normalized, confidence),
        source=FieldSource.REFINEMENT,
    )


def extract_from_transcript(transcript: str | None) -> FieldMap:
    """
    Rules-based extraction over the caller's turns of a transcript.

    Each value goes through the field normalizer; the rule that matched
    sets its confidence, except for the date of birth, which keeps the
    parser's score and is left out entirely when it cannot be parsed.
    """
    if not transcript:
        return {}

    text = user_turns(transcript)
    found: FieldMap = {}

    def put(field: CanonicalField, raw: str, confidence: float | None = None) -> None:
        value = _refinement_value(field, raw, confidence)
        if value is not None:
            found[field] = value

    email = _EMAIL_RE.search(text)
    if email:
        put(CanonicalField.EMAIL, email.group(1), WRITTEN_EMAIL_CONFIDENCE)
    else:
        spoken = _SPOKEN_EMAIL_RE.search(text)
        if spoken:
            put(CanonicalField.EMAIL, f"{spoken.group(1)}@{spoken.group(2)}.{spoken.group(3)}", SPOKEN_EMAIL_CONFIDENCE)

    phone = _PHONE_RE.search(text)
    if phone:
        put(CanonicalField.PHONE, phone.group(1), PHONE_CONFIDENCE)

    # The last one: street numbers come before the ZIP in an address.
    zips = _ZIP_RE.findall(text)
    if zips:
        put(CanonicalField.ADDRESS_ZIP, zips[-1], ZIP_CONFIDENCE)

    candidates = _STATE_BEFORE_ZIP_RE.findall(text) + _STATE_PHRASE_RE.findall(text)
    state = next((s for s in candidates if s in US_STATES), None)
    if state:
        put(CanonicalField.ADDRESS_STATE, state, STATE_CONFIDENCE)

    name = _NAME_RE.search(text)
    if name and name.group(1).lower() not in _NAME_STOPWORDS:
        put(CanonicalField.FIRST_NAME, name.group(1), NAME_CONFIDENCE)
        if name.group(2) and name.group(2).lower() not in _NAME_STOPWORDS:
            put(CanonicalField.LAST_NAME, name.group(2), NAME_CONFIDENCE)

    sex = _SEX_RE.search(text)
    if sex:
        put(CanonicalField.SEX, sex.group(1), SEX_CONFIDENCE)

    for dob in _DOB_RE.finditer(text):
        value = _refinement_value(CanonicalField.DATE_OF_BIRTH, dob.group(1))
        if value is not None and value.confidence > UNPARSEABLE_CONFIDENCE:
            found[CanonicalField.DATE_OF_BIRTH] = value
            break

    logger.info(
        "transcript_fallback_extracted",
        transcript_length=len(transcript),
        fields=[f.value for f in found],
    )
    return found


def build_refinement_map(payload: Mapping[str, Any] | None) -> FieldMap:
    """
    Turn a second-pass extraction payload into a refinement map.

    ``payload`` is ``{key: value, ..., "confidence": {key: score}}``.
    Keys go through the resolver, values through the normalizer, and a
    reported score replaces the normalizer's unless the normalizer
    rejected the value. When two keys resolve to the same field the
    higher-confidence one is kept.
    """
    if not payload:
        return {}

    scores = payload.get(CONFIDENCE_KEY)
    if not isinstance(scores, Mapping):
        scores = {}

    refinement: FieldMap = {}
    for raw_key, raw_value in payload.items():
        if raw_key == CONFIDENCE_KEY:
            continue

        field = resolve(raw_key)
        if field is None:
            continue

        reported = scores.get(raw_key, scores.get(field.value))
        incoming: FieldMap = {
            f: FieldValue(
                value=nv.value,
                confidence=score_with_reported(nv, reported),
                source=FieldSource.REFINEMENT,
            )
            for f, nv in normalize_with_parts(field, raw_value).items()
        }
        refinement = merge_engine.merge(refinement, incoming)

    logger.info(
        "refinement_map_built",
        offered=len(payload) - (CONFIDENCE_KEY in payload),
        fields=[f.value for f in refinement],
    )
    return refinement
