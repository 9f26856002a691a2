"""
Field Normalizer.

Pure functions that coerce a raw voice/OCR answer into a canonical value
with a confidence score in [0, 1]. Nothing here raises on bad input:
malformed answers come back as low-confidence values so the caller can
flag them for review instead of failing.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Optional

import usaddress

from voice_intake.config import get_settings
from voice_intake.logging_config import get_logger
from voice_intake.schemas.fields import CanonicalField, NormalizedValue
from voice_intake.services.date_parsing import UNPARSEABLE_CONFIDENCE, parse_date_of_birth
from voice_intake.services.medical_tests import normalize_test_name

logger = get_logger(__name__)

EMPTY = NormalizedValue(None, 0.0)

# Scores at or below this mean the normalizer rejected the value.
REJECTED_CONFIDENCE = UNPARSEABLE_CONFIDENCE

US_STATES: frozenset[str] = frozenset({
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA",
    "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD",
    "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ",
    "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC",
    "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY",
})

STATE_NAME_MAP: dict[str, str] = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "florida": "FL", "georgia": "GA", "hawaii": "HI", "idaho": "ID",
    "illinois": "IL", "indiana": "IN", "iowa": "IA", "kansas": "KS",
    "kentucky": "KY", "louisiana": "LA", "maine": "ME", "maryland": "MD",
    "massachusetts": "MA", "michigan": "MI", "minnesota": "MN", "mississippi": "MS",
    "missouri": "MO", "montana": "MT", "nebraska": "NE", "nevada": "NV",
    "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM", "new york": "NY",
    "north carolina": "NC", "north dakota": "ND", "ohio": "OH", "oklahoma": "OK",
    "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI", "south carolina": "SC",
    "south dakota": "SD", "tennessee": "TN", "texas": "TX", "utah": "UT",
    "vermont": "VT", "virginia": "VA", "washington": "WA", "west virginia": "WV",
    "wisconsin": "WI", "wyoming": "WY",
}

# Spoken/typed carrier variants -> display name.
KNOWN_INSURANCE_PROVIDERS: dict[str, str] = {
    "blue cross": "Blue Cross Blue Shield",
    "blue shield": "Blue Cross Blue Shield",
    "bcbs": "Blue Cross Blue Shield",
    "aetna": "Aetna",
    "cigna": "Cigna",
    "united": "UnitedHealthcare",
    "united healthcare": "UnitedHealthcare",
    "unitedhealthcare": "UnitedHealthcare",
    "uhc": "UnitedHealthcare",
    "humana": "Humana",
    "kaiser": "Kaiser Permanente",
    "kaiser permanente": "Kaiser Permanente",
    "anthem": "Anthem",
    "medicare": "Medicare",
    "medicaid": "Medicaid",
    "oscar": "Oscar",
    "molina": "Molina",
    "tricare": "TRICARE",
    "emblem": "EmblemHealth",
    "emblemhealth": "EmblemHealth",
    "oxford": "Oxford",
    "fidelis": "Fidelis",
    "healthfirst": "Healthfirst",
    "health first": "Healthfirst",
    "metroplus": "MetroPlus",
    "amerigroup": "Amerigroup",
    "wellcare": "WellCare",
    "centene": "Centene",
    "highmark": "Highmark",
}

# Longest variant first so "united healthcare" wins over "united".
_PROVIDER_VARIANTS = sorted(KNOWN_INSURANCE_PROVIDERS.items(), key=lambda kv: len(kv[0]), reverse=True)

EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
_NAME_STRIP_RE = re.compile(r"[^a-zA-Z\s'-]")
_PROPER_NAME_RE = re.compile(r"^[A-Z][a-z]+$")
_CITY_RE = re.compile(r"^[A-Z][a-z]+(?:[-\s][A-Z][a-z]+)*$")
_STREET_NUMBER_RE = re.compile(r"^\d+\s+")
_ZIP_IN_TEXT_RE = re.compile(r"\b\d{5}\b")
_TWO_LETTER_RE = re.compile(r"\b[A-Z]{2}\b")

MALE_TERMS = ("male", "m", "man", "boy")
FEMALE_TERMS = ("female", "f", "woman", "girl")


def title_case(text: str) -> str:
    """Upper-case the first letter of each whitespace token, lower-case the rest."""
    return " ".join(word[:1].upper() + word[1:].lower() for word in text.split())


def normalize_name(text: str) -> NormalizedValue:
    cleaned = " ".join(_NAME_STRIP_RE.sub("", text).split())
    if not cleaned:
        return EMPTY
    if len(cleaned) < 2:
        return NormalizedValue(cleaned.upper(), 0.3)

    titled = title_case(cleaned)
    return NormalizedValue(titled, 0.95 if _PROPER_NAME_RE.match(titled) else 0.8)


def normalize_sex(text: str) -> NormalizedValue:
    lower = text.strip().lower()

    if lower in MALE_TERMS:
        return NormalizedValue("M", 0.95)
    if lower in FEMALE_TERMS:
        return NormalizedValue("F", 0.95)

    # "female" contains "male", so female terms are checked first
    if "female" in lower or "woman" in lower or "girl" in lower:
        return NormalizedValue("F", 0.8)
    if "male" in lower or "man" in lower or "boy" in lower:
        return NormalizedValue("M", 0.8)

    return NormalizedValue(text.strip(), 0.3)


def normalize_email(text: str) -> NormalizedValue:
    email = text.strip().lower()
    email = re.sub(r"\s+at\s+", "@", email)
    email = re.sub(r"\s+dot\s+", ".", email)
    email = re.sub(r"\s+", "", email)

    if EMAIL_RE.match(email):
        return NormalizedValue(email, 0.95)
    if "@" in email and "." in email:
        return NormalizedValue(email, 0.5)
    return NormalizedValue(email, 0.2)


def normalize_phone(text: str) -> NormalizedValue:
    digits = re.sub(r"\D", "", text)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]

    if len(digits) == 10:
        return NormalizedValue(f"({digits[:3]}) {digits[3:6]}-{digits[6:]}", 0.95)
    if len(digits) > 10:
        return NormalizedValue(digits, 0.5)
    if digits:
        return NormalizedValue(digits, 0.4)
    return NormalizedValue(text.strip(), 0.2)


def has_state_or_zip(text: str) -> bool:
    if _ZIP_IN_TEXT_RE.search(text):
        return True
    return any(token in US_STATES for token in _TWO_LETTER_RE.findall(text))


def normalize_street(text: str) -> NormalizedValue:
    cleaned = text.strip()
    confidence = 0.7
    if _STREET_NUMBER_RE.match(cleaned):
        confidence += 0.1
    if has_state_or_zip(cleaned):
        confidence += 0.15
    return NormalizedValue(cleaned, round(min(confidence, 0.95), 2))


# usaddress labels that make up the street line, in reading order.
STREET_LABELS = (
    "AddressNumberPrefix",
    "AddressNumber",
    "AddressNumberSuffix",
    "StreetNamePreDirectional",
    "StreetNamePreModifier",
    "StreetNamePreType",
    "StreetName",
    "StreetNamePostType",
    "StreetNamePostModifier",
    "StreetNamePostDirectional",
    "OccupancyType",
    "OccupancyIdentifier",
    "SubaddressType",
    "SubaddressIdentifier",
    "USPSBoxType",
    "USPSBoxID",
)

_PART_LABELS = {
    CanonicalField.ADDRESS_CITY: "PlaceName",
    CanonicalField.ADDRESS_STATE: "StateName",
    CanonicalField.ADDRESS_ZIP: "ZipCode",
}


def split_address(text: str) -> dict[CanonicalField, str]:
    """
    Split a one-line address answer into raw street/city/state/ZIP parts.

    "123 Main St, Springfield, IL 62704" gives all four. Only parts that
    usaddress tagged are returned; an answer it cannot label (or labels
    as ambiguous) gives an empty dict. Nothing here is normalized.
    """
    try:
        tagged, address_type = usaddress.tag(text)
    except usaddress.RepeatedLabelError as e:
        logger.debug("address_parse_repeated_label", raw=text, error=str(e))
        return {}

    if address_type == "Ambiguous":
        logger.debug("address_parse_ambiguous", raw=text)
        return {}

    parts: dict[CanonicalField, str] = {}
    street = " ".join(tagged[label].strip(" ,") for label in STREET_LABELS if label in tagged)
    if street:
        parts[CanonicalField.ADDRESS_STREET] = street
    for field, label in _PART_LABELS.items():
        value = tagged.get(label, "").strip(" ,")
        if value:
            parts[field] = value
    return parts


def normalize_city(text: str) -> NormalizedValue:
    cleaned = text.strip()
    if len(cleaned) < 2:
        return NormalizedValue(cleaned, 0.2)
    titled = title_case(cleaned)
    return NormalizedValue(titled, 0.85 if _CITY_RE.match(titled) else 0.65)


def normalize_state(text: str) -> NormalizedValue:
    upper = text.strip().upper().rstrip(".")
    if upper in US_STATES:
        return NormalizedValue(upper, 0.95)

    code = STATE_NAME_MAP.get(" ".join(text.lower().split()))
    if code:
        return NormalizedValue(code, 0.9)
    return NormalizedValue(upper, 0.3)


def normalize_zip(text: str) -> NormalizedValue:
    digits = re.sub(r"\D", "", text)
    if len(digits) == 5:
        return NormalizedValue(digits, 0.95)
    if len(digits) == 9:
        return NormalizedValue(f"{digits[:5]}-{digits[5:]}", 0.95)
    return NormalizedValue(digits or text.strip(), 0.3)


def normalize_insurance_provider(text: str) -> NormalizedValue:
    lower = text.strip().lower()
    for variant, display in _PROVIDER_VARIANTS:
        if variant in lower:
            return NormalizedValue(display, 0.95)
    return NormalizedValue(title_case(text), 0.7)


def normalize_insurance_id(text: str) -> NormalizedValue:
    cleaned = re.sub(r"[\s-]", "", text).upper()
    if re.fullmatch(r"[A-Z0-9]{6,15}", cleaned):
        return NormalizedValue(cleaned, 0.9)
    if re.fullmatch(r"[A-Z0-9]{3,5}", cleaned):
        return NormalizedValue(cleaned, 0.7)
    if len(cleaned) >= 3:
        return NormalizedValue(cleaned, 0.5)
    return NormalizedValue(cleaned or None, 0.2 if cleaned else 0.0)


def normalize_free_text(text: str) -> NormalizedValue:
    """Booking answers with no fixed shape (test name, reason, location, slot)."""
    cleaned = " ".join(text.split())
    return NormalizedValue(cleaned, 0.7 if len(cleaned) >= 2 else 0.3)


_NORMALIZERS: dict[CanonicalField, Callable[[str], NormalizedValue]] = {
    CanonicalField.TEST: normalize_test_name,
    CanonicalField.REASONS: normalize_free_text,
    CanonicalField.PREFERRED_LOCATION: normalize_free_text,
    CanonicalField.PREFERRED_DATE: normalize_free_text,
    CanonicalField.PREFERRED_TIME: normalize_free_text,
    CanonicalField.FIRST_NAME: normalize_name,
    CanonicalField.LAST_NAME: normalize_name,
    CanonicalField.DATE_OF_BIRTH: parse_date_of_birth,
    CanonicalField.SEX: normalize_sex,
    CanonicalField.ADDRESS_STREET: normalize_street,
    CanonicalField.ADDRESS_CITY: normalize_city,
    CanonicalField.ADDRESS_STATE: normalize_state,
    CanonicalField.ADDRESS_ZIP: normalize_zip,
    CanonicalField.EMAIL: normalize_email,
    CanonicalField.PHONE: normalize_phone,
    CanonicalField.INSURANCE_PROVIDER: normalize_insurance_provider,
    CanonicalField.INSURANCE_ID: normalize_insurance_id,
}


def normalize(field: CanonicalField, raw: Any) -> NormalizedValue:
    """
    Normalize one raw answer for a canonical field.

    Empty, None or whitespace-only input always yields ``(None, 0.0)``.
    Non-string input (numbers from a tool call, for instance) is
    converted with ``str()`` first.
    """
    if raw is None:
        return EMPTY
    text = raw if isinstance(raw, str) else str(raw)
    if not text.strip():
        return EMPTY
    return _NORMALIZERS[field](text)


def normalize_with_parts(field: CanonicalField, raw: Any) -> dict[CanonicalField, NormalizedValue]:
    """
    Normalize one answer, fanning a full address out into its parts.

    Returns an empty dict when the answer normalizes to nothing. The
    answer is only split when the address parser tagged a street line
    and at least one other part; otherwise it stays whole in the street
    field. The street part keeps the score of the whole answer, since a
    trailing state or ZIP is evidence for the street too.
    """
    normalized = normalize(field, raw)
    if normalized.value is None:
        return {}

    if field != CanonicalField.ADDRESS_STREET or not get_settings().feature_address_splitting:
        return {field: normalized}

    parts = split_address(normalized.value)
    if CanonicalField.ADDRESS_STREET not in parts or len(parts) == 1:
        return {field: normalized}

    result: dict[CanonicalField, NormalizedValue] = {}
    for part_field, part_text in parts.items():
        if part_field == CanonicalField.ADDRESS_STREET:
            result[part_field] = NormalizedValue(normalize_street(part_text).value, normalized.confidence)
        else:
            result[part_field] = normalize(part_field, part_text)
    return {f: nv for f, nv in result.items() if nv.value is not None}


def clamp_confidence(value: Any) -> Optional[float]:
    """Coerce a caller-reported confidence into [0, 1]; None when it is not a number."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number:
        return None
    return min(max(number, 0.0), 1.0)


def score_with_reported(normalized: NormalizedValue, reported: Any) -> float:
    """
    Score to store for a normalized value when the caller reported its own.

    A reported confidence replaces the normalizer's score, except for
    values the normalizer rejected: those keep their low score so an
    invalid answer still lands in review.
    """
    if reported is None or normalized.confidence <= REJECTED_CONFIDENCE:
        return normalized.confidence
    clamped = clamp_confidence(reported)
    return normalized.confidence if clamped is None else clamped
