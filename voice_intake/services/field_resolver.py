"""
Field Name Resolver.

The voice assistant's tool calls carry whatever key names the model
chose ("fname", "date_of_birth", "insurance_member_id", ...). This module
maps them onto CanonicalField, or refuses to. A refusal is always
preferred to a guess: an unresolved key is dropped, a wrong guess would
silently overwrite another field.
"""

from __future__ import annotations

import re
from typing import Optional

from voice_intake.logging_config import get_logger
from voice_intake.schemas.fields import CanonicalField as F

logger = get_logger(__name__)

EXACT_MATCHES: dict[str, F] = {
    "test": F.TEST,
    "tests": F.TEST,
    "testtype": F.TEST,
    "testname": F.TEST,
    "exam": F.TEST,
    "procedure": F.TEST,

    "reason": F.REASONS,
    "reasons": F.REASONS,
    "reasonfortest": F.REASONS,
    "purpose": F.REASONS,
    "why": F.REASONS,

    "location": F.PREFERRED_LOCATION,
    "preferredlocation": F.PREFERRED_LOCATION,
    "cliniclocation": F.PREFERRED_LOCATION,
    "facility": F.PREFERRED_LOCATION,
    "clinic": F.PREFERRED_LOCATION,
    "center": F.PREFERRED_LOCATION,
    "where": F.PREFERRED_LOCATION,

    "date": F.PREFERRED_DATE,
    "preferreddate": F.PREFERRED_DATE,
    "appointmentdate": F.PREFERRED_DATE,
    "day": F.PREFERRED_DATE,
    "when": F.PREFERRED_DATE,

    "time": F.PREFERRED_TIME,
    "preferredtime": F.PREFERRED_TIME,
    "appointmenttime": F.PREFERRED_TIME,
    "hour": F.PREFERRED_TIME,
    "timeslot": F.PREFERRED_TIME,

    "firstname": F.FIRST_NAME,
    "fname": F.FIRST_NAME,
    "givenname": F.FIRST_NAME,

    "lastname": F.LAST_NAME,
    "lname": F.LAST_NAME,
    "surname": F.LAST_NAME,
    "familyname": F.LAST_NAME,

    "dob": F.DATE_OF_BIRTH,
    "dateofbirth": F.DATE_OF_BIRTH,
    "birthday": F.DATE_OF_BIRTH,
    "birthdate": F.DATE_OF_BIRTH,
    "bday": F.DATE_OF_BIRTH,

    "sex": F.SEX,
    "gender": F.SEX,

    "address": F.ADDRESS_STREET,
    "fulladdress": F.ADDRESS_STREET,
    "homeaddress": F.ADDRESS_STREET,
    "streetaddress": F.ADDRESS_STREET,
    "street": F.ADDRESS_STREET,
    "addressstreet": F.ADDRESS_STREET,
    "addressline1": F.ADDRESS_STREET,
    "addresscity": F.ADDRESS_CITY,
    "addressstate": F.ADDRESS_STATE,
    "addresszip": F.ADDRESS_ZIP,
    "zip": F.ADDRESS_ZIP,
    "zipcode": F.ADDRESS_ZIP,
    "postal": F.ADDRESS_ZIP,
    "postalcode": F.ADDRESS_ZIP,

    "email": F.EMAIL,
    "emailaddress": F.EMAIL,

    "phone": F.PHONE,
    "phonenumber": F.PHONE,
    "mobile": F.PHONE,
    "cell": F.PHONE,
    "telephone": F.PHONE,
    "tel": F.PHONE,

    "insurance": F.INSURANCE_PROVIDER,
    "insuranceprovider": F.INSURANCE_PROVIDER,
    "insurancecarrier": F.INSURANCE_PROVIDER,
    "insurancecompany": F.INSURANCE_PROVIDER,
    "carrier": F.INSURANCE_PROVIDER,
    "payer": F.INSURANCE_PROVIDER,

    "insuranceid": F.INSURANCE_ID,
    "memberid": F.INSURANCE_ID,
    "policynumber": F.INSURANCE_ID,
    "subscriberid": F.INSURANCE_ID,
}

# Tokens that name a slot in both a structured address and a free-text
# location. They are never resolved on their own.
AMBIGUOUS_KEYS: frozenset[str] = frozenset({"city", "state", "town", "region", "province", "country"})


# Whole-word markers for the test rule, so "latest_date" is not a test.
TEST_TOKENS: frozenset[str] = frozenset({"test", "tests", "exam", "exams", "procedure", "procedures"})


def _has(key: str, *parts: str) -> bool:
    return any(p in key for p in parts)


def key_tokens(raw_key: str) -> list[str]:
    """Split a raw key on camelCase, underscores, hyphens and spaces: "labTest_name" -> ["lab", "test", "name"]."""
    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", raw_key)
    return [t for t in re.split(r"[_\-\s]+", spaced.lower()) if t]


def _match_patterns(key: str, tokens: list[str]) -> Optional[F]:
    """Ordered substring rules for keys that missed the exact table."""
    if TEST_TOKENS.intersection(tokens):
        return F.TEST

    # Before location/address: "reason_for_visit_location" is a reason.
    if _has(key, "reason", "purpose", "why"):
        return F.REASONS

    # Before any generic date/day rule so "birthday" is never a preferred date.
    if _has(key, "birth", "dob", "bday"):
        return F.DATE_OF_BIRTH

    if _has(key, "time", "hour", "slot"):
        return F.PREFERRED_TIME

    if _has(key, "date", "day", "when"):
        return F.PREFERRED_DATE

    if _has(key, "location", "clinic", "facility", "center", "where"):
        return F.PREFERRED_LOCATION

    # Weak hints, only after the specific date/location words above.
    if "appointment" in key:
        return F.PREFERRED_DATE
    if "preferred" in key:
        return F.PREFERRED_LOCATION

    if "name" in key:
        if _has(key, "first", "given"):
            return F.FIRST_NAME
        if _has(key, "last", "family"):
            return F.LAST_NAME
    if "surname" in key:
        return F.LAST_NAME

    if _has(key, "sex", "gender"):
        return F.SEX

    # "email" before address so "work_email_address" stays an email.
    if "email" in key:
        return F.EMAIL

    if _has(key, "phone", "mobile", "cell", "tel"):
        return F.PHONE

    # Name keys ("member_name") never reach the insurance rules.
    is_name = "name" in key
    if _has(key, "insurance", "carrier", "payer") or (not is_name and _has(key, "member", "policy", "subscriber")):
        # "provider" contains "id", so only a trailing id counts.
        if not is_name and (key.endswith("id") or _has(key, "number", "member", "policy", "subscriber")):
            return F.INSURANCE_ID
        return F.INSURANCE_PROVIDER

    if _has(key, "zip", "postal"):
        return F.ADDRESS_ZIP
    if "address" in key:
        if "city" in key:
            return F.ADDRESS_CITY
        if "state" in key:
            return F.ADDRESS_STATE
        return F.ADDRESS_STREET
    if "street" in key:
        return F.ADDRESS_STREET

    # After address so "mailing_address" is a street.
    if "mail" in key:
        return F.EMAIL

    return None


def normalize_key(raw_key: str) -> str:
    """Lowercase and drop underscores, hyphens and whitespace."""
    return re.sub(r"[_\-\s]", "", raw_key.lower())


def resolve(raw_key: str) -> Optional[F]:
    """
    Map an incoming key onto a canonical field, or return None.

    Exact synonyms are tried first, then ordered substring patterns.
    Bare ambiguous tokens such as ``city`` or ``state`` are left
    unresolved on purpose.
    """
    if not isinstance(raw_key, str) or not raw_key.strip():
        logger.warning("field_name_unresolved", raw_key=raw_key, reason="empty")
        return None

    key = normalize_key(raw_key)

    # Canonical names themselves ("addressCity") normalize to exact entries.
    field = EXACT_MATCHES.get(key)
    if field is not None:
        return field

    if key in AMBIGUOUS_KEYS:
        logger.info("field_name_unresolved", raw_key=raw_key, reason="ambiguous")
        return None

    field = _match_patterns(key, key_tokens(raw_key))
    if field is None:
        logger.info("field_name_unresolved", raw_key=raw_key, reason="unknown")
    return field
