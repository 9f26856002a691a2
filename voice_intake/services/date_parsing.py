"""
Date-of-birth parsing.

Voice answers for a birth date arrive in every shape a caller can say
them: "03/04/1990", "1990-03-04", "March 4th, 1990", "4 of March 1990"
or fully spelled out ("march fourth nineteen ninety"). Everything is
normalized to ``YYYY-MM-DD`` and scored by how strict the matching
pattern was.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Optional

from dateutil import parser as dateutil_parser

from voice_intake.config import get_settings
from voice_intake.logging_config import get_logger
from voice_intake.schemas.fields import NormalizedValue

logger = get_logger(__name__)

ISO_CONFIDENCE = 0.98
MONTH_NAME_CONFIDENCE = 0.9
NUMERIC_CONFIDENCE = 0.85
SPOKEN_CONFIDENCE = 0.7
FALLBACK_CONFIDENCE = 0.6
UNPARSEABLE_CONFIDENCE = 0.3

# Two-digit years above this are read as 19xx, the rest as 20xx.
TWO_DIGIT_YEAR_PIVOT = 50

MONTH_NAMES: dict[str, int] = {
    "january": 1, "jan": 1, "february": 2, "feb": 2,
    "march": 3, "mar": 3, "april": 4, "apr": 4,
    "may": 5, "june": 6, "jun": 6,
    "july": 7, "jul": 7, "august": 8, "aug": 8,
    "september": 9, "sep": 9, "sept": 9,
    "october": 10, "oct": 10, "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}

_UNITS: dict[str, int] = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9,
    "first": 1, "second": 2, "third": 3, "fourth": 4, "fifth": 5,
    "sixth": 6, "seventh": 7, "eighth": 8, "ninth": 9,
}

SPOKEN_NUMBERS: dict[str, int] = {
    **_UNITS,
    "ten": 10, "eleven": 11, "twelve": 12, "thirteen": 13, "fourteen": 14,
    "fifteen": 15, "sixteen": 16, "seventeen": 17, "eighteen": 18, "nineteen": 19,
    "tenth": 10, "eleventh": 11, "twelfth": 12, "thirteenth": 13, "fourteenth": 14,
    "fifteenth": 15, "sixteenth": 16, "seventeenth": 17, "eighteenth": 18,
    "nineteenth": 19,
    "twenty": 20, "twentieth": 20, "thirty": 30, "thirtieth": 30,
}

_TENS = {"twenty": 20, "thirty": 30}

SPOKEN_CENTURIES: dict[str, int] = {"nineteen": 1900, "twenty": 2000}

SPOKEN_DECADES: dict[str, int] = {
    "ninety": 90, "eighty": 80, "seventy": 70, "sixty": 60,
    "fifty": 50, "forty": 40, "thirty": 30, "twenty": 20, "ten": 10,
    "eleven": 11, "twelve": 12, "thirteen": 13, "fourteen": 14, "fifteen": 15,
    "sixteen": 16, "seventeen": 17, "eighteen": 18, "nineteen": 19,
    "oh": 0, "zero": 0,
}

_ORDINAL_SUFFIX_RE = re.compile(r"(\d+)(st|nd|rd|th)\b", re.IGNORECASE)
_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_NUMERIC_RE = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4}|\d{2})$")
_MONTH_FIRST_RE = re.compile(r"^([a-z]+)\.?\s+(\d{1,2}),?\s*(\d{4})$", re.IGNORECASE)
_DAY_FIRST_RE = re.compile(r"^(\d{1,2})(?:\s+of)?\s+([a-z]+)\.?,?\s*(\d{4})$", re.IGNORECASE)
_FOUR_DIGIT_YEAR_RE = re.compile(r"\b(19|20)\d{2}\b")
_FALLBACK_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))


def is_valid_birth_date(year: int, month: int, day: int, today: date | None = None) -> bool:
    """True for a real calendar date between 1900 and the current year."""
    today = today or date.today()
    if not 1 <= month <= 12 or not 1 <= day <= 31:
        return False
    if year < 1900 or year > today.year:
        return False
    try:
        date(year, month, day)
    except ValueError:
        return False
    return True


def parse_date_of_birth(text: str, today: date | None = None) -> NormalizedValue:
    """
    Normalize a spoken or typed birth date to ``YYYY-MM-DD``.

    A value that matches a known pattern but is not a valid birth date
    (Feb 30, month 13, a future year) is rejected rather than guessed:
    the trimmed input comes back at low confidence.
    """
    raw = text.strip()
    cleaned = _ORDINAL_SUFFIX_RE.sub(r"\1", raw)

    def accept(year: int, month: int, day: int, confidence: float) -> NormalizedValue:
        if is_valid_birth_date(year, month, day, today):
            return NormalizedValue(f"{year:04d}-{month:02d}-{day:02d}", confidence)
        logger.debug("date_of_birth_rejected", raw=raw, year=year, month=month, day=day)
        return NormalizedValue(raw, UNPARSEABLE_CONFIDENCE)

    match = _ISO_RE.match(cleaned)
    if match:
        year, month, day = (int(g) for g in match.groups())
        return accept(year, month, day, ISO_CONFIDENCE)

    match = _NUMERIC_RE.match(cleaned)
    if match:
        month, day = int(match.group(1)), int(match.group(2))
        return accept(_expand_year(match.group(3)), month, day, NUMERIC_CONFIDENCE)

    match = _MONTH_FIRST_RE.match(cleaned)
    if match and match.group(1).lower() in MONTH_NAMES:
        month = MONTH_NAMES[match.group(1).lower()]
        return accept(int(match.group(3)), month, int(match.group(2)), MONTH_NAME_CONFIDENCE)

    match = _DAY_FIRST_RE.match(cleaned)
    if match and match.group(2).lower() in MONTH_NAMES:
        month = MONTH_NAMES[match.group(2).lower()]
        return accept(int(match.group(3)), month, int(match.group(1)), MONTH_NAME_CONFIDENCE)

    if get_settings().feature_spoken_dates:
        spoken = parse_spoken_date(cleaned)
        if spoken:
            return accept(*spoken, SPOKEN_CONFIDENCE)

    fallback = _parse_free_text(cleaned)
    if fallback:
        return accept(fallback.year, fallback.month, fallback.day, FALLBACK_CONFIDENCE)

    return NormalizedValue(raw, UNPARSEABLE_CONFIDENCE)


def parse_spoken_date(text: str) -> Optional[tuple[int, int, int]]:
    """
    Parse a spelled-out date such as "December twenty-fifth nineteen ninety".

    Returns ``(year, month, day)`` or None. Calendar validity is left to
    the caller.
    """
    tokens = re.findall(r"[a-z0-9]+", text.lower().replace("-", " "))
    if not tokens:
        return None

    month_index = next((i for i, tok in enumerate(tokens) if tok in MONTH_NAMES), None)
    if month_index is None:
        return None
    month = MONTH_NAMES[tokens[month_index]]
    remaining = [tok for i, tok in enumerate(tokens) if i != month_index and tok not in ("of", "the", "and")]

    year, remaining = _take_year(remaining)
    if year is None:
        return None

    day = _take_day(remaining)
    if day is None:
        return None

    return year, month, day


def _take_year(tokens: list[str]) -> tuple[Optional[int], list[str]]:
    """
    Find a year in the token list and return it with the leftover tokens.

    Scans from the end: the year is said last, and a day such as
    "nineteenth" or "twenty" must not be read as a century.
    """
    for i, tok in enumerate(tokens):
        if re.fullmatch(r"(19|20)\d{2}", tok):
            return int(tok), tokens[:i] + tokens[i + 1:]

    for i in range(len(tokens) - 1, -1, -1):
        tok = tokens[i]
        nxt = tokens[i + 1] if i + 1 < len(tokens) else None

        # "two thousand (five)"
        if tok == "two" and nxt == "thousand":
            year, end = 2000, i + 2
            if end < len(tokens) and tokens[end] in SPOKEN_NUMBERS and SPOKEN_NUMBERS[tokens[end]] < 30:
                year += SPOKEN_NUMBERS[tokens[end]]
                end += 1
            return year, tokens[:i] + tokens[end:]

        # "nineteen ninety (five)", "nineteen oh five", "twenty ten"
        if tok in SPOKEN_CENTURIES and nxt in SPOKEN_DECADES:
            year, end = SPOKEN_CENTURIES[tok] + SPOKEN_DECADES[nxt], i + 2
            if (
                nxt in ("ninety", "eighty", "seventy", "sixty", "fifty", "forty", "thirty", "twenty", "oh", "zero")
                and end < len(tokens)
                and tokens[end] in _UNITS
                and not tokens[end].endswith(("st", "nd", "rd", "th"))
            ):
                year += _UNITS[tokens[end]]
                end += 1
            return year, tokens[:i] + tokens[end:]

    return None, tokens


def _take_day(tokens: list[str]) -> Optional[int]:
    for i, tok in enumerate(tokens):
        nxt = tokens[i + 1] if i + 1 < len(tokens) else None
        if tok in _TENS and nxt in _UNITS:
            day = _TENS[tok] + _UNITS[nxt]
        elif tok in SPOKEN_NUMBERS:
            day = SPOKEN_NUMBERS[tok]
        elif tok.isdigit() and len(tok) <= 2:
            day = int(tok)
        else:
            continue
        if 1 <= day <= 31:
            return day
    return None


def _expand_year(year: str) -> int:
    value = int(year)
    if len(year) == 2:
        return 1900 + value if value > TWO_DIGIT_YEAR_PIVOT else 2000 + value
    return value


def _parse_free_text(text: str) -> Optional[datetime]:
    """
    Last-resort parse with dateutil.

    dateutil fills missing components from its default, so the text is
    parsed against two different defaults: if the results differ, the
    caller never said a day, month or year and the date is not trusted.
    """
    if not _FOUR_DIGIT_YEAR_RE.search(text):
        return None
    try:
        first = dateutil_parser.parse(text, fuzzy=True, default=_FALLBACK_DEFAULTS[0])
        second = dateutil_parser.parse(text, fuzzy=True, default=_FALLBACK_DEFAULTS[1])
    except (ValueError, OverflowError) as e:
        logger.debug("date_fallback_parse_failed", raw=text, error=str(e))
        return None
    if first.date() != second.date():
        logger.debug("date_fallback_incomplete", raw=text)
        return None
    return first
