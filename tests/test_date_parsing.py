from datetime import date

import pytest

from voice_intake.services.date_parsing import (
    is_valid_birth_date,
    parse_date_of_birth,
    parse_spoken_date,
)

TODAY = date(2024, 6, 1)


@pytest.mark.parametrize("raw,expected", [
    ("1990-03-04", ("1990-03-04", 0.98)),
    ("03/04/1990", ("1990-03-04", 0.85)),
    ("3-4-1990", ("1990-03-04", 0.85)),
    ("March 4th, 1990", ("1990-03-04", 0.9)),
    ("mar. 4 1990", ("1990-03-04", 0.9)),
    ("4 of March 1990", ("1990-03-04", 0.9)),
    ("21st December, 1985", ("1985-12-21", 0.9)),
])
def test_known_formats(raw, expected):
    assert parse_date_of_birth(raw, today=TODAY) == expected


def test_iso_outranks_numeric():
    iso = parse_date_of_birth("1990-03-04", today=TODAY)
    numeric = parse_date_of_birth("03/04/1990", today=TODAY)
    assert iso.value == numeric.value
    assert iso.confidence > numeric.confidence


def test_two_digit_years_pivot():
    assert parse_date_of_birth("03/04/90", today=TODAY).value == "1990-03-04"
    assert parse_date_of_birth("03/04/05", today=TODAY).value == "2005-03-04"


@pytest.mark.parametrize("raw", ["02/30/1990", "13/01/1990", "1899-12-31", "2025-01-01"])
def test_impossible_dates_are_rejected(raw):
    assert parse_date_of_birth(raw, today=TODAY) == (raw, 0.3)


def test_unparseable_returns_trimmed_input():
    assert parse_date_of_birth("  sometime in spring ", today=TODAY) == ("sometime in spring", 0.3)


@pytest.mark.parametrize("raw,expected", [
    ("march fourth nineteen ninety", "1990-03-04"),
    ("December twenty-fifth nineteen eighty five", "1985-12-25"),
    ("the nineteenth of july nineteen seventy", "1970-07-19"),
    ("two thousand five january first", "2005-01-01"),
    ("june 3 nineteen oh five", "1905-06-03"),
])
def test_spoken_dates(raw, expected):
    assert parse_date_of_birth(raw, today=TODAY) == (expected, 0.7)


def test_spoken_dates_can_be_disabled(configure):
    configure(feature_spoken_dates=False)
    assert parse_date_of_birth("march fourth nineteen ninety", today=TODAY).confidence == 0.3


def test_free_text_fallback(configure):
    configure(feature_spoken_dates=False)
    assert parse_date_of_birth("March 4 in 1990", today=TODAY) == ("1990-03-04", 0.6)


def test_fallback_does_not_invent_a_day(configure):
    configure(feature_spoken_dates=False)
    assert parse_date_of_birth("March 1990", today=TODAY) == ("March 1990", 0.3)


def test_parse_spoken_date_needs_month_and_year():
    assert parse_spoken_date("fourth nineteen ninety") is None
    assert parse_spoken_date("march fourth") is None


def test_is_valid_birth_date():
    assert is_valid_birth_date(2000, 2, 29, today=TODAY)
    assert not is_valid_birth_date(1900, 2, 29, today=TODAY)
    assert not is_valid_birth_date(2024, 7, 1, today=date(2023, 1, 1))
