from __future__ import annotations

import re
import unicodedata
from datetime import date, datetime, timezone

from dateutil import parser as date_parser


class UnknownMonthError(ValueError):
    """
    Raised when a "<MonthName> <Year>" label cannot be resolved against the French month table.
    """


FRENCH_MONTHS: dict[str, int] = {
    "janvier": 1,
    "février": 2,
    "mars": 3,
    "avril": 4,
    "mai": 5,
    "juin": 6,
    "juillet": 7,
    "août": 8,
    "septembre": 9,
    "octobre": 10,
    "novembre": 11,
    "décembre": 12,
}

_YEAR_RE = re.compile(r"^\d{4}$")


def _fold(value: str) -> str:
    # "Février" -> "fevrier"
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(c for c in decomposed if not unicodedata.combining(c)).casefold()


_MONTHS_BY_FOLDED_NAME: dict[str, int] = {_fold(name): num for name, num in FRENCH_MONTHS.items()}


def parse_french_month(value: str) -> datetime:
    """
    Parse billing-period labels like:
    - "Juin 2016"
    - "décembre 2019"
    - "Fevrier 2021"

    Returns the first day of that month at midnight UTC.
    """
    if value is None:
        raise UnknownMonthError("parse_french_month: value is None")

    parts = value.split()
    if len(parts) != 2:
        raise UnknownMonthError(f"parse_french_month: expected '<month> <year>', got {value!r}")

    month_name, year_text = parts
    month = _MONTHS_BY_FOLDED_NAME.get(_fold(month_name))
    if month is None:
        raise UnknownMonthError(f"parse_french_month: unknown month name {month_name!r}")
    if not _YEAR_RE.match(year_text):
        raise UnknownMonthError(f"parse_french_month: invalid year {year_text!r}")

    return datetime(int(year_text), month, 1, tzinfo=timezone.utc)


def parse_fr_date(value: str) -> date:
    """
    Parse dates found in French bank exports:
    - "05/03/2020"
    - "2020-03-05"
    """
    if value is None:
        raise ValueError("parse_fr_date: value is None")
    s = value.strip()
    if not s:
        raise ValueError("parse_fr_date: empty string")
    # ISO dates are unambiguous; everything else is day-first.
    dayfirst = not re.match(r"^\d{4}-", s)
    dt = date_parser.parse(s, dayfirst=dayfirst)
    return dt.date()
