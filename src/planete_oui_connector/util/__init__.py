from .dates import UnknownMonthError, parse_fr_date, parse_french_month
from .money import AMOUNT_PLACEHOLDER, format_amount, parse_euro_amount

__all__ = [
    "AMOUNT_PLACEHOLDER",
    "UnknownMonthError",
    "format_amount",
    "parse_euro_amount",
    "parse_fr_date",
    "parse_french_month",
]
