from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional


# Shown by the portal while a bill amount is not yet known.
AMOUNT_PLACEHOLDER = "__.__€"


def parse_euro_amount(value: str) -> Optional[float]:
    """
    Parse values like:
    - "12.34€"
    - "  5€ "
    - "1 234,56 €"

    Returns None for the "__.__€" placeholder.
    """
    if value is None:
        raise ValueError("parse_euro_amount: value is None")

    s = value.strip()
    # Must short-circuit before numeric parsing.
    if s == AMOUNT_PLACEHOLDER:
        return None

    s = s.replace("€", "").replace("\xa0", "").replace(" ", "").replace(",", ".")
    if not s:
        raise ValueError(f"parse_euro_amount: empty amount in {value!r}")

    try:
        dec = Decimal(s)
    except InvalidOperation as e:
        raise ValueError(f"parse_euro_amount: cannot parse {value!r}") from e
    if not dec.is_finite():
        raise ValueError(f"parse_euro_amount: cannot parse {value!r}")
    if dec < 0:
        raise ValueError(f"parse_euro_amount: negative amount {value!r}")
    return float(dec)


def format_amount(amount: float) -> str:
    dec = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{dec:.2f}"
