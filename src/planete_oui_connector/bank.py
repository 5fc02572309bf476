from __future__ import annotations

import csv
import logging
from datetime import timedelta
from pathlib import Path
from typing import Iterable, Sequence, Union

from .models import BankOperation, BillingRecord
from .util.dates import parse_fr_date
from .util.money import parse_euro_amount


logger = logging.getLogger(__name__)


# Matching window around the bill date: debits land some days after the bill is issued.
DEFAULT_AMOUNT_DELTA = 0.001
DEFAULT_MIN_DATE_DELTA = timedelta(days=15)
DEFAULT_MAX_DATE_DELTA = timedelta(days=29)


def load_bank_operations_csv(path: Union[str, Path]) -> list[BankOperation]:
    """
    Load bank operations from a CSV export with an `id,date,label,amount` header.

    Rows that cannot be parsed are skipped with a warning.
    """
    p = Path(path)
    out: list[BankOperation] = []
    with p.open(newline="", encoding="utf-8") as f:
        for lineno, row in enumerate(csv.DictReader(f), start=2):
            try:
                amount = parse_euro_amount(row.get("amount") or "")
                if amount is None:
                    raise ValueError("amount placeholder")
                out.append(
                    BankOperation(
                        id=(row.get("id") or "").strip() or f"line-{lineno}",
                        date=parse_fr_date(row.get("date") or ""),
                        label=(row.get("label") or "").strip(),
                        amount=amount,
                    )
                )
            except (ValueError, OverflowError) as e:
                logger.warning("Skipping bank operation at %s:%d (%s)", p.name, lineno, e)
    logger.info("Loaded %d bank operation(s) from %s", len(out), p)
    return out


def label_matches(label: str, identifiers: Iterable[str]) -> bool:
    text = (label or "").casefold()
    return any(ident.strip() and ident.strip().casefold() in text for ident in identifiers)


def match_bank_operations(
    record: BillingRecord,
    operations: Sequence[BankOperation],
    identifiers: Sequence[str],
    *,
    amount_delta: float = DEFAULT_AMOUNT_DELTA,
    min_date_delta: timedelta = DEFAULT_MIN_DATE_DELTA,
    max_date_delta: timedelta = DEFAULT_MAX_DATE_DELTA,
) -> list[BankOperation]:
    bill_day = record.date.date()
    start = bill_day - min_date_delta
    end = bill_day + max_date_delta

    matches: list[BankOperation] = []
    for op in operations:
        if not label_matches(op.label, identifiers):
            continue
        if not (start <= op.date <= end):
            continue
        # Debits are negative on statements; bills are positive.
        if record.amount is not None and abs(abs(op.amount) - record.amount) > amount_delta:
            continue
        matches.append(op)
    return matches
