from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Iterator, Optional
from urllib.parse import urlparse

from .models import Account, BillingRecord, BillMetadata, RawRow
from .util.dates import UnknownMonthError, parse_french_month
from .util.money import format_amount, parse_euro_amount


logger = logging.getLogger(__name__)


DEFAULT_BASE_URL = "https://www.planete-oui.fr"
CLIENT_AREA_PATH = "/Espace-Client/"

VENDOR = "Planete OUI"
VENDOR_SLUG = "planete-oui"
CURRENCY = "€"

# Bump when the BillingRecord layout changes so stored documents can be migrated.
SCHEMA_VERSION = 1


def resolve_link(href: Optional[str], base_url: str = DEFAULT_BASE_URL) -> Optional[str]:
    """
    Turn a relative link from the billing table into an absolute document URL.

    "/doc/abc123" -> "https://www.planete-oui.fr/Espace-Client/doc/abc123"
    """
    if not href:
        return None
    return f"{base_url.rstrip('/')}{CLIENT_AREA_PATH}{href.lstrip('/')}"


def vendor_ref_from_url(url: str) -> str:
    segments = [s for s in urlparse(url).path.split("/") if s]
    return segments[-1] if segments else ""


def derive_filename(bill_date: datetime, amount: Optional[float], vendor_slug: str = VENDOR_SLUG) -> str:
    period = bill_date.strftime("%Y-%m")
    if amount is None:
        return f"{period}_{vendor_slug}.pdf"
    return f"{period}_{vendor_slug}_{format_amount(amount)}{CURRENCY}.pdf"


def normalize_row(
    row: RawRow,
    *,
    account: Optional[Account] = None,
    base_url: str = DEFAULT_BASE_URL,
    now: Optional[datetime] = None,
) -> Optional[BillingRecord]:
    """
    Normalize one scraped row. Returns None when the row must be excluded (no link or unparseable month).
    """
    file_url = resolve_link(row.link, base_url)
    if file_url is None:
        logger.debug("Skipping bill row without document link (date=%r)", row.date_text)
        return None

    try:
        bill_date = parse_french_month(row.date_text)
    except UnknownMonthError as e:
        logger.warning("Rejecting bill row with unparseable date (url=%s): %s", file_url, e)
        return None

    try:
        amount = parse_euro_amount(row.amount_text)
    except ValueError as e:
        logger.warning("Bill amount not understood; keeping bill without amount (url=%s): %s", file_url, e)
        amount = None

    return BillingRecord(
        date=bill_date,
        amount=amount,
        file_url=file_url,
        currency=CURRENCY,
        vendor=VENDOR,
        vendor_ref=vendor_ref_from_url(file_url),
        filename=derive_filename(bill_date, amount),
        account_ref=account.id if account else None,
        account_name=account.name if account else None,
        metadata=BillMetadata(import_date=now or datetime.now(timezone.utc), version=SCHEMA_VERSION),
    )


def iter_records(
    rows: Iterable[RawRow],
    *,
    account: Optional[Account] = None,
    base_url: str = DEFAULT_BASE_URL,
    now: Optional[datetime] = None,
) -> Iterator[BillingRecord]:
    for row in rows:
        record = normalize_row(row, account=account, base_url=base_url, now=now)
        if record is not None:
            yield record


def normalize_rows(
    rows: Iterable[RawRow],
    *,
    account: Optional[Account] = None,
    base_url: str = DEFAULT_BASE_URL,
    now: Optional[datetime] = None,
) -> list[BillingRecord]:
    return list(iter_records(rows, account=account, base_url=base_url, now=now))
