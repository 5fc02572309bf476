from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Sequence, Union

from ..bank import match_bank_operations
from ..models import BankOperation, BillingRecord
from .state import StateStore


logger = logging.getLogger(__name__)


@dataclass
class SaveResult:
    saved: int = 0
    skipped: int = 0
    linked: int = 0
    # dry-run only: bills that a real run would download
    would_save: int = 0
    paths: list[str] = field(default_factory=list)

    def add(self, other: "SaveResult") -> None:
        self.saved += other.saved
        self.skipped += other.skipped
        self.linked += other.linked
        self.would_save += other.would_save
        self.paths.extend(other.paths)


def ensure_folder(path: Union[str, Path]) -> Path:
    """Create the folder (and parents) if needed; safe to call repeatedly."""
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def folder_slug(name: str) -> str:
    """
    "Maison Lyon (principal)" -> "maison-lyon-principal"
    """
    slug = re.sub(r"[^a-z0-9]+", "-", (name or "").lower())
    return slug.strip("-")


def bill_folder(folder_path: Union[str, Path], record: BillingRecord) -> Path:
    """
    Account-less bills go straight into `folder_path`; the others into `<slug(name)>-<site id>/`.

    The site id keeps two sites with the same label apart.
    """
    root = Path(folder_path)
    if not record.account_ref:
        return root
    slug = folder_slug(record.account_name or "")
    return root / (f"{slug}-{record.account_ref}" if slug else record.account_ref)


def _write_atomic(dest: Path, content: bytes) -> None:
    tmp = dest.with_name(dest.name + ".tmp")
    try:
        tmp.write_bytes(content)
        tmp.replace(dest)
    finally:
        tmp.unlink(missing_ok=True)


def save_bills(
    records: Iterable[BillingRecord],
    folder_path: Union[str, Path],
    *,
    identifiers: Sequence[str],
    download: Callable[[str], bytes],
    state: StateStore,
    bank_operations: Sequence[BankOperation] = (),
    dry_run: bool = False,
) -> SaveResult:
    """
    Store bills under `folder_path`, skipping ones already saved, and link them to bank operations.

    A bill counts as already saved when its vendor reference (per account) or its filename is in the state DB,
    or when the destination file already exists and no other bill claims it.
    """
    result = SaveResult()
    seen_in_batch: set[str] = set()

    for record in records:
        key = record.dedup_key()
        dest_dir = bill_folder(folder_path, record)
        dest = dest_dir / record.filename

        batch_key = f"{record.account_ref or ''}|{record.filename}"
        if key in seen_in_batch or batch_key in seen_in_batch:
            logger.debug("Duplicate bill in this run; skip (ref=%s filename=%s)", record.vendor_ref, record.filename)
            result.skipped += 1
            continue
        seen_in_batch.update({key, batch_key})

        known = state.has_saved_bill(key) or state.has_saved_filename(record.account_ref or "", record.filename)
        owner = None if known or not dest.exists() else state.saved_bill_for_path(str(dest))
        if owner is not None and owner.key != key:
            logger.warning(
                "Destination %s already belongs to bill %s; not saving bill %s there", dest, owner.key, key
            )
            result.skipped += 1
            continue
        already = known or dest.exists()

        if dry_run:
            if already:
                logger.info("  - %s: already saved; skip", record.filename)
                result.skipped += 1
            else:
                logger.info("  - %s: would save to %s", record.filename, dest)
                result.would_save += 1
            continue

        if already:
            logger.debug("Bill already saved; skip (ref=%s filename=%s)", record.vendor_ref, record.filename)
            result.skipped += 1
            if not known:
                # File present on disk but unknown to the DB (e.g. after a DB reset): adopt it.
                state.mark_saved_bill(record, path=str(dest))
        else:
            ensure_folder(dest_dir)
            _write_atomic(dest, download(record.file_url))
            state.mark_saved_bill(record, path=str(dest))
            logger.info("Saved bill: %s", dest)
            result.saved += 1
            result.paths.append(str(dest))

        result.linked += _link_bank_operations(record, bank_operations, identifiers, state)

    if dry_run:
        logger.info("Dry-run: bills would_save=%d skipped=%d", result.would_save, result.skipped)
    else:
        logger.info("Bills saved=%d skipped=%d bank_links=%d", result.saved, result.skipped, result.linked)
    return result


def _link_bank_operations(
    record: BillingRecord,
    operations: Sequence[BankOperation],
    identifiers: Sequence[str],
    state: StateStore,
) -> int:
    if not operations or not identifiers:
        return 0
    linked = 0
    for op in match_bank_operations(record, operations, identifiers):
        created = state.link_bank_operation(
            bill_key=record.dedup_key(),
            operation_id=op.id,
            operation_date=op.date.isoformat(),
            operation_label=op.label,
            operation_amount=op.amount,
        )
        if created:
            logger.info("Linked %s to bank operation %s (%s)", record.filename, op.id, op.label)
            linked += 1
    return linked
