from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from planete_oui_connector.models import BillingRecord
from planete_oui_connector.storage.state import StateStore


def _record() -> BillingRecord:
    return BillingRecord(
        date=datetime(2016, 6, 1, tzinfo=timezone.utc),
        amount=45.67,
        file_url="https://www.planete-oui.fr/Espace-Client/doc/abc123",
        currency="€",
        vendor="Planete OUI",
        vendor_ref="abc123",
        filename="2016-06_planete-oui_45.67€.pdf",
        account_ref="9f8e7d",
        account_name="Maison Lyon",
    )


def test_state_creates_backup(tmp_path: Path) -> None:
    db_path = tmp_path / "state.db"
    s = StateStore(str(db_path))
    try:
        rid = s.record_run_start()
        s.record_run_finish(rid, ok=True, message="test")
    finally:
        s.close()

    bak = tmp_path / "state.db.bak"
    assert db_path.exists()
    assert bak.exists()
    assert bak.stat().st_size > 0


def test_saved_bill_lookup_by_key_and_filename(tmp_path: Path) -> None:
    s = StateStore(str(tmp_path / "state.db"))
    try:
        rec = _record()
        assert s.has_saved_bill(rec.dedup_key()) is False
        s.mark_saved_bill(rec, path="data/bills/maison-lyon-9f8e7d/x.pdf")
        assert s.has_saved_bill("9f8e7d|abc123") is True
        assert s.has_saved_filename("9f8e7d", rec.filename) is True
        assert s.has_saved_filename("other", rec.filename) is False
        saved = s.get_saved_bill("9f8e7d|abc123")
        assert saved is not None
        assert saved.path == "data/bills/maison-lyon-9f8e7d/x.pdf"
    finally:
        s.close()


def test_bank_links_are_recorded_once(tmp_path: Path) -> None:
    s = StateStore(str(tmp_path / "state.db"))
    try:
        kwargs = dict(
            bill_key="9f8e7d|abc123",
            operation_id="op1",
            operation_date="2016-06-10",
            operation_label="PRLV PLANETE OUI",
            operation_amount=-45.67,
        )
        assert s.link_bank_operation(**kwargs) is True
        assert s.link_bank_operation(**kwargs) is False
        assert s.list_bank_links("9f8e7d|abc123") == ["op1"]
    finally:
        s.close()


def test_state_restores_from_backup_when_db_corrupted(tmp_path: Path) -> None:
    db_path = tmp_path / "state.db"

    # Create a valid DB + backup holding one saved bill.
    s1 = StateStore(str(db_path))
    try:
        s1.mark_saved_bill(_record(), path="x.pdf")
        rid = s1.record_run_start()
        s1.record_run_finish(rid, ok=True, message="test")
    finally:
        s1.close()

    bak = tmp_path / "state.db.bak"
    assert bak.exists()

    # Corrupt the main DB file.
    db_path.write_bytes(b"not a sqlite db")

    # Re-open: should quarantine the corrupted DB and restore from backup.
    s2 = StateStore(str(db_path))
    try:
        assert s2.has_saved_bill("9f8e7d|abc123") is True
        rid2 = s2.record_run_start()
        s2.record_run_finish(rid2, ok=True, message="after-restore")
    finally:
        s2.close()

    quarantined = list(tmp_path.glob("state.db.corrupt-*"))
    assert quarantined, "expected quarantined corrupted db file to be created"


def test_saved_bill_lookup_by_path_and_recent_runs(tmp_path: Path) -> None:
    s = StateStore(str(tmp_path / "state.db"))
    try:
        s.mark_saved_bill(_record(), path="data/bills/maison-lyon-9f8e7d/x.pdf")
        owner = s.saved_bill_for_path("data/bills/maison-lyon-9f8e7d/x.pdf")
        assert owner is not None and owner.key == "9f8e7d|abc123"
        assert s.saved_bill_for_path("data/bills/other/x.pdf") is None

        first = s.record_run_start()
        s.record_run_finish(first, ok=True, message="saved=1")
        second = s.record_run_start()
        runs = s.recent_runs()
        assert [r["id"] for r in runs] == [second, first]
        assert runs[0]["ok"] is None and runs[0]["finished_at"] is None
        assert runs[1]["ok"] is True and runs[1]["message"] == "saved=1"
    finally:
        s.close()
