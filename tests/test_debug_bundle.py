from __future__ import annotations

import json
import zipfile
from pathlib import Path

from planete_oui_connector.storage.state import StateStore
from planete_oui_connector.util.debug_bundle import create_debug_bundle


def test_create_debug_bundle_includes_pages_index_and_log(tmp_path: Path) -> None:
    debug_dir = tmp_path / "debug"
    debug_dir.mkdir()
    (debug_dir / "01_espace-client.html").write_text("<html/>", encoding="utf-8")
    (debug_dir / "02_espace-client-mes-factures.html").write_text("<html></html>", encoding="utf-8")
    (debug_dir / "notes.txt").write_text("not a page", encoding="utf-8")

    log_file = tmp_path / "connector.log"
    log_file.write_text("hello", encoding="utf-8")

    out = create_debug_bundle(
        debug_dir=str(debug_dir),
        log_file=str(log_file),
        out_dir=str(tmp_path),
        label="planete-oui",
    )
    assert out.exists()
    assert out.suffix == ".zip"
    assert out.name.startswith("debug_bundle_planete-oui_")

    with zipfile.ZipFile(out, "r") as z:
        names = set(z.namelist())
        assert names == {
            "connector.log",
            "pages/01_espace-client.html",
            "pages/02_espace-client-mes-factures.html",
            "pages/INDEX.txt",
        }
        index = z.read("pages/INDEX.txt").decode("utf-8").splitlines()
    assert index == ["01_espace-client.html\t7", "02_espace-client-mes-factures.html\t13"]


def test_create_debug_bundle_includes_recent_runs(tmp_path: Path) -> None:
    state = StateStore(str(tmp_path / "state.db"))
    try:
        ok_run = state.record_run_start()
        state.record_run_finish(ok_run, ok=True, message="saved=2")
        failed_run = state.record_run_start()
        state.record_run_finish(failed_run, ok=False, message="Portal login failed")
        runs = state.recent_runs()
    finally:
        state.close()

    out = create_debug_bundle(
        debug_dir=str(tmp_path / "nope"),
        log_file=str(tmp_path / "missing.log"),
        out_dir=str(tmp_path / "out"),
        runs=runs,
    )
    with zipfile.ZipFile(out, "r") as z:
        assert z.namelist() == ["runs.json"]
        data = json.loads(z.read("runs.json"))
    assert [r["id"] for r in data] == [failed_run, ok_run]
    assert data[0]["ok"] is False
    assert data[0]["message"] == "Portal login failed"


def test_create_debug_bundle_tolerates_missing_inputs(tmp_path: Path) -> None:
    out = create_debug_bundle(
        debug_dir=str(tmp_path / "nope"),
        log_file=str(tmp_path / "missing.log"),
        out_dir=str(tmp_path / "out"),
    )
    assert out.name.startswith("debug_bundle_2")
    with zipfile.ZipFile(out, "r") as z:
        assert z.namelist() == []
