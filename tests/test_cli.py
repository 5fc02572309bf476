from __future__ import annotations

from pathlib import Path

import pytest

from fakes import BASE, portal_session
from planete_oui_connector import cli
from planete_oui_connector.portal.client import AuthenticationError, PlaneteOuiClient, PortalCredentials
from planete_oui_connector.storage.state import StateStore


@pytest.fixture()
def workdir(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.chdir(tmp_path)
    for var in ("BANK_IDENTIFIERS", "SENTRY_DSN", "PORTAL_BASE_URL", "STATE_DB_PATH", "FOLDER_PATH"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("PORTAL_LOGIN", "me@example.fr")
    monkeypatch.setenv("PORTAL_PASSWORD", "secret")
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "data" / "connector.log"))
    monkeypatch.setenv("LOG_LEVEL", "INFO")
    return tmp_path


def _use_fake_portal(monkeypatch, *, login_ok: bool = True) -> None:
    def _build_client(cfg, *, capture_html: bool = False) -> PlaneteOuiClient:
        return PlaneteOuiClient(
            base_url=cfg.portal.base_url,
            creds=PortalCredentials(login=cfg.portal.login, password=cfg.portal.password),
            session=portal_session(login_ok=login_ok),
            capture_dir=cli.DEBUG_DIR if capture_html else None,
        )

    monkeypatch.setattr(cli, "_build_client", _build_client)


def test_sync_saves_bills_for_every_account(workdir: Path, monkeypatch) -> None:
    _use_fake_portal(monkeypatch)
    ops = workdir / "ops.csv"
    ops.write_text("id,date,label,amount\nop1,10/06/2016,PRLV SEPA PLANETE OUI,-45.67\n", encoding="utf-8")

    assert cli.main(["--env-file", "none.env", "sync", "--bank-operations", str(ops)]) == 0

    bills = workdir / "data" / "bills"
    assert sorted(p.name for p in (bills / "maison-lyon-9f8e7d").iterdir()) == [
        "2016-06_planete-oui_45.67€.pdf",
        "2016-07_planete-oui.pdf",
    ]
    assert (bills / "appartement-paris-a1b2c3" / "2016-06_planete-oui_45.67€.pdf").read_bytes() == b"%PDF-abc123"

    state = StateStore(str(workdir / "data" / "state.db"))
    try:
        assert state.list_bank_links("9f8e7d|abc123") == ["op1"]
        assert state.list_bank_links("a1b2c3|abc123") == ["op1"]
    finally:
        state.close()


def test_sync_dry_run_writes_no_bills_but_counts_them(workdir: Path, monkeypatch) -> None:
    _use_fake_portal(monkeypatch)
    assert cli.main(["--env-file", "none.env", "sync", "--dry-run"]) == 0
    assert not (workdir / "data" / "bills").exists()

    state = StateStore(str(workdir / "data" / "state.db"))
    try:
        last_run, = state.recent_runs(limit=1)
    finally:
        state.close()
    assert last_run["ok"] is True
    # both sites list the same two downloadable bills
    assert last_run["message"] == "dry-run would_save=4 skipped=0"


def test_sync_login_failure_is_fatal_and_bundles_debug(workdir: Path, monkeypatch) -> None:
    _use_fake_portal(monkeypatch, login_ok=False)
    with pytest.raises(AuthenticationError):
        cli.main(["--env-file", "none.env", "sync", "--capture-html"])
    assert list((workdir / "data").glob("debug_bundle_planete-oui-sync_*.zip"))


def test_list_accounts_prints_sites(workdir: Path, monkeypatch, capsys) -> None:
    _use_fake_portal(monkeypatch)
    assert cli.main(["--env-file", "none.env", "list-accounts"]) == 0
    out = capsys.readouterr().out
    assert "9f8e7d\tMaison Lyon" in out
    assert "a1b2c3\tAppartement Paris" in out


def test_preflight_skip_login(workdir: Path) -> None:
    assert cli.main(["--env-file", "none.env", "preflight", "--skip-login"]) == 0


def test_default_client_uses_config(workdir: Path) -> None:
    cfg = cli.load_config("missing.yaml")
    client = cli._build_client(cfg)
    try:
        assert client.base_url == BASE
        assert client.creds.login == "me@example.fr"
    finally:
        client.close()


@pytest.mark.parametrize("cmd", ["list-accounts", "preflight"])
def test_login_failure_is_reported_for_every_command(workdir: Path, monkeypatch, cmd: str) -> None:
    _use_fake_portal(monkeypatch, login_ok=False)
    reported = []
    monkeypatch.setattr(cli, "report_exception", reported.append)

    with pytest.raises(AuthenticationError):
        cli.main(["--env-file", "none.env", cmd])

    assert len(reported) == 1 and isinstance(reported[0], AuthenticationError)
    assert list((workdir / "data").glob(f"debug_bundle_planete-oui-{cmd}_*.zip"))
