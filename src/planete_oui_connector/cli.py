from __future__ import annotations

import argparse
import logging
import os
import sqlite3
import time
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .bank import load_bank_operations_csv
from .config import AppConfig, load_config
from .error_reporting import configure_error_reporting, report_exception
from .logging_config import configure_logging
from .portal.client import PlaneteOuiClient, PortalCredentials
from .storage.sink import SaveResult, ensure_folder, save_bills
from .storage.state import StateStore
from .util.debug_bundle import create_debug_bundle


logger = logging.getLogger("planete_oui_connector")

DEBUG_DIR = "data/debug"


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="planete_oui_connector")
    p.add_argument(
        "--env-file",
        default=".env",
        help="Path to a dotenv file (default: .env). If missing, env vars must already be set.",
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    sync = sub.add_parser("sync", help="Log into the Planète OUI customer area and save every bill locally")
    sync.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")
    sync.add_argument("--dry-run", action="store_true", help="Do not download or record anything; log intended actions")
    sync.add_argument(
        "--bank-operations",
        default="",
        help="Optional CSV export of bank operations (id,date,label,amount) to link bills against.",
    )
    sync.add_argument(
        "--capture-html",
        action="store_true",
        help=f"Save every fetched portal page under {DEBUG_DIR}/ (included in the debug bundle on failure).",
    )

    list_accounts = sub.add_parser(
        "list-accounts",
        help="Log into the customer area and list the sites (sub-accounts) bills are fetched for.",
    )
    list_accounts.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")
    list_accounts.add_argument("--capture-html", action="store_true", help=f"Save fetched pages under {DEBUG_DIR}/.")

    preflight = sub.add_parser("preflight", help="Validate configuration and check that the portal login works.")
    preflight.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")
    preflight.add_argument("--skip-login", action="store_true", help="Only validate the configuration")
    return p


def _build_client(cfg: AppConfig, *, capture_html: bool = False) -> PlaneteOuiClient:
    return PlaneteOuiClient(
        base_url=cfg.portal.base_url,
        creds=PortalCredentials(login=cfg.portal.login, password=cfg.portal.password),
        timeout=cfg.portal.timeout_seconds,
        capture_dir=DEBUG_DIR if capture_html else None,
    )


def _load(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config)
    configure_logging(
        level=cfg.logging.level,
        file_path=cfg.logging.file_path,
        secrets=(cfg.portal.password, cfg.error_reporting.sentry_dsn),
    )
    configure_error_reporting(cfg.error_reporting)
    return cfg


def _recent_runs(cfg: AppConfig) -> list[dict]:
    if not Path(cfg.storage.db_path).exists():
        return []
    try:
        state = StateStore(cfg.storage.db_path)
    except (OSError, sqlite3.Error):
        logger.debug("Could not read runs for the debug bundle.", exc_info=True)
        return []
    try:
        return state.recent_runs()
    finally:
        state.close()


def _write_debug_bundle(cfg: AppConfig, cmd: str) -> None:
    try:
        bundle = create_debug_bundle(
            debug_dir=DEBUG_DIR,
            log_file=cfg.logging.file_path or "data/connector.log",
            out_dir="data",
            label=f"planete-oui-{cmd}",
            runs=_recent_runs(cfg),
        )
    except OSError:
        logger.debug("Failed to create debug bundle.", exc_info=True)
        return
    logger.error("Wrote debug bundle: %s", bundle)


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    # Default logging: can be overridden once config is loaded.
    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    commands = {"preflight": _preflight, "list-accounts": _list_accounts, "sync": _sync}
    if args.cmd not in commands:
        raise AssertionError("Unhandled command")

    cfg = _load(args)
    try:
        return commands[args.cmd](cfg, args)
    except Exception as e:
        report_exception(e)
        _write_debug_bundle(cfg, args.cmd)
        raise


def _preflight(cfg: AppConfig, args: argparse.Namespace) -> int:
    logger.info("Starting preflight checks")
    if not args.skip_login:
        client = _build_client(cfg)
        try:
            client.authenticate()
        finally:
            client.close()
    logger.info("Preflight OK")
    return 0


def _list_accounts(cfg: AppConfig, args: argparse.Namespace) -> int:
    client = _build_client(cfg, capture_html=args.capture_html)
    try:
        client.authenticate()
        for account in client.list_accounts():
            print(f"{account.id or '-'}\t{account.name}\t{account.href}")
    finally:
        client.close()
    return 0


def _sync(cfg: AppConfig, args: argparse.Namespace) -> int:
    logger.info("Starting sync (dry_run=%s)", args.dry_run)
    t0 = time.time()

    bank_operations = []
    if args.bank_operations:
        bank_operations = load_bank_operations_csv(args.bank_operations)

    state = StateStore(cfg.storage.db_path)
    run_id = state.record_run_start()
    logger.info("Run started (run_id=%s folder=%s)", run_id, cfg.storage.folder_path)
    try:
        client = _build_client(cfg, capture_html=args.capture_html)
        totals = SaveResult()
        try:
            client.authenticate()

            logger.info("Fetching the list of accounts")
            accounts = client.list_accounts()
            if not args.dry_run:
                ensure_folder(cfg.storage.folder_path)

            for account in accounts:
                logger.info("Fetching bills for account %s", account.name)
                records = client.fetch_bills(account)
                totals.add(
                    save_bills(
                        records,
                        cfg.storage.folder_path,
                        identifiers=cfg.bank.identifiers,
                        download=client.download,
                        state=state,
                        bank_operations=bank_operations,
                        dry_run=args.dry_run,
                    )
                )
        finally:
            client.close()

        if args.dry_run:
            summary = f"dry-run would_save={totals.would_save} skipped={totals.skipped}"
        else:
            summary = f"saved={totals.saved} skipped={totals.skipped} bank_links={totals.linked}"
        state.record_run_finish(run_id, ok=True, message=summary)
        logger.info("Run finished (run_id=%s ok=true %s seconds=%.2f)", run_id, summary, time.time() - t0)
        return 0
    except Exception as e:
        state.record_run_finish(run_id, ok=False, message=str(e))
        logger.error("Run failed (run_id=%s ok=false seconds=%.2f)", run_id, time.time() - t0)
        raise
    finally:
        state.close()
