#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path


def _ensure_src_on_path() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    src = repo_root / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))


def _read_html(path: str) -> str:
    p = Path(path)
    if not p.exists():
        raise SystemExit(f"File not found: {p}")
    return p.read_text(encoding="utf-8", errors="replace")


def _emit(payload: dict, out: str) -> None:
    out_json = json.dumps(payload, indent=2, sort_keys=False, ensure_ascii=False)
    if out:
        Path(out).write_text(out_json, encoding="utf-8")
    else:
        print(out_json)


def main(argv: list[str] | None = None) -> int:
    _ensure_src_on_path()

    from bs4 import BeautifulSoup

    from planete_oui_connector.models import Account
    from planete_oui_connector.normalize import DEFAULT_BASE_URL, normalize_rows
    from planete_oui_connector.portal.client import PlaneteOuiClient, PortalCredentials
    from planete_oui_connector.portal.scrape import extract_raw_rows

    p = argparse.ArgumentParser(
        prog="parse_portal_snapshot",
        description=(
            "Parse portal pages saved with `sync --capture-html` (data/debug/*.html) into structured JSON.\n"
            "This is intended for debugging parsing regressions offline (no network, no secrets)."
        ),
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    accounts = sub.add_parser("accounts", help="Parse a landing-page snapshot into Account[]")
    accounts.add_argument("--file", required=True, help="Path to a captured landing page (.html)")
    accounts.add_argument("--out", default="", help="Optional output JSON path (otherwise prints to stdout)")

    bills = sub.add_parser("bills", help="Parse a billing-page snapshot into BillingRecord[]")
    bills.add_argument("--file", required=True, help="Path to a captured Mes-Factures page (.html)")
    bills.add_argument("--account-id", default="", help="Optional site id to tag records with")
    bills.add_argument("--account-name", default="", help="Optional site name to tag records with")
    bills.add_argument("--base-url", default=DEFAULT_BASE_URL, help=f"Portal base URL (default: {DEFAULT_BASE_URL})")
    bills.add_argument("--out", default="", help="Optional output JSON path (otherwise prints to stdout)")

    args = p.parse_args(argv)
    page = BeautifulSoup(_read_html(args.file), "html.parser")

    if args.cmd == "accounts":
        # Construct a client only to reuse its parsing helpers. No request is sent.
        client = PlaneteOuiClient(creds=PortalCredentials(login="x", password="x"))
        _emit({"accounts": [a.model_dump() for a in client.parse_accounts(page)]}, args.out)
        return 0

    if args.cmd == "bills":
        account = None
        if args.account_id:
            account = Account(id=args.account_id, href="", name=args.account_name or args.account_id)
        rows = extract_raw_rows(page)
        records = normalize_rows(rows, account=account, base_url=args.base_url)
        _emit(
            {
                "raw_rows": [r.model_dump() for r in rows],
                "records": [r.model_dump(mode="json") for r in records],
            },
            args.out,
        )
        return 0

    raise AssertionError("Unhandled command")


if __name__ == "__main__":
    raise SystemExit(main())
