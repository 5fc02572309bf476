from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Mapping, Optional
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from ..models import Account, BillingRecord, RawRow
from ..normalize import DEFAULT_BASE_URL, normalize_rows
from .scrape import extract_raw_rows
from .selectors import PortalSelectors


logger = logging.getLogger(__name__)


_SITE_ID_RE = re.compile(r"[?&]site=([0-9a-fA-F]+)")
_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")

# Inputs a browser would not serialize on submit.
_SKIPPED_INPUT_TYPES = {"submit", "button", "image", "reset", "file"}


class AuthenticationError(RuntimeError):
    """
    Raised when the portal does not accept the credentials (no signed-in marker after the login POST).
    """


class LoginFormNotFoundError(RuntimeError):
    """
    Raised when the login page does not contain the expected form.
    """


@dataclass(frozen=True)
class PortalCredentials:
    login: str
    password: str


def extract_account_id(href: Optional[str]) -> Optional[str]:
    """
    "Accueil?site=9f8e7d&tab=1" -> "9f8e7d"
    """
    m = _SITE_ID_RE.search(href or "")
    return m.group(1) if m else None


def _serialize_form(form) -> dict[str, str]:
    data: dict[str, str] = {}
    for inp in form.select("input[name]"):
        typ = (inp.get("type") or "text").lower()
        if typ in _SKIPPED_INPUT_TYPES:
            continue
        if typ in {"checkbox", "radio"} and not inp.has_attr("checked"):
            continue
        data[inp["name"]] = inp.get("value") or ""
    return data


def signin(
    session: requests.Session,
    *,
    url: str,
    form_selector: str,
    form_data: Mapping[str, str],
    validate: Callable[[int, BeautifulSoup, Any], bool],
    timeout: float = 30.0,
) -> BeautifulSoup:
    """
    Submit the login form found at `url` and return the parsed result page.

    The form's own fields (hidden tokens etc.) are posted along with `form_data`. `validate` receives
    (status_code, parsed page, response) and decides whether the sign-in worked.
    """
    resp = session.get(url, timeout=timeout)
    resp.raise_for_status()
    page = BeautifulSoup(resp.text, "html.parser")

    form = page.select_one(form_selector)
    if form is None:
        raise LoginFormNotFoundError(f"Login form {form_selector!r} not found at {url}")

    payload = _serialize_form(form)
    payload.update(form_data)
    action = urljoin(resp.url or url, form.get("action") or "")
    method = (form.get("method") or "post").strip().lower()

    logger.debug("Submitting login form (method=%s action=%s fields=%s)", method, action, sorted(payload))
    if method == "get":
        result = session.get(action, params=payload, timeout=timeout)
    else:
        result = session.post(action, data=payload, timeout=timeout)

    result_page = BeautifulSoup(result.text, "html.parser")
    if not validate(result.status_code, result_page, result):
        raise AuthenticationError("Login failed: the portal did not accept the credentials")
    return result_page


class PlaneteOuiClient:
    """
    Planète OUI customer area client (`https://www.planete-oui.fr/Espace-Client/`).

    Owns one `requests.Session`; cookies set by the login carry over to every later fetch.
    """

    LOGIN_PATH = "/Espace-Client/Connexion"
    HOME_PATH = "/Espace-Client/"
    BILLS_PATH = "/Espace-Client/Mes-Factures"

    def __init__(
        self,
        *,
        creds: PortalCredentials,
        base_url: str = DEFAULT_BASE_URL,
        selectors: Optional[PortalSelectors] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        capture_dir: Optional[str] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.creds = creds
        self.selectors = selectors or PortalSelectors()
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout

        self._capture_dir = Path(capture_dir) if capture_dir else None
        self._capture_counter = 0

    def close(self) -> None:
        self.session.close()

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _capture(self, url: str, html: str) -> None:
        if self._capture_dir is None:
            return
        self._capture_counter += 1
        path_part = _NON_SLUG_RE.sub("-", urlparse(url).path.lower()).strip("-") or "root"
        out = self._capture_dir / f"{self._capture_counter:02d}_{path_part}.html"
        try:
            self._capture_dir.mkdir(parents=True, exist_ok=True)
            out.write_text(html, encoding="utf-8")
        except OSError:
            logger.debug("Failed to capture page html (url=%s)", url, exc_info=True)

    def fetch(self, url: str) -> BeautifulSoup:
        logger.debug("GET %s", url)
        resp = self.session.get(url, timeout=self.timeout)
        resp.raise_for_status()
        self._capture(url, resp.text)
        return BeautifulSoup(resp.text, "html.parser")

    def download(self, url: str) -> bytes:
        logger.debug("Downloading %s", url)
        resp = self.session.get(url, timeout=self.timeout)
        resp.raise_for_status()
        return resp.content

    def authenticate(self) -> None:
        logger.info("Authenticating (login=%s)", self.creds.login)
        page = signin(
            self.session,
            url=self.url(self.LOGIN_PATH),
            form_selector=self.selectors.login_form,
            form_data={"email": self.creds.login, "password": self.creds.password},
            validate=self._validate_login,
            timeout=self.timeout,
        )
        self._capture(self.url(self.LOGIN_PATH), str(page))
        logger.info("Successfully logged in")

    def _validate_login(self, status_code: int, page: BeautifulSoup, response: Any) -> bool:
        logger.debug("Login response (status=%s url=%s)", status_code, getattr(response, "url", ""))
        if page.select(self.selectors.logout_link):
            return True
        error_text = " ".join(el.get_text(" ", strip=True) for el in page.select(self.selectors.login_error))
        logger.error("Login rejected by portal: %s", error_text or "(no error message on page)")
        return False

    def parse_accounts(self, page: BeautifulSoup) -> list[Account]:
        accounts: list[Account] = []
        seen: set[str] = set()
        for link in page.select(self.selectors.account_link):
            href = link.get("href") or ""
            account_id = extract_account_id(href)
            if not account_id:
                continue
            if account_id in seen:
                continue
            name = link.get_text(" ", strip=True) or account_id
            accounts.append(Account(id=account_id, href=href, name=name))
            seen.add(account_id)
        return accounts

    def list_accounts(self) -> list[Account]:
        page = self.fetch(self.url(self.HOME_PATH))
        accounts = self.parse_accounts(page)
        if not accounts:
            # Single-site customers get no site switcher; their bills page is the only one.
            logger.info("No site switcher found; treating the customer area as a single account")
            return [Account(id="", href=self.BILLS_PATH, name="default")]
        logger.info("Found %d account(s): %s", len(accounts), ", ".join(a.name for a in accounts))
        return accounts

    def fetch_bill_rows(self, account: Account) -> list[RawRow]:
        if account.id:
            # Opening the site link makes it the active site for the session.
            self.fetch(urljoin(self.url(self.HOME_PATH), account.href))
        page = self.fetch(self.url(self.BILLS_PATH))
        rows = extract_raw_rows(page, self.selectors)
        logger.info("Account %s: %d bill row(s) on the billing page", account.name, len(rows))
        return rows

    def fetch_bills(self, account: Account, *, now: Optional[datetime] = None) -> list[BillingRecord]:
        rows = self.fetch_bill_rows(account)
        records = normalize_rows(rows, account=account if account.id else None, base_url=self.base_url, now=now)
        logger.info("Account %s: %d bill(s) after normalization", account.name, len(records))
        return records
