from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Union
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .normalize import DEFAULT_BASE_URL


logger = logging.getLogger(__name__)


_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")

DEFAULT_BANK_IDENTIFIERS = ["planete oui"]


def _expand_env_vars(value: object) -> object:
    if isinstance(value, str):
        def repl(match: re.Match[str]) -> str:
            var = match.group(1)
            return os.getenv(var, "")

        return _ENV_VAR_PATTERN.sub(repl, value)
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    return value


def _deep_merge(base: object, override: object) -> object:
    if isinstance(base, dict) and isinstance(override, dict):
        out = dict(base)
        for k, v in override.items():
            if k in out:
                out[k] = _deep_merge(out[k], v)
            else:
                out[k] = v
        return out
    return override


def _parse_identifiers_env(value: str) -> list[str]:
    s = (value or "").strip()
    if not s:
        return []

    # Support JSON list syntax: ["planete oui","oui energy"]
    if s.startswith("["):
        try:
            data = json.loads(s)
            items = [str(x) for x in data] if isinstance(data, list) else [s]
        except json.JSONDecodeError:
            items = [s]
    else:
        # Identifiers may contain spaces, so only commas separate them.
        items = s.split(",")

    out: list[str] = []
    seen: set[str] = set()
    for item in items:
        ident = (item or "").strip()
        if not ident or ident.casefold() in seen:
            continue
        out.append(ident)
        seen.add(ident.casefold())
    return out


def _default_config_from_env() -> dict:
    """
    Env-only config so most users only need `.env`; YAML remains an optional override.
    """
    return {
        "portal": {
            "login": os.getenv("PORTAL_LOGIN", ""),
            "password": os.getenv("PORTAL_PASSWORD", ""),
            "base_url": os.getenv("PORTAL_BASE_URL", DEFAULT_BASE_URL),
            "timeout_seconds": os.getenv("PORTAL_TIMEOUT_SECONDS", "30"),
        },
        "storage": {
            "folder_path": os.getenv("FOLDER_PATH", "data/bills"),
            "db_path": os.getenv("STATE_DB_PATH", "data/state.db"),
        },
        "bank": {
            "identifiers": _parse_identifiers_env(os.getenv("BANK_IDENTIFIERS", "")) or list(DEFAULT_BANK_IDENTIFIERS),
        },
        "error_reporting": {
            "sentry_dsn": os.getenv("SENTRY_DSN", ""),
            "environment": os.getenv("SENTRY_ENVIRONMENT", ""),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "file_path": os.getenv("LOG_FILE", "data/connector.log"),
        },
    }


class PortalConfig(BaseModel):
    login: str
    password: str = Field(repr=False)
    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = 30.0

    @model_validator(mode="after")
    def _validate(self) -> "PortalConfig":
        if not self.login.strip():
            raise ValueError("portal.login is required (set PORTAL_LOGIN or fields.login)")
        if not self.password:
            raise ValueError("portal.password is required (set PORTAL_PASSWORD or fields.password)")

        base_url = (self.base_url or DEFAULT_BASE_URL).strip().rstrip("/")
        parsed = urlparse(base_url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"portal.base_url must be a full URL like {DEFAULT_BASE_URL!r}")
        self.base_url = base_url
        self.login = self.login.strip()
        return self


class StorageConfig(BaseModel):
    folder_path: str = "data/bills"
    db_path: str = "data/state.db"

    @field_validator("folder_path")
    @classmethod
    def _folder_required(cls, v: str) -> str:
        if not (v or "").strip():
            raise ValueError("storage.folder_path must not be empty")
        return v.strip()


class BankConfig(BaseModel):
    # Words found in the label of bank operations paying these bills (case-insensitive).
    identifiers: list[str] = Field(default_factory=lambda: list(DEFAULT_BANK_IDENTIFIERS))


class ErrorReportingConfig(BaseModel):
    # Empty DSN disables error reporting.
    sentry_dsn: str = Field(default="", repr=False)
    environment: str = ""


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_path: str = "data/connector.log"


class AppConfig(BaseModel):
    portal: PortalConfig
    storage: StorageConfig = StorageConfig()
    bank: BankConfig = BankConfig()
    error_reporting: ErrorReportingConfig = ErrorReportingConfig()
    logging: LoggingConfig = LoggingConfig()

    @model_validator(mode="before")
    @classmethod
    def _migrate_host_fields(cls, data: object) -> object:
        # Host platforms hand connectors a flat `fields` block: {login, password, folderPath}.
        if not isinstance(data, dict) or "fields" not in data:
            return data
        data = dict(data)
        fields = data.pop("fields") or {}
        portal = dict(data.get("portal") or {})
        storage = dict(data.get("storage") or {})
        if fields.get("login"):
            portal["login"] = fields["login"]
        if fields.get("password"):
            portal["password"] = fields["password"]
        if fields.get("folderPath"):
            storage["folder_path"] = fields["folderPath"]
        data["portal"] = portal
        data["storage"] = storage
        return data


def load_config(path: Union[str, Path]) -> AppConfig:
    p = Path(path)
    raw: dict = {}
    if p.exists():
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
        raw = _expand_env_vars(raw)  # supports ${ENV_VAR} in YAML
    else:
        logger.debug("Config file %s not found; using environment only", p)

    merged = _deep_merge(_default_config_from_env(), raw)
    return AppConfig.model_validate(merged)
