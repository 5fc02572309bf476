from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Optional


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"

# Logged by requests/urllib3 at DEBUG with full URLs; keep them quiet unless asked.
NOISY_LOGGERS = ("urllib3", "requests", "charset_normalizer")


class RedactSecrets(logging.Filter):
    """Replace configured secret values (portal password, Sentry DSN) with `***` in every record."""

    def __init__(self, secrets: Iterable[str]) -> None:
        super().__init__()
        # Longest first so a secret containing another is masked whole.
        self._secrets = sorted({s for s in secrets if s}, key=len, reverse=True)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        redacted = message
        for secret in self._secrets:
            redacted = redacted.replace(secret, "***")
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(
    level: str = "INFO",
    file_path: Optional[str] = None,
    *,
    secrets: Iterable[str] = (),
) -> None:
    """
    Log to stderr and, when `file_path` is set, to that file too (it goes into debug bundles).

    Calling it again replaces the previous setup: the CLI configures once from env, then again from the config file.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    redact = RedactSecrets(secrets)
    for handler in handlers:
        handler.addFilter(redact)

    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    noisy_level = os.getenv("NOISY_LOG_LEVEL", "WARNING")
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)
