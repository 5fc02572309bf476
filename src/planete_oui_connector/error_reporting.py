from __future__ import annotations

import logging

import sentry_sdk

from .config import ErrorReportingConfig


logger = logging.getLogger(__name__)


def configure_error_reporting(cfg: ErrorReportingConfig) -> bool:
    """
    Send unhandled errors to Sentry when a DSN is configured. Returns whether reporting is enabled.
    """
    if not cfg.sentry_dsn:
        logger.debug("Error reporting disabled (no sentry_dsn)")
        return False
    sentry_sdk.init(
        dsn=cfg.sentry_dsn,
        environment=cfg.environment or None,
        send_default_pii=False,
    )
    logger.info("Error reporting enabled (environment=%s)", cfg.environment or "default")
    return True


def report_exception(exc: BaseException) -> None:
    # No-op when sentry_sdk.init() was never called.
    sentry_sdk.capture_exception(exc)
