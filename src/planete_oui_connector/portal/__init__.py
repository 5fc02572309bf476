from .client import (
    AuthenticationError,
    LoginFormNotFoundError,
    PlaneteOuiClient,
    PortalCredentials,
    extract_account_id,
    signin,
)
from .scrape import FieldSpec, extract_raw_rows, scrape_rows
from .selectors import PortalSelectors

__all__ = [
    "AuthenticationError",
    "FieldSpec",
    "LoginFormNotFoundError",
    "PlaneteOuiClient",
    "PortalCredentials",
    "PortalSelectors",
    "extract_account_id",
    "extract_raw_rows",
    "scrape_rows",
    "signin",
]
