from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PortalSelectors:
    """
    The Planète OUI customer area is a server-rendered portal; selectors may change over time.
    Keep all CSS selectors here for easy maintenance.
    """

    # Login
    login_form: str = "#connexion form"
    # Only rendered for signed-in users.
    logout_link: str = "a[href='/Espace-Client/Deconnexion']"
    login_error: str = ".error"

    # Landing page: one link per site (sub-account), e.g. "Accueil?site=9f8e7d&..."
    account_link: str = 'a[href*="site="]'

    # Billing history
    bill_row: str = ".tableFacturation tbody tr"
    bill_date_cell: str = "td:nth-child(1)"
    bill_link: str = "a"
    bill_amount_cell: str = "td:nth-child(3)"
