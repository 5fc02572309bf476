"""Planète OUI customer-area connector: scrape bills, normalize them, file them locally."""

__version__ = "0.1.0"
