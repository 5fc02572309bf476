from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from bs4 import BeautifulSoup, Tag

from ..models import RawRow
from .selectors import PortalSelectors


@dataclass(frozen=True)
class FieldSpec:
    """
    Declarative description of one scraped field.

    `selector` is evaluated relative to the row element. When `attr` is set the attribute value is read,
    otherwise the element's stripped text. `parse` (pure) is applied to the extracted value, including None.
    """

    name: str
    selector: str
    attr: Optional[str] = None
    parse: Optional[Callable[[Optional[str]], Any]] = None


def _extract(row: Tag, field_spec: FieldSpec) -> Optional[str]:
    el = row.select_one(field_spec.selector)
    if el is None:
        return None
    if field_spec.attr:
        value = el.get(field_spec.attr)
        if isinstance(value, list):
            # multi-valued attributes (class, rel) come back as lists
            value = " ".join(value)
        return value
    return el.get_text(" ", strip=True)


def scrape_rows(soup: BeautifulSoup | Tag, fields: Sequence[FieldSpec], row_selector: str) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for row in soup.select(row_selector):
        item: dict[str, Any] = {}
        for field_spec in fields:
            value = _extract(row, field_spec)
            item[field_spec.name] = field_spec.parse(value) if field_spec.parse else value
        out.append(item)
    return out


def bill_row_fields(selectors: PortalSelectors) -> list[FieldSpec]:
    return [
        FieldSpec(name="date_text", selector=selectors.bill_date_cell, parse=lambda v: v or ""),
        FieldSpec(name="link", selector=selectors.bill_link, attr="href"),
        FieldSpec(name="amount_text", selector=selectors.bill_amount_cell, parse=lambda v: v or ""),
    ]


def extract_raw_rows(soup: BeautifulSoup | Tag, selectors: Optional[PortalSelectors] = None) -> list[RawRow]:
    sel = selectors or PortalSelectors()
    return [RawRow(**item) for item in scrape_rows(soup, bill_row_fields(sel), sel.bill_row)]
