"""
Specification page parsing.

A phone page carries one table per category under ``#specs-list``:
the ``th`` names the category and each row pairs a ``td.ttl`` key with a
``td.nfo`` value. The raw form keeps that layout verbatim; the
organized form maps the well-known keys into named sections.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from lxml import etree
from lxml import html as lxml_html
from lxml.html import HtmlElement

from .models import WorkItem


SPEC_TABLE_SELECTOR = "#specs-list table"
PHONE_NAME_SELECTOR = "h1.specs-phone-name-title"


class SpecParseError(Exception):
    """Raised when a page has no recognizable specification table."""

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url


_XML_DECLARATION_RE = re.compile(r"^\s*<\?xml[^>]*\?>")


def parse_html(html: str, url: str | None = None) -> HtmlElement:
    """Parse page text with lxml.

    lxml refuses str input that carries an XML encoding declaration; the
    text is already decoded, so the declaration is dropped and parsing
    retried.

    Raises:
        SpecParseError: If lxml cannot build a document from the page
    """
    try:
        try:
            return lxml_html.fromstring(html)
        except ValueError:
            return lxml_html.fromstring(_XML_DECLARATION_RE.sub("", html, count=1))
    except (ValueError, etree.ParserError, etree.ParseError) as e:
        raise SpecParseError(f"Unparseable page: {e}", url=url) from e


# Section name -> (category title, {field: key or tuple of fallback keys})
SECTION_FIELDS: dict[str, tuple[str, dict[str, str | tuple[str, ...]]]] = {
    "network": ("network", {
        "technology": "technology",
        "bands_2g": "2g bands",
        "bands_3g": "3g bands",
        "bands_4g": "4g bands",
        "bands_5g": "5g bands",
        "speed": "speed",
    }),
    "launch": ("launch", {
        "announced": "announced",
        "status": "status",
    }),
    "body": ("body", {
        "dimensions": "dimensions",
        "weight": "weight",
        "build": "build",
        "sim": "sim",
    }),
    "display": ("display", {
        "type": "type",
        "size": "size",
        "resolution": "resolution",
        "protection": "protection",
    }),
    "platform": ("platform", {
        "os": "os",
        "chipset": "chipset",
        "cpu": "cpu",
        "gpu": "gpu",
    }),
    "memory": ("memory", {
        "card_slot": "card slot",
        "internal": "internal",
    }),
    "main_camera": ("main camera", {
        "modules": ("single", "dual", "triple", "quad", "penta"),
        "features": "features",
        "video": "video",
    }),
    "selfie_camera": ("selfie camera", {
        "modules": ("single", "dual"),
        "features": "features",
        "video": "video",
    }),
    "sound": ("sound", {
        "loudspeaker": "loudspeaker",
        "jack_3_5mm": "3.5mm jack",
    }),
    "comms": ("comms", {
        "wlan": "wlan",
        "bluetooth": "bluetooth",
        "positioning": "positioning",
        "nfc": "nfc",
        "radio": "radio",
        "usb": "usb",
    }),
    "features": ("features", {
        "sensors": "sensors",
    }),
    "battery": ("battery", {
        "type": "type",
        "charging": "charging",
    }),
    "misc": ("misc", {
        "colors": "colors",
        "models": "models",
        "sar": "sar",
        "sar_eu": "sar eu",
        "price": "price",
    }),
}


def _text(element: HtmlElement) -> str:
    """Element text with <br> turned into newlines and whitespace collapsed."""
    for br in element.iter("br"):
        br.tail = "\n" + (br.tail or "")
    lines = [" ".join(line.split()) for line in element.text_content().split("\n")]
    return "\n".join(line for line in lines if line)


def parse_spec_page(html: str, url: str | None = None) -> dict[str, Any]:
    """Parse a phone page into the raw categorized form.

    Returns:
        {"name": str, "specification": [{"category_title": str,
        "category_spec": [[key, value], ...]}, ...]}

    Raises:
        SpecParseError: If the page has no specification table
    """
    if not html or not html.strip():
        raise SpecParseError("Empty page", url=url)

    doc = parse_html(html, url=url)
    tables = doc.cssselect(SPEC_TABLE_SELECTOR)
    if not tables:
        raise SpecParseError("No specification table found", url=url)

    name_elements = doc.cssselect(PHONE_NAME_SELECTOR)
    name = _text(name_elements[0]) if name_elements else ""

    categories: list[dict[str, Any]] = []
    for table in tables:
        headers = table.cssselect("th")
        if not headers:
            continue
        category: dict[str, Any] = {"category_title": _text(headers[0]), "category_spec": []}
        specs = category["category_spec"]

        for row in table.cssselect("tr"):
            keys = row.cssselect("td.ttl")
            values = row.cssselect("td.nfo")
            if not values:
                continue
            key = _text(keys[0]) if keys else ""
            value = _text(values[0])

            # Continuation rows carry no key
            if not key and specs:
                specs[-1][1] = f"{specs[-1][1]}\n{value}" if value else specs[-1][1]
                continue
            specs.append([key, value])

        categories.append(category)

    if not categories:
        raise SpecParseError("Specification table has no categories", url=url)

    return {"name": name, "specification": categories}


def _lookup(values: dict[str, str], keys: str | tuple[str, ...]) -> str | None:
    if isinstance(keys, str):
        keys = (keys,)
    for key in keys:
        if key in values:
            return values[key]
    return None


def organize_specifications(raw: dict[str, Any]) -> dict[str, dict[str, str | None] | None]:
    """Map the raw form into named sections.

    Category titles and keys are matched case-insensitively. A section is
    None when its category is missing from the page.
    """
    by_category: dict[str, dict[str, str]] = {}
    for category in raw.get("specification") or []:
        title = str(category.get("category_title", "")).lower()
        values: dict[str, str] = {}
        for pair in category.get("category_spec") or []:
            if len(pair) == 2 and isinstance(pair[0], str) and isinstance(pair[1], str):
                values[pair[0].lower()] = pair[1]
        by_category[title] = values

    sections: dict[str, dict[str, str | None] | None] = {}
    for section, (title, fields) in SECTION_FIELDS.items():
        values = by_category.get(title)
        if values is None:
            sections[section] = None
            continue
        sections[section] = {name: _lookup(values, keys) for name, keys in fields.items()}
    return sections


def build_phone_document(
    item: WorkItem,
    raw: dict[str, Any],
    *,
    source: str = "gsmarena",
    scraped_at: datetime | None = None,
) -> dict[str, Any]:
    """Assemble the stored specification document for an item."""
    now = scraped_at or datetime.utcnow()
    return {
        "phone_id": item.id,
        "name": item.name or raw.get("name", ""),
        "brand": item.group,
        "url": item.source_url,
        "image_url": item.image_url,
        "source": source,
        **organize_specifications(raw),
        "specifications_raw": raw,
        "scraped_at": now.isoformat(),
    }


def parse_phone_document(
    item: WorkItem,
    html: str,
    *,
    source: str = "gsmarena",
) -> dict[str, Any]:
    """Parse a fetched page straight into a stored document.

    Raises:
        SpecParseError: If the page has no specification table
    """
    return build_phone_document(item, parse_spec_page(html, url=item.source_url), source=source)
