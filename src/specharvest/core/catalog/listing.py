"""
Brand and phone-list enumeration.

Parses the catalog's brand index and paginated brand pages with lxml,
and walks them through a transport to produce ordered work items.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from specharvest.core.transports.base import TransportError

from .models import Brand, WorkItem
from .specs import SpecParseError, parse_html

if TYPE_CHECKING:
    from specharvest.core.config.models import CatalogConfig
    from specharvest.core.transports.base import Transport

logger = logging.getLogger(__name__)


BRAND_LINK_SELECTOR = "div.st-text table td a"
PHONE_LINK_SELECTOR = "div.makers ul li a"

# "Apple 123 devices" -> name, count
_BRAND_TEXT_RE = re.compile(r"^(?P<name>.+?)\s+(?P<count>\d+)\s+\S+$")


def _absolute(base_url: str, href: str) -> str:
    if href.startswith(("http://", "https://")):
        return href
    return f"{base_url.rstrip('/')}/{href.lstrip('/')}"


def _strip_php(href: str) -> str:
    href = href.rsplit("/", 1)[-1]
    return href[: -len(".php")] if href.endswith(".php") else href


def split_brand_text(text: str) -> tuple[str, int]:
    """Split anchor text into brand name and device count."""
    text = " ".join(text.split())
    match = _BRAND_TEXT_RE.match(text)
    if match is None:
        return text, 0
    return match.group("name"), int(match.group("count"))


def parse_brands(html: str, url: str | None = None) -> list[Brand]:
    """Parse the brand index page.

    Raises:
        SpecParseError: If the page is not parseable HTML
    """
    if not html.strip():
        return []
    doc = parse_html(html, url=url)

    brands: list[Brand] = []
    for link in doc.cssselect(BRAND_LINK_SELECTOR):
        href = link.get("href")
        if not href:
            continue
        name, count = split_brand_text(" ".join(link.itertext()))
        brands.append(Brand(name=name, slug=_strip_php(href), device_count=count))
    return brands


def parse_phone_list(
    html: str,
    brand: Brand,
    base_url: str,
    url: str | None = None,
) -> list[WorkItem]:
    """Parse one page of a brand's phone list."""
    if not html.strip():
        return []
    doc = parse_html(html, url=url)

    items: list[WorkItem] = []
    for link in doc.cssselect(PHONE_LINK_SELECTOR):
        href = link.get("href")
        if not href:
            continue

        image_url = None
        images = link.cssselect("img")
        if images and images[0].get("src"):
            image_url = _absolute(base_url, images[0].get("src"))

        items.append(
            WorkItem(
                id=_strip_php(href),
                group=brand.name,
                source_url=_absolute(base_url, href),
                name=" ".join(" ".join(link.itertext()).split()),
                image_url=image_url,
            )
        )
    return items


def brand_page_url(base_url: str, slug: str, page: int = 1) -> str:
    """URL of a brand listing page (1-based)."""
    if page < 1:
        raise ValueError("page must be >= 1")
    if page == 1:
        return _absolute(base_url, f"{slug}.php")
    return _absolute(base_url, f"{slug}-p{page}.php")


class CatalogLister:
    """Enumerates brands and their phones through a transport."""

    def __init__(self, transport: "Transport", config: "CatalogConfig"):
        self.transport = transport
        self.config = config

    @property
    def base_url(self) -> str:
        return self.config.base_url

    async def list_groups(self) -> list[Brand]:
        """Fetch and parse the brand index.

        Raises:
            TransportError: If the index page cannot be fetched
            SpecParseError: If the index page cannot be parsed
        """
        url = _absolute(self.base_url, self.config.brands_path)
        result = await self.transport.fetch_url(url)
        brands = parse_brands(result.html, url=url)
        logger.info("Found %d brands", len(brands))
        return brands

    async def list_items(self, brand: Brand, limit: int | None = None) -> list[WorkItem]:
        """Collect a brand's phones across listing pages.

        Stops when a page adds no new phone, a later page fails, or the
        limit is reached. A fetch or parse failure on the first page is
        raised.
        """
        items: list[WorkItem] = []
        seen: set[str] = set()

        for page in range(1, self.config.max_pages_per_group + 1):
            url = brand_page_url(self.base_url, brand.slug, page)
            try:
                result = await self.transport.fetch_url(url)
                page_items = parse_phone_list(result.html, brand, self.base_url, url=url)
            except (TransportError, SpecParseError) as e:
                if page == 1:
                    raise
                logger.warning("Stopping pagination of %s at page %d: %s", brand.name, page, e)
                break

            added = 0
            for item in page_items:
                if item.id in seen:
                    continue
                seen.add(item.id)
                items.append(item)
                added += 1
                if limit is not None and len(items) >= limit:
                    return items

            if added == 0:
                break

        logger.debug("Listed %d phones for %s", len(items), brand.name)
        return items
