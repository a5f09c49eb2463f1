from __future__ import annotations

from datetime import datetime

import httpx
import pytest

from specharvest.core.catalog import (
    Brand,
    CatalogLister,
    SpecParseError,
    WorkItem,
    brand_page_url,
    build_phone_document,
    organize_specifications,
    parse_brands,
    parse_phone_list,
    parse_spec_page,
    split_brand_text,
)
from specharvest.core.config.models import CatalogConfig, TransportMode
from specharvest.core.fetch.throttling import RequestThrottle
from specharvest.core.transports import DirectTransport
from specharvest.core.transports.base import FetchResult, NetworkError, Transport

from conftest import make_item

BASE = "https://catalog.test"

BRANDS_HTML = """
<html><body><div class="st-text"><table>
<tr>
  <td><a href="acme-phones-1.php">Acme<br><span>12 devices</span></a></td>
  <td><a href="zeta-phones-2.php">Zeta Mobile<br><span>3 devices</span></a></td>
  <td><a>no href</a></td>
</tr>
</table></div></body></html>
"""


def _phone_page(*ids: str) -> str:
    links = "".join(
        f'<li><a href="{pid}.php"><img src="https://img.test/{pid}.jpg"><strong><span>Acme {pid}</span></strong></a></li>'
        for pid in ids
    )
    return f'<html><body><div class="makers"><ul>{links}</ul></div></body></html>'


class PageTransport(Transport):
    """Serves canned pages by URL; unknown URLs raise NetworkError."""

    def __init__(self, pages: dict[str, str]):
        self.pages = pages
        self.calls: list[str] = []

    @property
    def mode(self) -> TransportMode:
        return TransportMode.DIRECT

    async def fetch_url(self, url: str) -> FetchResult:
        self.calls.append(url)
        if url not in self.pages:
            raise NetworkError("not found", url=url, status_code=404)
        return FetchResult(url=url, status_code=200, html=self.pages[url], transport=self.mode)


# =============================================================================
# Listing
# =============================================================================


def test_split_brand_text():
    assert split_brand_text("Acme  12 devices") == ("Acme", 12)
    assert split_brand_text("Zeta Mobile 3 devices") == ("Zeta Mobile", 3)
    assert split_brand_text("Nameless") == ("Nameless", 0)


def test_parse_brands():
    brands = parse_brands(BRANDS_HTML)

    assert brands == [
        Brand(name="Acme", slug="acme-phones-1", device_count=12),
        Brand(name="Zeta Mobile", slug="zeta-phones-2", device_count=3),
    ]


def test_parse_brands_empty_page():
    assert parse_brands("   ") == []


def test_parse_brands_accepts_xml_declaration():
    brands = parse_brands('<?xml version="1.0" encoding="UTF-8"?>' + BRANDS_HTML)
    assert [brand.slug for brand in brands] == ["acme-phones-1", "zeta-phones-2"]


def test_parse_phone_list_rejects_content_free_page():
    with pytest.raises(SpecParseError):
        parse_phone_list('<?xml version="1.0" encoding="UTF-8"?>', Brand(name="Acme", slug="acme"), BASE)


def test_parse_phone_list():
    brand = Brand(name="Acme", slug="acme-phones-1")
    items = parse_phone_list(_phone_page("acme_x1-100", "acme_x2-101"), brand, BASE)

    assert items[0] == WorkItem(
        id="acme_x1-100",
        group="Acme",
        source_url="https://catalog.test/acme_x1-100.php",
        name="Acme acme_x1-100",
        image_url="https://img.test/acme_x1-100.jpg",
    )
    assert [item.id for item in items] == ["acme_x1-100", "acme_x2-101"]


def test_brand_page_url():
    assert brand_page_url(BASE, "acme-phones-1") == "https://catalog.test/acme-phones-1.php"
    assert brand_page_url(BASE + "/", "acme-phones-1", 3) == "https://catalog.test/acme-phones-1-p3.php"
    with pytest.raises(ValueError):
        brand_page_url(BASE, "acme-phones-1", 0)


@pytest.mark.asyncio
async def test_list_groups_fetches_index():
    transport = PageTransport({f"{BASE}/makers.php3": BRANDS_HTML})
    lister = CatalogLister(transport, CatalogConfig(base_url=BASE, brands_path="makers.php3"))

    brands = await lister.list_groups()

    assert [brand.name for brand in brands] == ["Acme", "Zeta Mobile"]


@pytest.mark.asyncio
async def test_list_items_paginates_until_no_new_items():
    brand = Brand(name="Acme", slug="acme-phones-1")
    transport = PageTransport({
        brand_page_url(BASE, brand.slug, 1): _phone_page("p1", "p2"),
        brand_page_url(BASE, brand.slug, 2): _phone_page("p2", "p3"),
        brand_page_url(BASE, brand.slug, 3): _phone_page("p1", "p3"),
    })
    lister = CatalogLister(transport, CatalogConfig(base_url=BASE))

    items = await lister.list_items(brand)

    assert [item.id for item in items] == ["p1", "p2", "p3"]
    assert len(transport.calls) == 3


@pytest.mark.asyncio
async def test_list_items_stops_at_limit():
    brand = Brand(name="Acme", slug="acme-phones-1")
    transport = PageTransport({
        brand_page_url(BASE, brand.slug, 1): _phone_page("p1", "p2", "p3"),
    })
    lister = CatalogLister(transport, CatalogConfig(base_url=BASE))

    items = await lister.list_items(brand, limit=2)

    assert [item.id for item in items] == ["p1", "p2"]
    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_list_items_later_page_failure_keeps_collected_items():
    brand = Brand(name="Acme", slug="acme-phones-1")
    transport = PageTransport({brand_page_url(BASE, brand.slug, 1): _phone_page("p1")})
    lister = CatalogLister(transport, CatalogConfig(base_url=BASE))

    items = await lister.list_items(brand)

    assert [item.id for item in items] == ["p1"]


@pytest.mark.asyncio
async def test_list_items_first_page_failure_raises():
    lister = CatalogLister(PageTransport({}), CatalogConfig(base_url=BASE))
    with pytest.raises(NetworkError):
        await lister.list_items(Brand(name="Acme", slug="acme-phones-1"))


@pytest.mark.asyncio
async def test_list_items_unparseable_first_page_raises_parse_error():
    brand = Brand(name="Acme", slug="acme-phones-1")
    transport = PageTransport({brand_page_url(BASE, brand.slug, 1): '<?xml version="1.0" encoding="UTF-8"?>'})
    lister = CatalogLister(transport, CatalogConfig(base_url=BASE))

    with pytest.raises(SpecParseError):
        await lister.list_items(brand)


@pytest.mark.asyncio
async def test_list_items_unparseable_later_page_ends_pagination():
    brand = Brand(name="Acme", slug="acme-phones-1")
    transport = PageTransport({
        brand_page_url(BASE, brand.slug, 1): _phone_page("p1", "p2"),
        brand_page_url(BASE, brand.slug, 2): '<?xml version="1.0" encoding="UTF-8"?>',
    })
    lister = CatalogLister(transport, CatalogConfig(base_url=BASE))

    items = await lister.list_items(brand)

    assert [item.id for item in items] == ["p1", "p2"]


@pytest.mark.asyncio
async def test_list_groups_redirect_loop_is_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(302, headers={"Location": str(request.url)})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
    lister = CatalogLister(
        DirectTransport(RequestThrottle(0), max_attempts=1, client=client),
        CatalogConfig(base_url=BASE),
    )

    with pytest.raises(NetworkError):
        await lister.list_groups()


# =============================================================================
# Specification pages
# =============================================================================


def test_parse_spec_page_categories_and_continuation_rows(spec_html):
    raw = parse_spec_page(spec_html)

    assert raw["name"] == "Acme Phone 1"
    titles = [category["category_title"] for category in raw["specification"]]
    assert titles == ["Network", "Main Camera", "Battery"]

    camera = raw["specification"][1]["category_spec"]
    assert camera == [
        ["Triple", "50 MP, wide\n12 MP, ultrawide"],
        ["Video", "4K@30fps"],
    ]


def test_parse_spec_page_line_breaks_become_newlines():
    html = (
        '<div id="specs-list"><table><tr><th>Misc</th><td class="ttl">Colors</td>'
        '<td class="nfo">Black<br>White</td></tr></table></div>'
    )
    raw = parse_spec_page(html)
    assert raw["specification"][0]["category_spec"] == [["Colors", "Black\nWhite"]]


@pytest.mark.parametrize(
    "html",
    [
        "",
        "   ",
        "<html><body><p>blocked</p></body></html>",
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<?xml version="1.0" encoding="UTF-8"?><html><body><p>moved</p></body></html>',
    ],
)
def test_parse_spec_page_rejects_pages_without_table(html):
    with pytest.raises(SpecParseError):
        parse_spec_page(html, url="https://catalog.test/x.php")


def test_organize_specifications_maps_sections(spec_html):
    sections = organize_specifications(parse_spec_page(spec_html))

    assert sections["network"]["technology"] == "GSM / LTE"
    assert sections["main_camera"]["modules"] == "50 MP, wide\n12 MP, ultrawide"
    assert sections["main_camera"]["video"] == "4K@30fps"
    assert sections["battery"]["type"] == "Li-Ion 5000 mAh"
    assert sections["battery"]["charging"] is None
    assert sections["display"] is None


def test_build_phone_document():
    item = WorkItem(
        id="acme_phone_1-1001",
        group="Acme",
        source_url="https://catalog.test/acme_phone_1-1001.php",
        name="Acme Phone 1",
        image_url="https://img.test/1.jpg",
    )
    raw = {"name": "Ignored", "specification": []}
    scraped = datetime(2024, 1, 2, 3, 4, 5)

    document = build_phone_document(item, raw, source="gsmarena", scraped_at=scraped)

    assert document["phone_id"] == item.id
    assert document["name"] == "Acme Phone 1"
    assert document["brand"] == "Acme"
    assert document["image_url"] == "https://img.test/1.jpg"
    assert document["specifications_raw"] is raw
    assert document["scraped_at"] == "2024-01-02T03:04:05"
    assert document["network"] is None


def test_build_phone_document_falls_back_to_page_name():
    item = make_item(0)
    item = WorkItem(id=item.id, group=item.group, source_url=item.source_url, name="")

    document = build_phone_document(item, {"name": "From Page", "specification": []})
    assert document["name"] == "From Page"
