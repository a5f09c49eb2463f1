"""Catalog parsing - brands, phone lists and specification pages."""

from .listing import (
    CatalogLister,
    brand_page_url,
    parse_brands,
    parse_phone_list,
    split_brand_text,
)
from .models import Brand, WorkItem
from .specs import (
    SpecParseError,
    build_phone_document,
    organize_specifications,
    parse_phone_document,
    parse_spec_page,
)

__all__ = [
    "Brand",
    "WorkItem",
    "CatalogLister",
    "brand_page_url",
    "parse_brands",
    "parse_phone_list",
    "split_brand_text",
    "SpecParseError",
    "build_phone_document",
    "organize_specifications",
    "parse_phone_document",
    "parse_spec_page",
]
