"""Catalog data structures: brands (groups) and phones (work items)."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Brand:
    """A catalog brand; the unit of grouping for a run."""

    name: str
    slug: str
    device_count: int = 0


@dataclass(frozen=True)
class WorkItem:
    """One phone to fetch, immutable once enumerated.

    Attributes:
        id: Stable catalog identifier (e.g. "apple_iphone_15-12559")
        group: Brand name the item was listed under
        source_url: Absolute URL of the specification page
        name: Display name
        image_url: Absolute thumbnail URL, when listed
    """

    id: str
    group: str
    source_url: str
    name: str
    image_url: str | None = None
