"""Records passed between the crawlers, extractors and storage."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional


@dataclass
class SearchHit:
    """Candidate offer URL discovered on a search page or search API response."""

    url: str
    native_external_id: Optional[str] = None
    raw: Any = None


@dataclass
class OfferDetails:
    """Fields recovered from one offer page; anything not found stays None."""

    external_id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    price_amount: Optional[str] = None
    price_currency: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    condition: Optional[str] = None
    size: Optional[str] = None
    color: Optional[str] = None
    material: Optional[str] = None
    availability: Optional[str] = None
    created_at_source: Optional[datetime] = None
    image_urls: list[str] = field(default_factory=list)
    raw_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ImageRecord:
    """One image of an offer at a fixed position."""

    position: int
    image_url: str
    image_url_full: Optional[str] = None
    image_url_thumb: Optional[str] = None
    image_data: Optional[str] = None  # base64 payload, no data: prefix
    image_mime: Optional[str] = None


@dataclass
class OfferRecord:
    """Normalized offer ready for persistence."""

    source: str
    external_id: str
    search_term: str
    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    price_amount: Optional[Decimal] = None
    price_currency: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    condition: Optional[str] = None
    size: Optional[str] = None
    color: Optional[str] = None
    material: Optional[str] = None
    availability: Optional[str] = None
    created_at_source: Optional[datetime] = None
    raw_metadata: dict[str, Any] = field(default_factory=dict)
    search_id: Any = None  # set by the caller before upsert
