"""Offer detail extraction: JSON-LD, embedded app state, then page meta tags.

Each source is mapped onto the same field names independently. Fields are
then resolved in a fixed priority order (JSON-LD > embedded state > meta
tags); a lower-priority source only fills fields the higher ones left empty.
Nothing here raises on malformed input: missing or broken data simply leaves
fields as None.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from selectolax.parser import HTMLParser

from offer_scout.ingest.base import OfferDetails
from offer_scout.ingest.json_extractor import (
    deep_find_offer,
    extract_json_ld,
    extract_next_data,
    find_json_ld_products,
)

logger = logging.getLogger(__name__)

SCALAR_FIELDS = (
    "external_id",
    "title",
    "description",
    "price_amount",
    "price_currency",
    "brand",
    "category",
    "subcategory",
    "condition",
    "size",
    "color",
    "material",
    "availability",
    "created_at_source",
)

# Embedded-state keys per field, first present key wins
STATE_FIELD_KEYS: Dict[str, tuple] = {
    "external_id": ("id", "externalId"),
    "title": ("title", "name"),
    "description": ("description",),
    "price_amount": ("price", "priceAmount"),
    "price_currency": ("currency", "priceCurrency"),
    "brand": ("brand",),
    "category": ("category",),
    "subcategory": ("subcategory",),
    "condition": ("condition",),
    "size": ("size",),
    "color": ("color",),
    "material": ("material",),
    "availability": ("availability",),
    "created_at_source": ("createdAt", "created_at", "publishedAt"),
}

STATE_IMAGE_KEYS = ("images", "image", "imageUrls")


def coerce_string(value: Any) -> Optional[str]:
    """Strings and numbers as text; anything else (or blank) as None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, dict):
        # {"name": ...} wrappers for brand/category, {"amount": ...} for prices
        for key in ("name", "value", "amount", "label"):
            if key in value:
                return coerce_string(value[key])
    return None


def coerce_image_urls(value: Any) -> List[str]:
    """Image references as a flat list of URL strings."""
    if value is None:
        return []
    items = value if isinstance(value, list) else [value]
    urls = []
    for item in items:
        if isinstance(item, str) and item.strip():
            urls.append(item.strip())
        elif isinstance(item, dict):
            for key in ("url", "contentUrl", "src", "uri"):
                url = item.get(key)
                if isinstance(url, str) and url.strip():
                    urls.append(url.strip())
                    break
    return list(dict.fromkeys(urls))


def coerce_datetime(value: Any) -> Optional[datetime]:
    """ISO-8601 strings or epoch timestamps (seconds or milliseconds)."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 10**11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    return None


def map_json_ld_product(product: Dict[str, Any]) -> Dict[str, Any]:
    """Map a schema.org Product onto offer fields."""
    offers = product.get("offers")
    if isinstance(offers, list):
        offers = next((o for o in offers if isinstance(o, dict)), None)
    if not isinstance(offers, dict):
        offers = {}

    return {
        "external_id": coerce_string(product.get("sku")) or coerce_string(product.get("productID")),
        "title": coerce_string(product.get("name")),
        "description": coerce_string(product.get("description")),
        "brand": coerce_string(product.get("brand")),
        "category": coerce_string(product.get("category")),
        "color": coerce_string(product.get("color")),
        "material": coerce_string(product.get("material")),
        "size": coerce_string(product.get("size")),
        "condition": coerce_string(product.get("itemCondition") or offers.get("itemCondition")),
        "price_amount": coerce_string(offers.get("price")),
        "price_currency": coerce_string(offers.get("priceCurrency")),
        "availability": coerce_string(offers.get("availability")),
        "image_urls": coerce_image_urls(product.get("image")),
    }


def map_state_offer(offer: Dict[str, Any]) -> Dict[str, Any]:
    """Map the embedded-state offer object onto offer fields."""
    mapped: Dict[str, Any] = {}
    for field_name, keys in STATE_FIELD_KEYS.items():
        value = next((offer[key] for key in keys if offer.get(key) is not None), None)
        if field_name == "created_at_source":
            mapped[field_name] = coerce_datetime(value)
        else:
            mapped[field_name] = coerce_string(value)

    images = next((offer[key] for key in STATE_IMAGE_KEYS if offer.get(key)), None)
    mapped["image_urls"] = coerce_image_urls(images)
    return mapped


def map_meta_tags(tree: HTMLParser) -> Dict[str, Any]:
    """
    OpenGraph meta tags as a last-resort source of text fields.

    og:image is a single share thumbnail, not the gallery, so it never
    supplies image_urls.
    """

    def meta(prop: str) -> Optional[str]:
        node = tree.css_first(f'meta[property="{prop}"]') or tree.css_first(f'meta[name="{prop}"]')
        return coerce_string(node.attributes.get("content")) if node else None

    return {
        "title": meta("og:title"),
        "description": meta("og:description") or meta("description"),
    }


def resolve_field(field_name: str, sources: List[Dict[str, Any]]) -> Any:
    """First non-empty value for a field across sources in priority order."""
    for source in sources:
        value = source.get(field_name)
        if value:
            return value
    return None


def extract_offer_details(html: str) -> OfferDetails:
    """
    Extract an offer detail record from a product page.

    The raw JSON-LD blocks and the raw embedded state are always kept in
    raw_metadata, whether or not any field could be mapped from them.
    """
    tree = HTMLParser(html)
    raw_metadata: Dict[str, Any] = {}
    sources: List[Dict[str, Any]] = []

    json_ld = extract_json_ld(tree)
    if json_ld:
        raw_metadata["json_ld"] = json_ld
        products = find_json_ld_products(json_ld)
        if products:
            sources.append(map_json_ld_product(products[0]))

    next_data = extract_next_data(tree)
    if next_data is not None:
        raw_metadata["next_data"] = next_data
        state_offer = deep_find_offer(next_data)
        if state_offer is not None:
            sources.append(map_state_offer(state_offer))

    sources.append(map_meta_tags(tree))

    details = OfferDetails(raw_metadata=raw_metadata)
    for field_name in SCALAR_FIELDS:
        setattr(details, field_name, resolve_field(field_name, sources))
    details.image_urls = resolve_field("image_urls", sources) or []

    logger.debug(
        f"Extracted offer details: title={details.title!r}, "
        f"images={len(details.image_urls)}, sources={len(sources)}"
    )
    return details
