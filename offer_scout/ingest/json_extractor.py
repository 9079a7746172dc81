"""Extract structured data embedded in marketplace HTML pages."""

import json
import logging
from typing import Any, Dict, List, Optional

from selectolax.parser import HTMLParser

logger = logging.getLogger(__name__)

TITLE_KEYS = ("title", "name")
PRICE_KEYS = ("price", "priceAmount")
IMAGE_KEYS = ("images", "image", "imageUrls")


def _parse_tree(html: str | HTMLParser) -> HTMLParser:
    return html if isinstance(html, HTMLParser) else HTMLParser(html)


def extract_next_data(html: str | HTMLParser) -> Optional[Any]:
    """
    Extract __NEXT_DATA__ script tag content.

    Returns None when the tag is missing, empty or not valid JSON.
    """
    tree = _parse_tree(html)
    node = tree.css_first("script#__NEXT_DATA__")
    if node is None:
        return None
    text = node.text(deep=True).strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        logger.debug(f"Failed to parse __NEXT_DATA__: {e}")
        return None


def extract_json_ld(html: str | HTMLParser) -> List[Any]:
    """
    Extract JSON-LD structured data from script tags.

    Returns the parsed payload of every well-formed block, in page order.
    """
    results = []
    tree = _parse_tree(html)
    for script in tree.css('script[type="application/ld+json"]'):
        text = script.text(deep=True).strip()
        if not text:
            continue
        try:
            results.append(json.loads(text))
        except json.JSONDecodeError:
            logger.debug("Skipping malformed JSON-LD block")
            continue
    return results


def _is_product(entry: Dict[str, Any]) -> bool:
    entry_type = entry.get("@type")
    if isinstance(entry_type, list):
        return "Product" in entry_type
    return entry_type == "Product"


def iter_json_ld_entries(blocks: List[Any]) -> List[Dict[str, Any]]:
    """Flatten JSON-LD blocks (objects, arrays, @graph containers) into objects."""
    entries: List[Dict[str, Any]] = []
    stack = list(reversed(blocks))
    while stack:
        block = stack.pop()
        if isinstance(block, list):
            stack.extend(reversed(block))
        elif isinstance(block, dict):
            graph = block.get("@graph")
            if isinstance(graph, list):
                stack.extend(reversed(graph))
            entries.append(block)
    return entries


def find_json_ld_products(blocks: List[Any]) -> List[Dict[str, Any]]:
    """JSON-LD entries typed Product (or with Product in their type list)."""
    return [entry for entry in iter_json_ld_entries(blocks) if _is_product(entry)]


def looks_like_offer(obj: Dict[str, Any]) -> bool:
    """Has a title-like key plus a price-like or image-like key."""
    has_title = any(key in obj for key in TITLE_KEYS)
    has_price = any(key in obj for key in PRICE_KEYS)
    has_images = any(key in obj for key in IMAGE_KEYS)
    return has_title and (has_price or has_images)


def deep_find_offer(data: Any) -> Optional[Dict[str, Any]]:
    """
    Depth-first search of embedded app state for the object describing the offer.

    Objects are visited in document order; the first one that passes
    looks_like_offer() is returned.
    """
    stack = [data]
    while stack:
        current = stack.pop()
        if isinstance(current, list):
            stack.extend(reversed(current))
            continue
        if not isinstance(current, dict):
            continue
        if looks_like_offer(current):
            return current
        children = [value for value in current.values() if isinstance(value, (dict, list))]
        stack.extend(reversed(children))
    return None
