"""Extract candidate offer links from marketplace search result pages."""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional
from urllib.parse import urljoin, urlsplit

from selectolax.parser import HTMLParser

from offer_scout.ingest.base import SearchHit
from offer_scout.ingest.json_extractor import extract_next_data
from offer_scout.normalize.processor import extract_external_id_from_url

logger = logging.getLogger(__name__)

OFFER_PATH_PATTERN = re.compile(r"/(item|offer|product)/", re.IGNORECASE)
STATE_OFFER_PATH_PATTERN = re.compile(r"/(item|offer)/", re.IGNORECASE)
ABSOLUTE_URL_PATTERN = re.compile(r"https?://[^\"' \\]+")

EXCLUDED_SCHEMES = ("mailto:", "tel:", "javascript:")
EXCLUDED_PATH_MARKERS = ("/account", "/login", "/sell")


@dataclass
class SearchExtract:
    """Offers found on one search page plus the raw embedded state."""

    offers: List[SearchHit] = field(default_factory=list)
    raw: Any = None


def _site_domain(url: str) -> str:
    host = (urlsplit(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def is_same_site(url: str, base_url: str) -> bool:
    """Whether url is on the marketplace's domain (subdomains included)."""
    domain = _site_domain(base_url)
    host = (urlsplit(url).hostname or "").lower()
    return bool(domain) and (host == domain or host.endswith("." + domain))


def is_offer_url(url: str) -> bool:
    """Path looks like an item, offer or product page."""
    return bool(OFFER_PATH_PATTERN.search(urlsplit(url).path))


def _make_hit(url: str, raw: Any = None) -> SearchHit:
    return SearchHit(url=url, native_external_id=extract_external_id_from_url(url), raw=raw)


def collect_anchor_offers(tree: HTMLParser, base_url: str) -> List[SearchHit]:
    """Offer links from <a href> elements, resolved and deduplicated."""
    links: List[str] = []
    for anchor in tree.css("a[href]"):
        href = (anchor.attributes.get("href") or "").strip()
        if not href or href.startswith(EXCLUDED_SCHEMES):
            continue
        try:
            absolute = urljoin(base_url, href)
        except ValueError:
            continue
        if not is_same_site(absolute, base_url):
            continue
        path = urlsplit(absolute).path
        if any(marker in path for marker in EXCLUDED_PATH_MARKERS):
            continue
        if is_offer_url(absolute):
            links.append(absolute)

    return [_make_hit(url) for url in dict.fromkeys(links)]


def collect_state_offers(next_data: Any, base_url: str) -> List[SearchHit]:
    """
    Absolute offer URLs mentioned anywhere in the embedded app state.

    A regex scan over the serialized state; best effort only.
    """
    serialized = json.dumps(next_data)
    hits = []
    for url in ABSOLUTE_URL_PATTERN.findall(serialized):
        if not is_same_site(url, base_url):
            continue
        if not STATE_OFFER_PATH_PATTERN.search(url):
            continue
        hits.append(_make_hit(url, raw=next_data))
    return hits


def extract_search_results(html: str, base_url: str) -> SearchExtract:
    """
    Extract candidate offers from a search results page.

    Anchors are the primary source; URLs found in the embedded state are
    appended after them. Results are deduplicated by URL.
    """
    tree = HTMLParser(html)
    offers = collect_anchor_offers(tree, base_url)

    next_data = extract_next_data(tree)
    if isinstance(next_data, (dict, list)):
        offers.extend(collect_state_offers(next_data, base_url))

    deduped: dict[str, SearchHit] = {}
    for offer in offers:
        deduped.setdefault(offer.url, offer)

    return SearchExtract(offers=list(deduped.values()), raw=next_data)


def hits_from_search_api(payload: Any, base_url: str, max_items: Optional[int] = None) -> List[SearchHit]:
    """
    Offers from an intercepted search API response ({"results": [{"hits": [...]}]}).

    Each hit's objectID (or itemIO) becomes a canonical /item/<id> URL.
    """
    hits: List[SearchHit] = []
    if not isinstance(payload, dict):
        return hits
    results = payload.get("results")
    if not isinstance(results, list):
        return hits

    for result in results:
        raw_hits = result.get("hits") if isinstance(result, dict) else None
        if not isinstance(raw_hits, list):
            continue
        for raw_hit in raw_hits:
            if not isinstance(raw_hit, dict):
                continue
            item_id = raw_hit.get("objectID") or raw_hit.get("itemIO")
            if not item_id:
                continue
            hits.append(SearchHit(
                url=build_item_url(base_url, str(item_id)),
                native_external_id=str(item_id),
                raw=raw_hit,
            ))
            if max_items and len(hits) >= max_items:
                return hits
    return hits


def build_item_url(base_url: str, item_id: str) -> str:
    """Canonical item page URL for a marketplace id."""
    return urljoin(base_url, f"/item/{item_id}")
