"""Generic <img> scan used when structured data lists no images."""

import logging
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urljoin

from selectolax.parser import HTMLParser

logger = logging.getLogger(__name__)

SRCSET_ATTRS = ("srcset", "data-srcset")
SRC_ATTRS = ("src", "data-src", "data-lazy-src", "data-original")


@dataclass
class ImageCandidate:
    """One srcset entry."""

    url: str
    width: Optional[int] = None


def parse_srcset(srcset: str) -> List[ImageCandidate]:
    """Split a srcset attribute into (url, width) candidates."""
    candidates = []
    for part in srcset.split(","):
        tokens = part.strip().split()
        if not tokens:
            continue
        width = None
        if len(tokens) > 1 and tokens[1].endswith("w"):
            try:
                width = int(tokens[1][:-1])
            except ValueError:
                width = None
        candidates.append(ImageCandidate(url=tokens[0], width=width))
    return candidates


def pick_largest_url(candidates: List[ImageCandidate]) -> Optional[str]:
    """URL of the widest candidate; entries without a width rank last."""
    if not candidates:
        return None
    best = max(candidates, key=lambda c: c.width or 0)
    return best.url


def _first_attr(attrs: dict, names: tuple) -> Optional[str]:
    for name in names:
        value = attrs.get(name)
        if value:
            return value
    return None


def extract_images_from_html(html: str | HTMLParser, base_url: Optional[str] = None) -> List[str]:
    """
    Collect image URLs from every <img> on the page.

    For each element the largest srcset candidate comes first, then the plain
    src (or its lazy-loading variants). Duplicates are dropped keeping the
    first occurrence.
    """
    tree = html if isinstance(html, HTMLParser) else HTMLParser(html)
    urls: List[str] = []

    for img in tree.css("img"):
        attrs = img.attributes
        srcset = _first_attr(attrs, SRCSET_ATTRS)
        src = _first_attr(attrs, SRC_ATTRS)

        if srcset:
            best = pick_largest_url(parse_srcset(srcset))
            if best:
                urls.append(best)
        if src:
            urls.append(src)

    if base_url:
        urls = [urljoin(base_url, url) for url in urls]

    return list(dict.fromkeys(url for url in urls if not url.startswith("data:")))
