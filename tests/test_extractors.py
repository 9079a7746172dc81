"""Tests for the HTML/JSON extractors."""

import json

from offer_scout.ingest.image_extractor import (
    ImageCandidate,
    extract_images_from_html,
    parse_srcset,
    pick_largest_url,
)
from offer_scout.ingest.json_extractor import deep_find_offer, find_json_ld_products
from offer_scout.ingest.offer_extractor import extract_offer_details
from offer_scout.ingest.search_extractor import (
    build_item_url,
    extract_search_results,
    hits_from_search_api,
)

BASE_URL = "https://www.sellpy.de"


def page(*parts: str) -> str:
    return "<html><head>" + "".join(parts) + "</head><body></body></html>"


def json_ld(data) -> str:
    return f'<script type="application/ld+json">{json.dumps(data)}</script>'


def next_data(data) -> str:
    return f'<script id="__NEXT_DATA__" type="application/json">{json.dumps(data)}</script>'


class TestImages:
    def test_largest_srcset_candidate_wins(self):
        candidates = [
            ImageCandidate("u1", 400),
            ImageCandidate("u2", 800),
            ImageCandidate("u3", 200),
        ]
        assert pick_largest_url(candidates) == "u2"

    def test_parse_srcset(self):
        candidates = parse_srcset("a.jpg 400w, b.jpg 800w, c.jpg")
        assert [(c.url, c.width) for c in candidates] == [("a.jpg", 400), ("b.jpg", 800), ("c.jpg", None)]

    def test_srcset_before_src_and_dedupe(self):
        html = """
        <img src="/small.jpg" srcset="/small.jpg 300w, /large.jpg 1200w">
        <img data-src="/lazy.jpg">
        <img src="/small.jpg">
        <img src="data:image/gif;base64,R0lGOD">
        """
        urls = extract_images_from_html(html, base_url=BASE_URL)
        assert urls == [
            f"{BASE_URL}/large.jpg",
            f"{BASE_URL}/small.jpg",
            f"{BASE_URL}/lazy.jpg",
        ]


class TestJsonLd:
    def test_product_inside_graph(self):
        blocks = [{"@graph": [{"@type": "BreadcrumbList"}, {"@type": ["Product", "Thing"], "name": "Coat"}]}]
        products = find_json_ld_products(blocks)
        assert [p["name"] for p in products] == ["Coat"]

    def test_deep_find_offer_first_match_in_document_order(self):
        data = {
            "props": {
                "pageProps": {
                    "nav": {"title": "Menu"},
                    "item": {"title": "Wool coat", "price": 59, "images": ["a.jpg"]},
                    "related": [{"title": "Other", "price": 10}],
                }
            }
        }
        assert deep_find_offer(data)["title"] == "Wool coat"

    def test_deep_find_offer_none(self):
        assert deep_find_offer({"a": [1, 2, {"name": "no price"}]}) is None


class TestOfferDetails:
    def test_json_ld_fields(self):
        html = page(json_ld({
            "@context": "https://schema.org",
            "@type": "Product",
            "name": "Levi's 501 jeans",
            "description": "Straight fit, mid wash",
            "sku": "7654321",
            "brand": {"@type": "Brand", "name": "Levi's"},
            "category": "Jeans",
            "image": ["https://images.sellpy.de/1.jpg", {"url": "https://images.sellpy.de/2.jpg"}],
            "offers": [{"price": "35.00", "priceCurrency": "EUR", "availability": "InStock"}],
        }))

        details = extract_offer_details(html)

        assert details.title == "Levi's 501 jeans"
        assert details.external_id == "7654321"
        assert details.brand == "Levi's"
        assert details.category == "Jeans"
        assert details.price_amount == "35.00"
        assert details.price_currency == "EUR"
        assert details.availability == "InStock"
        assert details.image_urls == ["https://images.sellpy.de/1.jpg", "https://images.sellpy.de/2.jpg"]

    def test_json_ld_takes_precedence_over_embedded_state(self):
        html = page(
            json_ld({"@type": "Product", "name": "From JSON-LD"}),
            next_data({"props": {"item": {
                "title": "From state",
                "price": "€ 49,99",
                "size": "M",
                "images": ["https://images.sellpy.de/state.jpg"],
            }}}),
        )

        details = extract_offer_details(html)

        assert details.title == "From JSON-LD"
        assert details.size == "M"
        assert details.price_amount == "€ 49,99"
        assert details.image_urls == ["https://images.sellpy.de/state.jpg"]

    def test_meta_tags_fill_remaining_gaps(self):
        html = page(
            '<meta property="og:title" content="Cashmere sweater">',
            '<meta property="og:image" content="https://images.sellpy.de/og.jpg">',
        )
        details = extract_offer_details(html)
        assert details.title == "Cashmere sweater"
        assert details.image_urls == []

    def test_raw_payloads_kept_even_without_fields(self):
        state = {"props": {"pageProps": {"unrelated": True}}}
        html = page(json_ld({"@type": "Organization", "name": "Sellpy"}), next_data(state))

        details = extract_offer_details(html)

        assert details.title is None
        assert details.raw_metadata["json_ld"] == [{"@type": "Organization", "name": "Sellpy"}]
        assert details.raw_metadata["next_data"] == state

    def test_malformed_json_degrades_to_empty(self):
        html = page(
            '<script type="application/ld+json">{not json</script>',
            '<script id="__NEXT_DATA__">{"broken": </script>',
        )
        details = extract_offer_details(html)
        assert details.title is None
        assert details.image_urls == []
        assert details.raw_metadata == {}


class TestSearchResults:
    def test_anchor_filtering(self):
        html = """
        <a href="/item/1000001">one</a>
        <a href="https://www.sellpy.de/item/1000002?ref=search">two</a>
        <a href="/item/1000001">dupe</a>
        <a href="/product/abc">product</a>
        <a href="https://other-shop.com/item/1000003">off domain</a>
        <a href="mailto:help@sellpy.de">mail</a>
        <a href="/account/orders/item/1">account</a>
        <a href="/sell/item/1">sell</a>
        <a href="/about">about</a>
        """
        extracted = extract_search_results(html, BASE_URL)
        urls = [offer.url for offer in extracted.offers]

        assert urls == [
            f"{BASE_URL}/item/1000001",
            f"{BASE_URL}/item/1000002?ref=search",
            f"{BASE_URL}/product/abc",
        ]
        assert extracted.offers[0].native_external_id == "1000001"
        assert extracted.offers[2].native_external_id is None

    def test_embedded_state_urls_are_secondary(self):
        html = (
            '<a href="/item/2000001">a</a>'
            + next_data({"hits": [
                {"url": "https://www.sellpy.de/item/2000001"},
                {"url": "https://www.sellpy.de/item/2000002"},
                {"url": "https://cdn.example.com/item/2000003"},
            ]})
        )
        extracted = extract_search_results(html, BASE_URL)
        assert [offer.url for offer in extracted.offers] == [
            f"{BASE_URL}/item/2000001",
            f"{BASE_URL}/item/2000002",
        ]

    def test_search_api_hits(self):
        payload = {"results": [{"hits": [
            {"objectID": "abc123"},
            {"itemIO": "def456"},
            {"title": "no id"},
        ]}]}
        hits = hits_from_search_api(payload, BASE_URL)

        assert [hit.url for hit in hits] == [
            build_item_url(BASE_URL, "abc123"),
            build_item_url(BASE_URL, "def456"),
        ]
        assert hits[0].url == f"{BASE_URL}/item/abc123"
        assert hits[0].native_external_id == "abc123"
        assert hits[0].raw == {"objectID": "abc123"}

    def test_search_api_malformed_payload(self):
        assert hits_from_search_api(None, BASE_URL) == []
        assert hits_from_search_api({"results": "nope"}, BASE_URL) == []
