"""URL, identifier and price normalization for crawled offers."""

import hashlib
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

logger = logging.getLogger(__name__)

# Marketplace ids embedded in URLs are long digit runs
URL_ID_PATTERN = re.compile(r"(\d{6,})")

CURRENCY_PATTERN = re.compile(r"(EUR|USD|SEK|NOK|DKK|GBP|€|\$|£)", re.IGNORECASE)
AMOUNT_PATTERN = re.compile(r"\d[\d.,]*")

CURRENCY_SYMBOLS = {
    "€": "EUR",
    "$": "USD",
    "£": "GBP",
}


def sha256(value: str) -> str:
    """Hex SHA-256 of a string."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def normalize_url(url: str) -> str:
    """
    Canonical form of a URL: fragment dropped, query parameters sorted by key.

    Scheme and host are lower-cased and an empty path becomes "/". Input that
    is not an absolute URL is returned unchanged. Idempotent.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.scheme or not parts.netloc:
        return url

    params = sorted(parse_qsl(parts.query, keep_blank_values=True), key=lambda kv: kv[0])
    return urlunsplit((
        parts.scheme.lower(),
        parts.netloc.lower(),
        parts.path or "/",
        urlencode(params),
        "",
    ))


def extract_external_id_from_url(url: str) -> Optional[str]:
    """First run of six or more digits in the URL, if any."""
    match = URL_ID_PATTERN.search(url)
    return match.group(1) if match else None


def resolve_external_id(
    url: str,
    native_external_id: Optional[str] = None,
    extracted_external_id: Optional[str] = None,
) -> str:
    """
    Pick the offer's external id.

    Priority: id supplied by discovery, id found by extraction, digits in the
    URL, then a hash of the normalized URL. Always returns a non-empty string.
    """
    for candidate in (native_external_id, extracted_external_id, extract_external_id_from_url(url)):
        if candidate is not None and str(candidate).strip():
            return str(candidate).strip()
    return sha256(normalize_url(url))


def _to_decimal(text: str) -> Optional[Decimal]:
    # Right-most separator is the decimal point when both appear ("1.234,56")
    if "," in text and "." in text:
        decimal_sep = "," if text.rfind(",") > text.rfind(".") else "."
        thousands_sep = "." if decimal_sep == "," else ","
        text = text.replace(thousands_sep, "").replace(decimal_sep, ".")
    else:
        text = text.replace(",", ".")
    try:
        return Decimal(text)
    except InvalidOperation:
        return None


def parse_price(text: Optional[str]) -> tuple[Optional[Decimal], Optional[str]]:
    """
    Parse a free-text price such as "€ 49,99" or "49.99 USD".

    Returns:
        (amount, ISO currency code); either may be None
    """
    if not text:
        return None, None

    amount = None
    amount_match = AMOUNT_PATTERN.search(text)
    if amount_match:
        amount = _to_decimal(amount_match.group(0).rstrip(".,"))

    currency = None
    currency_match = CURRENCY_PATTERN.search(text)
    if currency_match:
        token = currency_match.group(1)
        currency = CURRENCY_SYMBOLS.get(token, token.upper())

    return amount, currency


def resolve_price(
    price_amount: Optional[str],
    price_currency: Optional[str],
) -> tuple[Optional[Decimal], Optional[str]]:
    """
    Combine an extracted amount/currency pair into a numeric price.

    A plain numeric amount is used as-is; anything else is parsed as a free
    text price string. An explicitly reported currency wins over a parsed one.
    """
    amount: Optional[Decimal] = None
    parsed_currency: Optional[str] = None

    if price_amount is not None and str(price_amount).strip():
        raw = str(price_amount).strip()
        try:
            amount = Decimal(raw)
            if not amount.is_finite():
                amount = None
        except InvalidOperation:
            amount = None
        if amount is None:
            amount, parsed_currency = parse_price(raw)

    currency = price_currency.strip().upper() if price_currency and price_currency.strip() else None
    return amount, currency or parsed_currency
