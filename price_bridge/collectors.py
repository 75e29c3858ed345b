# collectors.py - price/image evidence from a parsed product page
#
# Every collector runs on every document. None of them stops the others:
# arbitration needs the full candidate population.

import json
import logging
import re
from typing import Callable, Iterable, List, Optional

from bs4 import BeautifulSoup, Tag
from bs4.element import CData, Comment, Declaration, Doctype, ProcessingInstruction

from .images import accept_image_url
from .models import Collected
from .numbers import SP, normalize_price, parse_amount

logger = logging.getLogger("price_bridge.collectors")

Collector = Callable[[BeautifulSoup, str, Collected], None]

JSONLD_TYPE = "application/ld+json"

OFFER_TYPES = {"offer", "aggregateoffer"}
PRODUCT_TYPES = {"product", "productgroup", "individualproduct", "productmodel"}

META_PRICE_TAGS = ("product:price:amount", "og:price:amount", "twitter:data1")

DATA_ATTR_SELECTORS = [
    "[data-price]",
    "[data-price-amount]",
    "[data-product-price]",
    "[data-test-id*='price']",
    "[data-testid*='price']",
    "[data-cy*='price']",
]
DATA_PRICE_ATTRS = ("data-price", "data-price-amount", "data-product-price")

# Current/sale/final price first
CSS_CURRENT_SELECTORS = [
    ".price--current",
    ".price-current",
    ".current-price",
    ".sale-price",
    ".final-price",
    ".special-price",
    ".offer-price",
    "#priceblock_dealprice",
    ".priceToPay .a-offscreen",
    ".a-price .a-offscreen",
    "span.a-price > span.a-offscreen",
    "[class*='price'][class*='current']",
    "[class*='price'][class*='sale']",
    "[class*='price'][class*='final']",
]
CSS_GENERIC_SELECTORS = [
    ".price",
    ".product-price",
    "#price",
    "#priceblock_ourprice",
    ".a-price-whole",
    "[data-a-color='price']",
    "[class*='Price']",
]
MAX_MATCHES_PER_SELECTOR = 20

# Struck-through / MSRP wording → not the selling price
STRIKE_KEYWORDS = (
    "uvp",
    "statt",
    "vorher",
    "durchgestrichen",
    "unverbindlich",
    "msrp",
    "rrp",
    "prix barré",
    "prezzo consigliato",
)
RE_STRIKE = re.compile(r"\b(?:" + "|".join(re.escape(k) for k in STRIKE_KEYWORDS) + r")|\bwas\b", re.I)

# --- Embedded script blobs ---
PRICE_KEYWORDS = (
    "price",
    "currentprice",
    "salesprice",
    "saleprice",
    "finalprice",
    "lowprice",
    "offerprice",
    "amount",
    "value",
    "preis",
    "betrag",
)
PRICE_KEY_EXCLUDE = ("old", "was", "strike", "uvp", "msrp", "original", "regular", "list", "currency", "count")
IMAGE_KEYWORDS = ("image", "img", "picture", "photo", "thumbnail")
MAX_JSON_DEPTH = 40
MAX_SCRIPT_CHARS = 2_000_000

# window.__STATE__ = {...};
RE_ASSIGNMENT = re.compile(r"=\s*([\[{])")
RE_QUOTED_PRICE = re.compile(
    r'"([A-Za-z_$][\w$]*)"\s*:\s*"?(-?\d[\d.,]*)"?',
)
RE_BARE_IMAGE_URL = re.compile(
    r"(?:https?:)?//[^\s\"'<>()\\]+?\.(?:jpe?g|png|webp|avif|gif)(?:\?[^\s\"'<>()\\]*)?",
    re.I,
)

# --- Visible text ---
PRICE_NUM = r"\d{1,3}(?:[.,]\d{3})*[.,]\d{2}|\d+[.,]\d{2}"
RE_BODY_PATTERNS = [
    re.compile(rf"(?<![\d.,])({PRICE_NUM}){SP}€"),
    re.compile(rf"€{SP}({PRICE_NUM})(?![\d])"),
    re.compile(rf"(?<![\d.,])({PRICE_NUM}){SP}EUR\b", re.I),
    re.compile(rf"\bEUR{SP}({PRICE_NUM})(?![\d])", re.I),
    re.compile(r"(?<![\d.,])(\d+(?:\.\d{3})*,[-\u2013])"),
]
CONTEXT_CHARS = 60
BODY_MAX_VALUE = 1_000_000
INVISIBLE_TAGS = {"script", "style", "noscript", "template"}


# -------- Utils --------

def json_load_relaxed(blob: str):
    """json.loads that tolerates trailing commas; None when still invalid."""
    try:
        return json.loads(blob)
    except json.JSONDecodeError:
        cleaned = re.sub(r",\s*(\}|\])", r"\1", blob)
        try:
            return json.loads(cleaned)
        except json.JSONDecodeError as exc:
            logger.debug("JSON parse error: %s", exc)
            return None


def _type_names(node: dict) -> List[str]:
    t = node.get("@type")
    names = t if isinstance(t, list) else [t]
    return [str(n).lower().rsplit("/", 1)[-1] for n in names if n]


def _as_list(value) -> list:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _element_text(el: Tag) -> str:
    return " ".join(el.get_text(" ", strip=True).split())


def _script_bodies(soup: BeautifulSoup, want_jsonld: bool) -> Iterable[str]:
    for tag in soup.find_all("script"):
        if tag.get("src"):
            continue
        script_type = (tag.get("type") or "").strip().lower()
        is_jsonld = script_type == JSONLD_TYPE
        if is_jsonld != want_jsonld:
            continue
        if not want_jsonld and script_type and "json" not in script_type and "javascript" not in script_type:
            continue
        body = tag.string if tag.string is not None else tag.get_text()
        if body and body.strip():
            yield body.strip()


# -------- 1) JSON-LD (schema.org Product/Offer, inkl. @graph) --------

def _push_offer_prices(node: dict, found: Collected, prefix: str) -> None:
    found.add_price(normalize_price(_scalar(node.get("price"))), f"{prefix}.price")
    found.add_price(normalize_price(_scalar(node.get("lowPrice"))), f"{prefix}.lowPrice")
    for spec in _as_list(node.get("priceSpecification")):
        if isinstance(spec, dict):
            found.add_price(normalize_price(_scalar(spec.get("price"))), f"{prefix}.priceSpecification")


def _scalar(value):
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        return value
    return None


def _structured_image(node: dict, page_url: str) -> Optional[str]:
    first = _as_list(node.get("image"))[:1]
    if not first:
        return None
    cand = first[0]
    if isinstance(cand, dict):
        cand = cand.get("url") or cand.get("contentUrl")
    return accept_image_url(cand if isinstance(cand, str) else None, page_url)


def _walk_structured(node, page_url: str, found: Collected, depth: int = 0) -> None:
    if depth > MAX_JSON_DEPTH:
        return
    if isinstance(node, list):
        for item in node:
            _walk_structured(item, page_url, found, depth + 1)
        return
    if not isinstance(node, dict):
        return

    types = _type_names(node)
    if any(t in OFFER_TYPES for t in types):
        _push_offer_prices(node, found, "json-ld:offers")
    elif any(t in PRODUCT_TYPES for t in types):
        _push_offer_prices(node, found, "json-ld")
        # untyped inline offers; typed ones are reached by the walk below
        for offer in _as_list(node.get("offers")):
            if isinstance(offer, dict) and not _type_names(offer):
                _push_offer_prices(offer, found, "json-ld:offers")
        if found.structured_image is None:
            found.structured_image = _structured_image(node, page_url)

    for value in node.values():
        if isinstance(value, (dict, list)):
            _walk_structured(value, page_url, found, depth + 1)


def collect_structured_data(soup: BeautifulSoup, page_url: str, found: Collected) -> None:
    for blob in _script_bodies(soup, want_jsonld=True):
        data = json_load_relaxed(blob)
        if data is None:
            continue
        _walk_structured(data, page_url, found)


# -------- 2) Microdata / itemprop --------

def collect_microdata(soup: BeautifulSoup, page_url: str, found: Collected) -> None:
    el = soup.select_one("[itemprop='price']")
    if el is None:
        return
    content = el.get("content")
    value = normalize_price(content) if content else parse_amount(_element_text(el))
    found.add_price(value, "microdata:price")


# -------- 3) OG / Twitter meta --------

def collect_meta_tags(soup: BeautifulSoup, page_url: str, found: Collected) -> None:
    for key in META_PRICE_TAGS:
        tag = soup.find("meta", attrs={"property": key}) or soup.find("meta", attrs={"name": key})
        if tag and tag.get("content"):
            if found.add_price(parse_amount(tag["content"]), f"meta:{key}"):
                return


# -------- 4) data-* attributes (common in SPAs) --------

def collect_data_attributes(soup: BeautifulSoup, page_url: str, found: Collected) -> None:
    for sel in DATA_ATTR_SELECTORS:
        el = soup.select_one(sel)
        if el is None:
            continue
        raw = next((el.get(a) for a in DATA_PRICE_ATTRS if el.get(a)), None)
        value = normalize_price(raw) if raw else parse_amount(_element_text(el))
        found.add_price(value, f"data-attr:{sel}")


# -------- 5) CSS classes / ids --------

def _is_struck_price(text: str) -> bool:
    return RE_STRIKE.search(text) is not None


def collect_css_selectors(soup: BeautifulSoup, page_url: str, found: Collected) -> None:
    for sel in CSS_CURRENT_SELECTORS + CSS_GENERIC_SELECTORS:
        for el in soup.select(sel, limit=MAX_MATCHES_PER_SELECTOR):
            text = _element_text(el)
            if not text or _is_struck_price(text):
                continue
            found.add_price(parse_amount(text), f"css:{sel}")


# -------- 6) Embedded script blobs (__NEXT_DATA__, window.__STATE__ ...) --------

def _is_price_key(key: str) -> bool:
    lk = key.lower()
    if any(x in lk for x in PRICE_KEY_EXCLUDE):
        return False
    return any(k in lk for k in PRICE_KEYWORDS)


def _is_image_key(key: str) -> bool:
    lk = key.lower()
    return any(k in lk for k in IMAGE_KEYWORDS)


def _walk_blob(obj, page_url: str, found: Collected, images: List[str], depth: int = 0) -> None:
    if depth > MAX_JSON_DEPTH:
        return
    if isinstance(obj, dict):
        for k, v in obj.items():
            key = str(k)
            if _is_price_key(key) and _scalar(v) is not None:
                found.add_price(normalize_price(v), f"script:{key}")
            elif _is_image_key(key) and isinstance(v, str):
                images.append(v)
            elif _is_image_key(key) and isinstance(v, list):
                images.extend(x for x in v if isinstance(x, str))
            if isinstance(v, (dict, list)):
                _walk_blob(v, page_url, found, images, depth + 1)
    elif isinstance(obj, list):
        for item in obj:
            _walk_blob(item, page_url, found, images, depth + 1)


def _parse_blob(body: str):
    if body[:1] in "{[":
        data = json_load_relaxed(body)
        if data is not None:
            return data
    m = RE_ASSIGNMENT.search(body)
    if m:
        return json_load_relaxed(body[m.start(1):].rstrip().rstrip(";").rstrip())
    return None


def _regex_blob(body: str, found: Collected, images: List[str]) -> None:
    for m in RE_QUOTED_PRICE.finditer(body):
        key = m.group(1)
        if _is_price_key(key):
            found.add_price(normalize_price(m.group(2)), f"script-regex:{key}")
    text = body.replace("\\/", "/")
    images.extend(m.group(0) for m in RE_BARE_IMAGE_URL.finditer(text))


def collect_script_blobs(soup: BeautifulSoup, page_url: str, found: Collected) -> None:
    images: List[str] = []
    for body in _script_bodies(soup, want_jsonld=False):
        body = body[:MAX_SCRIPT_CHARS]
        data = _parse_blob(body)
        if isinstance(data, (dict, list)):
            _walk_blob(data, page_url, found, images)
        else:
            _regex_blob(body, found, images)

    if found.script_image is None:
        for raw in images:
            accepted = accept_image_url(raw, page_url)
            if accepted:
                found.script_image = accepted
                break


# -------- 7) Visible text regex (last resort, feeds arbitration) --------

def visible_text(soup: BeautifulSoup) -> str:
    """Body text without script/style content; the tree is not modified."""
    root = soup.body or soup
    parts = []
    for s in root.find_all(string=True):
        parent = s.parent
        if parent is not None and parent.name in INVISIBLE_TAGS:
            continue
        if isinstance(s, (Comment, Declaration, Doctype, CData, ProcessingInstruction)):
            continue
        parts.append(str(s))
    return " ".join(" ".join(parts).split())


def collect_visible_text(soup: BeautifulSoup, page_url: str, found: Collected) -> None:
    body = visible_text(soup)
    if not body:
        return
    seen_spans = set()
    for rx in RE_BODY_PATTERNS:
        for m in rx.finditer(body):
            span = m.span(1)
            if span in seen_spans:
                continue
            seen_spans.add(span)
            value = normalize_price(m.group(1))
            if value is None or value > BODY_MAX_VALUE:
                continue
            ctx = body[max(0, m.start() - CONTEXT_CHARS): m.end() + CONTEXT_CHARS]
            found.add_price(value, "regex:body", ctx)


COLLECTORS: List[Collector] = [
    collect_structured_data,
    collect_microdata,
    collect_meta_tags,
    collect_data_attributes,
    collect_css_selectors,
    collect_script_blobs,
    collect_visible_text,
]


def collect_all(soup: BeautifulSoup, page_url: str) -> Collected:
    """Run every collector over one document."""
    found = Collected()
    for collector in COLLECTORS:
        try:
            collector(soup, page_url, found)
        except (ValueError, TypeError, AttributeError) as exc:
            logger.debug("[collect] %s skipped: %s", collector.__name__, exc)
    return found
