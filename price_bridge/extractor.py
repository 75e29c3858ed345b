"""Extraction orchestrator.

Static stage: fetch the page and run the pipeline (collectors → arbitration
+ image resolution). Rendered stage: only when rendering is permitted and the
static result lacks a price or an image; its result replaces the static one
entirely.
"""

import logging
import threading
from typing import Optional, Tuple

from bs4 import BeautifulSoup

from . import config
from .arbitration import choose_price, winning_sources
from .collectors import collect_all
from .fetch import fetch_html
from .images import accept_image_url, resolve_image_with_source
from .models import ExtractionResult, PriceLookup
from .render import render_page

logger = logging.getLogger("price_bridge.extractor")

STAGE_STATIC = "static"
STAGE_RENDERED = "rendered"


def parse_document(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def run_pipeline(soup: BeautifulSoup, page_url: str) -> ExtractionResult:
    """Collect candidates from one parsed document and decide price + image."""
    found = collect_all(soup, page_url)
    price = choose_price(found.prices)
    strategies = winning_sources(found.prices, price)

    image, image_source = None, None
    if found.structured_image:
        image, image_source = found.structured_image, "json-ld:image"
    else:
        image, image_source = resolve_image_with_source(soup, page_url)
    if image is None and found.script_image:
        image, image_source = found.script_image, "script:image"
    if image_source:
        strategies.append(image_source)

    return ExtractionResult(price=price, image=image, strategies=strategies, candidates=list(found.prices))


def extract_from_html(html: str, page_url: str) -> ExtractionResult:
    return run_pipeline(parse_document(html), page_url)


def extract_meta(soup: BeautifulSoup, page_url: str) -> Tuple[Optional[str], Optional[str]]:
    """Title plus a fallback image from the page's social/meta tags."""

    def meta(key: str) -> Optional[str]:
        tag = soup.find("meta", attrs={"property": key}) or soup.find("meta", attrs={"name": key})
        content = tag.get("content") if tag else None
        return content.strip() if content and content.strip() else None

    title = meta("og:title") or meta("twitter:title")
    if not title:
        for name in ("title", "h1"):
            el = soup.find(name)
            text = " ".join(el.get_text(" ", strip=True).split()) if el else ""
            if text:
                title = text
                break

    image = None
    image_link = soup.find("link", rel="image_src")
    for raw in (
        meta("og:image"),
        meta("og:image:secure_url"),
        meta("twitter:image"),
        image_link.get("href") if image_link else None,
    ):
        image = accept_image_url(raw, page_url)
        if image:
            break
    return title, image


def needs_render(result: Optional[ExtractionResult]) -> bool:
    return result is None or result.price is None or result.image is None


def lookup_price(
    url: str,
    render: Optional[bool] = None,
    fresh: bool = False,
    cancel: Optional[threading.Event] = None,
) -> PriceLookup:
    """Look up price and image for a product URL.

    render=None follows RENDER_ENABLED; True/False forces the choice.
    """
    render_allowed = config.RENDER_ENABLED if render is None else render
    lookup = PriceLookup(url=url)

    # 1) Static
    page = fetch_html(url, fresh=fresh)
    if page is not None:
        soup = parse_document(page.html)
        lookup.result = run_pipeline(soup, page.final_url or url)
        lookup.title, lookup.fallback_image = extract_meta(soup, page.final_url or url)
        lookup.stage, lookup.via = STAGE_STATIC, page.via
        logger.debug(
            "[lookup] static via=%s price=%s image=%s strategies=%s",
            page.via, lookup.result.price, lookup.result.image, lookup.result.strategies,
        )
    else:
        logger.info("[lookup] static stage produced no document for %s", url)

    # 2) Rendered (full replacement, no merge)
    if render_allowed and needs_render(lookup.result):
        if cancel is not None and cancel.is_set():
            logger.info("[lookup] cancelled before render: %s", url)
            return lookup
        html = render_page(url, cancel=cancel)
        if html:
            soup = parse_document(html)
            lookup.result = run_pipeline(soup, url)
            title, fallback_image = extract_meta(soup, url)
            lookup.title = title or lookup.title
            lookup.fallback_image = fallback_image
            lookup.stage, lookup.via = STAGE_RENDERED, "render"
            logger.debug(
                "[lookup] rendered price=%s image=%s strategies=%s",
                lookup.result.price, lookup.result.image, lookup.result.strategies,
            )
        else:
            logger.info("[lookup] render stage produced no document for %s", url)

    return lookup
