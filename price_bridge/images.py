# images.py - product image resolution (meta → <picture> → selectors → preload → largest <img>)

import logging
import re
from typing import List, Optional, Tuple
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger("price_bridge.images")

# Never a product photo
IMAGE_DENYLIST = ("sprite", "icon", "logo", "placeholder", "loading")
LARGEST_IMG_EXCLUDE = ("icon", "logo", "sprite")
MIN_IMAGE_AREA = 40_000

META_IMAGE_TAGS = ("og:image", "og:image:secure_url", "twitter:image")

# Known product containers first, generic <img> patterns last
PRODUCT_IMAGE_SELECTORS = [
    "#landingImage",
    "#imgBlkFront",
    "#main-image",
    ".product-image img",
    ".product-gallery img",
    "[data-testid='product-image']",
    "[class*='ProductImage']",
    "[class*='product-img']",
    ".gallery-main img",
    "[itemprop='image']",
    "img[data-old-hires]",
]

# Direct source first, then lazy-load variants
IMAGE_SRC_ATTRS = (
    "src",
    "data-src",
    "data-lazy",
    "data-lazy-src",
    "data-original",
    "data-zoom-image",
    "data-old-hires",
    "content",
    "href",
)
SRCSET_ATTRS = ("srcset", "data-srcset")

RE_DESCRIPTOR = re.compile(r"^(\d+(?:\.\d+)?)([wx])$", re.I)


def absolutize(maybe_url: Optional[str], base: str) -> Optional[str]:
    """Resolve against the page URL; None unless the result is http(s)."""
    if not maybe_url or not isinstance(maybe_url, str):
        return None
    candidate = maybe_url.strip()
    if not candidate or candidate.lower().startswith(("data:", "javascript:", "blob:")):
        return None
    if candidate.startswith("//"):
        candidate = "https:" + candidate
    try:
        absolute = urljoin(base, candidate)
        parsed = urlparse(absolute)
    except ValueError as exc:
        logger.debug("Unparseable URL %r: %s", maybe_url, exc)
        return None
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return absolute


def is_denylisted(url: str, patterns=IMAGE_DENYLIST) -> bool:
    lowered = url.lower()
    return any(p in lowered for p in patterns)


def accept_image_url(maybe_url: Optional[str], base: str) -> Optional[str]:
    """Absolutize and filter a candidate image URL."""
    absolute = absolutize(maybe_url, base)
    if not absolute or is_denylisted(absolute):
        return None
    return absolute


def parse_srcset(srcset: Optional[str]) -> List[Tuple[str, float]]:
    """Split a srcset attribute into (url, width) pairs.

    Density descriptors (2x) rank below any width descriptor; entries
    without a descriptor count as zero.
    """
    entries: List[Tuple[str, float]] = []
    if not srcset:
        return entries
    tokens = srcset.strip().split()
    i = 0
    while i < len(tokens):
        url = tokens[i]
        i += 1
        if url.endswith(","):
            entries.append((url.rstrip(","), 0.0))
            continue
        weight = 0.0
        if i < len(tokens):
            m = RE_DESCRIPTOR.match(tokens[i].rstrip(","))
            if m:
                number = float(m.group(1))
                weight = number if m.group(2).lower() == "w" else number / 1000.0
                i += 1
        entries.append((url, weight))
    return entries


def widest_from_srcset(srcset: Optional[str]) -> Optional[str]:
    entries = parse_srcset(srcset)
    if not entries:
        return None
    # stable: first entry wins among equal widths
    best_url, best_width = entries[0]
    for url, width in entries[1:]:
        if width > best_width:
            best_url, best_width = url, width
    return best_url


def _meta_content(soup: BeautifulSoup, key: str) -> Optional[str]:
    tag = soup.find("meta", attrs={"property": key}) or soup.find("meta", attrs={"name": key})
    if tag and tag.get("content"):
        return tag["content"]
    return None


def _from_meta(soup: BeautifulSoup, page_url: str) -> Optional[str]:
    for key in META_IMAGE_TAGS:
        accepted = accept_image_url(_meta_content(soup, key), page_url)
        if accepted:
            return accepted
    return None


def _from_picture(soup: BeautifulSoup, page_url: str) -> Optional[str]:
    for picture in soup.find_all("picture"):
        entries: List[Tuple[str, float]] = []
        for el in picture.find_all(["source", "img"]):
            for attr in SRCSET_ATTRS:
                entries.extend(parse_srcset(el.get(attr)))
        if not entries:
            continue
        best_url, best_width = entries[0]
        for url, width in entries[1:]:
            if width > best_width:
                best_url, best_width = url, width
        accepted = accept_image_url(best_url, page_url)
        if accepted:
            return accepted
    return None


def image_from_element(el: Tag, page_url: str) -> Optional[str]:
    """Read an element's image URL: src, lazy attributes, then widest srcset."""
    if el.name not in ("img", "source", "meta", "link"):
        inner = el.find("img")
        if inner is None:
            return None
        el = inner
    for attr in IMAGE_SRC_ATTRS:
        accepted = accept_image_url(el.get(attr), page_url)
        if accepted:
            return accepted
    for attr in SRCSET_ATTRS:
        accepted = accept_image_url(widest_from_srcset(el.get(attr)), page_url)
        if accepted:
            return accepted
    return None


def _from_selectors(soup: BeautifulSoup, page_url: str) -> Optional[Tuple[str, str]]:
    for sel in PRODUCT_IMAGE_SELECTORS:
        for el in soup.select(sel):
            accepted = image_from_element(el, page_url)
            if accepted:
                return accepted, sel
    return None


def _from_preload(soup: BeautifulSoup, page_url: str) -> Optional[str]:
    for link in soup.find_all("link"):
        rel = [r.lower() for r in (link.get("rel") or [])]
        if "preload" not in rel or (link.get("as") or "").lower() != "image":
            continue
        accepted = accept_image_url(link.get("href"), page_url) or accept_image_url(
            widest_from_srcset(link.get("imagesrcset")), page_url
        )
        if accepted:
            return accepted
    return None


def _declared_size(value) -> int:
    m = re.match(r"\s*(\d+)", str(value or ""))
    return int(m.group(1)) if m else 0


def _from_largest_img(soup: BeautifulSoup, page_url: str) -> Optional[str]:
    best, max_area = None, 0
    for img in soup.find_all("img"):
        src = img.get("src") or img.get("data-src")
        if not src or is_denylisted(src, LARGEST_IMG_EXCLUDE):
            continue
        area = _declared_size(img.get("width")) * _declared_size(img.get("height"))
        if area > max_area and area > MIN_IMAGE_AREA:
            accepted = accept_image_url(src, page_url)
            if accepted:
                best, max_area = accepted, area
    return best


def resolve_image_with_source(soup: BeautifulSoup, page_url: str) -> Tuple[Optional[str], Optional[str]]:
    """Run the image cascade; returns (url, strategy) of the first accepted step."""
    found = _from_meta(soup, page_url)
    if found:
        return found, "meta:image"
    found = _from_picture(soup, page_url)
    if found:
        return found, "picture:srcset"
    hit = _from_selectors(soup, page_url)
    if hit:
        return hit[0], f"img:{hit[1]}"
    found = _from_preload(soup, page_url)
    if found:
        return found, "link:preload"
    found = _from_largest_img(soup, page_url)
    if found:
        return found, "img:largest"
    return None, None


def resolve_image(soup: BeautifulSoup, page_url: str) -> Optional[str]:
    return resolve_image_with_source(soup, page_url)[0]
