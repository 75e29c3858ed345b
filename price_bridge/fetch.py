# fetch.py - page transport: direct GET (+1 retry) → Amazon retry → reader proxy

import logging
from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import urlparse

import requests

from . import config

logger = logging.getLogger("price_bridge.fetch")

HEADERS = {
    "User-Agent": config.USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "de-DE,de;q=0.9,en-US;q=0.8,en;q=0.7",
    "Accept-Encoding": "gzip, deflate",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Upgrade-Insecure-Requests": "1",
}

IMAGE_HEADERS = {
    "User-Agent": config.USER_AGENT,
    "Accept": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8",
    "Accept-Language": "de-DE,de;q=0.9,en;q=0.8",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

DIRECT_ATTEMPTS = 2  # one retry


@dataclass
class FetchedPage:
    html: str
    final_url: str
    via: str


def host_from_url(url: str) -> str:
    try:
        h = urlparse(url).netloc.lower()
    except ValueError:
        return url
    return h[4:] if h.startswith("www.") else h


def request_headers(fresh: bool = False) -> dict:
    headers = dict(HEADERS)
    headers["Cache-Control"] = "no-cache" if fresh else "max-age=0"
    headers["Pragma"] = "no-cache"
    return headers


def _decode(r) -> str:
    content = r.content[: config.MAX_HTML_BYTES]
    # requests assumes ISO-8859-1 when Content-Type carries no charset
    declared = "charset=" in (r.headers.get("Content-Type") or "").lower()
    encoding = r.encoding if declared and r.encoding else (r.apparent_encoding or "utf-8")
    try:
        return content.decode(encoding, errors="replace")
    except LookupError:
        return content.decode("utf-8", errors="replace")


def _get(url: str, headers: dict, timeout: float) -> Tuple[str, str]:
    r = requests.get(url, headers=headers, timeout=timeout, allow_redirects=True)
    r.raise_for_status()
    return _decode(r), r.url or url


def fetch_direct(url: str, fresh: bool = False, timeout: Optional[float] = None) -> Optional[FetchedPage]:
    timeout = timeout or config.FETCH_TIMEOUT
    headers = request_headers(fresh)
    for attempt in range(1, DIRECT_ATTEMPTS + 1):
        try:
            html, final_url = _get(url, headers, timeout)
            logger.debug("[fetch] direct ok (attempt %d) len=%d", attempt, len(html))
            return FetchedPage(html=html, final_url=final_url, via="direct")
        except requests.RequestException as e:
            logger.warning("[fetch] direct attempt %d failed for %s: %s", attempt, url, e)

    # Amazon: short retry with referer/cookie
    if "amazon." in host_from_url(url):
        amazon_headers = dict(headers)
        amazon_headers["Referer"] = "https://www.google.com/"
        amazon_headers["Cookie"] = "session-id=000-0000000-0000000"
        try:
            html, final_url = _get(url, amazon_headers, timeout)
            logger.debug("[fetch] amazon retry ok")
            return FetchedPage(html=html, final_url=final_url, via="amazon-retry")
        except requests.RequestException as e:
            logger.warning("[fetch] amazon retry failed: %s", e)
    return None


def fetch_reader(url: str, fresh: bool = False, timeout: Optional[float] = None) -> Optional[FetchedPage]:
    """Text-extraction proxy; returns plain content, still worth running the pipeline on."""
    if not config.READER_BASE_URL:
        return None
    timeout = timeout or config.FETCH_TIMEOUT
    reader_url = config.READER_BASE_URL + "http://" + url.split("://", 1)[-1]
    try:
        text, _ = _get(reader_url, request_headers(fresh), timeout)
    except requests.RequestException as e:
        logger.warning("[fetch] reader fallback failed for %s: %s", url, e)
        return None
    logger.debug("[fetch] loaded via reader len=%d", len(text))
    return FetchedPage(html=text, final_url=url, via="reader")


def fetch_html(url: str, fresh: bool = False) -> Optional[FetchedPage]:
    """Static stage transport; None when neither direct nor reader produced content."""
    return fetch_direct(url, fresh) or fetch_reader(url, fresh)


def fetch_image(url: str, timeout: Optional[float] = None) -> Tuple[bytes, str]:
    """Download an image for the re-proxy endpoint; raises requests.RequestException."""
    parsed = urlparse(url)
    headers = dict(IMAGE_HEADERS)
    headers["Referer"] = f"{parsed.scheme}://{parsed.netloc}/"
    r = requests.get(url, headers=headers, timeout=timeout or config.IMAGE_TIMEOUT, allow_redirects=True)
    r.raise_for_status()
    return r.content, r.headers.get("Content-Type") or "image/jpeg"
