import asyncio
import logging
import threading
from datetime import datetime, timezone
from time import time
from typing import List, Optional
from urllib.parse import urlparse

import requests
from fastapi import FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import __version__, config
from .errors import DocumentUnavailable
from .extractor import lookup_price
from .fetch import fetch_image
from .logging_setup import configure_logging
from .render import shutdown_engine

configure_logging(config.DEBUG)
logger = logging.getLogger("price_bridge.app")

app = FastAPI(title="Price Bridge", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_methods=["GET"],
    allow_headers=["*"],
)

DISCONNECT_POLL_SECONDS = 0.5


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# --- very simple in-memory rate limit (per IP per minute) ---
_LIMIT_WINDOW = 60  # seconds
_rate: dict = {}
_rate_lock = threading.Lock()


def allow(ip: str) -> bool:
    now = time()
    window = int(now // _LIMIT_WINDOW)
    with _rate_lock:
        bucket = _rate.setdefault(ip, {})
        # drop stale windows to prevent unbounded growth
        for w in [w for w in bucket if w < window - 1]:
            bucket.pop(w, None)
        bucket[window] = bucket.get(window, 0) + 1
        return bucket[window] <= config.RATE_LIMIT_PER_MINUTE


# --- Optional bearer token ---
def check_token(authorization: Optional[str]):
    if not config.API_TOKEN:
        return  # DEV mode: no auth
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing token")
    if authorization.split(" ", 1)[1] != config.API_TOKEN:
        raise HTTPException(status_code=403, detail="Bad token")


def guard(request: Request, authorization: Optional[str]):
    check_token(authorization)
    client = request.client.host if request.client else "unknown"
    if not allow(client):
        raise HTTPException(status_code=429, detail="Too many requests")


def normalize_target(raw: str) -> Optional[str]:
    """Add https:// when the scheme is missing; None when the result is not a usable URL."""
    target = (raw or "").strip()
    if not target.lower().startswith(("http://", "https://")):
        target = "https://" + target
        logger.debug("URL corrected: %s", target)
    try:
        parsed = urlparse(target)
    except ValueError:
        return None
    if not parsed.netloc or " " in parsed.netloc:
        return None
    return target


# --- Response schemas ---
class CandidateItem(BaseModel):
    value: float
    source: str
    context: str = ""


class PriceResponse(BaseModel):
    price: Optional[float] = None
    title: Optional[str] = None
    image: Optional[str] = None
    stage: Optional[str] = None
    strategies: Optional[List[str]] = None
    candidates: Optional[List[CandidateItem]] = None


@app.on_event("shutdown")
def _on_shutdown():
    shutdown_engine()


@app.get("/")
def root():
    return {"ok": True, "message": f"Price Bridge v{__version__}. See /docs", "ts": _now()}


@app.get("/health")
def health():
    return {"status": "ok", "version": __version__, "debug": config.DEBUG, "render": config.RENDER_ENABLED}


@app.get("/favicon.ico")
def favicon():
    return Response(status_code=204)


async def _lookup_until_disconnect(request: Request, url: str, render: Optional[bool], fresh: bool):
    """Run the lookup in a worker thread; stop waiting once the client goes away."""
    cancel = threading.Event()
    task = asyncio.ensure_future(run_in_threadpool(lookup_price, url, render, fresh, cancel))
    while True:
        done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_SECONDS)
        if done:
            return task.result()
        if await request.is_disconnected():
            logger.info("[api] client went away, abandoning lookup for %s", url)
            cancel.set()
            return None


@app.get("/api/price", response_model=PriceResponse)
async def endpoint_price(
    request: Request,
    url: Optional[str] = Query(None, description="Product URL"),
    fresh: int = 0,
    render: Optional[int] = Query(None, description="1 forces, 0 disables the headless render stage"),
    authorization: Optional[str] = Header(None),
):
    guard(request, authorization)
    if not url or not url.strip():
        return JSONResponse(status_code=400, content={"error": "Parameter 'url' is missing."})
    target = normalize_target(url)
    if target is None:
        return JSONResponse(status_code=400, content={"error": "Invalid URL."})

    render_flag = None if render is None else bool(render)
    try:
        lookup = await _lookup_until_disconnect(request, target, render_flag, bool(fresh))
        if lookup is None:
            return Response(status_code=499)
        if not lookup.document_found:
            raise DocumentUnavailable(target)
    except DocumentUnavailable as e:
        logger.warning("[api] %s", e)
        return JSONResponse(status_code=502, content={"error": "Page could not be loaded", "url": target})
    except Exception:
        logger.exception("[api] price lookup failed for %s", target)
        return JSONResponse(status_code=500, content={"error": "Internal error while looking up price"})

    result = lookup.result
    debug = {}
    if config.DEBUG:
        debug = {
            "strategies": result.strategies,
            "candidates": [CandidateItem(value=c.value, source=c.source, context=c.context) for c in result.candidates],
        }
    logger.debug("[api] price=%s title=%s image=%s stage=%s", lookup.price, lookup.title, lookup.image, lookup.stage)

    if lookup.price is None:
        body = {"error": "No price found", "title": lookup.title, "image": lookup.image}
        if config.DEBUG:
            body["debug"] = {"strategies": result.strategies, "stage": lookup.stage}
        return JSONResponse(status_code=404, content=body)

    return PriceResponse(price=lookup.price, title=lookup.title, image=lookup.image, stage=lookup.stage, **debug)


@app.get("/api/img")
def endpoint_img(url: Optional[str] = None):
    if not url or not url.lower().startswith(("http://", "https://")):
        return Response(content="Bad image url", status_code=400, media_type="text/plain")
    try:
        content, content_type = fetch_image(url)
    except requests.RequestException as e:
        logger.warning("[img] proxy failed for %s: %s", url, e)
        return Response(status_code=502, headers={"Access-Control-Allow-Origin": "*"})
    return Response(
        content=content,
        media_type=content_type,
        headers={
            "Cache-Control": "public, max-age=86400, immutable",
            "Access-Control-Allow-Origin": "*",
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("price_bridge.app:app", host="0.0.0.0", port=config.PORT)
