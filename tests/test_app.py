import pytest
import requests
from fastapi.testclient import TestClient

from price_bridge import app as api
from price_bridge import config
from price_bridge.models import ExtractionResult, PriceCandidate, PriceLookup


def make_lookup(url, price=129.0, image="https://shop.example/img/p.jpg", title="Sneaker"):
    candidates = [PriceCandidate(price, "json-ld:offers.price")] if price else []
    result = ExtractionResult(
        price=price,
        image=image,
        strategies=["json-ld:offers.price", "meta:image"] if price else [],
        candidates=candidates,
    )
    return PriceLookup(url=url, result=result, title=title, stage="static", via="direct")


@pytest.fixture(autouse=True)
def reset_guards(monkeypatch):
    api._rate.clear()
    monkeypatch.setattr(config, "API_TOKEN", "")
    monkeypatch.setattr(config, "DEBUG", False)
    yield
    api._rate.clear()


@pytest.fixture
def client():
    return TestClient(api.app)


@pytest.fixture
def seen(monkeypatch):
    calls = []

    def fake_lookup(url, render=None, fresh=False, cancel=None):
        calls.append({"url": url, "render": render, "fresh": fresh})
        return make_lookup(url)

    monkeypatch.setattr(api, "lookup_price", fake_lookup)
    return calls


# -------- /api/price --------

def test_missing_url(client):
    r = client.get("/api/price")
    assert r.status_code == 400
    assert r.json() == {"error": "Parameter 'url' is missing."}


def test_blank_url(client):
    assert client.get("/api/price", params={"url": "   "}).status_code == 400


def test_invalid_url(client):
    r = client.get("/api/price", params={"url": "https://"})
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid URL."}


def test_price_found(client, seen):
    r = client.get("/api/price", params={"url": "https://shop.example/p/1"})
    assert r.status_code == 200
    body = r.json()
    assert body["price"] == 129.0
    assert body["image"] == "https://shop.example/img/p.jpg"
    assert body["title"] == "Sneaker"
    assert body["stage"] == "static"
    assert body.get("strategies") is None
    assert body.get("candidates") is None
    assert seen == [{"url": "https://shop.example/p/1", "render": None, "fresh": False}]


def test_scheme_is_added_and_flags_forwarded(client, seen):
    r = client.get("/api/price", params={"url": "shop.example/p/2", "render": "1", "fresh": "1"})
    assert r.status_code == 200
    assert seen == [{"url": "https://shop.example/p/2", "render": True, "fresh": True}]


def test_render_zero_disables(client, seen):
    client.get("/api/price", params={"url": "https://shop.example/p/3", "render": "0"})
    assert seen[0]["render"] is False


def test_debug_adds_strategies_and_candidates(client, seen, monkeypatch):
    monkeypatch.setattr(config, "DEBUG", True)
    body = client.get("/api/price", params={"url": "https://shop.example/p/1"}).json()
    assert body["strategies"] == ["json-ld:offers.price", "meta:image"]
    assert body["candidates"] == [{"value": 129.0, "source": "json-ld:offers.price", "context": ""}]


def test_no_price(client, monkeypatch):
    monkeypatch.setattr(api, "lookup_price", lambda url, *a, **kw: make_lookup(url, price=None, image=None, title="Leer"))
    r = client.get("/api/price", params={"url": "https://shop.example/p/9"})
    assert r.status_code == 404
    assert r.json() == {"error": "No price found", "title": "Leer", "image": None}


def test_no_price_debug_body(client, monkeypatch):
    monkeypatch.setattr(config, "DEBUG", True)
    monkeypatch.setattr(api, "lookup_price", lambda url, *a, **kw: make_lookup(url, price=None, image=None))
    body = client.get("/api/price", params={"url": "https://shop.example/p/9"}).json()
    assert body["debug"] == {"strategies": [], "stage": "static"}


def test_page_not_loaded(client, monkeypatch):
    monkeypatch.setattr(api, "lookup_price", lambda url, *a, **kw: PriceLookup(url=url))
    r = client.get("/api/price", params={"url": "https://gone.example/p"})
    assert r.status_code == 502
    assert r.json() == {"error": "Page could not be loaded", "url": "https://gone.example/p"}


def test_unexpected_error(client, monkeypatch):
    def boom(url, *a, **kw):
        raise RuntimeError("kaputt")

    monkeypatch.setattr(api, "lookup_price", boom)
    r = client.get("/api/price", params={"url": "https://shop.example/p/1"})
    assert r.status_code == 500
    assert r.json() == {"error": "Internal error while looking up price"}


# -------- Guards --------

def test_token_required_when_configured(client, seen, monkeypatch):
    monkeypatch.setattr(config, "API_TOKEN", "s3cret")
    params = {"url": "https://shop.example/p/1"}
    assert client.get("/api/price", params=params).status_code == 401
    assert client.get("/api/price", params=params, headers={"Authorization": "Bearer nope"}).status_code == 403
    assert client.get("/api/price", params=params, headers={"Authorization": "Bearer s3cret"}).status_code == 200


def test_rate_limit(client, seen, monkeypatch):
    monkeypatch.setattr(config, "RATE_LIMIT_PER_MINUTE", 2)
    params = {"url": "https://shop.example/p/1"}
    codes = [client.get("/api/price", params=params).status_code for _ in range(3)]
    assert codes == [200, 200, 429]


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("shop.example/p", "https://shop.example/p"),
        ("  http://shop.example/p  ", "http://shop.example/p"),
        ("HTTPS://Shop.example/p", "HTTPS://Shop.example/p"),
        ("https://", None),
        ("bad host/p", None),
    ],
)
def test_normalize_target(raw, expected):
    assert api.normalize_target(raw) == expected


# -------- Misc routes --------

def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert "version" in body


def test_root_and_favicon(client):
    assert client.get("/").json()["ok"] is True
    assert client.get("/favicon.ico").status_code == 204


# -------- /api/img --------

def test_img_rejects_non_http(client):
    r = client.get("/api/img", params={"url": "ftp://x/y.jpg"})
    assert r.status_code == 400
    assert r.text == "Bad image url"


def test_img_proxy(client, monkeypatch):
    monkeypatch.setattr(api, "fetch_image", lambda url: (b"\x89PNG", "image/png"))
    r = client.get("/api/img", params={"url": "https://cdn.example/p.png"})
    assert r.status_code == 200
    assert r.content == b"\x89PNG"
    assert r.headers["content-type"] == "image/png"
    assert r.headers["cache-control"] == "public, max-age=86400, immutable"
    assert r.headers["access-control-allow-origin"] == "*"


def test_img_upstream_failure(client, monkeypatch):
    def fail(url):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(api, "fetch_image", fail)
    r = client.get("/api/img", params={"url": "https://cdn.example/p.png"})
    assert r.status_code == 502
