import pytest

from price_bridge.images import (
    absolutize,
    accept_image_url,
    image_from_element,
    parse_srcset,
    resolve_image,
    resolve_image_with_source,
    widest_from_srcset,
)

from .conftest import soup_of


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("/img/a.jpg", "https://shop.example/img/a.jpg"),
        ("img/a.jpg", "https://shop.example/p/img/a.jpg"),
        ("//cdn.example/a.jpg", "https://cdn.example/a.jpg"),
        ("http://cdn.example/a.jpg", "http://cdn.example/a.jpg"),
        ("data:image/png;base64,AAAA", None),
        ("javascript:void(0)", None),
        ("blob:https://shop.example/123", None),
        ("ftp://files.example/a.jpg", None),
        ("", None),
        (None, None),
    ],
)
def test_absolutize(raw, expected, page_url):
    assert absolutize(raw, page_url) == expected


def test_denylist_applies_to_whole_url(page_url):
    assert accept_image_url("/assets/icons/cart.png", page_url) is None
    assert accept_image_url("/img/LOGO-header.svg", page_url) is None
    assert accept_image_url("/img/placeholder.gif", page_url) is None
    assert accept_image_url("/img/shoe.jpg", page_url) == "https://shop.example/img/shoe.jpg"


def test_srcset_parsing():
    assert parse_srcset("a.jpg 320w, b.jpg 1280w, c.jpg 640w") == [
        ("a.jpg", 320.0),
        ("b.jpg", 1280.0),
        ("c.jpg", 640.0),
    ]
    assert widest_from_srcset("a.jpg 320w, b.jpg 1280w, c.jpg 640w") == "b.jpg"
    assert widest_from_srcset("a.jpg 1x, b.jpg 2x") == "b.jpg"
    assert widest_from_srcset("only.jpg") == "only.jpg"
    assert widest_from_srcset("") is None


def test_srcset_url_with_commas():
    entries = parse_srcset("https://cdn.example/w_200,h_200/a.jpg 200w, https://cdn.example/w_800,h_800/a.jpg 800w")
    assert entries[-1] == ("https://cdn.example/w_800,h_800/a.jpg", 800.0)


def test_meta_image_wins(page_url):
    html = """<head>
    <meta property="og:image" content="/img/og-shoe.jpg">
    </head><body><img id="landingImage" src="/img/landing.jpg"></body>"""
    assert resolve_image_with_source(soup_of(html), page_url) == ("https://shop.example/img/og-shoe.jpg", "meta:image")


def test_denylisted_meta_falls_through(page_url):
    html = """<head>
    <meta property="og:image" content="/static/logo.png">
    <meta name="twitter:image" content="https://cdn.example/p/shoe.jpg">
    </head>"""
    assert resolve_image(soup_of(html), page_url) == "https://cdn.example/p/shoe.jpg"


def test_picture_widest_source(page_url):
    html = """<body><picture>
      <source srcset="/p/shoe-400.webp 400w, /p/shoe-1600.webp 1600w">
      <img src="/p/shoe-200.jpg" srcset="/p/shoe-800.jpg 800w">
    </picture></body>"""
    assert resolve_image_with_source(soup_of(html), page_url) == (
        "https://shop.example/p/shoe-1600.webp",
        "picture:srcset",
    )


def test_selector_with_lazy_attribute(page_url):
    html = """<body>
    <div class="product-image"><img src="data:image/gif;base64,R0lGOD" data-src="/p/lazy.jpg"></div>
    </body>"""
    assert resolve_image_with_source(soup_of(html), page_url) == (
        "https://shop.example/p/lazy.jpg",
        "img:.product-image img",
    )


def test_selector_container_uses_inner_img(page_url):
    html = '<body><div data-testid="product-image"><img src="/p/inner.jpg"></div></body>'
    assert resolve_image(soup_of(html), page_url) == "https://shop.example/p/inner.jpg"


def test_element_srcset_fallback(page_url):
    el = soup_of('<img srcset="/p/s.jpg 300w, /p/l.jpg 900w">').find("img")
    assert image_from_element(el, page_url) == "https://shop.example/p/l.jpg"


def test_preload_link(page_url):
    html = '<head><link rel="preload" as="image" href="/p/hero.avif"></head>'
    assert resolve_image_with_source(soup_of(html), page_url) == ("https://shop.example/p/hero.avif", "link:preload")


def test_largest_img_needs_declared_area(page_url):
    html = """<body>
    <img src="/p/thumb.jpg" width="100" height="100">
    <img src="/p/icon-big.jpg" width="900" height="900">
    <img src="/p/detail.jpg" width="600" height="400">
    <img src="/p/mid.jpg" width="300" height="300">
    </body>"""
    assert resolve_image_with_source(soup_of(html), page_url) == ("https://shop.example/p/detail.jpg", "img:largest")


def test_small_images_only_gives_nothing(page_url):
    html = '<body><img src="/p/a.jpg" width="150" height="150"><img src="/p/b.jpg"></body>'
    assert resolve_image_with_source(soup_of(html), page_url) == (None, None)
