import pytest
from bs4 import BeautifulSoup

from price_bridge.models import Collected

PAGE_URL = "https://shop.example/p/sneaker-123"


def soup_of(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


@pytest.fixture
def found():
    return Collected()


@pytest.fixture
def page_url():
    return PAGE_URL
