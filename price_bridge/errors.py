"""Exception types raised by the price bridge."""


class PriceBridgeError(Exception):
    """Base class for price bridge failures."""


class DocumentUnavailable(PriceBridgeError):
    """No stage (direct fetch, reader, render) produced a document."""

    def __init__(self, url: str):
        super().__init__(f"Page could not be loaded: {url}")
        self.url = url


class RenderUnavailable(PriceBridgeError):
    """The headless browser could not be started."""
