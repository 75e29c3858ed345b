"""Price Bridge: product page price and image extraction."""

__version__ = "2.1.0"
