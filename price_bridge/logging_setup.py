import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(debug: bool = False) -> None:
    """Configure the price_bridge logger family once; DEBUG=1 → verbose."""
    root = logging.getLogger("price_bridge")
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    if root.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
