# config.py - environment-driven settings for the price bridge

import os

PORT = int(os.getenv("PORT", "3000"))

# Comma separated; "*" allows every origin
ALLOWED_ORIGINS = [s.strip() for s in os.getenv("ALLOWED_ORIGINS", "*").split(",") if s.strip()]

# DEBUG=1 → verbose logs + strategies/candidates in responses
DEBUG = os.getenv("DEBUG", "0") == "1"

# Headless render as second stage when price or image is missing
RENDER_ENABLED = os.getenv("RENDER_ENABLED", "0") == "1"

FETCH_TIMEOUT = float(os.getenv("FETCH_TIMEOUT", "15"))
RENDER_TIMEOUT = float(os.getenv("RENDER_TIMEOUT", "22"))
RENDER_SETTLE_SECONDS = float(os.getenv("RENDER_SETTLE_SECONDS", "1.3"))
IMAGE_TIMEOUT = float(os.getenv("IMAGE_TIMEOUT", "12"))

# Text-extraction proxy used when the direct fetch fails
READER_BASE_URL = os.getenv("READER_BASE_URL", "https://r.jina.ai/")

MAX_HTML_BYTES = int(os.getenv("MAX_HTML_BYTES", "3000000"))

# Optional path to a Chrome/Chromium binary for Selenium
CHROME_BINARY = os.getenv("CHROME_BINARY", "")

# Empty → no auth (DEV mode)
API_TOKEN = os.getenv("API_TOKEN", "")

RATE_LIMIT_PER_MINUTE = int(os.getenv("RATE_LIMIT_PER_MINUTE", "120"))

USER_AGENT = os.getenv(
    "USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
)
