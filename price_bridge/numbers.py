# numbers.py - price string normalization (1.299,00 / 1,299.00 / 379,- ...)

import math
import re
from typing import Optional, Union

# --- Regex building blocks (allow normal/NBSP/thin spaces) ---
SP = r"[\s\u00A0\u202F]*"

# Either grouped thousands (1.299,00, or NBSP/thin-space groups) or a plain run of digits (1299,00),
# optionally followed by the ",-" shorthand (hyphen or en dash). Never starts/ends inside a digit run.
AMOUNT = (
    r"(?<!\d)"
    r"(?:\d{1,3}(?:[.,\u00A0\u202F]\d{3})+(?:[.,]\d{1,2})?|\d+(?:[.,]\d{1,2})?)"
    r"(?:[,.][-\u2013])?"
    r"(?!\d)"
)
RE_AMOUNT = re.compile(AMOUNT)

RE_NOT_NUMERIC = re.compile(r"[^\d,.\-]")
RE_DASH_SHORTHAND = re.compile(r"[,.]-?$")


def normalize_price(raw: Union[str, int, float, None]) -> Optional[float]:
    """Turn a raw price fragment into a positive float, or None.

    1.299,00 -> 1299.0, 1,299.00 -> 1299.0, 1299,00 -> 1299.0, 379,- -> 379.0
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        val = float(raw)
        return val if math.isfinite(val) and val > 0 else None

    s = re.sub(r"\s+", "", str(raw))
    s = RE_NOT_NUMERIC.sub("", s)
    if not re.search(r"\d", s):
        return None

    # "379,-" / "379," → "379,00"
    if RE_DASH_SHORTHAND.search(s) and not re.search(r"[,.]\d+$", s):
        s = RE_DASH_SHORTHAND.sub(",00", s)

    if "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            # Komma ist Dezimaltrenner (DE)
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        parts = s.split(",")
        if len(parts) == 2 and len(parts[1]) <= 2:
            s = s.replace(",", ".")
        else:
            s = s.replace(",", "")

    try:
        val = float(s)
    except ValueError:
        return None
    if not math.isfinite(val) or val <= 0:
        return None
    return val


def parse_amount(text: Optional[str]) -> Optional[float]:
    """Normalize the first amount-looking token found in a free text fragment."""
    if not text:
        return None
    m = RE_AMOUNT.search(str(text))
    if not m:
        return None
    return normalize_price(m.group(0))
