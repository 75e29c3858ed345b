# arbitration.py - reduce all price candidates to one price
#
# The same price string showing up in several places (main block, review recap,
# JSON sidecar) beats any single selector. Tax wording next to a number separates
# gross from net near-duplicates.

import logging
from collections import Counter
from typing import List, Optional, Sequence

from .models import PriceCandidate

logger = logging.getLogger("price_bridge.arbitration")

PLAUSIBLE_MIN = 10
PLAUSIBLE_MAX = 100_000

TAX_INCLUSIVE_SCORE = 3
TAX_EXCLUSIVE_SCORE = -4

# --- Hints for gross vs net pricing ---
TAX_INCLUSIVE_HINTS = (
    "inkl. mwst",
    "inkl mwst",
    "inklusive mwst",
    "incl. mwst",
    "inkl. ust",
    "incl. vat",
    "inc. vat",
    "including vat",
    "incl. tax",
    "tax included",
    "brutto",
    "ttc",
    "iva incluida",
    "iva inclusa",
    "btw inbegrepen",
    "incl. btw",
)
TAX_EXCLUSIVE_HINTS = (
    "netto",
    "zzgl. mwst",
    "zzgl mwst",
    "exkl. mwst",
    "excl. mwst",
    "ohne mwst",
    "excl. vat",
    "ex. vat",
    "plus vat",
    "excl. tax",
    "net price",
    "hors taxe",
    "iva esclusa",
    "excl. btw",
)


def tax_score(context: str) -> int:
    """+3 for tax-inclusive wording, -4 for net/tax-exclusive wording, summed."""
    if not context:
        return 0
    lowered = context.lower()
    score = 0
    if any(h in lowered for h in TAX_INCLUSIVE_HINTS):
        score += TAX_INCLUSIVE_SCORE
    if any(h in lowered for h in TAX_EXCLUSIVE_HINTS):
        score += TAX_EXCLUSIVE_SCORE
    return score


def plausible(candidates: Sequence[PriceCandidate]) -> List[PriceCandidate]:
    """Consumer price band; falls back to everything when the band is empty."""
    in_band = [c for c in candidates if PLAUSIBLE_MIN <= c.value <= PLAUSIBLE_MAX]
    return in_band or list(candidates)


def preferred_partition(candidates: Sequence[PriceCandidate]) -> List[PriceCandidate]:
    non_negative = [c for c in candidates if tax_score(c.context) >= 0]
    return non_negative or list(candidates)


def mode_value(candidates: Sequence[PriceCandidate]) -> Optional[float]:
    """Most frequent value; ties go to the largest value."""
    if not candidates:
        return None
    freq = Counter(c.value for c in candidates)
    best_value, _count = max(freq.items(), key=lambda kv: (kv[1], kv[0]))
    return best_value


def choose_price(candidates: Sequence[PriceCandidate]) -> Optional[float]:
    if not candidates:
        return None
    pool = preferred_partition(plausible(candidates))
    chosen = mode_value(pool)
    logger.debug("[arbitration] %d candidates -> %d in pool -> %s", len(candidates), len(pool), chosen)
    return chosen


def winning_sources(candidates: Sequence[PriceCandidate], price: Optional[float]) -> List[str]:
    """Distinct sources (in collection order) that produced the chosen price."""
    if price is None:
        return []
    out: List[str] = []
    for c in candidates:
        if c.value == price and c.source not in out:
            out.append(c.source)
    return out
