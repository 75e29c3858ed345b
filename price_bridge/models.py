"""Data models shared by the collectors, arbitration and the orchestrator."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class PriceCandidate:
    """A provisional price tagged with the strategy that produced it."""

    value: float
    source: str
    context: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.value, (int, float)) or isinstance(self.value, bool):
            raise ValueError(f"price candidate must be numeric, got {self.value!r}")
        if not math.isfinite(self.value) or self.value <= 0:
            raise ValueError(f"price candidate must be finite and > 0, got {self.value!r}")


@dataclass
class Collected:
    """Evidence gathered by the collectors from one parsed document."""

    prices: List[PriceCandidate] = field(default_factory=list)
    structured_image: Optional[str] = None
    script_image: Optional[str] = None

    def add_price(self, value: Optional[float], source: str, context: str = "") -> bool:
        if value is None:
            return False
        self.prices.append(PriceCandidate(value=value, source=source, context=context))
        return True


@dataclass
class ExtractionResult:
    """Outcome of one pipeline run over one document."""

    price: Optional[float]
    image: Optional[str]
    strategies: List[str] = field(default_factory=list)
    candidates: List[PriceCandidate] = field(default_factory=list)


@dataclass
class PriceLookup:
    """Outcome of a URL lookup: the final result plus page metadata."""

    url: str
    result: Optional[ExtractionResult] = None
    title: Optional[str] = None
    fallback_image: Optional[str] = None
    stage: Optional[str] = None
    via: Optional[str] = None

    @property
    def document_found(self) -> bool:
        return self.result is not None

    @property
    def price(self) -> Optional[float]:
        return self.result.price if self.result else None

    @property
    def image(self) -> Optional[str]:
        if self.result and self.result.image:
            return self.result.image
        return self.fallback_image
