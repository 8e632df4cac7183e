# util/functions.py
import math
from typing import Iterable


def clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    if math.isnan(value):
        return lo
    return max(lo, min(hi, value))


def mean(values: Iterable[float], default: float = 0.0) -> float:
    vals = list(values)
    if not vals:
        return default
    return sum(vals) / len(vals)


def estimate_tokens(text: str) -> int:
    # ~4 characters per token for English text
    return math.ceil(len(text) / 4)


def contains_any(text: str, terms: Iterable[str]) -> bool:
    lower = text.lower()
    return any(t in lower for t in terms)
