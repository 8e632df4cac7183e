# core/alpha.py
import logging
import re
from typing import Iterable, Optional
from core.ttl_cache import TTLCache
from util.functions import clamp
from util.metrics import MetricsRegistry

logger = logging.getLogger(__name__)

ALPHA_MIN = 0.2
ALPHA_MAX = 0.8

QUESTION_WORDS = frozenset(
    {
        "what", "when", "where", "which", "who", "whom", "whose", "why", "how",
        "define", "find", "list", "show", "tell", "explain",
    }
)
CONCEPTUAL_TERMS = frozenset(
    {
        "concept", "theory", "framework", "approach", "methodology", "paradigm",
        "philosophy", "strategy", "analysis", "understand", "relationship",
        "impact", "effect", "influence", "implication",
    }
)

_QUESTION_RE = re.compile(r"\?$|^(what|how|when|where|why|who|which)", re.IGNORECASE)
_OPERATOR_RE = re.compile(r"[+\-]")


def _domain_adjustment(domains: Iterable[str]) -> float:
    ds = set(domains)
    if ds & {"financial", "economics", "FINANCE"}:
        return 0.1
    if ds & {"news", "current_events"}:
        return -0.1
    if ds & {"TECHNICAL", "REGULATORY"}:
        return -0.05
    return 0.0


def heuristic_alpha(query: str, domains: Iterable[str] = ()) -> float:
    """
    Vector-search weight in [0.2, 0.8] derived from the shape of the query.

    Conceptual vocabulary and long words push towards semantic retrieval; question
    words, quotes and +/- operators push towards keyword retrieval.
    """
    tokens = query.lower().split()
    n = len(tokens)
    keywords = sum(1 for t in tokens if t in QUESTION_WORDS) / n if n else 0.0
    conceptual = sum(1 for t in tokens if t in CONCEPTUAL_TERMS) / n if n else 0.0
    avg_len = sum(len(t) for t in tokens) / n if n else 0.0
    complexity = clamp((avg_len - 3) / 5)

    syntax = 0.0
    if '"' in query or "'" in query:
        syntax -= 0.1
    if _OPERATOR_RE.search(query):
        syntax -= 0.05
    question = 0.05 if _QUESTION_RE.search(query.strip()) else 0.0

    alpha = (
        0.5
        + conceptual * 0.2
        - keywords * 0.15
        + complexity * 0.1
        + _domain_adjustment(domains)
        + syntax
        + question
    )
    return clamp(alpha, ALPHA_MIN, ALPHA_MAX)


class AlphaAdvisor:
    """Memoizes heuristic_alpha per lower-cased query."""

    def __init__(
        self,
        cache: TTLCache[str, float],
        domains: Iterable[str] = (),
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._cache = cache
        self._domains = tuple(domains)
        self._metrics = metrics

    def alpha_for(self, query: str) -> float:
        key = query.strip().lower()
        computed = False

        def compute() -> float:
            nonlocal computed
            computed = True
            return heuristic_alpha(query, self._domains)

        alpha = self._cache.get_or_set(key, compute)
        if computed:
            logger.debug("alpha.computed alpha=%.3f", alpha)
        if self._metrics:
            if computed:
                self._metrics.inc("alpha_cache_misses_total")
                self._metrics.set("alpha_cache_size", len(self._cache))
            else:
                self._metrics.inc("alpha_cache_hits_total")
        return alpha

    def weights_for(self, query: str) -> tuple[float, float]:
        """(keyword_weight, vector_weight) summing to 1."""
        alpha = self.alpha_for(query)
        return 1.0 - alpha, alpha
