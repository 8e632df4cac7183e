# core/confidence_signals.py
from typing import Optional, Sequence
import numpy as np
from model.search import FusedResult
from util.functions import clamp

NEUTRAL_SIGNAL = 0.5
LLM_WEIGHT = 0.4
VARIANCE_WEIGHT = 0.3
CORRELATION_WEIGHT = 0.3
# Largest possible variance of values in [0, 1]
_MAX_UNIT_VARIANCE = 0.25


def composite_confidence(
    llm: float, retrieval_variance: float, rank_correlation: float
) -> float:
    """
    Weighted geometric mean of the model's self-reported confidence and two
    retrieval signals. A zero in any input yields zero.
    """
    c = clamp(llm)
    v = clamp(retrieval_variance)
    r = clamp(rank_correlation)
    return clamp((c**LLM_WEIGHT) * (v**VARIANCE_WEIGHT) * (r**CORRELATION_WEIGHT))


def retrieval_variance(scores: Sequence[float], top_k: int = 10) -> float:
    """
    Spread of the top-k fused scores, normalised to [0, 1]. A flat score list
    means retrieval could not separate good hits from bad ones.
    """
    top = sorted((float(s) for s in scores), reverse=True)[:top_k]
    if len(top) < 2:
        return NEUTRAL_SIGNAL
    arr = np.asarray(top, dtype=np.float64)
    peak = float(arr.max())
    if peak <= 0:
        return 0.0
    return clamp(float(np.var(arr / peak)) / _MAX_UNIT_VARIANCE)


def _ranks(values: np.ndarray) -> np.ndarray:
    """Average ranks (ties share the mean rank), 1-based."""
    order = np.argsort(values, kind="mergesort")
    ranks = np.empty(len(values), dtype=np.float64)
    ranks[order] = np.arange(1, len(values) + 1, dtype=np.float64)
    for v in np.unique(values):
        idx = values == v
        if idx.sum() > 1:
            ranks[idx] = ranks[idx].mean()
    return ranks


def spearman(a: Sequence[float], b: Sequence[float]) -> Optional[float]:
    if len(a) != len(b) or len(a) < 2:
        return None
    ra = _ranks(np.asarray(a, dtype=np.float64))
    rb = _ranks(np.asarray(b, dtype=np.float64))
    sa, sb = ra.std(), rb.std()
    if sa == 0 or sb == 0:
        return None
    return float(np.mean((ra - ra.mean()) * (rb - rb.mean())) / (sa * sb))


def rank_correlation(results: Sequence[FusedResult]) -> float:
    """
    Agreement between keyword and vector rankings over items both sources
    returned, mapped from [-1, 1] to [0, 1]. Neutral when there is nothing to
    compare.
    """
    shared = [
        (r.keywordRank, r.vectorRank)
        for r in results
        if r.keywordRank is not None and r.vectorRank is not None
    ]
    if len(shared) < 2:
        return NEUTRAL_SIGNAL
    rho = spearman([s[0] for s in shared], [s[1] for s in shared])
    if rho is None:
        return NEUTRAL_SIGNAL
    return clamp((rho + 1) / 2)
