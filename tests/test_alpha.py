import time
from concurrent.futures import ThreadPoolExecutor
import pytest
import core.alpha as alpha_module
from core.alpha import ALPHA_MAX, ALPHA_MIN, AlphaAdvisor, heuristic_alpha
from core.ttl_cache import TTLCache
from util.metrics import MetricsRegistry


@pytest.mark.parametrize(
    "query, domains",
    [
        ("NVIDIA", ()),
        ("what is the export impact?", ()),
        ('"H100" -china who when', ("news",)),
        ("strategy analysis framework impact", ("financial",)),
        ("", ()),
    ],
)
def test_alpha_is_bounded(query, domains):
    assert ALPHA_MIN <= heuristic_alpha(query, domains) <= ALPHA_MAX


def test_conceptual_queries_lean_semantic():
    assert heuristic_alpha("strategy analysis framework impact", ["financial"]) == ALPHA_MAX
    assert heuristic_alpha("who when where") < heuristic_alpha("market strategy analysis")


def test_advisor_caches_per_normalized_query():
    metrics = MetricsRegistry()
    advisor = AlphaAdvisor(TTLCache(max_size=10, ttl_seconds=60), metrics=metrics)

    first = advisor.alpha_for("AI compute demand")
    second = advisor.alpha_for("  ai compute DEMAND ")

    assert first == second
    assert metrics.get("alpha_cache_misses_total") == 1
    assert metrics.get("alpha_cache_hits_total") == 1
    assert metrics.get("alpha_cache_size") == 1


def test_weights_sum_to_one():
    advisor = AlphaAdvisor(TTLCache(max_size=10, ttl_seconds=60))
    kw, vec = advisor.weights_for("export controls impact on accelerators")
    assert kw + vec == pytest.approx(1.0)
    assert vec == advisor.alpha_for("export controls impact on accelerators")


def test_advisor_computes_each_query_once_across_threads(monkeypatch):
    calls = []

    def slow_alpha(query, domains=()):
        calls.append(query)
        time.sleep(0.01)
        return 0.5

    monkeypatch.setattr(alpha_module, "heuristic_alpha", slow_alpha)
    advisor = AlphaAdvisor(TTLCache(max_size=10, ttl_seconds=60))
    with ThreadPoolExecutor(max_workers=8) as pool:
        out = list(pool.map(advisor.alpha_for, ["Export impact"] * 8))

    assert out == [0.5] * 8
    assert len(calls) == 1
