import os

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

from datetime import datetime, timedelta, timezone
from typing import Callable, Sequence
import pytest
from core.confidence_scorer import ConfidenceScorer
from core.context_assembler import ContextAssembler
from core.evidence_ranker import EvidenceRanker
from core.hybrid_search import HybridSearchEngine
from core.impact_calculator import ImpactCalculator
from core.retry import RetryPolicy
from model.catalog import Asset, Card, Catalog, Chunk, Scenario, Theme
from model.impact import LLMOptions, LLMResponse, TokenUsage
from model.search import SearchFilters, VectorMatch
from repository.catalog_repository import InMemoryCatalogRepository, matches_filters
from service.matrix_analysis_service import MatrixAnalysisService
from util.errors import LLMError

NOW = datetime(2026, 1, 15, tzinfo=timezone.utc)


class FakeRedis:
    """The handful of redis.asyncio calls the repositories make."""

    def __init__(self) -> None:
        self.data: dict[str, object] = {}
        self.ttl: dict[str, int] = {}

    async def hset(self, key, mapping):
        h = self.data.setdefault(key, {})
        h.update({k: str(v).encode("utf-8") for k, v in mapping.items()})
        return len(mapping)

    async def hgetall(self, key):
        return {k.encode("utf-8"): v for k, v in self.data.get(key, {}).items()}

    async def set(self, key, value, ex=None):
        self.data[key] = value
        if ex is not None:
            self.ttl[key] = ex
        return True

    async def get(self, key):
        return self.data.get(key)

    async def expire(self, key, seconds):
        if key not in self.data:
            return False
        self.ttl[key] = seconds
        return True

    async def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0


class FakeVectors:
    """Scores every filtered chunk by a fixed table of similarities."""

    def __init__(
        self,
        store: InMemoryCatalogRepository,
        similarities: dict[str, float] | None = None,
        error: Exception | None = None,
    ) -> None:
        self._store = store
        self._sims = similarities or {}
        self._error = error
        self.calls = 0

    async def search(
        self, query: str, filters: SearchFilters | None, limit: int, threshold: float
    ) -> list[VectorMatch]:
        self.calls += 1
        if self._error is not None:
            raise self._error
        chunks = await self._store.list_chunks(filters)
        matches = [
            VectorMatch(id=c.id, similarity=self._sims[c.id])
            for c in chunks
            if c.id in self._sims and matches_filters(c, filters)
        ]
        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches[:limit]


class FakeLLM:
    """Replays scripted replies; an Exception entry is raised instead."""

    name = "fake"

    def __init__(self, replies: Sequence[object]) -> None:
        self._replies = list(replies)
        self.calls = 0

    async def complete(self, system: str, user: str, options: LLMOptions) -> LLMResponse:
        reply = self._replies[min(self.calls, len(self._replies) - 1)]
        self.calls += 1
        if isinstance(reply, Exception):
            raise reply
        return LLMResponse(
            content=str(reply),
            model=options.model,
            provider=self.name,
            usage=TokenUsage(promptTokens=100, completionTokens=20, totalTokens=120),
            processingTimeMs=5,
        )


class MemorySink:
    def __init__(self) -> None:
        self.saved = []

    async def save(self, result) -> None:
        self.saved.append(result)

    async def get(self, asset_id, scenario_id, max_age_seconds=None):
        for r in reversed(self.saved):
            if r.assetId == asset_id and r.scenarioId == scenario_id:
                return r
        return None


async def no_sleep(_: float) -> None:
    return None


def _card(cid: str, title: str, content: str, days_old: int, source="expertAnalysis") -> Card:
    return Card(
        id=cid,
        title=title,
        content=content,
        sourceType=source,
        updatedAt=NOW - timedelta(days=days_old),
        chunks=[Chunk(id=f"{cid}-1", content=content, order=0)],
    )


def sample_catalog() -> Catalog:
    nvda_themes = [
        Theme(
            id="t-nvda-1",
            name="AI compute demand",
            description="Data-center accelerators and AI training workloads.",
            cards=[
                _card(
                    "c1",
                    "GPU revenue growth",
                    "NVIDIA AI compute revenue shows strong growth and market share "
                    "expansion. According to research, data-center demand is a major opportunity.",
                    10,
                ),
                _card(
                    "c2",
                    "Supply chain risk",
                    "Advanced packaging capacity is a risk and a threat to AI compute supply.",
                    40,
                    "marketData",
                ),
            ],
        )
    ]
    scenario_themes = [
        Theme(
            id="t-sc-1",
            name="Export controls",
            description="Restrictions on high-end chips.",
            cards=[
                _card(
                    "c3",
                    "Export restriction impact",
                    "Export controls create a challenge and risk for AI accelerator sales "
                    "in restricted markets, with potential revenue decline.",
                    5,
                    "themeAnalysis",
                ),
            ],
        )
    ]
    other_user_themes = [
        Theme(
            id="t-amd-1",
            name="Competing accelerators",
            cards=[
                _card(
                    "c4",
                    "AMD accelerator roadmap",
                    "Semiconductors technology trends analysis: AMD platform innovation "
                    "and competitive analysis of AI compute.",
                    20,
                )
            ],
        )
    ]
    return Catalog(
        assets=[
            Asset(
                id="nvda",
                name="NVIDIA",
                description="GPU and AI compute supplier.",
                category="Semiconductors",
                userId="u1",
                themes=nvda_themes,
            ),
            Asset(
                id="amd",
                name="AMD",
                description="CPU and GPU maker.",
                category="Semiconductors",
                userId="u2",
                themes=other_user_themes,
            ),
        ],
        scenarios=[
            Scenario(
                id="export",
                name="Export Controls",
                description="Tighter chip export rules.",
                probability=0.4,
                themes=scenario_themes,
            )
        ],
    )


@pytest.fixture
def store() -> InMemoryCatalogRepository:
    return InMemoryCatalogRepository(sample_catalog())


@pytest.fixture
def fixed_now() -> Callable[[], datetime]:
    return lambda: NOW


def build_analysis(store, *, llm=None, sink=None, metrics=None, vectors=None):
    search = HybridSearchEngine(store, vectors or FakeVectors(store), metrics=metrics)
    impact = ImpactCalculator(
        llm,
        system_prompt="system",
        default_options=LLMOptions(model="test-model"),
        retry_policy=RetryPolicy(retry_on=(LLMError,), sleep=no_sleep),
        metrics=metrics,
    )
    return MatrixAnalysisService(
        ContextAssembler(store, search, now=lambda: NOW),
        search,
        EvidenceRanker(now=lambda: NOW),
        impact,
        ConfidenceScorer(),
        sink=sink,
        metrics=metrics,
        provider_name="openai",
        now=lambda: NOW,
    )
