# core/providers.py
from typing import Protocol, Sequence
from model.analysis import MatrixAnalysisResult
from model.catalog import Asset, Card, EvidenceChunk, Scenario
from model.impact import LLMOptions, LLMResponse
from model.job import JobEvent
from model.search import SearchFilters, VectorMatch


class DataStore(Protocol):
    async def get_asset(self, asset_id: str) -> Asset | None: ...

    async def get_scenario(self, scenario_id: str) -> Scenario | None: ...

    async def get_card(self, card_id: str) -> Card | None: ...

    async def list_assets(
        self,
        *,
        user_id: str | None = None,
        categories: Sequence[str] | None = None,
    ) -> list[Asset]: ...

    async def find_chunks(
        self, query: str, filters: SearchFilters | None, limit: int
    ) -> list[EvidenceChunk]:
        """Keyword candidates in storage order (ascending chunk order)."""
        ...

    async def get_chunks(self, ids: Sequence[str]) -> dict[str, EvidenceChunk]: ...

    async def list_chunks(self, filters: SearchFilters | None = None) -> list[EvidenceChunk]: ...


class VectorSearchProvider(Protocol):
    async def search(
        self,
        query: str,
        filters: SearchFilters | None,
        limit: int,
        threshold: float,
    ) -> list[VectorMatch]:
        """Matches ordered by similarity, highest first."""
        ...


class LLMProvider(Protocol):
    name: str

    async def complete(
        self, system: str, user: str, options: LLMOptions
    ) -> LLMResponse: ...


class ResultSink(Protocol):
    async def save(self, result: MatrixAnalysisResult) -> None: ...


class EventSink(Protocol):
    async def emit(self, event: JobEvent) -> None: ...


class ResultStore(ResultSink, Protocol):
    async def get(
        self,
        asset_id: str,
        scenario_id: str,
        max_age_seconds: float | None = None,
    ) -> MatrixAnalysisResult | None: ...
