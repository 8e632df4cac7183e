# model/search.py
from datetime import datetime
from typing import Literal
from pydantic import BaseModel, Field
from model.catalog import SourceType

SearchSource = Literal["keyword", "vector"]
Relevance = Literal["high", "medium", "low"]


class SearchFilters(BaseModel):
    # assetId/scenarioId are alternatives: a chunk matches when it belongs to either.
    assetId: str | None = None
    scenarioId: str | None = None
    themeId: str | None = None
    cardIds: list[str] | None = None
    excludeUserId: str | None = None


class VectorMatch(BaseModel):
    id: str
    similarity: float


class SearchHit(BaseModel):
    id: str
    content: str
    cardId: str | None = None
    cardTitle: str | None = None
    score: float
    rank: int = Field(ge=1)
    source: SearchSource


class FusedResult(BaseModel):
    id: str
    content: str
    keywordScore: float = 0.0
    vectorScore: float = 0.0
    keywordRank: int | None = None
    vectorRank: int | None = None
    rrfScore: float


class HybridSearchResult(FusedResult):
    hybridScore: float
    relevance: Relevance
    context: str
    cardId: str | None = None
    cardTitle: str | None = None
    sourceType: SourceType = "userGenerated"
    updatedAt: datetime | None = None
    metadata: dict[str, str | None] = Field(default_factory=dict)


class HybridSearchRequest(BaseModel):
    query: str = Field(min_length=1)
    filters: SearchFilters | None = None
    limit: int = Field(default=20, ge=1, le=100)
    keywordWeight: float | None = Field(default=None, ge=0, le=1)
    vectorWeight: float | None = Field(default=None, ge=0, le=1)


class HybridSearchResponse(BaseModel):
    query: str
    results: list[HybridSearchResult]
    total: int
