# model/catalog.py
from datetime import datetime
from typing import Literal
from pydantic import BaseModel, Field

SourceType = Literal[
    "userGenerated",
    "aiCategorized",
    "themeAnalysis",
    "marketData",
    "expertAnalysis",
]


class Chunk(BaseModel):
    id: str
    content: str
    order: int = 0


class Card(BaseModel):
    id: str
    title: str
    content: str = ""
    importance: int | None = None
    sourceType: SourceType = "userGenerated"
    updatedAt: datetime | None = None
    chunks: list[Chunk] = Field(default_factory=list)


class Theme(BaseModel):
    id: str
    name: str
    description: str | None = None
    cards: list[Card] = Field(default_factory=list)


class Asset(BaseModel):
    id: str
    name: str
    description: str | None = None
    category: str | None = None
    userId: str | None = None
    themes: list[Theme] = Field(default_factory=list)


class Scenario(BaseModel):
    id: str
    name: str
    description: str | None = None
    type: str | None = None
    timeline: str | None = None
    probability: float | None = Field(default=None, ge=0, le=1)
    themes: list[Theme] = Field(default_factory=list)


class Catalog(BaseModel):
    """Seed document for the in-memory store."""

    assets: list[Asset] = Field(default_factory=list)
    scenarios: list[Scenario] = Field(default_factory=list)


class EvidenceChunk(BaseModel):
    """A chunk with its provenance flattened in, as retrieval sees it."""

    id: str
    content: str
    order: int = 0
    cardId: str
    cardTitle: str
    themeId: str
    themeName: str
    assetId: str | None = None
    assetName: str | None = None
    scenarioId: str | None = None
    scenarioName: str | None = None
    userId: str | None = None
    sourceType: SourceType = "userGenerated"
    updatedAt: datetime | None = None
