# model/context.py
from datetime import datetime
from typing import Literal
from pydantic import BaseModel, Field

SectionType = Literal[
    "asset_overview",
    "scenario_overview",
    "asset_theme",
    "scenario_theme",
    "search_result",
    "portfolio_overview",
    "portfolio_insight",
    "trend_overview",
]


class ContextSection(BaseModel):
    type: SectionType
    title: str
    content: str
    cardIds: list[str] = Field(default_factory=list)


class MatrixAnalysisContext(BaseModel):
    assetId: str
    scenarioId: str
    assembledContext: str
    sections: list[ContextSection]
    evidenceCount: int
    tokenCount: int
    generatedAt: datetime


class PortfolioAnalysisContext(BaseModel):
    userId: str
    assembledContext: str
    sections: list[ContextSection]
    assetCount: int
    evidenceCount: int
    tokenCount: int
    generatedAt: datetime


class TechnologyTrendContext(BaseModel):
    technologyCategory: str
    timeframe: str | None = None
    assembledContext: str
    sections: list[ContextSection]
    evidenceCount: int
    tokenCount: int
    generatedAt: datetime
