# model/evidence.py
from typing import Literal
from pydantic import BaseModel, Field

EvidenceType = Literal[
    "financial_impact",
    "market_analysis",
    "technical_analysis",
    "risk_assessment",
    "strategic_insight",
    "general_analysis",
]

AnalysisType = Literal[
    "matrix_analysis",
    "risk_assessment",
    "opportunity_analysis",
    "market_analysis",
]


class ScoringWeights(BaseModel):
    credibility: float = Field(ge=0)
    recency: float = Field(ge=0)
    contextRelevance: float = Field(ge=0)


class RankingContext(BaseModel):
    analysisType: AnalysisType = "matrix_analysis"
    priorityFactors: list[str] = Field(default_factory=list)
    weightOverride: ScoringWeights | None = None


class ScoringBreakdown(BaseModel):
    contentQuality: float
    recency: float
    credibility: float
    temporal: float
    contextRelevance: float


class RankedEvidence(BaseModel):
    id: str
    source: str
    content: str
    cardId: str | None = None
    relevanceScore: float
    confidenceScore: float = Field(ge=0, le=1)
    qualityScore: float = Field(ge=0, le=1)
    recencyScore: float = Field(ge=0, le=1)
    credibilityScore: float = Field(ge=0, le=1)
    finalScore: float = Field(ge=0, le=1)
    evidenceType: EvidenceType
    rank: int = Field(ge=1)
    breakdown: ScoringBreakdown


class GroupedEvidence(BaseModel):
    critical: list[RankedEvidence] = Field(default_factory=list)
    important: list[RankedEvidence] = Field(default_factory=list)
    supporting: list[RankedEvidence] = Field(default_factory=list)
    contextual: list[RankedEvidence] = Field(default_factory=list)


class QualityDistribution(BaseModel):
    high: int = 0
    medium: int = 0
    low: int = 0


class EvidenceQualityReport(BaseModel):
    overallQuality: float
    averageConfidence: float
    averageRecency: float
    averageCredibility: float
    qualityDistribution: QualityDistribution
    recommendations: list[str]
