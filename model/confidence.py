# model/confidence.py
from typing import Literal
from pydantic import BaseModel, Field

QualityGrade = Literal["A+", "A", "B+", "B", "C+", "C", "D", "F"]
ConsistencyRating = Literal["excellent", "good", "moderate", "poor"]
ConfidenceTrend = Literal["improving", "stable", "declining"]


class ConfidenceDimensions(BaseModel):
    dataQuality: float = Field(ge=0, le=1)
    evidenceStrength: float = Field(ge=0, le=1)
    analysisConsistency: float = Field(ge=0, le=1)
    temporalReliability: float = Field(ge=0, le=1)
    sourceCredibility: float = Field(ge=0, le=1)
    methodological: float = Field(ge=0, le=1)


class UncertaintyFactors(BaseModel):
    dataSparsity: float
    sourceDiversity: float
    modelUncertainty: float
    temporalUncertainty: float
    overallUncertainty: float


class ConfidenceInterval(BaseModel):
    lower: float
    upper: float
    width: float


class ConfidenceScore(BaseModel):
    overall: float = Field(ge=0.1, le=1)
    dimensions: ConfidenceDimensions
    uncertainty: UncertaintyFactors
    confidenceInterval: ConfidenceInterval
    qualityGrade: QualityGrade
    recommendations: list[str]


class ImpactInput(BaseModel):
    """The slice of an impact calculation the scorer needs."""

    score: float
    direction: Literal["positive", "negative", "neutral"]


class ImpactBounds(BaseModel):
    pointEstimate: float
    lowerBound: float
    upperBound: float
    marginOfError: float
    confidenceLevel: float
    interpretation: str


class ConfidenceDegradation(BaseModel):
    originalConfidence: float
    currentConfidence: float
    degradationRate: float
    daysSinceAnalysis: float
    recommendRefresh: bool
    freshnessFactor: float


class AnalysisConfidence(BaseModel):
    analysisId: str
    confidence: float


class ConfidenceComparison(BaseModel):
    highestConfidence: AnalysisConfidence
    lowestConfidence: AnalysisConfidence
    averageConfidence: float
    confidenceVariance: float
    consistencyRating: ConsistencyRating
