# model/analysis.py
from datetime import datetime
from pydantic import BaseModel, Field
from model.confidence import ConfidenceScore, ImpactBounds
from model.evidence import EvidenceType, QualityDistribution
from model.impact import CostEstimate, Direction, ImpactCalculation, TokenUsage


class MatrixAnalysisOptions(BaseModel):
    focusQuery: str | None = None
    contextTokenLimit: int | None = Field(default=None, ge=100, le=32000)
    confidenceThreshold: float | None = Field(default=None, ge=0, le=1)
    prioritizeRecency: bool = False
    model: str | None = None


class MatrixAnalysisRequest(MatrixAnalysisOptions):
    assetId: str = Field(min_length=1)
    scenarioId: str = Field(min_length=1)


class AssetScenarioPair(BaseModel):
    assetId: str = Field(min_length=1)
    scenarioId: str = Field(min_length=1)


class BatchAnalysisRequest(BaseModel):
    pairs: list[AssetScenarioPair] = Field(min_length=1, max_length=100)
    options: MatrixAnalysisOptions = Field(default_factory=MatrixAnalysisOptions)
    parallelLimit: int | None = Field(default=None, ge=1, le=10)


class EvidenceSummary(BaseModel):
    totalItems: int
    topSources: list[str]
    averageConfidence: float
    averageQuality: float
    typeDistribution: dict[EvidenceType, int]
    strongestEvidence: str
    qualityDistribution: QualityDistribution
    recommendations: list[str]


class AnalysisMetadata(BaseModel):
    contextTokens: int
    evidenceItems: int
    analysisVersion: str = "2.0"
    confidenceThreshold: float
    aiProvider: str
    model: str | None = None
    llmUsage: TokenUsage | None = None
    costEstimate: CostEstimate | None = None


class MatrixAnalysisResult(BaseModel):
    analysisId: str
    assetId: str
    scenarioId: str
    assetName: str
    scenarioName: str
    impactScore: float = Field(ge=0, le=1)
    rawImpactScore: float = Field(ge=-5, le=5)
    impactDirection: Direction
    confidenceLevel: float = Field(ge=0, le=1)
    compositeConfidence: float = Field(ge=0, le=1)
    confidence: ConfidenceScore
    impact: ImpactCalculation
    impactBounds: ImpactBounds
    keyInsights: list[str]
    evidenceSummary: EvidenceSummary
    processingTimeMs: int
    generatedAt: datetime
    metadata: AnalysisMetadata


class PairError(BaseModel):
    assetId: str
    scenarioId: str
    error: str


class ImpactDistribution(BaseModel):
    positive: int = 0
    negative: int = 0
    neutral: int = 0


class ProcessingTimeStats(BaseModel):
    min: int = 0
    max: int = 0
    average: float = 0.0


class BatchSummary(BaseModel):
    averageImpactScore: float
    averageConfidence: float
    impactDistribution: ImpactDistribution
    highConfidenceResults: int
    processingTimeStats: ProcessingTimeStats


class BatchAnalysisResult(BaseModel):
    batchId: str
    totalPairs: int
    successfulAnalyses: int
    failedAnalyses: int
    results: list[MatrixAnalysisResult]
    errors: list[PairError]
    summary: BatchSummary
    processingTimeMs: int
    generatedAt: datetime
