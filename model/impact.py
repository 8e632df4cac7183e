# model/impact.py
from typing import Literal
from pydantic import AliasChoices, BaseModel, Field

Direction = Literal["positive", "negative", "neutral"]
ImpactSource = Literal["llm", "heuristic"]


class ImpactIndicators(BaseModel):
    opportunities: float = Field(default=0.0, ge=0, le=1)
    threats: float = Field(default=0.0, ge=0, le=1)
    growth: float = Field(default=0.0, ge=0, le=1)
    risks: float = Field(default=0.0, ge=0, le=1)
    innovation: float = Field(default=0.0, ge=0, le=1)
    disruption: float = Field(default=0.0, ge=0, le=1)


class EvidenceCitation(BaseModel):
    id: str = Field(validation_alias=AliasChoices("id", "cardId"))
    relevance: float = Field(ge=0, le=1)


class ImpactExplainResponse(BaseModel):
    """Validated shape of the model's JSON answer."""

    impactScore: int = Field(ge=-5, le=5)
    rationale: str = Field(max_length=200)
    evidence: list[EvidenceCitation] = Field(default_factory=list, max_length=5)
    confidence: float = Field(ge=0, le=1)


class TokenUsage(BaseModel):
    promptTokens: int = 0
    completionTokens: int = 0
    totalTokens: int = 0


class LLMOptions(BaseModel):
    model: str
    temperature: float = 0.3
    maxTokens: int = 2000
    jsonMode: bool = True
    timeoutSeconds: float = 25.0


class LLMResponse(BaseModel):
    content: str
    model: str
    provider: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    processingTimeMs: int = 0


class CostEstimate(BaseModel):
    inputTokens: int
    outputTokens: int
    totalTokens: int
    estimatedCost: float
    model: str


class ImpactCalculation(BaseModel):
    rawScore: float = Field(ge=-5, le=5)
    normalizedScore: float = Field(ge=0, le=1)
    direction: Direction
    breakdown: ImpactIndicators
    reasoning: str
    evidenceIds: list[str] = Field(default_factory=list)
    llmConfidence: float = Field(ge=0, le=1)
    compositeConfidence: float = Field(ge=0, le=1)
    source: ImpactSource
    attempts: int = 0
    llmUsage: TokenUsage | None = None
    costEstimate: CostEstimate | None = None
