# core/evidence_ranker.py
import logging
import re
from datetime import datetime, timezone
from typing import Callable, Mapping, Optional, Sequence
from model.catalog import SourceType
from model.evidence import (
    EvidenceQualityReport,
    EvidenceType,
    GroupedEvidence,
    QualityDistribution,
    RankedEvidence,
    RankingContext,
    ScoringBreakdown,
    ScoringWeights,
)
from model.search import HybridSearchResult
from util.functions import clamp, contains_any, mean

logger = logging.getLogger(__name__)

SOURCE_CREDIBILITY: dict[str, float] = {
    "userGenerated": 0.7,
    "aiCategorized": 0.6,
    "themeAnalysis": 0.8,
    "marketData": 0.9,
    "expertAnalysis": 0.95,
}

DENSITY_KEYWORDS = (
    "technology", "innovation", "market", "growth", "disruption",
    "competitive", "advantage", "risk", "opportunity", "analysis",
    "impact", "revenue", "profit", "investment", "strategy",
)
TECHNICAL_TERMS = (
    "ai", "machine learning", "neural network", "algorithm",
    "blockchain", "quantum", "robotics", "automation",
    "cloud computing", "cybersecurity", "iot", "api",
    "scalability", "optimization", "integration",
)
AUTHORITATIVE_PHRASES = (
    "according to", "research shows", "study found",
    "data indicates", "analysis reveals", "report states",
)

FINANCIAL_TERMS = ("revenue", "profit", "cost", "investment", "valuation", "margin", "earnings")
MARKET_TERMS = ("market share", "competition", "industry", "sector", "customer", "demand")
TECHNICAL_INDICATORS = ("technology", "technical", "innovation", "development", "platform", "system")
RISK_TERMS = ("risk", "threat", "vulnerability", "challenge", "problem", "concern")
OPPORTUNITY_TERMS = ("opportunity", "growth", "potential", "benefit", "advantage", "expansion")
STRATEGIC_TERMS = ("strategy", "strategic", "plan", "approach", "roadmap", "vision")

# First match wins.
TYPE_PRECEDENCE: tuple[tuple[EvidenceType, tuple[str, ...]], ...] = (
    ("financial_impact", FINANCIAL_TERMS),
    ("market_analysis", MARKET_TERMS),
    ("technical_analysis", TECHNICAL_INDICATORS),
    ("risk_assessment", RISK_TERMS),
    ("strategic_insight", STRATEGIC_TERMS),
)

WEIGHT_PROFILES: dict[str, ScoringWeights] = {
    "risk_assessment": ScoringWeights(credibility=0.4, recency=0.4, contextRelevance=0.2),
    "opportunity_analysis": ScoringWeights(credibility=0.2, recency=0.2, contextRelevance=0.6),
    "market_analysis": ScoringWeights(credibility=0.4, recency=0.5, contextRelevance=0.1),
}
DEFAULT_WEIGHTS = ScoringWeights(credibility=0.3, recency=0.3, contextRelevance=0.4)

PRIORITY_FACTOR_BOOST = 0.05
DAYS_PER_MONTH = 30.0
_SENTENCE_SPLIT = re.compile(r"[.!?]+")

TemporalRelevance = Callable[[HybridSearchResult, RankingContext], float]


def constant_temporal_relevance(
    item: HybridSearchResult, context: RankingContext
) -> float:
    """Placeholder until content-derived temporal relevance exists."""
    return 0.8


def content_quality(content: str) -> float:
    score = 0.5
    length = len(content)
    if length > 1000:
        score += 0.2
    elif length > 500:
        score += 0.15
    elif length > 200:
        score += 0.1
    elif length < 50:
        score -= 0.2

    sentences = [s for s in _SENTENCE_SPLIT.split(content) if s.strip()]
    if len(sentences) >= 3:
        score += 0.1
    if len(sentences) >= 6:
        score += 0.1

    words = content.lower().split()
    if words:
        hits = sum(1 for w in words if any(k in w for k in DENSITY_KEYWORDS))
        score += min(0.2, (hits / len(words)) * 0.4)

    lower = content.lower()
    technical = sum(1 for t in TECHNICAL_TERMS if t in lower)
    score += min(0.15, technical * 0.03)
    return clamp(score, 0.1, 1.0)


def classify_evidence(content: str) -> EvidenceType:
    lower = content.lower()
    for etype, terms in TYPE_PRECEDENCE:
        if any(t in lower for t in terms):
            return etype
    return "general_analysis"


def weights_for(context: RankingContext) -> ScoringWeights:
    if context.weightOverride is not None:
        return context.weightOverride
    return WEIGHT_PROFILES.get(context.analysisType, DEFAULT_WEIGHTS)


class EvidenceRanker:
    """
    Scores hybrid hits and orders them. Deterministic for a fixed clock: the
    only time-dependent input is `now`, injected at construction.
    """

    def __init__(
        self,
        *,
        temporal_decay_factor: float = 0.95,
        source_credibility: Optional[Mapping[str, float]] = None,
        temporal_relevance: TemporalRelevance = constant_temporal_relevance,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        if not 0 < temporal_decay_factor <= 1:
            raise ValueError("temporal_decay_factor must be in (0, 1]")
        self._decay = temporal_decay_factor
        self._credibility = {**SOURCE_CREDIBILITY, **(source_credibility or {})}
        self._temporal = temporal_relevance
        self._now = now

    # ---------------- Per-item scores ----------------

    def recency(self, updated_at: datetime | None, now: datetime) -> float:
        if updated_at is None:
            return 0.5
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        days = max(0.0, (now - updated_at).total_seconds() / 86400.0)
        return max(0.1, self._decay ** (days / DAYS_PER_MONTH))

    def credibility(self, content: str, source_type: SourceType, hybrid_score: float) -> float:
        score = self._credibility.get(source_type, 0.5)
        if contains_any(content, AUTHORITATIVE_PHRASES):
            score += 0.1
        if hybrid_score > 0.7:
            score += 0.05
        return clamp(score, 0.1, 1.0)

    @staticmethod
    def context_relevance(item: HybridSearchResult, context: RankingContext) -> float:
        score = item.hybridScore
        lower = item.content.lower()
        if context.analysisType == "risk_assessment" and any(t in lower for t in RISK_TERMS):
            score += 0.1
        if context.analysisType == "opportunity_analysis" and any(
            t in lower for t in OPPORTUNITY_TERMS
        ):
            score += 0.1
        if context.priorityFactors and any(
            f.lower() in lower for f in context.priorityFactors if f
        ):
            score += PRIORITY_FACTOR_BOOST
        return clamp(score)

    def breakdown(
        self, item: HybridSearchResult, context: RankingContext, now: datetime
    ) -> ScoringBreakdown:
        return ScoringBreakdown(
            contentQuality=content_quality(item.content),
            recency=self.recency(item.updatedAt, now),
            credibility=self.credibility(item.content, item.sourceType, item.hybridScore),
            temporal=clamp(self._temporal(item, context)),
            contextRelevance=self.context_relevance(item, context),
        )

    # ---------------- Ranking ----------------

    def rank(
        self, items: Sequence[HybridSearchResult], context: RankingContext
    ) -> list[RankedEvidence]:
        now = self._now()
        w = weights_for(context)
        w_sum = w.credibility + w.recency + w.contextRelevance
        if w_sum <= 0:
            raise ValueError("ranking weights must not all be zero")

        scored: list[tuple[HybridSearchResult, ScoringBreakdown, float, float, float]] = []
        for item in items:
            b = self.breakdown(item, context, now)
            confidence = clamp(
                (
                    b.credibility * w.credibility
                    + b.recency * w.recency
                    + b.contextRelevance * w.contextRelevance
                )
                / w_sum
            )
            quality = clamp(b.contentQuality * 0.6 + b.temporal * 0.4)
            final = clamp(confidence * 0.4 + quality * 0.3 + b.contextRelevance * 0.3)
            scored.append((item, b, confidence, quality, final))

        # sorted() is stable: equal scores keep input order
        scored.sort(key=lambda t: t[4], reverse=True)
        ranked = [
            RankedEvidence(
                id=item.id,
                source=item.cardTitle or "Unknown source",
                content=item.content,
                cardId=item.cardId,
                relevanceScore=item.hybridScore,
                confidenceScore=confidence,
                qualityScore=quality,
                recencyScore=b.recency,
                credibilityScore=b.credibility,
                finalScore=final,
                evidenceType=classify_evidence(item.content),
                rank=i + 1,
                breakdown=b,
            )
            for i, (item, b, confidence, quality, final) in enumerate(scored)
        ]
        logger.info(
            "evidence.rank.done n=%d type=%s top=%.3f",
            len(ranked),
            context.analysisType,
            ranked[0].finalScore if ranked else 0.0,
        )
        return ranked

    # ---------------- Views over ranked evidence ----------------

    @staticmethod
    def group_by_priority(ranked: Sequence[RankedEvidence]) -> GroupedEvidence:
        groups = GroupedEvidence()
        for e in ranked:
            if e.finalScore >= 0.8 and e.rank <= 3:
                groups.critical.append(e)
            elif e.finalScore >= 0.6 and e.rank <= 8:
                groups.important.append(e)
            elif e.finalScore >= 0.4:
                groups.supporting.append(e)
            else:
                groups.contextual.append(e)
        return groups

    @staticmethod
    def quality_report(ranked: Sequence[RankedEvidence]) -> EvidenceQualityReport:
        if not ranked:
            return EvidenceQualityReport(
                overallQuality=0.0,
                averageConfidence=0.0,
                averageRecency=0.0,
                averageCredibility=0.0,
                qualityDistribution=QualityDistribution(),
                recommendations=["No evidence available for analysis"],
            )

        overall = mean(e.qualityScore for e in ranked)
        avg_conf = mean(e.confidenceScore for e in ranked)
        avg_rec = mean(e.recencyScore for e in ranked)
        avg_cred = mean(e.credibilityScore for e in ranked)
        dist = QualityDistribution(
            high=sum(1 for e in ranked if e.qualityScore >= 0.7),
            medium=sum(1 for e in ranked if 0.4 <= e.qualityScore < 0.7),
            low=sum(1 for e in ranked if e.qualityScore < 0.4),
        )

        recs: list[str] = []
        if overall < 0.4:
            recs.append(
                "Consider gathering higher-quality evidence sources for more reliable analysis"
            )
        if avg_rec < 0.5:
            recs.append(
                "Evidence appears dated - seek more recent information for current market conditions"
            )
        if avg_cred < 0.6:
            recs.append(
                "Source credibility is moderate - verify findings with authoritative sources"
            )
        if dist.low > dist.high + dist.medium:
            recs.append(
                "Majority of evidence is low quality - analysis confidence may be limited"
            )
        if len(ranked) < 5:
            recs.append(
                "Limited evidence available - consider expanding data sources for comprehensive analysis"
            )
        if not recs:
            recs.append("Evidence quality is good - analysis should provide reliable insights")

        return EvidenceQualityReport(
            overallQuality=overall,
            averageConfidence=avg_conf,
            averageRecency=avg_rec,
            averageCredibility=avg_cred,
            qualityDistribution=dist,
            recommendations=recs[:4],
        )

    @staticmethod
    def filter_by_quality(
        ranked: Sequence[RankedEvidence],
        min_quality: float = 0.3,
        max_items: int | None = None,
    ) -> list[RankedEvidence]:
        kept = [e for e in ranked if e.qualityScore >= min_quality]
        if max_items is not None:
            kept = kept[:max_items]
        return kept


def average_confidence(evidence: Sequence[RankedEvidence]) -> float:
    return mean(e.confidenceScore for e in evidence)


def top_evidence_by_type(
    evidence: Sequence[RankedEvidence], evidence_type: EvidenceType, limit: int = 3
) -> list[RankedEvidence]:
    matches = [e for e in evidence if e.evidenceType == evidence_type]
    return sorted(matches, key=lambda e: e.finalScore, reverse=True)[:limit]
