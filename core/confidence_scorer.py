# core/confidence_scorer.py
import logging
from typing import Sequence
from model.confidence import (
    AnalysisConfidence,
    ConfidenceComparison,
    ConfidenceDegradation,
    ConfidenceDimensions,
    ConfidenceInterval,
    ConfidenceScore,
    ConfidenceTrend,
    ImpactBounds,
    ImpactInput,
    QualityGrade,
    UncertaintyFactors,
)
from model.context import MatrixAnalysisContext
from model.evidence import RankedEvidence
from util.functions import clamp, mean

logger = logging.getLogger(__name__)

DIMENSION_WEIGHTS = {
    "dataQuality": 0.25,
    "evidenceStrength": 0.25,
    "analysisConsistency": 0.2,
    "temporalReliability": 0.1,
    "sourceCredibility": 0.1,
    "methodological": 0.1,
}
MODEL_UNCERTAINTY = 0.2
EVIDENCE_TYPE_COUNT = 6

GRADE_LADDER: tuple[tuple[float, QualityGrade], ...] = (
    (0.9, "A+"),
    (0.8, "A"),
    (0.7, "B+"),
    (0.6, "B"),
    (0.5, "C+"),
    (0.4, "C"),
    (0.3, "D"),
)

POSITIVE_TERMS = ("opportunity", "growth", "benefit")
NEGATIVE_TERMS = ("risk", "threat", "challenge")


def quality_grade(overall: float) -> QualityGrade:
    for threshold, grade in GRADE_LADDER:
        if overall >= threshold:
            return grade
    return "F"


def interpret_confidence_level(confidence: float) -> str:
    if confidence >= 0.8:
        return "High confidence - suitable for major decisions"
    if confidence >= 0.6:
        return "Moderate confidence - proceed with caution"
    if confidence >= 0.4:
        return "Low confidence - seek additional validation"
    return "Very low confidence - insufficient for decision-making"


def confidence_trend(history: Sequence[float], periods_back: int = 5) -> ConfidenceTrend:
    """Compare the two halves of the most recent `periods_back` readings."""
    if len(history) < 2:
        return "stable"
    recent = list(history)[-periods_back:]
    half = len(recent) // 2
    first, second = mean(recent[:half]), mean(recent[half:])
    if second > first + 0.05:
        return "improving"
    if second < first - 0.05:
        return "declining"
    return "stable"


class ConfidenceScorer:
    """Six-dimension confidence with an explicit uncertainty model. Pure."""

    def __init__(
        self, *, baseline_confidence: float = 0.5, uncertainty_penalty: float = 0.1
    ) -> None:
        self._baseline = baseline_confidence
        self._penalty = uncertainty_penalty

    # ---------------- Dimensions ----------------

    def data_quality(
        self, context: MatrixAnalysisContext, evidence: Sequence[RankedEvidence]
    ) -> float:
        types = len({e.evidenceType for e in evidence})
        score = (
            self._baseline
            + min(1.0, context.tokenCount / 3000) * 0.3
            + min(1.0, len(evidence) / 10) * 0.2
            + (types / EVIDENCE_TYPE_COUNT) * 0.2
        )
        return clamp(score, 0.1, 1.0)

    @staticmethod
    def evidence_strength(evidence: Sequence[RankedEvidence]) -> float:
        if not evidence:
            return 0.1
        top3 = sorted((e.finalScore for e in evidence), reverse=True)[:3]
        score = (
            mean(e.qualityScore for e in evidence) * 0.3
            + mean(e.confidenceScore for e in evidence) * 0.3
            + mean(e.finalScore for e in evidence) * 0.2
            + min(1.0, len(evidence) / 15) * 0.1
            + mean(top3) * 0.1
        )
        return clamp(score, 0.1, 1.0)

    @staticmethod
    def analysis_consistency(
        impact: ImpactInput, evidence: Sequence[RankedEvidence]
    ) -> float:
        positive = sum(
            1 for e in evidence if any(t in e.content.lower() for t in POSITIVE_TERMS)
        )
        negative = sum(
            1 for e in evidence if any(t in e.content.lower() for t in NEGATIVE_TERMS)
        )
        balance = abs(positive - negative) / max(1, len(evidence))

        score = 0.5
        if (
            (impact.direction == "positive" and positive > negative)
            or (impact.direction == "negative" and negative > positive)
            or (impact.direction == "neutral" and balance < 0.3)
        ):
            score += 0.3
        if balance > 0.8:
            score -= 0.2
        return clamp(score, 0.1, 1.0)

    @staticmethod
    def temporal_reliability(evidence: Sequence[RankedEvidence]) -> float:
        if not evidence:
            return 0.5
        avg = mean(e.recencyScore for e in evidence)
        stale_ratio = sum(1 for e in evidence if e.recencyScore < 0.3) / len(evidence)
        return clamp(avg - stale_ratio * 0.3, 0.1, 1.0)

    @staticmethod
    def source_credibility(evidence: Sequence[RankedEvidence]) -> float:
        if not evidence:
            return 0.5
        avg = mean(e.credibilityScore for e in evidence)
        strong = sum(1 for e in evidence if e.credibilityScore > 0.8)
        return clamp(avg + min(0.2, strong * 0.05), 0.1, 1.0)

    @staticmethod
    def methodological(
        context: MatrixAnalysisContext, evidence: Sequence[RankedEvidence]
    ) -> float:
        score = 0.7
        n = len(evidence)
        if n >= 5:
            score += 0.1
        if n >= 10:
            score += 0.1
        if context.tokenCount >= 2000:
            score += 0.05
        if context.tokenCount >= 4000:
            score += 0.05
        if len({e.evidenceType for e in evidence}) >= 3:
            score += 0.1
        return clamp(score, 0.1, 1.0)

    @staticmethod
    def uncertainty(evidence: Sequence[RankedEvidence]) -> UncertaintyFactors:
        n = len(evidence)
        types = len({e.evidenceType for e in evidence})
        avg_recency = mean((e.recencyScore for e in evidence), default=0.5)
        sparsity = max(0.0, 1 - n / 15)
        diversity = max(0.0, 1 - types / EVIDENCE_TYPE_COUNT)
        temporal = max(0.0, 1 - avg_recency)
        return UncertaintyFactors(
            dataSparsity=sparsity,
            sourceDiversity=diversity,
            modelUncertainty=MODEL_UNCERTAINTY,
            temporalUncertainty=temporal,
            overallUncertainty=(sparsity + diversity + MODEL_UNCERTAINTY + temporal) / 4,
        )

    # ---------------- Aggregate ----------------

    def score(
        self,
        context: MatrixAnalysisContext,
        evidence: Sequence[RankedEvidence],
        impact: ImpactInput,
    ) -> ConfidenceScore:
        dims = ConfidenceDimensions(
            dataQuality=self.data_quality(context, evidence),
            evidenceStrength=self.evidence_strength(evidence),
            analysisConsistency=self.analysis_consistency(impact, evidence),
            temporalReliability=self.temporal_reliability(evidence),
            sourceCredibility=self.source_credibility(evidence),
            methodological=self.methodological(context, evidence),
        )
        unc = self.uncertainty(evidence)
        weighted = sum(getattr(dims, k) * w for k, w in DIMENSION_WEIGHTS.items())
        overall = clamp(weighted - unc.overallUncertainty * self._penalty, 0.1, 1.0)

        margin = unc.overallUncertainty * 0.3
        interval = ConfidenceInterval(
            lower=clamp(overall - margin),
            upper=clamp(overall + margin),
            width=margin * 2,
        )
        result = ConfidenceScore(
            overall=overall,
            dimensions=dims,
            uncertainty=unc,
            confidenceInterval=interval,
            qualityGrade=quality_grade(overall),
            recommendations=self._recommendations(overall, unc, len(evidence)),
        )
        logger.info(
            "confidence.score overall=%.3f grade=%s n=%d",
            overall,
            result.qualityGrade,
            len(evidence),
        )
        return result

    @staticmethod
    def _recommendations(
        overall: float, unc: UncertaintyFactors, n: int
    ) -> list[str]:
        recs: list[str] = []
        if overall < 0.5:
            recs.append(
                "Low confidence - consider gathering additional evidence before making decisions"
            )
        if unc.dataSparsity > 0.6:
            recs.append(
                "Limited data available - seek additional sources to improve analysis reliability"
            )
        if unc.sourceDiversity > 0.5:
            recs.append(
                "Evidence from limited source types - diversify information sources for better coverage"
            )
        if unc.temporalUncertainty > 0.6:
            recs.append("Evidence may be outdated - update with recent market information")
        if n < 5:
            recs.append(
                "Insufficient evidence for robust analysis - minimum 5-10 sources recommended"
            )
        if overall >= 0.8:
            recs.append(
                "High confidence analysis - findings suitable for strategic decision-making"
            )
        return recs[:3]

    # ---------------- Derived views ----------------

    @staticmethod
    def impact_bounds(impact_score: float, confidence: ConfidenceScore) -> ImpactBounds:
        overall = confidence.overall
        margin = (1 - overall) * 0.3 + confidence.uncertainty.overallUncertainty * 0.2
        lower = max(0.0, impact_score - margin)
        upper = min(1.0, impact_score + margin)
        spread = upper - lower
        pct = f"(±{spread * 50:.1f}%)"
        if spread < 0.1:
            text = f"High precision estimate with narrow range {pct}"
        elif spread < 0.3:
            text = f"Moderate precision estimate with reasonable uncertainty {pct}"
        else:
            text = f"Wide confidence bounds indicate significant uncertainty {pct}"
        return ImpactBounds(
            pointEstimate=impact_score,
            lowerBound=lower,
            upperBound=upper,
            marginOfError=margin,
            confidenceLevel=overall,
            interpretation=text,
        )

    @staticmethod
    def degradation(confidence: ConfidenceScore, days_since: float) -> ConfidenceDegradation:
        decay = max(0.0, 1 - days_since * 0.01)
        original = confidence.overall
        current = original * decay
        rate = (original - current) / original if original > 0 else 0.0
        return ConfidenceDegradation(
            originalConfidence=original,
            currentConfidence=current,
            degradationRate=rate,
            daysSinceAnalysis=days_since,
            recommendRefresh=rate > 0.2 or days_since > 30,
            freshnessFactor=decay,
        )

    @staticmethod
    def compare(scores: Sequence[tuple[str, ConfidenceScore]]) -> ConfidenceComparison:
        if not scores:
            empty = AnalysisConfidence(analysisId="", confidence=0.0)
            return ConfidenceComparison(
                highestConfidence=empty,
                lowestConfidence=empty,
                averageConfidence=0.0,
                confidenceVariance=0.0,
                consistencyRating="poor",
            )
        values = [s.overall for _, s in scores]
        avg = mean(values)
        variance = mean((v - avg) ** 2 for v in values)
        # max/min keep the first of equal values
        hi_id, hi = max(scores, key=lambda t: t[1].overall)
        lo_id, lo = min(scores, key=lambda t: t[1].overall)
        if variance < 0.01:
            rating = "excellent"
        elif variance < 0.05:
            rating = "good"
        elif variance < 0.15:
            rating = "moderate"
        else:
            rating = "poor"
        return ConfidenceComparison(
            highestConfidence=AnalysisConfidence(analysisId=hi_id, confidence=hi.overall),
            lowestConfidence=AnalysisConfidence(analysisId=lo_id, confidence=lo.overall),
            averageConfidence=avg,
            confidenceVariance=variance,
            consistencyRating=rating,
        )
