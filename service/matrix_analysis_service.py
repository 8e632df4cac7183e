# service/matrix_analysis_service.py
import asyncio
import logging
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence
from uuid import uuid4
from core.confidence_scorer import ConfidenceScorer
from core.context_assembler import ContextAssembler
from core.evidence_ranker import EvidenceRanker, average_confidence
from core.hybrid_search import HybridSearchEngine
from core.impact_calculator import ImpactCalculator, generate_insights
from core.providers import ResultStore
from model.analysis import (
    AnalysisMetadata,
    BatchAnalysisRequest,
    BatchAnalysisResult,
    BatchSummary,
    EvidenceSummary,
    ImpactDistribution,
    MatrixAnalysisRequest,
    MatrixAnalysisResult,
    PairError,
    ProcessingTimeStats,
)
from model.confidence import ImpactInput
from model.evidence import RankedEvidence, RankingContext, ScoringWeights
from model.search import HybridSearchResult
from util.errors import AnalysisError, AppError
from util.enums import ErrorMessage
from util.functions import mean
from util.metrics import MetricsRegistry

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 20
TOP_SOURCES = 5
SUMMARY_RECOMMENDATIONS = 3
RECENCY_WEIGHTS = ScoringWeights(credibility=0.25, recency=0.5, contextRelevance=0.25)


def summarize_evidence(evidence: Sequence[RankedEvidence]) -> EvidenceSummary:
    report = EvidenceRanker.quality_report(evidence)
    top = list(evidence[:TOP_SOURCES])
    types = Counter(e.evidenceType for e in evidence)
    return EvidenceSummary(
        totalItems=len(evidence),
        topSources=[e.source for e in top],
        averageConfidence=average_confidence(evidence),
        averageQuality=report.overallQuality,
        typeDistribution={
            t: types.get(t, 0)
            for t in (
                "market_analysis",
                "financial_impact",
                "technical_analysis",
                "risk_assessment",
                "strategic_insight",
                "general_analysis",
            )
        },
        strongestEvidence=top[0].source if top else "None",
        qualityDistribution=report.qualityDistribution,
        recommendations=report.recommendations[:SUMMARY_RECOMMENDATIONS],
    )


def batch_summary(
    results: Sequence[MatrixAnalysisResult], confidence_threshold: float
) -> BatchSummary:
    if not results:
        return BatchSummary(
            averageImpactScore=0.0,
            averageConfidence=0.0,
            impactDistribution=ImpactDistribution(),
            highConfidenceResults=0,
            processingTimeStats=ProcessingTimeStats(),
        )
    directions = Counter(r.impactDirection for r in results)
    times = [r.processingTimeMs for r in results]
    return BatchSummary(
        averageImpactScore=mean(r.impactScore for r in results),
        averageConfidence=mean(r.confidenceLevel for r in results),
        impactDistribution=ImpactDistribution(
            positive=directions.get("positive", 0),
            negative=directions.get("negative", 0),
            neutral=directions.get("neutral", 0),
        ),
        highConfidenceResults=sum(
            1 for r in results if r.confidenceLevel > confidence_threshold
        ),
        processingTimeStats=ProcessingTimeStats(
            min=min(times), max=max(times), average=mean(times)
        ),
    )


class MatrixAnalysisService:
    """
    Sequences one analysis: entities -> context -> search -> rank -> impact ->
    confidence -> insights -> result -> sink. Every stage is injected.
    """

    def __init__(
        self,
        assembler: ContextAssembler,
        search: HybridSearchEngine,
        ranker: EvidenceRanker,
        impact: ImpactCalculator,
        scorer: ConfidenceScorer,
        *,
        sink: Optional[ResultStore] = None,
        metrics: Optional[MetricsRegistry] = None,
        provider_name: str = "heuristic",
        context_token_limit: int = 4000,
        confidence_threshold: float = 0.6,
        parallel_limit: int = 3,
        evidence_min_quality: float = 0.3,
        evidence_max_items: int = 15,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._assembler = assembler
        self._search = search
        self._ranker = ranker
        self._impact = impact
        self._scorer = scorer
        self._sink = sink
        self._metrics = metrics
        self._provider = provider_name
        self._tokens = context_token_limit
        self._threshold = confidence_threshold
        self._parallel = parallel_limit
        self._min_quality = evidence_min_quality
        self._max_items = evidence_max_items
        self._now = now

    def _count(self, name: str) -> None:
        if self._metrics:
            self._metrics.inc(name)

    @staticmethod
    def ranking_context(request: MatrixAnalysisRequest) -> RankingContext:
        return RankingContext(
            analysisType="matrix_analysis",
            priorityFactors=[request.focusQuery] if request.focusQuery else [],
            weightOverride=RECENCY_WEIGHTS if request.prioritizeRecency else None,
        )

    async def _gather_evidence(
        self, request: MatrixAnalysisRequest
    ) -> tuple[list[HybridSearchResult], list[RankedEvidence]]:
        hits = await self._search.search_for_matrix_analysis(
            request.assetId, request.scenarioId, request.focusQuery, SEARCH_LIMIT
        )
        ranked = self._ranker.rank(hits, self.ranking_context(request))
        kept = EvidenceRanker.filter_by_quality(ranked, self._min_quality, self._max_items)
        logger.info(
            "matrix.evidence hits=%d ranked=%d kept=%d", len(hits), len(ranked), len(kept)
        )
        return hits, kept

    async def analyze(self, request: MatrixAnalysisRequest) -> MatrixAnalysisResult:
        t0 = time.perf_counter()
        analysis_id = f"analysis_{request.assetId}_{request.scenarioId}_{uuid4().hex[:12]}"
        threshold = (
            request.confidenceThreshold
            if request.confidenceThreshold is not None
            else self._threshold
        )
        logger.info(
            "matrix.analyze.start id=%s asset=%s scenario=%s",
            analysis_id,
            request.assetId,
            request.scenarioId,
        )
        try:
            asset, scenario = await self._assembler.load_pair(
                request.assetId, request.scenarioId
            )
            context = await self._assembler.assemble(
                request.assetId,
                request.scenarioId,
                request.contextTokenLimit or self._tokens,
                pair=(asset, scenario),
            )
            hits, evidence = await self._gather_evidence(request)
            impact = await self._impact.calculate(
                asset, scenario, evidence, search_results=hits, model=request.model
            )
            confidence = self._scorer.score(
                context,
                evidence,
                ImpactInput(score=impact.normalizedScore, direction=impact.direction),
            )
            result = MatrixAnalysisResult(
                analysisId=analysis_id,
                assetId=asset.id,
                scenarioId=scenario.id,
                assetName=asset.name,
                scenarioName=scenario.name,
                impactScore=impact.normalizedScore,
                rawImpactScore=impact.rawScore,
                impactDirection=impact.direction,
                confidenceLevel=confidence.overall,
                compositeConfidence=impact.compositeConfidence,
                confidence=confidence,
                impact=impact,
                impactBounds=ConfidenceScorer.impact_bounds(
                    impact.normalizedScore, confidence
                ),
                keyInsights=generate_insights(impact, evidence),
                evidenceSummary=summarize_evidence(evidence),
                processingTimeMs=int((time.perf_counter() - t0) * 1000),
                generatedAt=self._now(),
                metadata=AnalysisMetadata(
                    contextTokens=context.tokenCount,
                    evidenceItems=len(evidence),
                    confidenceThreshold=threshold,
                    aiProvider=self._provider if impact.source == "llm" else "heuristic",
                    model=request.model,
                    llmUsage=impact.llmUsage,
                    costEstimate=impact.costEstimate,
                ),
            )
        except AppError:
            self._count("analysis_failure_total")
            logger.warning("matrix.analyze.rejected id=%s", analysis_id)
            raise
        except Exception as e:
            self._count("analysis_failure_total")
            logger.error(
                "matrix.analyze.error id=%s err=%s", analysis_id, type(e).__name__
            )
            raise AnalysisError(f"{ErrorMessage.ANALYSIS_FAILED.value.message}: {e}") from e

        await self._store(result)
        self._count("analysis_success_total")
        logger.info(
            "matrix.analyze.done id=%s impact=%.3f dir=%s conf=%.3f source=%s ms=%d",
            analysis_id,
            result.impactScore,
            result.impactDirection,
            result.confidenceLevel,
            impact.source,
            result.processingTimeMs,
        )
        return result

    async def _store(self, result: MatrixAnalysisResult) -> None:
        if self._sink is None:
            return
        try:
            await self._sink.save(result)
        except Exception as e:
            logger.error(
                "matrix.store.error id=%s err=%s", result.analysisId, type(e).__name__
            )

    async def analyze_batch(self, request: BatchAnalysisRequest) -> BatchAnalysisResult:
        t0 = time.perf_counter()
        batch_id = f"batch_{uuid4().hex[:12]}"
        limit = request.parallelLimit or self._parallel
        sem = asyncio.Semaphore(limit)
        options = request.options.model_dump()
        logger.info(
            "matrix.batch.start id=%s pairs=%d parallel=%d",
            batch_id,
            len(request.pairs),
            limit,
        )

        async def one(pair) -> MatrixAnalysisResult | PairError:
            async with sem:
                try:
                    return await self.analyze(
                        MatrixAnalysisRequest(
                            **options, assetId=pair.assetId, scenarioId=pair.scenarioId
                        )
                    )
                except Exception as e:
                    return PairError(
                        assetId=pair.assetId, scenarioId=pair.scenarioId, error=str(e)
                    )

        outcomes = await asyncio.gather(*(one(p) for p in request.pairs))
        results = [o for o in outcomes if isinstance(o, MatrixAnalysisResult)]
        errors = [o for o in outcomes if isinstance(o, PairError)]
        threshold = (
            request.options.confidenceThreshold
            if request.options.confidenceThreshold is not None
            else self._threshold
        )
        out = BatchAnalysisResult(
            batchId=batch_id,
            totalPairs=len(request.pairs),
            successfulAnalyses=len(results),
            failedAnalyses=len(errors),
            results=results,
            errors=errors,
            summary=batch_summary(results, threshold),
            processingTimeMs=int((time.perf_counter() - t0) * 1000),
            generatedAt=self._now(),
        )
        logger.info(
            "matrix.batch.done id=%s ok=%d failed=%d ms=%d",
            batch_id,
            out.successfulAnalyses,
            out.failedAnalyses,
            out.processingTimeMs,
        )
        return out

    async def get_cached_result(
        self,
        asset_id: str,
        scenario_id: str,
        max_age_seconds: float | None = None,
    ) -> MatrixAnalysisResult | None:
        if self._sink is None:
            return None
        return await self._sink.get(asset_id, scenario_id, max_age_seconds)
