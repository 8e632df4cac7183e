# core/impact_calculator.py
import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Optional, Sequence
from core.calibration import Calibration, identity_calibration
from core.confidence_signals import (
    NEUTRAL_SIGNAL,
    composite_confidence,
    rank_correlation,
    retrieval_variance,
)
from core.evidence_ranker import EvidenceRanker
from core.llm_client import estimate_cost
from core.providers import LLMProvider
from core.retry import RetryExhausted, RetryPolicy, run_with_retry
from model.catalog import Asset, Scenario, Theme
from model.evidence import RankedEvidence
from model.impact import (
    Direction,
    ImpactCalculation,
    ImpactExplainResponse,
    ImpactIndicators,
    LLMOptions,
    TokenUsage,
)
from model.search import FusedResult
from util.errors import ImpactResponseError, LLMError
from util.functions import clamp
from util.metrics import MetricsRegistry
from util.timing import timed

logger = logging.getLogger(__name__)

RAW_MIN, RAW_MAX = -5.0, 5.0
CARD_CONTENT_CHARS = 500
EVIDENCE_CONTENT_CHARS = 300
PROMPT_EVIDENCE_ITEMS = 10
MAX_RATIONALE_CHARS = 200
MAX_CITATIONS = 5
NET_THRESHOLD = 0.2
INDICATOR_STEP = 0.2
HEURISTIC_LLM_CONFIDENCE = 0.5

INDICATOR_TERMS: dict[str, tuple[str, ...]] = {
    "opportunities": ("opportunity", "growth", "expansion", "benefit", "advantage"),
    "growth": ("growth", "increase", "expand", "scale", "market share"),
    "innovation": ("innovation", "breakthrough", "advancement", "technology", "solution"),
    "threats": ("threat", "risk", "challenge", "problem", "concern"),
    "risks": ("risk", "danger", "vulnerability", "exposure", "downside"),
    "disruption": ("disruption", "displacement", "obsolete", "decline", "threat"),
}


def normalize_impact(raw: float) -> float:
    """Map a raw score in [-5, 5] onto [0, 1]."""
    return clamp((clamp(raw, RAW_MIN, RAW_MAX) + 5) / 10)


def denormalize_impact(score: float) -> float:
    return clamp(score) * 10 - 5


def direction_for_raw(raw: float) -> Direction:
    if raw > 0.5:
        return "positive"
    if raw < -0.5:
        return "negative"
    return "neutral"


# ---------------- Prompt ----------------


@dataclass
class PromptTheme:
    name: str
    bullets: list[str]
    cards: list[tuple[str, str, str]]  # (id, title, content)


def _theme_section(prefix: str, theme: Theme) -> PromptTheme:
    return PromptTheme(
        name=f"{prefix}: {theme.name}",
        bullets=[theme.description] if theme.description else [],
        cards=[
            (c.id, c.title, (c.content or "")[:CARD_CONTENT_CHARS]) for c in theme.cards
        ],
    )


def prompt_themes(
    asset: Asset, scenario: Scenario, evidence: Sequence[RankedEvidence]
) -> list[PromptTheme]:
    themes = [_theme_section("Asset", t) for t in asset.themes]
    themes += [_theme_section("Scenario", t) for t in scenario.themes]
    if evidence:
        themes.append(
            PromptTheme(
                name="Supporting Evidence",
                bullets=[],
                cards=[
                    (e.id, e.source, e.content[:EVIDENCE_CONTENT_CHARS])
                    for e in evidence[:PROMPT_EVIDENCE_ITEMS]
                ],
            )
        )
    return themes


def build_user_prompt(
    asset: Asset, scenario: Scenario, evidence: Sequence[RankedEvidence]
) -> str:
    lines = [
        f"Scenario: {scenario.name}: {scenario.description or 'No description provided'}",
        f"Asset: {asset.name}: {asset.description or 'No description provided'}",
        "",
        "Relevant Theme Summaries & Cards:",
    ]
    for theme in prompt_themes(asset, scenario, evidence):
        lines.append(f"Theme: {theme.name}")
        lines.extend(f"- {b}" for b in theme.bullets)
        if theme.cards:
            lines.append("Cards:")
            for cid, title, content in theme.cards:
                lines.append(f"{cid}: {title}" + (f"\n  {content}" if content else ""))
        lines.append("")
    lines.append("Provide your impact assessment JSON.")
    return "\n".join(lines)


# ---------------- Response validation ----------------


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def strip_code_fences(raw: str) -> str:
    text = (raw or "").strip()
    if text.startswith("```"):
        text = text.strip("`").strip()
        if text.lower().startswith("json"):
            text = text[4:].strip()
    return text


def validate_impact_payload(data: Any) -> ImpactExplainResponse:
    """Check every field, collecting all violations before failing."""
    if not isinstance(data, dict):
        raise ImpactResponseError(["response must be a JSON object"])
    errors: list[str] = []

    score = data.get("impactScore")
    if not _is_number(score) or not RAW_MIN <= score <= RAW_MAX or int(score) != score:
        errors.append("impactScore must be an integer between -5 and 5")

    rationale = data.get("rationale")
    if not isinstance(rationale, str) or len(rationale) > MAX_RATIONALE_CHARS:
        errors.append("rationale must be a string with ≤200 characters")

    evidence = data.get("evidence")
    citations: list[dict] = []
    if not isinstance(evidence, list) or len(evidence) > MAX_CITATIONS:
        errors.append("evidence must be an array with ≤5 items")
    else:
        for i, item in enumerate(evidence):
            if not isinstance(item, dict):
                errors.append(f"evidence[{i}] must be an object")
                continue
            cid = item.get("id", item.get("cardId"))
            if not isinstance(cid, str) or not cid:
                errors.append(f"evidence[{i}].id must be a string")
            rel = item.get("relevance")
            if not _is_number(rel) or not 0 <= rel <= 1:
                errors.append(f"evidence[{i}].relevance must be a number between 0 and 1")
            citations.append({"id": cid, "relevance": rel})

    conf = data.get("confidence")
    if not _is_number(conf) or not 0 <= conf <= 1:
        errors.append("confidence must be a number between 0 and 1")

    if errors:
        raise ImpactResponseError(errors)
    return ImpactExplainResponse(
        impactScore=int(score),
        rationale=rationale,
        evidence=citations,
        confidence=float(conf),
    )


def parse_impact_response(raw: str) -> ImpactExplainResponse:
    try:
        data = json.loads(strip_code_fences(raw))
    except json.JSONDecodeError as e:
        raise ImpactResponseError([f"response is not valid JSON: {e.msg}"]) from e
    return validate_impact_payload(data)


# ---------------- Heuristic ----------------


def impact_indicators(evidence: Sequence[RankedEvidence]) -> ImpactIndicators:
    totals = {k: 0.0 for k in INDICATOR_TERMS}
    for item in evidence:
        lower = item.content.lower()
        for key, terms in INDICATOR_TERMS.items():
            if any(t in lower for t in terms):
                totals[key] += item.relevanceScore * INDICATOR_STEP
    return ImpactIndicators(**{k: clamp(v) for k, v in totals.items()})


def heuristic_reasoning(ind: ImpactIndicators, net: float) -> str:
    if net > NET_THRESHOLD:
        driver = "opportunities" if ind.opportunities > ind.growth else "growth potential"
        return f"Positive impact driven by strong {driver} signals in the evidence."
    if net < -NET_THRESHOLD:
        driver = "competitive threats" if ind.threats > ind.risks else "operational risks"
        return f"Negative impact indicated by significant {driver} in the analysis."
    return "Balanced impact with mixed positive and negative indicators requiring careful monitoring."


def heuristic_impact(
    evidence: Sequence[RankedEvidence],
) -> tuple[float, Direction, ImpactIndicators, str]:
    """(normalized score, direction, indicators, reasoning) from keyword signals."""
    ind = impact_indicators(evidence)
    positive = ind.opportunities + ind.growth + ind.innovation
    negative = ind.threats + ind.risks + ind.disruption
    net = positive - negative
    if net > NET_THRESHOLD:
        direction: Direction = "positive"
        score = 0.5 + net * 0.5
    elif net < -NET_THRESHOLD:
        direction = "negative"
        score = 0.5 + net * 0.5
    else:
        direction = "neutral"
        score = 0.5
    return clamp(score), direction, ind, heuristic_reasoning(ind, net)


# ---------------- Insights ----------------


def generate_insights(
    impact: ImpactCalculation, evidence: Sequence[RankedEvidence]
) -> list[str]:
    insights: list[str] = []
    pct = f"{impact.normalizedScore * 100:.0f}%"
    if impact.direction == "positive":
        insights.append(
            f"This scenario presents significant opportunities with an impact score of {pct}."
        )
    elif impact.direction == "negative":
        insights.append(f"This scenario poses notable risks with an impact score of {pct}.")
    else:
        insights.append(
            "This scenario shows neutral impact with balanced risks and opportunities."
        )

    if impact.reasoning:
        insights.append(f"AI Analysis: {impact.reasoning}")

    if evidence:
        avg_q = sum(e.qualityScore for e in evidence) / len(evidence)
        insights.append(
            f"Analysis is supported by {len(evidence)} pieces of evidence "
            f"with {avg_q * 100:.0f}% average quality score."
        )
        top = evidence[0]
        insights.append(
            f'Strongest evidence from "{top.source}" with confidence score of '
            f"{top.confidenceScore * 100:.0f}%."
        )

    report = EvidenceRanker.quality_report(evidence)
    if report.overallQuality > 0.7:
        insights.append(
            "High-quality evidence provides strong analytical foundation for decision-making."
        )
    elif report.overallQuality < 0.4:
        insights.append(
            "Evidence quality is limited - consider gathering additional data sources "
            "before making critical decisions."
        )

    critical = EvidenceRanker.group_by_priority(evidence).critical
    if critical:
        insights.append(
            f"{len(critical)} critical evidence items identified with high confidence and relevance."
        )

    b = impact.breakdown
    if b.innovation > 0.6:
        insights.append("Strong innovation potential identified through technical analysis evidence.")
    if b.disruption > 0.6:
        insights.append("Significant market disruption risk detected in competitive analysis.")
    if b.growth > 0.6:
        insights.append("Notable growth opportunities supported by market evidence.")
    return insights


# ---------------- Calculator ----------------


class ImpactCalculator:
    """
    LLM-first impact estimate. Any transport, parse or validation failure is
    retried under the policy; once exhausted the keyword heuristic answers.
    The raw score always passes through `calibration` before normalization.
    """

    def __init__(
        self,
        llm: Optional[LLMProvider],
        *,
        system_prompt: str,
        default_options: LLMOptions,
        retry_policy: RetryPolicy = RetryPolicy(retry_on=(LLMError,)),
        calibration: Calibration = identity_calibration,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._llm = llm
        self._system = system_prompt
        self._options = default_options
        self._retry = retry_policy
        self._calibrate = calibration
        self._metrics = metrics

    def _calibrated(self, raw: float) -> float:
        return clamp(float(self._calibrate(clamp(raw, RAW_MIN, RAW_MAX))), RAW_MIN, RAW_MAX)

    @staticmethod
    def _retrieval_signals(search_results: Sequence[FusedResult]) -> tuple[float, float]:
        if not search_results:
            return NEUTRAL_SIGNAL, NEUTRAL_SIGNAL
        return (
            retrieval_variance([r.rrfScore for r in search_results]),
            rank_correlation(search_results),
        )

    async def _ask_llm(
        self, llm: LLMProvider, user_prompt: str, options: LLMOptions
    ) -> tuple[ImpactExplainResponse, TokenUsage, int]:
        usage = TokenUsage()

        async def attempt(n: int) -> ImpactExplainResponse:
            if self._metrics:
                self._metrics.inc("llm_attempts_total")
            resp = await llm.complete(self._system, user_prompt, options)
            usage.promptTokens += resp.usage.promptTokens
            usage.completionTokens += resp.usage.completionTokens
            usage.totalTokens += resp.usage.totalTokens
            try:
                return parse_impact_response(resp.content)
            except ImpactResponseError as e:
                logger.warning("impact.llm.invalid attempt=%d errors=%d", n, len(e.errors))
                raise

        parsed, attempts = await run_with_retry(self._retry, attempt, name="impact.llm")
        return parsed, usage, attempts

    async def calculate(
        self,
        asset: Asset,
        scenario: Scenario,
        evidence: Sequence[RankedEvidence],
        *,
        search_results: Sequence[FusedResult] = (),
        model: str | None = None,
    ) -> ImpactCalculation:
        variance, correlation = self._retrieval_signals(search_results)
        breakdown = impact_indicators(evidence)

        llm = self._llm
        if llm is not None:
            options = self._options.model_copy(
                update={"model": model} if model else {}
            )
            user_prompt = build_user_prompt(asset, scenario, evidence)
            cost = estimate_cost(self._system, user_prompt, options.model, options.maxTokens)
            logger.info(
                "impact.llm.estimate model=%s tokens=%d usd=%.4f",
                cost.model,
                cost.totalTokens,
                cost.estimatedCost,
            )
            try:
                with timed(logger, "impact.llm", model=options.model, n=len(evidence)):
                    parsed, usage, attempts = await self._ask_llm(llm, user_prompt, options)
            except RetryExhausted as e:
                logger.warning(
                    "impact.llm.fallback attempts=%d err=%s",
                    e.attempts,
                    type(e.last_error).__name__,
                )
                if self._metrics:
                    self._metrics.inc("llm_fallback_total")
            else:
                raw = self._calibrated(parsed.impactScore)
                result = ImpactCalculation(
                    rawScore=raw,
                    normalizedScore=normalize_impact(raw),
                    direction=direction_for_raw(raw),
                    breakdown=breakdown,
                    reasoning=parsed.rationale,
                    evidenceIds=[c.id for c in parsed.evidence],
                    llmConfidence=parsed.confidence,
                    compositeConfidence=composite_confidence(
                        parsed.confidence, variance, correlation
                    ),
                    source="llm",
                    attempts=attempts,
                    llmUsage=usage,
                    costEstimate=cost,
                )
                logger.info(
                    "impact.llm.ok raw=%.1f dir=%s conf=%.2f tokens=%d",
                    raw,
                    result.direction,
                    parsed.confidence,
                    usage.totalTokens,
                )
                return result

        return self._heuristic(evidence, variance, correlation)

    def _heuristic(
        self,
        evidence: Sequence[RankedEvidence],
        variance: float,
        correlation: float,
    ) -> ImpactCalculation:
        score, _, ind, reasoning = heuristic_impact(evidence)
        raw = self._calibrated(denormalize_impact(score))
        normalized = normalize_impact(raw)
        # Uncalibrated, this agrees with the heuristic's own direction.
        direction = direction_for_raw(raw)
        result = ImpactCalculation(
            rawScore=raw,
            normalizedScore=normalized,
            direction=direction,
            breakdown=ind,
            reasoning=reasoning,
            evidenceIds=[e.id for e in evidence[:MAX_CITATIONS]],
            llmConfidence=HEURISTIC_LLM_CONFIDENCE,
            compositeConfidence=composite_confidence(
                HEURISTIC_LLM_CONFIDENCE, variance, correlation
            ),
            source="heuristic",
        )
        logger.info("impact.heuristic score=%.3f dir=%s", normalized, direction)
        return result
