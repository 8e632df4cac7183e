import asyncio
import json
import pytest
from conftest import FakeLLM, no_sleep, sample_catalog
from core.calibration import IsotonicCalibration, load_calibration
from core.confidence_signals import composite_confidence, rank_correlation, retrieval_variance
from core.impact_calculator import (
    ImpactCalculator,
    build_user_prompt,
    denormalize_impact,
    direction_for_raw,
    generate_insights,
    heuristic_impact,
    normalize_impact,
    parse_impact_response,
    validate_impact_payload,
)
from core.retry import RetryPolicy
from model.evidence import RankedEvidence, ScoringBreakdown
from model.impact import LLMOptions
from model.search import FusedResult
from util.errors import ImpactResponseError, LLMError, LLMTimeoutError, LLMTransportError
from util.functions import estimate_tokens
from util.metrics import MetricsRegistry

VALID = json.dumps(
    {
        "impactScore": 3,
        "rationale": "Accelerator demand outweighs export friction.",
        "evidence": [{"id": "e0", "relevance": 0.9}],
        "confidence": 0.8,
    }
)


def _evidence(contents, relevance=0.5):
    return [
        RankedEvidence(
            id=f"e{i}",
            source=f"Card {i}",
            content=c,
            relevanceScore=relevance,
            confidenceScore=0.7,
            qualityScore=0.6,
            recencyScore=0.9,
            credibilityScore=0.8,
            finalScore=0.65,
            evidenceType="market_analysis",
            rank=i + 1,
            breakdown=ScoringBreakdown(
                contentQuality=0.6,
                recency=0.9,
                credibility=0.8,
                temporal=0.8,
                contextRelevance=0.5,
            ),
        )
        for i, c in enumerate(contents)
    ]


POSITIVE = _evidence(["Growth opportunity in AI"] * 4)
NEGATIVE = _evidence(["Export risk is a threat and a disruption"] * 4)


def _pair():
    catalog = sample_catalog()
    return catalog.assets[0], catalog.scenarios[0]


def _calculator(llm, metrics=None, sleep=no_sleep, **kw):
    return ImpactCalculator(
        llm,
        system_prompt="system",
        default_options=LLMOptions(model="test-model"),
        retry_policy=RetryPolicy(retry_on=(LLMError,), sleep=sleep),
        metrics=metrics,
        **kw,
    )


def test_normalization_endpoints():
    assert normalize_impact(-5) == 0.0
    assert normalize_impact(0) == 0.5
    assert normalize_impact(5) == 1.0
    assert normalize_impact(9) == 1.0
    assert denormalize_impact(0.8) == pytest.approx(3.0)


def test_direction_for_raw():
    assert direction_for_raw(1) == "positive"
    assert direction_for_raw(-1) == "negative"
    assert direction_for_raw(0.5) == "neutral"


def test_composite_confidence_edges():
    assert composite_confidence(1, 1, 1) == 1.0
    assert composite_confidence(0, 0.7, 0.9) == 0.0
    assert composite_confidence(2.0, 1.5, 1.0) == 1.0
    assert composite_confidence(0.8, 0.5, 0.5) == pytest.approx(0.8**0.4 * 0.5**0.6)


def test_retrieval_signals():
    assert retrieval_variance([0.3]) == 0.5
    assert retrieval_variance([0.2, 0.2, 0.2]) == 0.0
    assert 0.0 < retrieval_variance([1.0, 0.5, 0.1]) <= 1.0

    agree = [
        FusedResult(id=str(i), content="", keywordRank=i, vectorRank=i, rrfScore=0.01)
        for i in range(1, 5)
    ]
    reverse = [
        FusedResult(id=str(i), content="", keywordRank=i, vectorRank=5 - i, rrfScore=0.01)
        for i in range(1, 5)
    ]
    assert rank_correlation(agree) == pytest.approx(1.0)
    assert rank_correlation(reverse) == pytest.approx(0.0)
    assert rank_correlation(agree[:1]) == 0.5


def test_validation_reports_every_violation():
    with pytest.raises(ImpactResponseError) as exc:
        validate_impact_payload(
            {
                "impactScore": 7,
                "rationale": "x" * 201,
                "evidence": [{"id": "a", "relevance": 0.5}] * 6,
                "confidence": -1,
            }
        )
    assert len(exc.value.errors) == 4


def test_validation_checks_each_citation():
    with pytest.raises(ImpactResponseError) as exc:
        validate_impact_payload(
            {
                "impactScore": 2,
                "rationale": "ok",
                "evidence": [{"id": "", "relevance": 1.5}, "bad"],
                "confidence": 0.5,
            }
        )
    assert exc.value.errors == [
        "evidence[0].id must be a string",
        "evidence[0].relevance must be a number between 0 and 1",
        "evidence[1] must be an object",
    ]


def test_parse_accepts_code_fences_and_card_id():
    raw = (
        '```json\n{"impactScore": -2, "rationale": "r", '
        '"evidence": [{"cardId": "c1", "relevance": 0.4}], "confidence": 0.6}\n```'
    )
    parsed = parse_impact_response(raw)
    assert parsed.impactScore == -2
    assert parsed.evidence[0].id == "c1"


def test_parse_rejects_non_json():
    with pytest.raises(ImpactResponseError):
        parse_impact_response("not json")
    with pytest.raises(ImpactResponseError):
        parse_impact_response("[1, 2]")


def test_heuristic_direction_follows_evidence():
    score, direction, ind, reasoning = heuristic_impact(POSITIVE)
    assert direction == "positive"
    assert score == pytest.approx(0.9)
    assert ind.opportunities == pytest.approx(0.4)
    assert reasoning.startswith("Positive")

    score, direction, _, _ = heuristic_impact(NEGATIVE)
    assert direction == "negative"
    assert 0.0 <= score < 0.5

    assert heuristic_impact([])[:2] == (0.5, "neutral")


def test_prompt_lists_themes_and_evidence():
    asset, scenario = _pair()
    prompt = build_user_prompt(asset, scenario, POSITIVE)
    assert prompt.startswith("Scenario: Export Controls")
    assert "Theme: Asset: AI compute demand" in prompt
    assert "Theme: Supporting Evidence" in prompt
    assert prompt.endswith("Provide your impact assessment JSON.")


def test_llm_success():
    asset, scenario = _pair()
    llm = FakeLLM([VALID])
    metrics = MetricsRegistry()
    result = asyncio.run(_calculator(llm, metrics).calculate(asset, scenario, POSITIVE))

    assert result.source == "llm"
    assert result.rawScore == 3
    assert result.normalizedScore == pytest.approx(0.8)
    assert result.direction == "positive"
    assert result.evidenceIds == ["e0"]
    assert result.attempts == 1
    assert result.llmUsage.totalTokens == 120
    assert result.compositeConfidence == pytest.approx(0.8**0.4 * 0.5**0.6)
    assert metrics.get("llm_attempts_total") == 1


def test_invalid_reply_is_retried():
    asset, scenario = _pair()
    llm = FakeLLM(['{"impactScore": 12}', VALID])
    result = asyncio.run(_calculator(llm).calculate(asset, scenario, POSITIVE))
    assert result.source == "llm"
    assert result.attempts == 2
    assert result.llmUsage.totalTokens == 240


def test_three_transport_failures_fall_back_to_heuristic():
    asset, scenario = _pair()
    delays = []

    async def record(d):
        delays.append(d)

    llm = FakeLLM([LLMTransportError("down"), LLMTimeoutError("slow"), LLMTransportError("down")])
    metrics = MetricsRegistry()
    result = asyncio.run(
        _calculator(llm, metrics, sleep=record).calculate(asset, scenario, POSITIVE)
    )

    assert llm.calls == 3
    assert delays == [2.0, 4.0]
    assert result.source == "heuristic"
    assert result.direction in ("positive", "negative", "neutral")
    assert 0.0 <= result.normalizedScore <= 1.0
    assert result.llmConfidence == 0.5
    assert metrics.get("llm_attempts_total") == 3
    assert metrics.get("llm_fallback_total") == 1


def test_non_llm_errors_propagate():
    asset, scenario = _pair()
    llm = FakeLLM([KeyError("bug")])
    with pytest.raises(KeyError):
        asyncio.run(_calculator(llm).calculate(asset, scenario, POSITIVE))


def test_no_provider_uses_heuristic():
    asset, scenario = _pair()
    result = asyncio.run(_calculator(None).calculate(asset, scenario, NEGATIVE))
    assert result.source == "heuristic"
    assert result.direction == "negative"
    assert result.evidenceIds == ["e0", "e1", "e2", "e3"]


def test_calibration_applies_to_raw_score():
    asset, scenario = _pair()
    cal = IsotonicCalibration([-5, 0, 5], [-4, 1, 4])
    result = asyncio.run(
        _calculator(FakeLLM([VALID]), calibration=cal).calculate(asset, scenario, POSITIVE)
    )
    assert result.rawScore == 1.0
    assert result.normalizedScore == pytest.approx(0.6)
    assert result.direction == "positive"


def test_isotonic_calibration_lookup_and_validation(tmp_path):
    cal = IsotonicCalibration([-5, 0, 5], [-4, 1, 4])
    assert cal(-9) == -4
    assert cal(0) == 1
    assert cal(2) == 1
    assert cal(7) == 4
    with pytest.raises(ValueError):
        IsotonicCalibration([0, 0], [1, 2])
    with pytest.raises(ValueError):
        IsotonicCalibration([0, 1], [2, 1])

    path = tmp_path / "cal.json"
    path.write_text(json.dumps({"x": [-5, 5], "y": [-3, 3]}))
    loaded = load_calibration(str(path))
    assert loaded(5) == 3
    assert load_calibration(None)(2.5) == 2.5


def test_insights_mention_direction_and_evidence():
    asset, scenario = _pair()
    result = asyncio.run(_calculator(FakeLLM([VALID])).calculate(asset, scenario, POSITIVE))
    insights = generate_insights(result, POSITIVE)
    assert insights[0].startswith("This scenario presents significant opportunities")
    assert insights[1].startswith("AI Analysis:")
    assert any("4 pieces of evidence" in i for i in insights)


def test_llm_result_carries_cost_estimate():
    asset, scenario = _pair()
    result = asyncio.run(_calculator(FakeLLM([VALID])).calculate(asset, scenario, POSITIVE))

    prompt = build_user_prompt(asset, scenario, POSITIVE)
    input_tokens = estimate_tokens("system" + prompt)
    cost = result.costEstimate
    assert cost.model == "test-model"
    assert (cost.inputTokens, cost.outputTokens) == (input_tokens, 2000)
    # unknown models are priced at gpt-4o rates
    assert cost.estimatedCost == pytest.approx(input_tokens / 1000 * 0.005 + 2 * 0.015)

    heuristic = asyncio.run(_calculator(None).calculate(asset, scenario, POSITIVE))
    assert heuristic.costEstimate is None
