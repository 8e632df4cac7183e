# controller/controller_dependencies.py
from dataclasses import dataclass
from fastapi import Request
from config.settings import Settings
from core.alpha import AlphaAdvisor
from core.calibration import load_calibration
from core.confidence_scorer import ConfidenceScorer
from core.context_assembler import ContextAssembler
from core.embeddings_retriever import EmbeddingVectorProvider
from core.events import EventBus
from core.evidence_ranker import EvidenceRanker
from core.hybrid_search import HybridSearchEngine
from core.impact_calculator import ImpactCalculator
from core.llm_client import build_llm_client
from core.retry import RetryPolicy
from core.ttl_cache import TTLCache
from model.impact import LLMOptions
from repository.catalog_repository import InMemoryCatalogRepository
from repository.job_repository import JobRepository
from repository.matrix_repository import MatrixResultRepository
from service.matrix_analysis_service import MatrixAnalysisService
from service.matrix_job_service import MatrixJobService
from util.errors import LLMError
from util.metrics import MetricsRegistry


@dataclass
class Components:
    metrics: MetricsRegistry
    events: EventBus
    search: HybridSearchEngine
    assembler: ContextAssembler
    analysis: MatrixAnalysisService
    jobs: MatrixJobService


def build_components(s: Settings) -> Components:
    """Wire every component from settings. Called once from the app lifespan."""
    metrics = MetricsRegistry()
    events = EventBus()
    store = InMemoryCatalogRepository.from_file(s.CATALOG_PATH)

    advisor = None
    if s.DYNAMIC_WEIGHTS:
        advisor = AlphaAdvisor(
            TTLCache(max_size=s.ALPHA_CACHE_MAX, ttl_seconds=s.ALPHA_CACHE_TTL_SECONDS),
            metrics=metrics,
        )
    search = HybridSearchEngine(
        store,
        EmbeddingVectorProvider(store, s.EMBEDDING_MODEL_NAME),
        k=s.RRF_K,
        keyword_weight=s.KEYWORD_WEIGHT,
        vector_weight=s.VECTOR_WEIGHT,
        vector_threshold=s.VECTOR_THRESHOLD,
        alpha_advisor=advisor,
        metrics=metrics,
    )

    llm = None
    if s.LLM_API_KEY:
        llm = build_llm_client(
            s.LLM_PROVIDER,
            api_key=s.LLM_API_KEY,
            api_url=s.LLM_API_URL,
            anthropic_version=s.ANTHROPIC_VERSION,
        )
    impact = ImpactCalculator(
        llm,
        system_prompt=s.IMPACT_SYSTEM_PROMPT,
        default_options=LLMOptions(
            model=s.LLM_MODEL,
            temperature=s.LLM_TEMPERATURE,
            maxTokens=s.LLM_MAX_TOKENS,
            timeoutSeconds=s.LLM_TIMEOUT_SECONDS,
        ),
        retry_policy=RetryPolicy(max_attempts=s.LLM_MAX_ATTEMPTS, retry_on=(LLMError,)),
        calibration=load_calibration(s.CALIBRATION_PATH),
        metrics=metrics,
    )

    assembler = ContextAssembler(store, search, default_token_limit=s.CONTEXT_TOKEN_LIMIT)
    analysis = MatrixAnalysisService(
        assembler,
        search,
        EvidenceRanker(temporal_decay_factor=s.TEMPORAL_DECAY_FACTOR),
        impact,
        ConfidenceScorer(
            baseline_confidence=s.BASELINE_CONFIDENCE,
            uncertainty_penalty=s.UNCERTAINTY_PENALTY,
        ),
        sink=MatrixResultRepository(s.PERSISTENCE_TTL_SECONDS),
        metrics=metrics,
        provider_name=llm.name if llm is not None else "heuristic",
        context_token_limit=s.CONTEXT_TOKEN_LIMIT,
        confidence_threshold=s.CONFIDENCE_THRESHOLD,
        parallel_limit=s.BATCH_PARALLEL_LIMIT,
        evidence_min_quality=s.EVIDENCE_MIN_QUALITY,
        evidence_max_items=s.EVIDENCE_MAX_ITEMS,
    )
    jobs = MatrixJobService(
        JobRepository(s.PERSISTENCE_TTL_SECONDS), analysis, events=events, metrics=metrics
    )
    return Components(
        metrics=metrics,
        events=events,
        search=search,
        assembler=assembler,
        analysis=analysis,
        jobs=jobs,
    )


def get_components(request: Request) -> Components:
    return request.app.state.components


def get_analysis_service(request: Request) -> MatrixAnalysisService:
    return get_components(request).analysis


def get_job_service(request: Request) -> MatrixJobService:
    return get_components(request).jobs


def get_search_engine(request: Request) -> HybridSearchEngine:
    return get_components(request).search


def get_context_assembler(request: Request) -> ContextAssembler:
    return get_components(request).assembler
