# controller/search_controller.py
from fastapi import APIRouter, Depends, Query
from fastapi_limiter.depends import RateLimiter
from config.settings import settings
from controller.controller_dependencies import get_search_engine
from core.hybrid_search import HybridSearchEngine
from model.search import HybridSearchRequest, HybridSearchResponse
from util.constants import InternalURIs
from util.errors import AppError

search_router = APIRouter(
    dependencies=[
        Depends(
            RateLimiter(
                times=settings.RATE_LIMIT_TIMES, seconds=settings.RATE_LIMIT_SECONDS
            )
        )
    ]
)


@search_router.post(InternalURIs.SEARCH, response_model=HybridSearchResponse)
async def hybrid_search(
    payload: HybridSearchRequest,
    engine: HybridSearchEngine = Depends(get_search_engine),
) -> HybridSearchResponse:
    try:
        results = await engine.search(
            payload.query,
            payload.filters,
            payload.limit,
            keyword_weight=payload.keywordWeight,
            vector_weight=payload.vectorWeight,
        )
    except ValueError as e:
        raise AppError(str(e)) from e
    return HybridSearchResponse(query=payload.query, results=results, total=len(results))


@search_router.get(InternalURIs.SEARCH_RECOMMENDATIONS, response_model=HybridSearchResponse)
async def recommendations(
    userId: str = Query(..., min_length=1),
    limit: int = Query(default=20, ge=1, le=100),
    engine: HybridSearchEngine = Depends(get_search_engine),
) -> HybridSearchResponse:
    results = await engine.recommend_for_user(userId, limit)
    return HybridSearchResponse(query=userId, results=results, total=len(results))
