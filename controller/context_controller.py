# controller/context_controller.py
from fastapi import APIRouter, Depends, Query
from fastapi_limiter.depends import RateLimiter
from config.settings import settings
from controller.controller_dependencies import get_context_assembler
from core.context_assembler import ContextAssembler
from model.context import PortfolioAnalysisContext, TechnologyTrendContext
from util.constants import InternalURIs

context_router = APIRouter(
    dependencies=[
        Depends(
            RateLimiter(
                times=settings.RATE_LIMIT_TIMES, seconds=settings.RATE_LIMIT_SECONDS
            )
        )
    ]
)


@context_router.get(InternalURIs.CONTEXT_PORTFOLIO, response_model=PortfolioAnalysisContext)
async def portfolio_context(
    user_id: str,
    focus: list[str] = Query(default=[]),
    tokenLimit: int | None = Query(default=None, ge=1),
    assembler: ContextAssembler = Depends(get_context_assembler),
) -> PortfolioAnalysisContext:
    return await assembler.assemble_portfolio(user_id, focus, tokenLimit)


@context_router.get(InternalURIs.CONTEXT_TREND, response_model=TechnologyTrendContext)
async def trend_context(
    category: str,
    timeframe: str | None = Query(default=None),
    tokenLimit: int | None = Query(default=None, ge=1),
    assembler: ContextAssembler = Depends(get_context_assembler),
) -> TechnologyTrendContext:
    return await assembler.assemble_technology_trend(category, timeframe, tokenLimit)
