# core/context_assembler.py
import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence
from core.hybrid_search import HybridSearchEngine
from core.providers import DataStore
from model.catalog import Asset, Scenario, Theme
from model.context import (
    ContextSection,
    MatrixAnalysisContext,
    PortfolioAnalysisContext,
    SectionType,
    TechnologyTrendContext,
)
from model.search import HybridSearchResult, SearchFilters
from util.errors import NotFoundError
from util.enums import ErrorMessage
from util.functions import estimate_tokens
from util.timing import timed

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
STRUCTURED_BUDGET_SHARE = 0.9
SEARCH_FILLER_LIMIT = 50
PORTFOLIO_TOKEN_FACTOR = 2
PORTFOLIO_INSIGHT_LIMIT = 10
TREND_EVIDENCE_LIMIT = 20
TREND_QUERY_TERMS = "trends innovation disruption market impact"
NO_DESCRIPTION = "No description available."


class _Budget:
    def __init__(self, char_limit: int) -> None:
        self.limit = char_limit
        self.used = 0
        self.card_ids: set[str] = set()

    def structured_full(self) -> bool:
        return self.used >= self.limit * STRUCTURED_BUDGET_SHARE

    def full(self) -> bool:
        return self.used >= self.limit

    def add(self, section: ContextSection) -> ContextSection:
        self.used += len(section.title) + len(section.content)
        return section


def _render(sections: Sequence[ContextSection]) -> str:
    return "".join(f"\n## {s.title}\n{s.content}\n" for s in sections)


def _portfolio_line(asset: Asset) -> str:
    cards = sum(len(t.cards) for t in asset.themes)
    return (
        f"- {asset.name} ({asset.category or 'Uncategorized'}): "
        f"{len(asset.themes)} themes, {cards} cards"
    )


class ContextAssembler:
    """
    Builds bounded text contexts for the LLM.

    Matrix order: asset overview, scenario overview, asset themes, scenario themes,
    then search hits for cards not already present. Theme sections stop at 90% of
    the character budget; search filler may use the rest. Portfolio and trend
    contexts follow the same budget with their own overview first.
    """

    def __init__(
        self,
        store: DataStore,
        search: Optional[HybridSearchEngine] = None,
        *,
        default_token_limit: int = 4000,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._store = store
        self._search = search
        self._default_tokens = default_token_limit
        self._now = now

    async def load_pair(self, asset_id: str, scenario_id: str) -> tuple[Asset, Scenario]:
        asset = await self._store.get_asset(asset_id)
        if asset is None:
            raise NotFoundError(f"{ErrorMessage.ASSET_NOT_FOUND.value.message}: {asset_id}")
        scenario = await self._store.get_scenario(scenario_id)
        if scenario is None:
            raise NotFoundError(
                f"{ErrorMessage.SCENARIO_NOT_FOUND.value.message}: {scenario_id}"
            )
        return asset, scenario

    @staticmethod
    def _theme_section(
        kind: SectionType, label: str, theme: Theme, budget: _Budget
    ) -> Optional[ContextSection]:
        parts: list[str] = []
        if theme.description:
            parts.append(theme.description)
        card_ids: list[str] = []
        for card in theme.cards:
            if card.id in budget.card_ids or budget.structured_full():
                continue
            parts.append(f"### Card {card.id}: {card.title}\n{card.content}")
            budget.card_ids.add(card.id)
            budget.used += len(card.title) + len(card.content)
            card_ids.append(card.id)
        if not parts:
            return None
        return ContextSection(
            type=kind,
            title=f"{label} Theme: {theme.name}",
            content="\n\n".join(parts),
            cardIds=card_ids,
        )

    async def _append_hits(
        self,
        hits: Sequence[HybridSearchResult],
        budget: _Budget,
        sections: list[ContextSection],
        kind: SectionType = "search_result",
    ) -> None:
        for hit in hits:
            if budget.full():
                break
            if not hit.cardId or hit.cardId in budget.card_ids:
                continue
            card = await self._store.get_card(hit.cardId)
            if card is None:
                continue
            sections.append(
                ContextSection(
                    type=kind,
                    title=f"Card {card.id}: {card.title} (Score: {hit.hybridScore:.2f})",
                    content=card.content,
                    cardIds=[card.id],
                )
            )
            budget.card_ids.add(card.id)
            budget.used += len(card.title) + len(card.content)

    async def assemble(
        self,
        asset_id: str,
        scenario_id: str,
        token_limit: int | None = None,
        *,
        pair: tuple[Asset, Scenario] | None = None,
    ) -> MatrixAnalysisContext:
        tokens = token_limit or self._default_tokens
        asset, scenario = pair or await self.load_pair(asset_id, scenario_id)
        budget = _Budget(tokens * CHARS_PER_TOKEN)

        with timed(logger, "context.assemble", asset=asset_id, scenario=scenario_id):
            sections = [
                budget.add(
                    ContextSection(
                        type="asset_overview",
                        title=f"Asset: {asset.name}",
                        content=asset.description or NO_DESCRIPTION,
                    )
                ),
                budget.add(
                    ContextSection(
                        type="scenario_overview",
                        title=f"Scenario: {scenario.name}",
                        content=scenario.description or NO_DESCRIPTION,
                    )
                ),
            ]

            for kind, label, themes in (
                ("asset_theme", "Asset", asset.themes),
                ("scenario_theme", "Scenario", scenario.themes),
            ):
                for theme in themes:
                    if budget.structured_full():
                        break
                    section = self._theme_section(kind, label, theme, budget)
                    if section is not None:
                        sections.append(section)

            if self._search is not None and not budget.full():
                hits = await self._search.search(
                    f"{asset.name} {scenario.name}",
                    SearchFilters(assetId=asset.id, scenarioId=scenario.id),
                    SEARCH_FILLER_LIMIT,
                )
                await self._append_hits(hits, budget, sections)

        assembled = _render(sections)
        ctx = MatrixAnalysisContext(
            assetId=asset.id,
            scenarioId=scenario.id,
            assembledContext=assembled,
            sections=sections,
            evidenceCount=len(budget.card_ids),
            tokenCount=estimate_tokens(assembled),
            generatedAt=self._now(),
        )
        logger.info(
            "context.assemble.result sections=%d cards=%d tokens=%d",
            len(sections),
            ctx.evidenceCount,
            ctx.tokenCount,
        )
        return ctx

    async def assemble_portfolio(
        self,
        user_id: str,
        focus_areas: Sequence[str] | None = None,
        token_limit: int | None = None,
    ) -> PortfolioAnalysisContext:
        """
        Overview of every asset the user holds, each asset's description, then
        search hits inside the user's own cards for each focus area. The default
        budget is twice the matrix one.
        """
        tokens = token_limit or self._default_tokens * PORTFOLIO_TOKEN_FACTOR
        assets = await self._store.list_assets(user_id=user_id)
        if not assets:
            raise NotFoundError(f"{ErrorMessage.PORTFOLIO_EMPTY.value.message}: {user_id}")
        budget = _Budget(tokens * CHARS_PER_TOKEN)

        with timed(logger, "context.portfolio", user=user_id, assets=len(assets)):
            sections = [
                budget.add(
                    ContextSection(
                        type="portfolio_overview",
                        title=f"Portfolio: {len(assets)} assets",
                        content="\n".join(_portfolio_line(a) for a in assets),
                    )
                )
            ]
            for asset in assets:
                if budget.structured_full():
                    break
                sections.append(
                    budget.add(
                        ContextSection(
                            type="asset_overview",
                            title=f"Asset: {asset.name}",
                            content=asset.description or NO_DESCRIPTION,
                        )
                    )
                )

            areas = [a for a in focus_areas or () if a and a.strip()]
            if self._search is not None and areas:
                card_ids = [c.id for a in assets for t in a.themes for c in t.cards]
                for area in areas:
                    if budget.full():
                        break
                    hits = await self._search.search_by_card_ids(
                        area, card_ids, PORTFOLIO_INSIGHT_LIMIT
                    )
                    await self._append_hits(hits, budget, sections, "portfolio_insight")

        assembled = _render(sections)
        ctx = PortfolioAnalysisContext(
            userId=user_id,
            assembledContext=assembled,
            sections=sections,
            assetCount=len(assets),
            evidenceCount=len(budget.card_ids),
            tokenCount=estimate_tokens(assembled),
            generatedAt=self._now(),
        )
        logger.info(
            "context.portfolio.result assets=%d focus=%d cards=%d tokens=%d",
            ctx.assetCount,
            len(areas),
            ctx.evidenceCount,
            ctx.tokenCount,
        )
        return ctx

    async def assemble_technology_trend(
        self,
        category: str,
        timeframe: str | None = None,
        token_limit: int | None = None,
    ) -> TechnologyTrendContext:
        tokens = token_limit or self._default_tokens
        budget = _Budget(tokens * CHARS_PER_TOKEN)

        with timed(logger, "context.trend", category=category):
            assets = await self._store.list_assets(categories=[category])
            overview = [f"Timeframe: {timeframe or 'unspecified'}"]
            overview.append(
                "Tracked assets: " + (", ".join(a.name for a in assets) or "none")
            )
            sections = [
                budget.add(
                    ContextSection(
                        type="trend_overview",
                        title=f"Technology Trend: {category}",
                        content="\n".join(overview),
                    )
                )
            ]
            if self._search is not None and assets:
                hits = await self._search.search_by_categories(
                    f"{category} {TREND_QUERY_TERMS}", [category], TREND_EVIDENCE_LIMIT
                )
                await self._append_hits(hits, budget, sections)

        assembled = _render(sections)
        ctx = TechnologyTrendContext(
            technologyCategory=category,
            timeframe=timeframe,
            assembledContext=assembled,
            sections=sections,
            evidenceCount=len(budget.card_ids),
            tokenCount=estimate_tokens(assembled),
            generatedAt=self._now(),
        )
        logger.info(
            "context.trend.result category=%s cards=%d tokens=%d",
            category,
            ctx.evidenceCount,
            ctx.tokenCount,
        )
        return ctx
