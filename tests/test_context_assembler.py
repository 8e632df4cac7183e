import asyncio
import pytest
from conftest import NOW, FakeVectors, sample_catalog
from core.context_assembler import ContextAssembler
from core.hybrid_search import HybridSearchEngine
from repository.catalog_repository import InMemoryCatalogRepository
from util.errors import NotFoundError


def _assembler(store, search=None):
    return ContextAssembler(store, search, now=lambda: NOW)


def test_sections_follow_fixed_order(store):
    ctx = asyncio.run(_assembler(store).assemble("nvda", "export"))

    assert [s.type for s in ctx.sections] == [
        "asset_overview",
        "scenario_overview",
        "asset_theme",
        "scenario_theme",
    ]
    assert ctx.sections[0].title == "Asset: NVIDIA"
    assert ctx.sections[2].title == "Asset Theme: AI compute demand"
    assert ctx.sections[2].cardIds == ["c1", "c2"]
    assert ctx.evidenceCount == 3
    assert ctx.assembledContext.startswith("\n## Asset: NVIDIA\nGPU and AI compute supplier.\n")
    assert ctx.tokenCount == -(-len(ctx.assembledContext) // 4)
    assert ctx.generatedAt == NOW


def test_card_appears_once():
    catalog = sample_catalog()
    shared = catalog.assets[0].themes[0].cards[0]
    catalog.scenarios[0].themes[0].cards.append(shared)
    ctx = asyncio.run(_assembler(InMemoryCatalogRepository(catalog)).assemble("nvda", "export"))

    scenario_theme = next(s for s in ctx.sections if s.type == "scenario_theme")
    assert scenario_theme.cardIds == ["c3"]
    assert ctx.assembledContext.count("### Card c1:") == 1


def test_search_fills_remaining_budget(store):
    catalog = sample_catalog()
    asset, scenario = catalog.assets[0], catalog.scenarios[0]
    first_card = asset.themes[0].cards[0]
    used = (
        len(f"Asset: {asset.name}")
        + len(asset.description)
        + len(f"Scenario: {scenario.name}")
        + len(scenario.description)
        + len(first_card.title)
        + len(first_card.content)
    )
    # Themes stop after the first card; one search hit still fits.
    token_limit = used // 4 + 1

    engine = HybridSearchEngine(store, FakeVectors(store))
    ctx = asyncio.run(_assembler(store, engine).assemble("nvda", "export", token_limit))

    assert [s.type for s in ctx.sections] == [
        "asset_overview",
        "scenario_overview",
        "asset_theme",
        "search_result",
    ]
    assert ctx.sections[2].cardIds == ["c1"]
    filler = ctx.sections[3]
    assert filler.cardIds == ["c3"]
    assert filler.title.startswith("Card c3: Export restriction impact (Score: ")
    assert ctx.evidenceCount == 2


def test_search_skips_cards_already_included(store):
    engine = HybridSearchEngine(store, FakeVectors(store, {"c1-1": 0.9, "c2-1": 0.8}))
    ctx = asyncio.run(_assembler(store, engine).assemble("nvda", "export", 10000))
    assert not [s for s in ctx.sections if s.type == "search_result"]
    assert ctx.evidenceCount == 3


def test_missing_description_placeholder():
    catalog = sample_catalog()
    catalog.assets[0].description = None
    ctx = asyncio.run(_assembler(InMemoryCatalogRepository(catalog)).assemble("nvda", "export"))
    assert ctx.sections[0].content == "No description available."


@pytest.mark.parametrize("asset_id, scenario_id, missing", [("nope", "export", "nope"), ("nvda", "gone", "gone")])
def test_unknown_pair_is_not_found(store, asset_id, scenario_id, missing):
    with pytest.raises(NotFoundError) as exc:
        asyncio.run(_assembler(store).assemble(asset_id, scenario_id))
    assert exc.value.status_code == 404
    assert exc.value.message.endswith(missing)


def test_portfolio_lists_holdings_and_focus_hits(store):
    engine = HybridSearchEngine(store, FakeVectors(store))
    ctx = asyncio.run(
        _assembler(store, engine).assemble_portfolio("u1", ["AI compute", "  "])
    )

    assert ctx.userId == "u1"
    assert ctx.assetCount == 1
    assert [s.type for s in ctx.sections] == [
        "portfolio_overview",
        "asset_overview",
        "portfolio_insight",
        "portfolio_insight",
    ]
    assert ctx.sections[0].title == "Portfolio: 1 assets"
    assert ctx.sections[0].content == "- NVIDIA (Semiconductors): 1 themes, 2 cards"
    assert {s.cardIds[0] for s in ctx.sections[2:]} == {"c1", "c2"}
    assert ctx.evidenceCount == 2
    assert ctx.tokenCount == -(-len(ctx.assembledContext) // 4)


def test_portfolio_without_focus_areas_skips_search(store):
    engine = HybridSearchEngine(store, FakeVectors(store))
    ctx = asyncio.run(_assembler(store, engine).assemble_portfolio("u2"))
    assert [s.type for s in ctx.sections] == ["portfolio_overview", "asset_overview"]
    assert ctx.sections[1].content == "CPU and GPU maker."
    assert ctx.evidenceCount == 0


def test_portfolio_for_user_without_assets_is_not_found(store):
    with pytest.raises(NotFoundError) as exc:
        asyncio.run(_assembler(store).assemble_portfolio("nobody"))
    assert exc.value.status_code == 404
    assert exc.value.message == "No assets found for user: nobody"


def test_trend_context_searches_category_cards(store):
    engine = HybridSearchEngine(store, FakeVectors(store))
    ctx = asyncio.run(
        _assembler(store, engine).assemble_technology_trend("Semiconductors", "2026")
    )

    overview = ctx.sections[0]
    assert overview.type == "trend_overview"
    assert overview.title == "Technology Trend: Semiconductors"
    assert overview.content == "Timeframe: 2026\nTracked assets: NVIDIA, AMD"
    hits = ctx.sections[1:]
    assert {s.type for s in hits} == {"search_result"}
    # c2 matches none of the trend terms; c3 belongs to a scenario
    assert {s.cardIds[0] for s in hits} == {"c1", "c4"}
    assert ctx.evidenceCount == 2
    assert ctx.timeframe == "2026"


def test_trend_context_for_unknown_category(store):
    engine = HybridSearchEngine(store, FakeVectors(store))
    ctx = asyncio.run(_assembler(store, engine).assemble_technology_trend("Biotech"))
    assert len(ctx.sections) == 1
    assert ctx.sections[0].content == "Timeframe: unspecified\nTracked assets: none"
    assert ctx.evidenceCount == 0
