# repository/catalog_repository.py
import re
from pathlib import Path
from typing import Iterable, Optional, Sequence
from model.catalog import Asset, Card, Catalog, Chunk, EvidenceChunk, Scenario, Theme
from model.search import SearchFilters
import logging

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"\w+")


def _query_words(query: str) -> list[str]:
    return [w for w in _WORD_RE.findall(query.lower()) if len(w) > 1]


def matches_filters(chunk: EvidenceChunk, filters: SearchFilters | None) -> bool:
    if filters is None:
        return True
    if filters.assetId or filters.scenarioId:
        in_asset = bool(filters.assetId) and chunk.assetId == filters.assetId
        in_scenario = bool(filters.scenarioId) and chunk.scenarioId == filters.scenarioId
        if not (in_asset or in_scenario):
            return False
    if filters.themeId and chunk.themeId != filters.themeId:
        return False
    if filters.cardIds is not None and chunk.cardId not in filters.cardIds:
        return False
    if filters.excludeUserId and chunk.userId == filters.excludeUserId:
        return False
    return True


def _card_chunks(card: Card) -> list[Chunk]:
    if card.chunks:
        return sorted(card.chunks, key=lambda c: c.order)
    if card.content:
        return [Chunk(id=f"{card.id}:0", content=card.content, order=0)]
    return []


class InMemoryCatalogRepository:
    """
    Data store over a static catalog of assets and scenarios. Chunks are flattened
    once at load with their provenance; a card without chunks yields one chunk of
    its whole content.
    """

    def __init__(self, catalog: Catalog | None = None) -> None:
        catalog = catalog or Catalog()
        self._assets = {a.id: a for a in catalog.assets}
        self._scenarios = {s.id: s for s in catalog.scenarios}
        self._cards: dict[str, Card] = {}
        self._chunks: dict[str, EvidenceChunk] = {}
        for a in catalog.assets:
            self._index_themes(a.themes, asset=a)
        for s in catalog.scenarios:
            self._index_themes(s.themes, scenario=s)
        logger.info(
            "catalog.load assets=%d scenarios=%d cards=%d chunks=%d",
            len(self._assets),
            len(self._scenarios),
            len(self._cards),
            len(self._chunks),
        )

    @classmethod
    def from_file(cls, path: str | Path | None) -> "InMemoryCatalogRepository":
        if not path:
            logger.warning("catalog.path.missing using empty catalog")
            return cls()
        text = Path(path).read_text(encoding="utf-8")
        return cls(Catalog.model_validate_json(text))

    def _index_themes(
        self,
        themes: Iterable[Theme],
        *,
        asset: Optional[Asset] = None,
        scenario: Optional[Scenario] = None,
    ) -> None:
        for theme in themes:
            for card in theme.cards:
                self._cards.setdefault(card.id, card)
                for chunk in _card_chunks(card):
                    if chunk.id in self._chunks:
                        continue
                    self._chunks[chunk.id] = EvidenceChunk(
                        id=chunk.id,
                        content=chunk.content,
                        order=chunk.order,
                        cardId=card.id,
                        cardTitle=card.title,
                        themeId=theme.id,
                        themeName=theme.name,
                        assetId=asset.id if asset else None,
                        assetName=asset.name if asset else None,
                        scenarioId=scenario.id if scenario else None,
                        scenarioName=scenario.name if scenario else None,
                        userId=asset.userId if asset else None,
                        sourceType=card.sourceType,
                        updatedAt=card.updatedAt,
                    )

    # ---------------- Entities ----------------

    async def get_asset(self, asset_id: str) -> Asset | None:
        return self._assets.get(asset_id)

    async def get_scenario(self, scenario_id: str) -> Scenario | None:
        return self._scenarios.get(scenario_id)

    async def get_card(self, card_id: str) -> Card | None:
        return self._cards.get(card_id)

    async def list_assets(
        self,
        *,
        user_id: str | None = None,
        categories: Sequence[str] | None = None,
    ) -> list[Asset]:
        out = list(self._assets.values())
        if user_id is not None:
            out = [a for a in out if a.userId == user_id]
        if categories is not None:
            wanted = set(categories)
            out = [a for a in out if a.category in wanted]
        return out

    # ---------------- Chunks ----------------

    async def find_chunks(
        self, query: str, filters: SearchFilters | None, limit: int
    ) -> list[EvidenceChunk]:
        words = _query_words(query)
        if not words or limit < 1:
            return []
        hits = [
            c
            for c in self._chunks.values()
            if matches_filters(c, filters) and any(w in c.content.lower() for w in words)
        ]
        hits.sort(key=lambda c: c.order)
        return hits[:limit]

    async def get_chunks(self, ids: Sequence[str]) -> dict[str, EvidenceChunk]:
        return {i: self._chunks[i] for i in ids if i in self._chunks}

    async def list_chunks(self, filters: SearchFilters | None = None) -> list[EvidenceChunk]:
        return [c for c in self._chunks.values() if matches_filters(c, filters)]
