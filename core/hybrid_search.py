# core/hybrid_search.py
import asyncio
import logging
import math
from typing import Iterable, Optional, Sequence
from core.alpha import AlphaAdvisor
from core.providers import DataStore, VectorSearchProvider
from model.catalog import Asset, EvidenceChunk
from model.search import (
    FusedResult,
    HybridSearchResult,
    Relevance,
    SearchFilters,
    SearchHit,
)
from util.metrics import MetricsRegistry
from util.timing import timed

logger = logging.getLogger(__name__)

DEFAULT_RRF_K = 60
DEFAULT_KEYWORD_WEIGHT = 0.4
DEFAULT_VECTOR_WEIGHT = 0.6
DEFAULT_VECTOR_THRESHOLD = 0.5
MAX_CANDIDATES = 100
CONTEXT_RADIUS_WORDS = 20
CONTEXT_MAX_CHARS = 200
DEDUP_PREFIX_CHARS = 100
MAX_RECOMMENDATION_QUERIES = 5

MATRIX_DEFAULT_QUERY = "impact analysis technology disruption market change"


# ---------------- Scoring primitives ----------------


def proximity_score(query_words: Sequence[str], content_lower: str) -> float:
    """Sum of 1/(distance+1) over consecutive query-word pairs found in the text."""
    if len(query_words) < 2:
        return 0.0
    words = content_lower.split()

    def first_pos(term: str) -> int:
        return next((i for i, w in enumerate(words) if term in w), -1)

    score = 0.0
    for w1, w2 in zip(query_words, query_words[1:]):
        p1, p2 = first_pos(w1), first_pos(w2)
        if p1 != -1 and p2 != -1:
            score += 1.0 / (abs(p2 - p1) + 1)
    return score


def keyword_score(query: str, content: str) -> float:
    if not content:
        return 0.0
    query_lower = query.lower()
    query_words = query_lower.split()
    if not query_words:
        return 0.0
    content_lower = content.lower()

    score = 0.0
    if query_lower in content_lower:
        score += 2.0
    for word in query_words:
        if word in content_lower:
            score += 1.0 / len(query_words)
    score += proximity_score(query_words, content_lower)
    return score / math.log(len(content) + 1)


def rrf_term(position: int, weight: float, k: int = DEFAULT_RRF_K) -> float:
    """Contribution of a 0-based list position."""
    return weight * (1.0 / (k + position + 1))


def fuse_rrf(
    keyword_hits: Sequence[SearchHit],
    vector_hits: Sequence[SearchHit],
    *,
    k: int = DEFAULT_RRF_K,
    keyword_weight: float = DEFAULT_KEYWORD_WEIGHT,
    vector_weight: float = DEFAULT_VECTOR_WEIGHT,
    limit: int = 20,
) -> list[FusedResult]:
    """
    Reciprocal Rank Fusion over the two ranked lists.

    Each list an item appears in adds weight/(k + position + 1). Stored ranks are
    1-based. Ties keep first-seen order (keyword list first).
    """
    fused: dict[str, FusedResult] = {}

    for pos, hit in enumerate(keyword_hits):
        term = rrf_term(pos, keyword_weight, k)
        cur = fused.get(hit.id)
        if cur is None:
            fused[hit.id] = FusedResult(
                id=hit.id,
                content=hit.content,
                keywordScore=hit.score,
                keywordRank=pos + 1,
                rrfScore=term,
            )
        else:
            cur.keywordScore = hit.score
            cur.keywordRank = pos + 1
            cur.rrfScore += term

    for pos, hit in enumerate(vector_hits):
        term = rrf_term(pos, vector_weight, k)
        cur = fused.get(hit.id)
        if cur is None:
            fused[hit.id] = FusedResult(
                id=hit.id,
                content=hit.content,
                vectorScore=hit.score,
                vectorRank=pos + 1,
                rrfScore=term,
            )
        else:
            cur.vectorScore = hit.score
            cur.vectorRank = pos + 1
            cur.rrfScore += term

    ordered = sorted(fused.values(), key=lambda r: r.rrfScore, reverse=True)
    return ordered[:limit]


def relevance_bucket(rrf: float, keyword: float, vector: float) -> Relevance:
    if rrf > 0.05 and (keyword > 0.5 or vector > 0.8):
        return "high"
    if rrf > 0.02:
        return "medium"
    return "low"


def extract_context(content: str, query: str) -> str:
    """Window of ~40 words around the position matching the most query terms."""
    words = content.split()
    query_words = query.lower().split()
    best_pos, best_score = 0, 0
    for i, word in enumerate(words):
        lw = word.lower()
        score = sum(1 for q in query_words if q in lw)
        if score > best_score:
            best_pos, best_score = i, score
    start = max(0, best_pos - CONTEXT_RADIUS_WORDS)
    end = min(len(words), best_pos + CONTEXT_RADIUS_WORDS)
    ctx = " ".join(words[start:end])
    if len(ctx) > CONTEXT_MAX_CHARS:
        return ctx[:CONTEXT_MAX_CHARS] + "..."
    return ctx


def content_hash(content: str) -> str:
    return "".join(content[:DEDUP_PREFIX_CHARS].lower().split())


def dedupe_results(results: Iterable[HybridSearchResult]) -> list[HybridSearchResult]:
    seen: set[str] = set()
    unique: list[HybridSearchResult] = []
    for r in results:
        h = content_hash(r.content)
        if h in seen:
            continue
        seen.add(h)
        unique.append(r)
    return unique


def recommendation_queries(assets: Sequence[Asset]) -> list[str]:
    by_category: dict[str, list[Asset]] = {}
    for a in assets:
        if a.category:
            by_category.setdefault(a.category, []).append(a)
    queries: list[str] = []
    for category, members in by_category.items():
        queries.append(f"{category} technology trends analysis")
        queries.append(f"{category} market disruption impact")
        for a in members[:2]:
            queries.append(f"{a.name} competitive analysis")
    return queries[:MAX_RECOMMENDATION_QUERIES]


def _candidate_limit(limit: int) -> int:
    return min(limit * 2, MAX_CANDIDATES)


# ---------------- Engine ----------------


class HybridSearchEngine:
    """
    Keyword + vector retrieval fused with RRF.

    Single-query calls fail fast: if either source raises, the sibling task is
    cancelled and the error propagates. Recommendation mode swallows per-query
    failures.
    """

    def __init__(
        self,
        store: DataStore,
        vectors: VectorSearchProvider,
        *,
        k: int = DEFAULT_RRF_K,
        keyword_weight: float = DEFAULT_KEYWORD_WEIGHT,
        vector_weight: float = DEFAULT_VECTOR_WEIGHT,
        vector_threshold: float = DEFAULT_VECTOR_THRESHOLD,
        alpha_advisor: Optional[AlphaAdvisor] = None,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._store = store
        self._vectors = vectors
        self._k = k
        self._kw = keyword_weight
        self._vec = vector_weight
        self._threshold = vector_threshold
        self._alpha = alpha_advisor
        self._metrics = metrics

    def weights_for(self, query: str) -> tuple[float, float]:
        if self._alpha is not None:
            return self._alpha.weights_for(query)
        return self._kw, self._vec

    async def _keyword_hits(
        self, query: str, filters: SearchFilters | None, limit: int
    ) -> tuple[list[SearchHit], dict[str, EvidenceChunk]]:
        chunks = await self._store.find_chunks(query, filters, _candidate_limit(limit))
        scored = [(c, keyword_score(query, c.content)) for c in chunks]
        scored.sort(key=lambda t: t[1], reverse=True)
        hits = [
            SearchHit(
                id=c.id,
                content=c.content,
                cardId=c.cardId,
                cardTitle=c.cardTitle,
                score=s,
                rank=i + 1,
                source="keyword",
            )
            for i, (c, s) in enumerate(scored)
        ]
        return hits, {c.id: c for c in chunks}

    async def _vector_hits(
        self, query: str, filters: SearchFilters | None, limit: int
    ) -> tuple[list[SearchHit], dict[str, EvidenceChunk]]:
        matches = await self._vectors.search(
            query, filters, _candidate_limit(limit), self._threshold
        )
        matches = [m for m in matches if m.similarity >= self._threshold]
        chunks = await self._store.get_chunks([m.id for m in matches])
        hits: list[SearchHit] = []
        for m in matches:
            c = chunks.get(m.id)
            if c is None:
                continue
            hits.append(
                SearchHit(
                    id=c.id,
                    content=c.content,
                    cardId=c.cardId,
                    cardTitle=c.cardTitle,
                    score=m.similarity,
                    rank=len(hits) + 1,
                    source="vector",
                )
            )
        return hits, chunks

    async def search(
        self,
        query: str,
        filters: SearchFilters | None = None,
        limit: int = 20,
        *,
        keyword_weight: float | None = None,
        vector_weight: float | None = None,
    ) -> list[HybridSearchResult]:
        if not query or not query.strip():
            raise ValueError("query must not be empty")
        if limit < 1:
            raise ValueError("limit must be >= 1")

        kw_w, vec_w = self.weights_for(query)
        if keyword_weight is not None:
            kw_w = keyword_weight
        if vector_weight is not None:
            vec_w = vector_weight

        with timed(logger, "search.hybrid", limit=limit):
            kw_task = asyncio.create_task(self._keyword_hits(query, filters, limit))
            vec_task = asyncio.create_task(self._vector_hits(query, filters, limit))
            try:
                (kw_hits, kw_chunks), (vec_hits, vec_chunks) = await asyncio.gather(
                    kw_task, vec_task
                )
            except Exception:
                for t in (kw_task, vec_task):
                    t.cancel()
                logger.error("search.hybrid.error limit=%d", limit)
                raise

            fused = fuse_rrf(
                kw_hits,
                vec_hits,
                k=self._k,
                keyword_weight=kw_w,
                vector_weight=vec_w,
                limit=limit,
            )
            chunks = {**vec_chunks, **kw_chunks}
            results = [self._enrich(r, chunks.get(r.id), query) for r in fused]

        if self._metrics:
            self._metrics.inc("search_queries_total")
        logger.info(
            "search.hybrid.result kw=%d vec=%d fused=%d wk=%.2f wv=%.2f",
            len(kw_hits),
            len(vec_hits),
            len(results),
            kw_w,
            vec_w,
        )
        return results

    @staticmethod
    def _enrich(
        fused: FusedResult, chunk: EvidenceChunk | None, query: str
    ) -> HybridSearchResult:
        meta: dict[str, str | None] = {}
        extra: dict = {}
        if chunk is not None:
            meta = {
                "assetId": chunk.assetId,
                "assetName": chunk.assetName,
                "scenarioId": chunk.scenarioId,
                "scenarioName": chunk.scenarioName,
                "themeId": chunk.themeId,
                "themeName": chunk.themeName,
            }
            extra = {
                "cardId": chunk.cardId,
                "cardTitle": chunk.cardTitle,
                "sourceType": chunk.sourceType,
                "updatedAt": chunk.updatedAt,
            }
        return HybridSearchResult(
            **fused.model_dump(),
            **extra,
            hybridScore=fused.rrfScore,
            relevance=relevance_bucket(
                fused.rrfScore, fused.keywordScore, fused.vectorScore
            ),
            context=extract_context(fused.content, query),
            metadata=meta,
        )

    async def search_for_matrix_analysis(
        self,
        asset_id: str,
        scenario_id: str,
        query: str | None = None,
        limit: int = 15,
    ) -> list[HybridSearchResult]:
        return await self.search(
            query or MATRIX_DEFAULT_QUERY,
            SearchFilters(assetId=asset_id, scenarioId=scenario_id),
            limit,
        )

    async def search_by_card_ids(
        self, query: str, card_ids: Sequence[str], limit: int = 20
    ) -> list[HybridSearchResult]:
        if not card_ids:
            return []
        return await self.search(query, SearchFilters(cardIds=list(card_ids)), limit)

    async def search_by_categories(
        self, query: str, categories: Sequence[str], limit: int = 20
    ) -> list[HybridSearchResult]:
        assets = await self._store.list_assets(categories=categories)
        card_ids = [c.id for a in assets for t in a.themes for c in t.cards]
        logger.debug("search.category assets=%d cards=%d", len(assets), len(card_ids))
        return await self.search_by_card_ids(query, card_ids, limit)

    async def recommend_for_user(
        self, user_id: str, limit: int = 20
    ) -> list[HybridSearchResult]:
        """
        Content from other users related to this user's portfolio. Never raises:
        a failing sub-query contributes nothing.
        """
        try:
            assets = await self._store.list_assets(user_id=user_id)
        except Exception as e:
            logger.error("search.recommend.assets.error user=%s err=%s", user_id, e)
            return []
        queries = recommendation_queries(assets)
        if not queries:
            return []
        per_query = math.ceil(limit / len(queries))
        filters = SearchFilters(excludeUserId=user_id)

        async def one(q: str) -> list[HybridSearchResult]:
            try:
                return await self.search(q, filters, per_query)
            except Exception as e:
                logger.warning("search.recommend.query.error err=%s", e)
                return []

        batches = await asyncio.gather(*(one(q) for q in queries))
        merged = dedupe_results(r for batch in batches for r in batch)
        merged.sort(key=lambda r: r.hybridScore, reverse=True)
        logger.info(
            "search.recommend.done user=%s queries=%d results=%d",
            user_id,
            len(queries),
            min(len(merged), limit),
        )
        return merged[:limit]
