# core/embeddings_retriever.py
import asyncio
from functools import lru_cache
from typing import List, Sequence
import numpy as np
from sentence_transformers import SentenceTransformer
from core.providers import DataStore
from model.search import SearchFilters, VectorMatch
from util.timing import timed
import logging

logger = logging.getLogger(__name__)


@lru_cache(maxsize=2)
def _load_model(name: str) -> SentenceTransformer:
    """
    Lazy-load the sentence embedding model once per process.

    Kept on CPU; pick a larger model through EMBEDDING_MODEL_NAME if needed.
    """
    with timed(logger, "embed.model.load", model=name):
        model = SentenceTransformer(name, device="cpu")
    return model


def _encode(model: SentenceTransformer, texts: Sequence[str], batch_size: int) -> np.ndarray:
    vecs = model.encode(
        list(texts),
        batch_size=batch_size,
        convert_to_numpy=True,
        normalize_embeddings=True,
    )
    return vecs.astype(np.float32, copy=False)


def cosine_top(
    embeddings: np.ndarray, query_vec: np.ndarray, limit: int, threshold: float
) -> List[tuple[int, float]]:
    """(row, similarity) pairs at or above threshold, best first. Rows are L2-normalised."""
    if embeddings.size == 0 or limit < 1:
        return []
    sims = (embeddings @ query_vec).astype(float)
    kk = min(limit, sims.shape[0])
    top_idx = np.argpartition(sims, -kk)[-kk:]
    out = sorted(
        ((int(i), float(sims[int(i)])) for i in top_idx),
        key=lambda t: t[1],
        reverse=True,
    )
    return [(i, s) for i, s in out if s >= threshold]


class EmbeddingVectorProvider:
    """
    Vector search over the data store's chunks using a sentence-transformers model.

    Chunk embeddings are computed on demand per filtered candidate set and cached by
    chunk id. Encoding runs in a worker thread so the event loop stays free.
    """

    def __init__(
        self,
        store: DataStore,
        model_name: str,
        *,
        batch_size: int = 64,
    ) -> None:
        self._store = store
        self._model_name = model_name
        self._batch = batch_size
        self._vectors: dict[str, np.ndarray] = {}

    def _embed_missing(self, ids: Sequence[str], texts: Sequence[str]) -> None:
        if not ids:
            return
        model = _load_model(self._model_name)
        with timed(logger, "embed.encode", n=len(ids), batch=self._batch):
            vecs = _encode(model, texts, self._batch)
        for cid, v in zip(ids, vecs):
            self._vectors[cid] = v

    def _query_vector(self, query: str) -> np.ndarray:
        model = _load_model(self._model_name)
        return _encode(model, [query], 1)[0]

    def _search_sync(
        self,
        query: str,
        ids: Sequence[str],
        texts: Sequence[str],
        limit: int,
        threshold: float,
    ) -> List[VectorMatch]:
        missing = [(i, t) for i, t in zip(ids, texts) if i not in self._vectors]
        self._embed_missing([m[0] for m in missing], [m[1] for m in missing])
        matrix = np.stack([self._vectors[i] for i in ids])
        with timed(logger, "embed.query", k=limit):
            top = cosine_top(matrix, self._query_vector(query), limit, threshold)
        return [VectorMatch(id=ids[i], similarity=s) for i, s in top]

    async def search(
        self,
        query: str,
        filters: SearchFilters | None,
        limit: int,
        threshold: float,
    ) -> list[VectorMatch]:
        chunks = await self._store.list_chunks(filters)
        if not chunks:
            return []
        ids = [c.id for c in chunks]
        texts = [c.content for c in chunks]
        matches = await asyncio.to_thread(
            self._search_sync, query, ids, texts, limit, threshold
        )
        logger.info("embed.topk candidates=%d matches=%d", len(ids), len(matches))
        return matches
