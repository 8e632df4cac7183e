import asyncio
import numpy as np
import core.embeddings_retriever as er
from core.embeddings_retriever import EmbeddingVectorProvider, cosine_top
from model.search import SearchFilters


class KeywordModel:
    """Embeds text onto two axes: 'export' and 'compute'."""

    def __init__(self) -> None:
        self.encoded = 0

    def encode(self, texts, batch_size, convert_to_numpy, normalize_embeddings):
        self.encoded += len(texts)
        rows = []
        for t in texts:
            lower = t.lower()
            v = np.array(
                [1.0 if "export" in lower else 0.0, 1.0 if "compute" in lower else 0.0]
            )
            n = np.linalg.norm(v)
            rows.append(v / n if n else v)
        return np.stack(rows)


def test_cosine_top_orders_and_thresholds():
    emb = np.array([[1.0, 0.0], [0.0, 1.0], [0.6, 0.8]], dtype=np.float32)
    top = cosine_top(emb, np.array([0.0, 1.0], dtype=np.float32), limit=3, threshold=0.5)
    assert [i for i, _ in top] == [1, 2]
    assert cosine_top(np.empty((0, 2)), np.array([1.0, 0.0]), 3, 0.0) == []
    assert len(cosine_top(emb, np.array([1.0, 0.0]), 1, 0.0)) == 1


def test_provider_embeds_chunks_once(store, monkeypatch):
    model = KeywordModel()
    monkeypatch.setattr(er, "_load_model", lambda name: model)
    provider = EmbeddingVectorProvider(store, "fake-model")

    first = asyncio.run(provider.search("export rules", None, 5, 0.5))
    encoded_after_first = model.encoded
    asyncio.run(provider.search("export rules", None, 5, 0.5))

    assert first[0].id == "c3-1"
    assert all(m.similarity >= 0.5 for m in first)
    # second call only encodes the query
    assert model.encoded == encoded_after_first + 1


def test_provider_with_no_candidates(store, monkeypatch):
    monkeypatch.setattr(er, "_load_model", lambda name: KeywordModel())
    provider = EmbeddingVectorProvider(store, "fake-model")
    out = asyncio.run(provider.search("x", SearchFilters(assetId="none"), 5, 0.0))
    assert out == []
