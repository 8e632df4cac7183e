import pytest
from fastapi.testclient import TestClient
from conftest import NOW, FakeRedis, FakeVectors, MemorySink, build_analysis
from controller.context_controller import context_router
from controller.controller_dependencies import Components
from controller.matrix_controller import matrix_router
from controller.search_controller import search_router
from core.context_assembler import ContextAssembler
from core.events import EventBus
from core.hybrid_search import HybridSearchEngine
from main import app
from repository.job_repository import JobRepository
from service.matrix_job_service import MatrixJobService
from util.metrics import MetricsRegistry


async def _unlimited():
    return None


@pytest.fixture
def client(store):
    metrics = MetricsRegistry()
    events = EventBus()
    analysis = build_analysis(store, sink=MemorySink(), metrics=metrics)
    search = HybridSearchEngine(store, FakeVectors(store, {"c4-1": 0.8}))
    app.state.components = Components(
        metrics=metrics,
        events=events,
        search=search,
        assembler=ContextAssembler(store, search, now=lambda: NOW),
        analysis=analysis,
        jobs=MatrixJobService(
            JobRepository(redis=FakeRedis()), analysis, events=events, metrics=metrics
        ),
    )
    for router in (matrix_router, search_router, context_router):
        for dep in router.dependencies:
            app.dependency_overrides[dep.dependency] = _unlimited
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_healthz(client):
    assert client.get("/healthz").json() == {"ok": True}


def test_analyze_then_read_cached_result(client):
    r = client.post("/api/v1/matrix/analyze", json={"assetId": "nvda", "scenarioId": "export"})
    assert r.status_code == 200
    body = r.json()
    assert body["assetId"] == "nvda"
    assert 0.0 <= body["impactScore"] <= 1.0

    cached = client.get("/api/v1/matrix/nvda/export")
    assert cached.status_code == 200
    assert cached.json()["analysisId"] == body["analysisId"]
    assert client.get("/metrics").json()["analysis_success_total"] == 1


def test_unknown_pair_maps_to_404(client):
    r = client.post("/api/v1/matrix/analyze", json={"assetId": "ghost", "scenarioId": "export"})
    assert r.status_code == 404
    assert r.json()["detail"] == "Asset not found: ghost"
    missing = client.get("/api/v1/matrix/amd/export")
    assert missing.status_code == 404


def test_invalid_request_is_rejected(client):
    r = client.post("/api/v1/matrix/analyze", json={"assetId": "", "scenarioId": "export"})
    assert r.status_code == 422


def test_batch_endpoint(client):
    r = client.post(
        "/api/v1/matrix/batch",
        json={
            "pairs": [
                {"assetId": "nvda", "scenarioId": "export"},
                {"assetId": "ghost", "scenarioId": "export"},
            ]
        },
    )
    assert r.status_code == 200
    body = r.json()
    assert (body["successfulAnalyses"], body["failedAnalyses"]) == (1, 1)


def test_job_runs_in_background(client):
    r = client.post("/api/v1/matrix/jobs", json={"assetId": "nvda", "scenarioId": "export"})
    assert r.status_code == 202
    job_id = r.json()["jobId"]
    assert r.json()["status"] == "pending"

    job = client.get(f"/api/v1/matrix/jobs/{job_id}").json()
    assert job["status"] == "completed"
    assert job["analysisId"].startswith("analysis_nvda_export_")
    assert client.get("/api/v1/matrix/jobs/nope").status_code == 404


def test_search_endpoints(client):
    r = client.post("/api/v1/search", json={"query": "AI compute", "limit": 5})
    assert r.status_code == 200
    assert r.json()["total"] == len(r.json()["results"]) <= 5

    blank = client.post("/api/v1/search", json={"query": "   "})
    assert blank.status_code == 400

    recs = client.get("/api/v1/search/recommendations", params={"userId": "u1"})
    assert recs.status_code == 200
    assert "c4-1" in [x["id"] for x in recs.json()["results"]]


def test_job_can_be_deleted(client):
    job_id = client.post(
        "/api/v1/matrix/jobs", json={"assetId": "nvda", "scenarioId": "export"}
    ).json()["jobId"]

    assert client.delete(f"/api/v1/matrix/jobs/{job_id}").status_code == 204
    assert client.get(f"/api/v1/matrix/jobs/{job_id}").status_code == 404
    assert client.delete(f"/api/v1/matrix/jobs/{job_id}").status_code == 404


def test_context_endpoints(client):
    portfolio = client.get("/api/v1/context/portfolio/u1", params={"focus": ["AI compute"]})
    assert portfolio.status_code == 200
    assert portfolio.json()["assetCount"] == 1
    assert client.get("/api/v1/context/portfolio/nobody").status_code == 404

    trend = client.get("/api/v1/context/trends/Semiconductors", params={"timeframe": "2026"})
    assert trend.status_code == 200
    body = trend.json()
    assert body["technologyCategory"] == "Semiconductors"
    assert body["sections"][0]["type"] == "trend_overview"
