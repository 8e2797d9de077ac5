import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from config import settings
from main import app
from routers.scripts import get_dataset_catalog, get_script_orchestrator
from services.datasets import DatasetCatalog
from services.document_store import DocumentStore, get_document_store
from services.script_batches import ScriptBatchOrchestrator
from services.session_token import create_session_token
from services.usage_tracker import usage_tracker


ADMIN_EMAIL = "admin@reelstudio.test"
ADMIN_HEADER = {"Authorization": f"Bearer {create_session_token(ADMIN_EMAIL)['token']}"}
USER_HEADER = {"Authorization": f"Bearer {create_session_token('fan@reelstudio.test')['token']}"}


@pytest_asyncio.fixture
async def api_client(session_maker, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_EMAILS", [ADMIN_EMAIL])
    store = DocumentStore(session_maker)
    catalog = DatasetCatalog(store)
    orchestrator = ScriptBatchOrchestrator(store, catalog=catalog, completion_client=None)

    app.dependency_overrides[get_document_store] = lambda: store
    app.dependency_overrides[get_dataset_catalog] = lambda: catalog
    app.dependency_overrides[get_script_orchestrator] = lambda: orchestrator
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    for dependency in (get_document_store, get_dataset_catalog, get_script_orchestrator):
        app.dependency_overrides.pop(dependency, None)


@pytest.mark.asyncio
async def test_root_and_liveness(api_client):
    root = await api_client.get("/")
    assert root.status_code == 200
    assert root.json()["name"] == "Reel Script Studio API"

    live = await api_client.get("/health/live")
    assert live.json() == {"alive": True}


@pytest.mark.asyncio
async def test_batch_next_and_export_flow(api_client):
    start = await api_client.post("/scripts/batch", json={"topic": "exam results", "genre": "Savage"})
    assert start.status_code == 200
    payload = start.json()
    assert payload["source"] == "rule_based"
    assert payload["index"] == 0
    assert payload["batch_size"] == 1
    assert payload["has_more"] is False
    for field in ("hook", "context", "punchline", "caption"):
        assert "exam results" in payload["script"][field]

    following = await api_client.post(f"/scripts/{payload['session_id']}/next")
    assert following.status_code == 200
    assert following.json()["session_id"] == payload["session_id"]
    assert following.json()["index"] == 0

    exported = await api_client.post("/scripts/export", json={"script": payload["script"]})
    assert exported.status_code == 200
    assert exported.headers["content-type"].startswith("text/plain")
    assert "HOOK:" in exported.text
    assert "TITLE: exam results vibes only!" in exported.text


@pytest.mark.asyncio
async def test_batch_validation_and_unknown_session(api_client):
    empty = await api_client.post("/scripts/batch", json={"topic": "  "})
    assert empty.status_code == 422
    assert empty.json()["detail"] == "Please enter a topic"

    missing = await api_client.post("/scripts/does-not-exist/next")
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_contribution_submission(api_client):
    created = await api_client.post(
        "/contributions",
        json={"type": "dialogue", "content": "Thaggedhe le!", "situation": "when arguing", "tags": "mass, savage"},
    )
    assert created.status_code == 201
    contribution = created.json()["contribution"]
    assert contribution["dialogue"] == "Thaggedhe le!"
    assert contribution["tags"] == ["mass", "savage"]

    rejected = await api_client.post("/contributions", json={"type": "dialogue", "content": "only content"})
    assert rejected.status_code == 422
    assert rejected.json()["detail"] == "Please fill in all required fields."


@pytest.mark.asyncio
async def test_admin_routes_require_admin_session(api_client):
    anonymous = await api_client.get("/admin/usage")
    assert anonymous.status_code == 401

    not_admin = await api_client.get("/admin/usage", headers=USER_HEADER)
    assert not_admin.status_code == 403

    bad_token = await api_client.get("/admin/usage", headers={"Authorization": "Bearer nope"})
    assert bad_token.status_code == 401


@pytest.mark.asyncio
async def test_admin_smart_merge_skips_duplicates(api_client):
    upload = '[{"text": "Em ra idhi, enduku ala chustunnav"}, {"text": "Nenu saitham"}]'

    first = await api_client.post(
        "/admin/datasets/merge",
        json={"category": "dialogues", "mode": "smart-merge", "data": upload},
        headers=ADMIN_HEADER,
    )
    assert first.status_code == 200
    assert first.json()["stats"]["newItemsAdded"] == 2
    assert first.json()["saved"] is True

    second = await api_client.post(
        "/admin/datasets/merge",
        json={
            "category": "dialogue",
            "mode": "smart-merge",
            "data": [{"text": "em ra idhi enduku ala chustunnav!"}, {"text": "Rey, plan enti ra?"}],
        },
        headers=ADMIN_HEADER,
    )
    assert second.json()["stats"] == {
        "inputItems": 2,
        "newItemsAdded": 1,
        "duplicatesSkipped": 1,
        "totalItems": 3,
    }

    dataset = await api_client.get("/admin/datasets/dialogue", headers=ADMIN_HEADER)
    assert dataset.status_code == 200
    assert dataset.json()["totalItems"] == 3
    assert all(item["id"].startswith("dlg_") for item in dataset.json()["data"])


@pytest.mark.asyncio
async def test_admin_merge_validation(api_client):
    invalid = await api_client.post(
        "/admin/datasets/merge",
        json={"category": "memes", "mode": "append", "data": "[{"},
        headers=ADMIN_HEADER,
    )
    assert invalid.status_code == 422
    assert invalid.json()["detail"].startswith("Invalid JSON")

    not_array = await api_client.post(
        "/admin/datasets/merge",
        json={"category": "memes", "mode": "append", "data": {"caption": "x"}},
        headers=ADMIN_HEADER,
    )
    assert not_array.status_code == 422
    assert not_array.json()["detail"] == "Data must be an array"


@pytest.mark.asyncio
async def test_admin_generator_settings_and_usage(api_client):
    updated = await api_client.put("/admin/settings/generator", json={"use_ai": False}, headers=ADMIN_HEADER)
    assert updated.status_code == 200
    assert updated.json()["useAI"] is False

    current = await api_client.get("/admin/settings/generator", headers=ADMIN_HEADER)
    assert current.json()["useAI"] is False

    usage_tracker.log_usage(1000, 2000)
    usage = await api_client.get("/admin/usage", headers=ADMIN_HEADER)
    assert usage.status_code == 200
    assert usage.json()["usage"]["inputTokens"] >= 1000
    assert set(usage.json()["formatted"]) == {"usd", "inr", "avgPerRequest"}

    reset = await api_client.post("/admin/usage/reset", headers=ADMIN_HEADER)
    assert reset.json()["reset"] is True
    assert reset.json()["usage"]["totalRequests"] == 0
