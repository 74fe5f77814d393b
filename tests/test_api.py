"""Integration tests for the HTTP API.

Tests batch, credit and photoshoot endpoints including:
- POST /api/batches - Submit batch (202, 400, 401, 402)
- GET /api/batches/{batch_id} and /tasks - Progress polling with ownership checks
- POST /api/tasks/{task_id}/process - Idempotent re-trigger
- GET /api/credits - Balance
- POST /api/photoshoots/{photoshoot_id}/repair - Manual reconciliation
"""

import base64
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update

from adshoot.app import create_app
from adshoot.models.generation_task import GenerationTask, TaskStatus
from adshoot.models.photoshoot import Photoshoot
from adshoot.services.credits import CreditLedger
from adshoot.services.poller import BatchPoller, HttpProgressFetcher

PROMPT = "red sneaker on white background"


@pytest_asyncio.fixture
async def test_client(settings, session_factory, uow_factory, orchestrator):
    """Provide AsyncClient for testing API endpoints with database access."""
    app = create_app(settings)
    # The lifespan does not run under ASGITransport; inject collaborators directly
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.orchestrator = orchestrator
    app.state.credit_ledger = CreditLedger(uow_factory)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def headers(user_id):
    return {"X-User-Id": str(user_id)}


@pytest.mark.asyncio
async def test_health_check(test_client):
    response = await test_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
class TestSubmitBatchEndpoint:
    async def test_batch_accepted_and_completed(self, test_client, headers, drain):
        response = await test_client.post(
            "/api/batches",
            json={"prompt": PROMPT, "variant_count": 3, "size": "square"},
            headers=headers,
        )

        assert response.status_code == 202
        data = response.json()
        assert len(data["task_ids"]) == 3
        assert data["credits_remaining"] == 7

        await drain()

        response = await test_client.get(f"/api/batches/{data['batch_id']}", headers=headers)
        assert response.status_code == 200
        progress = response.json()
        assert progress["total"] == 3
        assert progress["completed"] == 3
        assert progress["percentage"] == 100.0
        assert progress["is_complete"] is True

        response = await test_client.get(
            f"/api/batches/{data['batch_id']}/tasks", headers=headers
        )
        tasks = response.json()
        assert [t["id"] for t in tasks] == data["task_ids"]
        assert [t["batch_index"] for t in tasks] == [0, 1, 2]
        assert {t["status"] for t in tasks} == {"completed"}
        assert all(t["result_image_url"] for t in tasks)

    async def test_insufficient_credits_returns_402(
        self, test_client, headers, user_id, uow_factory
    ):
        async with await uow_factory() as uow:
            await uow.credits.deduct(user_id, 8)

        response = await test_client.post(
            "/api/batches", json={"prompt": PROMPT, "variant_count": 3}, headers=headers
        )

        assert response.status_code == 402
        assert response.json() == {
            "error": "Insufficient credits",
            "message": "You need 3 credits but only have 2 available.",
            "credits": 2,
        }

    async def test_invalid_variant_count_returns_400(self, test_client, headers):
        response = await test_client.post(
            "/api/batches", json={"prompt": PROMPT, "variant_count": 6}, headers=headers
        )

        assert response.status_code == 400
        assert "variant_count" in response.json()["detail"]

    async def test_blank_prompt_returns_400(self, test_client, headers):
        response = await test_client.post("/api/batches", json={"prompt": "  "}, headers=headers)

        assert response.status_code == 400

    async def test_invalid_base64_returns_400(self, test_client, headers):
        response = await test_client.post(
            "/api/batches",
            json={
                "prompt": PROMPT,
                "reference_images": [{"filename": "shoe.png", "content_base64": "@@not-b64@@"}],
            },
            headers=headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Reference image content must be valid base64"

    async def test_inline_reference_is_uploaded(self, test_client, headers, user_id, asset_store):
        response = await test_client.post(
            "/api/batches",
            json={
                "prompt": PROMPT,
                "reference_images": [
                    {
                        "filename": "shoe.png",
                        "content_base64": base64.b64encode(b"reference-bytes").decode(),
                    }
                ],
            },
            headers=headers,
        )

        assert response.status_code == 202
        (path,) = asset_store.objects
        assert path.startswith(f"{user_id}/references/")
        assert asset_store.objects[path] == b"reference-bytes"

    async def test_missing_user_header_returns_401(self, test_client):
        response = await test_client.post("/api/batches", json={"prompt": PROMPT})

        assert response.status_code == 401

    async def test_malformed_user_header_returns_401(self, test_client):
        response = await test_client.get("/api/credits", headers={"X-User-Id": "not-a-uuid"})

        assert response.status_code == 401


@pytest.mark.asyncio
class TestBatchQueries:
    async def test_other_users_batch_is_not_found(self, test_client, headers):
        response = await test_client.post(
            "/api/batches", json={"prompt": PROMPT}, headers=headers
        )
        batch_id = response.json()["batch_id"]
        stranger = {"X-User-Id": str(uuid4())}

        for path in (f"/api/batches/{batch_id}", f"/api/batches/{batch_id}/tasks"):
            response = await test_client.get(path, headers=stranger)
            assert response.status_code == 404

    async def test_unknown_batch_is_not_found(self, test_client, headers):
        response = await test_client.get(f"/api/batches/{uuid4()}", headers=headers)

        assert response.status_code == 404

    async def test_poller_follows_batch_over_http(self, test_client, headers, user_id, drain):
        response = await test_client.post(
            "/api/batches", json={"prompt": PROMPT, "variant_count": 2}, headers=headers
        )
        batch_id = response.json()["batch_id"]

        async def run_workers_instead_of_sleeping(seconds):
            await drain()

        poller = BatchPoller(
            HttpProgressFetcher("http://test", user_id, client=test_client),
            interval_seconds=3,
            timeout_seconds=600,
            sleep=run_workers_instead_of_sleeping,
        )

        result = await poller.wait_for_batch(batch_id)

        assert not result.timed_out
        assert result.polls == 2
        assert result.progress.completed == 2


@pytest.mark.asyncio
class TestProcessTaskEndpoint:
    async def test_process_is_idempotent(self, test_client, headers, drain, image_generator):
        response = await test_client.post(
            "/api/batches", json={"prompt": PROMPT}, headers=headers
        )
        (task_id,) = response.json()["task_ids"]

        first = await test_client.post(f"/api/tasks/{task_id}/process", headers=headers)
        second = await test_client.post(f"/api/tasks/{task_id}/process", headers=headers)

        assert first.status_code == 200
        assert first.json()["result"] == "completed"
        assert first.json()["status"] == "completed"
        assert second.json()["result"] == "already_terminal"
        assert second.json()["result_image_url"] == first.json()["result_image_url"]
        assert len(image_generator.requests) == 1

        # The queued copy of the task is a no-op as well
        await drain()
        assert len(image_generator.requests) == 1

    async def test_other_users_task_is_not_found(self, test_client, headers):
        response = await test_client.post(
            "/api/batches", json={"prompt": PROMPT}, headers=headers
        )
        (task_id,) = response.json()["task_ids"]

        response = await test_client.post(
            f"/api/tasks/{task_id}/process", headers={"X-User-Id": str(uuid4())}
        )

        assert response.status_code == 404


@pytest.mark.asyncio
class TestCreditsEndpoint:
    async def test_new_user_gets_starting_balance(self, test_client, headers):
        response = await test_client.get("/api/credits", headers=headers)

        assert response.status_code == 200
        assert response.json() == {"has_credits": True, "balance": 10}

    async def test_exhausted_balance(self, test_client, headers, user_id, uow_factory):
        async with await uow_factory() as uow:
            await uow.credits.deduct(user_id, 10)

        response = await test_client.get("/api/credits", headers=headers)

        assert response.json() == {"has_credits": False, "balance": 0}


@pytest.mark.asyncio
class TestRepairEndpoint:
    async def _stuck_photoshoot(self, uow_factory, user_id) -> Photoshoot:
        task = GenerationTask(
            batch_id=uuid4(), batch_index=0, total_in_batch=1, user_id=user_id, prompt=PROMPT
        )
        photoshoot = Photoshoot(
            batch_id=task.batch_id, batch_index=0, user_id=user_id, prompt=PROMPT
        )
        async with await uow_factory() as uow:
            await uow.tasks.add_batch([task])
            await uow.photoshoots.add(photoshoot)
            await uow.session.execute(
                update(GenerationTask)
                .where(GenerationTask.id == task.id)
                .values(status=TaskStatus.COMPLETED, result_image_url="https://cdn.test/done.png")
            )
        return photoshoot

    async def test_repair_stuck_photoshoot(self, test_client, headers, user_id, uow_factory):
        photoshoot = await self._stuck_photoshoot(uow_factory, user_id)

        response = await test_client.post(
            f"/api/photoshoots/{photoshoot.id}/repair", headers=headers
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "completed"
        assert body["changed"] is True
        assert body["task_id"] is not None

        async with await uow_factory() as uow:
            stored = await uow.photoshoots.get_by_id(photoshoot.id)
        assert stored.status == TaskStatus.COMPLETED
        assert stored.result_image_url == "https://cdn.test/done.png"

    async def test_repair_other_users_photoshoot(self, test_client, user_id, uow_factory):
        photoshoot = await self._stuck_photoshoot(uow_factory, user_id)

        response = await test_client.post(
            f"/api/photoshoots/{photoshoot.id}/repair", headers={"X-User-Id": str(uuid4())}
        )

        assert response.status_code == 404

    async def test_repair_unknown_photoshoot(self, test_client, headers):
        response = await test_client.post(f"/api/photoshoots/{uuid4()}/repair", headers=headers)

        assert response.status_code == 404
