"""Tests for the admin HTTP application."""

from __future__ import annotations

import logging

import pytest
from aiohttp import BasicAuth, web

from vno.db.types import QueueName
from vno.jobs.queue import JobQueue
from vno.jobs.store import InMemoryJobStore
from vno.jobs.supervisor import QueueSupervisor
from vno.server.app import create_app
from vno.server.lifecycle import ServerLifecycle
from vno.services import build_services

TOKEN = "s3cret-token"


class FailingStore(InMemoryJobStore):
    """Store that fails like a corrupted database file."""

    def count_by_state(self, queue, now):
        raise RuntimeError("database disk image is malformed: /srv/vno.db")


@pytest.fixture
def services(test_config):
    services = build_services(test_config, memory=True)
    yield services
    services.close()


@pytest.fixture
def lifecycle() -> ServerLifecycle:
    return ServerLifecycle(shutdown_timeout=5.0)


@pytest.fixture
def make_client(aiohttp_client, services, lifecycle):
    """Build a test client, optionally without authentication."""

    async def _make(token: str | None = None, app: web.Application | None = None):
        if app is None:
            app = create_app(services, token, lifecycle=lifecycle, maintenance=False)
        return await aiohttp_client(app)

    return _make


def _auth() -> dict[str, str]:
    return {"Authorization": f"Bearer {TOKEN}"}


class TestHealth:
    """Tests for GET /health."""

    async def test_healthy_in_memory(self, make_client) -> None:
        client = await make_client()
        resp = await client.get("/health")
        assert resp.status == 200
        body = await resp.json()
        assert body["status"] == "healthy"
        assert body["database"] == "memory"
        assert body["shutting_down"] is False
        assert body["maintenance_healthy"] is None

    async def test_reports_queue_depth(self, make_client, services) -> None:
        services.queue(QueueName.TRANSCRIBE).enqueue("n1", {"media_path": "a.m4a"})
        services.supervisor.pause("summarize")
        client = await make_client()
        body = await (await client.get("/health")).json()
        assert body["jobs_waiting"] == 1
        assert body["paused_queues"] == ["summarize"]

    async def test_open_without_token(self, make_client) -> None:
        """Load balancer health checks don't carry credentials."""
        client = await make_client(TOKEN)
        resp = await client.get("/health")
        assert resp.status == 200

    async def test_sqlite_connected_then_degraded(
        self, aiohttp_client, test_config
    ) -> None:
        services = build_services(test_config)
        client = await aiohttp_client(create_app(services, maintenance=False))

        body = await (await client.get("/health")).json()
        assert body["database"] == "connected"

        services.pool.close()
        resp = await client.get("/health")
        body = await resp.json()
        assert resp.status == 503
        assert body["status"] == "degraded"
        assert body["database"] == "disconnected"

    async def test_shutting_down(self, make_client, lifecycle) -> None:
        client = await make_client()
        lifecycle.initiate_shutdown()
        resp = await client.get("/health")
        body = await resp.json()
        assert resp.status == 503
        assert body["status"] == "unhealthy"
        assert body["shutting_down"] is True


class TestQueueRoutes:
    """Tests for the queue control API."""

    async def test_all_stats(self, make_client, services) -> None:
        services.queue(QueueName.SUMMARIZE).enqueue("n1", {"transcript": "hi"})
        client = await make_client(TOKEN)
        resp = await client.get("/queues", headers=_auth())
        assert resp.status == 200
        body = await resp.json()
        assert body["summarize"]["waiting"] == 1
        assert set(body) == {"transcribe", "summarize", "timestamp"}

    async def test_stats_after_processing(
        self, make_client, services, media_file
    ) -> None:
        note = services.notes.create_note("alice", media_path=str(media_file))
        services.dispatcher.submit_note(note.id)
        services.build_worker_pool([QueueName.TRANSCRIBE]).run_once()
        client = await make_client(TOKEN)

        resp = await client.get("/queues/transcribe", headers=_auth())

        stats = (await resp.json())["stats"]
        assert stats["active"] == 0
        assert stats["completed"] == 1
        assert services.notes.get_note(note.id).status.value == "summarizing"

    async def test_versioned_prefix(self, make_client) -> None:
        client = await make_client(TOKEN)
        resp = await client.get("/api/v1/queues/transcribe", headers=_auth())
        assert resp.status == 200
        assert (await resp.json())["queue"] == "transcribe"

    async def test_pause_and_resume(self, make_client, services) -> None:
        client = await make_client(TOKEN)

        resp = await client.post("/queues/transcribe/pause", headers=_auth())
        assert resp.status == 200
        assert (await resp.json())["message"] == "Queue transcribe paused"
        assert services.queue(QueueName.TRANSCRIBE).is_paused()

        resp = await client.post("/queues/transcribe/resume", headers=_auth())
        assert (await resp.json())["message"] == "Queue transcribe resumed"
        assert not services.queue(QueueName.TRANSCRIBE).is_paused()

    async def test_unknown_queue(self, make_client) -> None:
        client = await make_client(TOKEN)
        resp = await client.post("/queues/bogus/pause", headers=_auth())
        assert resp.status == 400
        body = await resp.json()
        assert body["error"]["code"] == "VALIDATION_ERROR"
        assert "transcribe or summarize" in body["error"]["message"]

    @pytest.mark.parametrize("older_than", ["", "3600", "2h", "7d"])
    async def test_clean_accepts_durations(self, make_client, older_than) -> None:
        client = await make_client(TOKEN)
        resp = await client.post(
            "/queues/summarize/clean",
            params={"older_than": older_than},
            headers=_auth(),
        )
        assert resp.status == 200
        body = await resp.json()
        assert body["removed"] == 0
        assert body["message"] == "Queue summarize cleaned"

    @pytest.mark.parametrize("older_than", ["soon", "-5", "10y"])
    async def test_clean_rejects_bad_durations(self, make_client, older_than) -> None:
        client = await make_client(TOKEN)
        resp = await client.post(
            "/queues/summarize/clean",
            params={"older_than": older_than},
            headers=_auth(),
        )
        assert resp.status == 400
        assert (await resp.json())["error"]["code"] == "VALIDATION_ERROR"

    async def test_supervisor_failure_is_opaque(
        self, make_client, services, caplog
    ) -> None:
        """Internal detail stays in the log; the caller gets a correlation id."""
        broken = JobQueue(QueueName.TRANSCRIBE, FailingStore())
        services.supervisor = QueueSupervisor({QueueName.TRANSCRIBE: broken})
        client = await make_client(TOKEN)

        with caplog.at_level(logging.ERROR):
            resp = await client.get("/queues/transcribe", headers=_auth())

        assert resp.status == 500
        error = (await resp.json())["error"]
        assert error["code"] == "INTERNAL_ERROR"
        assert error["message"] == "Internal server error"
        assert "/srv" not in error["message"]
        assert error["details"]["correlation_id"] in caplog.text
        assert "malformed" in caplog.text


class TestAuthentication:
    """Tests for the admin token requirement."""

    async def test_missing_token(self, make_client) -> None:
        client = await make_client(TOKEN)
        resp = await client.get("/queues")
        assert resp.status == 401
        assert resp.headers["WWW-Authenticate"].startswith("Bearer")
        assert (await resp.json())["error"]["code"] == "UNAUTHORIZED"

    async def test_wrong_token(self, make_client) -> None:
        client = await make_client(TOKEN)
        resp = await client.get(
            "/queues", headers={"Authorization": "Bearer not-it"}
        )
        assert resp.status == 401

    async def test_basic_auth_password(self, make_client) -> None:
        client = await make_client(TOKEN)
        resp = await client.get("/queues", auth=BasicAuth("ops", TOKEN))
        assert resp.status == 200

    async def test_blank_token_disables_auth(self, make_client) -> None:
        client = await make_client("   ")
        resp = await client.get("/queues")
        assert resp.status == 200


class TestMiddleware:
    """Tests for correlation ids, error mapping and shutdown."""

    async def test_request_id_echoed(self, make_client) -> None:
        client = await make_client()
        resp = await client.get("/health", headers={"X-Request-ID": "req-42"})
        assert resp.headers["X-Request-ID"] == "req-42"

    async def test_invalid_request_id_replaced(self, make_client) -> None:
        client = await make_client()
        resp = await client.get("/health", headers={"X-Request-ID": "bad id!"})
        request_id = resp.headers["X-Request-ID"]
        assert request_id != "bad id!"
        assert len(request_id) == 32

    async def test_unknown_route_is_json(self, make_client) -> None:
        client = await make_client()
        resp = await client.get("/nowhere")
        assert resp.status == 404
        assert (await resp.json())["error"]["code"] == "NOT_FOUND"

    async def test_unhandled_exception(self, make_client, services, lifecycle) -> None:
        async def explode(request: web.Request) -> web.Response:
            raise KeyError("secret internal state")

        app = create_app(services, lifecycle=lifecycle, maintenance=False)
        app.router.add_get("/explode", explode)
        client = await make_client(app=app)

        resp = await client.get("/explode", headers={"X-Request-ID": "trace-1"})

        assert resp.status == 500
        error = (await resp.json())["error"]
        assert error == {
            "code": "INTERNAL_ERROR",
            "message": "Internal server error",
            "details": {"correlation_id": "trace-1"},
        }

    async def test_rejects_work_during_shutdown(self, make_client, lifecycle) -> None:
        client = await make_client()
        lifecycle.initiate_shutdown()
        resp = await client.post("/queues/transcribe/pause")
        assert resp.status == 503
        assert (await resp.json())["error"]["code"] == "SHUTTING_DOWN"


class TestOpenAPI:
    """Tests for the bundled OpenAPI document."""

    @pytest.mark.parametrize("path", ["/api/openapi.yaml", "/api/v1/openapi.yaml"])
    async def test_served(self, make_client, path) -> None:
        client = await make_client()
        resp = await client.get(path)
        assert resp.status == 200
        assert resp.content_type == "text/yaml"
        assert "openapi:" in await resp.text()


class TestBackgroundTasks:
    """Tests for the startup and cleanup hooks."""

    async def test_embedded_workers(self, aiohttp_client, services) -> None:
        pool = services.build_worker_pool()
        app = create_app(services, worker_pool=pool, maintenance=False)
        client = await aiohttp_client(app)

        body = await (await client.get("/health")).json()

        assert body["workers"] == 2
        assert pool.is_running

    async def test_maintenance_task_started(self, aiohttp_client, services) -> None:
        services.config.server.maintenance_initial_delay = 3600.0
        app = create_app(services)
        await aiohttp_client(app)
        assert app["maintenance_task"] is not None
        assert not app["maintenance_task_handle"].done()

    async def test_health_reports_maintenance(self, aiohttp_client, services) -> None:
        services.config.server.maintenance_initial_delay = 3600.0
        app = create_app(services)
        client = await aiohttp_client(app)

        body = await (await client.get("/health")).json()
        assert body["maintenance_healthy"] is True
        assert body["maintenance_last_run"] is None

        await app["maintenance_task"].run_now()
        body = await (await client.get("/health")).json()
        assert body["maintenance_last_run"] is not None
        assert body["maintenance_last_result"]["removed"] == {
            "transcribe": 0,
            "summarize": 0,
        }
