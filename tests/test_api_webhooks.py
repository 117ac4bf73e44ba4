"""Tests for POST /webhooks/{event_type}."""

import pytest
from unittest.mock import AsyncMock
from fastapi import FastAPI
from fastapi.testclient import TestClient

from candidate_sync.api.auth import verify_webhook_token
from candidate_sync.api.routes.webhooks import router
from candidate_sync.errors import (
    CandidateNotFoundError,
    MalformedPayloadError,
    StoreConnectionError,
)
from candidate_sync.models.events import EventType
from candidate_sync.pipeline.pipeline import IngestPipeline, IngestResult

from fakes import InMemoryRepository


def _make_app(pipeline=None) -> FastAPI:
    """Build a test app with mocked dependencies."""
    app = FastAPI()
    app.include_router(router)

    # Override auth dependency so it never hits real Settings
    async def _noop_auth():
        return None

    app.dependency_overrides[verify_webhook_token] = _noop_auth
    app.state.pipeline = pipeline or AsyncMock()
    return app


AUTH = {"Authorization": "Bearer test-key"}


class TestWebhookRoute:
    def test_processed_event_returns_200(self):
        pipeline = AsyncMock()
        pipeline.process.return_value = IngestResult(
            event_type="stage-changed",
            status="no-op",
            reason="debounced-initial-stage",
            trace_id="t-1",
        )
        client = TestClient(_make_app(pipeline))

        response = client.post(
            "/webhooks/stage-changed",
            json={"opportunity_id": "OPP-1", "to_stage": "New Lead"},
            headers=AUTH,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["status"] == "no-op"
        assert body["reason"] == "debounced-initial-stage"
        event = pipeline.process.call_args.args[0]
        assert event.event_type == EventType.STAGE_CHANGED
        assert event.payload == {"opportunity_id": "OPP-1", "to_stage": "New Lead"}

    def test_unknown_event_type_returns_404(self):
        pipeline = AsyncMock()
        client = TestClient(_make_app(pipeline))

        response = client.post("/webhooks/invoice-paid", json={}, headers=AUTH)

        assert response.status_code == 404
        assert response.json()["error"] == "unknown_event_type"
        pipeline.process.assert_not_called()

    def test_invalid_json_returns_400(self):
        client = TestClient(_make_app())

        response = client.post(
            "/webhooks/stage-changed",
            content=b"{not json",
            headers={**AUTH, "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_json"

    def test_invalid_utf8_returns_400(self):
        pipeline = AsyncMock()
        client = TestClient(_make_app(pipeline))

        response = client.post(
            "/webhooks/stage-changed",
            content=b'{"a": "\xff\xfe"}',
            headers={**AUTH, "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_json"
        pipeline.process.assert_not_called()

    @pytest.mark.parametrize(
        "error,status_code,code",
        [
            (MalformedPayloadError("Missing destination stage"), 400, "malformed_payload"),
            (CandidateNotFoundError("Candidate not found", context={"opportunity_id": "OPP-404"}), 404, "not_found"),
            (StoreConnectionError("Store connection failed"), 500, "store_error"),
            (RuntimeError("boom"), 500, "internal_error"),
        ],
    )
    def test_errors_map_to_status_codes(self, error, status_code, code):
        pipeline = AsyncMock()
        pipeline.process.side_effect = error
        client = TestClient(_make_app(pipeline))

        response = client.post("/webhooks/owner-changed", json={"opportunity_id": "OPP-404"}, headers=AUTH)

        assert response.status_code == status_code
        body = response.json()
        assert body["ok"] is False
        assert body["error"] == code

    def test_not_found_details_carry_context(self):
        pipeline = AsyncMock()
        pipeline.process.side_effect = CandidateNotFoundError(
            "Candidate not found", context={"opportunity_id": "OPP-404"}
        )
        client = TestClient(_make_app(pipeline))

        response = client.post("/webhooks/opportunity-lost", json={}, headers=AUTH)

        assert response.json()["details"] == {
            "message": "Candidate not found",
            "opportunity_id": "OPP-404",
        }


class TestWebhookRouteWithPipeline:
    def test_create_then_echo(self):
        repository = InMemoryRepository()
        client = TestClient(_make_app(IngestPipeline(repository)))

        created = client.post(
            "/webhooks/opportunity-created",
            json={"customData": {"hl_opportunity_id": "OPP-1", "stage": "New Lead"}},
            headers=AUTH,
        )
        echo = client.post(
            "/webhooks/stage-changed",
            json={"customData": {"hl_opportunity_id": "OPP-1", "to_stage": "New Lead"}},
            headers=AUTH,
        )

        assert created.status_code == 200
        assert created.json()["reason"] == "created"
        assert echo.status_code == 200
        assert echo.json()["status"] == "no-op"
        assert len(repository.stage_history) == 1

    def test_non_object_body_returns_400(self):
        client = TestClient(_make_app(IngestPipeline(InMemoryRepository())))

        response = client.post("/webhooks/stage-changed", json=["a", "b"], headers=AUTH)

        assert response.status_code == 400
        assert response.json()["error"] == "malformed_payload"
