"""Tests for the root endpoints, correlation ids and problem responses."""

import logging

import pytest

from reviewflow.exceptions import BusinessRuleError, ErrorCode, NotFoundError, code_for_status
from reviewflow.middleware.correlation import CorrelationLogFilter, get_correlation_id


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")
        assert response.json()["name"] == "ReviewFlow API"


class TestCorrelationIds:
    @pytest.mark.asyncio
    async def test_echoes_supplied_ids(self, client):
        response = await client.get(
            "/health", headers={"X-Correlation-ID": "zap-123", "X-Request-ID": "req-456"}
        )

        assert response.headers["X-Correlation-ID"] == "zap-123"
        assert response.headers["X-Request-ID"] == "req-456"

    @pytest.mark.asyncio
    async def test_generates_ids(self, client):
        response = await client.get("/health")
        assert len(response.headers["X-Request-ID"]) == 12

    def test_log_filter_outside_request(self):
        record = logging.LogRecord("test", logging.INFO, __file__, 1, "msg", None, None)

        assert CorrelationLogFilter().filter(record) is True
        assert record.correlation_id == "unknown"
        assert get_correlation_id() == "unknown"


class TestProblemDetails:
    @pytest.mark.asyncio
    async def test_problem_body(self, client):
        response = await client.post(
            "/api/v2/triggers/process-event",
            json={"business_id": 424242, "event_type": "invoice_paid"},
            headers={"X-Request-ID": "trace-me"},
        )

        body = response.json()
        assert body["status"] == 404
        assert body["type"].endswith("/res-001")
        assert body["instance"] == "/api/v2/triggers/process-event"
        assert body["trace_id"] == "trace-me"

    def test_exception_payload(self):
        problem = BusinessRuleError("already enrolled", code=ErrorCode.ALREADY_ENROLLED, context={"enrollment_id": 3})
        detail = problem.to_problem_detail("/x")

        assert detail.status == 400
        assert detail.code == "BIZ_002"
        assert detail.context == {"enrollment_id": 3}

    def test_not_found_message(self):
        assert NotFoundError("Sequence", 7).detail == "Sequence with ID 7 was not found"

    @pytest.mark.asyncio
    async def test_unknown_route_is_problem(self, client):
        response = await client.get("/api/v2/nowhere")

        assert response.status_code == 404
        assert response.headers["content-type"].startswith("application/problem+json")
        assert response.json()["code"] == "RES_001"

    @pytest.mark.asyncio
    async def test_wrong_method_is_bad_request_code(self, client):
        response = await client.delete("/health")

        assert response.status_code == 405
        body = response.json()
        assert body["code"] == "REQ_001"
        assert body["title"] == "Method Not Allowed"

    @pytest.mark.asyncio
    async def test_validation_errors_listed(self, client):
        response = await client.post("/api/v2/triggers/process-event", json={"business_id": "abc"})

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "VAL_001"
        assert {e["field"] for e in body["errors"]} >= {"body.business_id", "body.event_type"}

    def test_code_for_status(self):
        assert code_for_status(401) is ErrorCode.UNAUTHORIZED
        assert code_for_status(409) is ErrorCode.BAD_REQUEST
        assert code_for_status(503) is ErrorCode.INTERNAL_ERROR
