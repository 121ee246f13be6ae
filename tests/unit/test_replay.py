"""Unit tests for response replay and problem responses."""

import json

import pytest

from idempotent_fanout.core.replay import INTERNAL_DETAIL, problem_response, replay_response
from idempotent_fanout.exceptions import ConflictError, InternalError, ValidationError


class RecordingSend:
    def __init__(self) -> None:
        self.messages: list[dict] = []

    async def __call__(self, message: dict) -> None:
        self.messages.append(message)


class TestReplayResponse:
    @pytest.mark.asyncio
    async def test_writes_cached_response_verbatim(self, make_record):
        record = make_record(status_code=201, response_body=b'{"id": "usr_1"}')
        send = RecordingSend()

        await replay_response(record, send)

        start, body = send.messages
        assert start["type"] == "http.response.start"
        assert start["status"] == 201
        assert (b"content-type", b"application/json") in start["headers"]
        assert (b"idempotency-status", b"replayed") in start["headers"]
        assert body == {"type": "http.response.body", "body": b'{"id": "usr_1"}'}

    @pytest.mark.asyncio
    async def test_overrides_cached_status_header(self, make_record):
        record = make_record().model_copy(
            update={"response_headers": {"Idempotency-Status": ["stored"], "x-a": ["1", "2"]}}
        )
        send = RecordingSend()

        await replay_response(record, send)

        headers = send.messages[0]["headers"]
        assert [v for k, v in headers if k.lower() == b"idempotency-status"] == [b"replayed"]
        assert [v for k, v in headers if k == b"x-a"] == [b"1", b"2"]


class TestProblemResponse:
    def test_validation_problem(self):
        response = problem_response(
            ValidationError("Idempotency key must be a valid UUID", key="x"),
            {"type": "http", "path": "/api/users"},
        )
        assert response.status_code == 400
        assert response.media_type == "application/problem+json"
        content = json.loads(response.body)
        assert content == {
            "type": "/problems/validation-error",
            "title": "Validation Error",
            "status": 400,
            "detail": "Idempotency key must be a valid UUID",
            "code": "VALIDATION/IDEMPOTENCY_KEY_INVALID",
            "instance": "/api/users",
        }

    def test_conflict_problem(self):
        error = ConflictError("different body", key="k", stored_hash="a" * 64, request_hash="b" * 64)
        response = problem_response(error, {"type": "http", "path": "/"})
        assert response.status_code == 409
        assert json.loads(response.body)["code"] == "VALIDATION/IDEMPOTENCY_CONFLICT"

    def test_internal_problem_hides_cause(self):
        error = InternalError("Failed to check idempotency record", cause=OSError("pg: secret host"))
        response = problem_response(error, {"type": "http"})
        content = json.loads(response.body)
        assert response.status_code == 500
        assert content["code"] == "SYSTEM/INTERNAL"
        assert content["detail"] == INTERNAL_DETAIL
        assert "secret" not in response.body.decode()
        assert "instance" not in content
