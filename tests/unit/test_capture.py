"""Unit tests for ResponseCapture."""

import pytest

from idempotent_fanout.core.capture import ResponseCapture


class RecordingSend:
    """ASGI send callable that records every message."""

    def __init__(self) -> None:
        self.messages: list[dict] = []

    async def __call__(self, message: dict) -> None:
        self.messages.append(message)

    @property
    def body(self) -> bytes:
        return b"".join(
            m.get("body", b"") for m in self.messages if m["type"] == "http.response.body"
        )


def start(status: int = 201, headers: list | None = None) -> dict:
    return {
        "type": "http.response.start",
        "status": status,
        "headers": headers if headers is not None else [(b"content-type", b"application/json")],
    }


def body(chunk: bytes, more: bool = False) -> dict:
    return {"type": "http.response.body", "body": chunk, "more_body": more}


class TestResponseCapture:
    @pytest.mark.asyncio
    async def test_captures_status_headers_and_body(self):
        send = RecordingSend()
        capture = ResponseCapture(send, max_bytes=1024)

        await capture.send(start(201))
        await capture.send(body(b'{"id":', more=True))
        await capture.send(body(b'"usr_1"}'))

        captured = capture.captured()
        assert captured.is_valid
        assert captured.status_code == 201
        assert captured.headers == {"content-type": ["application/json"]}
        assert captured.body == b'{"id":"usr_1"}'

    @pytest.mark.asyncio
    async def test_adds_stored_status_before_forwarding(self):
        send = RecordingSend()
        capture = ResponseCapture(send, max_bytes=1024)

        await capture.send(start(200))

        forwarded = send.messages[0]
        assert (b"idempotency-status", b"stored") in forwarded["headers"]
        # The snapshot does not include the status header itself
        assert "idempotency-status" not in capture.headers

    @pytest.mark.asyncio
    async def test_body_without_start_defaults_to_200(self):
        send = RecordingSend()
        capture = ResponseCapture(send, max_bytes=1024)

        await capture.send(body(b"hello"))

        assert send.messages[0]["type"] == "http.response.start"
        assert send.messages[0]["status"] == 200
        captured = capture.captured()
        assert captured.status_code == 200
        assert captured.body == b"hello"

    @pytest.mark.asyncio
    async def test_oversized_body_is_forwarded_in_full_but_invalid(self):
        send = RecordingSend()
        capture = ResponseCapture(send, max_bytes=10)
        payload = b"x" * 25

        await capture.send(start(200))
        await capture.send(body(payload[:15], more=True))
        await capture.send(body(payload[15:]))

        assert send.body == payload
        assert capture.body == payload[:10]
        assert capture.is_valid is False
        captured = capture.captured()
        assert captured.is_valid is False
        assert captured.body == b""

    @pytest.mark.asyncio
    async def test_body_exactly_at_limit_is_not_cacheable(self):
        capture = ResponseCapture(RecordingSend(), max_bytes=4)

        await capture.send(start(200))
        await capture.send(body(b"abcd"))

        assert capture.captured().is_valid is False

    @pytest.mark.asyncio
    async def test_body_just_under_limit_is_cacheable(self):
        capture = ResponseCapture(RecordingSend(), max_bytes=4)

        await capture.send(start(200))
        await capture.send(body(b"abc"))

        captured = capture.captured()
        assert captured.is_valid is True
        assert captured.body == b"abc"

    @pytest.mark.asyncio
    async def test_incomplete_response_is_not_cacheable(self):
        capture = ResponseCapture(RecordingSend(), max_bytes=1024)

        await capture.send(start(200))
        await capture.send(body(b"partial", more=True))

        assert capture.captured().is_valid is False

    def test_nothing_sent_is_not_cacheable(self):
        capture = ResponseCapture(RecordingSend(), max_bytes=1024)
        captured = capture.captured()
        assert captured.status_code == 200
        assert captured.is_valid is False

    @pytest.mark.asyncio
    async def test_pathsend_is_not_cacheable(self):
        send = RecordingSend()
        capture = ResponseCapture(send, max_bytes=1024)

        await capture.send(start(200))
        await capture.send({"type": "http.response.pathsend", "path": "/tmp/report.pdf"})

        assert send.messages[-1]["type"] == "http.response.pathsend"
        assert capture.captured().is_valid is False

    @pytest.mark.asyncio
    async def test_repeated_headers_are_kept(self):
        capture = ResponseCapture(RecordingSend(), max_bytes=1024)

        await capture.send(start(200, [(b"set-cookie", b"a=1"), (b"set-cookie", b"b=2")]))
        await capture.send(body(b""))

        assert capture.captured().headers == {"set-cookie": ["a=1", "b=2"]}
