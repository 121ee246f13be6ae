"""Response capture for the idempotency guard.

ResponseCapture wraps the ASGI ``send`` callable of one request. Every
message is forwarded to the real client; on the way it records the status,
the headers and up to ``max_bytes`` of the body so the guard can cache the
response afterwards.

The capture bound protects this instance's memory only. A response that
reaches the bound is still delivered in full; it is just never cached.

Examples:
    Wrapping an application call::

        capture = ResponseCapture(send, max_bytes=1024 * 1024)
        await app(scope, receive, capture.send)

        captured = capture.captured()
        if captured.is_valid:
            ...  # cache captured.status_code, captured.headers, captured.body
"""

from starlette.types import Message, Send

from idempotent_fanout.utils.headers import (
    IDEMPOTENCY_STATUS_HEADER,
    IDEMPOTENCY_STATUS_STORED,
    raw_to_multidict,
    set_header,
)


class CapturedResponse:
    """Snapshot of a response produced by the wrapped application.

    Attributes:
        status_code: Final HTTP status code.
        headers: Headers as they were when the status was finalized.
        body: Captured body bytes (empty when not valid).
        is_valid: False when the response must not be cached, either
            because the body reached the capture limit or because no
            complete response was observed.
    """

    def __init__(
        self,
        status_code: int,
        headers: dict[str, list[str]],
        body: bytes,
        is_valid: bool,
    ) -> None:
        self.status_code = status_code
        self.headers = headers
        self.body = body
        self.is_valid = is_valid


class ResponseCapture:
    """Records a response while streaming it unchanged to the client.

    The ``Idempotency-Status: stored`` header is added to the start message
    before it is forwarded, so the client sees it even if caching fails
    later. The snapshot of the headers is taken before that header is added.

    Attributes:
        max_bytes: Capture bound for the body.
        status_code: Status of the response, 200 until a start message is seen.
        headers: Header snapshot taken at the start message.
        started: Whether the start message has been forwarded.
    """

    def __init__(self, send: Send, max_bytes: int) -> None:
        self._send = send
        self.max_bytes = max_bytes
        self.status_code = 200
        self.headers: dict[str, list[str]] = {}
        self.started = False
        self._body = bytearray()
        self._complete = False
        self._uncacheable = False

    async def send(self, message: Message) -> None:
        """ASGI send callable handed to the wrapped application."""
        message_type = message["type"]

        if message_type == "http.response.start":
            await self._start(message)
            return

        if message_type == "http.response.body":
            if not self.started:
                # Body without an explicit status means 200 OK
                await self._start({"type": "http.response.start", "status": 200, "headers": []})
            chunk = message.get("body", b"")
            remaining = self.max_bytes - len(self._body)
            if chunk and remaining > 0:
                self._body.extend(chunk[:remaining])
            if not message.get("more_body", False):
                self._complete = True
        elif message_type.startswith("http.response."):
            # pathsend, trailers, ... carry content we do not capture
            self._uncacheable = True

        await self._send(message)

    async def _start(self, message: Message) -> None:
        raw_headers = list(message.get("headers", []))
        self.status_code = message["status"]
        self.headers = raw_to_multidict(raw_headers)
        self.started = True

        forwarded = dict(message)
        forwarded["headers"] = set_header(
            raw_headers, IDEMPOTENCY_STATUS_HEADER, IDEMPOTENCY_STATUS_STORED
        )
        await self._send(forwarded)

    @property
    def body(self) -> bytes:
        return bytes(self._body)

    @property
    def is_valid(self) -> bool:
        """False once the body reached the capture limit."""
        return len(self._body) < self.max_bytes

    def captured(self) -> CapturedResponse:
        """Return the captured status, headers and body.

        A body that filled the buffer exactly is treated as too large, since
        the capture cannot tell whether more bytes followed.
        """
        cacheable = self.is_valid and self._complete and not self._uncacheable
        return CapturedResponse(
            status_code=self.status_code,
            headers=self.headers,
            body=self.body if cacheable else b"",
            is_valid=cacheable,
        )
