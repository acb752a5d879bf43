import json
import httpx
from tests.fixtures.responses import HELLO_STREAM, split_bytes, sse_body


class ProviderTransport:
    """Scripted provider endpoint backed by httpx.MockTransport.

    Responses are served in the order they were queued; once the queue is
    empty every request gets the default HELLO_STREAM.
    """

    def __init__(self):
        self.requests = []
        self._queue = []

    def queue_stream(self, payloads=None, chunk_size=None, done=True, prefix=b""):
        body = prefix + sse_body(HELLO_STREAM if payloads is None else payloads, done=done)
        return self.queue_body(split_bytes(body, chunk_size) if chunk_size else [body])

    def queue_body(self, pieces):
        """Serve raw body bytes, one network read per piece."""
        def factory(request):
            return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=_aiter(pieces))
        self._queue.append(factory)
        return self

    def queue_broken_stream(self, payloads, error=None):
        """Stream the payloads, then fail the read."""
        body = sse_body(payloads, done=False)
        failure = error or httpx.ReadError("connection reset by peer")

        async def broken():
            yield body
            raise failure

        def factory(request):
            return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=broken())
        self._queue.append(factory)
        return self

    def queue_error(self, status_code, body):
        def factory(request):
            return httpx.Response(status_code, content=body.encode("utf-8"))
        self._queue.append(factory)
        return self

    def queue_connect_error(self, message="connection refused"):
        def factory(request):
            raise httpx.ConnectError(message, request=request)
        self._queue.append(factory)
        return self

    def handler(self, request):
        self.requests.append(request)
        if self._queue:
            return self._queue.pop(0)(request)
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=_aiter([sse_body(HELLO_STREAM)]))

    def client(self):
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    @property
    def last_request(self):
        return self.requests[-1]

    def last_body(self):
        return json.loads(self.last_request.content)


async def _aiter(pieces):
    for piece in pieces:
        yield piece


async def aiter_list(items):
    """Turn a list into an async iterator."""
    for item in items:
        yield item
