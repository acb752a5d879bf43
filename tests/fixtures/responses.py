import json

DEFAULT_CHUNK_ID = "chatcmpl-abc123"
DEFAULT_CREATED = 1700000000


def openai_chunk(content=None, role=None, finish_reason=None, model="gpt-4o", chunk_id=DEFAULT_CHUNK_ID, created=DEFAULT_CREATED):
    """Build one OpenAI-style chat.completion.chunk payload."""
    delta = {}
    if role is not None:
        delta["role"] = role
    if content is not None:
        delta["content"] = content
    return {
        "id": chunk_id,
        "object": "chat.completion.chunk",
        "created": created,
        "model": model,
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }


def sse_body(payloads, done=True, line_ending="\n"):
    """Serialize payloads into an SSE body as a provider would send it."""
    frames = [f"data: {json.dumps(p)}{line_ending}{line_ending}" for p in payloads]
    if done:
        frames.append(f"data: [DONE]{line_ending}{line_ending}")
    return "".join(frames).encode("utf-8")


def split_bytes(data, size):
    """Split a byte string into fixed-size pieces."""
    return [data[i:i + size] for i in range(0, len(data), size)]


HELLO_STREAM = [
    openai_chunk(content="", role="assistant"),
    openai_chunk(content="Hel"),
    openai_chunk(content="lo"),
    openai_chunk(finish_reason="stop"),
]

OPENROUTER_PROCESSING_COMMENT = b": OPENROUTER PROCESSING\n\n"

UPSTREAM_UNAUTHORIZED_BODY = '{"error":{"message":"Incorrect API key provided","type":"invalid_request_error"}}'
