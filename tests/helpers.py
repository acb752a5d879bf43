import json
import re

DATA_FRAME = re.compile(r'^data: (.*)$', re.MULTILINE)


def parse_data_frames(body):
    """Return the payloads of all `data:` frames; `[DONE]` is kept as a string."""
    frames = []
    for match in DATA_FRAME.finditer(body):
        raw = match.group(1)
        frames.append(raw if raw == "[DONE]" else json.loads(raw))
    return frames


def streamed_content(body):
    """Concatenate the delta content of every chunk in an SSE body."""
    text = []
    for frame in parse_data_frames(body):
        if frame == "[DONE]":
            continue
        for choice in frame.get("choices", []):
            text.append(choice["delta"].get("content") or "")
    return "".join(text)


def assert_sse_error_event(body, error_type=None):
    """
    Assert that the SSE body carries an `event: error` frame and return its payload.
    """
    match = re.search(r'event: error\ndata: ({.*?})\n\n', body)
    assert match, f"No 'error' event found in SSE body:\n{body}"

    data = json.loads(match.group(1))
    if error_type is not None:
        assert data["error"]["type"] == error_type, f"Unexpected error type in {data}"
    return data


def wait_for_writes(client):
    """Block until the app's background message writes have finished."""
    client.portal.call(client.app.state.conversations.drain)
