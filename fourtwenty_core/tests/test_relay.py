import pytest
from fastapi.testclient import TestClient

from fourtwenty_core.api.app import create_app
from fourtwenty_core.api.service import build_chat_request
from fourtwenty_core.domain.exceptions import ConfigurationError, NetworkError, ProtocolError
from fourtwenty_core.domain.models import ChatRequest, ConversationMessage
from fourtwenty_core.providers.openai_client import MISSING_KEY_MESSAGE
from fourtwenty_core.streaming.relay import open_relay, reemit


def frame(content):
    return ('data: {"choices":[{"delta":{"content":"%s"}}]}\n' % content).encode()


class FakeProvider:
    name = "fake"

    def __init__(self, chunks=(), error=None, fail_after_chunks=False):
        self._chunks = list(chunks)
        self._error = error
        self._fail_after_chunks = fail_after_chunks
        self.requests = []
        self.closed = False

    def stream_chat(self, req):
        self.requests.append(req)
        if isinstance(self._error, ConfigurationError):
            raise self._error
        return self._iter()

    def _iter(self):
        try:
            if self._error is not None and not self._fail_after_chunks:
                raise self._error
            for chunk in self._chunks:
                yield chunk
            if self._error is not None:
                raise self._error
        finally:
            self.closed = True


def hi_request():
    return ChatRequest(messages=[ConversationMessage(role="user", content="hi")])


def test_reemit_output_equals_concatenated_deltas():
    chunks = [frame("He"), b"data: {bad\n", frame("llo"), frame(" 🌿"), b"data: [DONE]\n"]
    out = list(reemit(iter(chunks), {}))
    assert out == [b"He", b"llo", " 🌿".encode("utf-8")]
    assert b"".join(out).decode("utf-8") == "Hello 🌿"


def test_open_relay_primes_first_chunk_and_closes_upstream():
    provider = FakeProvider([frame("a"), frame("b")])
    body = open_relay(provider, hi_request())
    assert list(body) == [b"a", b"b"]
    assert provider.closed


def test_open_relay_without_body_raises_protocol_error():
    with pytest.raises(ProtocolError) as exc_info:
        open_relay(FakeProvider([]), hi_request())
    assert exc_info.value.message == "No response body from OpenAI"


def test_open_relay_surfaces_upstream_status_before_streaming():
    err = ProtocolError(code="PROTOCOL_ERROR", message="OpenAI request failed with status 502")
    with pytest.raises(ProtocolError):
        open_relay(FakeProvider(error=err), hi_request())


def test_build_chat_request_reads_image_urls_and_attachments():
    req = build_chat_request([
        {"role": "user", "content": "a", "image_urls": ["https://x/1.png"]},
        {"role": "user", "content": "b", "attachments": [
            {"type": "image", "url": "https://x/2.png"},
            {"type": "file", "url": "https://x/doc.pdf"},
            {"type": "image", "url": ""},
        ]},
        {"role": "assistant", "content": "c"},
    ])
    assert [m.image_urls for m in req.messages] == [["https://x/1.png"], ["https://x/2.png"], []]
    assert req.has_images


def test_chat_endpoint_streams_plain_text():
    provider = FakeProvider([frame("He"), frame("llo"), b"data: [DONE]\n"])
    client = TestClient(create_app(provider=provider))
    resp = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi", "image_urls": ["https://x/1.png"]}]})
    assert resp.status_code == 200
    assert resp.text == "Hello"
    assert resp.headers["content-type"] == "text/plain; charset=utf-8"
    assert resp.headers["cache-control"] == "no-cache"
    sent = provider.requests[0].messages[0]
    assert sent.content == "hi"
    assert sent.image_urls == ["https://x/1.png"]


def test_chat_endpoint_reports_missing_key_as_json_500():
    provider = FakeProvider(error=ConfigurationError(code="MISSING_API_KEY", message=MISSING_KEY_MESSAGE))
    client = TestClient(create_app(provider=provider))
    resp = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})
    assert resp.status_code == 500
    assert resp.headers["content-type"] == "application/json"
    assert "API key" in resp.json()["error"]


def test_chat_endpoint_reports_empty_body_as_json_500():
    client = TestClient(create_app(provider=FakeProvider([])))
    resp = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})
    assert resp.status_code == 500
    assert resp.json() == {"error": "No response body from OpenAI"}


def test_chat_endpoint_reports_connection_failure_as_json_500():
    err = NetworkError(code="NETWORK_ERROR", message="connection refused")
    client = TestClient(create_app(provider=FakeProvider(error=err)))
    resp = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})
    assert resp.status_code == 500
    assert resp.json() == {"error": "connection refused"}


def test_chat_endpoint_rejects_invalid_body_as_json_500():
    client = TestClient(create_app(provider=FakeProvider([frame("x")])))
    resp = client.post("/api/chat", json={"messages": [{"role": "robot", "content": "hi"}]})
    assert resp.status_code == 500
    assert "error" in resp.json()


def test_health():
    client = TestClient(create_app(provider=FakeProvider()))
    assert client.get("/health").json() == {"status": "healthy"}


class UpstreamStub:
    """只在被显式 close() 时才标记关闭的上游分片迭代器。"""

    def __init__(self, chunks, error):
        self._chunks = list(chunks)
        self._error = error
        self.closed = False

    def __iter__(self):
        return self

    def __next__(self):
        if self._chunks:
            return self._chunks.pop(0)
        raise self._error

    def close(self):
        self.closed = True


def test_reemit_mid_stream_network_error_propagates_and_closes_upstream():
    upstream = UpstreamStub([frame("He")], NetworkError(code="NETWORK_ERROR", message="connection reset"))
    body = reemit(upstream, {})
    assert next(body) == b"He"
    with pytest.raises(NetworkError):
        next(body)
    assert upstream.closed


def test_open_relay_mid_stream_failure_keeps_emitted_text_and_closes_upstream():
    err = NetworkError(code="NETWORK_ERROR", message="connection reset")
    provider = FakeProvider([frame("a"), frame("b")], error=err, fail_after_chunks=True)
    body = open_relay(provider, hi_request())
    received = []
    with pytest.raises(NetworkError):
        for chunk in body:
            received.append(chunk)
    assert received == [b"a", b"b"]
    assert provider.closed


@pytest.mark.parametrize(
    "message",
    [
        {"content": ""},
        {"role": "user", "content": "", "image_urls": []},
        {"role": "user", "content": "", "attachments": [{"type": "image", "url": ""}]},
        {"role": "user", "content": "", "image_urls": [], "attachments": [{"type": "image", "url": "https://x/1.png"}]},
    ],
)
def test_chat_endpoint_rejects_empty_message_without_images(message):
    provider = FakeProvider([frame("x")])
    client = TestClient(create_app(provider=provider))
    resp = client.post("/api/chat", json={"messages": [message]})
    assert resp.status_code == 500
    assert "error" in resp.json()
    assert provider.requests == []


@pytest.mark.parametrize(
    "message",
    [
        {"role": "user", "content": "", "image_urls": ["https://x/1.png"]},
        {"role": "user", "content": "", "attachments": [{"type": "image", "url": "https://x/2.png"}]},
    ],
)
def test_chat_endpoint_accepts_image_only_message(message):
    provider = FakeProvider([frame("a leaf")])
    client = TestClient(create_app(provider=provider))
    resp = client.post("/api/chat", json={"messages": [message]})
    assert resp.status_code == 200
    assert resp.text == "a leaf"
    assert provider.requests[0].messages[0].has_images
