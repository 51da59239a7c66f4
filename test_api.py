"""HTTP contract of the relay: status codes, bodies, headers."""

from fastapi.testclient import TestClient

from config import DEFAULT_MODEL, Settings
from conftest import StubProvider
from exceptions import UpstreamError
from main import HEALTH_MESSAGE, create_app
from models import DISCLAIMER

HELLO = {"messages": [{"role": "user", "content": "hello"}]}


class ExplodingProvider(StubProvider):
    async def complete(self, chat_request):
        self.calls.append(chat_request)
        raise RuntimeError("secret internal detail")


def test_root_is_plain_text(client):
    resp = client.get("/")

    assert resp.status_code == 200
    assert resp.text == HEALTH_MESSAGE
    assert resp.headers["content-type"].startswith("text/plain")


def test_health(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_chat_hello_with_default_config(client, provider):
    resp = client.post("/api/chat", json=HELLO)

    assert resp.status_code == 200
    body = resp.json()
    assert body["reply"]
    assert body["model"] == DEFAULT_MODEL
    assert body["disclaimer"] == DISCLAIMER
    assert provider.call_count == 1


def test_empty_messages_is_400_without_dispatch(client, provider):
    resp = client.post("/api/chat", json={"messages": []})

    assert resp.status_code == 400
    assert resp.json()["error"]
    assert provider.call_count == 0


def test_missing_messages_is_400(client, provider):
    resp = client.post("/api/chat", json={"prompt": "hello"})

    assert resp.status_code == 400
    assert provider.call_count == 0


def test_bad_turn_role_is_400(client, provider):
    resp = client.post("/api/chat", json={"messages": [{"role": "robot", "content": "hi"}]})

    assert resp.status_code == 400
    assert "index 0" in resp.json()["error"]
    assert provider.call_count == 0


def test_invalid_json_is_400(client, provider):
    resp = client.post("/api/chat", content=b"{not json", headers={"Content-Type": "application/json"})

    assert resp.status_code == 400
    assert resp.json() == {"error": "Request body must be valid JSON."}
    assert provider.call_count == 0


def test_identical_requests_hit_cache(client, provider):
    first = client.post("/api/chat", json=HELLO)
    second = client.post("/api/chat", json=HELLO)

    assert first.status_code == second.status_code == 200
    assert first.json() == second.json()
    assert provider.call_count == 1


def test_upstream_failure_is_500_and_not_cached(settings):
    provider = StubProvider(fail_with=UpstreamError("HTTP 401: Incorrect API key provided",
                                                    details="Incorrect API key provided"))
    with TestClient(create_app(settings=settings, provider=provider)) as client:
        first = client.post("/api/chat", json=HELLO)
        second = client.post("/api/chat", json=HELLO)

    assert first.status_code == 500
    assert first.json() == {"error": "AI service error", "details": "Incorrect API key provided"}
    assert second.status_code == 500
    assert provider.call_count == 2


def test_unexpected_fault_is_generic_500(settings):
    provider = ExplodingProvider()
    app = create_app(settings=settings, provider=provider)
    with TestClient(app, raise_server_exceptions=False) as client:
        resp = client.post("/api/chat", json=HELLO)

    assert resp.status_code == 500
    assert resp.json() == {"error": "Internal server error"}
    assert "secret" not in resp.text
    assert len(app.state.cache) == 0


def test_oversized_body_is_413(provider):
    settings = Settings(openai_api_key="sk-test", max_body_bytes=1024)
    big = {"messages": [{"role": "user", "content": "x" * 2048}]}
    with TestClient(create_app(settings=settings, provider=provider)) as client:
        resp = client.post("/api/chat", json=big)

    assert resp.status_code == 413
    assert provider.call_count == 0


def test_rate_limit_returns_429(provider):
    settings = Settings(openai_api_key="sk-test", rate_limit=2)
    with TestClient(create_app(settings=settings, provider=provider)) as client:
        ok = [client.post("/api/chat", json=HELLO) for _ in range(2)]
        limited = client.post("/api/chat", json=HELLO)
        health = client.get("/")

    assert all(r.status_code == 200 for r in ok)
    assert ok[0].headers["X-RateLimit-Limit"] == "2"
    assert limited.status_code == 429
    assert "error" in limited.json()
    assert int(limited.headers["Retry-After"]) >= 1
    assert health.status_code == 200


def test_apps_do_not_share_cache(settings):
    provider = StubProvider()
    with TestClient(create_app(settings=settings, provider=provider)) as a:
        a.post("/api/chat", json=HELLO)
    with TestClient(create_app(settings=settings, provider=provider)) as b:
        b.post("/api/chat", json=HELLO)

    assert provider.call_count == 2


def test_cors_allows_any_origin(client):
    resp = client.get("/health", headers={"Origin": "https://example.edu"})

    assert resp.headers["access-control-allow-origin"] == "*"


def test_metrics_exposes_relay_counters(client):
    client.post("/api/chat", json=HELLO)
    client.post("/api/chat", json=HELLO)

    resp = client.get("/metrics")

    assert resp.status_code == 200
    assert "relay_requests_total" in resp.text
    assert 'relay_cache_lookups_total{result="hit"}' in resp.text


def test_lone_surrogate_content_is_relayed(client, provider):
    raw = b'{"messages":[{"role":"user","content":"hi \\ud83d"}]}'

    resp = client.post("/api/chat", content=raw, headers={"Content-Type": "application/json"})

    assert resp.status_code == 200
    assert provider.call_count == 1
    assert provider.calls[0].turns[0].content == "hi \ud83d"


def test_declared_oversized_body_rejected_before_reading(provider):
    settings = Settings(openai_api_key="sk-test", max_body_bytes=1024)
    with TestClient(create_app(settings=settings, provider=provider)) as client:
        resp = client.post("/api/chat", content=b"{}", headers={"Content-Length": "999999",
                                                                 "Content-Type": "application/json"})

    assert resp.status_code == 413
    assert provider.call_count == 0


def test_chunked_oversized_body_is_413(provider):
    settings = Settings(openai_api_key="sk-test", max_body_bytes=1024)
    chunks = iter([b'{"messages":[{"role":"user","content":"', b"x" * 4096, b'"}]}'])
    with TestClient(create_app(settings=settings, provider=provider)) as client:
        resp = client.post("/api/chat", content=chunks, headers={"Content-Type": "application/json"})

    assert resp.status_code == 413
    assert provider.call_count == 0


def test_rate_limited_requests_are_counted(provider):
    settings = Settings(openai_api_key="sk-test", rate_limit=1)
    with TestClient(create_app(settings=settings, provider=provider)) as client:
        client.post("/api/chat", json=HELLO)
        assert client.post("/api/chat", json=HELLO).status_code == 429
        resp = client.get("/metrics")

    assert 'relay_requests_total{endpoint="/api/chat",status="429"}' in resp.text
