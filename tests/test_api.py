"""HTTP routes with the analysis service swapped for one backed by a fake transport."""
import asyncio

import httpx

from snapsight.config import get_settings
from snapsight.deps import get_analysis_service
from snapsight.errors import NetworkError, RateLimitedError, RemoteError
from snapsight.main import app

from conftest import IMAGE_A, IMAGE_B, FakeTransport


def test_analyze_then_cached(api, fake_transport):
    body = {"image": IMAGE_A, "session_id": "session_1"}
    first = api.post("/api/analyze", json=body)
    second = api.post("/api/analyze", json=body)

    assert first.status_code == 200
    assert second.status_code == 200
    assert first.json()["response"] == fake_transport.reply
    assert first.json()["cached"] is False
    assert second.json()["cached"] is True
    assert second.json()["session_id"] == "session_1"
    assert first.json()["fingerprint"] == second.json()["fingerprint"]
    assert len(fake_transport.calls) == 1


def test_analyze_camera_screen_and_voice(api, fake_transport):
    r = api.post("/api/analyze", json={
        "image": IMAGE_A,
        "screen_image": IMAGE_B,
        "text": "why does my build fail?",
        "context": "Step 3 of activity analysis",
    })
    assert r.status_code == 200
    sent = fake_transport.calls[0]
    assert sent.screen_image == IMAGE_B
    assert sent.context == "Step 3 of activity analysis"


def test_missing_input_is_400(api, fake_transport):
    r = api.post("/api/analyze", json={"context": "nothing to look at"})
    assert r.status_code == 400
    assert fake_transport.calls == []


def test_remote_failure_is_502(api, fake_transport):
    fake_transport.errors = [RemoteError("HTTP 500", status_code=500)]
    r = api.post("/api/analyze", json={"image": IMAGE_A})
    assert r.status_code == 502
    assert r.json()["detail"] == "AI service temporarily unavailable. Please try again later."
    assert api.service.cache.size() == 0


def test_retry_option_recovers(api, fake_transport):
    fake_transport.errors = [NetworkError("reset")]
    r = api.post("/api/analyze", json={"text": "hello", "retry": {"attempts": 2, "backoff_seconds": 0}})
    assert r.status_code == 200
    assert len(fake_transport.calls) == 2


def test_remote_throttling_is_429_with_retry_after(api, fake_transport):
    fake_transport.errors = [RateLimitedError(retry_after=7.2)]
    r = api.post("/api/analyze", json={"text": "hello"})
    assert r.status_code == 429
    assert r.headers["retry-after"] == "8"


def test_per_client_limit(api, monkeypatch):
    monkeypatch.setattr(get_settings(), "client_requests_per_minute", 2)
    assert api.post("/api/analyze", json={"text": "one"}).status_code == 200
    assert api.post("/api/analyze", json={"text": "two"}).status_code == 200
    r = api.post("/api/analyze", json={"text": "three"})
    assert r.status_code == 429
    assert int(r.headers["retry-after"]) >= 1


def test_per_client_limit_holds_under_concurrent_burst(db, make_service, monkeypatch):
    monkeypatch.setattr(get_settings(), "client_requests_per_minute", 2)
    transport = FakeTransport(delay=0.1)
    service = make_service(transport)
    app.dependency_overrides[get_analysis_service] = lambda: service

    async def burst():
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
            return await asyncio.gather(*[
                client.post("/api/analyze", json={"text": f"frame {i}"}) for i in range(6)
            ])

    try:
        responses = asyncio.run(burst())
    finally:
        app.dependency_overrides.clear()

    codes = sorted(r.status_code for r in responses)
    assert codes == [200, 200, 429, 429, 429, 429]
    assert len(transport.calls) == 2


def test_running_request_shows_as_pending_in_history(api, fake_transport, db):
    from snapsight.repositories import analysis_repository

    record = analysis_repository.save_record(db, "testclient", session_id="session_p", status="pending")
    entries = api.get("/api/analyze/history", params={"session_id": "session_p"}).json()["entries"]
    assert [e["status"] for e in entries] == ["pending"]

    analysis_repository.finish_record(db, record.id, status="ok", response_text="done")
    entries = api.get("/api/analyze/history", params={"session_id": "session_p"}).json()["entries"]
    assert entries[0]["status"] == "ok"
    assert entries[0]["response"] == "done"


def test_status_endpoint(api):
    api.post("/api/analyze", json={"text": "fill the cache"})
    r = api.get("/api/analyze/status")
    assert r.status_code == 200
    assert r.json() == {"pending": 0, "running": 0, "cache_size": 1, "window_requests": 0}


def test_history_lists_and_clears_session(api, fake_transport):
    api.post("/api/analyze", json={"image": IMAGE_A, "session_id": "session_9"})
    fake_transport.errors = [RemoteError("boom")]
    api.post("/api/analyze", json={"text": "voice question", "session_id": "session_9"})
    api.post("/api/analyze", json={"text": "other session", "session_id": "session_x"})

    r = api.get("/api/analyze/history", params={"session_id": "session_9"})
    assert r.status_code == 200
    entries = r.json()["entries"]
    assert len(entries) == 2
    by_status = {e["status"]: e for e in entries}
    assert by_status["ok"]["has_image"] is True
    assert by_status["ok"]["response"] == fake_transport.reply
    assert by_status["error"]["error_kind"] == "remote"
    assert by_status["error"]["text"] == "voice question"

    r = api.delete("/api/analyze/history", params={"session_id": "session_9"})
    assert r.json() == {"session_id": "session_9", "deleted": 2}
    assert api.get("/api/analyze/history", params={"session_id": "session_9"}).json()["entries"] == []


def test_health_without_redis(api):
    assert api.get("/api/analyze/health").json()["redis"] == "unavailable"


def test_root(api):
    assert api.get("/").json()["message"] == "Snapsight API"
