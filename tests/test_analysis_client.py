"""End-to-end behaviour of cache + queue + client, with the outbound call faked."""
import asyncio
from unittest.mock import MagicMock

import pytest

from snapsight.errors import InputError, RemoteError
from snapsight.services.admission_queue import AdmissionQueue
from snapsight.services.analysis_client import AnalysisClient
from snapsight.services.analysis_request import AnalysisRequest
from snapsight.services.fingerprint import fingerprint
from snapsight.services.http_transport import HttpTransport
from snapsight.services.redis_response_cache import RedisResponseCache
from snapsight.services.response_cache import ResponseCache

from conftest import IMAGE_A, IMAGE_B, FakeRedis, FakeTransport


@pytest.fixture
def cache(clock):
    return ResponseCache(ttl_seconds=600, max_entries=1000, clock=clock)


def _client(transport, cache, shared_cache=None, **queue_kwargs):
    queue_kwargs.setdefault("interval", 0)
    queue_kwargs.setdefault("interval_cap", 0)
    return AnalysisClient(transport, cache, AdmissionQueue(**queue_kwargs), shared_cache=shared_cache)


def test_second_identical_request_is_a_cache_hit(cache):
    transport = FakeTransport(reply="desk, laptop, coffee")
    client = _client(transport, cache)
    request = AnalysisRequest(image=IMAGE_A)

    async def main():
        first = await client.analyze(request)
        second = await client.analyze(AnalysisRequest(image=IMAGE_A))
        return first, second

    first, second = asyncio.run(main())
    assert len(transport.calls) == 1
    assert first.text == second.text == "desk, laptop, coffee"
    assert first.cached is False
    assert second.cached is True
    assert first.fingerprint == second.fingerprint


def test_request_after_freshness_window_calls_again(cache, clock):
    transport = FakeTransport()
    client = _client(transport, cache)

    async def main():
        await client.analyze(AnalysisRequest(image=IMAGE_A))
        clock.advance(601)
        return await client.analyze(AnalysisRequest(image=IMAGE_A))

    second = asyncio.run(main())
    assert len(transport.calls) == 2
    assert second.cached is False


def test_empty_payload_rejected_before_any_call(cache):
    transport = FakeTransport()
    client = _client(transport, cache)

    async def main():
        await client.analyze(AnalysisRequest(context="only context"))

    with pytest.raises(InputError):
        asyncio.run(main())
    assert transport.calls == []
    assert client._queue.pending_count() == 0


def test_malformed_image_rejected_before_any_call(cache):
    transport = FakeTransport()
    client = _client(transport, cache)

    with pytest.raises(InputError):
        asyncio.run(client.analyze(AnalysisRequest(image="not-a-data-uri")))
    assert transport.calls == []


def test_remote_500_rejects_and_caches_nothing(cache):
    session = MagicMock()
    session.post.return_value = MagicMock(status_code=500, headers={})
    transport = HttpTransport("http://analysis.local/api", session=session)
    client = _client(transport, cache)
    request = AnalysisRequest(image=IMAGE_A)

    with pytest.raises(RemoteError) as exc:
        asyncio.run(client.analyze(request))
    assert exc.value.status_code == 500
    assert session.post.call_count == 1
    assert cache.get(fingerprint(request)) is None
    assert cache.size() == 0


def test_distinct_payloads_are_not_confused(cache):
    transport = FakeTransport()
    client = _client(transport, cache)

    async def main():
        await client.analyze(AnalysisRequest(image=IMAGE_A))
        await client.analyze(AnalysisRequest(image=IMAGE_B))
        await client.analyze(AnalysisRequest(image=IMAGE_A, screen_image=IMAGE_B))

    asyncio.run(main())
    assert len(transport.calls) == 3
    assert cache.size() == 3


def test_concurrent_identical_requests_share_one_call(cache):
    transport = FakeTransport(delay=0.05)
    client = _client(transport, cache)

    async def main():
        return await asyncio.gather(*[client.analyze(AnalysisRequest(text="same")) for _ in range(5)])

    results = asyncio.run(main())
    assert len(transport.calls) == 1
    assert {r.text for r in results} == {transport.reply}
    assert client.inflight_count() == 0


def test_failure_is_shared_by_coalesced_waiters_and_not_cached(cache):
    transport = FakeTransport(delay=0.02, errors=[RemoteError("bad gateway", status_code=502)])
    client = _client(transport, cache)

    async def main():
        return await asyncio.gather(
            *[client.analyze(AnalysisRequest(text="same")) for _ in range(3)],
            return_exceptions=True,
        )

    results = asyncio.run(main())
    assert len(transport.calls) == 1
    assert all(isinstance(r, RemoteError) for r in results)
    assert cache.size() == 0


def test_shared_cache_hit_skips_remote_call(cache):
    redis = FakeRedis()
    shared = RedisResponseCache(redis, ttl_seconds=600)
    request = AnalysisRequest(image=IMAGE_A)
    redis.store[f"analysis:{fingerprint(request)}"] = "from another worker"
    transport = FakeTransport()
    client = _client(transport, cache, shared_cache=shared)

    result = asyncio.run(client.analyze(request))
    assert result.text == "from another worker"
    assert result.cached is True
    assert transport.calls == []
    # copied into the in-memory tier
    assert cache.get(fingerprint(request)) == "from another worker"


def test_successful_call_is_written_to_shared_cache(cache):
    redis = FakeRedis()
    client = _client(FakeTransport(reply="fresh"), cache, shared_cache=RedisResponseCache(redis, ttl_seconds=600))
    request = AnalysisRequest(text="hello")

    asyncio.run(client.analyze(request))
    assert redis.store[f"analysis:{fingerprint(request)}"] == "fresh"


def test_redis_failures_do_not_break_analysis(cache):
    shared = RedisResponseCache(FakeRedis(fail=True), ttl_seconds=600)
    transport = FakeTransport(reply="still works")
    client = _client(transport, cache, shared_cache=shared)

    result = asyncio.run(client.analyze(AnalysisRequest(text="hello")))
    assert result.text == "still works"
    assert len(transport.calls) == 1
