"""Tests for the GitHub API client: spacing, rate limits and retry."""

import httpx
import pytest

from repolens.github import GitHubClient, RateLimitError, RateLimitState, UpstreamError


def make_client(clock, handler, **kwargs):
    kwargs.setdefault("min_interval", 0)
    return GitHubClient(
        clock=clock,
        sleep=clock.sleep,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def sequence(*responses):
    """Handler that replays responses in order and records requests."""
    queue = list(responses)
    seen = []

    def handler(request):
        seen.append(request)
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    handler.seen = seen
    return handler


class TestRequest:
    def test_success_returns_json(self, clock):
        handler = sequence(httpx.Response(200, json={"default_branch": "main"}))
        with make_client(clock, handler) as client:
            assert client.request("/repos/octo/demo") == {"default_branch": "main"}
        assert clock.sleeps == []

    def test_headers(self, clock):
        handler = sequence(httpx.Response(200, json={}))
        with make_client(clock, handler, token="s3cret") as client:
            client.request("/rate_limit")
            assert client.authenticated
        request = handler.seen[0]
        assert request.headers["authorization"] == "Bearer s3cret"
        assert request.headers["accept"] == "application/vnd.github.v3+json"
        assert request.headers["user-agent"].startswith("repolens/")

    def test_no_token_no_auth_header(self, clock):
        handler = sequence(httpx.Response(200, json={}))
        with make_client(clock, handler) as client:
            client.request("/rate_limit")
            assert not client.authenticated
        assert "authorization" not in handler.seen[0].headers

    def test_not_found_is_not_retried(self, clock):
        handler = sequence(httpx.Response(404, json={"message": "Not Found"}))
        with make_client(clock, handler) as client:
            with pytest.raises(UpstreamError) as exc:
                client.request("/repos/octo/missing")
        assert exc.value.status == 404
        assert exc.value.message == "Not Found"
        assert len(handler.seen) == 1
        assert clock.sleeps == []

    def test_error_without_json_body(self, clock):
        handler = sequence(httpx.Response(502, text="bad gateway"))
        with make_client(clock, handler) as client:
            with pytest.raises(UpstreamError, match="GitHub API error: 502"):
                client.request("/repos/octo/demo")


class TestRetry:
    def test_retry_after_header_sets_wait(self, clock):
        handler = sequence(
            httpx.Response(429, json={"message": "slow down"}, headers={"Retry-After": "5"}),
            httpx.Response(200, json={"ok": True}),
        )
        with make_client(clock, handler) as client:
            assert client.request("/repos/octo/demo") == {"ok": True}
        assert clock.sleeps == [5.0]
        assert len(handler.seen) == 2

    def test_exponential_backoff(self, clock):
        handler = sequence(
            httpx.Response(403, json={"message": "secondary rate limit"}),
            httpx.Response(403, json={"message": "secondary rate limit"}),
            httpx.Response(200, json=[]),
        )
        with make_client(clock, handler) as client:
            assert client.request("/repos/octo/demo/commits") == []
        assert clock.sleeps == [2.0, 4.0]

    def test_gives_up_after_three_attempts(self, clock):
        handler = sequence(httpx.Response(429, json={"message": "rate limited"}))
        with make_client(clock, handler) as client:
            with pytest.raises(RateLimitError) as exc:
                client.request("/repos/octo/demo")
        assert len(handler.seen) == 3
        assert exc.value.status == 429
        assert exc.value.message == "rate limited"
        assert clock.sleeps == [2.0, 4.0]

    def test_transport_error_is_retried(self, clock):
        handler = sequence(
            httpx.ConnectError("connection refused"),
            httpx.Response(200, json={"ok": True}),
        )
        with make_client(clock, handler) as client:
            assert client.request("/repos/octo/demo") == {"ok": True}
        assert clock.sleeps == [2.0]

    def test_transport_error_propagates_when_exhausted(self, clock):
        handler = sequence(httpx.ConnectError("connection refused"))
        with make_client(clock, handler) as client:
            with pytest.raises(httpx.ConnectError):
                client.request("/repos/octo/demo")
        assert len(handler.seen) == 3

    def test_reset_header_does_not_stretch_backoff(self, clock):
        reset = str(int(clock() + 3600))
        handler = sequence(httpx.Response(
            403,
            json={"message": "API rate limit exceeded"},
            headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": reset},
        ))
        with make_client(clock, handler) as client:
            with pytest.raises(RateLimitError) as exc:
                client.request("/repos/octo/demo")
        assert clock.sleeps == [2.0, 4.0]
        assert exc.value.retry_after > 3000


class TestSpacing:
    def test_requests_are_spaced(self, clock):
        handler = sequence(httpx.Response(200, json={}))
        with make_client(clock, handler, min_interval=1.0) as client:
            client.request("/a")
            client.request("/b")
            client.request("/c")
        assert clock.sleeps == [1.0, 1.0]

    def test_no_wait_when_interval_elapsed(self, clock):
        handler = sequence(httpx.Response(200, json={}))
        with make_client(clock, handler, min_interval=1.0) as client:
            client.request("/a")
            clock.advance(5)
            client.request("/b")
        assert clock.sleeps == []

    def test_reserve_slot_claims_future_slots(self):
        state = RateLimitState()
        assert state.reserve_slot(100.0, 1.0) == 0.0
        assert state.reserve_slot(100.0, 1.0) == 1.0
        assert state.reserve_slot(100.0, 1.0) == 2.0


class TestRateLimitState:
    def test_low_remaining_throttles(self, clock):
        reset = clock() + 120
        handler = sequence(httpx.Response(
            200,
            json={},
            headers={"X-RateLimit-Remaining": "5", "X-RateLimit-Reset": str(int(reset))},
        ))
        state = RateLimitState()
        with make_client(clock, handler, state=state) as client:
            client.request("/repos/octo/demo")
        assert state.remaining == 5
        assert state.is_throttled(clock())
        assert state.retry_after(clock()) == 120
        assert not state.is_throttled(reset + 1)
        assert not state.throttled

    def test_healthy_remaining_does_not_throttle(self, clock):
        handler = sequence(httpx.Response(200, json={}, headers={"X-RateLimit-Remaining": "4999"}))
        state = RateLimitState()
        with make_client(clock, handler, state=state) as client:
            client.request("/repos/octo/demo")
        assert state.remaining == 4999
        assert not state.is_throttled(clock())

    def test_missing_reset_defaults_to_a_minute(self, clock):
        state = RateLimitState()
        state.record(httpx.Headers({"X-RateLimit-Remaining": "1"}), clock())
        assert state.is_throttled(clock())
        assert state.retry_after(clock()) == 60


class TestExists:
    def test_present(self, clock):
        handler = sequence(httpx.Response(200, json={"type": "file"}))
        with make_client(clock, handler) as client:
            assert client.exists("/repos/octo/demo/contents/Dockerfile") is True

    def test_absent(self, clock):
        handler = sequence(httpx.Response(404, json={"message": "Not Found"}))
        with make_client(clock, handler) as client:
            assert client.exists("/repos/octo/demo/contents/Dockerfile") is False
