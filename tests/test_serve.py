"""Tests for the HTTP endpoint and dashboard server."""

import json
import threading
from http.client import HTTPConnection
from unittest.mock import patch
from urllib.error import HTTPError
from urllib.request import Request, urlopen

import httpx
import pytest

from conftest import raw_commit
from repolens.serve import handle_analyze, make_server


def body(**payload) -> bytes:
    return json.dumps(payload).encode()


@pytest.fixture
def demo(github):
    github.repository("octo/demo", branches=["main"])
    github.commits("octo/demo", "main", [raw_commit("a" * 40, 1, "Add parser")])
    return github


class TestHandleAnalyze:
    def test_success(self, demo, context):
        status, payload = handle_analyze(body(repoUrl="https://github.com/octo/demo", timeRange="month"), context)
        assert status == 200
        assert payload["success"] is True
        assert payload["data"]["repository"] == "octo/demo"
        assert payload["data"]["time_range"] == "month"

    def test_unknown_range_defaults_to_week(self, demo, context):
        status, payload = handle_analyze(body(repoUrl="https://github.com/octo/demo", timeRange="decade"), context)
        assert status == 200
        assert payload["data"]["time_range"] == "week"

    def test_invalid_url_makes_no_upstream_call(self, github, context):
        status, payload = handle_analyze(body(repoUrl="not-a-url"), context)
        assert status == 400
        assert payload == {"success": False, "message": "Invalid GitHub URL"}
        assert github.requests == []

    @pytest.mark.parametrize("raw", [b"", b"{}", body(repoUrl=""), body(repoUrl=42)])
    def test_missing_url(self, raw, github, context):
        status, payload = handle_analyze(raw, context)
        assert status == 400
        assert payload["message"] == "Repository URL is required"
        assert github.requests == []

    @pytest.mark.parametrize("raw", [b"{not json", b"[1, 2]"])
    def test_malformed_body(self, raw, context):
        status, payload = handle_analyze(raw, context)
        assert status == 400
        assert payload["success"] is False

    def test_throttled(self, demo, context, clock):
        context.rate_limit.throttled = True
        context.rate_limit.reset_at = clock() + 30
        status, payload = handle_analyze(body(repoUrl="https://github.com/octo/demo"), context)
        assert status == 429
        assert payload["retryAfter"] == 30
        assert payload["success"] is False
        assert demo.requests == []

    def test_upstream_rate_limit(self, github, context):
        github.json("/repos/octo/demo", {"message": "API rate limit exceeded"}, status=429)
        status, payload = handle_analyze(body(repoUrl="https://github.com/octo/demo"), context)
        assert status == 429
        assert payload["message"] == "API rate limit exceeded"
        assert payload["retryAfter"] == 60
        assert len(github.requests) == 3

    def test_upstream_error(self, github, context):
        status, payload = handle_analyze(body(repoUrl="https://github.com/octo/missing"), context)
        assert status == 500
        assert payload == {"success": False, "message": "Not Found"}

    def test_unexpected_error(self, context):
        with patch("repolens.serve.analyze_repository", side_effect=RuntimeError("kaboom")):
            status, payload = handle_analyze(body(repoUrl="https://github.com/octo/demo"), context)
        assert status == 500
        assert payload == {"success": False, "message": "kaboom"}

    def test_transport_failure(self, github, context):
        def refuse(request):
            raise httpx.ConnectError("connection refused")

        github.route("/repos/octo/demo", refuse)
        status, payload = handle_analyze(body(repoUrl="https://github.com/octo/demo"), context)
        assert status == 500
        assert "connection refused" in payload["message"]


class TestServer:
    @pytest.fixture
    def base_url(self, demo, context):
        server = make_server(context, host="127.0.0.1", port=0)
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        try:
            yield f"http://127.0.0.1:{server.server_port}"
        finally:
            server.shutdown()
            server.server_close()

    def _status(self, request):
        try:
            with urlopen(request) as resp:
                return resp.status, resp.headers, resp.read()
        except HTTPError as e:
            return e.code, e.headers, e.read()

    def test_dashboard(self, base_url):
        status, headers, content = self._status(f"{base_url}/")
        assert status == 200
        assert headers["Content-Type"].startswith("text/html")
        html = content.decode()
        assert "<title>" in html
        assert "/api/analyze" in html

    def test_health(self, base_url):
        status, _, content = self._status(f"{base_url}/api/health")
        data = json.loads(content)
        assert status == 200
        assert data["status"] == "ok"
        assert data["authenticated"] is False

    def test_analyze(self, base_url):
        request = Request(
            f"{base_url}/api/analyze",
            data=body(repoUrl="https://github.com/octo/demo", timeRange="week"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        status, headers, content = self._status(request)
        data = json.loads(content)
        assert status == 200
        assert headers["Access-Control-Allow-Origin"] == "*"
        assert data["data"]["total_commits"] == 1

    def test_bad_request(self, base_url):
        request = Request(f"{base_url}/api/analyze", data=body(repoUrl="not-a-url"), method="POST")
        status, _, content = self._status(request)
        assert status == 400
        assert json.loads(content)["message"] == "Invalid GitHub URL"

    @pytest.mark.parametrize("method", ["GET", "PUT", "DELETE"])
    def test_wrong_method(self, base_url, method):
        status, _, content = self._status(Request(f"{base_url}/api/analyze", method=method))
        assert status == 405
        assert json.loads(content)["success"] is False

    def test_preflight(self, base_url):
        status, headers, _ = self._status(Request(f"{base_url}/api/analyze", method="OPTIONS"))
        assert status == 204
        assert "POST" in headers["Access-Control-Allow-Methods"]

    def test_unknown_path(self, base_url):
        status, _, _ = self._status(f"{base_url}/nope")
        assert status == 404

    def _post_with_length(self, base_url, length):
        host, port = base_url.rsplit("/", 1)[1].split(":")
        conn = HTTPConnection(host, int(port), timeout=5)
        try:
            conn.putrequest("POST", "/api/analyze")
            conn.putheader("Content-Type", "application/json")
            conn.putheader("Content-Length", length)
            conn.endheaders()
            resp = conn.getresponse()
            return resp.status, json.loads(resp.read())
        finally:
            conn.close()

    @pytest.mark.parametrize("length", ["-1", "abc"])
    def test_malformed_content_length(self, base_url, length):
        status, payload = self._post_with_length(base_url, length)
        assert status == 400
        assert payload == {"success": False, "message": "Invalid Content-Length"}

        # server keeps answering afterwards
        status, _, _ = self._status(f"{base_url}/api/health")
        assert status == 200
