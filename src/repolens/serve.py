"""Local HTTP server for the analysis API and dashboard.

POST /api/analyze runs (or serves from cache) an analysis; GET / returns
the single-page dashboard that calls it.
"""

from __future__ import annotations

import datetime
import json
import logging
import threading
import webbrowser
from functools import partial
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from .analyzer import AnalysisContext, InvalidRepositoryURL, analyze_repository, parse_github_url
from .config import DEFAULT_HOST, DEFAULT_PORT
from .github import RateLimitError, UpstreamError

logger = logging.getLogger(__name__)

DASHBOARD_TEMPLATE = Path(__file__).parent / "templates" / "dashboard.html"
ANALYZE_PATH = "/api/analyze"
HEALTH_PATH = "/api/health"
MAX_BODY_BYTES = 64 * 1024


def _failure(status: int, message: str, **extra: Any) -> tuple[int, dict[str, Any]]:
    return status, {"success": False, "message": message, **extra}


def handle_analyze(body: bytes, context: AnalysisContext) -> tuple[int, dict[str, Any]]:
    """Turn a request body into (status, JSON payload)."""
    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        return _failure(400, "Request body must be JSON")
    if not isinstance(payload, dict):
        return _failure(400, "Request body must be a JSON object")

    repo_url = payload.get("repoUrl")
    if not repo_url or not isinstance(repo_url, str):
        return _failure(400, "Repository URL is required")
    try:
        owner, repo = parse_github_url(repo_url)
    except InvalidRepositoryURL as e:
        return _failure(400, str(e))

    time_range = payload.get("timeRange")
    if not isinstance(time_range, str):
        time_range = None

    try:
        result = analyze_repository(owner, repo, time_range, context)
    except RateLimitError as e:
        retry_after = e.retry_after or context.rate_limit.retry_after(context.clock())
        return _failure(429, e.message, retryAfter=retry_after)
    except UpstreamError as e:
        logger.warning("Analysis of %s/%s failed upstream (%s): %s", owner, repo, e.status, e.message)
        return _failure(500, e.message)
    except Exception as e:
        logger.exception("Analysis of %s/%s failed", owner, repo)
        return _failure(500, str(e) or "Internal error")

    return 200, {"success": True, "data": result.to_dict()}


class RepoLensHandler(BaseHTTPRequestHandler):
    """HTTP handler that serves the dashboard and the analysis API."""

    def __init__(self, *args, context: AnalysisContext, dashboard_html: str, **kwargs):
        self._context = context
        self._dashboard_html = dashboard_html
        super().__init__(*args, **kwargs)

    @property
    def route(self) -> str:
        return urlparse(self.path).path

    def do_GET(self):
        if self.route in ("/", "/index.html"):
            self._send(200, self._dashboard_html.encode("utf-8"), "text/html; charset=utf-8")
        elif self.route == HEALTH_PATH:
            self._send_json(200, {
                "status": "ok",
                "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
                "authenticated": bool(self._context.settings.github_token),
                "summaries": bool(self._context.settings.llm_api_key),
            })
        elif self.route == ANALYZE_PATH:
            self._method_not_allowed()
        else:
            self._send_json(404, {"success": False, "message": "Not found"})

    def do_POST(self):
        if self.route in ("/", HEALTH_PATH):
            self._method_not_allowed()
            return
        if self.route != ANALYZE_PATH:
            self._send_json(404, {"success": False, "message": "Not found"})
            return
        try:
            length = int(self.headers.get("Content-Length") or 0)
        except ValueError:
            length = -1
        if length < 0:
            self._send_json(400, {"success": False, "message": "Invalid Content-Length"})
            return
        if length > MAX_BODY_BYTES:
            self._send_json(400, {"success": False, "message": "Request body too large"})
            return
        body = self.rfile.read(length) if length else b""
        status, payload = handle_analyze(body, self._context)
        self._send_json(status, payload)

    def do_PUT(self):
        self._method_not_allowed()

    def do_DELETE(self):
        self._method_not_allowed()

    def do_PATCH(self):
        self._method_not_allowed()

    def do_OPTIONS(self):
        self.send_response(204)
        self._cors_headers()
        self.send_header("Content-Length", "0")
        self.end_headers()

    def _method_not_allowed(self):
        self._send_json(405, {"success": False, "message": "Method not allowed"})

    def _cors_headers(self):
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "GET,POST,OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")

    def _send_json(self, status: int, payload: dict[str, Any]):
        self._send(status, json.dumps(payload).encode("utf-8"), "application/json")

    def _send(self, status: int, content: bytes, content_type: str):
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(content)))
        self._cors_headers()
        self.end_headers()
        self.wfile.write(content)

    def log_message(self, format, *args):
        """Route access logs through logging instead of stderr."""
        logger.debug("%s - %s", self.address_string(), format % args)


def make_server(
    context: AnalysisContext,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> HTTPServer:
    dashboard_html = DASHBOARD_TEMPLATE.read_text(encoding="utf-8")
    handler = partial(RepoLensHandler, context=context, dashboard_html=dashboard_html)
    HTTPServer.allow_reuse_address = True
    return HTTPServer((host, port), handler)


def start_server(
    context: AnalysisContext | None = None,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    open_browser: bool = False,
) -> None:
    """Start the dashboard server and block until interrupted.

    Args:
        context: Shared cache and rate-limit state; built from the environment if omitted
        host: Interface to bind
        port: Port to serve on
        open_browser: Whether to auto-open in browser
    """
    context = context or AnalysisContext()
    server = make_server(context, host, port)
    url = f"http://{'localhost' if host in ('127.0.0.1', '0.0.0.0') else host}:{server.server_port}"
    logger.info("Serving on %s", url)

    if open_browser:
        threading.Timer(0.5, lambda: webbrowser.open(url)).start()

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()
