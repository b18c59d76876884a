"""Shared fixtures: a fake clock and an in-memory GitHub API."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from repolens.analyzer import AnalysisContext
from repolens.config import Settings

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def iso(days_ago: float = 0) -> str:
    """ISO-8601 timestamp `days_ago` before NOW, in GitHub's Z format."""
    return (NOW - timedelta(days=days_ago)).strftime("%Y-%m-%dT%H:%M:%SZ")


def raw_commit(
    sha: str,
    days_ago: float = 1,
    message: str = "Update code",
    author: str = "Ada Lovelace",
    email: str = "ada@example.com",
    parents: tuple[str, ...] = ("0000000parent",),
) -> dict:
    """A commit as returned by GET /repos/{owner}/{repo}/commits."""
    person = {"name": author, "email": email, "date": iso(days_ago)}
    return {
        "sha": sha,
        "html_url": f"https://github.com/octo/demo/commit/{sha}",
        "commit": {"message": message, "author": person, "committer": person},
        "parents": [{"sha": p} for p in parents],
    }


def merged_pr(number: int, title: str, days_ago: float = 1, branch: str = "feature/x") -> dict:
    return {
        "number": number,
        "title": title,
        "merged_at": iso(days_ago),
        "user": {"login": "octocat"},
        "head": {"ref": branch},
        "html_url": f"https://github.com/octo/demo/pull/{number}",
    }


class FakeClock:
    """Callable clock whose sleep() advances time instead of blocking."""

    def __init__(self, start: float = NOW.timestamp()):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGitHub:
    """Path-routed fake of the GitHub REST API for httpx.MockTransport.

    Unrouted paths answer 404, which is also what the contents API says
    for a missing file.
    """

    def __init__(self):
        self.routes = {}
        self.branch_pages = {}
        self.requests: list[httpx.Request] = []

    def json(self, path: str, body, status: int = 200, headers: dict | None = None) -> None:
        self.routes[path] = lambda request: httpx.Response(status, json=body, headers=headers or {})

    def route(self, path: str, handler) -> None:
        self.routes[path] = handler

    def repository(self, full_name: str, default_branch: str = "main", branches=(), pulls=()) -> None:
        base = f"/repos/{full_name}"
        self.json(base, {"full_name": full_name, "default_branch": default_branch})
        self.json(f"{base}/branches", [{"name": b} for b in branches])
        self.json(f"{base}/pulls", list(pulls))
        self.routes[f"{base}/commits"] = lambda request: self._commits(base, request)

    def commits(self, full_name: str, branch: str, *pages) -> None:
        """Register commit pages for a branch; a page may be an httpx.Response."""
        self.branch_pages[(f"/repos/{full_name}", branch)] = list(pages)

    def _commits(self, base: str, request: httpx.Request) -> httpx.Response:
        branch = request.url.params.get("sha")
        page = int(request.url.params.get("page", "1"))
        pages = self.branch_pages.get((base, branch), [])
        if page > len(pages):
            return httpx.Response(200, json=[])
        entry = pages[page - 1]
        if isinstance(entry, httpx.Response):
            return entry
        return httpx.Response(200, json=entry)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"message": "Not Found"})
        return route(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    def commit_requests(self, branch: str) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.url.path.endswith("/commits") and r.url.params.get("sha") == branch
        ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def github():
    return FakeGitHub()


@pytest.fixture
def context(clock, github):
    """AnalysisContext wired to the fake clock and fake GitHub, no credentials."""
    return AnalysisContext(
        settings=Settings(),
        clock=clock,
        sleep=clock.sleep,
        transport=github.transport,
        min_interval=0,
    )
