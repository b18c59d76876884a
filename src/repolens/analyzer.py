"""Repository analyzer - fetch, dedupe, classify, summarize.

Pulls branches, commits and merged pull requests for one repository from
the GitHub REST API, folds them into contributors and branch activity,
and runs the heuristics in classifier.py over the result.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httpx

from . import classifier
from .cache import TTLCache, make_key
from .config import (
    BRANCH_PAGES,
    DIFF_EXCERPT_CHARS,
    GITHUB_WEB_BASE,
    MAX_BRANCHES,
    MIN_REQUEST_INTERVAL,
    PER_PAGE,
    PRIMARY_BRANCH_PAGES,
    RECENT_CHANGE_LIMIT,
    STALE_AFTER_DAYS,
    Settings,
)
from .github import GitHubClient, RateLimitError, RateLimitState, UpstreamError
from .model import CompletionClient
from .narrative import ActivityStats, executive_summary, summarize

logger = logging.getLogger(__name__)

SUBJECT_LENGTH = 50
MERGE_LIST_LIMIT = 10
DETAIL_WORKERS = 4
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class InvalidRepositoryURL(ValueError):
    """Input does not look like a GitHub repository URL."""


# --- Time ranges ---


@dataclass(frozen=True)
class TimeRange:
    key: str
    days: int | None
    label: str
    noun: str
    phrase: str

    def since(self, now: datetime) -> datetime | None:
        if self.days is None:
            return None
        return now - timedelta(days=self.days)


TIME_RANGES: dict[str, TimeRange] = {
    "day": TimeRange("day", 1, "Last 24 Hours", "day", "in the last 24 hours"),
    "week": TimeRange("week", 7, "Last Week", "week", "this week"),
    "month": TimeRange("month", 30, "Last Month", "month", "this month"),
    "quarter": TimeRange("quarter", 90, "Last Quarter", "quarter", "this quarter"),
    "6months": TimeRange("6months", 180, "Last 6 Months", "half-year", "in the last six months"),
    "year": TimeRange("year", 365, "Last Year", "year", "this year"),
    "all": TimeRange("all", None, "All Time", "history", "across the full history"),
}
DEFAULT_TIME_RANGE = "week"


def resolve_time_range(key: str | None) -> TimeRange:
    """Look up a range key. Unknown or missing keys fall back to a week."""
    return TIME_RANGES.get(key or DEFAULT_TIME_RANGE, TIME_RANGES[DEFAULT_TIME_RANGE])


# --- URL parsing ---

GITHUB_URL = re.compile(
    r"^\s*(?:[a-z][a-z0-9+.\-]*://)?"  # scheme
    r"(?:[^@/\s]+@)?"  # user / token
    r"(?:www\.)?github\.com[/:]"
    r"([A-Za-z0-9_.\-]+)/([A-Za-z0-9_.\-]+?)"
    r"(?:\.git)?/?(?:[/#?].*)?\s*$",
    re.I,
)


def parse_github_url(url: str | None) -> tuple[str, str]:
    """Return (owner, repo) for a GitHub repository URL."""
    match = GITHUB_URL.match(url or "")
    if not match:
        raise InvalidRepositoryURL("Invalid GitHub URL")
    owner, repo = match.group(1), match.group(2)
    if not repo or repo in (".", ".."):
        raise InvalidRepositoryURL("Invalid GitHub URL")
    return owner, repo


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# --- Data model ---


@dataclass
class Commit:
    """One commit, recorded once however many branches it appears on."""

    sha: str
    author: str
    email: str
    date: datetime
    subject: str
    message: str
    parents: list[str] = field(default_factory=list)
    branches: list[str] = field(default_factory=list)
    url: str = ""

    @property
    def short_sha(self) -> str:
        return self.sha[:7]

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1

    @classmethod
    def from_api(cls, raw: dict[str, Any], branch: str, owner: str, repo: str) -> "Commit":
        detail = raw.get("commit") or {}
        author = detail.get("author") or {}
        committer = detail.get("committer") or {}
        message = detail.get("message") or ""
        sha = raw["sha"]
        return cls(
            sha=sha,
            author=author.get("name") or "Unknown",
            email=author.get("email") or "",
            date=_parse_date(author.get("date")) or _parse_date(committer.get("date")) or EPOCH,
            subject=message.split("\n", 1)[0][:SUBJECT_LENGTH],
            message=message,
            parents=[p["sha"][:7] for p in raw.get("parents") or [] if p.get("sha")],
            branches=[branch],
            url=raw.get("html_url") or f"{GITHUB_WEB_BASE}/{owner}/{repo}/commit/{sha}",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": self.short_sha,
            "full_hash": self.sha,
            "author": self.author,
            "email": self.email,
            "timestamp": int(self.date.timestamp()),
            "date": _iso(self.date),
            "subject": self.subject,
            "parents": self.parents,
            "branches": self.branches,
            "is_merge": self.is_merge,
            "url": self.url,
        }


@dataclass
class Branch:
    name: str
    is_primary: bool = False
    commit_count: int = 0
    last_seen: datetime | None = None
    is_stale: bool = False
    days_since_last_commit: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "is_primary": self.is_primary,
            "commit_count": self.commit_count,
            "last_commit": _iso(self.last_seen),
            "days_since_last_commit": self.days_since_last_commit,
            "is_stale": self.is_stale,
        }


@dataclass
class Contributor:
    name: str
    email: str
    commits: int = 0
    additions: int = 0
    deletions: int = 0
    merges: int = 0
    branches: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "commits": self.commits,
            "additions": self.additions,
            "deletions": self.deletions,
            "merges": self.merges,
            "branches": self.branches,
        }


@dataclass
class PullRequest:
    number: int
    title: str
    author: str
    merged_at: datetime
    branch: str
    url: str

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "PullRequest | None":
        merged_at = _parse_date(raw.get("merged_at"))
        if merged_at is None:
            return None
        return cls(
            number=raw.get("number", 0),
            title=raw.get("title") or "Merged PR",
            author=(raw.get("user") or {}).get("login") or "Unknown",
            merged_at=merged_at,
            branch=(raw.get("head") or {}).get("ref") or "unknown",
            url=raw.get("html_url") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "title": self.title,
            "author": self.author,
            "merged_at": _iso(self.merged_at),
            "branch": self.branch,
            "url": self.url,
        }


@dataclass
class FileChange:
    filename: str
    status: str
    additions: int = 0
    deletions: int = 0
    patch: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "status": self.status,
            "additions": self.additions,
            "deletions": self.deletions,
            "changes": self.additions + self.deletions,
        }


@dataclass
class CommitChange:
    """File-level detail for one recent commit."""

    sha: str
    message: str
    author: str
    email: str
    date: datetime | None
    url: str
    additions: int = 0
    deletions: int = 0
    files: list[FileChange] = field(default_factory=list)
    kind: str = ""
    focus: list[str] = field(default_factory=list)
    language: str | None = None
    main_area: str | None = None

    @property
    def files_changed(self) -> int:
        return len(self.files)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sha": self.sha[:7],
            "message": self.message,
            "author": self.author,
            "date": _iso(self.date),
            "url": self.url,
            "files_changed": self.files_changed,
            "additions": self.additions,
            "deletions": self.deletions,
            "kind": self.kind,
            "focus": self.focus,
            "language": self.language,
            "main_area": self.main_area,
            "files": [f.to_dict() for f in self.files],
        }


@dataclass
class ToolingReport:
    """Tooling found by probing well-known paths. Missing means not detected."""

    cicd: list[dict[str, str]] = field(default_factory=list)
    containers: list[dict[str, str]] = field(default_factory=list)
    testing: list[dict[str, str]] = field(default_factory=list)
    coverage: list[dict[str, str]] = field(default_factory=list)
    linting: list[dict[str, str]] = field(default_factory=list)
    security: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {k: list(v) for k, v in self.__dict__.items()}


@dataclass
class BranchWarning:
    """A branch page that failed and cut that branch's pagination short."""

    branch: str
    page: int
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"branch": self.branch, "page": self.page, "message": self.message}


@dataclass
class AnalysisResult:
    """Complete analysis of one repository over one time range."""

    owner: str
    repo: str
    time_range: str
    time_range_label: str
    primary_branch: str
    since: datetime | None = None
    generated_at: datetime | None = None

    commits: list[Commit] = field(default_factory=list)  # all, newest first
    total_commits: int = 0  # inside the window
    contributors: list[Contributor] = field(default_factory=list)
    branches: list[Branch] = field(default_factory=list)
    stale_branches: list[Branch] = field(default_factory=list)
    all_branches_count: int = 0
    merged_prs: list[PullRequest] = field(default_factory=list)
    merged_prs_total: int = 0
    merged_prs_in_range: int = 0

    branching: classifier.BranchingAnalysis = field(default_factory=classifier.BranchingAnalysis)
    categories: classifier.CommitCategories = field(default_factory=classifier.CommitCategories)
    pr_activity: classifier.PRActivity = field(default_factory=classifier.PRActivity)
    keywords: list[dict[str, Any]] = field(default_factory=list)

    recent_changes: list[CommitChange] = field(default_factory=list)
    tooling: ToolingReport | None = None

    activity_summary: str = ""
    executive_summary: str | None = None
    warnings: list[BranchWarning] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def skipped_branches(self) -> list[str]:
        return list(dict.fromkeys(w.branch for w in self.warnings))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "repository": self.full_name,
            "owner": self.owner,
            "repo": self.repo,
            "time_range": self.time_range,
            "time_range_label": self.time_range_label,
            "since": _iso(self.since),
            "generated_at": _iso(self.generated_at),
            "primary_branch": self.primary_branch,
            "primary_branch_url": f"{GITHUB_WEB_BASE}/{self.full_name}/tree/{self.primary_branch}",
            "total_commits": self.total_commits,
            "total_contributors": len(self.contributors),
            "total_branches": len(self.branches),
            "stale_branches_count": len(self.stale_branches),
            "all_branches_count": self.all_branches_count,
            "contributors": [c.to_dict() for c in self.contributors],
            "branches": [b.to_dict() for b in self.branches],
            "stale_branches": [b.to_dict() for b in self.stale_branches],
            "graph": [c.to_dict() for c in self.commits],
            "merges": [p.to_dict() for p in self.merged_prs],
            "merged_prs_total": self.merged_prs_total,
            "merged_prs_in_range": self.merged_prs_in_range,
            "branching_analysis": self.branching.to_dict(),
            "categories": self.categories.to_dict(),
            "pr_activity": self.pr_activity.to_dict(),
            "keywords": self.keywords,
            "recent_changes": [c.to_dict() for c in self.recent_changes],
            "activity_summary": self.activity_summary,
            "warnings": [w.to_dict() for w in self.warnings],
        }
        if self.tooling is not None:
            data["cicd_tools"] = self.tooling.to_dict()
        if self.executive_summary:
            data["executive_summary"] = self.executive_summary
        return data


# --- Folding ---


def build_contributors(
    commits: list[Commit],
    primary_branch: str,
    changes: list[CommitChange] | None = None,
) -> list[Contributor]:
    """One entry per author email, most commits first."""
    stats = {c.sha[:7]: c for c in changes or []}
    contributors: dict[str, Contributor] = {}
    for commit in commits:
        person = contributors.get(commit.email)
        if person is None:
            person = Contributor(
                name=commit.author,
                email=commit.email,
                branches=[{"name": primary_branch, "is_primary": True}],
            )
            contributors[commit.email] = person
        person.commits += 1
        if commit.is_merge:
            person.merges += 1
        change = stats.get(commit.short_sha)
        if change is not None:
            person.additions += change.additions
            person.deletions += change.deletions
    return sorted(contributors.values(), key=lambda c: -c.commits)


class _CommitIndex:
    """Commits keyed by sha; the first branch to report a commit owns it."""

    def __init__(self, owner: str, repo: str, since: datetime | None):
        self.owner = owner
        self.repo = repo
        self.since = since
        self.commits: dict[str, Commit] = {}
        self.owned: Counter[str] = Counter()
        self.last_seen: dict[str, datetime] = {}
        self.produced: set[str] = set()

    def in_window(self, commit: Commit) -> bool:
        return self.since is None or commit.date >= self.since

    def add(self, branch: str, raw: dict[str, Any]) -> None:
        self.produced.add(branch)
        existing = self.commits.get(raw["sha"])
        if existing is not None:
            if branch not in existing.branches:
                existing.branches.append(branch)
            commit = existing
        else:
            commit = Commit.from_api(raw, branch, self.owner, self.repo)
            self.commits[commit.sha] = commit
            if self.in_window(commit):
                self.owned[branch] += 1
        seen = self.last_seen.get(branch)
        if seen is None or commit.date > seen:
            self.last_seen[branch] = commit.date

    def sorted_commits(self) -> list[Commit]:
        return sorted(self.commits.values(), key=lambda c: c.date, reverse=True)


# --- Tooling probes ---


@dataclass(frozen=True)
class Probe:
    path: str
    kind: str
    name: str
    url_type: str = "blob"


TOOLING_PROBES: tuple[Probe, ...] = (
    Probe(".github/workflows", "cicd", "GitHub Actions", "tree"),
    Probe(".gitlab-ci.yml", "cicd", "GitLab CI"),
    Probe(".travis.yml", "cicd", "Travis CI"),
    Probe(".circleci/config.yml", "cicd", "CircleCI"),
    Probe("Jenkinsfile", "cicd", "Jenkins"),
    Probe("Dockerfile", "containers", "Dockerfile"),
    Probe("docker-compose.yml", "containers", "docker-compose.yml"),
    Probe("codecov.yml", "coverage", "Codecov"),
    Probe(".coveragerc", "coverage", "Coverage.py"),
    Probe(".eslintrc", "linting", "ESLint"),
    Probe(".eslintrc.js", "linting", "ESLint"),
    Probe(".pylintrc", "linting", "Pylint"),
    Probe(".github/dependabot.yml", "security", "Dependabot"),
    Probe(".snyk", "security", "Snyk"),
)

# One entry per kind is enough for these
SINGLE_KINDS = {"linting", "coverage"}

TEST_MANIFESTS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("package.json", ("jest", "mocha", "vitest", "cypress")),
    ("requirements.txt", ("pytest", "unittest")),
    ("pyproject.toml", ("pytest",)),
    ("pom.xml", ("junit",)),
    ("Gemfile", ("rspec", "minitest")),
)


class RepositoryAnalyzer:
    """Runs the fetch/classify pipeline for one repository."""

    def __init__(
        self,
        client: GitHubClient,
        now: Callable[[], datetime] | None = None,
        include_details: bool = True,
        max_branches: int = MAX_BRANCHES,
    ):
        self.client = client
        self._now = now or (lambda: datetime.now(timezone.utc))
        self.include_details = include_details
        self.max_branches = max_branches

    def analyze(self, owner: str, repo: str, time_range: str | None = None) -> AnalysisResult:
        period = resolve_time_range(time_range)
        now = self._now()
        since = period.since(now)
        base = f"/repos/{owner}/{repo}"
        logger.info("Analyzing %s/%s (%s)", owner, repo, period.label)

        info = self.client.request(base)
        primary = info.get("default_branch") or "main"
        listed = self.client.request(f"{base}/branches", {"per_page": PER_PAGE}) or []
        names = [b["name"] for b in listed if b.get("name")]
        if primary not in names:
            names.insert(0, primary)
        logger.info("Primary branch %s, %d branches listed", primary, len(names))

        index = _CommitIndex(owner, repo, since)
        warnings: list[BranchWarning] = []

        # The primary branch ignores `since` so recent activity is never empty
        self._fetch_branch(base, primary, PRIMARY_BRANCH_PAGES, None, index, warnings)
        for name in [n for n in names if n != primary][: self.max_branches]:
            self._fetch_branch(base, name, BRANCH_PAGES, since, index, warnings)

        commits = index.sorted_commits()
        window = [c for c in commits if index.in_window(c)]

        branches = self._branch_activity(names, primary, index, now)
        active = [b for b in branches if not b.is_stale]
        stale = [b for b in branches if b.is_stale]

        merged = self._merged_pull_requests(base, warnings)
        merged_in_range = [p for p in merged if since is None or p.merged_at >= since]

        changes: list[CommitChange] = []
        tooling = None
        if self.include_details:
            changes = self.recent_changes(owner, repo, (window or commits)[:RECENT_CHANGE_LIMIT])
            tooling = self.detect_tooling(owner, repo, primary)

        result = AnalysisResult(
            owner=owner,
            repo=repo,
            time_range=period.key,
            time_range_label=period.label,
            primary_branch=primary,
            since=since,
            generated_at=now,
            commits=commits,
            total_commits=len(window),
            contributors=build_contributors(window, primary, changes),
            branches=active,
            stale_branches=stale,
            all_branches_count=len(names),
            merged_prs=merged_in_range[:MERGE_LIST_LIMIT],
            merged_prs_total=len(merged),
            merged_prs_in_range=len(merged_in_range),
            branching=classifier.analyze_branching(
                [b.name for b in active],
                total_commits=len(window),
                merge_commits=sum(1 for c in window if c.is_merge),
                merged_prs=len(merged),
            ),
            categories=classifier.categorize_commits(window),
            pr_activity=classifier.analyze_pr_titles(p.title for p in merged_in_range),
            keywords=classifier.keyword_frequency(c.subject for c in window),
            recent_changes=changes,
            tooling=tooling,
            warnings=warnings,
        )
        result.activity_summary = summarize(ActivityStats.from_result(result, period))
        if warnings:
            logger.warning(
                "%s: %d branch fetches cut short (%s)",
                result.full_name, len(warnings), ", ".join(result.skipped_branches),
            )
        return result

    def _fetch_branch(
        self,
        base: str,
        branch: str,
        max_pages: int,
        since: datetime | None,
        index: _CommitIndex,
        warnings: list[BranchWarning],
    ) -> None:
        for page in range(1, max_pages + 1):
            params: dict[str, Any] = {"sha": branch, "per_page": PER_PAGE, "page": page}
            if since is not None:
                params["since"] = since.strftime("%Y-%m-%dT%H:%M:%SZ")
            try:
                batch = self.client.request(f"{base}/commits", params) or []
            except (UpstreamError, httpx.HTTPError) as e:
                logger.debug("Branch %s page %d failed: %s", branch, page, e)
                warnings.append(BranchWarning(branch, page, str(e)))
                break
            for raw in batch:
                if raw.get("sha"):
                    index.add(branch, raw)
            if len(batch) < PER_PAGE:
                break

    def _branch_activity(
        self,
        names: list[str],
        primary: str,
        index: _CommitIndex,
        now: datetime,
    ) -> list[Branch]:
        threshold = now - timedelta(days=STALE_AFTER_DAYS)
        branches = []
        for name in names:
            last_seen = index.last_seen.get(name)
            # Unfetched and empty branches count as stale
            stale = name not in index.produced or (last_seen is not None and last_seen < threshold)
            branches.append(Branch(
                name=name,
                is_primary=name == primary,
                commit_count=index.owned.get(name, 0),
                last_seen=last_seen,
                is_stale=stale,
                days_since_last_commit=(now - last_seen).days if last_seen else None,
            ))
        return branches

    def _merged_pull_requests(self, base: str, warnings: list[BranchWarning]) -> list[PullRequest]:
        try:
            pulls = self.client.request(f"{base}/pulls", {"state": "closed", "per_page": PER_PAGE}) or []
        except (UpstreamError, httpx.HTTPError) as e:
            logger.debug("Pull request listing failed: %s", e)
            warnings.append(BranchWarning("pulls", 1, str(e)))
            return []
        merged = []
        for raw in pulls:
            pr = PullRequest.from_api(raw)
            if pr is not None:
                merged.append(pr)
        return merged

    def recent_changes(self, owner: str, repo: str, commits: list[Commit]) -> list[CommitChange]:
        """File-level detail for the given commits, fetched concurrently."""
        if not commits:
            return []

        def fetch(commit: Commit) -> CommitChange | None:
            try:
                raw = self.client.request(f"/repos/{owner}/{repo}/commits/{commit.sha}")
            except (UpstreamError, httpx.HTTPError) as e:
                logger.debug("Commit detail %s failed: %s", commit.short_sha, e)
                return None
            return _commit_change(raw, commit)

        with ThreadPoolExecutor(max_workers=DETAIL_WORKERS) as pool:
            results = list(pool.map(fetch, commits))
        return [c for c in results if c is not None]

    def detect_tooling(self, owner: str, repo: str, ref: str) -> ToolingReport:
        """Probe well-known paths. A failed probe is a negative, never an error."""
        contents = f"/repos/{owner}/{repo}/contents"
        web = f"{GITHUB_WEB_BASE}/{owner}/{repo}"
        report = ToolingReport()

        with ThreadPoolExecutor(max_workers=DETAIL_WORKERS) as pool:
            found = list(pool.map(lambda p: self.client.exists(f"{contents}/{p.path}"), TOOLING_PROBES))
            manifests = list(pool.map(lambda m: self._read_file(f"{contents}/{m[0]}"), TEST_MANIFESTS))

        seen: set[str] = set()
        for probe, exists in zip(TOOLING_PROBES, found):
            if not exists or probe.kind in seen:
                continue
            getattr(report, probe.kind).append({
                "name": probe.name,
                "path": probe.path,
                "url": f"{web}/{probe.url_type}/{ref}/{probe.path}",
            })
            if probe.kind in SINGLE_KINDS:
                seen.add(probe.kind)

        for (path, frameworks), text in zip(TEST_MANIFESTS, manifests):
            lowered = text.lower()
            for framework in frameworks:
                if framework in lowered and not any(t["framework"] == framework for t in report.testing):
                    report.testing.append({
                        "framework": framework,
                        "file": path,
                        "url": f"{web}/blob/{ref}/{path}",
                    })
        return report

    def _read_file(self, path: str) -> str:
        try:
            data = self.client.request(path)
        except (UpstreamError, httpx.HTTPError):
            return ""
        if not isinstance(data, dict) or not data.get("content"):
            return ""
        try:
            return base64.b64decode(data["content"]).decode("utf-8", errors="replace")
        except (binascii.Error, ValueError):
            return ""


def _commit_change(raw: dict[str, Any], commit: Commit) -> CommitChange | None:
    files_raw = raw.get("files")
    if not files_raw:
        return None
    stats = raw.get("stats") or {}
    files = [
        FileChange(
            filename=f.get("filename", ""),
            status=f.get("status", "modified"),
            additions=f.get("additions") or 0,
            deletions=f.get("deletions") or 0,
            patch=(f.get("patch") or "")[:DIFF_EXCERPT_CHARS],
        )
        for f in files_raw
    ]
    additions = stats.get("additions", sum(f.additions for f in files))
    deletions = stats.get("deletions", sum(f.deletions for f in files))
    names = [f.filename for f in files]
    subject = commit.message.split("\n", 1)[0]
    return CommitChange(
        sha=commit.sha,
        message=subject,
        author=commit.author,
        email=commit.email,
        date=commit.date,
        url=commit.url,
        additions=additions,
        deletions=deletions,
        files=files,
        kind=classifier.change_kind(subject, [(f.filename, f.status) for f in files], additions, deletions),
        focus=classifier.file_focus(names),
        language=classifier.primary_language(names),
        main_area=classifier.main_directory(names),
    )


# --- Process context ---


@dataclass
class AnalysisContext:
    """Everything an analysis run shares with the rest of the process.

    Owned by the entry point and passed down, so tests can swap in a fake
    clock, sleep and transport.
    """

    settings: Settings = field(default_factory=Settings.from_env)
    rate_limit: RateLimitState = field(default_factory=RateLimitState)
    cache: TTLCache | None = None
    clock: Callable[[], float] = time.time
    sleep: Callable[[float], None] = time.sleep
    transport: httpx.BaseTransport | None = None
    llm_transport: httpx.BaseTransport | None = None
    min_interval: float = MIN_REQUEST_INTERVAL

    def __post_init__(self) -> None:
        if self.cache is None:
            self.cache = TTLCache(clock=self.clock)

    def now(self) -> datetime:
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc)

    def github_client(self) -> GitHubClient:
        return GitHubClient(
            token=self.settings.github_token,
            state=self.rate_limit,
            clock=self.clock,
            sleep=self.sleep,
            transport=self.transport,
            min_interval=self.min_interval,
        )

    def completion_client(self) -> CompletionClient:
        return CompletionClient(
            api_key=self.settings.llm_api_key,
            base_url=self.settings.llm_base_url,
            model=self.settings.llm_model,
            transport=self.llm_transport,
        )


def analyze_repository(
    owner: str,
    repo: str,
    time_range: str | None,
    context: AnalysisContext,
    include_details: bool = True,
    use_cache: bool = True,
) -> AnalysisResult:
    """Cached entry point used by the CLI and the HTTP endpoint."""
    period = resolve_time_range(time_range)
    key = make_key(owner, repo, period.key)
    if use_cache:
        cached = context.cache.get(key)
        if cached is not None:
            logger.info("Cache hit for %s", key)
            return cached

    if context.rate_limit.is_throttled(context.clock()):
        raise RateLimitError(
            "GitHub API rate limit reached. Please wait before retrying.",
            retry_after=context.rate_limit.retry_after(context.clock()),
        )

    with context.github_client() as client:
        analyzer = RepositoryAnalyzer(client, now=context.now, include_details=include_details)
        result = analyzer.analyze(owner, repo, period.key)

    result.executive_summary = executive_summary(result, context.completion_client())
    context.cache.set(key, result)
    return result
