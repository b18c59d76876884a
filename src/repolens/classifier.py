"""Heuristic classifiers over fetched repository data.

Everything here is pure: no I/O, same input gives the same output. Rule
tables are plain module data so tests can walk them without the evaluator.
Heuristics are best-effort and will mis-label some repositories.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Iterable

if TYPE_CHECKING:
    from .analyzer import Commit


# --- Branch naming ---

# Case-sensitive substring match; one branch may land in several buckets
# ("feature/hotfix-migration" is both a feature and a hotfix branch).
BRANCH_PATTERNS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("feature", ("feature",)),
    ("bugfix", ("fix",)),
    ("hotfix", ("hotfix",)),
    ("develop", ("develop", "dev")),
    ("release", ("release",)),
)

PATTERN_LABELS = {
    "feature": "Feature Branches",
    "bugfix": "Bugfix Branches",
    "hotfix": "Hotfix Branches",
    "develop": "Development Branches",
    "release": "Release Branches",
}


def count_branch_patterns(branch_names: Iterable[str]) -> dict[str, int]:
    """Count branches per naming category, plus the total."""
    names = list(branch_names)
    counts = {
        category: sum(1 for n in names if any(s in n for s in substrings))
        for category, substrings in BRANCH_PATTERNS
    }
    counts["total"] = len(names)
    return counts


@dataclass
class BranchSignals:
    """Inputs to the workflow and strategy rules."""

    counts: dict[str, int]
    total_commits: int = 0
    merge_commits: int = 0
    merged_prs: int = 0

    @property
    def total_branches(self) -> int:
        return self.counts.get("total", 0)

    @property
    def pr_ratio(self) -> float:
        """Merged PRs per commit, as a percentage rounded to one decimal."""
        if not self.total_commits:
            return 0.0
        return round(self.merged_prs / self.total_commits * 100, 1)

    @property
    def merge_ratio(self) -> float:
        if not self.total_commits:
            return 0.0
        return round(self.merge_commits / self.total_commits * 100, 1)


@dataclass(frozen=True)
class Rule:
    """A labelled predicate. Rule lists are evaluated in order, first match wins."""

    label: str
    explanation: str
    applies: Callable[[BranchSignals], bool]
    criteria: Callable[[BranchSignals], list[str]] = lambda s: []


WORKFLOW_RULES: tuple[Rule, ...] = (
    Rule(
        "Fork + Pull Request",
        "Contributors fork the repository and submit pull requests. "
        "This is the standard GitHub open source workflow.",
        lambda s: s.merged_prs > 10 or s.pr_ratio > 10,
        lambda s: [
            f"{s.merged_prs} merged pull requests detected",
            f"{s.pr_ratio}% PR merge ratio",
            "Pattern: Fork -> Make changes -> Submit PR -> Review -> Merge",
        ],
    ),
    Rule(
        "Trunk-Based Development",
        "Few branches with most work happening on the main branch.",
        lambda s: s.total_branches <= 3,
        lambda s: [
            f"Only {s.total_branches} active branches",
            f"{s.merge_ratio}% merge commits",
            "Pattern: Direct commits to main with minimal branching",
        ],
    ),
    Rule(
        "Branch-based Development",
        "Multiple branches with a feature branch workflow.",
        lambda s: True,
        lambda s: [
            f"{s.total_branches} active branches",
            f"{s.merge_ratio}% merge commits",
            "Pattern: Feature branches merged to main",
        ],
    ),
)

STRATEGY_RULES: tuple[Rule, ...] = (
    Rule(
        "Git Flow",
        "A structured branching model with main for production, develop for "
        "integration, and feature/release/hotfix branches. Suits scheduled release cycles.",
        lambda s: s.counts["develop"] > 0 and (s.counts["feature"] > 0 or s.counts["release"] > 0),
    ),
    Rule(
        "GitHub Flow",
        "Main is always production-ready and work happens on feature branches. "
        "Suits continuous deployment.",
        lambda s: s.counts["feature"] > 3,
    ),
    Rule(
        "Trunk-Based Development",
        "Developers work on main with minimal branching. Short-lived branches "
        "merge quickly.",
        lambda s: s.total_branches <= 3,
    ),
    Rule(
        "Custom Strategy",
        "This repository uses a branching pattern that does not match a standard workflow.",
        lambda s: True,
    ),
)


def first_match(rules: Iterable[Rule], signals: BranchSignals) -> Rule:
    for rule in rules:
        if rule.applies(signals):
            return rule
    raise ValueError("rule table has no catch-all entry")


@dataclass
class BranchingAnalysis:
    """Workflow and strategy guess with the evidence behind it."""

    branch_counts: dict[str, int] = field(default_factory=dict)
    patterns: list[dict[str, Any]] = field(default_factory=list)
    workflow: str = "Unknown"
    workflow_explanation: str = ""
    strategy: str = "Unknown"
    strategy_explanation: str = ""
    detection_criteria: list[str] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def analyze_branching(
    branch_names: Iterable[str],
    total_commits: int,
    merge_commits: int,
    merged_prs: int,
) -> BranchingAnalysis:
    """Label the workflow and strategy from branch names and merge activity."""
    counts = count_branch_patterns(branch_names)
    signals = BranchSignals(
        counts=counts,
        total_commits=total_commits,
        merge_commits=merge_commits,
        merged_prs=merged_prs,
    )
    workflow = first_match(WORKFLOW_RULES, signals)
    strategy = first_match(STRATEGY_RULES, signals)

    analysis = BranchingAnalysis(
        branch_counts=counts,
        workflow=workflow.label,
        workflow_explanation=workflow.explanation,
        strategy=strategy.label,
        strategy_explanation=strategy.explanation,
        detection_criteria=workflow.criteria(signals),
    )
    for category, _ in BRANCH_PATTERNS:
        if counts[category]:
            analysis.patterns.append({"type": PATTERN_LABELS[category], "count": counts[category]})

    if merged_prs:
        analysis.insights.append(f"{merged_prs} merged pull requests found")
    analysis.insights.append(f"{signals.merge_ratio}% of commits are merges")
    analysis.insights.append(f"{signals.total_branches} active branches")
    return analysis


# --- Commit messages ---

# Independent categories, each tested against the subject line.
COMMIT_CATEGORIES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("features", re.compile(r"\b(feat|feature|add|new|implement|introduce|create)\b", re.I)),
    ("bugfixes", re.compile(r"\b(fix|bug|issue|resolve|patch|error|correct)\b", re.I)),
    ("performance", re.compile(r"\b(perf|performance|optimize|speed|faster|slow|improve.*speed)\b", re.I)),
    ("security", re.compile(r"\b(security|vulnerability|cve|auth|safe|xss|csrf)\b", re.I)),
    ("tests", re.compile(r"\b(test|tests|testing|spec|jest|unit|coverage)\b", re.I)),
    ("docs", re.compile(r"\b(doc|docs|documentation|readme|comment|guide)\b", re.I)),
    ("refactors", re.compile(r"\b(refactor|restructure|reorganize|cleanup|clean up)\b", re.I)),
    ("breaking", re.compile(r"\b(breaking|break)\b", re.I)),
    ("deprecations", re.compile(r"\b(deprecated|deprecate|deprecation)\b", re.I)),
)

# Breaking-change notices usually live in the body, so the list scans it all
BREAKING_NOTICE = re.compile(r"\b(breaking|break|deprecated|deprecate)\b", re.I)

QUALITY_SIGNALS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("has_tests", re.compile(r"\b(test|tests|testing|spec)\b", re.I)),
    ("has_docs", re.compile(r"\b(doc|docs|documentation)\b", re.I)),
    ("has_reviews", re.compile(r"\b(review|reviewed|approved|lgtm)\b", re.I)),
)

CONVENTIONAL_SCOPE = re.compile(r"^[a-z]+\(([^)]+)\):", re.I)
AREA_PATTERNS = (
    re.compile(r"(?:fix|update|add|improve|remove|delete|create)\s+([a-z]{3,20}(?:\s+[a-z]{3,20})?)", re.I),
    re.compile(r"\b(?:in|for|to|of)\s+([a-z]{3,20}(?:\s+[a-z]{3,20})?)", re.I),
)
AREA_SKIP = {"the", "a", "an", "this", "that"}
CHANGE_PREFIX = re.compile(
    r"^(feat|feature|fix|bug|refactor|docs?|chore|test|style|perf|ci|build)(\([^)]+\))?:?\s*", re.I
)


def categorize_message(message: str) -> list[str]:
    """Return every category whose keywords appear in the subject line."""
    subject = message.split("\n", 1)[0]
    return [category for category, pattern in COMMIT_CATEGORIES if pattern.search(subject)]


@dataclass
class CommitCategories:
    """Category counts and extracted focus over a set of commits."""

    features: int = 0
    bugfixes: int = 0
    performance: int = 0
    security: int = 0
    tests: int = 0
    docs: int = 0
    refactors: int = 0
    breaking: int = 0
    deprecations: int = 0
    breaking_changes: list[dict[str, str]] = field(default_factory=list)
    quality_signals: dict[str, int] = field(
        default_factory=lambda: {name: 0 for name, _ in QUALITY_SIGNALS}
    )
    top_areas: list[dict[str, Any]] = field(default_factory=list)
    specific_changes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _commit_area(subject: str) -> str | None:
    match = CONVENTIONAL_SCOPE.match(subject)
    area = match.group(1).lower().strip() if match else None
    if not area:
        for pattern in AREA_PATTERNS:
            found = pattern.search(subject)
            if found and found.group(1).lower().strip() not in AREA_SKIP:
                area = found.group(1).lower().strip()
                break
    if not area:
        return None
    area = re.sub(r"[^a-z0-9\s]", " ", area).strip()
    return area if 2 < len(area) < 40 else None


def categorize_commits(commits: Iterable["Commit"]) -> CommitCategories:
    """Fold commit messages into category counts, focus areas and breaking changes."""
    result = CommitCategories()
    areas: Counter[str] = Counter()
    changes: Counter[str] = Counter()

    for commit in commits:
        message = commit.message or ""
        if not message:
            continue
        subject = message.split("\n", 1)[0]

        for category in categorize_message(message):
            setattr(result, category, getattr(result, category) + 1)
        if BREAKING_NOTICE.search(message):
            result.breaking_changes.append({
                "hash": commit.short_sha,
                "full_hash": commit.sha,
                "subject": commit.subject,
                "author": commit.author,
                "url": commit.url,
            })
        for name, pattern in QUALITY_SIGNALS:
            if pattern.search(message):
                result.quality_signals[name] += 1

        area = _commit_area(subject)
        if area:
            areas[area] += 1
        cleaned = CHANGE_PREFIX.sub("", subject).strip()
        if 10 < len(cleaned) < 100:
            changes[cleaned] += 1

    result.top_areas = [{"area": a, "count": c} for a, c in _ranked(areas)[:5]]
    result.specific_changes = [c for c, _ in _ranked(changes)[:6]]
    return result


def _ranked(counter: Counter[str]) -> list[tuple[str, int]]:
    """Sort by count descending; sorted() is stable so ties keep first-seen order."""
    return sorted(counter.items(), key=lambda item: -item[1])


# --- Pull request titles ---

PR_TYPES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("features", re.compile(r"\b(feat|feature|add|new|implement)\b", re.I)),
    ("bugfixes", re.compile(r"\b(fix|bug|issue|resolve|patch)\b", re.I)),
    ("dependencies", re.compile(r"\b(dep|deps|dependency|dependencies|bump|upgrade)\b", re.I)),
)

WORK_AREA_PREFIX = re.compile(r"^(feat|feature|fix|bug|refactor|docs?|chore|test|perf|ci)(\([^)]*\))?!?:\s*", re.I)
# Stripped from both ends of each token
WORK_AREA_PUNCTUATION = "()[]{}<>#,;!?\"'`"
WORK_AREA_VERBS = re.compile(
    r"\b(add|adds|added|adding|update|updates|updated|updating|"
    r"fix|fixes|fixed|fixing|improve|improves|improved|improving)\b",
    re.I,
)
WORK_AREA_MIN = 6
WORK_AREA_MAX = 59
WORK_AREA_TOKENS = 4
WORK_AREA_LIMIT = 6


def _work_area_tokens(text: str) -> list[str]:
    # Colons separate tokens so a finished area never matches the prefix again
    return text.replace(":", " ").split()


def extract_work_area(title: str) -> str | None:
    """Reduce a PR title to a short lower-case phrase, or None if nothing usable remains."""
    text = WORK_AREA_PREFIX.sub("", title.strip(), count=1)
    text = WORK_AREA_VERBS.sub("", text).strip()
    words = [w for w in (t.strip(WORK_AREA_PUNCTUATION) for t in _work_area_tokens(text)) if len(w) > 2]
    if not words:
        return None
    area = " ".join(words[:WORK_AREA_TOKENS]).lower()
    if WORK_AREA_MIN <= len(area) <= WORK_AREA_MAX:
        return area
    return None


def top_work_areas(titles: Iterable[str], limit: int = WORK_AREA_LIMIT) -> list[str]:
    """Most frequent work areas, ties in first-seen order."""
    counts: Counter[str] = Counter()
    for title in titles:
        area = extract_work_area(title or "")
        if area:
            counts[area] += 1
    return [area for area, _ in _ranked(counts)[:limit]]


@dataclass
class PRActivity:
    features: int = 0
    bugfixes: int = 0
    dependencies: int = 0
    recent_work: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def analyze_pr_titles(titles: Iterable[str]) -> PRActivity:
    """Count PR types (first match per title) and extract the main work areas."""
    titles = [t or "" for t in titles]
    activity = PRActivity()
    for title in titles:
        for name, pattern in PR_TYPES:
            if pattern.search(title):
                setattr(activity, name, getattr(activity, name) + 1)
                break
    activity.recent_work = top_work_areas(titles)
    return activity


# --- Keyword frequency ---

STOP_WORDS = frozenset({
    "the", "and", "for", "with", "from", "into", "onto", "this", "that", "these",
    "those", "when", "then", "than", "some", "more", "less", "also", "only", "just",
    "add", "added", "adds", "update", "updated", "updates", "fix", "fixed", "fixes",
    "remove", "removed", "change", "changed", "changes", "make", "made", "use", "used",
    "merge", "merged", "branch", "pull", "request", "should", "would", "will", "were",
})
KEYWORD_MIN_LENGTH = 4
KEYWORD_LIMIT = 10
_TOKEN = re.compile(r"[a-z0-9][a-z0-9_\-]*")


def keyword_frequency(subjects: Iterable[str], limit: int = KEYWORD_LIMIT) -> list[dict[str, Any]]:
    """Top non-stop-word tokens across commit subjects."""
    counts: Counter[str] = Counter()
    for subject in subjects:
        for token in _TOKEN.findall((subject or "").lower()):
            if len(token) >= KEYWORD_MIN_LENGTH and token not in STOP_WORDS:
                counts[token] += 1
    return [{"word": w, "count": c} for w, c in _ranked(counts)[:limit]]


# --- Changed files ---

FILE_FOCUS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("tests", re.compile(r"test|spec", re.I)),
    ("API", re.compile(r"api|endpoint|route", re.I)),
    ("UI", re.compile(r"component|view|page", re.I)),
    ("database", re.compile(r"model|schema|migration", re.I)),
    ("configuration", re.compile(r"config|setup|\.env", re.I)),
)

LANGUAGE_NAMES = {
    "js": "JavaScript", "jsx": "React", "ts": "TypeScript", "tsx": "React/TypeScript",
    "py": "Python", "java": "Java", "rb": "Ruby", "go": "Go", "rs": "Rust",
    "css": "CSS", "html": "HTML", "md": "documentation", "json": "config",
}

FRONTEND_FILE = re.compile(r"\.(jsx?|tsx?|vue|svelte)$", re.I)
BACKEND_FILE = re.compile(r"\.(py|java|go|rb|php|rs)$", re.I)
CONFIG_FILE = re.compile(r"config|\.env|docker|package\.json|requirements\.txt", re.I)
FIX_WORDS = re.compile(r"fix|bug|issue|patch", re.I)


def file_focus(filenames: Iterable[str]) -> list[str]:
    names = list(filenames)
    return [label for label, pattern in FILE_FOCUS if any(pattern.search(n) for n in names)]


def primary_language(filenames: Iterable[str]) -> str | None:
    """Most common extension among the files, as a language name."""
    exts = Counter(
        n.rsplit(".", 1)[-1].lower() for n in filenames if "." in n.rsplit("/", 1)[-1]
    )
    if not exts:
        return None
    ext = _ranked(exts)[0][0]
    return LANGUAGE_NAMES.get(ext, ext)


def main_directory(filenames: Iterable[str]) -> str | None:
    dirs = Counter(n.split("/", 1)[0] for n in filenames if "/" in n)
    if not dirs:
        return None
    return _ranked(dirs)[0][0]


def change_kind(
    message: str,
    statuses: list[tuple[str, str]],
    additions: int,
    deletions: int,
) -> str:
    """Guess what a commit is doing from its message and (filename, status) pairs."""
    names = [name for name, _ in statuses]
    added = [n for n, s in statuses if s == "added"]
    modified = [n for n, s in statuses if s == "modified"]
    api = [n for n in names if FILE_FOCUS[1][1].search(n)]

    if len(added) > 3 and additions > 200:
        return "New feature"
    if deletions > additions * 0.7 and len(modified) > 5:
        return "Refactoring"
    if FIX_WORDS.search(message) or (len(modified) <= 3 and additions < 100):
        return "Bug fix"
    if api or any(BACKEND_FILE.search(n) and "test" not in n.lower() for n in names):
        return "Backend/API"
    if any(FRONTEND_FILE.search(n) for n in names):
        return "Frontend/UI"
    if any(CONFIG_FILE.search(n) for n in names):
        return "Configuration"
    return "Maintenance"
