"""Narrative generation - templated activity summary plus optional LLM prose.

The activity summary is pure templating over derived counts. The executive
summary is delegated to a completion model and is dropped on any failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from .config import DIFF_EXCERPT_CHARS
from .model import CompletionClient, ModelError
from .prompts import SYSTEM_PROMPT, executive_summary_prompt

if TYPE_CHECKING:
    from .analyzer import AnalysisResult, TimeRange

logger = logging.getLogger(__name__)

SUMMARY_COMMIT_LIMIT = 10
MAX_AREAS = 3


@dataclass
class ActivityStats:
    """Counts the summary templates are chosen from."""

    commits: int
    contributors: int
    noun: str = "week"
    phrase: str = "this week"
    merged_prs: int = 0
    features: int = 0
    bugfixes: int = 0
    top_areas: list[str] = field(default_factory=list)

    @classmethod
    def from_result(cls, result: "AnalysisResult", period: "TimeRange") -> "ActivityStats":
        areas = list(result.pr_activity.recent_work)
        if not areas:
            areas = [a["area"] for a in result.categories.top_areas]
        return cls(
            commits=result.total_commits,
            contributors=len(result.contributors),
            noun=period.noun,
            phrase=period.phrase,
            merged_prs=result.merged_prs_in_range,
            features=result.categories.features,
            bugfixes=result.categories.bugfixes,
            top_areas=areas,
        )


def _plural(count: int, word: str, plural: str | None = None) -> str:
    return f"{count} {word if count == 1 else (plural or word + 's')}"


# Ordered (predicate, template); first match wins
SUMMARY_TEMPLATES: tuple[tuple[Callable[[ActivityStats], bool], Callable[[ActivityStats], str]], ...] = (
    (
        lambda s: s.commits == 0,
        lambda s: f"No activity {s.phrase}.",
    ),
    (
        lambda s: s.commits > 100 and s.contributors > 15,
        lambda s: f"Busy {s.noun}: {s.contributors} developers made {s.commits} changes.",
    ),
    (
        lambda s: s.commits > 50,
        lambda s: f"Active {s.noun}: {_plural(s.contributors, 'developer')} made {s.commits} commits.",
    ),
    (
        lambda s: s.commits <= 20,
        lambda s: (
            f"Light activity {s.phrase}: {_plural(s.commits, 'commit')} "
            f"from {_plural(s.contributors, 'developer')}."
        ),
    ),
    (
        lambda s: True,
        lambda s: f"{s.commits} commits from {_plural(s.contributors, 'developer')} {s.phrase}.",
    ),
)


def summarize(stats: ActivityStats) -> str:
    """Render the one-paragraph activity summary."""
    parts = [next(render(stats) for applies, render in SUMMARY_TEMPLATES if applies(stats))]

    if stats.merged_prs:
        parts.append(f"{_plural(stats.merged_prs, 'PR')} merged.")

    shipped = []
    if stats.features:
        shipped.append(_plural(stats.features, "feature"))
    if stats.bugfixes:
        shipped.append(_plural(stats.bugfixes, "bug fix", "bug fixes"))
    if shipped:
        parts.append(f"Work included {' and '.join(shipped)}.")

    if stats.top_areas:
        parts.append(f"Main work areas: {', '.join(stats.top_areas[:MAX_AREAS])}.")

    return " ".join(parts)


def build_summary_prompt(result: "AnalysisResult") -> str:
    """Bounded commit and diff context for the executive summary."""
    blocks = []
    changes = {c.sha: c for c in result.recent_changes}
    for commit in result.commits[:SUMMARY_COMMIT_LIMIT]:
        block = [f"- {commit.short_sha} {commit.author}: {commit.message.splitlines()[0] if commit.message else commit.subject}"]
        change = changes.get(commit.sha)
        if change is not None:
            diff = "\n".join(f"--- {f.filename}\n{f.patch}" for f in change.files if f.patch)
            block.append(f"  {change.files_changed} files, +{change.additions}/-{change.deletions}")
            if diff:
                block.append(diff[:DIFF_EXCERPT_CHARS])
        blocks.append("\n".join(block))

    stats = [
        result.activity_summary,
        f"Branching: {result.branching.strategy} / {result.branching.workflow}",
    ]
    if result.categories.breaking:
        stats.append(f"Breaking changes flagged in {result.categories.breaking} commits")

    return executive_summary_prompt(
        repository=result.full_name,
        period=result.time_range_label,
        stats="\n".join(s for s in stats if s),
        commits_text="\n\n".join(blocks) or "(no commits)",
    )


def executive_summary(result: "AnalysisResult", client: CompletionClient | None) -> str | None:
    """Ask the model for prose. None when unconfigured, empty or failing."""
    if client is None or not client.is_configured or not result.commits:
        return None
    try:
        text = client.complete(SYSTEM_PROMPT, build_summary_prompt(result))
    except ModelError as e:
        logger.warning("Executive summary unavailable: %s", e)
        return None
    return text or None
