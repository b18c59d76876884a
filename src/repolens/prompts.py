"""Prompt templates for the executive summary.

Each template takes pre-rendered analysis context and produces a focused
prompt for the completion model.
"""

from __future__ import annotations

SYSTEM_PROMPT = """You are a senior engineering manager reviewing a team's recent work.
Explain what changed in plain language for a non-technical stakeholder.
Be specific: name the features, fixes and areas of the codebase involved.
Use only the commits and diffs provided. Do not speculate beyond them.
Write in a neutral, factual style, not promotional."""


def executive_summary_prompt(
    repository: str,
    period: str,
    stats: str,
    commits_text: str,
) -> str:
    """Generate the user prompt for the executive summary."""
    return f"""Summarize the recent development activity for {repository} ({period}).

ACTIVITY:
{stats}

RECENT COMMITS AND DIFF EXCERPTS:
{commits_text}

Write 2-3 short paragraphs:
1. What the team focused on overall.
2. Notable features or fixes, and which parts of the system they touch.
3. Anything risky: breaking changes, large refactors, missing tests.

Keep it under 250 words. No headings, no bullet lists."""
