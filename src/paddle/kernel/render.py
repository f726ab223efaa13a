"""Plain-text renderings of bus events and stat lists for chat messages."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Sequence

from ..contracts.v1 import DeployReport, GitCommit, GitPush, IssueComment, IssueEvent, Stat

MAX_CONTENT = 2000
MAX_FIELDS = 25
MAX_FIELD_VALUE = 1024
MAX_EMBEDS = 10


def clip(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 1)] + "…"


def fmt_commit_date(timestamp: str) -> str:
    raw = (timestamp or "").strip()
    if not raw:
        return ""
    try:
        dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return raw
    return f"{dt:%a}, {dt:%b} {dt.day}, {dt:%y}"


def fmt_push(push: GitPush) -> str:
    return f"{push.host} {push.username} pushed to {push.full_name or push.repo}"


def fmt_commit(commit: GitCommit) -> str:
    first_line = commit.message.split("\n", 1)[0]
    return f"{first_line} ({commit.username} on {fmt_commit_date(commit.timestamp)}) {commit.id[:7]}"


def fmt_push_message(push: GitPush, commits: Sequence[GitCommit]) -> str:
    lines = [fmt_push(push) + (f" ({push.ref.rsplit('/', 1)[-1]})" if push.ref else "")]
    lines.extend(f"- {fmt_commit(c)}" for c in commits)
    return clip("\n".join(lines), MAX_CONTENT)


def fmt_issue(issue: IssueEvent) -> str:
    text = f"**{issue.repo}** issue #{issue.number} {issue.action} by {issue.username}: {issue.title}"
    if issue.url:
        text += f"\n{issue.url}"
    return clip(text, MAX_CONTENT)


def fmt_issue_comment(comment: IssueComment) -> str:
    head = f"**{comment.repo}** {comment.username} commented on #{comment.number} {comment.title}"
    tail = f"\n{comment.url}" if comment.url else ""
    body = clip(comment.body, max(0, MAX_CONTENT - len(head) - len(tail) - 2))
    return f"{head}\n{body}{tail}"


def fmt_deploy(report: DeployReport) -> str:
    mark = ":white_check_mark:" if report.ok else ":x:"
    return clip(f"{mark} {report.step}\n```\n{report.text.strip()}\n```", MAX_CONTENT)


def stat_fields(stats: Sequence[Stat]) -> List[Dict[str, Any]]:
    fields = []
    for stat in list(stats)[:MAX_FIELDS]:
        value = "" if stat.value is None else str(stat.value)
        fields.append(
            {
                "name": clip(stat.description or stat.id, 256),
                "value": clip(value, MAX_FIELD_VALUE) or "-",
                "inline": True,
            }
        )
    return fields
