"""Text of tracked drift issues (title, markdown description, resolution note)."""

from datetime import datetime, timezone
from typing import Optional

SERVICE_NAME = "Drift Guardian"


def _stamp(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(tz=timezone.utc)
    return now.strftime("%a, %d %b %Y %H:%M:%S UTC")


def issue_title(environment: str) -> str:
    return f"Drift: {environment}"


def issue_description(
    environment: str,
    drift_count: int,
    threshold: int,
    plan_output: str = "",
    updated: bool = False,
    now: Optional[datetime] = None,
) -> str:
    parts = [
        f"# Drift report for `{environment}` environment\n\n",
        f"Environment **{environment}** has a drift increment of **{drift_count}**, "
        f"which meets or exceeds the configured threshold of **{threshold}**.\n\n",
        "Please investigate and address this drift as soon as possible.\n\n",
    ]
    if plan_output:
        parts.append(f"## Terraform Plan Output\n\n```\n{plan_output}\n```\n\n")
    verb = "updated" if updated else "created"
    parts.append(f"*This issue was automatically {verb} by {SERVICE_NAME} on {_stamp(now)}*")
    return "".join(parts)


def resolution_comment(operation: str) -> str:
    return (
        f"**Drift Resolved** - Infrastructure drift has been resolved through successful "
        f"Terraform `{operation}` operation. Issue automatically closed by {SERVICE_NAME}."
    )
