import json
from dataclasses import dataclass
from typing import Dict, Optional, Union

from pydantic import BaseModel

# Hash field names stored per `repo:environment` key. These match records
# written by earlier releases, so they are not renamed.
FIELD_THRESHOLD = "driftThreshold"
FIELD_TIER = "environmentTier"
FIELD_PROJECT_ID = "projectID"
FIELD_DRIFT = "driftIncrement"
FIELD_LOG = "log"
FIELD_PLAN_OUTPUT = "planOutput"
FIELD_ISSUE_ID = "issueID"
FIELD_ISSUE_URL = "issueURL"

OPERATION_PLAN = "plan"
OPERATION_APPLY = "apply"
OPERATION_DESTROY = "destroy"
REPORTED_OPERATIONS = (OPERATION_PLAN, OPERATION_APPLY, OPERATION_DESTROY)

# terraform plan -detailed-exitcode: 0 = no changes, 2 = changes present
EXIT_NO_CHANGES = 0
EXIT_CHANGES_PRESENT = 2


class Report(BaseModel):
    """One pipeline run as posted to /environments."""

    repoName: str = ""
    branchName: str = ""
    environment: str = ""
    environmentTier: str = ""
    driftThreshold: Optional[Union[int, str]] = None
    projectId: str = ""
    operation: str = ""
    exitCode: int = 0
    scheduled: bool = False
    timestamp: str = ""
    planOutput: str = ""

    def threshold_override(self) -> str:
        if self.driftThreshold is None:
            return ""
        return str(self.driftThreshold).strip()


class Outcome(BaseModel):
    environmentTier: str = ""
    projectID: str = ""
    driftIncrement: str = ""
    issueID: str = ""
    issueURL: str = ""
    log: str = ""

    def headers(self) -> Dict[str, str]:
        pairs = [
            ("X-Environment-Tier", self.environmentTier),
            ("X-Drift-Increment", self.driftIncrement),
            ("X-Project-ID", self.projectID),
            ("X-Issue-ID", self.issueID),
            ("X-Issue-URL", self.issueURL),
        ]
        return {name: value for name, value in pairs if value}


@dataclass
class EnvironmentRecord:
    environment_tier: str = ""
    project_id: str = ""
    drift_threshold: str = ""
    drift_increment: str = ""
    log: str = ""
    plan_output: str = ""
    issue_id: str = ""
    issue_url: str = ""

    @classmethod
    def from_hash(cls, data: Dict[str, str]) -> "EnvironmentRecord":
        return cls(
            environment_tier=data.get(FIELD_TIER, ""),
            project_id=data.get(FIELD_PROJECT_ID, ""),
            drift_threshold=data.get(FIELD_THRESHOLD, ""),
            drift_increment=data.get(FIELD_DRIFT, ""),
            log=data.get(FIELD_LOG, ""),
            plan_output=data.get(FIELD_PLAN_OUTPUT, ""),
            issue_id=data.get(FIELD_ISSUE_ID, ""),
            issue_url=data.get(FIELD_ISSUE_URL, ""),
        )


@dataclass
class Issue:
    id: int
    project_id: int
    title: str = ""
    web_url: str = ""
    state: str = ""

    @property
    def is_open(self) -> bool:
        return self.state == "opened"


def log_entry(timestamp: str, operation: str) -> str:
    return json.dumps({"timestamp": timestamp, "operation": operation})


def parse_positive_int(value: Optional[str]) -> Optional[int]:
    """Return value as a positive int, or None when empty or malformed."""
    if not value:
        return None
    try:
        parsed = int(str(value).strip())
    except ValueError:
        return None
    return parsed if parsed > 0 else None
