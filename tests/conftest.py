from typing import Dict, List, Set

import pytest

from drift_guardian.errors import NotFound, StoreUnavailable, TrackerUnavailable
from drift_guardian.issue_tracker import IssueTracker
from drift_guardian.models import FIELD_DRIFT, FIELD_LOG, FIELD_PROJECT_ID, FIELD_THRESHOLD, FIELD_TIER, Issue, Report, log_entry
from drift_guardian.orchestrator import DriftOrchestrator
from drift_guardian.state_store import StateStore
from drift_guardian.threshold import ThresholdPolicy


class InMemoryStateStore(StateStore):
    """Dict-backed store; `fail_on` names operations that raise StoreUnavailable."""

    def __init__(self):
        self.data: Dict[str, Dict[str, str]] = {}
        self.fail_on: Set[str] = set()
        self.calls: List[str] = []

    def _enter(self, name, deadline):
        self.calls.append(name)
        if deadline is not None:
            deadline.check(name)
        if name in self.fail_on:
            raise StoreUnavailable(f"{name} failed")

    def initialize_if_absent(self, key, tier, project_id, threshold, deadline=None):
        self._enter("initialize_if_absent", deadline)
        if key in self.data:
            return False
        self.data[key] = {
            FIELD_THRESHOLD: threshold,
            FIELD_TIER: tier,
            FIELD_PROJECT_ID: project_id,
            FIELD_DRIFT: "0",
        }
        return True

    def record_operation(self, key, timestamp, operation, deadline=None):
        self._enter("record_operation", deadline)
        self.data.setdefault(key, {})[FIELD_LOG] = log_entry(timestamp, operation)

    def increment_drift(self, key, deadline=None):
        self._enter("increment_drift", deadline)
        record = self.data.setdefault(key, {})
        value = int(record.get(FIELD_DRIFT) or 0) + 1
        record[FIELD_DRIFT] = str(value)
        return value

    def reset_drift(self, key, deadline=None):
        self._enter("reset_drift", deadline)
        self.data.setdefault(key, {})[FIELD_DRIFT] = "0"

    def read_all(self, key, deadline=None):
        self._enter("read_all", deadline)
        if not self.data.get(key):
            raise NotFound(key)
        return dict(self.data[key])

    def set_field(self, key, name, value, deadline=None):
        self._enter("set_field", deadline)
        self.data.setdefault(key, {})[name] = value

    def get_field(self, key, name, deadline=None):
        self._enter("get_field", deadline)
        return self.data.get(key, {}).get(name, "")

    def ping(self, deadline=None):
        self._enter("ping", deadline)


class FakeIssueTracker(IssueTracker):
    def __init__(self):
        self.issues: Dict[int, Issue] = {}
        self.descriptions: Dict[int, str] = {}
        self.calls: List[tuple] = []
        self.fail_on: Set[str] = set()
        self._next_id = 1

    def _enter(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.fail_on:
            raise TrackerUnavailable(f"{name} failed")

    def create_issue(self, project_id, title, description, deadline=None):
        self._enter("create_issue", project_id, title)
        issue = Issue(
            id=self._next_id,
            project_id=project_id,
            title=title,
            web_url=f"https://gitlab.example.com/group/svc/-/issues/{self._next_id}",
            state="opened",
        )
        self._next_id += 1
        self.issues[issue.id] = issue
        self.descriptions[issue.id] = description
        return issue

    def update_issue_description(self, project_id, issue_id, description, deadline=None):
        self._enter("update_issue_description", project_id, issue_id)
        self.descriptions[issue_id] = description

    def close_issue(self, project_id, issue_id, operation, deadline=None):
        self._enter("close_issue", project_id, issue_id, operation)
        self.issues[issue_id].state = "closed"

    def issue_is_open(self, project_id, issue_id, deadline=None):
        self._enter("issue_is_open", project_id, issue_id)
        issue = self.issues.get(issue_id)
        return issue is not None and issue.is_open

    def names(self) -> List[str]:
        return [c[0] for c in self.calls]


@pytest.fixture
def store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def tracker() -> FakeIssueTracker:
    return FakeIssueTracker()


def build_orchestrator(store, tracker, default_threshold: int = 1, comparison_branch: str = "main") -> DriftOrchestrator:
    return DriftOrchestrator(
        store,
        tracker,
        ThresholdPolicy(store, default_threshold),
        comparison_branch=comparison_branch,
    )


@pytest.fixture
def orchestrator(store, tracker) -> DriftOrchestrator:
    return build_orchestrator(store, tracker)


@pytest.fixture
def orchestrator_factory(store, tracker):
    def _make(**kwargs) -> DriftOrchestrator:
        return build_orchestrator(store, tracker, **kwargs)

    return _make


@pytest.fixture
def make_report():
    def _make(**overrides) -> Report:
        fields = {
            "repoName": "svc",
            "branchName": "main",
            "environment": "prod",
            "environmentTier": "prod",
            "projectId": "42",
            "operation": "plan",
            "exitCode": 2,
            "scheduled": True,
            "timestamp": "2024-05-01T10:00:00Z",
        }
        fields.update(overrides)
        return Report(**fields)

    return _make

