"""
Drift orchestration.

Takes one pipeline-run report at a time and:
- initializes the environment record on first sight of a `repo:environment` key
- records the last operation
- counts consecutive drifting scheduled plans on the comparison branch
- escalates to a tracked issue once the threshold is reached
- resets the counter and closes the tracked issue when drift is resolved

There is no rollback: store writes already applied stay applied when a later
step fails, and the caller is expected to resend the same report.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .deadline import Deadline
from .errors import DriftGuardianError, InvalidProjectId, MissingField
from .issue_content import issue_description, issue_title
from .issue_tracker import IssueTracker
from .logging_utils import logger
from .models import (
    EXIT_CHANGES_PRESENT,
    EXIT_NO_CHANGES,
    FIELD_ISSUE_ID,
    FIELD_ISSUE_URL,
    FIELD_PLAN_OUTPUT,
    FIELD_PROJECT_ID,
    OPERATION_APPLY,
    OPERATION_PLAN,
    EnvironmentRecord,
    Outcome,
    Report,
    parse_positive_int,
)
from .state_store import StateStore
from .threshold import ThresholdPolicy

KEY_DELIMITER = ":"

# Checked in this order; the first empty one is reported.
REQUIRED_FIELDS = ("repoName", "branchName", "environment", "environmentTier", "projectId", "operation")


@dataclass
class EnvironmentRef:
    repo_name: str
    environment: str
    key: str


def generate_key(repo_name: str, environment: str) -> str:
    return repo_name + KEY_DELIMITER + environment


def validate_report(report: Report) -> None:
    for name in REQUIRED_FIELDS:
        if not getattr(report, name):
            raise MissingField(name)


def _now_rfc3339() -> str:
    return datetime.now(tz=timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _project_handle(raw: str) -> int:
    try:
        return int(raw.strip())
    except (AttributeError, ValueError) as e:
        raise InvalidProjectId(raw) from e


class DriftOrchestrator:
    def __init__(
        self,
        store: StateStore,
        tracker: IssueTracker,
        threshold: ThresholdPolicy,
        comparison_branch: str = "main",
    ):
        self.store = store
        self.tracker = tracker
        self.threshold = threshold
        self.comparison_branch = comparison_branch

    generate_key = staticmethod(generate_key)
    validate = staticmethod(validate_report)

    def is_drift_event(self, report: Report) -> bool:
        return (
            report.scheduled
            and report.operation == OPERATION_PLAN
            and report.exitCode == EXIT_CHANGES_PRESENT
            and report.branchName == self.comparison_branch
        )

    def is_resolving_event(self, report: Report) -> bool:
        if report.operation == OPERATION_APPLY:
            return True
        return (
            report.operation == OPERATION_PLAN
            and report.exitCode == EXIT_NO_CHANGES
            and report.branchName == self.comparison_branch
        )

    def process_report(self, report: Report, deadline: Optional[Deadline] = None) -> Outcome:
        validate_report(report)

        logger.info(
            "drift_processing_started",
            repo=report.repoName,
            environment=report.environment,
            operation=report.operation,
            exit_code=report.exitCode,
            scheduled=report.scheduled,
        )
        env = EnvironmentRef(report.repoName, report.environment, generate_key(report.repoName, report.environment))
        if KEY_DELIMITER in report.repoName or KEY_DELIMITER in report.environment:
            logger.warn("ambiguous_environment_key", key=env.key)

        try:
            outcome = self._process(report, env, deadline)
        except DriftGuardianError as e:
            logger.error(
                "drift_processing_failed",
                repo=env.repo_name,
                environment=env.environment,
                error_type=e.__class__.__name__,
                error=str(e),
            )
            raise

        logger.info(
            "drift_processing_completed",
            repo=env.repo_name,
            environment=env.environment,
            operation=report.operation,
            final_drift_count=outcome.driftIncrement,
            issue_id=outcome.issueID,
        )
        return outcome

    def _process(self, report: Report, env: EnvironmentRef, deadline: Optional[Deadline]) -> Outcome:
        threshold = report.threshold_override() or str(self.threshold.default_threshold)
        self.store.initialize_if_absent(env.key, report.environmentTier, report.projectId, threshold, deadline)

        self.store.record_operation(env.key, report.timestamp or _now_rfc3339(), report.operation, deadline)

        if self.is_drift_event(report):
            count = self.store.increment_drift(env.key, deadline)
            logger.info("drift_counter_incremented", key=env.key, new_drift_count=count)
            if report.planOutput:
                self.store.store_plan_output(env.key, report.planOutput, deadline)
            self.handle_threshold_breach(env, count, deadline)
        elif self.is_resolving_event(report):
            logger.info(
                "drift_resolution_detected",
                key=env.key,
                operation=report.operation,
                exit_code=report.exitCode,
                branch=report.branchName,
            )
            self.reset_drift(env, report.operation, deadline)

        record = EnvironmentRecord.from_hash(self.store.read_all(env.key, deadline))
        return Outcome(
            environmentTier=record.environment_tier,
            projectID=record.project_id,
            driftIncrement=record.drift_increment,
            issueID=record.issue_id,
            issueURL=record.issue_url,
            log=record.log,
        )

    def handle_threshold_breach(self, env: EnvironmentRef, drift_count: int, deadline: Optional[Deadline] = None) -> None:
        if not self.threshold.is_breached(env.key, drift_count, deadline):
            logger.info("threshold_not_breached", key=env.key, drift_count=drift_count)
            return

        logger.warn("threshold_breached", key=env.key, drift_count=drift_count)
        project_id = _project_handle(self.store.get_field(env.key, FIELD_PROJECT_ID, deadline))
        threshold = self.threshold.threshold(env.key, deadline)
        plan_output = self.store.get_field(env.key, FIELD_PLAN_OUTPUT, deadline)

        stored_issue = self.store.get_field(env.key, FIELD_ISSUE_ID, deadline)
        issue_id = parse_positive_int(stored_issue)
        if stored_issue and issue_id is None:
            logger.warn("stored_issue_id_invalid", key=env.key, issue_id=stored_issue)

        if issue_id is not None:
            if self.tracker.issue_is_open(project_id, issue_id, deadline):
                body = issue_description(env.environment, drift_count, threshold, plan_output, updated=True)
                self.tracker.update_issue_description(project_id, issue_id, body, deadline)
                logger.info("drift_issue_updated", key=env.key, issue_id=issue_id, drift_count=drift_count)
                return
            logger.info("tracked_issue_closed", key=env.key, issue_id=issue_id)

        body = issue_description(env.environment, drift_count, threshold, plan_output)
        issue = self.tracker.create_issue(project_id, issue_title(env.environment), body, deadline)
        logger.info("drift_issue_created", key=env.key, issue_id=issue.id, issue_url=issue.web_url)

        try:
            self.store.set_field(env.key, FIELD_ISSUE_ID, str(issue.id), deadline)
            self.store.set_field(env.key, FIELD_ISSUE_URL, issue.web_url, deadline)
        except DriftGuardianError:
            # The tracker now holds an issue the store does not know about.
            logger.error(
                "drift_issue_orphaned",
                key=env.key,
                project_id=project_id,
                issue_id=issue.id,
                issue_url=issue.web_url,
            )
            raise

    def reset_drift(self, env: EnvironmentRef, operation: str, deadline: Optional[Deadline] = None) -> None:
        self.store.reset_drift(env.key, deadline)
        logger.info("drift_counter_reset", key=env.key)

        stored_issue = self.store.get_field(env.key, FIELD_ISSUE_ID, deadline)
        issue_id = parse_positive_int(stored_issue)
        if issue_id is None:
            if stored_issue:
                logger.warn("stored_issue_id_invalid", key=env.key, issue_id=stored_issue)
            return

        project_id = _project_handle(self.store.get_field(env.key, FIELD_PROJECT_ID, deadline))
        if not self.tracker.issue_is_open(project_id, issue_id, deadline):
            # Left in place so a manually closed issue stays visible on the record.
            logger.info("tracked_issue_already_closed", key=env.key, issue_id=issue_id)
            return

        self.tracker.close_issue(project_id, issue_id, operation, deadline)
        self.store.set_field(env.key, FIELD_ISSUE_ID, "", deadline)
        self.store.set_field(env.key, FIELD_ISSUE_URL, "", deadline)
        logger.info("drift_issue_closed", key=env.key, issue_id=issue_id, operation=operation)
