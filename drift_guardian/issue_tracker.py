from abc import ABC, abstractmethod
from typing import Optional

from .deadline import Deadline
from .models import Issue


class IssueTracker(ABC):
    """The four tracker capabilities drift escalation relies on.

    Implementations raise TrackerUnavailable on transport failures and
    TrackerRejected (carrying the upstream status) on non-2xx answers.
    """

    @abstractmethod
    def create_issue(self, project_id: int, title: str, description: str, deadline: Optional[Deadline] = None) -> Issue:
        ...

    @abstractmethod
    def update_issue_description(
        self, project_id: int, issue_id: int, description: str, deadline: Optional[Deadline] = None
    ) -> None:
        ...

    @abstractmethod
    def close_issue(self, project_id: int, issue_id: int, operation: str, deadline: Optional[Deadline] = None) -> None:
        """Comment (best effort) with the resolving operation, then close."""

    @abstractmethod
    def issue_is_open(self, project_id: int, issue_id: int, deadline: Optional[Deadline] = None) -> bool:
        """False for closed or unknown (404) issues."""
