from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
import urllib3

from .deadline import Deadline, bounded_timeout
from .errors import TrackerRejected, TrackerUnavailable
from .issue_content import resolution_comment
from .issue_tracker import IssueTracker
from .logging_utils import logger
from .models import Issue
from .settings import DEFAULT_GITLAB_API_URL, Settings

ISSUE_LABELS = ["drift-alert", "automation"]


@dataclass
class GitLabConfig:
    base_url: str = DEFAULT_GITLAB_API_URL
    token: str = ""
    skip_tls: bool = False
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "GitLabConfig":
        return cls(
            base_url=settings.gitlab_base_url,
            token=settings.gitlab_token,
            skip_tls=settings.gitlab_skip_tls,
        )


def safe_json(resp: requests.Response) -> Dict[str, Any]:
    try:
        return resp.json() if resp.content else {}
    except ValueError:
        return {"_raw": resp.text}


def _issue_from(body: Dict[str, Any]) -> Issue:
    return Issue(
        id=int(body.get("iid") or 0),
        project_id=int(body.get("project_id") or 0),
        title=body.get("title") or "",
        web_url=body.get("web_url") or "",
        state=body.get("state") or "",
    )


class GitLabIssueTracker(IssueTracker):
    """GitLab REST v4 issue tracker."""

    def __init__(self, cfg: GitLabConfig, session: Optional[requests.Session] = None):
        self.cfg = cfg
        self.base_url = (cfg.base_url or DEFAULT_GITLAB_API_URL).rstrip("/")
        self.session = session or requests.Session()
        if cfg.skip_tls:
            logger.warn("gitlab_tls_verification_disabled")
            self.session.verify = False
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
        logger.info("gitlab_client_initialized", base_url=self.base_url, token_configured=bool(cfg.token))

    def _headers(self) -> Dict[str, str]:
        return {"PRIVATE-TOKEN": self.cfg.token, "Content-Type": "application/json"}

    def _issue_url(self, project_id: int, issue_id: Optional[int] = None) -> str:
        url = f"{self.base_url}/projects/{project_id}/issues"
        if issue_id is not None:
            url += f"/{issue_id}"
        return url

    def _request(
        self,
        method: str,
        url: str,
        deadline: Optional[Deadline],
        json_body: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        if not self.cfg.token:
            logger.error("gitlab_token_not_configured")
            raise TrackerUnavailable("GITLAB_API_TOKEN not configured")

        timeout = bounded_timeout(deadline, self.cfg.timeout, f"{method} {url}")
        logger.debug("gitlab_request", method=method, url=url)
        try:
            r = self.session.request(method, url, headers=self._headers(), json=json_body, timeout=timeout)
        except requests.RequestException as e:
            logger.error("gitlab_request_failed", method=method, url=url, error=e.__class__.__name__)
            raise TrackerUnavailable(f"{method} {url} failed: {e.__class__.__name__}") from e
        logger.debug("gitlab_response", method=method, url=url, status_code=r.status_code)
        return r

    def _raise_for_status(self, r: requests.Response, action: str, **fields: Any) -> None:
        if 200 <= r.status_code < 300:
            return
        logger.error("gitlab_api_error", action=action, status_code=r.status_code, **fields)
        raise TrackerRejected(
            f"{action}: received non-success status code: {r.status_code}",
            status_code=r.status_code,
        )

    def create_issue(self, project_id, title, description, deadline=None):
        logger.debug("gitlab_create_issue", project_id=project_id, title=title, description_length=len(description))
        body = {"title": title, "description": description, "labels": ISSUE_LABELS}
        r = self._request("POST", self._issue_url(project_id), deadline, body)
        self._raise_for_status(r, "create issue", project_id=project_id)
        issue = _issue_from(safe_json(r))
        if not issue.id:
            raise TrackerRejected("create issue: response carried no issue iid", status_code=r.status_code)
        return issue

    def update_issue_description(self, project_id, issue_id, description, deadline=None):
        logger.info("gitlab_update_issue", project_id=project_id, issue_id=issue_id)
        r = self._request("PUT", self._issue_url(project_id, issue_id), deadline, {"description": description})
        self._raise_for_status(r, "update issue", project_id=project_id, issue_id=issue_id)

    def close_issue(self, project_id, issue_id, operation, deadline=None):
        logger.info("gitlab_close_issue", project_id=project_id, issue_id=issue_id)
        notes_url = self._issue_url(project_id, issue_id) + "/notes"
        try:
            note = self._request("POST", notes_url, deadline, {"body": resolution_comment(operation)})
            if 200 <= note.status_code < 300:
                logger.debug("gitlab_comment_added", issue_id=issue_id)
            else:
                logger.warn("gitlab_comment_rejected", issue_id=issue_id, status_code=note.status_code)
        except TrackerUnavailable as e:
            # The comment is cosmetic; closing is what matters.
            logger.warn("gitlab_comment_failed", issue_id=issue_id, error=str(e))

        r = self._request("PUT", self._issue_url(project_id, issue_id), deadline, {"state_event": "close"})
        self._raise_for_status(r, "close issue", project_id=project_id, issue_id=issue_id)
        logger.info("gitlab_issue_closed", project_id=project_id, issue_id=issue_id)

    def issue_is_open(self, project_id, issue_id, deadline=None):
        r = self._request("GET", self._issue_url(project_id, issue_id), deadline)
        if r.status_code == 404:
            logger.debug("gitlab_issue_not_found", project_id=project_id, issue_id=issue_id)
            return False
        self._raise_for_status(r, "issue status", project_id=project_id, issue_id=issue_id)
        state = safe_json(r).get("state") or ""
        logger.debug("gitlab_issue_status", project_id=project_id, issue_id=issue_id, state=state)
        return state == "opened"
