import pytest
from fastapi.testclient import TestClient

from drift_guardian.app import create_app, render_outcome
from drift_guardian.models import Outcome, Report
from drift_guardian.settings import Settings

PAYLOAD = {
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


@pytest.fixture
def settings():
    return Settings(redis_url="redis://localhost:6379/0", comparison_branch="main", drift_threshold=1)


@pytest.fixture
def client(settings, store, orchestrator):
    return TestClient(create_app(settings, store=store, orchestrator=orchestrator))


def test_environments_success(client):
    r = client.post("/environments", json=PAYLOAD)

    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")
    assert r.headers["X-Environment-Tier"] == "prod"
    assert r.headers["X-Drift-Increment"] == "1"
    assert r.headers["X-Project-ID"] == "42"
    assert r.headers["X-Issue-ID"] == "1"
    assert r.headers["X-Issue-URL"].endswith("/issues/1")
    assert r.text.startswith("Environment values retrieved for repository: svc, environment: prod\\nValues: {")
    assert '"log": {"timestamp": "2024-05-01T10:00:00Z", "operation": "plan"}}' in r.text


def test_empty_issue_headers_are_omitted(client):
    r = client.post("/environments", json={**PAYLOAD, "driftThreshold": "5"})
    assert r.status_code == 200
    assert "X-Issue-ID" not in r.headers
    assert "X-Issue-URL" not in r.headers


def test_security_headers_on_every_response(client):
    for r in (client.get("/health"), client.post("/environments", json=PAYLOAD)):
        assert r.headers["X-Content-Type-Options"] == "nosniff"
        assert r.headers["X-Frame-Options"] == "DENY"


def test_missing_field_is_client_error(client):
    r = client.post("/environments", json={**PAYLOAD, "repoName": ""})
    assert r.status_code == 400
    assert r.text == "missing repoName in payload"


def test_malformed_json_is_client_error(client):
    r = client.post("/environments", content="{not json", headers={"Content-Type": "application/json"})
    assert r.status_code == 400
    assert r.text == "Error parsing JSON payload"


def test_store_failure_is_server_error(client, store):
    store.fail_on.add("initialize_if_absent")
    r = client.post("/environments", json=PAYLOAD)
    assert r.status_code == 500
    assert "initialize_if_absent failed" in r.text


def test_invalid_project_is_server_error(client):
    r = client.post("/environments", json={**PAYLOAD, "projectId": "group/svc"})
    assert r.status_code == 500
    assert "invalid project ID" in r.text


def test_get_environments_not_allowed(client):
    assert client.get("/environments").status_code == 405


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "healthy"
    assert body["service"] == "drift-guardian"
    assert body["version"]


def test_ready(client):
    r = client.get("/ready")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ready"
    assert body["dependencies"]["redis"]["healthy"] is True


def test_not_ready_when_store_down(client, store):
    store.fail_on.add("ping")
    r = client.get("/ready")
    assert r.status_code == 503
    body = r.json()
    assert body["status"] == "not ready"
    assert body["dependencies"]["redis"]["healthy"] is False
    assert "ping failed" in body["dependencies"]["redis"]["error"]


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


@pytest.fixture
def secured(store, orchestrator):
    settings = Settings(redis_url="redis://localhost:6379/0", enable_authentication=True, bearer_token="s3cret-token")
    return TestClient(create_app(settings, store=store, orchestrator=orchestrator))


def test_auth_requires_token(secured):
    r = secured.post("/environments", json=PAYLOAD)
    assert r.status_code == 401
    assert r.text == "Unauthorized: Bearer token required"


def test_auth_rejects_wrong_token(secured):
    r = secured.post("/environments", json=PAYLOAD, headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401
    assert r.text == "Unauthorized: Invalid token"


def test_auth_rejects_non_bearer_scheme(secured):
    r = secured.post("/environments", json=PAYLOAD, headers={"Authorization": "Basic s3cret-token"})
    assert r.status_code == 401


def test_auth_accepts_configured_token(secured):
    r = secured.post("/environments", json=PAYLOAD, headers={"Authorization": "Bearer s3cret-token"})
    assert r.status_code == 200


def test_health_is_not_authenticated(secured):
    assert secured.get("/health").status_code == 200


def test_render_outcome_keeps_legacy_format():
    report = Report(repoName="svc", environment="prod")
    outcome = Outcome(
        environmentTier="prod",
        projectID="42",
        driftIncrement="3",
        issueID="7",
        issueURL="https://gitlab.example.com/i/7",
        log='{"timestamp": "t", "operation": "plan"}',
    )
    assert render_outcome(report, outcome) == (
        "Environment values retrieved for repository: svc, environment: prod\\n"
        'Values: {"environmentTier": "prod", "projectID": "42", "driftIncrement": "3", '
        '"issueID": "7", "issueURL": "https://gitlab.example.com/i/7", '
        '"log": {"timestamp": "t", "operation": "plan"}}'
    )
