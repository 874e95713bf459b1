import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException

from . import __version__
from .deadline import Deadline
from .errors import DriftGuardianError, ValidationError
from .gitlab_client import GitLabConfig, GitLabIssueTracker
from .logging_utils import configure_logging, logger
from .middleware import bearer_auth, install_middleware
from .models import Outcome, Report
from .orchestrator import DriftOrchestrator
from .settings import Settings, load_settings_from_env
from .state_store import RedisStateStore, StateStore
from .threshold import ThresholdPolicy

APP_NAME = "drift-guardian"
READINESS_TIMEOUT_SECONDS = 5.0


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    service: str = APP_NAME
    version: str = __version__


class ReadinessResponse(BaseModel):
    status: str
    timestamp: str
    service: str = APP_NAME
    dependencies: Dict[str, Any] = Field(default_factory=dict)


def _now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def render_outcome(report: Report, outcome: Outcome) -> str:
    # Consumers parse this exact text; the "\n" is a literal backslash-n.
    return (
        f"Environment values retrieved for repository: {report.repoName}, environment: {report.environment}\\n"
        f'Values: {{"environmentTier": "{outcome.environmentTier}", "projectID": "{outcome.projectID}", '
        f'"driftIncrement": "{outcome.driftIncrement}", "issueID": "{outcome.issueID}", '
        f'"issueURL": "{outcome.issueURL}", "log": {outcome.log}}}'
    )


def build_orchestrator(settings: Settings, store: StateStore) -> DriftOrchestrator:
    tracker = GitLabIssueTracker(GitLabConfig.from_settings(settings))
    policy = ThresholdPolicy(store, settings.drift_threshold)
    return DriftOrchestrator(
        store,
        tracker,
        policy,
        comparison_branch=settings.comparison_branch,
    )


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[StateStore] = None,
    orchestrator: Optional[DriftOrchestrator] = None,
) -> FastAPI:
    settings = settings or load_settings_from_env()
    settings.validate()
    configure_logging(settings.log_level)
    logger.info("drift_guardian_starting", version=__version__, **settings.public_view())

    store = store or RedisStateStore.from_url(settings.redis_url)
    orchestrator = orchestrator or build_orchestrator(settings, store)

    app = FastAPI(title=APP_NAME, version=__version__)
    install_middleware(app)
    app.state.settings = settings
    app.state.store = store
    app.state.orchestrator = orchestrator

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError) -> PlainTextResponse:
        logger.warn("invalid_request_body", path=request.url.path, errors=len(exc.errors()))
        return PlainTextResponse("Error parsing JSON payload", status_code=400)

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException) -> PlainTextResponse:
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="healthy", timestamp=_now())

    @app.get("/ready", response_model=ReadinessResponse)
    def ready() -> JSONResponse:
        start = time.monotonic()
        redis_status: Dict[str, Any]
        try:
            store.ping(Deadline(READINESS_TIMEOUT_SECONDS))
            redis_status = {"healthy": True, "status": "connected"}
        except DriftGuardianError as e:
            redis_status = {"healthy": False, "error": str(e)}
        redis_status["response_time_ms"] = int((time.monotonic() - start) * 1000)

        ok = redis_status["healthy"]
        body = ReadinessResponse(
            status="ready" if ok else "not ready",
            timestamp=_now(),
            dependencies={"redis": redis_status},
        )
        return JSONResponse(body.model_dump(), status_code=200 if ok else 503)

    @app.post("/environments", dependencies=[Depends(bearer_auth(settings))])
    def environments(report: Report) -> PlainTextResponse:
        deadline = Deadline(settings.request_timeout_seconds)
        try:
            outcome = orchestrator.process_report(report, deadline)
        except ValidationError as e:
            return PlainTextResponse(str(e), status_code=400)
        except DriftGuardianError as e:
            return PlainTextResponse(str(e), status_code=500)
        return PlainTextResponse(render_outcome(report, outcome), headers=outcome.headers())

    return app


def main() -> None:
    import uvicorn

    settings = load_settings_from_env()
    level = settings.log_level.lower()
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level="warning" if level == "warn" else level,
    )


if __name__ == "__main__":
    main()
