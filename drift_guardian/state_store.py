"""
Per-environment drift state.

One Redis hash per `repo:environment` key. Field writes are last-write-wins;
the drift counter relies on HINCRBY being atomic on the server.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

import redis

from .deadline import Deadline
from .errors import NotFound, StoreUnavailable
from .logging_utils import logger
from .models import (
    FIELD_DRIFT,
    FIELD_LOG,
    FIELD_PLAN_OUTPUT,
    FIELD_PROJECT_ID,
    FIELD_THRESHOLD,
    FIELD_TIER,
    log_entry,
)


class StateStore(ABC):
    """Operations the orchestrator needs from the drift state backend."""

    @abstractmethod
    def initialize_if_absent(
        self, key: str, tier: str, project_id: str, threshold: str, deadline: Optional[Deadline] = None
    ) -> bool:
        """Create the record. Returns False (and writes nothing) when the key exists."""

    @abstractmethod
    def record_operation(self, key: str, timestamp: str, operation: str, deadline: Optional[Deadline] = None) -> None:
        ...

    @abstractmethod
    def increment_drift(self, key: str, deadline: Optional[Deadline] = None) -> int:
        ...

    @abstractmethod
    def reset_drift(self, key: str, deadline: Optional[Deadline] = None) -> None:
        ...

    @abstractmethod
    def read_all(self, key: str, deadline: Optional[Deadline] = None) -> Dict[str, str]:
        """All fields of the record; raises NotFound when the key does not exist."""

    @abstractmethod
    def set_field(self, key: str, name: str, value: str, deadline: Optional[Deadline] = None) -> None:
        ...

    @abstractmethod
    def get_field(self, key: str, name: str, deadline: Optional[Deadline] = None) -> str:
        """Field value, or "" when the field (or key) is missing."""

    def store_plan_output(self, key: str, plan_output: str, deadline: Optional[Deadline] = None) -> None:
        self.set_field(key, FIELD_PLAN_OUTPUT, plan_output, deadline)

    def ping(self, deadline: Optional[Deadline] = None) -> None:
        """Raise StoreUnavailable when the backend cannot be reached."""


DEFAULT_SOCKET_TIMEOUT = 5.0
MIN_SOCKET_TIMEOUT = 0.01


class RedisStateStore(StateStore):
    """Redis-backed store.

    Commands run on the shared client while the deadline leaves at least a
    full socket timeout. Closer to expiry a command runs on a single-use
    connection whose socket timeouts are cut to the time remaining.
    """

    def __init__(self, client: "redis.Redis", socket_timeout: float = DEFAULT_SOCKET_TIMEOUT):
        self.client = client
        self.socket_timeout = float(socket_timeout)

    @classmethod
    def from_url(cls, url: str, socket_timeout: float = DEFAULT_SOCKET_TIMEOUT) -> "RedisStateStore":
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client, socket_timeout)

    def _bounded_client(self, timeout: float) -> "redis.Redis":
        pool = self.client.connection_pool
        kwargs = dict(pool.connection_kwargs)
        kwargs["socket_timeout"] = timeout
        kwargs["socket_connect_timeout"] = timeout
        return redis.Redis(connection_pool=redis.ConnectionPool(connection_class=pool.connection_class, **kwargs))

    @contextmanager
    def _command(self, action: str, key: str, deadline: Optional[Deadline]) -> Iterator["redis.Redis"]:
        client = self.client
        bounded = False
        if deadline is not None:
            deadline.check(action)
            timeout = deadline.bound(self.socket_timeout)
            if timeout < self.socket_timeout:
                client = self._bounded_client(max(timeout, MIN_SOCKET_TIMEOUT))
                bounded = True
        try:
            yield client
        except redis.RedisError as e:
            logger.error("store_operation_failed", action=action, key=key, error=e.__class__.__name__)
            raise StoreUnavailable(f"error {action} for {key}: {e}") from e
        finally:
            if bounded:
                client.connection_pool.disconnect()

    def initialize_if_absent(self, key, tier, project_id, threshold, deadline=None):
        logger.debug("environment_initialize_check", key=key)
        with self._command("checking hash existence", key, deadline) as client:
            if client.exists(key):
                logger.debug("environment_already_initialized", key=key)
                return False

        fields = {
            FIELD_THRESHOLD: threshold,
            FIELD_TIER: tier,
            FIELD_PROJECT_ID: project_id,
            FIELD_DRIFT: "0",
        }
        with self._command("initializing environment hash", key, deadline) as client:
            client.hset(key, mapping=fields)

        logger.info("environment_initialized", key=key, tier=tier, project_id=project_id, threshold=threshold)
        return True

    def record_operation(self, key, timestamp, operation, deadline=None):
        with self._command("updating operation log", key, deadline) as client:
            client.hset(key, FIELD_LOG, log_entry(timestamp, operation))
        logger.debug("operation_log_updated", key=key, operation=operation)

    def increment_drift(self, key, deadline=None):
        with self._command("incrementing drift", key, deadline) as client:
            value = client.hincrby(key, FIELD_DRIFT, 1)
        return int(value)

    def reset_drift(self, key, deadline=None):
        with self._command("resetting drift", key, deadline) as client:
            client.hset(key, FIELD_DRIFT, "0")

    def read_all(self, key, deadline=None):
        with self._command("retrieving environment data", key, deadline) as client:
            data = client.hgetall(key)
        if not data:
            logger.warn("environment_data_missing", key=key)
            raise NotFound(key)
        return dict(data)

    def set_field(self, key, name, value, deadline=None):
        with self._command(f"setting field {name}", key, deadline) as client:
            client.hset(key, name, value)
        logger.debug("field_set", key=key, field=name)

    def get_field(self, key, name, deadline=None):
        with self._command(f"getting field {name}", key, deadline) as client:
            value = client.hget(key, name)
        return value if value is not None else ""

    def store_plan_output(self, key, plan_output, deadline=None):
        logger.debug("plan_output_store", key=key, plan_output_length=len(plan_output))
        super().store_plan_output(key, plan_output, deadline)

    def ping(self, deadline=None):
        with self._command("pinging", "-", deadline) as client:
            client.ping()
