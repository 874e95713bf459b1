"""Error taxonomy for drift processing.

ValidationError is the only client-side failure; everything else is a
processing failure for the report that triggered it.
"""

from typing import Optional


class DriftGuardianError(Exception):
    """Base class for all drift-guardian failures."""


class ValidationError(DriftGuardianError):
    """A report was rejected before any state was touched."""


class MissingField(ValidationError):
    def __init__(self, field: str):
        self.field = field
        if field == "operation":
            message = "invalid terraform operation in payload"
        else:
            message = f"missing {field} in payload"
        super().__init__(message)


class StoreUnavailable(DriftGuardianError):
    """The state store could not be reached or timed out."""


class NotFound(DriftGuardianError):
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"no data found for key: {key}")


class TrackerUnavailable(DriftGuardianError):
    """The issue tracker could not be reached."""


class TrackerRejected(DriftGuardianError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class InvalidProjectId(DriftGuardianError):
    def __init__(self, value: str):
        self.value = value
        super().__init__(f"invalid project ID: {value!r}")


class InvalidThresholdValue(DriftGuardianError):
    def __init__(self, value: str):
        self.value = value
        super().__init__(f"invalid threshold value: {value!r}")


class DeadlineExceeded(StoreUnavailable, TrackerUnavailable):
    """The per-report deadline ran out before the next call could start."""


class ConfigError(DriftGuardianError):
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Configuration error for {field}: {message}")
