from typing import Optional

from .deadline import Deadline
from .errors import InvalidThresholdValue
from .models import FIELD_THRESHOLD
from .state_store import StateStore


class ThresholdPolicy:
    """Effective drift threshold per environment and the breach decision."""

    def __init__(self, store: StateStore, default_threshold: int):
        self.store = store
        self.default_threshold = int(default_threshold)

    def threshold(self, key: str, deadline: Optional[Deadline] = None) -> int:
        raw = self.store.get_field(key, FIELD_THRESHOLD, deadline).strip()
        if not raw:
            return self.default_threshold
        try:
            return int(raw)
        except ValueError as e:
            raise InvalidThresholdValue(raw) from e

    def is_breached(self, key: str, current_drift_count: int, deadline: Optional[Deadline] = None) -> bool:
        return current_drift_count >= self.threshold(key, deadline)
