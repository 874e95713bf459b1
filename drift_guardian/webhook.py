import time
from typing import Any, Callable, Dict

import requests

from .logging_utils import logger

DEFAULT_ATTEMPTS = 3
DEFAULT_TIMEOUT = 10.0


def send_report(
    endpoint: str,
    payload: Dict[str, Any],
    attempts: int = DEFAULT_ATTEMPTS,
    timeout: float = DEFAULT_TIMEOUT,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """POST a report to <endpoint>/environments.

    Retries transport errors and non-2xx answers with exponential backoff
    (1s, 2s, ...). Never raises: a pipeline must not fail because drift
    tracking is unreachable.
    """
    url = endpoint.rstrip("/") + "/environments"
    for attempt in range(1, attempts + 1):
        try:
            r = requests.post(url, json=payload, timeout=timeout)
        except requests.RequestException as e:
            logger.warn("webhook_send_failed", attempt=attempt, attempts=attempts, error=e.__class__.__name__)
        else:
            if 200 <= r.status_code < 300:
                logger.debug("webhook_sent", url=url, status_code=r.status_code)
                return True
            logger.warn("webhook_rejected", attempt=attempt, attempts=attempts, status_code=r.status_code)

        if attempt < attempts:
            backoff = float(2 ** (attempt - 1))
            logger.debug("webhook_retry_scheduled", backoff_seconds=backoff)
            sleep(backoff)

    logger.error("webhook_gave_up", url=url, attempts=attempts)
    return False
