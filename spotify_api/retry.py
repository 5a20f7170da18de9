import enum
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

from utils.logger import log_warning

from .errors import RetryExhaustedError

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0


class CallOutcome(enum.Enum):
    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"


def classify_status(status: Optional[int]) -> CallOutcome:
    """Map an HTTP status to a call outcome.

    429 (rate limited) and 5xx are transient; anything else, including a
    failure with no status at all, is fatal.
    """
    if status is None:
        return CallOutcome.FATAL
    if 200 <= status < 400:
        return CallOutcome.SUCCESS
    if status == 429 or 500 <= status < 600:
        return CallOutcome.RETRYABLE
    return CallOutcome.FATAL


def classify_failure(error: BaseException) -> CallOutcome:
    return classify_status(getattr(error, "status", None))


@dataclass
class RetryPolicy:
    """Bounded exponential-backoff retry for single API calls.

    The delay before retry ``n`` (0-based) is the server's Retry-After hint
    when present, else ``base_delay * 2 ** n``.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    @classmethod
    def from_config(cls, config: dict, **kwargs) -> "RetryPolicy":
        return cls(
            max_attempts=int(config.get("retry_attempts", DEFAULT_MAX_ATTEMPTS)),
            base_delay=float(config.get("retry_base_delay", DEFAULT_BASE_DELAY)),
            **kwargs,
        )

    def delay_for(self, error: BaseException, attempt_index: int) -> float:
        retry_after = getattr(error, "retry_after", None)
        if retry_after is not None:
            return float(retry_after)
        return self.base_delay * (2 ** attempt_index)

    def call(self, operation: Callable[[], T]) -> T:
        last_error: Optional[BaseException] = None

        for attempt_index in range(self.max_attempts):
            try:
                return operation()
            except Exception as e:
                if classify_failure(e) is not CallOutcome.RETRYABLE:
                    raise
                last_error = e

            if attempt_index + 1 >= self.max_attempts:
                break

            delay = self.delay_for(last_error, attempt_index)
            log_warning(f"Rate limited or server error. Retrying in {delay:g} seconds...")
            self.sleep(delay)

        raise RetryExhaustedError(
            f"Operation failed after {self.max_attempts} attempts: {last_error}",
            last_error=last_error,
        ) from last_error


def with_retry(operation: Callable[[], T], policy: Optional[RetryPolicy] = None) -> T:
    return (policy or RetryPolicy()).call(operation)
