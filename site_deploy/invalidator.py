"""Cache Invalidator - CloudFront cache clearing."""

import enum
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from shared.aws_helpers import CloudFrontHelper, client_config
from shared.config import Config
from shared.errors import CDNInvalidationError, InvalidationSubmitFailure
from shared.logger import StructuredLogger
from site_deploy.planner import InvalidationBatch


class InvalidationStatus(str, enum.Enum):
    COMPLETED = "Completed"
    IN_PROGRESS = "InProgress"
    TIMED_OUT = "TimedOut"
    FAILED = "Failed"


@dataclass(frozen=True)
class InvalidationHandle:
    invalidation_id: str
    distribution_id: str
    status: str = InvalidationStatus.IN_PROGRESS.value


class CacheInvalidator:
    """Submit invalidation batches to CloudFront and wait for them."""

    def __init__(
        self,
        config: Config,
        cloudfront: Optional[CloudFrontHelper] = None,
        sleep: Optional[Callable[[float], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        max_attempts: int = 3,
    ):
        self.config = config
        self.cloudfront = cloudfront or CloudFrontHelper(
            config.AWS_REGION, boto_config=client_config(config.AWS_CONNECT_TIMEOUT, config.AWS_READ_TIMEOUT)
        )
        self.sleep = sleep
        self.clock = clock
        self.max_attempts = max_attempts

    def submit(self, batch: InvalidationBatch, distribution_id: Optional[str] = None) -> InvalidationHandle:
        """
        Submit a batch to CloudFront.

        Args:
            batch: Planned invalidation batch
            distribution_id: CloudFront distribution ID (uses config default if not provided)

        Returns:
            Handle for polling

        Raises:
            InvalidationSubmitFailure: rejected by CloudFront or transient errors outlasted the retries
        """
        dist_id = distribution_id or self.config.AWS_CLOUDFRONT_DISTRIBUTION_ID
        if not dist_id:
            raise InvalidationSubmitFailure("CloudFront distribution ID not configured")
        if batch.is_empty:
            raise InvalidationSubmitFailure("Refusing to submit an empty invalidation batch")

        for attempt in range(1, self.max_attempts + 1):
            try:
                # Same caller reference on every attempt, so a retried request cannot double-submit
                response = self.cloudfront.create_invalidation(dist_id, batch.items, batch.caller_reference)
                return InvalidationHandle(
                    invalidation_id=response["Id"],
                    distribution_id=dist_id,
                    status=response.get("Status", InvalidationStatus.IN_PROGRESS.value),
                )
            except CDNInvalidationError as e:
                if not e.retryable or attempt == self.max_attempts:
                    StructuredLogger.error(
                        "Cache invalidation submit failed",
                        distribution_id=dist_id,
                        attempts=attempt,
                        exception=e,
                    )
                    raise InvalidationSubmitFailure(f"Failed to invalidate cache: {str(e)}") from e

                delay = self.config.RETRY_BASE_DELAY * (2 ** (attempt - 1))
                StructuredLogger.warning(
                    "Invalidation submit failed, retrying",
                    distribution_id=dist_id,
                    attempt=attempt,
                    delay=delay,
                    error=str(e),
                )
                (self.sleep or time.sleep)(delay)

        raise InvalidationSubmitFailure("Failed to invalidate cache: retry budget exhausted")

    def await_completion(
        self,
        handle: InvalidationHandle,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> InvalidationStatus:
        """Poll until Completed, timeout, or cancellation. Never raises."""
        timeout = self.config.INVALIDATION_TIMEOUT if timeout is None else timeout
        interval = self.config.INVALIDATION_POLL_INTERVAL
        deadline = self.clock() + timeout

        if handle.status == InvalidationStatus.COMPLETED.value:
            return InvalidationStatus.COMPLETED

        while True:
            if cancel_event is not None and cancel_event.is_set():
                StructuredLogger.warning("Stopped polling invalidation", invalidation_id=handle.invalidation_id)
                return InvalidationStatus.IN_PROGRESS

            try:
                status = self.cloudfront.get_invalidation_status(handle.distribution_id, handle.invalidation_id)
            except CDNInvalidationError as e:
                StructuredLogger.error(
                    "Could not read invalidation status",
                    invalidation_id=handle.invalidation_id,
                    exception=e,
                )
                return InvalidationStatus.FAILED

            if status == InvalidationStatus.COMPLETED.value:
                StructuredLogger.info("Cache invalidation completed", invalidation_id=handle.invalidation_id)
                return InvalidationStatus.COMPLETED

            remaining = deadline - self.clock()
            if remaining <= 0:
                StructuredLogger.warning(
                    "Invalidation still in progress at timeout",
                    invalidation_id=handle.invalidation_id,
                    timeout=timeout,
                )
                return InvalidationStatus.TIMED_OUT

            StructuredLogger.debug("Invalidation in progress", invalidation_id=handle.invalidation_id, status=status)
            self._pause(min(interval, remaining), cancel_event)

    def _pause(self, seconds: float, cancel_event: Optional[threading.Event]) -> None:
        if self.sleep is not None:
            self.sleep(seconds)
        elif cancel_event is not None:
            cancel_event.wait(seconds)
        else:
            time.sleep(seconds)
