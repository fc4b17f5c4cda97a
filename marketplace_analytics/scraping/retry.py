# -*- coding: utf-8 -*-
from __future__ import annotations
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from marketplace_analytics.config import settings
from marketplace_analytics.exceptions import (
    ExtractionNotFoundError, ScrapeError, UnexpectedRuntimeError,
)
from marketplace_analytics.schemas import ScrapeResult, ScrapeStatus, ScrapeTarget
from marketplace_analytics.utils.logger import get_logger

logger = get_logger(__name__)

AttemptFn = Callable[[ScrapeTarget, int], Awaitable[ScrapeResult]]


@dataclass
class RetryPolicy:
    max_attempts: int   = 3
    backoff_base: float = 2.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            backoff_base=settings.backoff_base_seconds,
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt ``attempt`` (1-based): 2, 4, 8 ..."""
        return float(self.backoff_base ** attempt)


class RetryController:
    """Runs an attempt function until it yields data or attempts run out.

    ``run`` always returns a ScrapeResult; the final failure is folded into an
    error result carrying the last error message.
    """

    def __init__(self, policy: Optional[RetryPolicy] = None, sleep=asyncio.sleep):
        self.policy = policy or RetryPolicy.from_settings()
        self._sleep = sleep

    async def run(self, target: ScrapeTarget, attempt_fn: AttemptFn) -> ScrapeResult:
        last_error: Optional[ScrapeError] = None
        for attempt in range(1, self.policy.max_attempts + 1):
            try:
                result = await attempt_fn(target, attempt)
                if result.status is not ScrapeStatus.success or not result.metrics.has_signal:
                    raise ExtractionNotFoundError(
                        result.error_message or "No analytics data found on page"
                    )
                if attempt > 1:
                    logger.info(
                        "[%s/%s] Succeeded on attempt %d",
                        target.listing_id, target.platform.value, attempt,
                    )
                return result
            except ScrapeError as e:
                last_error = e
            except Exception as e:
                last_error = UnexpectedRuntimeError(type(e).__name__ + ": " + str(e))

            logger.warning(
                "[%s/%s] Attempt %d/%d failed (%s): %s",
                target.listing_id, target.platform.value,
                attempt, self.policy.max_attempts,
                type(last_error).__name__, last_error,
            )
            if attempt < self.policy.max_attempts:
                await self._sleep(self.policy.delay_for(attempt))

        message = str(last_error) if last_error else "Max retries exceeded"
        logger.error(
            "[%s/%s] Giving up after %d attempts: %s",
            target.listing_id, target.platform.value, self.policy.max_attempts, message,
        )
        return ScrapeResult.failed(message, target.url)
