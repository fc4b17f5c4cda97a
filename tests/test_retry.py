# -*- coding: utf-8 -*-
from __future__ import annotations
import asyncio

from marketplace_analytics.exceptions import (
    AuthenticationError, ExtractionNotFoundError, NavigationTimeoutError,
)
from marketplace_analytics.schemas import (
    MetricCounts, Platform, ScrapeResult, ScrapeStatus, ScrapeTarget,
)
from marketplace_analytics.scraping.retry import RetryController, RetryPolicy

TARGET = ScrapeTarget(
    listing_id="L1", platform=Platform.kijiji,
    url="https://www.kijiji.ca/v-bikes/city/road-bike/123", listing_title="Road Bike",
)


def _attempts(*outcomes):
    """Attempt fn that replays outcomes: exceptions are raised, results returned."""
    calls = []

    async def attempt(target, n):
        calls.append(n)
        outcome = outcomes[min(n, len(outcomes)) - 1]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    attempt.calls = calls
    return attempt


def _ok(views=10):
    return ScrapeResult.succeeded(MetricCounts(views=views), TARGET.url)


class TestRetryController:

    def test_first_try_success_no_sleep(self, no_sleep):
        ctrl = RetryController(RetryPolicy(3, 2.0), sleep=no_sleep)
        result = asyncio.run(ctrl.run(TARGET, _attempts(_ok())))
        assert result.status is ScrapeStatus.success
        assert no_sleep.calls == []

    def test_exponential_backoff_then_success(self, no_sleep):
        ctrl = RetryController(RetryPolicy(3, 2.0), sleep=no_sleep)
        fn = _attempts(NavigationTimeoutError("t1"), AuthenticationError("a2"), _ok(5))
        result = asyncio.run(ctrl.run(TARGET, fn))
        assert result.views == 5
        assert fn.calls == [1, 2, 3]
        assert no_sleep.calls == [2.0, 4.0]

    def test_bounded_and_never_raises(self, no_sleep):
        ctrl = RetryController(RetryPolicy(3, 2.0), sleep=no_sleep)
        fn = _attempts(ExtractionNotFoundError("No analytics data found on page"))
        result = asyncio.run(ctrl.run(TARGET, fn))
        assert fn.calls == [1, 2, 3]
        assert result.status is ScrapeStatus.error
        assert result.error_message == "No analytics data found on page"
        assert (result.views, result.clicks, result.favorites, result.shares) == (0, 0, 0, 0)
        assert result.listing_url == TARGET.url
        assert no_sleep.calls == [2.0, 4.0]

    def test_foreign_exception_is_wrapped(self, no_sleep):
        ctrl = RetryController(RetryPolicy(2, 2.0), sleep=no_sleep)
        result = asyncio.run(ctrl.run(TARGET, _attempts(KeyError("boom"))))
        assert result.status is ScrapeStatus.error
        assert "KeyError" in result.error_message

    def test_soft_failure_is_retried(self, no_sleep):
        ctrl = RetryController(RetryPolicy(2, 2.0), sleep=no_sleep)
        soft = ScrapeResult.failed("empty", TARGET.url)
        fn = _attempts(soft, _ok(3))
        result = asyncio.run(ctrl.run(TARGET, fn))
        assert result.views == 3
        assert fn.calls == [1, 2]

    def test_delay_for(self):
        assert [RetryPolicy(4, 2.0).delay_for(n) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]
