"""Concurrent fan-out over analytics categories that tolerates partial failure."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Mapping, Optional, Sequence

from audioreport.analytics import (
    CATEGORY_ANALYTICS,
    CATEGORY_ASSETS,
    CATEGORY_CDN,
    CATEGORY_ENGAGEMENT,
    CATEGORY_ERRORS,
    CATEGORY_STREAMING,
    Fetcher,
    FetchResponse,
)
from audioreport.errors import redact_secrets
from audioreport.models import (
    CategoryFailure,
    CategoryResult,
    CategorySuccess,
    FocusArea,
    ReportRequest,
    ReportSnapshot,
    TimeRange,
)

logger = logging.getLogger(__name__)

_GENERAL_CATEGORIES = (
    CATEGORY_ANALYTICS,
    CATEGORY_STREAMING,
    CATEGORY_CDN,
    CATEGORY_ENGAGEMENT,
)

FOCUS_CATEGORIES: dict[FocusArea, tuple[str, ...]] = {
    FocusArea.GENERAL: _GENERAL_CATEGORIES,
    FocusArea.BOTH: _GENERAL_CATEGORIES + (CATEGORY_ERRORS,),
    FocusArea.ERRORS: (CATEGORY_ERRORS,),
    FocusArea.STREAMING: (CATEGORY_STREAMING,),
    FocusArea.CDN: (CATEGORY_CDN,),
    FocusArea.ENGAGEMENT: (CATEGORY_ENGAGEMENT,),
}


class DataAggregator:
    """Launch every category fetcher at once and collect one result per fetcher."""

    def __init__(
        self,
        fetchers: Mapping[str, Fetcher],
        *,
        fetch_timeout_seconds: Optional[float] = None,
        default_lookback_hours: float = 24,
        clock: Callable[[], float] = time.time,
    ):
        self.fetchers = dict(fetchers)
        self.fetch_timeout_seconds = fetch_timeout_seconds
        self.default_lookback_hours = default_lookback_hours
        self._clock = clock

    def categories_for(self, request: ReportRequest) -> list[str]:
        categories = list(FOCUS_CATEGORIES[request.focus_area])
        if request.include_asset_list:
            categories.append(CATEGORY_ASSETS)
        return [category for category in categories if category in self.fetchers]

    async def aggregate(
        self,
        request: ReportRequest,
        categories: Optional[Sequence[str]] = None,
        filters: Optional[list[str]] = None,
    ) -> ReportSnapshot:
        names = list(categories) if categories is not None else self.categories_for(request)
        if not names:
            raise ValueError(
                f"No analytics categories to fetch for focus area '{request.focus_area.value}'."
            )
        unknown = [name for name in names if name not in self.fetchers]
        if unknown:
            raise ValueError(f"No fetcher registered for categories: {unknown}")

        started = time.perf_counter()
        results = await asyncio.gather(
            *[self._fetch_one(name, request.time_range, filters) for name in names]
        )
        logger.info(
            "[aggregator] fetched %d categories in %.0fms (%d ok, %d failed)",
            len(results),
            (time.perf_counter() - started) * 1000,
            sum(1 for result in results if result.ok),
            sum(1 for result in results if not result.ok),
        )
        return ReportSnapshot(
            results=list(results),
            time_range=self.resolve_time_range(request, results),
        )

    async def _fetch_one(
        self,
        category: str,
        time_range: Optional[TimeRange],
        filters: Optional[list[str]],
    ) -> CategoryResult:
        fetcher = self.fetchers[category]
        try:
            if self.fetch_timeout_seconds:
                response = await asyncio.wait_for(
                    fetcher(time_range, filters), timeout=self.fetch_timeout_seconds
                )
            else:
                response = await fetcher(time_range, filters)
        except asyncio.TimeoutError:
            reason = f"timed out after {self.fetch_timeout_seconds}s"
            logger.warning("[aggregator] %s %s", category, reason)
            return CategoryFailure(category=category, reason=reason)
        except Exception as exc:
            reason = redact_secrets(f"{exc.__class__.__name__}: {exc}")
            logger.warning("[aggregator] %s failed: %s", category, reason)
            return CategoryFailure(category=category, reason=reason)

        if not isinstance(response, FetchResponse) or not response.success:
            reason = getattr(response, "error", None) or "fetcher reported failure"
            return CategoryFailure(category=category, reason=redact_secrets(reason))
        return CategorySuccess(
            category=category,
            payload=dict(response.payload),
            time_range=response.time_range,
        )

    def resolve_time_range(
        self,
        request: ReportRequest,
        results: Sequence[CategoryResult],
    ) -> TimeRange:
        """Echoed range of the first success, then the request's range, then the default lookback."""
        for result in results:
            if isinstance(result, CategorySuccess) and result.time_range is not None:
                return result.time_range
        if request.time_range is not None:
            return request.time_range
        return TimeRange.last_hours(self.default_lookback_hours, now=self._clock())
