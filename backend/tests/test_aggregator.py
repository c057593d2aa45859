from __future__ import annotations

import asyncio

import pytest

from audioreport.aggregator import DataAggregator
from audioreport.models import FocusArea, ReportRequest, TimeRange
from audioreport.report import build_report_text
from fakes import failing_fetcher, marker_fetcher, ok_fetcher

NOW = 1_760_356_800.0
GENERAL = ["analytics", "streaming", "cdn", "engagement"]


def _aggregator(fetchers, **kwargs) -> DataAggregator:
    kwargs.setdefault("clock", lambda: NOW)
    return DataAggregator(fetchers, **kwargs)


@pytest.mark.parametrize(
    "failing",
    [
        set(),
        {"analytics"},
        {"cdn", "engagement"},
        {"analytics", "streaming", "cdn"},
        set(GENERAL),
    ],
)
def test_partial_failures_are_recorded_per_category(failing: set) -> None:
    fetchers = {
        name: failing_fetcher(f"{name} down") if name in failing else ok_fetcher({"total_views": 10})
        for name in GENERAL
    }
    request = ReportRequest(focus_area=FocusArea.GENERAL)

    snapshot = asyncio.run(_aggregator(fetchers).aggregate(request))

    assert [result.category for result in snapshot.results] == GENERAL
    assert {result.category for result in snapshot.failed} == failing
    assert len(snapshot.succeeded) == len(GENERAL) - len(failing)
    assert build_report_text(snapshot, request.focus_area).strip()


def test_fetchers_run_concurrently() -> None:
    started: list[str] = []

    def gated(name: str, gate_holder: dict):
        async def fetch(time_range, filters=None):
            started.append(name)
            if len(started) == len(GENERAL):
                gate_holder["gate"].set()
            await gate_holder["gate"].wait()
            return await ok_fetcher()(time_range, filters)

        return fetch

    async def scenario():
        holder = {"gate": asyncio.Event()}
        aggregator = _aggregator({name: gated(name, holder) for name in GENERAL})
        return await asyncio.wait_for(aggregator.aggregate(ReportRequest()), timeout=2)

    snapshot = asyncio.run(scenario())

    assert sorted(started) == sorted(GENERAL)
    assert len(snapshot.succeeded) == len(GENERAL)


def test_failure_marker_and_timeout_are_failures() -> None:
    async def slow(time_range, filters=None):
        await asyncio.sleep(1)

    fetchers = {
        "analytics": marker_fetcher("quota exceeded"),
        "streaming": slow,
        "cdn": ok_fetcher(),
        "engagement": ok_fetcher(),
    }

    snapshot = asyncio.run(_aggregator(fetchers, fetch_timeout_seconds=0.05).aggregate(ReportRequest()))

    reasons = {failure.category: failure.reason for failure in snapshot.failed}
    assert reasons["analytics"] == "quota exceeded"
    assert "timed out" in reasons["streaming"]


def test_failure_reasons_are_redacted() -> None:
    fetchers = {"errors": failing_fetcher("bad token MUXabcdefghijklmnopqrstuvwxyz")}

    snapshot = asyncio.run(_aggregator(fetchers).aggregate(ReportRequest(focus_area=FocusArea.ERRORS)))

    assert "MUXabcdefghijklmnopqrstuvwxyz" not in snapshot.failed[0].reason


def test_time_range_prefers_first_successful_echo() -> None:
    echoed = TimeRange(start=1_000, end=2_000)
    later = TimeRange(start=3_000, end=4_000)
    requested = TimeRange(start=5_000, end=6_000)
    fetchers = {
        "analytics": failing_fetcher(),
        "streaming": ok_fetcher(echo=echoed),
        "cdn": ok_fetcher(echo=later),
        "engagement": ok_fetcher(),
    }

    snapshot = asyncio.run(_aggregator(fetchers).aggregate(ReportRequest(time_range=requested)))

    assert snapshot.time_range == echoed


def test_time_range_falls_back_to_request_then_default() -> None:
    requested = TimeRange(start=5_000, end=6_000)
    fetchers = {name: failing_fetcher() for name in GENERAL}
    aggregator = _aggregator(fetchers)

    with_request = asyncio.run(aggregator.aggregate(ReportRequest(time_range=requested)))
    without_request = asyncio.run(aggregator.aggregate(ReportRequest()))

    assert with_request.time_range == requested
    assert without_request.time_range == TimeRange(start=int(NOW) - 24 * 3600, end=int(NOW))


def test_request_range_is_passed_to_fetchers() -> None:
    calls: list = []
    requested = TimeRange(start=5_000, end=6_000)

    asyncio.run(
        _aggregator({"errors": ok_fetcher(calls=calls)}).aggregate(
            ReportRequest(time_range=requested, focus_area=FocusArea.ERRORS)
        )
    )

    assert calls == [requested]


def test_focus_area_selects_categories() -> None:
    fetchers = {name: ok_fetcher() for name in GENERAL + ["errors", "assets"]}
    aggregator = _aggregator(fetchers)

    assert aggregator.categories_for(ReportRequest(focus_area=FocusArea.GENERAL)) == GENERAL
    assert aggregator.categories_for(ReportRequest(focus_area=FocusArea.BOTH)) == GENERAL + ["errors"]
    assert aggregator.categories_for(ReportRequest(focus_area=FocusArea.CDN)) == ["cdn"]
    assert aggregator.categories_for(
        ReportRequest(focus_area=FocusArea.ERRORS, include_asset_list=True)
    ) == ["errors", "assets"]


def test_no_categories_or_unknown_category_raise() -> None:
    aggregator = _aggregator({"errors": ok_fetcher()})

    with pytest.raises(ValueError):
        asyncio.run(aggregator.aggregate(ReportRequest(focus_area=FocusArea.CDN)))
    with pytest.raises(ValueError):
        asyncio.run(aggregator.aggregate(ReportRequest(), categories=["errors", "bogus"]))
