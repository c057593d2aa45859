"""Readable report text built from an aggregated analytics snapshot."""

from __future__ import annotations

from typing import Any, Optional

from audioreport.analytics import (
    CATEGORY_ANALYTICS,
    CATEGORY_ASSETS,
    CATEGORY_CDN,
    CATEGORY_ENGAGEMENT,
    CATEGORY_ERRORS,
    CATEGORY_STREAMING,
)
from audioreport.models import FocusArea, ReportSnapshot
from audioreport.speech import format_date_for_speech

NO_ERRORS_CLOSING = (
    "Great news! No errors were detected during this time period. "
    "Your platform is running smoothly."
)
UNAVAILABLE_TEXT = (
    "Analytics data is currently unavailable for the requested time period. "
    "Please try again in a few minutes."
)

_TITLES = {
    FocusArea.GENERAL: "Streaming Performance Report",
    FocusArea.BOTH: "Comprehensive Streaming Report",
    FocusArea.ERRORS: "Error Analysis Report",
    FocusArea.STREAMING: "Streaming Quality Report",
    FocusArea.CDN: "Content Delivery Report",
    FocusArea.ENGAGEMENT: "Viewer Engagement Report",
}


def _number(value: Any, digits: int = 0) -> Optional[str]:
    if value is None:
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    if digits:
        return f"{numeric:,.{digits}f}"
    return f"{int(round(numeric)):,}"


def _overview_section(payload: dict[str, Any]) -> list[str]:
    lines = ["Overall Health:"]
    lines.append(f"Health score is {payload.get('health_score', 0)} out of 100.")
    views = _number(payload.get("total_views"))
    if views:
        lines.append(f"Total views: {views}.")
    lines.append(f"Playback failures: {_number(payload.get('playback_failure_percentage'), 2) or '0.00'}%.")
    lines.append(f"Rebuffering: {_number(payload.get('rebuffer_percentage'), 2) or '0.00'}%.")
    startup_ms = payload.get("video_startup_time_ms")
    if startup_ms:
        lines.append(f"Average startup time: {float(startup_ms) / 1000:.2f}s.")
    issues = payload.get("issues") or []
    if issues:
        lines.append("Issues:")
        lines.extend(f"- {issue}" for issue in issues)
    recommendations = payload.get("recommendations") or []
    if recommendations:
        lines.append(f"Recommendation: {recommendations[0]}")
    return lines


def _streaming_section(payload: dict[str, Any]) -> list[str]:
    lines = ["Streaming Quality:"]
    startup_ms = payload.get("video_startup_time_ms")
    if startup_ms is not None:
        lines.append(f"Video startup time averaged {float(startup_ms) / 1000:.2f}s.")
    rebuffer = _number(payload.get("rebuffer_percentage"), 2)
    if rebuffer is not None:
        lines.append(f"Rebuffering affected {rebuffer}% of watch time.")
    count = _number(payload.get("rebuffer_count"))
    if count is not None:
        lines.append(f"Rebuffer events: {count}.")
    if len(lines) == 1:
        lines.append("No streaming quality metrics were reported.")
    return lines


def _cdn_section(payload: dict[str, Any]) -> list[str]:
    lines = ["Content Delivery:"]
    countries = payload.get("countries") or []
    for row in countries:
        lines.append(
            f"- {row['name']}: {_number(row.get('views'))} views, "
            f"startup {float(row.get('startup_ms') or 0) / 1000:.2f}s."
        )
    isps = payload.get("isps") or []
    if isps:
        top = ", ".join(row["name"] for row in isps)
        lines.append(f"Top networks: {top}.")
    if not countries and not isps:
        lines.append("No regional delivery data was reported.")
    return lines


def _engagement_section(payload: dict[str, Any]) -> list[str]:
    lines = ["Viewer Engagement:"]
    views = _number(payload.get("total_views"))
    if views is not None:
        lines.append(f"Total views: {views}.")
    viewers = _number(payload.get("unique_viewers"))
    if viewers is not None:
        lines.append(f"Unique viewers: {viewers}.")
    watch = payload.get("average_watch_time_seconds")
    if watch:
        lines.append(f"Average watch time per view: {float(watch):.0f}s.")
    return lines


def _errors_section(payload: dict[str, Any]) -> list[str]:
    total = int(payload.get("total_errors") or 0)
    if total == 0:
        return []
    lines = ["Error Details:", f"Total errors: {total:,}."]
    for error in (payload.get("errors") or [])[:5]:
        share = error.get("percentage")
        suffix = f" ({float(share):.1f}%)" if share is not None else ""
        lines.append(f"- {error['type']}: {error['count']:,} occurrences{suffix}.")
    platforms = payload.get("platform_breakdown") or []
    if platforms:
        worst = platforms[0]
        lines.append(f"Most affected platform: {worst['platform']}.")
    lines.append("Recommendation: review the most frequent error first; it drives most failed views.")
    return lines


def _assets_section(payload: dict[str, Any]) -> list[str]:
    assets = payload.get("assets") or []
    if not assets:
        return ["Recent Assets:", "No assets found."]
    lines = [f"Recent Assets ({len(assets)}):"]
    for asset in assets:
        duration = asset.get("duration")
        length = f", {float(duration):.0f}s" if duration else ""
        lines.append(f"- {asset.get('status') or 'unknown'}{length}.")
    return lines


_SECTIONS = {
    CATEGORY_ANALYTICS: _overview_section,
    CATEGORY_STREAMING: _streaming_section,
    CATEGORY_CDN: _cdn_section,
    CATEGORY_ENGAGEMENT: _engagement_section,
    CATEGORY_ERRORS: _errors_section,
    CATEGORY_ASSETS: _assets_section,
}


def build_report_text(snapshot: ReportSnapshot, focus_area: FocusArea) -> str:
    """
    Render the full report for a snapshot.

    Always returns non-empty text. When every category failed the body is a
    short "unavailable" notice instead of metrics.
    """
    time_range = snapshot.time_range
    header = [
        _TITLES[focus_area],
        f"Time period: {format_date_for_speech(time_range.start)} to {format_date_for_speech(time_range.end)}.",
    ]
    if not snapshot.succeeded:
        return "\n".join(header + ["", UNAVAILABLE_TEXT])

    blocks: list[list[str]] = []
    for result in snapshot.succeeded:
        section = _SECTIONS.get(result.category)
        if section is None:
            continue
        lines = section(result.payload)
        if lines:
            blocks.append(lines)

    errors_payload = snapshot.payload(CATEGORY_ERRORS)
    if errors_payload is not None and int(errors_payload.get("total_errors") or 0) == 0:
        blocks.append([NO_ERRORS_CLOSING])

    if snapshot.failed:
        missing = ", ".join(result.category for result in snapshot.failed)
        blocks.append([f"Some data could not be retrieved: {missing}."])

    body = "\n\n".join("\n".join(lines) for lines in blocks)
    return "\n".join(header) + "\n\n" + body
