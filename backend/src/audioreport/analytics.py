"""Mux Data analytics sources, one async fetcher per report category."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import requests

from audioreport.config import Config, default_config, validate_credential
from audioreport.errors import UpstreamError, redact_secrets
from audioreport.models import FrozenReportModel, TimeRange

logger = logging.getLogger(__name__)

CATEGORY_ANALYTICS = "analytics"
CATEGORY_STREAMING = "streaming"
CATEGORY_CDN = "cdn"
CATEGORY_ENGAGEMENT = "engagement"
CATEGORY_ERRORS = "errors"
CATEGORY_ASSETS = "assets"


class FetchResponse(FrozenReportModel):
    """What a category fetcher returns: a payload and echoed range, or an explicit failure."""
    success: bool
    payload: dict[str, Any] = {}
    time_range: Optional[TimeRange] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: object) -> "FetchResponse":
        return cls(success=False, error=redact_secrets(error))


Fetcher = Callable[[Optional[TimeRange], Optional[list[str]]], Awaitable[FetchResponse]]


class MuxDataClient:
    """Thin REST client for the Mux Data and Video APIs."""

    service = "mux-data"

    def __init__(self, config: Optional[Config] = None, session: Optional[requests.Session] = None):
        self.config = config or default_config
        self._session = session or requests.Session()

    def _auth(self) -> tuple[str, str]:
        return (
            validate_credential(self.config.mux_token_id, "MUX_TOKEN_ID"),
            validate_credential(self.config.mux_token_secret, "MUX_TOKEN_SECRET"),
        )

    def _get(self, path: str, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        url = f"{self.config.mux_base_url.rstrip('/')}{path}"
        try:
            response = self._session.get(
                url,
                params=params,
                auth=self._auth(),
                timeout=self.config.request_timeout_seconds,
            )
        except requests.RequestException as exc:
            raise UpstreamError.from_transport(self.service, exc) from exc
        if response.status_code >= 400:
            raise UpstreamError.from_response(self.service, response.status_code, response.text or "")
        return response.json()

    @staticmethod
    def _window_params(time_range: TimeRange, filters: Optional[list[str]]) -> dict[str, Any]:
        params: dict[str, Any] = {"timeframe[]": time_range.as_list()}
        if filters:
            params["filters[]"] = list(filters)
        return params

    def overall(self, metric_id: str, time_range: TimeRange, filters: Optional[list[str]] = None) -> dict[str, Any]:
        body = self._get(
            f"/data/v1/metrics/{metric_id}/overall",
            self._window_params(time_range, filters),
        )
        return body.get("data") or {}

    def breakdown(
        self,
        metric_id: str,
        time_range: TimeRange,
        group_by: str,
        filters: Optional[list[str]] = None,
        order_by: str = "views",
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        params = self._window_params(time_range, filters)
        params.update(
            {"group_by": group_by, "order_by": order_by, "order_direction": "desc", "limit": limit}
        )
        body = self._get(f"/data/v1/metrics/{metric_id}/breakdown", params)
        return body.get("data") or []

    def list_errors(self, time_range: TimeRange, filters: Optional[list[str]] = None) -> tuple[list[dict[str, Any]], int]:
        body = self._get("/data/v1/errors", self._window_params(time_range, filters))
        return body.get("data") or [], int(body.get("total_row_count") or 0)

    def list_assets(self, limit: int = 10) -> list[dict[str, Any]]:
        body = self._get("/video/v1/assets", {"limit": limit})
        return body.get("data") or []


def analyze_metrics(metrics: dict[str, float]) -> dict[str, Any]:
    """Score overall streaming health out of 100 and collect recommendations."""
    issues: list[str] = []
    recommendations: list[str] = []
    score = 100

    failure_pct = metrics.get("playback_failure_percentage") or 0.0
    rebuffer_pct = metrics.get("rebuffer_percentage") or 0.0
    startup_ms = metrics.get("video_startup_time_ms") or 0.0

    if failure_pct > 5:
        issues.append(f"High playback failure rate: {failure_pct:.2f}% of views failed")
        recommendations.append("Investigate error logs and review player error handling.")
        score -= 20
    elif failure_pct > 2:
        issues.append(f"Moderate playback failure rate: {failure_pct:.2f}%")
        recommendations.append("Monitor error patterns and review encoding profiles.")
        score -= 10

    if rebuffer_pct > 10:
        issues.append(f"High rebuffering: {rebuffer_pct:.2f}% of watch time")
        recommendations.append("Optimize CDN delivery and lower the bottom of the bitrate ladder.")
        score -= 25
    elif rebuffer_pct > 5:
        issues.append(f"Moderate rebuffering: {rebuffer_pct:.2f}%")
        recommendations.append("Review CDN performance across regions.")
        score -= 15

    if startup_ms > 5000:
        issues.append(f"Slow startup: {startup_ms / 1000:.2f}s average")
        recommendations.append("Enable player preloading and shrink the initial segment.")
        score -= 15
    elif startup_ms > 3000:
        issues.append(f"Moderate startup time: {startup_ms / 1000:.2f}s average")
        recommendations.append("Optimize player initialization.")
        score -= 10

    return {"health_score": max(0, score), "issues": issues, "recommendations": recommendations}


def _overall_payload(client: MuxDataClient, time_range: TimeRange, filters: Optional[list[str]]) -> dict[str, Any]:
    failures = client.overall("playback_failure_percentage", time_range, filters)
    rebuffer = client.overall("rebuffer_percentage", time_range, filters)
    startup = client.overall("video_startup_time", time_range, filters)
    metrics = {
        "total_views": failures.get("total_views") or 0,
        "playback_failure_percentage": float(failures.get("value") or 0.0),
        "rebuffer_percentage": float(rebuffer.get("value") or 0.0),
        "video_startup_time_ms": float(startup.get("value") or 0.0),
    }
    return {**metrics, **analyze_metrics(metrics)}


def _streaming_payload(client: MuxDataClient, time_range: TimeRange, filters: Optional[list[str]]) -> dict[str, Any]:
    startup = client.overall("video_startup_time", time_range, filters)
    rebuffer = client.overall("rebuffer_percentage", time_range, filters)
    rebuffer_count = client.overall("rebuffer_count", time_range, filters)
    return {
        "video_startup_time_ms": startup.get("value"),
        "rebuffer_percentage": rebuffer.get("value"),
        "rebuffer_count": rebuffer_count.get("value"),
        "total_views": startup.get("total_views"),
    }


def _cdn_payload(client: MuxDataClient, time_range: TimeRange, filters: Optional[list[str]]) -> dict[str, Any]:
    def _rows(group_by: str, limit: int) -> list[dict[str, Any]]:
        return [
            {
                "name": row.get("field") or "Unknown",
                "views": int(row.get("views") or 0),
                "startup_ms": float(row.get("value") or 0.0),
            }
            for row in client.breakdown("video_startup_time", time_range, group_by, filters, limit=limit)
        ]

    return {"countries": _rows("country", 5), "isps": _rows("asn", 3)}


def _engagement_payload(client: MuxDataClient, time_range: TimeRange, filters: Optional[list[str]]) -> dict[str, Any]:
    playing = client.overall("playing_time", time_range, filters)
    viewers = client.overall("unique_viewers", time_range, filters)
    total_views = int(playing.get("total_views") or 0)
    total_playing_ms = float(playing.get("total_playing_time") or 0.0)
    return {
        "total_views": total_views,
        "unique_viewers": viewers.get("value"),
        "average_watch_time_seconds": (total_playing_ms / 1000 / total_views) if total_views else None,
    }


def _errors_payload(client: MuxDataClient, time_range: TimeRange, filters: Optional[list[str]]) -> dict[str, Any]:
    rows, row_count = client.list_errors(time_range, filters)
    errors = [
        {
            "type": row.get("message") or row.get("code") or "Unknown Error",
            "count": int(row.get("count") or 0),
            "percentage": row.get("percentage"),
        }
        for row in rows
    ]
    errors.sort(key=lambda item: item["count"], reverse=True)
    total = sum(item["count"] for item in errors) if errors else row_count

    platforms: list[dict[str, Any]] = []
    if total:
        try:
            platforms = [
                {"platform": row.get("field") or "Unknown Platform", "value": row.get("value")}
                for row in client.breakdown(
                    "playback_failure_percentage",
                    time_range,
                    "operating_system",
                    filters,
                    order_by="negative_impact",
                    limit=20,
                )
            ]
        except UpstreamError as exc:
            logger.warning("[analytics] platform breakdown unavailable: %s", exc)
    return {"total_errors": total, "errors": errors, "platform_breakdown": platforms}


def _assets_payload(client: MuxDataClient, _time_range: TimeRange, _filters: Optional[list[str]]) -> dict[str, Any]:
    return {
        "assets": [
            {
                "id": row.get("id"),
                "status": row.get("status"),
                "duration": row.get("duration"),
                "created_at": row.get("created_at"),
            }
            for row in client.list_assets()
        ]
    }


_PAYLOAD_BUILDERS = {
    CATEGORY_ANALYTICS: _overall_payload,
    CATEGORY_STREAMING: _streaming_payload,
    CATEGORY_CDN: _cdn_payload,
    CATEGORY_ENGAGEMENT: _engagement_payload,
    CATEGORY_ERRORS: _errors_payload,
    CATEGORY_ASSETS: _assets_payload,
}


def build_category_fetchers(client: MuxDataClient) -> dict[str, Fetcher]:
    """Wrap each payload builder into an async fetcher that echoes its window."""
    lookback_hours = client.config.default_lookback_hours

    def _make(category: str, builder) -> Fetcher:
        async def _fetch(time_range: Optional[TimeRange], filters: Optional[list[str]] = None) -> FetchResponse:
            window = time_range or TimeRange.last_hours(lookback_hours)
            try:
                payload = await asyncio.to_thread(builder, client, window, filters)
            except UpstreamError as exc:
                logger.warning("[analytics] %s fetch failed: %s", category, exc)
                return FetchResponse.failure(exc)
            return FetchResponse(success=True, payload=payload, time_range=window)

        return _fetch

    return {category: _make(category, builder) for category, builder in _PAYLOAD_BUILDERS.items()}
