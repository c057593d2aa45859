"""
Media host client and uploader.

Publishing is two-phase: ask Mux for a single-use upload slot, PUT the WAV
bytes to it, then poll the upload until Mux reports the asset it created.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import quote

import requests

from audioreport.config import Config, default_config, validate_credential
from audioreport.errors import (
    UnrecognizedResponseError,
    UploadFailedError,
    UploadSlotError,
    UpstreamError,
    is_transient,
    redact_secrets,
)
from audioreport.models import UploadOutcome, UploadSlot, UploadStatus
from audioreport.retry import RetryExecutor, RetryPolicy

logger = logging.getLogger(__name__)

_MAX_DECODE_DEPTH = 3


def _envelope_record(raw: Any) -> Optional[Any]:
    if isinstance(raw, dict) and isinstance(raw.get("data"), dict):
        return raw["data"]
    return None


def _text_items(items: Any) -> Optional[Any]:
    if not isinstance(items, list):
        return None
    for item in items:
        if isinstance(item, dict) and item.get("type") == "text" and isinstance(item.get("text"), str):
            try:
                return json.loads(item["text"])
            except json.JSONDecodeError:
                continue
    return None


def _content_list_record(raw: Any) -> Optional[Any]:
    return _text_items(raw)


def _content_object_record(raw: Any) -> Optional[Any]:
    if isinstance(raw, dict):
        return _text_items(raw.get("content"))
    return None


def _plain_record(raw: Any) -> Optional[Any]:
    if isinstance(raw, dict) and raw.get("id"):
        return raw
    return None


# Tried in order; the first shape that matches wins.
_UPLOAD_RECORD_SHAPES: tuple[tuple[str, Callable[[Any], Optional[Any]]], ...] = (
    ("envelope", _envelope_record),
    ("content-list", _content_list_record),
    ("content-object", _content_object_record),
    ("plain", _plain_record),
)


def decode_upload_record(raw: Any, _depth: int = 0) -> dict[str, Any]:
    """
    Decode an upload record from any of the response shapes Mux and its
    tool wrappers produce.

    Raises:
        UnrecognizedResponseError: if no known shape yields a record with an id
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise UnrecognizedResponseError("Upload response is not valid JSON") from exc

    for name, decode in _UPLOAD_RECORD_SHAPES:
        record = decode(raw)
        if record is None:
            continue
        if name == "plain":
            return record
        if _depth >= _MAX_DECODE_DEPTH:
            break
        try:
            return decode_upload_record(record, _depth + 1)
        except UnrecognizedResponseError:
            continue

    shape = type(raw).__name__
    keys = sorted(raw)[:5] if isinstance(raw, dict) else []
    raise UnrecognizedResponseError(f"Unrecognized upload response shape: {shape} keys={keys}")


def is_plausible_asset_id(asset_id: Optional[str], min_length: int = 20) -> bool:
    return bool(asset_id) and len(asset_id.strip()) >= min_length


def build_player_url(base_url: str, asset_id: str) -> str:
    return f"{base_url.rstrip('/')}/player?assetId={quote(asset_id, safe='')}"


class MuxUploadClient:
    """Blocking client for the Mux direct-upload API."""

    service = "mux"

    def __init__(self, config: Optional[Config] = None, session: Optional[requests.Session] = None):
        self.config = config or default_config
        self._session = session or requests.Session()

    def _auth(self) -> tuple[str, str]:
        return (
            validate_credential(self.config.mux_token_id, "MUX_TOKEN_ID"),
            validate_credential(self.config.mux_token_secret, "MUX_TOKEN_SECRET"),
        )

    def _url(self, path: str) -> str:
        return f"{self.config.mux_base_url.rstrip('/')}{path}"

    def create_upload(
        self,
        cors_origin: str,
        playback_policy: str = "signed",
        poster_image_url: Optional[str] = None,
    ) -> UploadSlot:
        """Request a new upload slot. Never retried."""
        asset_settings: dict[str, Any] = {}
        if playback_policy and playback_policy != "public":
            asset_settings["playback_policies"] = [playback_policy]
        if poster_image_url:
            asset_settings["inputs"] = [{"url": poster_image_url, "type": "video"}]
        body: dict[str, Any] = {"cors_origin": cors_origin}
        if asset_settings:
            body["new_asset_settings"] = asset_settings

        try:
            response = self._session.post(
                self._url("/video/v1/uploads"),
                json=body,
                auth=self._auth(),
                timeout=self.config.request_timeout_seconds,
            )
        except requests.RequestException as exc:
            raise UploadSlotError(f"Upload slot request failed: {exc}") from exc
        if response.status_code >= 400:
            failure = UpstreamError.from_response(self.service, response.status_code, response.text or "")
            raise UploadSlotError(failure.message, status_code=response.status_code)

        try:
            record = decode_upload_record(response.json())
        except ValueError as exc:
            raise UnrecognizedResponseError("Upload slot response is not JSON") from exc
        if not record.get("url"):
            raise UploadSlotError("Upload slot response has no upload URL")
        return UploadSlot(
            upload_id=str(record["id"]),
            upload_url=str(record["url"]),
            asset_id=record.get("asset_id"),
        )

    def put_bytes(self, upload_url: str, data: bytes, timeout: float) -> None:
        try:
            response = self._session.put(
                upload_url,
                data=data,
                headers={"Content-Type": "audio/wav"},
                timeout=timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamError.from_transport("mux-upload", exc) from exc
        if response.status_code >= 400:
            raise UpstreamError.from_response("mux-upload", response.status_code, response.text or "")

    def get_upload(self, upload_id: str) -> UploadStatus:
        try:
            response = self._session.get(
                self._url(f"/video/v1/uploads/{quote(upload_id, safe='')}"),
                auth=self._auth(),
                timeout=self.config.request_timeout_seconds,
            )
        except requests.RequestException as exc:
            raise UpstreamError.from_transport(self.service, exc) from exc
        if response.status_code >= 400:
            raise UpstreamError.from_response(self.service, response.status_code, response.text or "")

        try:
            record = decode_upload_record(response.json())
        except ValueError as exc:
            raise UnrecognizedResponseError("Upload status response is not JSON") from exc
        error = record.get("error")
        if isinstance(error, dict):
            error = error.get("message") or error.get("type")
        return UploadStatus(
            upload_id=str(record.get("id") or upload_id),
            status=record.get("status"),
            asset_id=record.get("asset_id"),
            error=str(error) if error else None,
        )


class MediaUploader:
    """Create slot, push bytes under retry, then resolve the asset id."""

    def __init__(
        self,
        client: MuxUploadClient,
        config: Optional[Config] = None,
        *,
        retry_executor: Optional[RetryExecutor] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.client = client
        self.config = config or client.config
        self.retry_executor = retry_executor or RetryExecutor()
        self._sleep = sleep or asyncio.sleep
        self.put_policy = RetryPolicy.for_upload(self.config)

    def _plausible(self, asset_id: Optional[str]) -> Optional[str]:
        if is_plausible_asset_id(asset_id, self.config.min_asset_id_length):
            return asset_id
        if asset_id:
            logger.warning("[media] ignoring implausible asset id (%d chars)", len(asset_id))
        return None

    async def upload(self, audio: bytes) -> UploadOutcome:
        slot = await asyncio.to_thread(
            self.client.create_upload,
            self.config.cors_origin,
            self.config.playback_policy,
            self.config.poster_image_url,
        )
        logger.info("[media] upload slot created upload_id=%s", slot.upload_id)

        async def _push() -> None:
            await asyncio.to_thread(
                self.client.put_bytes,
                slot.upload_url,
                audio,
                self.config.upload_timeout_seconds,
            )

        await self.retry_executor.execute(_push, self.put_policy, operation_name="upload PUT")
        logger.info("[media] pushed %d bytes upload_id=%s", len(audio), slot.upload_id)

        asset_id = self._plausible(slot.asset_id)
        if asset_id is None:
            asset_id = await self.poll_for_asset(slot.upload_id)

        return UploadOutcome(
            upload_id=slot.upload_id,
            asset_id=asset_id,
            player_url=build_player_url(self.config.player_base_url, asset_id) if asset_id else None,
        )

    async def poll_for_asset(self, upload_id: str) -> Optional[str]:
        """
        Poll the upload until an asset id appears.

        Returns None when attempts run out. Raises UploadFailedError as soon as
        the host reports the upload errored, and re-raises a permanent HTTP
        rejection of the poll itself. Transport failures count as an attempt.
        """
        attempts = self.config.poll_max_attempts
        for attempt in range(1, attempts + 1):
            await self._sleep(self.config.poll_interval_seconds)
            try:
                status = await asyncio.to_thread(self.client.get_upload, upload_id)
            except (UpstreamError, UnrecognizedResponseError) as exc:
                if isinstance(exc, UpstreamError) and exc.status_code is not None and not is_transient(exc):
                    logger.error("[media] poll rejected, giving up: %s", exc)
                    raise
                logger.warning(
                    "[media] poll %d/%d failed: %s", attempt, attempts, redact_secrets(exc)
                )
                continue

            if status.errored:
                raise UploadFailedError(
                    f"Upload {upload_id} errored: {status.error or 'unknown error'}"
                )
            asset_id = self._plausible(status.asset_id)
            if asset_id:
                logger.info("[media] asset ready after %d polls", attempt)
                return asset_id

        logger.warning(
            "[media] no asset id after %d polls; upload %s may still be processing",
            attempts,
            upload_id,
        )
        return None
