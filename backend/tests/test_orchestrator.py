from __future__ import annotations

import asyncio
import re
from pathlib import Path

import requests

from audioreport.errors import SpeechSynthesisError
from audioreport.jobs import CANCELLED_MESSAGE
from audioreport.media import MediaUploader, MuxUploadClient
from audioreport.models import JobHandle, JobStatus, ReportResult, UploadOutcome
from audioreport.orchestrator import ReportOrchestrator, build_request
from audioreport.retry import RetryExecutor
from fakes import (
    ASSET_ID,
    MUX_TOKEN_SECRET,
    NO_ERRORS,
    FakeSession,
    FakeSpeechProvider,
    FakeUploader,
    _DummyResponse,
    build_orchestrator,
    failing_fetcher,
    make_config,
    ok_fetcher,
)


async def _wait_terminal(orchestrator: ReportOrchestrator, job_id: str, timeout: float = 2.0):
    async def _poll():
        while True:
            job = orchestrator.get_status(job_id)
            if job.status.is_terminal:
                return job
            await asyncio.sleep(0.01)

    return await asyncio.wait_for(_poll(), timeout)


def test_sync_errors_report_with_zero_errors() -> None:
    calls: list = []
    orchestrator = build_orchestrator(fetchers={"errors": ok_fetcher(NO_ERRORS, calls=calls)})
    request = build_request(timeframe="last 7 days", focus_area="errors", async_mode=False)

    result = asyncio.run(orchestrator.run(request))

    assert isinstance(result, ReportResult)
    assert "Error Details" not in result.report_text
    assert "Great news! No errors were detected" in result.report_text
    assert result.player_url == f"https://www.streamingportfolio.com/player?assetId={ASSET_ID}"
    assert result.asset_id == ASSET_ID
    assert result.error is None
    assert calls[0].end - calls[0].start == 7 * 86400


def test_async_mode_returns_job_and_converges() -> None:
    async def scenario():
        gate = asyncio.Event()
        config = make_config()
        orchestrator = build_orchestrator(config, uploader=FakeUploader(config, gate=gate))

        handle = await orchestrator.run(build_request(async_mode=True))
        first = orchestrator.get_status(handle.job_id)

        await asyncio.sleep(0.05)
        during = orchestrator.get_status(handle.job_id)
        gate.set()
        final = await _wait_terminal(orchestrator, handle.job_id)
        again = orchestrator.get_status(handle.job_id)
        return handle, first, during, final, again

    handle, first, during, final, again = asyncio.run(scenario())

    assert isinstance(handle, JobHandle)
    assert handle.job_id.startswith("job_")
    assert first.status in (JobStatus.QUEUED, JobStatus.PROCESSING)
    assert during.status is JobStatus.PROCESSING
    assert final.status is JobStatus.UPLOADED
    assert final.asset_id == ASSET_ID
    assert final.player_url.endswith(ASSET_ID)
    assert again == final


def test_slot_auth_failure_ends_job_in_error_without_credentials() -> None:
    body = f'{{"error":{{"type":"unauthorized","messages":["Invalid token {MUX_TOKEN_SECRET}"]}}}}'
    config = make_config()
    session = FakeSession(post=[_DummyResponse(401, None, body)])
    uploader = MediaUploader(MuxUploadClient(config, session=session), config, retry_executor=RetryExecutor())

    async def scenario():
        orchestrator = build_orchestrator(config, uploader=uploader)
        handle = await orchestrator.run(build_request(async_mode=True))
        return await _wait_terminal(orchestrator, handle.job_id)

    job = asyncio.run(scenario())

    assert job.status is JobStatus.ERROR
    assert "401" in job.error
    assert MUX_TOKEN_SECRET not in job.error
    assert not re.search(r"[A-Za-z0-9]{20,}", job.error)


def test_sync_transport_failure_during_push_returns_partial_result() -> None:
    config = make_config()
    session = FakeSession(
        post=[_DummyResponse(201, {"data": {"id": "up1", "url": "https://storage/up1", "status": "waiting"}})],
        put=[requests.TooManyRedirects("Exceeded 30 redirects.")],
    )
    uploader = MediaUploader(MuxUploadClient(config, session=session), config, retry_executor=RetryExecutor())
    orchestrator = build_orchestrator(config, uploader=uploader)

    result = asyncio.run(orchestrator.run(build_request(focus_area="general")))

    assert isinstance(result, ReportResult)
    assert result.report_text
    assert "TooManyRedirects" in result.error
    assert result.player_url is None
    assert len(session.calls) == 2


def test_sync_synthesis_failure_returns_partial_result() -> None:
    provider = FakeSpeechProvider(error=SpeechSynthesisError("voice unavailable"))
    orchestrator = build_orchestrator(provider=provider)

    result = asyncio.run(orchestrator.run(build_request(focus_area="general")))

    assert result.report_text
    assert result.audio_summary
    assert result.error == "voice unavailable"
    assert result.player_url is None


def test_async_synthesis_failure_ends_job_in_error() -> None:
    provider = FakeSpeechProvider(error=RuntimeError("tts exploded"))

    async def scenario():
        orchestrator = build_orchestrator(provider=provider)
        handle = await orchestrator.run(build_request(async_mode=True))
        return await _wait_terminal(orchestrator, handle.job_id)

    job = asyncio.run(scenario())

    assert job.status is JobStatus.ERROR
    assert "tts exploded" in job.error


def test_poll_timeout_completes_job_without_asset() -> None:
    config = make_config()
    uploader = FakeUploader(config, outcome=UploadOutcome(upload_id="up-9"))

    async def scenario():
        orchestrator = build_orchestrator(config, uploader=uploader)
        handle = await orchestrator.run(build_request(async_mode=True))
        return await _wait_terminal(orchestrator, handle.job_id)

    job = asyncio.run(scenario())

    assert job.status is JobStatus.UPLOADED
    assert job.upload_id == "up-9"
    assert job.asset_id is None
    assert job.player_url is None


def test_all_fetchers_failing_still_publishes_fallback_report() -> None:
    fetchers = {name: failing_fetcher() for name in ("analytics", "streaming", "cdn", "engagement")}
    provider = FakeSpeechProvider()
    orchestrator = build_orchestrator(fetchers=fetchers, provider=provider)

    result = asyncio.run(orchestrator.run(build_request()))

    assert "currently unavailable" in result.report_text
    assert sorted(result.failed_categories) == ["analytics", "cdn", "engagement", "streaming"]
    assert provider.texts
    assert result.player_url


def test_long_report_is_condensed_before_synthesis() -> None:
    countries = [
        {"name": f"Country number {index}", "views": 1000 + index, "startup_ms": 900.0}
        for index in range(30)
    ]
    provider = FakeSpeechProvider()
    orchestrator = build_orchestrator(
        fetchers={"cdn": ok_fetcher({"countries": countries, "isps": []})}, provider=provider
    )

    result = asyncio.run(orchestrator.run(build_request(focus_area="cdn")))

    assert len(result.report_text.split()) > 90
    assert result.summary_truncated
    assert len(result.audio_summary.split()) <= 90
    assert len(provider.texts[0].split()) <= 100


def test_cancelled_job_ends_in_error() -> None:
    async def scenario():
        config = make_config()
        orchestrator = build_orchestrator(config, uploader=FakeUploader(config, gate=asyncio.Event()))
        handle = await orchestrator.run(build_request(async_mode=True))
        await asyncio.sleep(0.05)
        orchestrator.cancel_job(handle.job_id)
        return await _wait_terminal(orchestrator, handle.job_id)

    job = asyncio.run(scenario())

    assert job.status is JobStatus.ERROR
    assert job.error == CANCELLED_MESSAGE


def test_audio_copy_is_written_when_configured(tmp_path: Path) -> None:
    provider = FakeSpeechProvider(audio=b"RIFF-bytes")
    orchestrator = build_orchestrator(make_config(audio_output_dir=tmp_path), provider=provider)

    result = asyncio.run(orchestrator.run(build_request()))

    assert result.audio_path is not None
    assert Path(result.audio_path).read_bytes() == b"RIFF-bytes"
    assert Path(result.audio_path).parent == tmp_path
