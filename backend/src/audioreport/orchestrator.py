"""
Report Orchestrator - aggregate, condense, synthesize and publish.

Synchronous requests block for the whole pipeline and get a ReportResult.
Asynchronous requests get a JobHandle at once; the pipeline runs as a
background task that records its progress in the JobRegistry.
"""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from audioreport.aggregator import DataAggregator
from audioreport.analytics import MuxDataClient, build_category_fetchers
from audioreport.condenser import TextCondenser
from audioreport.config import Config
from audioreport.errors import InvalidJobTransition, ReportPipelineError, redact_secrets
from audioreport.gemini import GeminiClient
from audioreport.jobs import CANCELLED_MESSAGE, JobRegistry
from audioreport.media import MediaUploader, MuxUploadClient
from audioreport.models import (
    AudioJob,
    FocusArea,
    JobHandle,
    JobStatus,
    ReportRequest,
    ReportResult,
    UploadOutcome,
)
from audioreport.report import build_report_text
from audioreport.speech import SpeechSynthesizer, create_speech_provider
from audioreport.timeframe import TimeframeInput, parse_timeframe

logger = logging.getLogger(__name__)


def build_request(
    timeframe: TimeframeInput = None,
    focus_area: Optional[str] = None,
    include_asset_list: bool = False,
    async_mode: bool = False,
) -> ReportRequest:
    """Build a ReportRequest from loosely typed inputs. Raises ValueError on bad input."""
    return ReportRequest(
        time_range=parse_timeframe(timeframe),
        focus_area=FocusArea.parse(focus_area),
        include_asset_list=include_asset_list,
        async_mode=async_mode,
    )


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, ReportPipelineError):
        return exc.message
    return redact_secrets(f"{exc.__class__.__name__}: {exc}")


class ReportOrchestrator:
    def __init__(
        self,
        aggregator: DataAggregator,
        condenser: TextCondenser,
        synthesizer: SpeechSynthesizer,
        uploader: MediaUploader,
        registry: Optional[JobRegistry] = None,
        config: Optional[Config] = None,
    ):
        self.aggregator = aggregator
        self.condenser = condenser
        self.synthesizer = synthesizer
        self.uploader = uploader
        self.registry = registry or JobRegistry()
        self.config = config or uploader.config

    async def run(self, request: ReportRequest) -> Union[ReportResult, JobHandle]:
        if request.async_mode:
            return self.start_job(request)
        return await self.run_sync(request)

    async def run_sync(self, request: ReportRequest) -> ReportResult:
        """Run every stage in order; synthesis or upload failures give a partial result."""
        result = await self._compose(request)
        try:
            outcome = await self._publish(result)
        except ReportPipelineError as exc:
            logger.error("[orchestrator] publish failed: %s", exc.message)
            result.error = exc.message
            return result
        self._apply_outcome(result, outcome)
        return result

    def start_job(self, request: ReportRequest) -> JobHandle:
        """Register a queued job and schedule the pipeline on the running loop."""
        job = self.registry.create()
        task = self.registry.spawn(job.id, self._run_job(job.id, request))
        task.add_done_callback(lambda finished: self._on_job_done(job.id, finished))
        return JobHandle(job_id=job.id, status=job.status)

    def get_status(self, job_id: str) -> AudioJob:
        """Snapshot of a job; raises JobNotFoundError for unknown ids."""
        return self.registry.get(job_id)

    def cancel_job(self, job_id: str) -> AudioJob:
        self.registry.cancel(job_id)
        return self.registry.get(job_id)

    async def _compose(self, request: ReportRequest) -> ReportResult:
        snapshot = await self.aggregator.aggregate(request)
        report_text = build_report_text(snapshot, request.focus_area)
        summary = await self.condenser.condense(report_text)
        return ReportResult(
            report_text=report_text,
            audio_summary=summary.text,
            summary_truncated=summary.truncated,
            focus_area=request.focus_area,
            time_range=snapshot.time_range,
            failed_categories=[failure.category for failure in snapshot.failed],
        )

    async def _publish(self, result: ReportResult) -> UploadOutcome:
        audio = await self.synthesizer.synthesize(result.audio_summary or result.report_text)
        if self.config.audio_output_dir is not None:
            result.audio_path = await asyncio.to_thread(self._save_audio, audio)
        return await self.uploader.upload(audio)

    def _save_audio(self, audio: bytes) -> str:
        output_dir = Path(self.config.audio_output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = output_dir / f"report_{stamp}_{int(time.time() * 1000) % 1000:03d}.wav"
        path.write_bytes(audio)
        return str(path)

    @staticmethod
    def _apply_outcome(result: ReportResult, outcome: UploadOutcome) -> None:
        result.upload_id = outcome.upload_id
        result.asset_id = outcome.asset_id
        result.player_url = outcome.player_url

    async def _run_job(self, job_id: str, request: ReportRequest) -> None:
        started = time.perf_counter()
        try:
            self.registry.update(job_id, status=JobStatus.PROCESSING)
            result = await self._compose(request)
            outcome = await self._publish(result)
        except Exception as exc:
            message = _error_message(exc)
            logger.error("[orchestrator] job %s failed: %s", job_id, message)
            self._mark_error(job_id, message)
            return

        self.registry.update(
            job_id,
            status=JobStatus.UPLOADED,
            player_url=outcome.player_url,
            asset_id=outcome.asset_id,
            upload_id=outcome.upload_id,
        )
        logger.info(
            "[orchestrator] job %s uploaded in %.1fs asset=%s",
            job_id,
            time.perf_counter() - started,
            "confirmed" if outcome.asset_confirmed else "pending",
        )

    def _on_job_done(self, job_id: str, task: asyncio.Task) -> None:
        if task.cancelled():
            self._mark_error(job_id, CANCELLED_MESSAGE)

    def _mark_error(self, job_id: str, message: str) -> None:
        try:
            self.registry.update(job_id, status=JobStatus.ERROR, error=message)
        except InvalidJobTransition:
            logger.info("[orchestrator] job %s already finished; keeping its status", job_id)


def create_orchestrator(config: Optional[Config] = None) -> ReportOrchestrator:
    """Wire the default Mux + Gemini stack."""
    config = config or Config.from_env()
    gemini = GeminiClient(config)
    aggregator = DataAggregator(
        build_category_fetchers(MuxDataClient(config)),
        fetch_timeout_seconds=config.fetch_timeout_seconds,
        default_lookback_hours=config.default_lookback_hours,
    )
    return ReportOrchestrator(
        aggregator=aggregator,
        condenser=TextCondenser(gemini.generate_text_async, config=config),
        synthesizer=SpeechSynthesizer(create_speech_provider(config, gemini)),
        uploader=MediaUploader(MuxUploadClient(config), config),
        registry=JobRegistry(),
        config=config,
    )
