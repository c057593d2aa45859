"""
FastAPI service for audio report generation.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional, Union

from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from pydantic import BaseModel, ConfigDict, Field

from audioreport.errors import JobNotFoundError
from audioreport.models import AudioJob, JobHandle, ReportResult
from audioreport.orchestrator import ReportOrchestrator, build_request, create_orchestrator

logger = logging.getLogger(__name__)

_orchestrator: Optional[ReportOrchestrator] = None


def get_orchestrator() -> ReportOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = create_orchestrator()
    return _orchestrator


class HealthResponse(BaseModel):
    status: str


class ReportRequestBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    timeframe: Optional[Union[str, list[int]]] = Field(
        default=None,
        description='Relative phrase such as "last 7 days", or [start_epoch, end_epoch].',
    )
    focus_area: str = "general"
    include_asset_list: bool = False
    async_mode: bool = False


@asynccontextmanager
async def lifespan(app: FastAPI):
    orchestrator = get_orchestrator()
    logger.info("[api] ready tts_provider=%s", orchestrator.config.tts_provider)
    yield
    await orchestrator.registry.shutdown()


app = FastAPI(title="Audio Report API", version="0.1.0", lifespan=lifespan)
FastAPIInstrumentor.instrument_app(app)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok")


@app.post("/reports", response_model=Union[ReportResult, JobHandle])
async def create_report(request: ReportRequestBody, response: Response) -> Union[ReportResult, JobHandle]:
    try:
        report_request = build_request(
            timeframe=request.timeframe,
            focus_area=request.focus_area,
            include_asset_list=request.include_asset_list,
            async_mode=request.async_mode,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    orchestrator = get_orchestrator()
    if report_request.async_mode:
        response.status_code = 202
        return orchestrator.start_job(report_request)
    try:
        return await orchestrator.run_sync(report_request)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@app.get("/reports/jobs/{job_id}", response_model=AudioJob)
def get_job_status(job_id: str) -> AudioJob:
    try:
        return get_orchestrator().get_status(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")


@app.post("/reports/jobs/{job_id}/cancel", response_model=AudioJob)
def cancel_job(job_id: str) -> AudioJob:
    try:
        return get_orchestrator().cancel_job(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
