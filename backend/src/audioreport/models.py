"""
Data models for the audio report pipeline.

Value objects are frozen; AudioJob is the only entity that changes over time
and it is only ever changed through the JobRegistry.
"""
import time
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ReportModel(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, validate_assignment=True)


class FrozenReportModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class FocusArea(str, Enum):
    """Which category of analytics a report should emphasize."""
    GENERAL = "general"
    ERRORS = "errors"
    BOTH = "both"
    STREAMING = "streaming"
    CDN = "cdn"
    ENGAGEMENT = "engagement"

    @classmethod
    def parse(cls, value: Optional[str]) -> "FocusArea":
        normalized = (value or "general").strip().lower()
        if normalized == "comprehensive":
            return cls.BOTH
        return cls(normalized)


class TimeRange(FrozenReportModel):
    """Half-open analysis window in epoch seconds."""
    start: int
    end: int

    @model_validator(mode="after")
    def _check_order(self) -> "TimeRange":
        if self.start >= self.end:
            raise ValueError(f"time range start ({self.start}) must be before end ({self.end})")
        return self

    @classmethod
    def last_hours(cls, hours: float, now: Optional[float] = None) -> "TimeRange":
        end = int(now if now is not None else time.time())
        return cls(start=end - int(hours * 3600), end=end)

    def as_list(self) -> list[int]:
        return [self.start, self.end]


class ReportRequest(FrozenReportModel):
    """One incoming report query; never mutated after construction."""
    time_range: Optional[TimeRange] = None
    focus_area: FocusArea = FocusArea.GENERAL
    include_asset_list: bool = False
    async_mode: bool = False


class CategorySuccess(FrozenReportModel):
    status: Literal["ok"] = "ok"
    category: str
    payload: dict[str, Any] = Field(default_factory=dict)
    time_range: Optional[TimeRange] = None

    @property
    def ok(self) -> bool:
        return True


class CategoryFailure(FrozenReportModel):
    status: Literal["failed"] = "failed"
    category: str
    reason: str

    @property
    def ok(self) -> bool:
        return False


CategoryResult = Annotated[Union[CategorySuccess, CategoryFailure], Field(discriminator="status")]


class ReportSnapshot(FrozenReportModel):
    """Ordered per-category results plus the time range actually used."""
    results: list[CategoryResult]
    time_range: TimeRange

    @model_validator(mode="after")
    def _require_attempts(self) -> "ReportSnapshot":
        if not self.results:
            raise ValueError("a report snapshot needs at least one attempted category")
        return self

    @property
    def succeeded(self) -> list[CategorySuccess]:
        return [result for result in self.results if isinstance(result, CategorySuccess)]

    @property
    def failed(self) -> list[CategoryFailure]:
        return [result for result in self.results if isinstance(result, CategoryFailure)]

    def payload(self, category: str) -> Optional[dict[str, Any]]:
        """Return the payload of a successful category, or None."""
        for result in self.results:
            if result.category == category and isinstance(result, CategorySuccess):
                return result.payload
        return None


class UploadSlot(FrozenReportModel):
    """A single-use destination issued by the media host."""
    upload_id: str
    upload_url: str
    asset_id: Optional[str] = None


class UploadStatus(FrozenReportModel):
    upload_id: str
    status: Optional[str] = None
    asset_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def errored(self) -> bool:
        return (self.status or "").lower() == "errored"


class UploadOutcome(FrozenReportModel):
    """Result of the media uploader; asset fields stay empty on poll timeout."""
    upload_id: str
    asset_id: Optional[str] = None
    player_url: Optional[str] = None

    @property
    def asset_confirmed(self) -> bool:
        return self.asset_id is not None


class CondensedText(FrozenReportModel):
    text: str
    truncated: bool = False
    condensed: bool = False

    @property
    def word_count(self) -> int:
        return len(self.text.split())


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    UPLOADED = "uploaded"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.UPLOADED, JobStatus.ERROR)


class AudioJob(ReportModel):
    """State of one background report job."""
    id: str
    status: JobStatus = JobStatus.QUEUED
    created_at: float
    updated_at: float
    error: Optional[str] = None
    player_url: Optional[str] = None
    asset_id: Optional[str] = None
    upload_id: Optional[str] = None


class ReportResult(ReportModel):
    """Returned directly to the caller in synchronous mode."""
    report_text: str
    audio_summary: Optional[str] = None
    summary_truncated: bool = False
    focus_area: FocusArea
    time_range: TimeRange
    player_url: Optional[str] = None
    asset_id: Optional[str] = None
    upload_id: Optional[str] = None
    failed_categories: list[str] = Field(default_factory=list)
    audio_path: Optional[str] = None
    error: Optional[str] = None


class JobHandle(ReportModel):
    """Returned immediately in asynchronous mode."""
    job_id: str
    status: JobStatus = JobStatus.QUEUED
    estimated_seconds: int = 45
    message: str = (
        "Audio generation started in background. "
        "Poll job status to retrieve the player URL when ready."
    )
