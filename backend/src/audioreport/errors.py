"""Error taxonomy for the report-and-publish pipeline.

Every error is tagged as transient or permanent where it is raised, and its
message is scrubbed of credential-looking substrings before it can be logged,
stored on a job, or returned to a caller.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Optional

import requests

_SECRET_PATTERN = re.compile(r"[A-Za-z0-9]{20,}")
_MAX_BODY_CHARS = 500

# Connection dropped or stalled mid-exchange; a fresh attempt may succeed.
_TRANSIENT_TRANSPORT_ERRORS = (
    requests.Timeout,
    requests.ConnectionError,
    requests.exceptions.ChunkedEncodingError,
)

REDACTED = "[REDACTED]"


def redact_secrets(message: object) -> str:
    """Replace every run of 20+ alphanumeric characters with a placeholder."""
    return _SECRET_PATTERN.sub(REDACTED, str(message or ""))


def _truncate_error_text(raw_error_text: str, max_length: int = _MAX_BODY_CHARS) -> str:
    error_text = (raw_error_text or "").strip()
    if len(error_text) > max_length:
        return error_text[:max_length] + "..."
    return error_text


class ErrorKind(Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class ReportPipelineError(RuntimeError):
    """Base error; the message is redacted on construction."""

    kind: ErrorKind = ErrorKind.PERMANENT

    def __init__(self, message: object, *, kind: Optional[ErrorKind] = None):
        if kind is not None:
            self.kind = kind
        super().__init__(redact_secrets(message))

    @property
    def message(self) -> str:
        return str(self)


class ConfigurationError(ReportPipelineError):
    """Missing or malformed settings such as credentials."""


class UpstreamError(ReportPipelineError):
    """An external collaborator answered with an error or could not be reached."""

    def __init__(
        self,
        message: object,
        *,
        service: str,
        status_code: Optional[int] = None,
        kind: ErrorKind = ErrorKind.PERMANENT,
    ):
        self.service = service
        self.status_code = status_code
        super().__init__(message, kind=kind)

    @staticmethod
    def kind_for_status(status_code: int) -> ErrorKind:
        if status_code == 429 or status_code >= 500:
            return ErrorKind.TRANSIENT
        return ErrorKind.PERMANENT

    @classmethod
    def from_response(cls, service: str, status_code: int, body: str = "", **kwargs) -> "UpstreamError":
        error_text = _truncate_error_text(body)
        return cls(
            f"{service} request failed ({status_code}): {error_text}".rstrip(": "),
            service=service,
            status_code=status_code,
            kind=cls.kind_for_status(status_code),
            **kwargs,
        )

    @classmethod
    def unreachable(cls, service: str, exc: BaseException) -> "UpstreamError":
        return cls(
            f"{service} unreachable: {exc.__class__.__name__}: {exc}",
            service=service,
            kind=ErrorKind.TRANSIENT,
        )

    @classmethod
    def from_transport(cls, service: str, exc: requests.RequestException) -> "UpstreamError":
        """Wrap a requests failure that produced no usable response."""
        if isinstance(exc, _TRANSIENT_TRANSPORT_ERRORS):
            return cls.unreachable(service, exc)
        return cls(
            f"{service} request failed: {exc.__class__.__name__}: {exc}",
            service=service,
            kind=ErrorKind.PERMANENT,
        )


class UploadSlotError(UpstreamError):
    """The media host refused to issue an upload slot."""

    def __init__(
        self,
        message: object,
        *,
        service: str = "mux",
        status_code: Optional[int] = None,
    ):
        # Slot creation is never retried, whatever the status code says.
        super().__init__(
            message, service=service, status_code=status_code, kind=ErrorKind.PERMANENT
        )


class UploadFailedError(ReportPipelineError):
    """The media host reported that processing of the uploaded bytes errored."""


class UnrecognizedResponseError(ReportPipelineError):
    """A collaborator response matched none of the known shapes."""


class SpeechSynthesisError(ReportPipelineError):
    """The text-to-speech provider failed; fatal to the job."""


class JobNotFoundError(KeyError):
    """No job is registered under the requested id."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(job_id)

    def __str__(self) -> str:
        return f"job not found: {self.job_id}"


class InvalidJobTransition(ReportPipelineError):
    """A job status change that the lifecycle does not allow."""


def is_transient(exc: BaseException) -> bool:
    """Classify by the tag attached at raise time; never by message text."""
    return getattr(exc, "kind", None) is ErrorKind.TRANSIENT
