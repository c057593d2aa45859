from __future__ import annotations

import pytest

from audioreport.config import validate_credential
from audioreport.errors import (
    ConfigurationError,
    ErrorKind,
    JobNotFoundError,
    SpeechSynthesisError,
    UploadSlotError,
    UpstreamError,
    is_transient,
    redact_secrets,
)

LEAKED_TOKEN = "sk9f8e7d6c5b4a3f2e1d0c9b8a7"


def test_redact_secrets_replaces_long_alphanumeric_runs() -> None:
    message = f"401 Unauthorized for token {LEAKED_TOKEN} (user abc123)"

    redacted = redact_secrets(message)

    assert LEAKED_TOKEN not in redacted
    assert "[REDACTED]" in redacted
    assert "abc123" in redacted


def test_error_messages_are_redacted_on_construction() -> None:
    error = SpeechSynthesisError(f"provider said: bad key {LEAKED_TOKEN}")

    assert LEAKED_TOKEN not in str(error)
    assert error.message == str(error)


@pytest.mark.parametrize(
    ("status_code", "kind"),
    [
        (500, ErrorKind.TRANSIENT),
        (503, ErrorKind.TRANSIENT),
        (429, ErrorKind.TRANSIENT),
        (400, ErrorKind.PERMANENT),
        (401, ErrorKind.PERMANENT),
        (404, ErrorKind.PERMANENT),
    ],
)
def test_upstream_error_kind_follows_status(status_code: int, kind: ErrorKind) -> None:
    error = UpstreamError.from_response("mux", status_code, "body")

    assert error.kind is kind
    assert error.status_code == status_code
    assert is_transient(error) is (kind is ErrorKind.TRANSIENT)


def test_upstream_error_body_is_truncated_and_redacted() -> None:
    body = f"token={LEAKED_TOKEN} " + "x " * 600

    error = UpstreamError.from_response("mux", 500, body)

    assert LEAKED_TOKEN not in str(error)
    assert str(error).startswith("mux request failed (500): ")
    assert str(error).endswith("...")


def test_unreachable_is_transient() -> None:
    error = UpstreamError.unreachable("mux", TimeoutError("read timed out"))

    assert is_transient(error)
    assert "TimeoutError" in str(error)


def test_upload_slot_error_is_always_permanent() -> None:
    error = UploadSlotError("slot failed", status_code=503)

    assert error.kind is ErrorKind.PERMANENT
    assert not is_transient(error)


def test_is_transient_ignores_message_text() -> None:
    assert not is_transient(RuntimeError("503 Service Unavailable, please retry"))


def test_job_not_found_message() -> None:
    error = JobNotFoundError("job_123")

    assert str(error) == "job not found: job_123"
    assert error.job_id == "job_123"


@pytest.mark.parametrize(
    "value",
    [None, "", "   ", "your_mux_token_id", "paste_key_here_please_000", "tooshort"],
)
def test_validate_credential_rejects_bad_values(value) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        validate_credential(value, "MUX_TOKEN_ID")

    assert "MUX_TOKEN_ID" in str(excinfo.value)


def test_validate_credential_accepts_plausible_key() -> None:
    key = "  a1b2c3d4e5f6a7b8c9d0e1f2  "

    assert validate_credential(key, "MUX_TOKEN_SECRET") == key.strip()
