"""In-process registry of background report jobs."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Coroutine, Optional

from audioreport.errors import InvalidJobTransition, JobNotFoundError
from audioreport.models import AudioJob, JobStatus

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Job cancelled"

_ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.PROCESSING, JobStatus.ERROR}),
    JobStatus.PROCESSING: frozenset({JobStatus.UPLOADED, JobStatus.ERROR}),
    JobStatus.UPLOADED: frozenset(),
    JobStatus.ERROR: frozenset(),
}

_UNSET: Any = object()


@dataclass
class JobRegistry:
    """
    Lock-guarded map of job id -> AudioJob.

    Callers only see copies. Entries are kept for the life of the process.
    """

    clock: Callable[[], float] = time.time
    _jobs: dict[str, AudioJob] = field(default_factory=dict)
    _tasks: dict[str, asyncio.Task] = field(default_factory=dict)
    _lock: Lock = field(default_factory=Lock)

    def create(self) -> AudioJob:
        job_id = f"job_{uuid.uuid4().hex}"
        now = self.clock()
        job = AudioJob(id=job_id, created_at=now, updated_at=now)
        with self._lock:
            self._jobs[job_id] = job
        logger.info("[jobs] created %s", job_id)
        return job.model_copy()

    def get(self, job_id: str) -> AudioJob:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return job.model_copy()

    def update(
        self,
        job_id: str,
        *,
        status: Optional[JobStatus] = None,
        error: Optional[str] = _UNSET,
        player_url: Optional[str] = _UNSET,
        asset_id: Optional[str] = _UNSET,
        upload_id: Optional[str] = _UNSET,
    ) -> AudioJob:
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFoundError(job_id)
            if status is not None and status != current.status:
                if status not in _ALLOWED_TRANSITIONS[current.status]:
                    raise InvalidJobTransition(
                        f"Job {job_id} cannot move from {current.status.value} to {status.value}"
                    )
            elif current.status.is_terminal:
                raise InvalidJobTransition(f"Job {job_id} is already {current.status.value}")

            changes: dict[str, Any] = {"updated_at": max(current.updated_at, self.clock())}
            if status is not None:
                changes["status"] = status
            for name, value in (
                ("error", error),
                ("player_url", player_url),
                ("asset_id", asset_id),
                ("upload_id", upload_id),
            ):
                if value is not _UNSET:
                    changes[name] = value
            updated = current.model_copy(update=changes)
            self._jobs[job_id] = updated
        logger.info("[jobs] %s -> %s", job_id, updated.status.value)
        return updated.model_copy()

    def spawn(self, job_id: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Run coro as the single background writer for job_id."""
        task = asyncio.create_task(coro, name=job_id)
        with self._lock:
            self._tasks[job_id] = task
        task.add_done_callback(lambda _: self._forget_task(job_id))
        return task

    def _forget_task(self, job_id: str) -> None:
        with self._lock:
            self._tasks.pop(job_id, None)

    def cancel(self, job_id: str) -> bool:
        """Request cancellation; returns False if the job has no running task."""
        self.get(job_id)
        with self._lock:
            task = self._tasks.get(job_id)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def shutdown(self) -> None:
        with self._lock:
            tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("[jobs] cancelled %d running jobs on shutdown", len(tasks))
