"""In-process pipeline jobs with a human review gate.

    queued → running → ready_for_review → approved
                     ↘ failed           ↘ denied

Jobs live only in memory. Each submitted job runs the pipeline as an
asyncio task; callers poll ``get()`` and a reviewer approves or denies the
result once it is ready.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from provider_scout.models import Job, JobStatus, PipelineRun, RunRequest, utc_now
from provider_scout.utils.logging import get_logger, GREEN, RED, YELLOW, RESET

log = get_logger()

Runner = Callable[[RunRequest], Awaitable[PipelineRun]]

TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING}),
    JobStatus.RUNNING: frozenset({JobStatus.READY_FOR_REVIEW, JobStatus.FAILED}),
    JobStatus.READY_FOR_REVIEW: frozenset({JobStatus.APPROVED, JobStatus.DENIED}),
    JobStatus.FAILED: frozenset(),
    JobStatus.APPROVED: frozenset(),
    JobStatus.DENIED: frozenset(),
}


class JobNotFoundError(KeyError):
    def __init__(self, job_id: str):
        super().__init__(job_id)
        self.job_id = job_id

    def __str__(self) -> str:
        return f"Job not found: {self.job_id}"


class InvalidTransitionError(Exception):
    def __init__(self, job_id: str, current: JobStatus, target: JobStatus):
        super().__init__(f"Job {job_id} cannot move from {current.value} to {target.value}")
        self.job_id = job_id
        self.current = current
        self.target = target


class JobStore:
    """id → Job map owned by one app instance."""

    def __init__(self):
        self._jobs: dict[str, Job] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def add(self, job: Job) -> None:
        self._jobs[job.id] = job

    def get(self, job_id: str) -> Job:
        try:
            return self._jobs[job_id]
        except KeyError:
            raise JobNotFoundError(job_id) from None

    def put(self, job: Job) -> None:
        self._jobs[job.id] = job


class JobManager:
    def __init__(self, store: JobStore, runner: Runner):
        self._store = store
        self._runner = runner
        self._tasks: dict[str, asyncio.Task] = {}

    def submit(self, request: RunRequest) -> Job:
        """Queue a job and schedule its run. Must be called inside a running event loop."""
        job = Job(input=request)
        self._store.add(job)
        task = asyncio.get_running_loop().create_task(self._execute(job.id))
        self._tasks[job.id] = task
        task.add_done_callback(lambda _t, job_id=job.id: self._tasks.pop(job_id, None))
        log.info(f"Job {job.id} queued: {request.city}, {request.state} / {request.category}")
        return job.model_copy(deep=True)

    def get(self, job_id: str) -> Job:
        return self._store.get(job_id).model_copy(deep=True)

    def approve(self, job_id: str, reviewer: str | None = None) -> Job:
        job = self._transition(job_id, JobStatus.APPROVED, reviewer=reviewer, approved_at=True)
        log.info(f"  {GREEN}✓{RESET} job {job_id} approved{f' by {reviewer}' if reviewer else ''}")
        return job.model_copy(deep=True)

    def deny(self, job_id: str, reviewer: str | None = None) -> Job:
        job = self._transition(job_id, JobStatus.DENIED, reviewer=reviewer, denied_at=True)
        log.info(f"  {YELLOW}✗{RESET} job {job_id} denied{f' by {reviewer}' if reviewer else ''}")
        return job.model_copy(deep=True)

    async def wait(self, job_id: str) -> Job:
        """Block until the job's run has finished, then return it."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        return self.get(job_id)

    async def shutdown(self) -> None:
        """Cancel runs still in flight."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _transition(
        self,
        job_id: str,
        target: JobStatus,
        *,
        reviewer: str | None = None,
        approved_at: bool = False,
        denied_at: bool = False,
        **fields,
    ) -> Job:
        job = self._store.get(job_id)
        if target not in TRANSITIONS[job.status]:
            raise InvalidTransitionError(job_id, job.status, target)

        now = utc_now()
        update = {"status": target, "updated_at": now, **fields}
        if reviewer:
            update["reviewer"] = reviewer
        if approved_at:
            update["approved_at"] = now
        if denied_at:
            update["denied_at"] = now
        job = job.model_copy(update=update)
        self._store.put(job)
        return job

    async def _execute(self, job_id: str) -> None:
        job = self._transition(job_id, JobStatus.RUNNING)
        try:
            output = await self._runner(job.input)
        except asyncio.CancelledError:
            self._transition(job_id, JobStatus.FAILED, error="cancelled")
            raise
        except Exception as e:
            log.error(f"  {RED}✗{RESET} job {job_id} failed: {e}")
            self._transition(job_id, JobStatus.FAILED, error=str(e) or type(e).__name__)
            return
        self._transition(job_id, JobStatus.READY_FOR_REVIEW, output=output)
        log.info(f"  {GREEN}✓{RESET} job {job_id} ready for review")
