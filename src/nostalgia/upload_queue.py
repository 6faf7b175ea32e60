"""Bounded-concurrency upload queue with infinite retry and escalating cooldown."""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from nostalgia.models import UploadJob

logger = logging.getLogger(__name__)

CONCURRENCY = 5
MAX_CONSECUTIVE_ERRORS = 10
# Seconds
FIRST_COOLDOWN = 10.0


@dataclass(frozen=True)
class QueueSettings:
    """Tunables for an upload queue."""

    concurrency: int = CONCURRENCY
    max_consecutive_errors: int = MAX_CONSECUTIVE_ERRORS
    first_cooldown: float = FIRST_COOLDOWN
    max_attempts: int | None = None

    def __post_init__(self) -> None:
        """Validate settings."""
        if self.concurrency < 1:
            raise ValueError("Concurrency must be at least 1")
        if self.max_consecutive_errors < 0:
            raise ValueError("Max consecutive errors cannot be negative")
        if self.first_cooldown < 0:
            raise ValueError("Cooldown cannot be negative")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("Max attempts must be at least 1 when set")


class UploadQueue:
    """Runs upload jobs concurrently until every one of them has succeeded.

    A failed job goes back to the end of the queue. Failures are counted
    globally across all jobs; once the count exceeds the configured limit,
    new job starts are paused for a cooldown whose duration doubles with
    each episode. Any success resets both the error count and the cooldown.

    All bookkeeping happens on the event loop thread, so counter updates
    from concurrently finishing jobs never interleave.
    """

    def __init__(self, settings: QueueSettings | None = None) -> None:
        """Initialize upload queue.

        Args:
            settings: Queue tunables, defaults if omitted
        """
        self.settings = settings or QueueSettings()
        self.consecutive_errors = 0
        self.cooldown = self.settings.first_cooldown
        self.cooldowns: list[float] = []
        self.abandoned: list[UploadJob] = []
        self._pending: deque[UploadJob] = deque()
        self._running: dict[asyncio.Task[None], UploadJob] = {}
        self._cooldown_timer: asyncio.TimerHandle | None = None
        self._wakeup: asyncio.Event | None = None
        self._started = False
        self._closing = False

    def __len__(self) -> int:
        """Number of jobs not yet completed, queued or running."""
        return len(self._pending) + len(self._running)

    @property
    def paused(self) -> bool:
        """Whether new job starts are held back by a cooldown."""
        return self._cooldown_timer is not None

    def add_job(self, file_key: str, action: Callable[[], Awaitable[None]]) -> UploadJob:
        """Queue a job. Safe to call before or during :meth:`run`.

        Args:
            file_key: Identity of the file the job handles, used in logs
            action: Coroutine function performing the work

        Returns:
            The queued job
        """
        job = UploadJob(file_key=file_key, action=action)
        self._enqueue(job)
        return job

    def _enqueue(self, job: UploadJob) -> None:
        self._pending.append(job)
        self._notify()

    def _notify(self) -> None:
        if self._wakeup is not None:
            self._wakeup.set()

    async def run(self) -> None:
        """Execute jobs until nothing is pending, running or cooling down.

        May only be called once per queue.
        """
        if self._started:
            raise RuntimeError("Upload queue can only be run once")
        self._started = True
        self._wakeup = asyncio.Event()

        try:
            while True:
                self._start_jobs()
                if not self._pending and not self._running and not self.paused:
                    break
                self._wakeup.clear()
                await self._wakeup.wait()
        finally:
            self._closing = True
            if self._cooldown_timer is not None:
                self._cooldown_timer.cancel()
                self._cooldown_timer = None
            for task in self._running:
                task.cancel()

    def _start_jobs(self) -> None:
        while (
            not self.paused
            and self._pending
            and len(self._running) < self.settings.concurrency
        ):
            job = self._pending.popleft()
            task = asyncio.create_task(self._execute(job))
            self._running[task] = job
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: "asyncio.Task[None]") -> None:
        job = self._running.pop(task)
        # A job cancelled from inside its action still has to complete
        if task.cancelled() and not self._closing:
            self._on_failure(job, asyncio.CancelledError("job was cancelled"))
        self._notify()

    async def _execute(self, job: UploadJob) -> None:
        job.attempts += 1
        try:
            await job.action()
        except Exception as e:
            self._on_failure(job, e)
        else:
            self._on_success(job)

    def _on_success(self, job: UploadJob) -> None:
        logger.debug(f"Job for '{job.file_key}' succeeded after {job.attempts} attempt(s)")
        self.consecutive_errors = 0
        self.cooldown = self.settings.first_cooldown

    def _on_failure(self, job: UploadJob, error: BaseException) -> None:
        self.consecutive_errors += 1
        is_final = self.consecutive_errors > self.settings.max_consecutive_errors
        logger.warning(
            f"Error during upload/append of '{job.file_key}' "
            f"(attempt {job.attempts}, is_final={is_final}): {error}"
        )

        max_attempts = self.settings.max_attempts
        if max_attempts is not None and job.attempts >= max_attempts:
            logger.error(f"Giving up on '{job.file_key}' after {job.attempts} attempt(s)")
            self.abandoned.append(job)
        else:
            self._enqueue(job)

        if is_final and not self.paused:
            self._start_cooldown()

    def _start_cooldown(self) -> None:
        duration = self.cooldown
        logger.info(f"Too many consecutive errors, pausing new uploads for {duration:g}s")
        self.cooldowns.append(duration)
        loop = asyncio.get_running_loop()
        self._cooldown_timer = loop.call_later(duration, self._end_cooldown)
        self.cooldown *= 2

    def _end_cooldown(self) -> None:
        logger.info("Cooldown finished, resuming uploads")
        self._cooldown_timer = None
        self._notify()
