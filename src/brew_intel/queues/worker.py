"""Per-stage worker pools with retry, backoff and failure events."""

import logging
import queue
import threading
import time
import traceback
from typing import Any, Callable, Optional

from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from brew_intel.config import QueuePolicy
from brew_intel.errors import is_retryable
from brew_intel.queues.jobs import FailureEvent, Job

logger = logging.getLogger(__name__)

Handler = Callable[[Job], None]
FailureListener = Callable[[FailureEvent], None]

_STOP = object()


class Stage:
    """A bounded job channel drained by a fixed number of worker threads.

    Each job runs its handler up to ``max_attempts`` times with exponential
    backoff between attempts. Retries happen on the same worker, so a job is
    never attempted concurrently with itself.
    """

    def __init__(
        self,
        queue_name: str,
        handlers: dict[str, Handler],
        policy: QueuePolicy,
        sleep: Callable[[float], None] = time.sleep,
        enqueue_timeout: float = 30.0,
    ):
        self.queue_name = queue_name
        self.handlers = dict(handlers)
        self.policy = policy
        self.enqueue_timeout = enqueue_timeout
        self._sleep = sleep
        self._channel: queue.Queue = queue.Queue(maxsize=policy.channel_size)
        self._threads: list[threading.Thread] = []
        self._failure_listeners: list[FailureListener] = []

    @property
    def pending(self) -> int:
        """Jobs queued or currently running."""
        return self._channel.unfinished_tasks

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def on_failure(self, listener: FailureListener) -> None:
        self._failure_listeners.append(listener)

    def submit(self, job: Job) -> None:
        """Put a job on the channel; raises ``queue.Full`` if it stays full."""
        self._channel.put(job, timeout=self.enqueue_timeout)
        logger.debug(f"Queued {job.name} ({job.id}) on {self.queue_name}")

    def start(self) -> None:
        if self.running:
            return

        self._threads = [
            threading.Thread(
                target=self._work,
                name=f"{self.queue_name}-worker-{i}",
                daemon=True,
            )
            for i in range(self.policy.concurrency)
        ]
        for thread in self._threads:
            thread.start()

        logger.info(f"Started {len(self._threads)} workers for queue '{self.queue_name}'")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Let in-flight jobs finish, then stop the workers."""
        for _ in self._threads:
            self._channel.put(_STOP)
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        logger.info(f"Stopped workers for queue '{self.queue_name}'")

    def join(self) -> None:
        """Block until every queued job has been processed."""
        self._channel.join()

    def drain(self) -> int:
        """Process queued jobs on the calling thread until the channel is empty."""
        processed = 0
        while True:
            try:
                job = self._channel.get_nowait()
            except queue.Empty:
                return processed
            try:
                if job is not _STOP:
                    self.process(job)
                    processed += 1
            finally:
                self._channel.task_done()

    def process(self, job: Job) -> bool:
        """Run a job to completion or exhaustion. Returns True on success."""
        retrying = Retrying(
            stop=stop_after_attempt(job.max_attempts),
            wait=wait_exponential(
                multiplier=self.policy.backoff_delay,
                max=self.policy.max_backoff,
            ),
            retry=retry_if_exception(is_retryable),
            sleep=self._sleep,
            reraise=True,
        )

        try:
            for attempt in retrying:
                with attempt:
                    self._run_attempt(job)
        except Exception as e:
            logger.error(
                f"Job {job.name} ({job.id}) on '{self.queue_name}' gave up "
                f"after {job.attempts_made} attempt(s): {e}"
            )
            return False

        return True

    def _work(self) -> None:
        while True:
            job = self._channel.get()
            try:
                if job is _STOP:
                    return
                self.process(job)
            finally:
                self._channel.task_done()

    def _run_attempt(self, job: Job) -> None:
        job.attempts_made += 1
        start = time.monotonic()

        logger.info(
            f"Job started: {job.name} ({job.id}) "
            f"attempt {job.attempts_made}/{job.max_attempts}"
        )

        handler = self.handlers.get(job.name)
        if handler is None:
            # Unknown kinds are acknowledged, never retried
            logger.warning(f"Unknown job type on '{self.queue_name}': {job.name} ({job.id})")
            return

        try:
            handler(job)
        except Exception as e:
            duration_ms = int((time.monotonic() - start) * 1000)
            final = job.attempts_made >= job.max_attempts or not is_retryable(e)
            logger.warning(
                f"Job failed: {job.name} ({job.id}) attempt "
                f"{job.attempts_made}/{job.max_attempts} after {duration_ms}ms: {e}"
            )
            self._emit_failure(
                FailureEvent(
                    job=job,
                    error=e,
                    final=final,
                    stack_trace=traceback.format_exc(),
                    duration_ms=duration_ms,
                )
            )
            raise

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(f"Job completed: {job.name} ({job.id}) in {duration_ms}ms")

    def _emit_failure(self, event: FailureEvent) -> None:
        for listener in self._failure_listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(f"Failure listener raised for job {event.job.id}")


class JobQueues:
    """Routes jobs to stages by queue name."""

    def __init__(self):
        self._stages: dict[str, Stage] = {}

    def register(self, stage: Stage) -> None:
        self._stages[stage.queue_name] = stage

    def stage(self, queue_name: str) -> Stage:
        if queue_name not in self._stages:
            raise KeyError(f"Unknown queue: {queue_name}")
        return self._stages[queue_name]

    @property
    def stages(self) -> list[Stage]:
        return list(self._stages.values())

    def enqueue(self, queue_name: str, name: str, data: dict[str, Any]) -> Job:
        """Create a job with the queue's attempt cap and submit it."""
        stage = self.stage(queue_name)
        job = Job(
            queue_name=queue_name,
            name=name,
            data=data,
            max_attempts=stage.policy.max_attempts,
        )
        stage.submit(job)
        return job

    def pending(self) -> int:
        return sum(stage.pending for stage in self._stages.values())

    def start(self) -> None:
        for stage in self._stages.values():
            stage.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        for stage in self._stages.values():
            stage.stop(timeout)

    def run_until_idle(self) -> None:
        """Wait (or, without running workers, work) until every queue is empty."""
        while self.pending():
            for stage in self._stages.values():
                if stage.running:
                    stage.join()
                else:
                    stage.drain()
