"""Work queue and worker pool that drive queued generation jobs."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

from compliance_engine.ai.errors import JobQueueFullError, describe_error
from compliance_engine.jobs.models import GenerationJob, JobRequest, utc_timestamp
from compliance_engine.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)

JobHandler = Callable[[JobRequest], Awaitable[GenerationJob | None]]

SHUTDOWN_MESSAGE = "Generation interrupted by shutdown"


class BackgroundTaskSet:
  """Hold references to fire-and-forget tasks so they are neither collected nor orphaned."""

  def __init__(self) -> None:
    self._tasks: set[asyncio.Task[Any]] = set()

  def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task[Any]:
    task = asyncio.create_task(coro, name=name)
    self._tasks.add(task)
    task.add_done_callback(self._on_done)
    return task

  def _on_done(self, task: asyncio.Task[Any]) -> None:
    self._tasks.discard(task)
    if task.cancelled():
      return
    exc = task.exception()
    if exc is not None:
      logger.error("Background task %s failed: %s", task.get_name(), describe_error(exc), exc_info=exc)

  def __len__(self) -> int:
    return len(self._tasks)

  async def drain(self) -> None:
    """Wait for every task spawned so far, including ones spawned while waiting."""
    while self._tasks:
      await asyncio.gather(*list(self._tasks), return_exceptions=True)

  async def cancel_all(self) -> None:
    tasks = list(self._tasks)
    for task in tasks:
      task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


class JobSupervisor:
  """Consume the bounded job queue with a fixed pool of worker tasks.

  Each submitted job gets a future that resolves with its terminal record,
  which ``wait_for_job`` exposes to callers that need to block on completion.
  """

  def __init__(self, handler: JobHandler, jobs_repo: JobsRepository, *, workers: int = 4, queue_size: int = 100) -> None:
    if workers < 1:
      raise ValueError("workers must be at least 1.")
    self._handler = handler
    self._jobs_repo = jobs_repo
    self._worker_count = workers
    self._queue: asyncio.Queue[JobRequest] = asyncio.Queue(maxsize=queue_size)
    self._workers: list[asyncio.Task[None]] = []
    self._futures: dict[str, asyncio.Future[GenerationJob | None]] = {}
    self._in_flight: set[str] = set()

  @property
  def running(self) -> bool:
    return bool(self._workers)

  def start(self) -> None:
    """Spawn the worker pool; calling twice is a no-op."""
    if self._workers:
      return
    self._workers = [asyncio.create_task(self._worker_loop(index), name=f"generation-worker-{index}") for index in range(self._worker_count)]
    logger.info("Job supervisor started with %d workers", self._worker_count)

  def submit(self, request: JobRequest) -> asyncio.Future[GenerationJob | None]:
    """Enqueue a job without waiting; raises JobQueueFullError at capacity."""
    future: asyncio.Future[GenerationJob | None] = asyncio.get_running_loop().create_future()
    try:
      self._queue.put_nowait(request)
    except asyncio.QueueFull as exc:
      raise JobQueueFullError("Generation queue is full; retry later.") from exc
    self._futures[request.job_id] = future
    return future

  async def wait_for_job(self, job_id: str, timeout: float | None = None) -> GenerationJob | None:
    """Block until the job reaches a terminal state and return its record."""
    future = self._futures.get(job_id)
    if future is None:
      return await self._jobs_repo.get_job(job_id)
    return await asyncio.wait_for(asyncio.shield(future), timeout=timeout)

  async def _worker_loop(self, index: int) -> None:
    while True:
      request = await self._queue.get()
      self._in_flight.add(request.job_id)
      try:
        record = await self._handler(request)
      except asyncio.CancelledError:
        # Left in flight so stop() can record the interruption.
        raise
      except Exception as exc:  # noqa: BLE001
        logger.exception("Worker %d: job %s crashed", index, request.job_id)
        record = await self._mark_failed(request.job_id, f"Generation failed: {describe_error(exc)}")
      finally:
        self._queue.task_done()

      self._in_flight.discard(request.job_id)
      self._resolve(request.job_id, record)

  async def stop(self) -> None:
    """Cancel the workers and fail every job that did not finish."""
    workers, self._workers = self._workers, []
    for worker in workers:
      worker.cancel()
    await asyncio.gather(*workers, return_exceptions=True)

    interrupted = set(self._in_flight)
    while not self._queue.empty():
      interrupted.add(self._queue.get_nowait().job_id)
      self._queue.task_done()
    self._in_flight.clear()

    for job_id in interrupted:
      record = await self._mark_failed(job_id, SHUTDOWN_MESSAGE)
      self._resolve(job_id, record)
    if workers:
      logger.info("Job supervisor stopped; %d job(s) interrupted", len(interrupted))

  async def _mark_failed(self, job_id: str, message: str) -> GenerationJob | None:
    try:
      return await self._jobs_repo.update_job(job_id, status="failed", error_message=message, completed_at=utc_timestamp())
    except Exception:  # noqa: BLE001
      logger.exception("Could not mark job %s as failed", job_id)
      return None

  def _resolve(self, job_id: str, record: GenerationJob | None) -> None:
    future = self._futures.pop(job_id, None)
    if future is not None and not future.done():
      future.set_result(record)
