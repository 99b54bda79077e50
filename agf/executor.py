"""AGF-v0.1 Concurrency-Bounded Executor — Batched async generation.

Runs ``total_count`` generation attempts as ceil(total / batch_size)
strictly sequential batches. Inside a batch an asyncio.Semaphore with
``max_concurrency`` permits bounds the number of in-flight workers; a
slot frees as soon as any worker finishes, so the next queued task starts
immediately (sliding window, not fixed sub-groups).

Guarantees:
    - a worker exception (or timeout) becomes a failed BatchResult and
      never cancels siblings or aborts the batch loop
    - results are reported in scheduled order, not completion order
    - the inter-batch delay is skipped after the final batch
    - the stop flag is checked before each new batch; in-flight work is
      allowed to finish

Workers only *produce* candidates. Shared state (portfolio, standards)
is touched exclusively in the ``on_batch`` hook, which runs on the
driver coroutine after the whole batch has resolved.

Usage:
    executor = ConcurrencyBoundedExecutor(worker)
    report = await executor.run_all(
        total_count=25, batch_size=10, max_concurrency=5,
        inter_batch_delay=2.0, task_factory=make_task,
    )
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
import time
from typing import Awaitable, Callable, Optional, Sequence, Union

from agf.protocol import (
    BatchProgress,
    BatchReport,
    BatchResult,
    BatchTask,
    Candidate,
    RunReport,
)

logger = logging.getLogger(__name__)

Worker = Callable[[BatchTask], Awaitable[Candidate]]
TaskFactory = Callable[[int], BatchTask]
BatchHook = Callable[[BatchReport], Union[None, Awaitable[None]]]
ProgressCallback = Callable[[BatchProgress], None]
Sleep = Callable[[float], Awaitable[None]]


class ConcurrencyBoundedExecutor:
    """Semaphore-bounded batch runner.

    Attributes:
        worker: Coroutine function producing one Candidate per task.
        timeout_seconds: Optional per-task timeout (None = no timeout).
        inflight: Tasks currently holding a permit.
        max_observed_inflight: High-water mark of ``inflight``.
    """

    def __init__(
        self,
        worker: Worker,
        timeout_seconds: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.worker = worker
        self.timeout_seconds = timeout_seconds if timeout_seconds else None
        self._sleep = sleep
        self._stop_requested = False
        self.inflight = 0
        self.max_observed_inflight = 0

    def stop(self) -> None:
        """Cooperative stop: no new batch is scheduled after this call."""
        self._stop_requested = True

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    # ------------------------------------------------------------------
    # One batch
    # ------------------------------------------------------------------

    async def run_batch(
        self,
        tasks: Sequence[BatchTask],
        max_concurrency: int,
        batch_number: int = 0,
    ) -> BatchReport:
        if max_concurrency <= 0:
            raise ValueError(f"max_concurrency must be positive, got {max_concurrency}")
        semaphore = asyncio.Semaphore(max_concurrency)
        results: list[Optional[BatchResult]] = [None] * len(tasks)
        batch_start = time.monotonic()

        async def run_one(slot: int, task: BatchTask) -> None:
            async with semaphore:
                self.inflight += 1
                if self.inflight > self.max_observed_inflight:
                    self.max_observed_inflight = self.inflight
                start = time.monotonic()
                try:
                    coro = self.worker(task)
                    if self.timeout_seconds is not None:
                        candidate = await asyncio.wait_for(coro, timeout=self.timeout_seconds)
                    else:
                        candidate = await coro
                    results[slot] = BatchResult(
                        task_id=task.task_id,
                        index=task.index,
                        success=True,
                        candidate=candidate,
                        elapsed_seconds=time.monotonic() - start,
                        tokens_used=candidate.tokens_used,
                        cost_usd=candidate.cost_usd,
                    )
                except asyncio.TimeoutError:
                    logger.warning("Task %s timed out after %.1fs", task.task_id, self.timeout_seconds)
                    results[slot] = BatchResult(
                        task_id=task.task_id,
                        index=task.index,
                        success=False,
                        error=f"timeout after {self.timeout_seconds:.1f}s",
                        elapsed_seconds=time.monotonic() - start,
                    )
                except Exception as e:
                    logger.warning("Task %s failed: %s: %s", task.task_id, type(e).__name__, e)
                    results[slot] = BatchResult(
                        task_id=task.task_id,
                        index=task.index,
                        success=False,
                        error=f"{type(e).__name__}: {e}",
                        elapsed_seconds=time.monotonic() - start,
                    )
                finally:
                    self.inflight = max(0, self.inflight - 1)

        # run_one converts every worker error into a result, so gather
        # only surfaces cancellation
        await asyncio.gather(*(run_one(i, t) for i, t in enumerate(tasks)))

        report = BatchReport(
            batch_number=batch_number,
            results=tuple(r for r in results if r is not None),
            elapsed_seconds=time.monotonic() - batch_start,
        )
        logger.info(
            "Batch %d: %d ok / %d failed in %.1fs (avg %.2fs/task)",
            batch_number, report.success_count, report.fail_count,
            report.elapsed_seconds, report.average_seconds,
        )
        return report

    # ------------------------------------------------------------------
    # Whole run
    # ------------------------------------------------------------------

    async def run_all(
        self,
        total_count: int,
        batch_size: int,
        max_concurrency: int,
        inter_batch_delay: float,
        task_factory: TaskFactory,
        on_batch: Optional[BatchHook] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> RunReport:
        """Run ``total_count`` tasks in sequential batches.

        ``task_factory(index)`` is called on the driver just before each
        batch is scheduled, so requests can reflect state updated by the
        previous batch's ``on_batch`` hook.
        """
        if total_count < 0:
            raise ValueError(f"total_count must be non-negative, got {total_count}")
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        total_batches = math.ceil(total_count / batch_size) if total_count else 0
        batches: list[BatchReport] = []
        completed = successful = failed = 0
        run_start = time.monotonic()
        logger.info(
            "Run: %d tasks in %d batches (batch_size=%d, max_concurrency=%d)",
            total_count, total_batches, batch_size, max_concurrency,
        )

        for batch_idx in range(total_batches):
            if self._stop_requested:
                logger.info("Stop requested; skipping %d remaining batches", total_batches - batch_idx)
                break

            first = batch_idx * batch_size
            tasks = [task_factory(i) for i in range(first, min(first + batch_size, total_count))]
            report = await self.run_batch(tasks, max_concurrency, batch_number=batch_idx + 1)
            batches.append(report)

            completed += len(report.results)
            successful += report.success_count
            failed += report.fail_count

            if on_batch is not None:
                pending = on_batch(report)
                if inspect.isawaitable(pending):
                    await pending

            if progress_callback is not None:
                # wall-clock per task, so concurrent batches are not over-counted
                elapsed = time.monotonic() - run_start
                avg = elapsed / completed if completed else 0.0
                progress_callback(BatchProgress(
                    total=total_count,
                    completed=completed,
                    successful=successful,
                    failed=failed,
                    current_batch=batch_idx + 1,
                    total_batches=total_batches,
                    elapsed_seconds=elapsed,
                    eta_seconds=avg * (total_count - completed),
                ))

            if batch_idx < total_batches - 1 and not self._stop_requested and inter_batch_delay > 0:
                logger.debug("Cooling down %.1fs before next batch", inter_batch_delay)
                await self._sleep(inter_batch_delay)

        run = RunReport(
            total_requested=total_count,
            batches=tuple(batches),
            elapsed_seconds=time.monotonic() - run_start,
            stopped=self._stop_requested,
        )
        logger.info(
            "Run finished: %d/%d generated, %d ok, %d failed, %d tokens, $%.4f, %.1fs",
            run.total_generated, total_count, run.successful, run.failed,
            run.total_tokens, run.total_cost, run.elapsed_seconds,
        )
        return run
