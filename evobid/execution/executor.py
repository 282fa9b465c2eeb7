"""
evobid — Batch Executor.

Runs a batch of jobs and returns one RawResult per job. The only
blocking call in the evaluator is BatchExecutor.run().

FAILURE POLICY:
  A job whose simulation (or post-processing) raises is turned into a
  RawResult with status FAILED. Sibling jobs are not cancelled and run()
  does not raise. The post-processor may ask for a retry; retries are
  bounded by max_retries, after which the job is recorded as failed.
  Setup errors are not job failures: on the process backend an engine
  or post-processor that cannot be pickled raises ConfigurationError
  before any job is submitted.

ORDERING:
  Sequential mode returns results in submission order. Distributed mode
  returns them in completion order. Callers must not rely on either;
  results carry their Job and are matched by key.

Listener callbacks (result writers) run on the calling thread, once per
finished job, in the order results arrive. Exceptions raised by a
listener are setup errors and propagate out of run().
"""
from __future__ import annotations

import concurrent.futures
import logging
import os
import pickle
import time
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from evobid.interfaces.enums import ExecutionBackend, FailureStrategy, JobStatus
from evobid.interfaces.errors import ConfigurationError
from evobid.interfaces.types import Job, RawResult
from evobid.simulation.engine import SimulationEngine
from evobid.simulation.postprocessors import AuctionPostProcessor, PostProcessor

logger = logging.getLogger("evobid.executor")


class ResultListener(Protocol):
    def on_result(self, result: RawResult) -> None: ...


def execute_job(
    engine: SimulationEngine,
    post_processor: PostProcessor,
    job: Job,
    max_retries: int = 0,
) -> RawResult:
    """Run one job in isolation. Never raises for simulation errors."""
    t0 = time.monotonic()
    attempts = 0
    while True:
        attempts += 1
        try:
            run = engine.simulate(job)
            payload = post_processor.collect(run, job)
        except Exception as exc:
            strategy = post_processor.handle_failure(exc, job)
            if strategy is FailureStrategy.RETRY and attempts <= max_retries:
                continue
            return RawResult(
                job=job,
                status=JobStatus.FAILED,
                error=f"{type(exc).__name__}: {exc}",
                attempts=attempts,
                elapsed_ms=(time.monotonic() - t0) * 1000,
            )
        return RawResult(
            job=job,
            status=JobStatus.OK,
            payload=payload,
            attempts=attempts,
            elapsed_ms=(time.monotonic() - t0) * 1000,
        )


class BatchExecutor:

    __slots__ = ("_engine", "_post", "_distributed", "_workers",
                 "_backend", "_max_retries", "_listeners")

    def __init__(
        self,
        engine: SimulationEngine,
        post_processor: PostProcessor | None = None,
        *,
        distributed: bool = False,
        workers: Optional[int] = None,
        backend: ExecutionBackend | str = ExecutionBackend.THREAD,
        max_retries: int = 0,
        listeners: Iterable[ResultListener] = (),
    ) -> None:
        self._engine = engine
        self._post = post_processor or AuctionPostProcessor()
        self._distributed = distributed
        self._workers = workers or os.cpu_count() or 4
        self._backend = ExecutionBackend(backend)
        self._max_retries = max(0, max_retries)
        self._listeners: List[ResultListener] = list(listeners)

    @property
    def distributed(self) -> bool:
        return self._distributed

    def run(self, jobs: Sequence[Job]) -> List[RawResult]:
        jobs = list(jobs)
        if not jobs:
            return []

        mode = (f"{self._backend.value} x{self._workers}"
                if self._distributed else "sequential")
        logger.info("BATCH START: %d jobs (%s)", len(jobs), mode)
        t0 = time.monotonic()

        if self._distributed:
            if self._backend is ExecutionBackend.PROCESS:
                self._check_picklable()
            results = self._run_pool(jobs)
        else:
            results = []
            for job in jobs:
                results.append(self._finish(
                    execute_job(self._engine, self._post, job, self._max_retries)))

        failed = sum(1 for r in results if r.failed)
        logger.info("BATCH COMPLETE: %d jobs, %d failed, %.0fms",
                    len(results), failed, (time.monotonic() - t0) * 1000)
        return results

    # ════════════════════════════════════════════════════════
    # Internal helpers
    # ════════════════════════════════════════════════════════

    def _check_picklable(self) -> None:
        """Engine and post-processor are shipped to every worker process."""
        try:
            pickle.dumps((self._engine, self._post))
        except (pickle.PicklingError, TypeError, AttributeError) as exc:
            raise ConfigurationError(
                f"process backend needs a picklable engine and post-processor: {exc}"
            ) from exc

    def _pool(self) -> concurrent.futures.Executor:
        if self._backend is ExecutionBackend.PROCESS:
            return concurrent.futures.ProcessPoolExecutor(max_workers=self._workers)
        return concurrent.futures.ThreadPoolExecutor(
            max_workers=self._workers, thread_name_prefix="evobid-sim")

    def _run_pool(self, jobs: List[Job]) -> List[RawResult]:
        results: List[RawResult] = []
        with self._pool() as ex:
            futs: Dict[concurrent.futures.Future, Job] = {
                ex.submit(execute_job, self._engine, self._post, job,
                          self._max_retries): job
                for job in jobs
            }
            for fut in concurrent.futures.as_completed(futs):
                job = futs[fut]
                try:
                    result = fut.result()
                except pickle.PicklingError as exc:
                    raise ConfigurationError(
                        f"job {job.key} could not be sent to a worker: {exc}") from exc
                except Exception as exc:
                    # worker died
                    logger.warning("worker error for %s: %s", job.key, exc)
                    result = RawResult(
                        job=job, status=JobStatus.FAILED,
                        error=f"{type(exc).__name__}: {exc}",
                    )
                results.append(self._finish(result))
        return results

    def _finish(self, result: RawResult) -> RawResult:
        if result.failed:
            logger.debug("job failed: %s (%s)", result.job.key, result.error)
        for listener in self._listeners:
            listener.on_result(result)
        return result
