"""
evobid — BatchExecutor Tests.

  1. Every job runs exactly once (sequential and pooled)
  2. Per-job failure isolation
  3. Retry strategy
  4. Listeners and post-processors
"""
import os
import random
import sys
import threading
import time
from pathlib import Path

sys.path.insert(0, os.path.dirname(__file__))

import pytest

from evobid.execution.executor import BatchExecutor, execute_job
from evobid.interfaces.enums import FailureStrategy, JobStatus
from evobid.interfaces.errors import ConfigurationError
from evobid.interfaces.types import (
    AuctionEvent, BidTimeMeasurement, Candidate, Scenario, SimulationStatistics,
)
from evobid.jobs.builder import JobBuilder
from evobid.simulation.engine import (
    AuctionModelSnapshot, SimulationEngine, SimulationRun,
)
from evobid.simulation.postprocessors import (
    AuctionPostProcessor, RetryingAuctionPostProcessor, StatsPostProcessor,
    post_processor_for,
)


class RecordingEngine:
    """Counts calls per job key; fails for keys listed in fail_on."""

    def __init__(self, fail_on=(), jitter=False, fail_times=None):
        self.calls = {}
        self.fail_on = set(fail_on)
        self.fail_times = dict(fail_times or {})
        self.jitter = jitter
        self._lock = threading.Lock()

    def simulate(self, job):
        with self._lock:
            self.calls[job.key] = self.calls.get(job.key, 0) + 1
            attempt = self.calls[job.key]
        if self.jitter:
            time.sleep(random.random() * 0.01)
        if job.key in self.fail_on:
            raise RuntimeError(f"simulation crashed on {job.scenario.scenario_id}")
        if attempt <= self.fail_times.get(job.key, 0):
            raise RuntimeError("transient failure")
        return SimulationRun(
            statistics=SimulationStatistics(total_distance=float(job.scenario.instance_id)),
            auction_model=AuctionModelSnapshot(
                num_parcels=10, num_auctions=14,
                num_unsuccessful_auctions=2, num_failed_auctions=1),
            auction_events=[AuctionEvent(0, 1000, 3)],
            time_measurements=[BidTimeMeasurement("0", 0, 4, 1500)],
        )


class CollectingListener:
    def __init__(self):
        self.results = []

    def on_result(self, result):
        self.results.append(result)


class DistanceEngine:
    """Stateless and module-level, so it can be shipped to worker processes."""

    def simulate(self, job):
        return SimulationRun(statistics=SimulationStatistics(
            total_distance=float(job.scenario.instance_id)))


def _jobs(n_candidates=3, n_scenarios=4):
    builder = JobBuilder()
    table = builder.build_batch([Candidate(f"c{i}") for i in range(n_candidates)])
    scenarios = [Scenario("pc", i, Path(f"/d/pc-{i}.scen")) for i in range(1, n_scenarios + 1)]
    return builder.jobs(table, scenarios)


# ═════════════════════════════════════════════════════════════
# 1. Exactly once
# ═════════════════════════════════════════════════════════════

def test_engine_satisfies_protocol():
    assert isinstance(RecordingEngine(), SimulationEngine)


def test_sequential_runs_every_job_once_in_order():
    jobs = _jobs()
    engine = RecordingEngine()
    results = BatchExecutor(engine).run(jobs)
    assert [r.job for r in results] == jobs
    assert all(n == 1 for n in engine.calls.values())
    assert len(engine.calls) == len(jobs)


def test_pooled_runs_every_job_once():
    jobs = _jobs(4, 5)
    engine = RecordingEngine(jitter=True)
    results = BatchExecutor(engine, distributed=True, workers=4).run(jobs)
    assert len(results) == len(jobs)
    assert {r.job.key for r in results} == {j.key for j in jobs}
    assert all(n == 1 for n in engine.calls.values())


def test_empty_batch():
    assert BatchExecutor(RecordingEngine()).run([]) == []


def test_unknown_backend_rejected():
    with pytest.raises(ValueError):
        BatchExecutor(RecordingEngine(), backend="carrier-pigeon")


def test_process_backend_runs_every_job_once():
    jobs = _jobs(2, 3)
    results = BatchExecutor(DistanceEngine(), distributed=True, workers=2,
                            backend="process").run(jobs)
    assert {r.job.key for r in results} == {j.key for j in jobs}
    assert not any(r.failed for r in results)
    for r in results:
        assert r.payload.statistics.total_distance == r.job.scenario.instance_id


def test_process_backend_rejects_unpicklable_engine():
    engine = RecordingEngine()  # holds a threading.Lock
    listener = CollectingListener()
    executor = BatchExecutor(engine, distributed=True, workers=2,
                             backend="process", listeners=[listener])
    with pytest.raises(ConfigurationError, match="picklable"):
        executor.run(_jobs(1, 2))
    assert engine.calls == {}
    assert listener.results == []


# ═════════════════════════════════════════════════════════════
# 2. Failure isolation
# ═════════════════════════════════════════════════════════════

@pytest.mark.parametrize("distributed", [False, True])
def test_failing_job_does_not_abort_batch(distributed):
    jobs = _jobs()
    bad = jobs[5].key
    engine = RecordingEngine(fail_on={bad})
    results = BatchExecutor(engine, distributed=distributed, workers=3).run(jobs)

    assert len(results) == len(jobs)
    failed = [r for r in results if r.failed]
    assert [r.job.key for r in failed] == [bad]
    assert failed[0].status is JobStatus.FAILED
    assert failed[0].payload is None
    assert "simulation crashed" in failed[0].error
    assert all(r.payload is not None for r in results if r.job.key != bad)


class _BrokenPostProcessor(AuctionPostProcessor):
    def collect(self, run, job):
        raise ValueError("cannot read statistics")


def test_post_processing_failure_is_a_job_failure():
    job = _jobs(1, 1)[0]
    result = execute_job(RecordingEngine(), _BrokenPostProcessor(), job)
    assert result.failed
    assert "ValueError" in result.error


# ═════════════════════════════════════════════════════════════
# 3. Retries
# ═════════════════════════════════════════════════════════════

def test_retry_recovers_transient_failure():
    job = _jobs(1, 1)[0]
    engine = RecordingEngine(fail_times={job.key: 2})
    result = execute_job(engine, RetryingAuctionPostProcessor(), job, max_retries=2)
    assert result.status is JobStatus.OK
    assert result.attempts == 3


def test_retry_is_bounded():
    job = _jobs(1, 1)[0]
    engine = RecordingEngine(fail_on={job.key})
    result = execute_job(engine, RetryingAuctionPostProcessor(), job, max_retries=2)
    assert result.failed
    assert result.attempts == 3
    assert engine.calls[job.key] == 3


def test_abort_strategy_never_retries():
    job = _jobs(1, 1)[0]
    engine = RecordingEngine(fail_on={job.key})
    result = execute_job(engine, AuctionPostProcessor(), job, max_retries=5)
    assert result.attempts == 1
    assert AuctionPostProcessor().handle_failure(RuntimeError(), job) is FailureStrategy.ABORT_RUN


# ═════════════════════════════════════════════════════════════
# 4. Listeners & post-processors
# ═════════════════════════════════════════════════════════════

@pytest.mark.parametrize("distributed", [False, True])
def test_listener_sees_every_result(distributed):
    jobs = _jobs()
    listener = CollectingListener()
    results = BatchExecutor(RecordingEngine(fail_on={jobs[0].key}),
                            distributed=distributed, workers=2,
                            listeners=[listener]).run(jobs)
    assert sorted(r.job.key for r in listener.results) == sorted(r.job.key for r in results)


def test_auction_post_processor_counts_reauctions():
    job = _jobs(1, 1)[0]
    payload = execute_job(RecordingEngine(), AuctionPostProcessor(), job).payload
    assert payload.auction_stats.num_parcels == 10
    assert payload.auction_stats.num_reauctions == 4
    assert payload.auction_stats.num_unsuccessful == 2
    assert payload.auction_stats.num_failed == 1
    assert len(payload.auction_events) == 1
    assert len(payload.time_measurements) == 1


def test_stats_post_processor_drops_side_channel():
    job = _jobs(1, 1)[0]
    payload = execute_job(RecordingEngine(), StatsPostProcessor(), job).payload
    assert payload.auction_stats is None
    assert payload.auction_events == ()


def test_post_processor_lookup():
    assert isinstance(post_processor_for("auction"), AuctionPostProcessor)
    with pytest.raises(Exception, match="unknown post-processor"):
        post_processor_for("nope")
