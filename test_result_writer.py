"""
evobid — ResultWriter / StatsLogger Tests.

  1. Header once, one row per result, metadata join
  2. Side files for auction and bid-computation logs
  3. Disabled / closed / failed-result behaviour
  4. Concurrent writers
"""
import csv
import os
import random
import sys
import threading
from pathlib import Path

sys.path.insert(0, os.path.dirname(__file__))

import pytest

from evobid.diagnostics import (
    AUCTION_HEADER, BID_COMPUTATION_HEADER, COMPUTATION_TIME_DIR,
    ResultWriter, StatsLogger, bid_computation_rows,
)
from evobid.evaluation.objective import Gendreau06Objective
from evobid.interfaces.enums import FileState, JobStatus
from evobid.interfaces.errors import MetadataError
from evobid.interfaces.types import (
    AuctionEvent, AuctionStats, BidTimeMeasurement, Candidate, RawResult,
    ResultPayload, SimulationStatistics,
)
from evobid.jobs.builder import JobBuilder
from evobid.scenarios.catalog import ScenarioCatalog
from evobid.scenarios.metadata import ScenarioMetadataCache


# ── Helpers ──────────────────────────────────────────────────

def _dataset(root, ids):
    root.mkdir(exist_ok=True)
    for i in ids:
        (root / f"0.50-20-1.00-{i}.scen").write_text("")
        (root / f"0.50-20-1.00-{i}.properties").write_text(
            f"dynamism_bin = 0.50\nurgency = 20\nscale = 1.00\n"
            f"AddParcelEvent = {200 + i}\nAddVehicleEvent = 10\n")
    return ScenarioCatalog.load(root, "glob:*.scen")


def _results(catalog, candidate_ids, events=(), measurements=(), seeds=(0,)):
    builder = JobBuilder()
    table = builder.build_batch([Candidate(c) for c in candidate_ids])
    jobs = builder.jobs(table, list(catalog), seeds=list(seeds))
    return [
        RawResult(job=j, payload=ResultPayload(
            statistics=SimulationStatistics(
                total_distance=50.0, total_parcels=1, accepted_parcels=1,
                total_pickups=1, total_deliveries=1, sim_finish=True),
            auction_stats=AuctionStats(1, 2, 0, 0),
            auction_events=tuple(events),
            time_measurements=tuple(measurements),
        ))
        for j in jobs
    ]


def _writer(tmp_path, enabled=True):
    return ResultWriter(tmp_path / "exp", Gendreau06Objective(),
                        ScenarioMetadataCache(), enabled=enabled)


def _read(path):
    with open(path, newline="") as f:
        return list(csv.reader(f))


# ═════════════════════════════════════════════════════════════
# 1. Rows
# ═════════════════════════════════════════════════════════════

def test_header_written_once_then_rows(tmp_path):
    catalog = _dataset(tmp_path / "data", [1, 2, 3])
    writer = _writer(tmp_path)
    results = _results(catalog, ["a"])
    for r in results:
        writer.on_result(r)

    target = writer.target_file(results[0].configuration.name)
    rows = _read(target)
    assert rows[0] == writer.fields
    assert len(rows) == 1 + 3
    assert writer.state(target) is FileState.APPENDING
    assert writer.rows_written == 3


def test_row_joins_scenario_metadata(tmp_path):
    catalog = _dataset(tmp_path / "data", [5])
    writer = _writer(tmp_path)
    result = _results(catalog, ["a"], seeds=[99])[0]
    writer.on_result(result)

    header, row = _read(writer.target_file(result.configuration.name))
    values = dict(zip(header, row))
    assert values["scenario_id"] == "0.50-20-1.00-5"
    assert values["dynamism"] == "0.50"
    assert values["urgency"] == "20"
    assert values["scale"] == "1.00"
    assert values["num_orders"] == "205"
    assert values["num_vehicles"] == "10"
    assert values["random_seed"] == "99"
    assert values["repetition"] == "0"
    assert float(values["cost"]) == pytest.approx(60.0)
    assert values["num_reauctions"] == "2"


def test_one_file_per_configuration(tmp_path):
    catalog = _dataset(tmp_path / "data", [1, 2])
    writer = _writer(tmp_path)
    for r in _results(catalog, ["a", "b"]):
        writer.on_result(r)
    files = sorted(p.name for p in (tmp_path / "exp").glob("*.csv"))
    assert len(files) == 2
    assert all(len(_read(tmp_path / "exp" / f)) == 3 for f in files)


def test_metadata_loaded_once_per_scenario(tmp_path):
    catalog = _dataset(tmp_path / "data", [1, 2])
    cache = ScenarioMetadataCache()
    writer = ResultWriter(tmp_path / "exp", Gendreau06Objective(), cache)
    for r in _results(catalog, ["a", "b", "c"]):
        writer.on_result(r)
    assert cache.loads == 2


def test_missing_metadata_is_fatal(tmp_path):
    catalog = _dataset(tmp_path / "data", [1])
    (tmp_path / "data" / "0.50-20-1.00-1.properties").unlink()
    writer = _writer(tmp_path)
    with pytest.raises(MetadataError):
        writer.on_result(_results(catalog, ["a"])[0])


# ═════════════════════════════════════════════════════════════
# 2. Side files
# ═════════════════════════════════════════════════════════════

def test_computation_time_files(tmp_path):
    catalog = _dataset(tmp_path / "data", [4])
    events = [AuctionEvent(0, 5000, 3), AuctionEvent(60000, 62000, 2)]
    measurements = [
        BidTimeMeasurement("0", 100, 4, 1_000_000),
        BidTimeMeasurement("1", 120, 2, 500_000),
    ]
    writer = _writer(tmp_path)
    result = _results(catalog, ["a"], events, measurements, seeds=[7])[0]
    writer.on_result(result)

    stats_dir = tmp_path / "exp" / COMPUTATION_TIME_DIR
    run_id = f"{result.configuration.name}-0.50-20-1.00-4-7-0"
    auctions = _read(stats_dir / f"{run_id}-auctions.csv")
    comps = _read(stats_dir / f"{run_id}-bid-computations.csv")
    assert auctions == [AUCTION_HEADER, ["0", "5000", "3"], ["60000", "62000", "2"]]
    assert comps[0] == BID_COMPUTATION_HEADER
    assert comps[1:] == [["0", "100", "4", "1000000"], ["1", "120", "2", "500000"]]


def test_no_side_files_without_logs(tmp_path):
    catalog = _dataset(tmp_path / "data", [4])
    writer = _writer(tmp_path)
    writer.on_result(_results(catalog, ["a"], events=[AuctionEvent(0, 1, 1)])[0])
    assert not (tmp_path / "exp" / COMPUTATION_TIME_DIR).exists()


def test_bid_rows_independent_of_measurement_order():
    ms = [
        BidTimeMeasurement("vehicle-0", 100, 3, 900),
        BidTimeMeasurement("vehicle-1", 50, 1, 100),
        BidTimeMeasurement("vehicle-0", 400, 5, 1200),
    ]
    expected = bid_computation_rows(ms)
    for seed in range(5):
        shuffled = ms[:]
        random.Random(seed).shuffle(shuffled)
        assert bid_computation_rows(shuffled) == expected

    bidder0 = [r for r in expected if r[0] == 0]
    assert bidder0 == [[0, 100, 3, 900], [0, 400, 5, 1200]]


def test_numeric_bidders_sorted_numerically():
    ms = [BidTimeMeasurement("10", 0, 1, 1), BidTimeMeasurement("2", 0, 1, 1)]
    rows = bid_computation_rows(ms)
    assert [r[0] for r in rows] == [0, 1]


# ═════════════════════════════════════════════════════════════
# 3. Disabled / closed / failed
# ═════════════════════════════════════════════════════════════

def test_disabled_writer_is_noop(tmp_path):
    catalog = _dataset(tmp_path / "data", [1])
    writer = _writer(tmp_path, enabled=False)
    writer.on_result(_results(catalog, ["a"])[0])
    assert not (tmp_path / "exp").exists()


def test_failed_result_writes_nothing(tmp_path):
    catalog = _dataset(tmp_path / "data", [1])
    writer = _writer(tmp_path)
    result = _results(catalog, ["a"])[0]
    failed = RawResult(job=result.job, status=JobStatus.FAILED, error="boom")
    writer.on_result(failed)
    assert writer.rows_written == 0
    assert writer.state(writer.target_file(result.configuration.name)) is FileState.IDLE


def test_closed_writer_rejects_results(tmp_path):
    catalog = _dataset(tmp_path / "data", [1])
    with _writer(tmp_path) as writer:
        pass
    assert writer.closed
    with pytest.raises(RuntimeError):
        writer.on_result(_results(catalog, ["a"])[0])


# ═════════════════════════════════════════════════════════════
# 4. Concurrency
# ═════════════════════════════════════════════════════════════

def test_concurrent_appends_keep_file_consistent(tmp_path):
    catalog = _dataset(tmp_path / "data", list(range(1, 9)))
    writer = _writer(tmp_path)
    results = _results(catalog, ["a"], seeds=[1, 2, 3, 4])
    barrier = threading.Barrier(4)

    def worker(chunk):
        barrier.wait()
        for r in chunk:
            writer.on_result(r)

    threads = [threading.Thread(target=worker, args=(results[i::4],)) for i in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    rows = _read(writer.target_file(results[0].configuration.name))
    assert rows[0] == writer.fields
    assert rows.count(writer.fields) == 1
    assert len(rows) == 1 + len(results)
    assert all(len(r) == len(writer.fields) for r in rows)


# ═════════════════════════════════════════════════════════════
# StatsLogger
# ═════════════════════════════════════════════════════════════

def test_stats_logger_rows(tmp_path):
    catalog = _dataset(tmp_path / "data", [1, 2])
    results = _results(catalog, ["a"])
    results.append(RawResult(job=results[0].job, status=JobStatus.FAILED, error="x"))
    log = StatsLogger(tmp_path / "out" / "test.csv")
    log.create_header()
    assert log.append_results(results, "a") == 3

    rows = _read(log.dest)
    header = rows[0]
    assert header[:3] == ["candidate_id", "config", "scenario_id"]
    assert len(rows) == 4
    failed = dict(zip(header, rows[3]))
    assert failed["status"] == "failed"
    assert failed["total_distance"] == ""
