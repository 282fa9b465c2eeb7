"""
evobid — Result Correlator.

Results come back keyed by job configuration, in whatever order the
workers finished. Each one is matched to its candidate through the
builder's CorrelationTable. A miss, or the same job reported twice,
means the batch is corrupt and raises CorrelationError.
"""
from __future__ import annotations

from typing import Iterable, List, Set, Tuple

from evobid.interfaces.errors import CorrelationError
from evobid.interfaces.types import Candidate, RawResult
from evobid.jobs.builder import CorrelationTable


def correlate(
    raw_results: Iterable[RawResult],
    table: CorrelationTable,
) -> List[Tuple[Candidate, RawResult]]:
    pairs: List[Tuple[Candidate, RawResult]] = []
    seen: Set[tuple] = set()
    for result in raw_results:
        key = result.job.key
        if key in seen:
            raise CorrelationError(f"job reported more than once: {key}")
        seen.add(key)
        pairs.append((table.resolve(result.configuration), result))
    return pairs
