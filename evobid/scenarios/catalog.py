"""
evobid — Scenario Catalog.

Ordered, read-only list of training scenarios, built once when the
evaluator starts. Generation g with window size w trains on the
half-open slice [g*w, g*w + w), so every generation sees fresh
instances and a run that asks for more generations than the dataset
can feed fails loudly instead of wrapping around.

USAGE:

    catalog = ScenarioCatalog.load(
        "files/train-dataset", r"regex:.*0\\.50-20-1\\.00-.*\\.scen")
    window = catalog.window_for(generation_index=2, window_size=3)
"""
from __future__ import annotations

import fnmatch
import logging
import re
from pathlib import Path
from typing import Iterator, List, Sequence, Union

from evobid.interfaces.errors import ConfigurationError, OutOfRangeError, ParseError
from evobid.interfaces.types import Scenario

logger = logging.getLogger("evobid.catalog")

INSTANCE_ID_PATTERN = re.compile(r"^(?P<problem_class>.+)-(?P<instance_id>\d+)\.scen$")


def _compile_filter(filter_pattern: str) -> "re.Pattern[str]":
    """
    'regex:<re>' or 'glob:<pattern>', matched against the whole file
    name. Bare patterns are globs.
    """
    if filter_pattern.startswith("regex:"):
        return re.compile(filter_pattern[len("regex:"):])
    if filter_pattern.startswith("glob:"):
        filter_pattern = filter_pattern[len("glob:"):]
    return re.compile(fnmatch.translate(filter_pattern))


class ScenarioCatalog(Sequence[Scenario]):

    __slots__ = ("_scenarios", "_source")

    def __init__(self, scenarios: Sequence[Scenario], source: str = "") -> None:
        ordered = sorted(scenarios, key=lambda s: s.instance_id)
        seen = {}
        for s in ordered:
            if s.instance_id in seen:
                raise ParseError(
                    f"duplicate instance id {s.instance_id}: "
                    f"{seen[s.instance_id].path} and {s.path}")
            seen[s.instance_id] = s
        self._scenarios: List[Scenario] = ordered
        self._source = source

    # ── Construction ─────────────────────────────────────────

    @staticmethod
    def parse_name(path: Union[str, Path]) -> Scenario:
        p = Path(path)
        m = INSTANCE_ID_PATTERN.match(p.name)
        if m is None:
            raise ParseError(f"scenario file name has no instance id: {p.name}")
        return Scenario(
            problem_class=m.group("problem_class"),
            instance_id=int(m.group("instance_id")),
            path=p,
            name=p.stem,
        )

    @classmethod
    def load(cls, source_directory: Union[str, Path],
             filter_pattern: str = "glob:*.scen") -> "ScenarioCatalog":
        root = Path(source_directory)
        if not root.is_dir():
            raise ConfigurationError(f"scenario directory not found: {root}")

        matcher = _compile_filter(filter_pattern)
        matched = sorted(
            p for p in root.rglob("*")
            if p.is_file() and matcher.fullmatch(p.name)
        )
        catalog = cls([cls.parse_name(p) for p in matched], source=str(root))
        if not catalog:
            raise ConfigurationError(
                f"no scenarios in {root} match {filter_pattern!r}")

        logger.info("catalog loaded: %d scenarios from %s (ids %d..%d)",
                    len(catalog), root, catalog[0].instance_id,
                    catalog[-1].instance_id)
        return catalog

    # ── Windows ──────────────────────────────────────────────

    def window_for(self, generation_index: int, window_size: int) -> List[Scenario]:
        if window_size <= 0:
            raise OutOfRangeError(f"window size must be > 0, got {window_size}")
        if generation_index < 0:
            raise OutOfRangeError(
                f"generation index must be >= 0, got {generation_index}")
        start = generation_index * window_size
        stop = start + window_size
        if stop > len(self._scenarios):
            raise OutOfRangeError(
                f"generation {generation_index} needs scenarios [{start}, {stop}) "
                f"but the catalog holds only {len(self._scenarios)}")
        return self._scenarios[start:stop]

    def max_generations(self, window_size: int) -> int:
        return len(self._scenarios) // window_size if window_size > 0 else 0

    # ── Sequence protocol ────────────────────────────────────

    def __getitem__(self, index):
        return self._scenarios[index]

    def __len__(self) -> int:
        return len(self._scenarios)

    def __iter__(self) -> Iterator[Scenario]:
        return iter(self._scenarios)

    def __repr__(self) -> str:
        return f"ScenarioCatalog({len(self._scenarios)} scenarios, source={self._source!r})"
