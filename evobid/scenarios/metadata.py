"""
evobid — Scenario metadata cache.

Each scenario file has a sibling ``.properties`` file with one
``key = value`` pair per line (dynamism bin, urgency, scale, event
counts). The diagnostics writer looks these up for every result, so the
parsed mappings are kept for the lifetime of one evaluator. Scenario
metadata never changes during a run; there is no invalidation, only
clear() at teardown.

Thread-safe: concurrent first access to the same file loads it once.
"""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, Mapping, Union

from evobid.interfaces.errors import MetadataError
from evobid.interfaces.types import Scenario

logger = logging.getLogger("evobid.metadata")

REQUIRED_KEYS = (
    "dynamism_bin",
    "urgency",
    "scale",
    "AddParcelEvent",
    "AddVehicleEvent",
)


def parse_properties(text: str, source: str = "<string>") -> Dict[str, str]:
    """Parse ``key = value`` lines. Blank lines and #/! comments are skipped."""
    props: Dict[str, str] = {}
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line[0] in "#!":
            continue
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            raise MetadataError(f"{source}:{lineno}: malformed property line {raw!r}")
        props[key] = value.strip()
    return props


class ScenarioMetadataCache:

    __slots__ = ("_cache", "_lock", "_loads")

    def __init__(self) -> None:
        self._cache: Dict[Path, Dict[str, str]] = {}
        self._lock = threading.Lock()
        self._loads = 0

    @property
    def loads(self) -> int:
        """Number of files actually read from disk."""
        return self._loads

    def get_for(self, scenario: Scenario) -> Mapping[str, str]:
        return self.get(scenario.metadata_path)

    def get(self, path: Union[str, Path]) -> Mapping[str, str]:
        key = Path(path)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        with self._lock:
            cached = self._cache.get(key)
            if cached is None:
                cached = self._load(key)
                self._cache[key] = cached
            return cached

    def _load(self, path: Path) -> Dict[str, str]:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise MetadataError(f"cannot read scenario metadata {path}: {exc}") from exc

        props = parse_properties(text, source=str(path))
        missing = [k for k in REQUIRED_KEYS if k not in props]
        if missing:
            raise MetadataError(
                f"{path}: missing required keys: {', '.join(missing)}")
        self._loads += 1
        logger.debug("metadata loaded: %s (%d keys)", path, len(props))
        return props

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, (str, Path)) and Path(path) in self._cache
