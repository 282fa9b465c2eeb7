"""
evobid — Error types.

Everything here except MetadataError derives from EvaluationError and
signals a setup bug: these propagate to the process boundary and are
never retried. Per-job simulation failures are not exceptions at this
level; the executor turns them into failed RawResults.
"""
from __future__ import annotations


class EvaluationError(RuntimeError):
    pass


class ConfigurationError(EvaluationError):
    pass


class ParseError(ConfigurationError):
    """A scenario file name does not carry a usable instance id."""


class OutOfRangeError(ConfigurationError):
    """Requested generation window lies outside the scenario catalog."""


class CorrelationError(EvaluationError):
    """A simulation result cannot be traced back to exactly one candidate."""


class MetadataError(OSError):
    """Scenario metadata file is missing or malformed."""
