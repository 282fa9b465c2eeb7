"""
evobid — Command-line entry point.

Usage:
    python -m evobid.main --engine mysim.engine:create --candidates progs.tsv --generation 0
    python -m evobid.main --engine mysim.engine:create --candidates progs.tsv --all-scenarios
    python -m evobid.main --config evaluator.yaml --engine ... --distributed

The engine factory is called with the loaded EvaluatorConfig and must
return an object implementing SimulationEngine. The candidates file
holds one ``<id>\t<program>`` per line; blank lines and lines starting
with '#' are skipped.
"""
from __future__ import annotations

import argparse
import importlib
import logging
import sys
from pathlib import Path
from typing import Callable, List

from evobid.config import EvaluatorConfig, load_config
from evobid.evaluation.evaluator import FitnessEvaluator
from evobid.evaluation.scorer import WORST_FITNESS
from evobid.interfaces.errors import ConfigurationError, EvaluationError, MetadataError
from evobid.interfaces.types import Candidate
from evobid.simulation.engine import SimulationEngine

logger = logging.getLogger("evobid.main")


def setup_logging(level: str, log_file: str | None = None):
    fmt = "%(asctime)s │ %(levelname)-5s │ %(name)-20s │ %(message)s"
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=fmt,
        handlers=handlers,
    )


def load_engine_factory(spec: str) -> Callable[[EvaluatorConfig], SimulationEngine]:
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigurationError(f"engine must be 'module:factory', got {spec!r}")
    module = importlib.import_module(module_name)
    try:
        return getattr(module, attr)
    except AttributeError:
        raise ConfigurationError(f"{module_name} has no attribute {attr!r}") from None


def read_candidates(path: Path) -> List[Candidate]:
    candidates: List[Candidate] = []
    for lineno, raw in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        cid, sep, program = line.partition("\t")
        if not sep:
            raise ConfigurationError(f"{path}:{lineno}: expected '<id>\\t<program>'")
        candidates.append(Candidate(id=cid.strip(), program=program.strip()))
    if not candidates:
        raise ConfigurationError(f"no candidates in {path}")
    return candidates


def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="evobid fitness evaluator")
    p.add_argument("--config", default=None, help="YAML config file")
    p.add_argument("--engine", required=True, help="simulation engine factory, module:attr")
    p.add_argument("--candidates", required=True, type=Path,
                   help="file with one '<id>\\t<program>' per line")
    mode = p.add_mutually_exclusive_group(required=True)
    mode.add_argument("--generation", type=int, help="evaluate on this generation's window")
    mode.add_argument("--all-scenarios", action="store_true",
                      help="evaluate on every scenario, write a stats CSV")
    p.add_argument("--distributed", action="store_true", help="run jobs on a worker pool")
    p.add_argument("--log-level", default=None)
    return p.parse_args(argv)


def main(argv: List[str] | None = None) -> int:
    args = parse_args(argv)
    config = load_config(args.config)
    if args.distributed:
        config.execution.distributed = True
    setup_logging(args.log_level or config.logging.log_level,
                  config.logging.log_file or None)

    errors = config.validate()
    if errors:
        for e in errors:
            logger.error("config: %s", e)
        return 1

    try:
        engine = load_engine_factory(args.engine)(config)
        candidates = read_candidates(args.candidates)
        with FitnessEvaluator(config, engine) as evaluator:
            if args.all_scenarios:
                records = evaluator.evaluate(candidates)
            else:
                records = evaluator.evaluate_population(args.generation, candidates)
    except (EvaluationError, MetadataError) as exc:
        logger.error("evaluation aborted: %s", exc)
        return 2

    for cid, recs in records.items():
        fits = ["WORST" if r.fitness == WORST_FITNESS else f"{r.fitness:.2f}"
                for r in recs]
        print(f"{cid}\t{' '.join(fits)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
