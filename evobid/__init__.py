"""
evobid — fitness evaluation orchestrator for evolved bidding heuristics.

Runs every candidate of a generation against a window of simulation
scenarios, maps each simulation result back to the candidate that
produced it and turns the statistics into a scalar fitness value.
"""

__version__ = "1.0.0"
