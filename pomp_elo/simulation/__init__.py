"""Diagnostic trajectory simulation."""

from .simulator import SimulationConfig, SimulationResult, Simulator

__all__ = ["SimulationConfig", "SimulationResult", "Simulator"]
