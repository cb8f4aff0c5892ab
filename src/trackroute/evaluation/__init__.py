"""Evaluation module for trackroute.

Synthetic event scenarios, routing and sampling metrics, and a simulation
runner for checking how a routing configuration behaves on a realistic mix
of traffic.
"""

from .metrics import RoutingMetrics, SamplingStats
from .scenarios import EventScenarioGenerator, Scenario, ScenarioType
from .simulation import SimulationConfig, SimulationResult, SimulationRunner

__all__ = [
    "RoutingMetrics",
    "SamplingStats",
    "EventScenarioGenerator",
    "ScenarioType",
    "Scenario",
    "SimulationConfig",
    "SimulationResult",
    "SimulationRunner",
]
