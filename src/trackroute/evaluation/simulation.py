"""Route a mix of synthetic scenarios through an engine and summarize outcomes."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from trackroute.engine import RoutingEngine, RoutingResult
from trackroute.evaluation.metrics import RoutingMetrics
from trackroute.evaluation.scenarios import EventScenarioGenerator, Scenario, ScenarioType


@dataclass
class SimulationConfig:
    """Configuration for a routing simulation.

    Attributes:
        n_events: Total number of events to route.
        seed: Random seed for scenario generation.
        scenario_mix: Distribution of scenario types.
        available_trackers: Trackers considered registered (None = unknown).
    """

    n_events: int = 200
    seed: int = 42
    scenario_mix: Dict[ScenarioType, float] = field(
        default_factory=lambda: {
            ScenarioType.NORMAL: 0.5,
            ScenarioType.HIGH_VOLUME: 0.3,
            ScenarioType.PII: 0.1,
            ScenarioType.ESSENTIAL: 0.1,
        }
    )
    available_trackers: Optional[List[str]] = None


@dataclass
class SimulationResult:
    """Metrics for one scenario type.

    Attributes:
        scenario_type: The event profile.
        metrics: Aggregated routing metrics.
        mean_latency_ms: Average routing latency per event.
    """

    scenario_type: ScenarioType
    metrics: RoutingMetrics
    mean_latency_ms: float


class SimulationRunner:
    """Run a scenario mix through a routing engine."""

    def __init__(self, engine: RoutingEngine, config: SimulationConfig):
        self.engine = engine
        self.config = config
        self.scenario_gen = EventScenarioGenerator(seed=config.seed)

    def run_all(self) -> Dict[ScenarioType, SimulationResult]:
        """Route every generated scenario.

        Returns:
            Dict mapping scenario type to results, for the types in the mix.
        """
        by_type: Dict[ScenarioType, List[Scenario]] = {}
        for scenario in self._generate_scenarios():
            by_type.setdefault(scenario.scenario_type, []).append(scenario)
        return {stype: self._run(stype, scenarios) for stype, scenarios in by_type.items()}

    def _generate_scenarios(self) -> List[Scenario]:
        """Generate mixed scenarios according to config."""
        scenarios = []
        for stype, fraction in self.config.scenario_mix.items():
            n = max(1, int(self.config.n_events * fraction))
            scenarios.extend(self.scenario_gen.generate(n, stype))
        return scenarios[: self.config.n_events]

    def _run(self, scenario_type: ScenarioType, scenarios: List[Scenario]) -> SimulationResult:
        results: List[RoutingResult] = []
        latencies = []
        for scenario in scenarios:
            start = time.perf_counter()
            results.append(
                self.engine.route_event(
                    scenario.event, scenario.consent, self.config.available_trackers
                )
            )
            latencies.append((time.perf_counter() - start) * 1000)
        n = len(scenarios)
        return SimulationResult(
            scenario_type=scenario_type,
            metrics=RoutingMetrics.from_results(results),
            mean_latency_ms=sum(latencies) / n if n > 0 else 0.0,
        )
