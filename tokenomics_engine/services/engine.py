"""
Single entry point tying the launch, liquidity, valuation, simulation and
stress components together for one token.

Every component event is re-emitted on the engine's own emitter, so a
platform can subscribe once.
"""

import logging
from datetime import datetime
from typing import Callable, Union

from tokenomics_engine.events import EventCallback, EventEmitter, utc_now
from tokenomics_engine.schemas import SimulationParams, TokenStrategyConfig
from tokenomics_engine.services.launch import LaunchController
from tokenomics_engine.services.liquidity import LiquidityFlywheel
from tokenomics_engine.services.simulation import ScenarioSimulator
from tokenomics_engine.services.stress import StressTestEngine
from tokenomics_engine.services.valuation import ValuationModel

logger = logging.getLogger(__name__)


class TokenStrategyEngine:
    def __init__(
        self,
        config: Union[TokenStrategyConfig, dict, None] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        if config is None:
            config = TokenStrategyConfig()
        elif isinstance(config, dict):
            config = TokenStrategyConfig.model_validate(config)
        self.config = config
        self._clock = clock

        self.launch = LaunchController(config.launch, clock=clock)
        self.liquidity = LiquidityFlywheel(config.flywheel, clock=clock)
        self.valuation = ValuationModel(config.valuation, config.simulation, initial_price=config.launch.initial_price)
        self.simulation = ScenarioSimulator(config.simulation, valuation=self.valuation)
        self.stress = StressTestEngine(
            staking_target=config.simulation.staking_target,
            targets=config.valuation.equilibrium_targets,
        )

        self.events = EventEmitter("engine")
        for component in (self.launch, self.liquidity, self.simulation, self.stress):
            component.events.subscribe(self.events.emit)

    def on_event(self, callback: EventCallback) -> None:
        self.events.subscribe(callback)

    def get_health(self) -> dict:
        liquidity_health = self.liquidity.get_liquidity_health()
        equilibrium = self.valuation.calculate_equilibrium()
        stage = self.liquidity.get_flywheel_stage()

        components = {
            "launch": True,
            "liquidity": liquidity_health["overall"] != "critical",
            "simulation": True,
        }
        healthy = sum(components.values())
        if healthy == len(components):
            overall = "healthy"
        elif healthy >= len(components) / 2:
            overall = "degraded"
        else:
            overall = "unhealthy"

        return {
            "overall": overall,
            "components": components,
            "liquidity_health": liquidity_health,
            "launch_phase": self.launch.get_phase(),
            "flywheel_stage": stage["stage"],
            "sustainability_score": equilibrium["sustainability_score"],
            "last_check": self._clock(),
        }

    # ── Quick access ──

    def get_launch_progress(self) -> dict:
        return self.launch.get_progress()

    def get_flywheel_metrics(self) -> dict:
        return self.liquidity.get_flywheel_metrics()

    def get_liquidity_health(self) -> dict:
        return self.liquidity.get_liquidity_health()

    def get_valuation_metrics(self) -> dict:
        return self.valuation.get_valuation_metrics()

    def calculate_equilibrium(self) -> dict:
        return self.valuation.calculate_equilibrium()

    def run_simulation(self, years: int, scenario: str = "base", **kwargs) -> dict:
        return self.simulation.run_simulation(SimulationParams(years=years, scenario=scenario, **kwargs))

    def run_stress_test(self, scenario) -> dict:
        return self.stress.run_stress_test(scenario)
