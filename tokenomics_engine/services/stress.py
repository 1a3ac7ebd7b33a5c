import logging
import math
from typing import List, Optional, Union

from tokenomics_engine.errors import UnknownStressScenarioError
from tokenomics_engine.events import EventEmitter, StressTestTriggered
from tokenomics_engine.schemas import EquilibriumTargets, StressScenario

logger = logging.getLogger(__name__)

STRESS_SCENARIOS: List[StressScenario] = [
    StressScenario(name="market_crash", trigger="90% price drop",
                   price_impact=-0.9, staking_impact=-0.4, liquidity_impact=-0.6, duration=90),
    StressScenario(name="mass_unstaking", trigger="Fear event causing 50% unstaking",
                   price_impact=-0.5, staking_impact=-0.5, liquidity_impact=-0.3, duration=30),
    StressScenario(name="protocol_exploit", trigger="Security breach",
                   price_impact=-0.7, staking_impact=-0.3, liquidity_impact=-0.5, duration=14),
    StressScenario(name="regulatory_action", trigger="Regulatory enforcement",
                   price_impact=-0.6, staking_impact=-0.2, liquidity_impact=-0.7, duration=180),
]

# Circuit-breaker thresholds
EMERGENCY_PAUSE_DRAWDOWN = 0.5
STAKING_BOOST_RATIO = 0.3
LIQUIDITY_INJECTION_RATIO = 0.05

# Survival requires all three
SURVIVAL_MIN_STAKING = 0.2
SURVIVAL_MIN_LIQUIDITY = 0.03
SURVIVAL_MAX_DRAWDOWN = 0.95

RECOVERY_RATE_PER_DAY = 0.02


class StressTestEngine:
    def __init__(self, staking_target: float = 0.6, targets: Optional[EquilibriumTargets] = None):
        self.staking_target = staking_target
        self.targets = targets or EquilibriumTargets()
        self.events = EventEmitter("stress")

    def get_stress_scenarios(self) -> List[StressScenario]:
        return [s.model_copy() for s in STRESS_SCENARIOS]

    def resolve(self, scenario: Union[StressScenario, dict, str]) -> StressScenario:
        if isinstance(scenario, str):
            found = next((s for s in STRESS_SCENARIOS if s.name == scenario), None)
            if found is None:
                raise UnknownStressScenarioError(scenario)
            return found
        if isinstance(scenario, dict):
            return StressScenario.model_validate(scenario)
        return scenario

    def run_stress_test(self, scenario: Union[StressScenario, dict, str]) -> dict:
        scenario = self.resolve(scenario)

        staking_ratio_low = self.staking_target * (1 + scenario.staking_impact)
        liquidity_ratio_low = self.targets.liquidity_ratio * (1 + scenario.liquidity_impact)
        max_drawdown = abs(scenario.price_impact)

        breakers = []
        if max_drawdown > EMERGENCY_PAUSE_DRAWDOWN:
            breakers.append("Emergency pause")
        if staking_ratio_low < STAKING_BOOST_RATIO:
            breakers.append("Staking incentive boost")
        if liquidity_ratio_low < LIQUIDITY_INJECTION_RATIO:
            breakers.append("Protocol liquidity injection")

        # Rounded first so float noise (0.9 / 0.02 = 45.000…01) does not add a day
        recovery_time = math.ceil(round(abs(scenario.price_impact) / RECOVERY_RATE_PER_DAY, 9))
        survived = (
            staking_ratio_low > SURVIVAL_MIN_STAKING
            and liquidity_ratio_low > SURVIVAL_MIN_LIQUIDITY
            and max_drawdown < SURVIVAL_MAX_DRAWDOWN
        )

        recommendations = []
        if not survived:
            recommendations.append("Review protocol parameters for extreme scenarios")
            recommendations.append("Increase insurance fund allocation")
        if breakers:
            recommendations.append("Circuit breakers activated - monitor recovery")
        if recovery_time > scenario.duration:
            recommendations.append("Recovery slower than stress duration - prepare extended support")

        if not survived:
            logger.warning("Stress scenario %s is not survivable (breakers: %s)", scenario.name, breakers)
        self.events.emit(StressTestTriggered(scenario=scenario.name, survived=survived, recovery_time=recovery_time))

        return {
            "scenario": scenario.name,
            "survived": survived,
            "recovery_time": recovery_time,
            "max_drawdown": max_drawdown,
            "staking_ratio_low": staking_ratio_low,
            "liquidity_ratio_low": liquidity_ratio_low,
            "circuit_breakers_triggered": breakers,
            "recommendations": recommendations,
        }

    def run_all(self) -> List[dict]:
        return [self.run_stress_test(s) for s in STRESS_SCENARIOS]
