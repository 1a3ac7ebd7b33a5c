"""
Supply projection, valuation metrics and equilibrium gap analysis.

Supply quantities are ints; price, ratios and rates are floats. The
time-to-equilibrium figure is a heuristic estimate, not a solver result.
"""

import logging
import math
from typing import List, Union

from tokenomics_engine.schemas import SimulationConfig, ValuationConfig
from tokenomics_engine.utils.amounts import format_amount, parse_amount, safe_ratio, scale_amount

logger = logging.getLogger(__name__)

# Gap tolerances before a recommendation is issued
_STAKING_TOLERANCE = 0.1
_LIQUIDITY_TOLERANCE = 0.05
_BURN_TOLERANCE = 0.01
_VELOCITY_TOLERANCE = 1.0

_DEMAND_DECAY_FLOOR = 0.1


class ValuationModel:
    def __init__(
        self,
        valuation_config: Union[ValuationConfig, dict, None] = None,
        simulation_config: Union[SimulationConfig, dict, None] = None,
        initial_price: float = 0.03,
    ):
        if valuation_config is None:
            valuation_config = ValuationConfig()
        elif isinstance(valuation_config, dict):
            valuation_config = ValuationConfig.model_validate(valuation_config)
        if simulation_config is None:
            simulation_config = SimulationConfig()
        elif isinstance(simulation_config, dict):
            simulation_config = SimulationConfig.model_validate(simulation_config)
        if initial_price <= 0:
            raise ValueError("initial_price must be > 0")

        self.config = valuation_config
        self.simulation_config = simulation_config

        supply = valuation_config.supply_model
        self._circulating = supply.initial_circulating
        self._staked = 0
        self._burned = 0
        self._price = initial_price

    @property
    def price(self) -> float:
        return self._price

    @property
    def total_supply(self) -> int:
        return self.config.supply_model.initial_supply

    def _emission_for_year(self, year: int) -> int:
        # Horizons past the schedule repeat its last entry
        emissions = self.config.supply_model.yearly_emissions
        return emissions[min(year - 1, len(emissions) - 1)]

    def demand_growth(self, year: int) -> float:
        """Weighted driver growth, decayed geometrically by elapsed years."""
        decay = max(_DEMAND_DECAY_FLOOR, (1 - self.config.demand_decay) ** (year - 1))
        return sum(d.weight * d.growth_rate for d in self.config.demand_drivers) * decay

    def project_supply(self, years: int) -> List[dict]:
        if years < 0:
            raise ValueError("years must be >= 0")

        burn_rate = self.simulation_config.burn_rate
        staking_target = self.simulation_config.staking_target
        total_supply = self.total_supply

        circulating = self.config.supply_model.initial_circulating
        total_burned = 0
        price = self._price
        projections = []

        for year in range(1, years + 1):
            circulating_before = circulating
            emission = self._emission_for_year(year)
            circulating += emission

            burn = scale_amount(circulating, burn_rate)
            circulating -= burn
            total_burned += burn

            staked = scale_amount(circulating, staking_target)
            liquid = circulating - staked

            supply_pressure = safe_ratio(emission, total_supply)
            price = price * (1 + self.demand_growth(year) - supply_pressure)

            projections.append({
                "year": year,
                "circulating_before": format_amount(circulating_before),
                "emission": format_amount(emission),
                "burned": format_amount(burn),
                "circulating": format_amount(circulating),
                "staked": format_amount(staked),
                "liquid": format_amount(liquid),
                "total_burned": format_amount(total_burned),
                "inflation_rate": safe_ratio(emission, circulating_before),
                "projected_price": price,
            })
        return projections

    def get_circulating_supply(self, year: int) -> str:
        if year < 1:
            return format_amount(self.config.supply_model.initial_circulating)
        return self.project_supply(year)[-1]["circulating"]

    def get_valuation_metrics(self) -> dict:
        current_emission = self.config.supply_model.yearly_emissions[0]
        return {
            "circulating_supply": format_amount(self._circulating),
            "total_staked": format_amount(self._staked),
            "staking_ratio": safe_ratio(self._staked, self._circulating),
            "total_burned": format_amount(self._burned),
            "burn_rate": safe_ratio(self._burned, self.total_supply),
            "velocity": self.config.velocity_estimate,
            "inflation_rate": safe_ratio(current_emission, self._circulating),
            "market_cap": self._circulating * self._price,
            "fdv": self.total_supply * self._price,
            "price": self._price,
            "price_change_24h": 0.0,
            "price_change_7d": 0.0,
            "price_change_30d": 0.0,
        }

    def calculate_equilibrium(self) -> dict:
        metrics = self.get_valuation_metrics()
        targets = self.config.equilibrium_targets

        current = {
            "staking_ratio": metrics["staking_ratio"],
            "liquidity_ratio": self.config.assumed_liquidity_ratio,
            "burn_rate": metrics["burn_rate"],
            "velocity": metrics["velocity"],
        }
        gaps = {
            "staking_gap": targets.staking_ratio - current["staking_ratio"],
            "liquidity_gap": targets.liquidity_ratio - current["liquidity_ratio"],
            "burn_gap": targets.burn_rate - current["burn_rate"],
            "velocity_gap": targets.velocity_target - current["velocity"],
        }

        recommendations = []
        if gaps["staking_gap"] > _STAKING_TOLERANCE:
            recommendations.append("Increase staking rewards to incentivize locking")
        if gaps["staking_gap"] < -_STAKING_TOLERANCE:
            recommendations.append("Consider reducing staking rewards to improve liquidity")
        if gaps["liquidity_gap"] > _LIQUIDITY_TOLERANCE:
            recommendations.append("Boost liquidity mining incentives")
        if gaps["burn_gap"] > _BURN_TOLERANCE:
            recommendations.append("Increase fee burn rate or add new burn mechanisms")
        if abs(gaps["velocity_gap"]) > _VELOCITY_TOLERANCE:
            recommendations.append("Adjust transaction incentives to normalize velocity")

        max_gap = max(
            abs(gaps["staking_gap"]),
            abs(gaps["liquidity_gap"]),
            abs(gaps["burn_gap"]) * 10,
            abs(gaps["velocity_gap"]) / 4,
        )
        sustainability = max(0.0, 100 - (abs(gaps["staking_gap"]) + abs(gaps["liquidity_gap"])) * 50)

        return {
            "current_state": current,
            "target_state": targets.model_dump(),
            "gap_analysis": gaps,
            "recommendations": recommendations,
            "estimated_time_to_equilibrium": math.ceil(max_gap * 365),
            "sustainability_score": sustainability,
        }

    # ── Administrative setters ──

    def set_circulating_supply(self, supply: Union[int, str]) -> None:
        self._circulating = parse_amount(supply, "circulating_supply")

    def set_total_staked(self, staked: Union[int, str]) -> None:
        value = parse_amount(staked, "total_staked")
        if value > self._circulating:
            logger.warning("Staked amount %s exceeds circulating supply %s", value, self._circulating)
        self._staked = value

    def set_total_burned(self, burned: Union[int, str]) -> None:
        self._burned = parse_amount(burned, "total_burned")

    def set_price(self, price: float) -> None:
        if price <= 0:
            raise ValueError("price must be > 0")
        self._price = price
