import logging
import math
from collections import defaultdict
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor
from functools import partial
from typing import Dict, List, Optional, Union

import numpy as np

from tokenomics_engine.errors import UnknownScenarioError
from tokenomics_engine.events import EventEmitter, SimulationCompleted
from tokenomics_engine.schemas import GrowthAssumptions, Scenario, SimulationConfig, SimulationParams
from tokenomics_engine.services.valuation import ValuationModel
from tokenomics_engine.utils.amounts import BASIS_POINTS, format_amount, safe_ratio, scale_amount, to_basis_points

logger = logging.getLogger(__name__)

PERCENTILES = [0.10, 0.25, 0.50, 0.75, 0.90]
CONFIDENCE_METRICS = ("price", "staking_ratio", "users")

# Logistic adoption curve is centred on month 24 with a 12-month scale
_S_CURVE_CENTER = 24
_S_CURVE_SCALE = 12
_S_CURVE_DEPTH = 0.8
_EXPONENTIAL_BASE = 0.95
_LINEAR_HORIZON = 60
_LINEAR_FLOOR = 0.1

_AGENT_GROWTH_SHARE = 0.5
_PRICE_DEMAND_SENSITIVITY = 0.01
_PRICE_VOLATILITY_WEIGHT = 0.1


def adoption_factor(curve: str, months_elapsed: int) -> float:
    """Multiplier applied to base growth rates; all three curves decay over time."""
    if curve == "exponential":
        return _EXPONENTIAL_BASE ** (months_elapsed / 12)
    if curve == "s_curve":
        logistic = 1 / (1 + math.exp(-(months_elapsed - _S_CURVE_CENTER) / _S_CURVE_SCALE))
        return 1 - logistic * _S_CURVE_DEPTH
    return max(_LINEAR_FLOOR, 1 - months_elapsed / _LINEAR_HORIZON)


def monthly_growth(growth: GrowthAssumptions, months_elapsed: int, multiplier: float) -> Dict[str, float]:
    factor = adoption_factor(growth.adoption_curve, months_elapsed) * multiplier
    return {
        "users": growth.user_growth_rate * factor,
        "agents": growth.user_growth_rate * _AGENT_GROWTH_SHARE * factor,
        "tvl": growth.tvl_growth_rate * factor,
        "revenue": growth.revenue_growth_rate * factor,
    }


def simulate_path(
    config: SimulationConfig,
    scenario: Scenario,
    years: int,
    initial_price: float,
    rng: np.random.Generator,
) -> List[dict]:
    """One run of the monthly loop; returns one snapshot per simulated year.

    Deterministic for a given generator state. Shares no state with other runs.
    """
    adj = scenario.adjustments
    start = config.initial_state
    schedule = config.emission_schedule

    circulating = config.initial_circulating
    staked = 0
    burned = 0
    price = initial_price
    tvl = start.tvl
    revenue = start.monthly_revenue
    users = start.users
    agents = start.agents

    burn_bp = to_basis_points(config.burn_rate * adj.burn_multiplier)
    staking_ratio_target = min(1.0, config.staking_target * adj.staking_multiplier)

    projections = []
    for year in range(1, years + 1):
        monthly_emission = schedule[min(year - 1, len(schedule) - 1)] // 12

        for month in range(1, 13):
            g = monthly_growth(config.growth_assumptions, (year - 1) * 12 + month, adj.growth_multiplier)
            users = math.floor(users * (1 + g["users"]))
            agents = math.floor(agents * (1 + g["agents"]))
            tvl = math.floor(tvl * (1 + g["tvl"]))
            revenue = math.floor(revenue * (1 + g["revenue"]))

            circulating += monthly_emission
            burn = circulating * burn_bp // (BASIS_POINTS * 12)
            circulating -= burn
            burned += burn

            staked = scale_amount(circulating, staking_ratio_target)

            demand_factor = (users / start.users) * (tvl / start.tvl)
            supply_factor = safe_ratio(circulating, config.initial_circulating, default=1.0)
            volatility = (rng.random() - 0.5) * adj.price_volatility
            price = price * (
                1
                + (safe_ratio(demand_factor, supply_factor, default=1.0) - 1) * _PRICE_DEMAND_SENSITIVITY
                + volatility * _PRICE_VOLATILITY_WEIGHT
            )
            price = max(config.price_floor, price)

        projections.append({
            "year": year,
            "circulating": format_amount(circulating),
            "staked": format_amount(staked),
            "burned": format_amount(burned),
            "price": price,
            "market_cap": circulating * price,
            "tvl": tvl,
            "revenue": revenue * 12,
            "users": users,
            "agents": agents,
            "staking_ratio": safe_ratio(staked, circulating),
            "burn_rate": safe_ratio(burned, config.initial_supply),
        })
    return projections


def _seeded_path(config: SimulationConfig, scenario: Scenario, years: int, initial_price: float, seed) -> List[dict]:
    # Must stay module level: process pools pickle it by reference
    return simulate_path(config, scenario, years, initial_price, np.random.default_rng(int(seed)))


def _percentile_row(year: int, metric: str, values: List[float]) -> dict:
    ordered = np.sort(np.asarray(values, dtype=float))
    n = len(ordered)
    row = {"year": year, "metric": metric}
    for q in PERCENTILES:
        row[f"p{int(round(q * 100))}"] = float(ordered[min(n - 1, int(math.floor(n * q)))])
    return row


class ScenarioSimulator:
    def __init__(
        self,
        config: Union[SimulationConfig, dict, None] = None,
        valuation: Optional[ValuationModel] = None,
    ):
        if config is None:
            config = SimulationConfig()
        elif isinstance(config, dict):
            config = SimulationConfig.model_validate(config)
        self.config = config
        self.valuation = valuation or ValuationModel(simulation_config=config)
        self.events = EventEmitter("simulation")

    def get_scenario(self, name: str) -> Scenario:
        scenario = next((s for s in self.config.scenarios if s.name == name), None)
        if scenario is None:
            raise UnknownScenarioError(name)
        return scenario

    def run_simulation(
        self,
        params: Union[SimulationParams, dict],
        rng: Optional[np.random.Generator] = None,
    ) -> dict:
        if isinstance(params, dict):
            params = SimulationParams.model_validate(params)
        scenario = self.get_scenario(params.scenario)

        effective_seed = params.seed
        if rng is None:
            if effective_seed is None:
                effective_seed = int(np.random.default_rng().integers(0, 2**31))
            rng = np.random.default_rng(effective_seed)

        initial_price = self.valuation.price
        projections = simulate_path(self.config, scenario, params.years, initial_price, rng)
        summary = self._summarize(projections)

        confidence = []
        if params.monte_carlo:
            confidence = self._monte_carlo_confidence(scenario, params, initial_price, rng)

        logger.info(
            "Simulation %s for %d years finished (monte_carlo=%s, seed=%s)",
            scenario.name, params.years, params.monte_carlo, effective_seed,
        )
        self.events.emit(SimulationCompleted(scenario=scenario.name, years=params.years, summary=summary))

        return {
            "scenario": scenario.name,
            "projections": projections,
            "summary": summary,
            "confidence": confidence,
            "random_seed_used": effective_seed,
        }

    def run_supply_simulation(self, params: Union[SimulationParams, dict]) -> dict:
        return self.run_simulation(params)

    def run_demand_simulation(self, params: Union[SimulationParams, dict]) -> dict:
        return self.run_simulation(params)

    def _summarize(self, projections: List[dict]) -> dict:
        final = projections[-1]
        prices = [p["price"] for p in projections]
        sustainability = self.valuation.calculate_equilibrium()["sustainability_score"]
        return {
            "final_circulating": final["circulating"],
            "final_staked": final["staked"],
            "total_burned": final["burned"],
            "average_staking_ratio": sum(p["staking_ratio"] for p in projections) / len(projections),
            "peak_price": max(prices),
            "trough_price": min(prices),
            "sustainability_score": sustainability,
            "risk_score": 100 - sustainability,
        }

    def _monte_carlo_confidence(
        self,
        scenario: Scenario,
        params: SimulationParams,
        initial_price: float,
        seed_rng: np.random.Generator,
    ) -> List[dict]:
        """Fan out independent runs, each with its own generator, then merge by year."""
        path_seeds = [int(s) for s in seed_rng.integers(0, 2**31 - 1, size=params.iterations, dtype=np.int64)]
        run_one = partial(_seeded_path, self.config, scenario, params.years, initial_price)

        workers = min(self.config.monte_carlo_workers, params.iterations)
        if self.config.monte_carlo_executor == "process":
            chunksize = max(1, params.iterations // (workers * 4))
            with ProcessPoolExecutor(max_workers=workers) as pool:
                runs = list(pool.map(run_one, path_seeds, chunksize=chunksize))
        else:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                runs = list(pool.map(run_one, path_seeds))

        samples: Dict[int, Dict[str, List[float]]] = defaultdict(lambda: defaultdict(list))
        for projections in runs:
            for p in projections:
                for metric in CONFIDENCE_METRICS:
                    samples[p["year"]][metric].append(p[metric])

        return [
            _percentile_row(year, metric, samples[year][metric])
            for year in sorted(samples)
            for metric in CONFIDENCE_METRICS
        ]
