from tokenomics_engine.services.engine import TokenStrategyEngine
from tokenomics_engine.services.launch import LaunchController
from tokenomics_engine.services.liquidity import LiquidityFlywheel
from tokenomics_engine.services.simulation import ScenarioSimulator, simulate_path
from tokenomics_engine.services.stress import STRESS_SCENARIOS, StressTestEngine
from tokenomics_engine.services.valuation import ValuationModel
from tokenomics_engine.services.vesting import compute_vesting_schedule

__all__ = [
    "LaunchController",
    "LiquidityFlywheel",
    "STRESS_SCENARIOS",
    "ScenarioSimulator",
    "StressTestEngine",
    "TokenStrategyEngine",
    "ValuationModel",
    "compute_vesting_schedule",
    "simulate_path",
]
