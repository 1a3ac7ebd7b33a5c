"""
Scenario Simulation Tests
=========================
Scenario lookup, seeded reproducibility and Monte Carlo confidence bands.
Run with: python3 -m pytest tests/test_simulation.py -v

Or directly: python3 tests/test_simulation.py
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tokenomics_engine.errors import ConfigurationError, UnknownScenarioError
from tokenomics_engine.events import SimulationCompleted
from tokenomics_engine.schemas import SimulationConfig, SimulationParams
from tokenomics_engine.services.engine import TokenStrategyEngine
from tokenomics_engine.services.simulation import ScenarioSimulator, adoption_factor, simulate_path


# ── Helpers ──────────────────────────────────────────────────────────────────

def make_simulator(**config_overrides):
    simulator = ScenarioSimulator(SimulationConfig(**config_overrides))
    received = []
    simulator.events.subscribe(received.append)
    return simulator, received


def make_params(**overrides) -> SimulationParams:
    defaults = dict(years=3, scenario="base", seed=42)
    defaults.update(overrides)
    return SimulationParams(**defaults)


# ── Test 1: Unknown scenario ─────────────────────────────────────────────────

def test_unknown_scenario_raises_before_any_work():
    """An unknown name is a configuration error; nothing runs and nothing is emitted."""
    simulator, received = make_simulator()
    price_before = simulator.valuation.price

    with pytest.raises(UnknownScenarioError) as exc_info:
        simulator.run_simulation(make_params(scenario="moonshot"))

    assert isinstance(exc_info.value, ConfigurationError)
    assert str(exc_info.value) == "Unknown scenario: moonshot"
    assert received == [], "no event may be emitted for a rejected run"
    assert simulator.valuation.price == price_before


def test_unknown_scenario_through_engine():
    engine = TokenStrategyEngine()
    received = []
    engine.on_event(received.append)
    with pytest.raises(UnknownScenarioError):
        engine.run_simulation(5, "moonshot")
    assert received == []


# ── Test 2: Seed reproducibility ─────────────────────────────────────────────

def test_seed_reproducibility():
    """Same seed → identical projections and confidence bands."""
    simulator, _ = make_simulator()
    a = simulator.run_simulation(make_params(monte_carlo=True, iterations=40))
    b = simulator.run_simulation(make_params(monte_carlo=True, iterations=40))
    assert a["projections"] == b["projections"]
    assert a["confidence"] == b["confidence"]
    assert a["random_seed_used"] == 42


def test_unseeded_run_reports_a_replayable_seed():
    simulator, _ = make_simulator()
    first = simulator.run_simulation(make_params(seed=None))
    seed = first["random_seed_used"]
    assert isinstance(seed, int)
    replay = simulator.run_simulation(make_params(seed=seed))
    assert replay["projections"] == first["projections"]


def test_worker_count_does_not_change_results():
    single, _ = make_simulator(monte_carlo_workers=1)
    pooled, _ = make_simulator(monte_carlo_workers=8)
    params = make_params(monte_carlo=True, iterations=60, seed=7)
    assert single.run_simulation(params)["confidence"] == pooled.run_simulation(params)["confidence"]


def test_process_and_thread_pools_agree():
    """Paths fan out to worker processes by default; threads give the same bands."""
    processes, _ = make_simulator(monte_carlo_workers=2)
    threads, _ = make_simulator(monte_carlo_workers=2, monte_carlo_executor="thread")
    assert processes.config.monte_carlo_executor == "process"
    params = make_params(monte_carlo=True, iterations=30, seed=11)
    assert processes.run_simulation(params)["confidence"] == threads.run_simulation(params)["confidence"]


def test_injected_generator_is_used():
    simulator, _ = make_simulator()
    a = simulator.run_simulation(make_params(seed=None), rng=np.random.default_rng(3))
    b = simulator.run_simulation(make_params(seed=None), rng=np.random.default_rng(3))
    assert a["projections"] == b["projections"]


# ── Test 3: Confidence bands ─────────────────────────────────────────────────

def test_percentiles_are_ordered():
    """p10 ≤ p25 ≤ p50 ≤ p75 ≤ p90 for every year and metric."""
    simulator, _ = make_simulator()
    result = simulator.run_simulation(make_params(years=4, monte_carlo=True, iterations=75, scenario="bear"))
    rows = result["confidence"]
    assert len(rows) == 4 * 3, f"expected one row per year and metric, got {len(rows)}"
    for row in rows:
        values = [row["p10"], row["p25"], row["p50"], row["p75"], row["p90"]]
        assert values == sorted(values), f"unordered band {row}"


def test_single_iteration_band_collapses():
    simulator, _ = make_simulator()
    result = simulator.run_simulation(make_params(years=1, monte_carlo=True, iterations=1))
    for row in result["confidence"]:
        assert row["p10"] == row["p90"]


# ── Test 4: Path behaviour ───────────────────────────────────────────────────

def test_path_shape_and_price_floor():
    config = SimulationConfig(price_floor=0.01)
    scenario = config.scenarios[-1]
    rows = simulate_path(config, scenario, 10, 0.011, np.random.default_rng(0))
    assert [r["year"] for r in rows] == list(range(1, 11))
    assert all(r["price"] >= 0.01 for r in rows)
    assert all(int(r["staked"]) <= int(r["circulating"]) for r in rows)
    burned = [int(r["burned"]) for r in rows]
    assert burned == sorted(burned), "cumulative burn never decreases"


def test_adoption_curves_decay():
    for curve in ("linear", "exponential", "s_curve"):
        values = [adoption_factor(curve, m) for m in range(0, 121)]
        assert all(0 < v <= 1 for v in values), curve
        assert all(a >= b for a, b in zip(values, values[1:])), curve
    assert adoption_factor("linear", 120) == pytest.approx(0.1)


def test_completion_event_and_summary():
    simulator, received = make_simulator()
    result = simulator.run_simulation(make_params(scenario="bull"))
    summary = result["summary"]

    assert summary["risk_score"] == pytest.approx(100 - summary["sustainability_score"])
    assert summary["trough_price"] <= summary["peak_price"]
    assert summary["final_circulating"] == result["projections"][-1]["circulating"]

    completed = [e for e in received if isinstance(e, SimulationCompleted)]
    assert len(completed) == 1
    assert completed[0].scenario == "bull"
    assert completed[0].years == 3


def test_supply_and_demand_entry_points():
    simulator, _ = make_simulator()
    params = make_params()
    expected = simulator.run_simulation(params)["projections"]
    assert simulator.run_supply_simulation(params)["projections"] == expected
    assert simulator.run_demand_simulation(params.model_dump())["projections"] == expected


def test_params_are_validated():
    with pytest.raises(ValueError):
        SimulationParams(years=0)
    with pytest.raises(ValueError):
        SimulationParams(iterations=0)


# ── Runner ────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
