"""
Liquidity flywheel tests: APY, rewards, health classification, alerts and stages.
"""

import os
import sys
import threading
from datetime import datetime, timedelta, timezone

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tokenomics_engine.errors import UnknownPoolError
from tokenomics_engine.events import FlywheelPhaseChanged, HealthAlertRaised
from tokenomics_engine.services.liquidity import LiquidityFlywheel, threshold_status
from tokenomics_engine.utils.amounts import from_whole_units

_RANK = {"ok": 0, "warning": 1, "critical": 2}
_START = datetime(2025, 3, 31, tzinfo=timezone.utc)


def make_flywheel(config=None):
    flywheel = LiquidityFlywheel(config, clock=lambda: _START)
    received = []
    flywheel.events.subscribe(received.append)
    return flywheel, received


# ── APY & rewards ────────────────────────────────────────────────────────────

def test_boosted_one_year_lock_apy():
    flywheel, _ = make_flywheel()
    apy = flywheel.calculate_apy("TONAI/TON", 365, True)
    assert apy == pytest.approx(0.45), f"expected 0.15 * 1.5 * 2.0, got {apy}"


def test_boost_requires_minimum_lock():
    flywheel, _ = make_flywheel()
    apy = flywheel.calculate_apy("Strategy Pools", 60, True)
    assert apy == pytest.approx(0.20 * (1 + 60 / 730)), "lock below min_lock_period gets no boost"


def test_lock_bonus_is_capped():
    flywheel, _ = make_flywheel()
    for pool in flywheel.get_pools():
        for lock in (730, 1_000, 10_000):
            apy = flywheel.calculate_apy(pool.pair, lock, False)
            assert apy <= pool.base_apy * 1.5 + 1e-12, f"{pool.pair} lock={lock} apy={apy}"


def test_unknown_pool_yields_zero():
    flywheel, _ = make_flywheel()
    assert flywheel.calculate_apy("FOO/BAR", 365, True) == 0.0
    rewards = flywheel.estimate_rewards("FOO/BAR", 1_000, 365)
    assert rewards["yearly_reward"] == "0"
    assert rewards["boost_multiplier"] == 1.0
    with pytest.raises(UnknownPoolError):
        flywheel.require_pool("FOO/BAR")


@pytest.mark.parametrize("amount", [1, 999, 123_456_789_000, 10 ** 27 + 7])
def test_reward_periods_are_consistent(amount):
    flywheel, _ = make_flywheel()
    for pool in flywheel.get_pools():
        r = flywheel.estimate_rewards(pool.pair, amount, 90)
        yearly = int(r["yearly_reward"])
        assert 0 <= yearly - 12 * int(r["monthly_reward"]) < 12
        assert 0 <= yearly - 52 * int(r["weekly_reward"]) < 52
        assert 0 <= yearly - 365 * int(r["daily_reward"]) < 365


def test_incentive_projection_schedule():
    flywheel, _ = make_flywheel()
    result = flywheel.calculate_incentives("TONAI/TON", 1_000_000, 45, 3)

    monthly = int(result["monthly_rewards"][0])
    assert int(result["total_rewards"]) == monthly * 3
    assert result["comparison_to_base"] == pytest.approx(result["effective_apy"] / 0.15)

    schedule = result["unlock_schedule"]
    assert len(schedule) == 4
    assert [e["date"] for e in schedule] == sorted(e["date"] for e in schedule)
    principal = [e for e in schedule if e["type"] == "principal"]
    assert principal[0]["date"] == _START + timedelta(days=45)
    assert principal[0]["amount"] == "1000000"
    # Month-end start clamps to the shorter month
    assert schedule[0]["date"] == datetime(2025, 4, 30, tzinfo=timezone.utc)


# ── Health ───────────────────────────────────────────────────────────────────

def test_default_state_is_healthy_and_quiet():
    flywheel, received = make_flywheel()
    health = flywheel.get_liquidity_health()
    assert health["overall"] == "healthy"
    assert health["recommendations"] == []
    assert flywheel.check_health_alerts() == []
    assert received == [], "no alert event when everything is ok"


def test_depth_status_never_improves_as_depth_falls():
    flywheel, _ = make_flywheel()
    previous = 0
    for whole in range(300_000, -1, -10_000):
        flywheel.set_liquidity_depth(from_whole_units(whole))
        rank = _RANK[flywheel.get_liquidity_health()["depth"]["status"]]
        assert rank >= previous, f"depth {whole} improved status"
        previous = rank
    assert previous == _RANK["critical"]


def test_threshold_status_directions():
    assert threshold_status(0.005, 0.01, 0.02, higher_is_better=False) == "ok"
    assert threshold_status(0.015, 0.01, 0.02, higher_is_better=False) == "warning"
    assert threshold_status(0.03, 0.01, 0.02, higher_is_better=False) == "critical"
    assert threshold_status(75_000, 100_000, 50_000, higher_is_better=True) == "warning"


def test_alerts_are_raised_for_degraded_metrics():
    flywheel, received = make_flywheel()
    flywheel.apply_state(liquidity_depth=from_whole_units(40_000), spread=0.015, utilization=0.95)

    health = flywheel.get_liquidity_health()
    assert health["overall"] == "critical"
    assert len(health["recommendations"]) == 3

    alerts = flywheel.check_health_alerts()
    by_type = {a["type"]: a for a in alerts}
    assert by_type["depth"]["severity"] == "critical"
    assert by_type["depth"]["threshold"] == 50_000
    assert by_type["spread"]["severity"] == "warning"
    assert by_type["utilization"]["severity"] == "warning", "utilization is never critical"
    assert "concentration" not in by_type

    raised = [e for e in received if isinstance(e, HealthAlertRaised)]
    assert len(raised) == 1
    assert {a.type for a in raised[0].alerts} == {"depth", "spread", "utilization"}


def test_metrics_and_velocity():
    flywheel, _ = make_flywheel()
    metrics = flywheel.get_flywheel_metrics()
    assert metrics["health_score"] == 100.0
    assert metrics["flywheel_velocity"] == pytest.approx(30.0)

    flywheel.set_tvl(from_whole_units(10_000_000))
    flywheel.set_active_providers(100)
    assert flywheel.get_flywheel_metrics()["flywheel_velocity"] == pytest.approx(100.0)


# ── Stages, phases and administrative state ──────────────────────────────────

@pytest.mark.parametrize("tvl,stage", [
    (0, 1),
    (999_999, 1),
    (1_000_000, 2),
    (49_999_999, 3),
    (100_000_000, 5),
    (10 ** 12, 5),
])
def test_flywheel_stage_bands(tvl, stage):
    flywheel, _ = make_flywheel()
    flywheel.set_tvl(from_whole_units(tvl))
    assert flywheel.get_flywheel_stage()["stage"] == stage


def test_flywheel_phase_advances_and_stops_at_last():
    flywheel, received = make_flywheel()
    names = [flywheel.advance_phase().name for _ in range(5)]
    assert names == ["Growth", "Maturity", "Sustainable", "Sustainable", "Sustainable"]
    changes = [e for e in received if isinstance(e, FlywheelPhaseChanged)]
    assert [(e.previous_phase, e.new_phase) for e in changes] == [
        ("Bootstrap", "Growth"), ("Growth", "Maturity"), ("Maturity", "Sustainable"),
    ]


def test_liquidity_add_and_remove():
    flywheel, _ = make_flywheel()
    depth_before = int(flywheel.get_flywheel_metrics()["liquidity_depth"])

    flywheel.add_liquidity(1_000)
    metrics = flywheel.get_flywheel_metrics()
    assert metrics["total_value_locked"] == "1000"
    assert int(metrics["liquidity_depth"]) == depth_before + 500
    assert metrics["active_providers"] == 1

    with pytest.raises(ValueError):
        flywheel.remove_liquidity(1_001)
    assert flywheel.get_flywheel_metrics()["total_value_locked"] == "1000", "failed removal must not mutate"

    flywheel.remove_liquidity(1_000)
    assert flywheel.get_flywheel_metrics()["total_value_locked"] == "0"


def test_reward_distribution_drains_pending():
    flywheel, _ = make_flywheel()
    flywheel.add_pending_rewards(700)
    flywheel.distribute_rewards(1_000)
    metrics = flywheel.get_flywheel_metrics()
    assert metrics["pending_rewards"] == "0"
    assert metrics["distributed_rewards"] == "1000"


def test_setters_validate_ranges():
    flywheel, _ = make_flywheel()
    with pytest.raises(ValueError):
        flywheel.set_utilization(1.5)
    with pytest.raises(ValueError):
        flywheel.set_spread(-0.1)
    with pytest.raises(ValueError):
        flywheel.set_tvl("-5")


def test_subscriber_may_call_back_into_flywheel():
    flywheel, _ = make_flywheel()
    flywheel.events.subscribe(lambda e: flywheel.add_liquidity(1_000))

    worker = threading.Thread(target=flywheel.advance_phase, daemon=True)
    worker.start()
    worker.join(timeout=3)

    assert not worker.is_alive(), "advance_phase blocked on a re-entrant subscriber"
    assert flywheel.get_current_phase().name == "Growth"
    assert flywheel.get_flywheel_metrics()["total_value_locked"] == "1000"
