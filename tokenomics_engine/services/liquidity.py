"""
Liquidity flywheel: pool APY/rewards, TVL-driven flywheel stage and pool health.

TVL and depth are held in base units (9 decimals); stage bands and depth
thresholds are compared in whole tokens.
"""

import calendar
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Union

from tokenomics_engine.errors import UnknownPoolError
from tokenomics_engine.events import (
    EventEmitter,
    FlywheelPhaseChanged,
    HealthAlert,
    HealthAlertRaised,
    utc_now,
)
from tokenomics_engine.schemas import FlywheelConfig, FlywheelPhaseConfig, HealthThresholds, PoolConfig
from tokenomics_engine.utils.amounts import (
    format_amount,
    from_whole_units,
    parse_amount,
    scale_amount,
    whole_units,
)

logger = logging.getLogger(__name__)

# Lock bonus reaches its 50% cap at a two-year lock
_LOCK_BONUS_CAP = 0.5
_LOCK_BONUS_DAYS = 730

# (upper TVL bound in whole tokens, stage, name, description, yield, value)
_FLYWHEEL_STAGES = [
    (1_000_000, 1, "Capital Inflow", "Users bring capital to the ecosystem", "0", "0"),
    (10_000_000, 2, "Yield Generation", "Agents generate yield from capital", "10-20%", "Growing"),
    (50_000_000, 3, "Liquidity Attraction", "Yield attracts more liquidity", "15-25%", "Increasing"),
    (100_000_000, 4, "Value Increase", "Liquidity increases token value", "12-20%", "Strong"),
]
_OPEN_STAGE = (None, 5, "User Attraction", "Token incentives attract more users", "10-15%", "Stable")

_STATUS_SCORE = {"ok": 100.0, "warning": 50.0, "critical": 0.0}
_STATUS_RANK = {"ok": 0, "warning": 1, "critical": 2}

# Velocity sub-score normalisers
_VELOCITY_TVL_FULL = 10_000_000
_VELOCITY_PROVIDERS_FULL = 100

_RECOMMENDATIONS = {
    "depth": "Increase liquidity incentives to deepen pools",
    "spread": "Reduce slippage by attracting more market makers",
    "utilization": "Rebalance pool utilization through dynamic fees",
    "concentration": "Implement anti-whale measures to reduce concentration",
}

_ALERT_RECOMMENDATIONS = {
    "depth": "Increase liquidity mining rewards or add protocol-owned liquidity",
    "spread": "Attract market makers with reduced fees or incentives",
    "utilization": "Adjust pool parameters or incentives",
    "concentration": "Consider whale caps or gradual unlock incentives",
}


def threshold_status(value: float, warning: float, critical: float, higher_is_better: bool) -> str:
    if higher_is_better:
        if value < critical:
            return "critical"
        if value < warning:
            return "warning"
        return "ok"
    if value > critical:
        return "critical"
    if value > warning:
        return "warning"
    return "ok"


def utilization_status(value: float, low: float, high: float) -> str:
    # Out-of-band utilization is never critical
    return "ok" if low <= value <= high else "warning"


def _add_months(start: datetime, months: int) -> datetime:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


class LiquidityFlywheel:
    def __init__(
        self,
        config: Union[FlywheelConfig, dict, None] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        if config is None:
            config = FlywheelConfig()
        elif isinstance(config, dict):
            config = FlywheelConfig.model_validate(config)
        self.config = config
        self.events = EventEmitter("liquidity")
        self._clock = clock
        self._lock = threading.Lock()

        self._phase_index = 0
        self._tvl = 0
        self._liquidity_depth = from_whole_units(500_000)
        self._average_spread = 0.003
        self._utilization = 0.65
        self._top_holder_concentration = 0.08
        self._active_providers = 0
        self._pending_rewards = 0
        self._distributed_rewards = 0

    # ── Flywheel phase ──

    def get_current_phase(self) -> FlywheelPhaseConfig:
        phases = self.config.phases
        return phases[min(self._phase_index, len(phases) - 1)]

    def advance_phase(self) -> FlywheelPhaseConfig:
        event = None
        with self._lock:
            previous = self.get_current_phase()
            if self._phase_index < len(self.config.phases) - 1:
                self._phase_index += 1
                logger.info("Flywheel phase %s -> %s", previous.name, self.get_current_phase().name)
                event = FlywheelPhaseChanged(
                    previous_phase=previous.name,
                    new_phase=self.get_current_phase().name,
                    tvl=format_amount(self._tvl),
                )
            phase = self.get_current_phase()

        # Emitted unlocked so subscribers may call the setters
        if event is not None:
            self.events.emit(event)
        return phase

    def get_flywheel_stage(self) -> dict:
        tvl = whole_units(self._tvl)
        band = next((b for b in _FLYWHEEL_STAGES if tvl < b[0]), _OPEN_STAGE)
        _, stage, name, description, yield_range, value = band
        return {
            "stage": stage,
            "name": name,
            "description": description,
            "metrics": {
                "users": str(self._active_providers),
                "yield": yield_range,
                "liquidity": f"{tvl:,}",
                "value": value,
                "incentives": format_amount(self.get_current_phase().emission),
            },
        }

    # ── Pools ──

    def get_pools(self) -> List[PoolConfig]:
        return list(self.config.liquidity_pools)

    def get_pool(self, pair: str) -> Optional[PoolConfig]:
        return next((p for p in self.config.liquidity_pools if p.pair == pair), None)

    def require_pool(self, pair: str) -> PoolConfig:
        pool = self.get_pool(pair)
        if pool is None:
            raise UnknownPoolError(pair)
        return pool

    @staticmethod
    def lock_bonus(lock_period: int) -> float:
        return min(_LOCK_BONUS_CAP, max(lock_period, 0) / _LOCK_BONUS_DAYS)

    def calculate_apy(self, pair: str, lock_period: int, boost_enabled: bool) -> float:
        pool = self.get_pool(pair)
        if pool is None:
            return 0.0

        apy = pool.base_apy * (1 + self.lock_bonus(lock_period))
        if boost_enabled and lock_period >= pool.min_lock_period:
            apy *= pool.boost_multiplier
        return apy

    def estimate_rewards(self, pair: str, amount: Union[int, str], lock_period: int) -> dict:
        principal = parse_amount(amount)
        pool = self.get_pool(pair)
        if pool is None:
            return {
                "daily_reward": "0",
                "weekly_reward": "0",
                "monthly_reward": "0",
                "yearly_reward": "0",
                "effective_apy": 0.0,
                "boost_multiplier": 1.0,
            }

        boost_enabled = lock_period >= pool.min_lock_period
        effective_apy = self.calculate_apy(pair, lock_period, boost_enabled)

        # Shorter periods are always divided down from the yearly figure
        yearly = scale_amount(principal, effective_apy)
        return {
            "daily_reward": format_amount(yearly // 365),
            "weekly_reward": format_amount(yearly // 52),
            "monthly_reward": format_amount(yearly // 12),
            "yearly_reward": format_amount(yearly),
            "effective_apy": effective_apy,
            "boost_multiplier": pool.boost_multiplier if boost_enabled else 1.0,
        }

    def calculate_incentives(
        self,
        pair: str,
        amount: Union[int, str],
        lock_period: int,
        duration_months: int,
    ) -> dict:
        """Project monthly rewards and the unlock schedule for an LP position."""
        pool = self.require_pool(pair)
        principal = parse_amount(amount)
        rewards = self.estimate_rewards(pair, principal, lock_period)
        monthly = int(rewards["monthly_reward"])

        now = self._clock()
        schedule = [
            {"date": _add_months(now, i), "amount": format_amount(monthly), "type": "reward"}
            for i in range(1, duration_months + 1)
        ]
        schedule.append({
            "date": now + timedelta(days=lock_period),
            "amount": format_amount(principal),
            "type": "principal",
        })
        schedule.sort(key=lambda e: e["date"])

        return {
            "total_rewards": format_amount(monthly * duration_months),
            "monthly_rewards": [format_amount(monthly)] * duration_months,
            "effective_apy": rewards["effective_apy"],
            "comparison_to_base": rewards["effective_apy"] / pool.base_apy if pool.base_apy > 0 else 0.0,
            "unlock_schedule": schedule,
        }

    # ── Health ──

    def get_health_thresholds(self) -> HealthThresholds:
        return self.config.health_thresholds

    def get_liquidity_health(self) -> dict:
        t = self.config.health_thresholds
        depth = whole_units(self._liquidity_depth)

        statuses = {
            "depth": threshold_status(depth, t.depth_warning, t.depth_critical, higher_is_better=True),
            "spread": threshold_status(self._average_spread, t.spread_warning, t.spread_critical,
                                       higher_is_better=False),
            "utilization": utilization_status(self._utilization, t.utilization_low, t.utilization_high),
            "concentration": threshold_status(self._top_holder_concentration, t.concentration_warning,
                                              t.concentration_critical, higher_is_better=False),
        }
        worst = max(statuses.values(), key=_STATUS_RANK.__getitem__)

        return {
            "overall": "healthy" if worst == "ok" else worst,
            "depth": {"value": str(depth), "status": statuses["depth"]},
            "spread": {"value": self._average_spread, "status": statuses["spread"]},
            "utilization": {"value": self._utilization, "status": statuses["utilization"]},
            "concentration": {"value": self._top_holder_concentration, "status": statuses["concentration"]},
            "recommendations": [
                _RECOMMENDATIONS[metric] for metric, status in statuses.items() if status != "ok"
            ],
        }

    def check_health_alerts(self) -> List[dict]:
        health = self.get_liquidity_health()
        t = self.config.health_thresholds
        alerts: List[HealthAlert] = []

        bounds = {
            "depth": (t.depth_warning, t.depth_critical),
            "spread": (t.spread_warning, t.spread_critical),
            "concentration": (t.concentration_warning, t.concentration_critical),
        }
        labels = {
            "depth": "Liquidity depth",
            "spread": "Trading spread",
            "concentration": "Top holder concentration",
        }
        for metric in ("depth", "spread", "utilization", "concentration"):
            status = health[metric]["status"]
            if status == "ok":
                continue
            if metric == "utilization":
                message = "Pool utilization is outside optimal range"
                threshold = f"{t.utilization_low}-{t.utilization_high}"
            else:
                warning, critical = bounds[metric]
                message = f"{labels[metric]} is {status}"
                threshold = critical if status == "critical" else warning
            alerts.append(HealthAlert(
                type=metric,
                severity=status,
                message=message,
                current_value=health[metric]["value"],
                threshold=threshold,
                recommendation=_ALERT_RECOMMENDATIONS[metric],
            ))

        if alerts:
            logger.warning("Liquidity health alerts: %s", ", ".join(f"{a.type}={a.severity}" for a in alerts))
            self.events.emit(HealthAlertRaised(alerts=alerts))
        return [a.model_dump() for a in alerts]

    def health_score(self, health: Optional[dict] = None) -> float:
        health = health or self.get_liquidity_health()
        metrics = ("depth", "spread", "utilization", "concentration")
        return sum(_STATUS_SCORE[health[m]["status"]] for m in metrics) / len(metrics)

    def flywheel_velocity(self, health: Optional[dict] = None) -> float:
        """Composite momentum score in [0, 100]."""
        tvl_score = min(100.0, max(0.0, whole_units(self._tvl) / _VELOCITY_TVL_FULL * 100))
        provider_score = min(100.0, max(0.0, self._active_providers / _VELOCITY_PROVIDERS_FULL * 100))
        health_score = min(100.0, max(0.0, self.health_score(health)))
        return tvl_score * 0.4 + provider_score * 0.3 + health_score * 0.3

    def get_flywheel_metrics(self) -> dict:
        health = self.get_liquidity_health()
        return {
            "current_phase": self.get_current_phase().name,
            "total_value_locked": format_amount(self._tvl),
            "liquidity_depth": format_amount(self._liquidity_depth),
            "average_spread": self._average_spread,
            "utilization": self._utilization,
            "top_holder_concentration": self._top_holder_concentration,
            "active_providers": self._active_providers,
            "pending_rewards": format_amount(self._pending_rewards),
            "distributed_rewards": format_amount(self._distributed_rewards),
            "flywheel_velocity": self.flywheel_velocity(health),
            "health_score": self.health_score(health),
        }

    # ── Administrative setters (external feeds / tests) ──

    def set_tvl(self, tvl: Union[int, str]) -> None:
        value = parse_amount(tvl, "tvl")
        with self._lock:
            self._tvl = value

    def set_liquidity_depth(self, depth: Union[int, str]) -> None:
        value = parse_amount(depth, "liquidity_depth")
        with self._lock:
            self._liquidity_depth = value

    def set_spread(self, spread: float) -> None:
        if spread < 0:
            raise ValueError("spread must be >= 0")
        with self._lock:
            self._average_spread = spread

    def set_utilization(self, utilization: float) -> None:
        if utilization < 0 or utilization > 1:
            raise ValueError("utilization must be between 0 and 1")
        with self._lock:
            self._utilization = utilization

    def set_concentration(self, concentration: float) -> None:
        if concentration < 0 or concentration > 1:
            raise ValueError("concentration must be between 0 and 1")
        with self._lock:
            self._top_holder_concentration = concentration

    def set_active_providers(self, count: int) -> None:
        if count < 0:
            raise ValueError("active provider count must be >= 0")
        with self._lock:
            self._active_providers = count

    def add_liquidity(self, amount: Union[int, str]) -> None:
        value = parse_amount(amount)
        with self._lock:
            self._tvl += value
            self._liquidity_depth += value // 2
            self._active_providers += 1

    def remove_liquidity(self, amount: Union[int, str]) -> None:
        value = parse_amount(amount)
        with self._lock:
            if value > self._tvl:
                raise ValueError(f"cannot remove {value} from a TVL of {self._tvl}")
            self._tvl -= value
            self._liquidity_depth = max(0, self._liquidity_depth - value // 2)

    def add_pending_rewards(self, amount: Union[int, str]) -> None:
        value = parse_amount(amount)
        with self._lock:
            self._pending_rewards += value

    def distribute_rewards(self, amount: Union[int, str]) -> None:
        value = parse_amount(amount)
        with self._lock:
            self._distributed_rewards += value
            self._pending_rewards = max(0, self._pending_rewards - value)

    def apply_state(self, **updates) -> None:
        setters: Dict[str, Callable] = {
            "tvl": self.set_tvl,
            "liquidity_depth": self.set_liquidity_depth,
            "spread": self.set_spread,
            "utilization": self.set_utilization,
            "concentration": self.set_concentration,
            "active_providers": self.set_active_providers,
        }
        for key, value in updates.items():
            if value is not None:
                setters[key](value)
