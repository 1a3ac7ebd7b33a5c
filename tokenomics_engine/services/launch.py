"""
Launch lifecycle: phased sale, TGE estimate, anti-whale checks and launch incentives.

Phases run private -> strategic -> community -> public. Reaching `public`
records the launch timestamp and fires the TGE event once; after that
`advance_phase()` does nothing.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional, Union

from tokenomics_engine.events import EventEmitter, LaunchPhaseCompleted, TGEExecuted, utc_now
from tokenomics_engine.schemas import LaunchConfig, LaunchIncentive, PhaseConfig, TGEConfig
from tokenomics_engine.services.vesting import compute_vesting_schedule
from tokenomics_engine.utils.amounts import (
    format_amount,
    parse_amount,
    scale_amount,
    to_basis_points,
    tokens_for_payment,
)

logger = logging.getLogger(__name__)

# Share of market cap expected to trade in the first 24h
_TGE_VOLUME_LOW = 0.05
_TGE_VOLUME_HIGH = 0.15
_TGE_STAKING_RATIO = 0.25

# Anti-whale percentages are in percent; basis-point math needs `pct * 100 / 10_000`
_PERCENT_SCALE = 100
_PERCENT_DENOM = 10_000

# Incentive multipliers are applied at 1/1000 precision
_MULTIPLIER_SCALE = 1_000

_SECONDS_PER_DAY = 86_400


class LaunchController:
    def __init__(
        self,
        config: Union[LaunchConfig, dict, None] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        if config is None:
            config = LaunchConfig()
        elif isinstance(config, dict):
            config = LaunchConfig.model_validate(config)
        self.config = config
        self.events = EventEmitter("launch")
        self._clock = clock
        self._lock = threading.Lock()

        self._phase_index = 0
        self._phases_completed: List[str] = []
        self._total_raised = 0
        self._participant_count = 0
        self._tokens_distributed = 0
        self._launch_date: Optional[datetime] = None

    # ── Phase management ──

    def get_phase(self) -> str:
        if self._phase_index >= len(self.config.phases):
            return "public"
        return self.config.phases[self._phase_index].name

    def get_phase_config(self, phase: str) -> Optional[PhaseConfig]:
        return next((p for p in self.config.phases if p.name == phase), None)

    @property
    def launched(self) -> bool:
        return self._launch_date is not None

    @property
    def launch_date(self) -> Optional[datetime]:
        return self._launch_date

    def get_progress(self) -> dict:
        total_target = sum(p.target_raise for p in self.config.phases)
        completion = (self._total_raised * 100 // total_target) if total_target > 0 else 0

        return {
            "current_phase": self.get_phase(),
            "phases_completed": list(self._phases_completed),
            "total_raised": format_amount(self._total_raised),
            "participant_count": self._participant_count,
            "tokens_distributed": format_amount(self._tokens_distributed),
            "next_milestone": self._next_milestone(),
            "completion_percent": min(100, completion),
        }

    def advance_phase(self) -> str:
        # Emitted after the lock is released; subscribers may call back into the controller
        pending = []
        with self._lock:
            current = self.get_phase()
            if current != "public":
                self._phases_completed.append(current)
                self._phase_index += 1
                logger.info("Launch phase %s completed, now %s", current, self.get_phase())
                pending.append(LaunchPhaseCompleted(
                    completed_phase=current,
                    new_phase=self.get_phase(),
                    total_raised=format_amount(self._total_raised),
                ))

            new_phase = self.get_phase()
            if new_phase == "public" and self._launch_date is None:
                self._launch_date = self._clock()
                logger.info("TGE executed at %s", self._launch_date.isoformat())
                pending.append(TGEExecuted(
                    launch_date=self._launch_date,
                    initial_circulating=format_amount(self.config.initial_circulating),
                    initial_price=self.config.initial_price,
                ))

        for event in pending:
            self.events.emit(event)
        return new_phase

    # ── TGE ──

    def get_tge_config(self) -> TGEConfig:
        return self.config.tge

    def simulate_tge(self, overrides: Union[TGEConfig, dict, None] = None) -> dict:
        """Closed-form launch-day estimate; not a simulation loop."""
        if isinstance(overrides, TGEConfig):
            overrides = overrides.model_dump(exclude_unset=True)
        tge = self.config.tge.model_copy(update=overrides or {})
        if tge.dex_liquidity <= 0:
            raise ValueError("dex_liquidity must be > 0")

        price = self.config.initial_price
        market_cap = self.config.initial_circulating * price
        fdv = self.config.total_supply * price

        volume_low = market_cap * _TGE_VOLUME_LOW
        volume_high = market_cap * _TGE_VOLUME_HIGH
        volume_mid = (volume_low + volume_high) / 2

        price_impact = volume_mid / tge.dex_liquidity
        price_low = price * (1 - price_impact * 0.5)
        price_high = price * (1 + price_impact * 0.5)
        if tge.price_floor is not None:
            price_low = max(price_low, tge.price_floor)
        if tge.price_ceiling is not None:
            price_high = min(price_high, tge.price_ceiling)

        return {
            "initial_circulating": format_amount(self.config.initial_circulating),
            "initial_market_cap": market_cap,
            "initial_fdv": fdv,
            "expected_volume_24h": volume_mid,
            "expected_volume_range": {"low": volume_low, "high": volume_high},
            "expected_price_range": {
                "low": round(price_low, 4),
                "mid": round(price, 4),
                "high": round(price_high, 4),
            },
            "price_impact": price_impact,
            "liquidity_depth": tge.dex_liquidity,
            "projected_staking_ratio": _TGE_STAKING_RATIO,
        }

    # ── Incentives ──

    def days_since_launch(self) -> int:
        if self._launch_date is None:
            return 0
        elapsed = self._clock() - self._launch_date
        return int(elapsed.total_seconds() // _SECONDS_PER_DAY)

    def get_active_incentives(self) -> List[LaunchIncentive]:
        # Nothing is active before launch
        if self._launch_date is None:
            return []
        days = self.days_since_launch()
        return [i for i in self.config.launch_incentives if days <= i.duration]

    def calculate_incentive_reward(self, incentive_type: str, base_amount: Union[int, str]) -> str:
        base = parse_amount(base_amount, "base_amount")
        incentive = next((i for i in self.get_active_incentives() if i.type == incentive_type), None)
        if incentive is None:
            return format_amount(base)
        return format_amount(scale_amount(base, incentive.multiplier, _MULTIPLIER_SCALE))

    # ── Anti-whale ──

    def max_transaction_amount(self) -> int:
        bp = to_basis_points(self.config.anti_whale.max_transaction_percent, _PERCENT_SCALE)
        return self.config.total_supply * bp // _PERCENT_DENOM

    def max_wallet_amount(self) -> int:
        bp = to_basis_points(self.config.anti_whale.max_wallet_percent, _PERCENT_SCALE)
        return self.config.total_supply * bp // _PERCENT_DENOM

    def validate_transaction(
        self,
        amount: Union[int, str],
        wallet_balance: Union[int, str],
        days_since_launch: int,
    ) -> dict:
        """Anti-whale check. Rejection is a normal outcome and is returned, not raised."""
        tx_amount = parse_amount(amount, "amount")
        balance = parse_amount(wallet_balance, "wallet_balance")
        anti_whale = self.config.anti_whale

        max_tx = self.max_transaction_amount()
        if tx_amount > max_tx:
            return {
                "allowed": False,
                "reason": "Transaction exceeds maximum allowed",
                "max_allowed": format_amount(max_tx),
                "tax_rate": None,
            }

        max_wallet = self.max_wallet_amount()
        if balance + tx_amount > max_wallet:
            return {
                "allowed": False,
                "reason": "Would exceed maximum wallet balance",
                "max_allowed": format_amount(max(0, max_wallet - balance)),
                "tax_rate": None,
            }

        tax_rate = anti_whale.sell_tax_rate if days_since_launch <= anti_whale.sell_tax_first_days else 0.0
        return {
            "allowed": True,
            "reason": None,
            "max_allowed": None,
            "tax_rate": tax_rate,
        }

    # ── Vesting ──

    def vesting_schedule(self, horizon_months: int = 36) -> dict:
        return compute_vesting_schedule(self.config.phases, horizon_months)

    # ── Administrative (external feeds / tests) ──

    def record_investment(self, amount: Union[int, str], investor: str) -> int:
        """Book a contribution in the current phase; returns tokens allotted."""
        payment = parse_amount(amount, "amount")
        with self._lock:
            self._total_raised += payment
            self._participant_count += 1
            tokens = 0
            phase = self.get_phase_config(self.get_phase())
            if phase is not None:
                tokens = tokens_for_payment(payment, phase.token_price)
                self._tokens_distributed += tokens
        logger.debug("Investment of %s from %s booked for %s tokens", payment, investor, tokens)
        return tokens

    def set_launch_date(self, date: datetime) -> None:
        with self._lock:
            self._launch_date = date

    def _next_milestone(self) -> Optional[str]:
        phase = self.get_phase()
        phase_config = self.get_phase_config(phase)
        if phase_config is None or phase == "public":
            return None
        target = phase_config.target_raise
        if target > 0 and self._total_raised < target:
            return f"${target - self._total_raised:,} to complete {phase} phase"
        return f"Complete {phase} phase"
