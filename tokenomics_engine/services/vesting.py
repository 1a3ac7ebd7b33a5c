import math
from itertools import accumulate
from typing import List

from tokenomics_engine.schemas import PhaseConfig

_DAYS_PER_MONTH = 30


def _months(days: int) -> int:
    return math.ceil(days / _DAYS_PER_MONTH) if days > 0 else 0


def _phase_release(phase: PhaseConfig, horizon: int) -> List[int]:
    """Monthly token unlocks for one sale phase; month 0 is TGE."""
    arr = [0] * (horizon + 1)
    if phase.allocation == 0:
        return arr

    cliff_months = _months(phase.vesting_cliff)
    vesting_months = _months(phase.vesting_duration)

    if vesting_months == 0:
        # No vesting: fully liquid once the cliff passes
        if cliff_months <= horizon:
            arr[cliff_months] = phase.allocation
        return arr

    for m in range(1, horizon + 1):
        vesting_month = m - cliff_months
        if 1 <= vesting_month <= vesting_months:
            # Integer split whose parts sum exactly to the allocation
            arr[m] = (
                phase.allocation * vesting_month // vesting_months
                - phase.allocation * (vesting_month - 1) // vesting_months
            )
    return arr


def compute_vesting_schedule(phases: List[PhaseConfig], horizon_months: int) -> dict:
    """Compute monthly token unlocks per sale phase and in total."""
    if horizon_months < 1 or horizon_months > 240:
        raise ValueError("horizon_months must be between 1 and 240")

    per_phase = {}
    total = [0] * (horizon_months + 1)
    for phase in phases:
        arr = _phase_release(phase, horizon_months)
        total = [a + b for a, b in zip(total, arr)]
        per_phase[phase.name] = {
            "monthly": [str(x) for x in arr],
            "cumulative": [str(x) for x in accumulate(arr)],
            "allocation": str(phase.allocation),
            "cliff_months": _months(phase.vesting_cliff),
            "vesting_months": _months(phase.vesting_duration),
        }

    cumulative = list(accumulate(total))
    allocated = sum(p.allocation for p in phases)

    rows = []
    for m in range(horizon_months + 1):
        rows.append({
            "month": m,
            "label": f"T+{m}M" if m > 0 else "TGE",
            "unlocked": str(total[m]),
            "cumulative_unlocked": str(cumulative[m]),
            "unlocked_pct": (cumulative[m] / allocated * 100) if allocated > 0 else 0.0,
            "phase_breakdown": {name: data["monthly"][m] for name, data in per_phase.items()},
        })

    peak_month = max(range(horizon_months + 1), key=lambda m: total[m])
    return {
        "rows": rows,
        "phase_releases": per_phase,
        "summary": {
            "total_allocated": str(allocated),
            "unlocked_within_horizon": str(cumulative[-1]),
            "peak_month": peak_month,
            "peak_month_label": "TGE" if peak_month == 0 else f"T+{peak_month}M",
            "peak_unlock": str(total[peak_month]),
        },
    }
