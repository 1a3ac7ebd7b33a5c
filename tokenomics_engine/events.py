"""
Event envelope shared by every engine component.

Each event kind is its own model; `TokenStrategyEvent` is the discriminated
union over the closed set of kinds, keyed on `type`.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Callable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _event_id() -> str:
    return uuid.uuid4().hex[:16]


class _EventBase(BaseModel):
    id: str = Field(default_factory=_event_id)
    timestamp: datetime = Field(default_factory=utc_now)


class LaunchPhaseCompleted(_EventBase):
    type: Literal["launch_phase_completed"] = "launch_phase_completed"
    category: Literal["launch"] = "launch"
    completed_phase: str
    new_phase: str
    total_raised: str


class TGEExecuted(_EventBase):
    type: Literal["tge_executed"] = "tge_executed"
    category: Literal["launch"] = "launch"
    launch_date: datetime
    initial_circulating: str
    initial_price: float


class FlywheelPhaseChanged(_EventBase):
    type: Literal["flywheel_phase_changed"] = "flywheel_phase_changed"
    category: Literal["liquidity"] = "liquidity"
    previous_phase: str
    new_phase: str
    tvl: str


class HealthAlert(BaseModel):
    type: Literal["depth", "spread", "utilization", "concentration"]
    severity: Literal["warning", "critical"]
    message: str
    current_value: Union[float, str]
    threshold: Union[float, str]
    recommendation: str


class HealthAlertRaised(_EventBase):
    type: Literal["health_alert"] = "health_alert"
    category: Literal["liquidity"] = "liquidity"
    alerts: List[HealthAlert]


class StressTestTriggered(_EventBase):
    type: Literal["stress_test_triggered"] = "stress_test_triggered"
    category: Literal["simulation"] = "simulation"
    scenario: str
    survived: bool
    recovery_time: int


class SimulationCompleted(_EventBase):
    type: Literal["simulation_completed"] = "simulation_completed"
    category: Literal["simulation"] = "simulation"
    scenario: str
    years: int
    summary: Dict[str, Any]


TokenStrategyEvent = Annotated[
    Union[
        LaunchPhaseCompleted,
        TGEExecuted,
        FlywheelPhaseChanged,
        HealthAlertRaised,
        StressTestTriggered,
        SimulationCompleted,
    ],
    Field(discriminator="type"),
]

EventCallback = Callable[[TokenStrategyEvent], None]


class EventEmitter:
    """Observer list; a failing subscriber never affects the others or the emitter."""

    def __init__(self, source: Optional[str] = None):
        self._callbacks: List[EventCallback] = []
        self._source = source or "engine"

    def subscribe(self, callback: EventCallback) -> None:
        self._callbacks.append(callback)

    def emit(self, event: TokenStrategyEvent) -> None:
        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception:
                logger.exception("%s: subscriber failed handling %s event", self._source, event.type)

    def __len__(self) -> int:
        return len(self._callbacks)
