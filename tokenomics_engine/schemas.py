from datetime import datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from tokenomics_engine.utils.amounts import parse_amount


LAUNCH_PHASE_ORDER = ("private", "strategic", "community", "public")

LaunchPhase = Literal["private", "strategic", "community", "public"]
IncentiveType = Literal["staking_bonus", "lp_boost", "referral", "competition"]
AdoptionCurve = Literal["linear", "exponential", "s_curve"]
ScenarioType = Literal["base", "bull", "bear", "stress"]


def _amount_field(cls, v, info):
    return parse_amount(v, info.field_name)


# ── Launch ──

class PhaseConfig(BaseModel):
    name: LaunchPhase
    target_raise: int = 0
    token_price: float = 0.03
    allocation: int = 0
    vesting_cliff: int = 0       # days
    vesting_duration: int = 0    # days
    min_investment: Optional[int] = None
    max_investment: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    parse_amounts = field_validator("target_raise", "allocation", mode="before")(_amount_field)

    @field_validator("min_investment", "max_investment", mode="before")
    @classmethod
    def optional_amount(cls, v, info):
        if v is None:
            return v
        return parse_amount(v, info.field_name)

    @field_validator("token_price")
    @classmethod
    def price_positive(cls, v):
        if v <= 0:
            raise ValueError("token_price must be > 0")
        return v

    @field_validator("vesting_cliff", "vesting_duration")
    @classmethod
    def non_negative_days(cls, v):
        if v < 0:
            raise ValueError("days must be >= 0")
        return v


class TGEConfig(BaseModel):
    date: Optional[datetime] = None
    initial_market_cap: float = 3_900_000
    initial_fdv: float = 30_000_000
    dex_liquidity: float = 2_000_000
    price_floor: Optional[float] = 0.015
    price_ceiling: Optional[float] = None

    @field_validator("dex_liquidity")
    @classmethod
    def liquidity_positive(cls, v):
        if v <= 0:
            raise ValueError("dex_liquidity must be > 0")
        return v


class AntiWhaleConfig(BaseModel):
    max_wallet_percent: float = 2.0
    max_transaction_percent: float = 0.5
    sell_tax_first_days: int = 30
    sell_tax_rate: float = 0.03

    @field_validator("max_wallet_percent", "max_transaction_percent")
    @classmethod
    def percent_range(cls, v, info):
        if v < 0 or v > 100:
            raise ValueError(f"{info.field_name} must be between 0 and 100")
        return v

    @field_validator("sell_tax_rate")
    @classmethod
    def rate_range(cls, v):
        if v < 0 or v > 1:
            raise ValueError("sell_tax_rate must be between 0 and 1")
        return v


class LaunchIncentive(BaseModel):
    name: str
    type: IncentiveType
    multiplier: float = 1.0
    duration: int = 0    # days after launch
    allocation: int = 0

    parse_amounts = field_validator("allocation", mode="before")(_amount_field)


def _default_phases() -> List[PhaseConfig]:
    return [
        PhaseConfig(name="private", target_raise=5_000_000, token_price=0.01, allocation=50_000_000,
                    vesting_cliff=180, vesting_duration=730, min_investment=10_000, max_investment=500_000),
        PhaseConfig(name="strategic", target_raise=15_000_000, token_price=0.02, allocation=75_000_000,
                    vesting_cliff=90, vesting_duration=365, min_investment=25_000, max_investment=2_000_000),
        PhaseConfig(name="community", target_raise=10_000_000, token_price=0.03, allocation=50_000_000,
                    vesting_cliff=30, vesting_duration=180, min_investment=100, max_investment=10_000),
        PhaseConfig(name="public", target_raise=0, token_price=0.03, allocation=0),
    ]


def _default_incentives() -> List[LaunchIncentive]:
    return [
        LaunchIncentive(name="Early Staker Bonus", type="staking_bonus", multiplier=2.0,
                        duration=30, allocation=10_000_000),
        LaunchIncentive(name="LP Provider Boost", type="lp_boost", multiplier=3.0,
                        duration=14, allocation=15_000_000),
        LaunchIncentive(name="Referral Program", type="referral", multiplier=1.05,
                        duration=365, allocation=5_000_000),
        LaunchIncentive(name="Launch Trading Competition", type="competition", multiplier=1.0,
                        duration=7, allocation=1_000_000),
    ]


class LaunchConfig(BaseModel):
    total_supply: int = 1_000_000_000
    initial_circulating: int = 130_000_000
    initial_price: float = 0.03
    phases: List[PhaseConfig] = Field(default_factory=_default_phases)
    tge: TGEConfig = Field(default_factory=TGEConfig)
    anti_whale: AntiWhaleConfig = Field(default_factory=AntiWhaleConfig)
    launch_incentives: List[LaunchIncentive] = Field(default_factory=_default_incentives)

    parse_amounts = field_validator("total_supply", "initial_circulating", mode="before")(_amount_field)

    @field_validator("initial_price")
    @classmethod
    def price_positive(cls, v):
        if v <= 0:
            raise ValueError("initial_price must be > 0")
        return v

    @field_validator("phases")
    @classmethod
    def phases_in_launch_order(cls, v):
        ranks = [LAUNCH_PHASE_ORDER.index(p.name) for p in v]
        if any(b <= a for a, b in zip(ranks, ranks[1:])):
            raise ValueError("phases must follow private -> strategic -> community -> public order")
        return v

    @model_validator(mode="after")
    def circulating_within_supply(self):
        if self.initial_circulating > self.total_supply:
            raise ValueError("initial_circulating cannot exceed total_supply")
        return self


# ── Liquidity flywheel ──

class FlywheelPhaseConfig(BaseModel):
    name: str
    duration_months: int
    emission: int
    target_tvl: int

    parse_amounts = field_validator("emission", "target_tvl", mode="before")(_amount_field)


class PoolConfig(BaseModel):
    pair: str
    base_apy: float
    boost_multiplier: float = 1.0
    min_lock_period: int = 0     # days
    emission_share: float = 0.0

    @field_validator("base_apy", "boost_multiplier")
    @classmethod
    def non_negative(cls, v, info):
        if v < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return v

    @field_validator("emission_share")
    @classmethod
    def share_range(cls, v):
        if v < 0 or v > 1:
            raise ValueError("emission_share must be between 0 and 1")
        return v


class HealthThresholds(BaseModel):
    depth_warning: int = 100_000      # whole tokens
    depth_critical: int = 50_000
    spread_warning: float = 0.01
    spread_critical: float = 0.02
    utilization_low: float = 0.4
    utilization_high: float = 0.9
    concentration_warning: float = 0.15
    concentration_critical: float = 0.25

    parse_amounts = field_validator("depth_warning", "depth_critical", mode="before")(_amount_field)

    @model_validator(mode="after")
    def ordered_bounds(self):
        if self.depth_critical > self.depth_warning:
            raise ValueError("depth_critical must be <= depth_warning")
        if self.spread_critical < self.spread_warning:
            raise ValueError("spread_critical must be >= spread_warning")
        if self.concentration_critical < self.concentration_warning:
            raise ValueError("concentration_critical must be >= concentration_warning")
        if self.utilization_low > self.utilization_high:
            raise ValueError("utilization_low must be <= utilization_high")
        return self


def _default_flywheel_phases() -> List[FlywheelPhaseConfig]:
    return [
        FlywheelPhaseConfig(name="Bootstrap", duration_months=3, emission=15_000_000, target_tvl=10_000_000),
        FlywheelPhaseConfig(name="Growth", duration_months=3, emission=10_000_000, target_tvl=50_000_000),
        FlywheelPhaseConfig(name="Maturity", duration_months=6, emission=5_000_000, target_tvl=100_000_000),
        FlywheelPhaseConfig(name="Sustainable", duration_months=12, emission=2_000_000, target_tvl=500_000_000),
    ]


def _default_pools() -> List[PoolConfig]:
    return [
        PoolConfig(pair="TONAI/TON", base_apy=0.15, boost_multiplier=2.0, min_lock_period=30, emission_share=0.4),
        PoolConfig(pair="TONAI/USDT", base_apy=0.12, boost_multiplier=1.8, min_lock_period=30, emission_share=0.35),
        PoolConfig(pair="Strategy Pools", base_apy=0.20, boost_multiplier=2.5, min_lock_period=90, emission_share=0.25),
    ]


class FlywheelConfig(BaseModel):
    phases: List[FlywheelPhaseConfig] = Field(default_factory=_default_flywheel_phases)
    liquidity_pools: List[PoolConfig] = Field(default_factory=_default_pools)
    health_thresholds: HealthThresholds = Field(default_factory=HealthThresholds)
    incentive_budget: int = 50_000_000

    parse_amounts = field_validator("incentive_budget", mode="before")(_amount_field)

    @field_validator("phases")
    @classmethod
    def at_least_one_phase(cls, v):
        if not v:
            raise ValueError("flywheel needs at least one phase")
        return v


# ── Valuation ──

class SupplyModelConfig(BaseModel):
    initial_supply: int = 1_000_000_000
    initial_circulating: int = 130_000_000
    yearly_emissions: List[int] = Field(
        default_factory=lambda: [100_000_000, 75_000_000, 50_000_000, 25_000_000]
    )
    emission_decay: float = 0.25
    max_supply: Optional[int] = None

    parse_amounts = field_validator("initial_supply", "initial_circulating", mode="before")(_amount_field)

    @field_validator("yearly_emissions", mode="before")
    @classmethod
    def emissions_are_amounts(cls, v):
        if not v:
            raise ValueError("yearly_emissions must contain at least one entry")
        return [parse_amount(x, "yearly_emissions") for x in v]


class DemandDriver(BaseModel):
    name: str
    weight: float
    growth_rate: float       # monthly growth assumption
    description: str = ""

    @field_validator("weight")
    @classmethod
    def weight_range(cls, v):
        if v < 0 or v > 1:
            raise ValueError("weight must be between 0 and 1")
        return v


class EquilibriumTargets(BaseModel):
    staking_ratio: float = 0.6
    liquidity_ratio: float = 0.15
    burn_rate: float = 0.03
    velocity_target: float = 4.0


class BurnMechanics(BaseModel):
    transaction_fee: float = 0.01
    slashing_burn: float = 0.5
    expired_governance_burn: float = 1.0
    agent_decommission_burn: float = 0.25

    @field_validator("*")
    @classmethod
    def fraction_range(cls, v, info):
        if v < 0 or v > 1:
            raise ValueError(f"{info.field_name} must be between 0 and 1")
        return v


def _default_demand_drivers() -> List[DemandDriver]:
    return [
        DemandDriver(name="Platform Usage", weight=0.3, growth_rate=0.2, description="Trading and agent operations"),
        DemandDriver(name="Agent Staking", weight=0.25, growth_rate=0.15, description="Tokens locked for agent deployment"),
        DemandDriver(name="Governance", weight=0.15, growth_rate=0.05, description="Participation in protocol governance"),
        DemandDriver(name="Liquidity Mining", weight=0.2, growth_rate=0.1, description="LP incentives and rewards"),
        DemandDriver(name="Institutional", weight=0.1, growth_rate=0.08, description="Institutional staking and custody"),
    ]


class ValuationConfig(BaseModel):
    supply_model: SupplyModelConfig = Field(default_factory=SupplyModelConfig)
    demand_drivers: List[DemandDriver] = Field(default_factory=_default_demand_drivers)
    equilibrium_targets: EquilibriumTargets = Field(default_factory=EquilibriumTargets)
    burn_mechanics: BurnMechanics = Field(default_factory=BurnMechanics)

    # Heuristic estimates, not derived quantities
    demand_decay: float = 0.15
    assumed_liquidity_ratio: float = 0.12
    velocity_estimate: float = 4.0

    @field_validator("demand_decay")
    @classmethod
    def decay_range(cls, v):
        if v < 0 or v >= 1:
            raise ValueError("demand_decay must be in [0, 1)")
        return v


# ── Scenario simulation ──

class GrowthAssumptions(BaseModel):
    user_growth_rate: float = 0.10
    tvl_growth_rate: float = 0.15
    revenue_growth_rate: float = 0.12
    adoption_curve: AdoptionCurve = "s_curve"


class ScenarioAdjustments(BaseModel):
    growth_multiplier: float = 1.0
    burn_multiplier: float = 1.0
    staking_multiplier: float = 1.0
    price_volatility: float = 0.3

    @field_validator("growth_multiplier", "burn_multiplier", "staking_multiplier", "price_volatility")
    @classmethod
    def non_negative(cls, v, info):
        if v < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return v


class Scenario(BaseModel):
    name: str
    type: ScenarioType = "base"
    adjustments: ScenarioAdjustments = Field(default_factory=ScenarioAdjustments)


class InitialMarketState(BaseModel):
    tvl: int = 10_000_000
    monthly_revenue: int = 100_000
    users: int = 10_000
    agents: int = 100

    @field_validator("tvl", "monthly_revenue", "users", "agents")
    @classmethod
    def positive(cls, v, info):
        if v <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return v


def _default_scenarios() -> List[Scenario]:
    return [
        Scenario(name="base", type="base", adjustments=ScenarioAdjustments(
            growth_multiplier=1.0, burn_multiplier=1.0, staking_multiplier=1.0, price_volatility=0.3)),
        Scenario(name="bull", type="bull", adjustments=ScenarioAdjustments(
            growth_multiplier=1.5, burn_multiplier=1.2, staking_multiplier=1.1, price_volatility=0.4)),
        Scenario(name="bear", type="bear", adjustments=ScenarioAdjustments(
            growth_multiplier=0.5, burn_multiplier=0.8, staking_multiplier=0.9, price_volatility=0.5)),
        Scenario(name="stress", type="stress", adjustments=ScenarioAdjustments(
            growth_multiplier=0.2, burn_multiplier=0.5, staking_multiplier=0.7, price_volatility=0.8)),
    ]


class SimulationConfig(BaseModel):
    initial_supply: int = 1_000_000_000
    initial_circulating: int = 130_000_000
    emission_schedule: List[int] = Field(
        default_factory=lambda: [100_000_000, 75_000_000, 50_000_000, 25_000_000]
    )
    burn_rate: float = 0.02
    staking_target: float = 0.6
    growth_assumptions: GrowthAssumptions = Field(default_factory=GrowthAssumptions)
    scenarios: List[Scenario] = Field(default_factory=_default_scenarios)
    initial_state: InitialMarketState = Field(default_factory=InitialMarketState)
    price_floor: float = 0.001
    monte_carlo_workers: int = 4
    # Paths are CPU-bound pure Python; "thread" only gives concurrency under the GIL
    monte_carlo_executor: Literal["process", "thread"] = "process"

    parse_amounts = field_validator("initial_supply", "initial_circulating", mode="before")(_amount_field)

    @field_validator("emission_schedule", mode="before")
    @classmethod
    def schedule_is_amounts(cls, v):
        if not v:
            raise ValueError("emission_schedule must contain at least one entry")
        return [parse_amount(x, "emission_schedule") for x in v]

    @field_validator("burn_rate", "staking_target")
    @classmethod
    def rate_range(cls, v, info):
        if v < 0 or v > 1:
            raise ValueError(f"{info.field_name} must be between 0 and 1")
        return v

    @field_validator("initial_circulating")
    @classmethod
    def circulating_positive(cls, v):
        if v <= 0:
            raise ValueError("initial_circulating must be > 0")
        return v

    @field_validator("monte_carlo_workers")
    @classmethod
    def workers_range(cls, v):
        if v < 1 or v > 64:
            raise ValueError("monte_carlo_workers must be between 1 and 64")
        return v


class SimulationParams(BaseModel):
    years: int = 5
    scenario: str = "base"
    monte_carlo: bool = False
    iterations: int = 100
    seed: Optional[int] = None

    @field_validator("years")
    @classmethod
    def years_range(cls, v):
        if v < 1 or v > 50:
            raise ValueError("years must be between 1 and 50")
        return v

    @field_validator("iterations")
    @classmethod
    def iterations_range(cls, v):
        if v < 1 or v > 20000:
            raise ValueError("iterations must be between 1 and 20000")
        return v


class StressScenario(BaseModel):
    name: str
    trigger: str = ""
    price_impact: float = 0.0
    staking_impact: float = 0.0
    liquidity_impact: float = 0.0
    duration: int = 0    # days

    @field_validator("price_impact", "staking_impact", "liquidity_impact")
    @classmethod
    def impact_range(cls, v, info):
        if v < -1 or v > 1:
            raise ValueError(f"{info.field_name} must be between -1 and 1")
        return v

    @field_validator("duration")
    @classmethod
    def duration_non_negative(cls, v):
        if v < 0:
            raise ValueError("duration must be >= 0")
        return v


class TokenStrategyConfig(BaseModel):
    launch: LaunchConfig = Field(default_factory=LaunchConfig)
    flywheel: FlywheelConfig = Field(default_factory=FlywheelConfig)
    valuation: ValuationConfig = Field(default_factory=ValuationConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)


# ── Request bodies for the HTTP surface ──

class TransactionCheck(BaseModel):
    amount: Union[int, str]
    wallet_balance: Union[int, str] = 0
    days_since_launch: int = 0


class IncentiveRewardRequest(BaseModel):
    incentive_type: str
    base_amount: Union[int, str]


class InvestmentRequest(BaseModel):
    amount: Union[int, str]
    investor: str


class APYRequest(BaseModel):
    pair: str
    lock_period: int = 0
    boost_enabled: bool = False


class RewardEstimateRequest(BaseModel):
    pair: str
    amount: Union[int, str]
    lock_period: int = 0


class IncentiveProjectionRequest(RewardEstimateRequest):
    duration_months: int = 12

    @field_validator("duration_months")
    @classmethod
    def duration_range(cls, v):
        if v < 1 or v > 120:
            raise ValueError("duration_months must be between 1 and 120")
        return v


class FlywheelStateUpdate(BaseModel):
    tvl: Optional[Union[int, str]] = None
    liquidity_depth: Optional[Union[int, str]] = None
    spread: Optional[float] = None
    utilization: Optional[float] = None
    concentration: Optional[float] = None
    active_providers: Optional[int] = None


class LiquidityChange(BaseModel):
    amount: Union[int, str]


class StressTestRequest(BaseModel):
    scenario: Union[str, StressScenario]
