import asyncio

from fastapi import APIRouter, Depends, HTTPException, Request

from tokenomics_engine.errors import ConfigurationError, UnknownPoolError
from tokenomics_engine.schemas import (
    APYRequest,
    FlywheelStateUpdate,
    IncentiveProjectionRequest,
    IncentiveRewardRequest,
    InvestmentRequest,
    LiquidityChange,
    RewardEstimateRequest,
    SimulationParams,
    StressTestRequest,
    TGEConfig,
    TransactionCheck,
)
from tokenomics_engine.services.engine import TokenStrategyEngine
from tokenomics_engine.utils.json_safety import sanitize


router = APIRouter()


def get_engine(request: Request) -> TokenStrategyEngine:
    return request.app.state.engine


def _unprocessable(exc: ValueError) -> HTTPException:
    return HTTPException(status_code=422, detail=str(exc))


# ── Launch ──

@router.get("/launch/progress")
async def api_launch_progress(engine: TokenStrategyEngine = Depends(get_engine)):
    return engine.launch.get_progress()


@router.post("/launch/advance")
async def api_launch_advance(engine: TokenStrategyEngine = Depends(get_engine)):
    phase = engine.launch.advance_phase()
    return {"phase": phase, "launch_date": engine.launch.launch_date}


@router.post("/launch/investments")
async def api_launch_investment(data: InvestmentRequest, engine: TokenStrategyEngine = Depends(get_engine)):
    try:
        tokens = engine.launch.record_investment(data.amount, data.investor)
    except ValueError as exc:
        raise _unprocessable(exc)
    return {"tokens": str(tokens), "progress": engine.launch.get_progress()}


@router.post("/launch/tge-simulation")
async def api_tge_simulation(data: TGEConfig = None, engine: TokenStrategyEngine = Depends(get_engine)):
    try:
        return sanitize(engine.launch.simulate_tge(data))
    except ValueError as exc:
        raise _unprocessable(exc)


@router.post("/launch/validate-transaction")
async def api_validate_transaction(data: TransactionCheck, engine: TokenStrategyEngine = Depends(get_engine)):
    try:
        return engine.launch.validate_transaction(data.amount, data.wallet_balance, data.days_since_launch)
    except ValueError as exc:
        raise _unprocessable(exc)


@router.get("/launch/incentives")
async def api_active_incentives(engine: TokenStrategyEngine = Depends(get_engine)):
    return sanitize(engine.launch.get_active_incentives())


@router.post("/launch/incentive-reward")
async def api_incentive_reward(data: IncentiveRewardRequest, engine: TokenStrategyEngine = Depends(get_engine)):
    try:
        reward = engine.launch.calculate_incentive_reward(data.incentive_type, data.base_amount)
    except ValueError as exc:
        raise _unprocessable(exc)
    return {"reward": reward}


@router.get("/launch/vesting")
async def api_vesting_schedule(horizon_months: int = 36, engine: TokenStrategyEngine = Depends(get_engine)):
    try:
        return engine.launch.vesting_schedule(horizon_months)
    except ValueError as exc:
        raise _unprocessable(exc)


# ── Liquidity ──

@router.get("/liquidity/pools")
async def api_pools(engine: TokenStrategyEngine = Depends(get_engine)):
    return sanitize(engine.liquidity.get_pools())


@router.get("/liquidity/pools/{pair:path}")
async def api_pool(pair: str, engine: TokenStrategyEngine = Depends(get_engine)):
    try:
        return sanitize(engine.liquidity.require_pool(pair))
    except UnknownPoolError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.post("/liquidity/apy")
async def api_apy(data: APYRequest, engine: TokenStrategyEngine = Depends(get_engine)):
    if engine.liquidity.get_pool(data.pair) is None:
        raise HTTPException(status_code=404, detail=f"Unknown liquidity pool: {data.pair}")
    return {"apy": engine.liquidity.calculate_apy(data.pair, data.lock_period, data.boost_enabled)}


@router.post("/liquidity/rewards")
async def api_rewards(data: RewardEstimateRequest, engine: TokenStrategyEngine = Depends(get_engine)):
    try:
        return engine.liquidity.estimate_rewards(data.pair, data.amount, data.lock_period)
    except ValueError as exc:
        raise _unprocessable(exc)


@router.post("/liquidity/incentives")
async def api_incentive_projection(
    data: IncentiveProjectionRequest, engine: TokenStrategyEngine = Depends(get_engine)
):
    try:
        result = engine.liquidity.calculate_incentives(data.pair, data.amount, data.lock_period, data.duration_months)
    except UnknownPoolError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ValueError as exc:
        raise _unprocessable(exc)
    return sanitize(result)


@router.get("/liquidity/metrics")
async def api_flywheel_metrics(engine: TokenStrategyEngine = Depends(get_engine)):
    return sanitize(engine.liquidity.get_flywheel_metrics())


@router.get("/liquidity/stage")
async def api_flywheel_stage(engine: TokenStrategyEngine = Depends(get_engine)):
    return engine.liquidity.get_flywheel_stage()


@router.get("/liquidity/health")
async def api_liquidity_health(engine: TokenStrategyEngine = Depends(get_engine)):
    return engine.liquidity.get_liquidity_health()


@router.get("/liquidity/alerts")
async def api_health_alerts(engine: TokenStrategyEngine = Depends(get_engine)):
    return sanitize(engine.liquidity.check_health_alerts())


@router.put("/liquidity/state")
async def api_set_flywheel_state(data: FlywheelStateUpdate, engine: TokenStrategyEngine = Depends(get_engine)):
    try:
        engine.liquidity.apply_state(**data.model_dump())
    except ValueError as exc:
        raise _unprocessable(exc)
    return sanitize(engine.liquidity.get_flywheel_metrics())


@router.post("/liquidity/add")
async def api_add_liquidity(data: LiquidityChange, engine: TokenStrategyEngine = Depends(get_engine)):
    try:
        engine.liquidity.add_liquidity(data.amount)
    except ValueError as exc:
        raise _unprocessable(exc)
    return sanitize(engine.liquidity.get_flywheel_metrics())


@router.post("/liquidity/remove")
async def api_remove_liquidity(data: LiquidityChange, engine: TokenStrategyEngine = Depends(get_engine)):
    try:
        engine.liquidity.remove_liquidity(data.amount)
    except ValueError as exc:
        raise _unprocessable(exc)
    return sanitize(engine.liquidity.get_flywheel_metrics())


@router.post("/liquidity/distribute")
async def api_distribute_rewards(data: LiquidityChange, engine: TokenStrategyEngine = Depends(get_engine)):
    try:
        engine.liquidity.distribute_rewards(data.amount)
    except ValueError as exc:
        raise _unprocessable(exc)
    return sanitize(engine.liquidity.get_flywheel_metrics())


# ── Valuation ──

@router.get("/valuation/metrics")
async def api_valuation_metrics(engine: TokenStrategyEngine = Depends(get_engine)):
    return sanitize(engine.valuation.get_valuation_metrics())


@router.get("/valuation/supply")
async def api_supply_projection(years: int = 5, engine: TokenStrategyEngine = Depends(get_engine)):
    if years < 1 or years > 50:
        raise HTTPException(status_code=422, detail="years must be between 1 and 50")
    return sanitize(engine.valuation.project_supply(years))


@router.get("/valuation/equilibrium")
async def api_equilibrium(engine: TokenStrategyEngine = Depends(get_engine)):
    return sanitize(engine.valuation.calculate_equilibrium())


# ── Simulation & stress ──

@router.post("/simulation/run")
async def api_run_simulation(data: SimulationParams, engine: TokenStrategyEngine = Depends(get_engine)):
    try:
        engine.simulation.get_scenario(data.scenario)
    except ConfigurationError as exc:
        raise _unprocessable(exc)

    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(None, engine.simulation.run_simulation, data)
    return sanitize(result)


@router.get("/stress/scenarios")
async def api_stress_scenarios(engine: TokenStrategyEngine = Depends(get_engine)):
    return sanitize(engine.stress.get_stress_scenarios())


@router.post("/stress/run")
async def api_run_stress_test(data: StressTestRequest, engine: TokenStrategyEngine = Depends(get_engine)):
    try:
        return engine.stress.run_stress_test(data.scenario)
    except ConfigurationError as exc:
        raise _unprocessable(exc)


@router.get("/health")
async def health(engine: TokenStrategyEngine = Depends(get_engine)):
    report = engine.get_health()
    return sanitize({"status": "ok", **report})
