import logging
from typing import Optional, Union

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tokenomics_engine.api.routes import router as api_router
from tokenomics_engine.schemas import TokenStrategyConfig
from tokenomics_engine.services.engine import TokenStrategyEngine
from tokenomics_engine.utils.json_safety import SafeJSONResponse

logger = logging.getLogger(__name__)


def _log_event(event) -> None:
    logger.info("event %s (%s) %s", event.type, event.category, event.id)


def create_app(config: Optional[Union[TokenStrategyConfig, dict]] = None) -> FastAPI:
    app = FastAPI(
        title="Tokenomics Simulation & Liquidity Flywheel Engine",
        default_response_class=SafeJSONResponse,
    )

    # ── One engine (single writer) per application ──
    engine = TokenStrategyEngine(config)
    engine.on_event(_log_event)
    app.state.engine = engine

    # ── CORS (kept for local dev convenience) ──
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://127.0.0.1:8000", "http://localhost:8000"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── API routes ──
    app.include_router(api_router, prefix="/api")

    return app


app = create_app()


def run():
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host="127.0.0.1", port=8000)
