"""
Hedge Fund API Server
FastAPI surface for running cycles, feeding outcomes back and reading analytics
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import BaseModel, Field

from hedgefund import __version__
from hedgefund.analytics.backtest import run_backtest
from hedgefund.config.settings import Settings
from hedgefund.core.errors import DataUnavailable, HedgeFundError, PortTimeout
from hedgefund.core.ports import call_with_timeout
from hedgefund.core.types import Action, CycleRequest, TradeOutcome, utc_now
from hedgefund.engine.bootstrap import build_engine, setup_logging
from hedgefund.engine.orchestrator import TradingCycleOrchestrator
from hedgefund.learning.outcomes import realized_pnl
from hedgefund.strategies import StrategyKind


class RunCycleRequest(BaseModel):
    # Optional so a missing symbol is answered with 400 rather than a schema error
    symbol: Optional[str] = None
    strategy: Optional[StrategyKind] = None
    notional_amount: Optional[float] = Field(None, alias="notionalAmount")
    quantity: Optional[float] = None
    dry_run: bool = Field(False, alias="dryRun")

    model_config = {"populate_by_name": True}


class OutcomeRequest(BaseModel):
    strategy_id: StrategyKind
    symbol: str
    side: Action
    pnl: Optional[float] = None
    entry_price: float = 0.0
    exit_price: Optional[float] = None
    quantity: float = 0.0


class BacktestRequest(BaseModel):
    strategy: StrategyKind
    symbol: str
    horizon: int = Field(10, ge=1, le=100)
    limit: int = Field(500, ge=60, le=5000)
    timeframe: Optional[str] = None


class ConfigUpdate(BaseModel):
    risk: Optional[Dict[str, Any]] = None
    strategy: Optional[Dict[str, Any]] = None


def _engine(request: Request) -> TradingCycleOrchestrator:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Engine not initialized")
    return engine


def create_app(engine: Optional[TradingCycleOrchestrator] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the API app.

    When no engine is given one is built from the environment at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = False
        if getattr(app.state, "engine", None) is None:
            load_dotenv()
            loaded = settings or Settings.load()
            setup_logging(loaded.logging)
            app.state.engine = build_engine(loaded)
            owned = True
            await app.state.engine.learning.warm_start(list(app.state.engine.scorer.strategies))
        logger.info("Hedge fund API ready")
        yield
        if owned:
            await app.state.engine.close()

    app = FastAPI(
        title="Hedge Fund Engine API",
        description="Multi-strategy trading cycle engine",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root():
        return {"name": "hedgefund", "version": __version__, "timestamp": utc_now().isoformat()}

    @app.post("/api/hedge-fund/run-cycle")
    async def run_cycle(body: RunCycleRequest, request: Request):
        engine = _engine(request)
        if not body.symbol or not body.symbol.strip():
            raise HTTPException(status_code=400, detail="Symbol is required")

        cycle = CycleRequest(
            symbol=body.symbol,
            strategy=body.strategy.value if body.strategy else None,
            notional_amount=body.notional_amount,
            quantity=body.quantity,
            dry_run=body.dry_run,
        )
        try:
            result = await engine.run_cycle(cycle)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return result.to_dict()

    @app.get("/api/hedge-fund/status")
    async def status(request: Request):
        engine = _engine(request)
        return {
            **engine.get_status(),
            "connections": await engine.test_connections(),
            "config": engine.get_config(),
            "timestamp": utc_now().isoformat(),
        }

    @app.get("/api/hedge-fund/analytics")
    async def analytics(request: Request, limit: int = 20):
        engine = _engine(request)
        return {
            "metrics": engine.recorder.get_performance_metrics(),
            "recent": engine.recorder.get_recent_results(limit),
            "learning": engine.learning.compare_strategies(),
        }

    @app.post("/api/hedge-fund/config")
    async def update_config(body: ConfigUpdate, request: Request):
        engine = _engine(request)
        try:
            return engine.update_config(risk=body.risk, strategy=body.strategy)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.post("/api/hedge-fund/evaluate")
    async def evaluate(request: Request):
        engine = _engine(request)
        try:
            evaluation = await engine.daily_evaluation()
        except HedgeFundError as e:
            raise HTTPException(status_code=502, detail=str(e))
        return evaluation.to_dict()

    @app.post("/api/hedge-fund/backtest")
    async def backtest(body: BacktestRequest, request: Request):
        engine = _engine(request)
        timeframe = body.timeframe or engine.bars_timeframe
        try:
            bars = await call_with_timeout(
                engine.market_data.get_bars(body.symbol.upper(), timeframe, body.limit),
                engine.port_timeout,
                f"get bars for backtest {body.symbol}",
            )
        except DataUnavailable as e:
            raise HTTPException(status_code=404, detail=str(e))
        except PortTimeout as e:
            raise HTTPException(status_code=504, detail=str(e))

        result = await asyncio.to_thread(run_backtest, body.strategy, body.symbol.upper(), bars, body.horizon)
        return result.to_dict(include_trades=True)

    @app.get("/api/strategies/comparison")
    async def strategy_comparison(request: Request):
        engine = _engine(request)
        return {
            **engine.scorer.get_strategy_comparison(),
            "switching": engine.scorer.get_switching_stats(),
        }

    @app.get("/api/strategies/{strategy_id}/recommendations")
    async def strategy_recommendations(strategy_id: StrategyKind, request: Request) -> List[str]:
        return _engine(request).learning.get_recommendations(strategy_id.value)

    @app.post("/api/strategies/outcomes")
    async def record_outcome(body: OutcomeRequest, request: Request):
        engine = _engine(request)
        if body.side == Action.HOLD:
            raise HTTPException(status_code=400, detail="Outcome side must be BUY or SELL")

        pnl = body.pnl
        if pnl is None:
            if body.exit_price is None or body.quantity <= 0:
                raise HTTPException(status_code=400, detail="Provide pnl or entry/exit prices with a quantity")
            pnl = realized_pnl(body.side, body.entry_price, body.exit_price, body.quantity)

        outcome = TradeOutcome(
            strategy_id=body.strategy_id.value,
            symbol=body.symbol.upper(),
            side=body.side.value.lower(),
            pnl=pnl,
            entry_price=body.entry_price,
            exit_price=body.exit_price,
            quantity=body.quantity,
        )
        try:
            performance, decision = await engine.record_trade_outcome(outcome)
        except HedgeFundError as e:
            raise HTTPException(status_code=503, detail=f"Outcome not recorded: {e}")
        return {
            "performance": performance.to_record(),
            "switch": {
                "switched": decision.switched,
                "from_strategy": decision.from_strategy,
                "to_strategy": decision.to_strategy,
                "reason": decision.reason,
            },
        }

    @app.get("/api/orders/{order_id}")
    async def order_status(order_id: str, request: Request):
        engine = _engine(request)
        try:
            return await engine.get_order_status(order_id)
        except HedgeFundError as e:
            raise HTTPException(status_code=502, detail=str(e))

    @app.post("/api/orders/{order_id}/cancel")
    async def cancel_order(order_id: str, request: Request):
        engine = _engine(request)
        try:
            cancelled = await engine.cancel_order(order_id)
        except HedgeFundError as e:
            raise HTTPException(status_code=502, detail=str(e))
        if not cancelled:
            raise HTTPException(status_code=409, detail=f"Order {order_id} could not be cancelled")
        return {"order_id": order_id, "cancelled": True}

    return app


app = create_app()


if __name__ == "__main__":
    load_dotenv()
    api_settings = Settings.load().api
    uvicorn.run("hedgefund.api.server:app", host=api_settings.host, port=api_settings.port)
