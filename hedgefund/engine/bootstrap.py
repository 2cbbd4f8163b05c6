"""
Wiring: builds a fully connected orchestrator from Settings
"""
import sys
import uuid
from typing import Optional

from loguru import logger

from hedgefund.analysis.multi_strategy_scorer import MultiStrategyScorer
from hedgefund.analytics.analytics_recorder import AnalyticsRecorder
from hedgefund.config.settings import LoggingSettings, Settings
from hedgefund.core.ports import AccountPort, MarketDataPort, OrderPort, PersistencePort
from hedgefund.database.memory_store import InMemoryStore
from hedgefund.database.supabase_client import SupabaseClient
from hedgefund.engine.orchestrator import TradingCycleOrchestrator
from hedgefund.exchange.alpaca_client import AlpacaClient
from hedgefund.execution.execution_router import ExecutionRouter
from hedgefund.learning.learning_engine import LearningEngine
from hedgefund.learning.performance_book import PerformanceBook
from hedgefund.risk.risk_engine import RiskEngine, RiskLimits
from hedgefund.strategies import build_all_strategies


def setup_logging(settings: LoggingSettings) -> None:
    """Configure logging"""
    logger.remove()  # Remove default handler

    logger.add(
        sys.stderr,
        level=settings.log_level,
        format=settings.log_format,
    )

    if settings.log_to_file:
        logger.add(
            settings.log_file_path,
            level=settings.log_level,
            format=settings.log_format,
            rotation=f"{settings.log_max_size_mb} MB",
            retention=settings.log_backup_count,
        )


def build_persistence(settings: Settings) -> PersistencePort:
    if settings.database.configured:
        store = SupabaseClient(
            settings.database.url,
            settings.database.key,
            enabled=True,
            user_id=settings.engine.user_id,
        )
        if store.enabled:
            return store
        logger.warning("Supabase unavailable, falling back to in-memory store")
    return InMemoryStore()


def build_engine(
    settings: Settings,
    market_data: Optional[MarketDataPort] = None,
    account: Optional[AccountPort] = None,
    orders: Optional[OrderPort] = None,
    persistence: Optional[PersistencePort] = None,
) -> TradingCycleOrchestrator:
    """
    Construct every component and hand back the orchestrator that owns them.

    Ports can be injected; anything not given is built from ``settings``.

    Raises:
        ValueError: a broker port is needed but Alpaca credentials are missing
    """
    if market_data is None or account is None or orders is None:
        if not settings.alpaca.configured:
            raise ValueError("Alpaca API credentials are not configured (ALPACA_API_KEY / ALPACA_API_SECRET)")
        alpaca = AlpacaClient(
            api_key=settings.alpaca.api_key,
            api_secret=settings.alpaca.api_secret,
            paper=settings.alpaca.paper,
            base_url=settings.alpaca.base_url,
            data_base_url=settings.alpaca.data_base_url,
            data_feed=settings.alpaca.data_feed,
            request_timeout=settings.alpaca.request_timeout_seconds,
        )
        market_data = market_data or alpaca
        account = account or alpaca
        orders = orders or alpaca

    persistence = persistence or build_persistence(settings)
    timeout = settings.engine.port_timeout_seconds
    mode = "paper" if settings.alpaca.paper else "live"
    if settings.engine.mode != mode:
        logger.warning(f"ENGINE_MODE={settings.engine.mode} but Alpaca is configured for {mode}; using {mode}")

    book = PerformanceBook(probation_trades=settings.learning.probation_trades)
    strategies = build_all_strategies()
    for strategy in strategies:
        strategy.min_bars = max(strategy.min_bars, settings.strategy.min_bars)

    scorer = MultiStrategyScorer(
        book,
        strategies=strategies,
        min_confidence=settings.strategy.min_confidence,
        switch_threshold=settings.strategy.switch_threshold,
        min_trades_before_switch=settings.strategy.min_trades_before_switch,
        auto_switch_enabled=settings.strategy.auto_switch_enabled,
    )
    risk_engine = RiskEngine(RiskLimits(**settings.risk.model_dump()))
    router = ExecutionRouter(
        orders,
        account=account,
        timeout=timeout,
        use_brackets=settings.alpaca.use_bracket_orders,
        mode=mode,
    )
    recorder = AnalyticsRecorder(persistence, timeout=timeout, mode=mode)
    learning = LearningEngine(
        persistence,
        book,
        test_pass_win_rate=settings.learning.test_pass_win_rate,
        test_pass_profit_min=settings.learning.test_pass_profit_min,
        history_window=settings.learning.history_window,
        persistence_timeout=timeout,
        strategy_names={s.strategy_id: s.name for s in strategies},
    )

    return TradingCycleOrchestrator(
        market_data=market_data,
        account=account,
        scorer=scorer,
        risk_engine=risk_engine,
        router=router,
        recorder=recorder,
        learning=learning,
        persistence=persistence,
        port_timeout=timeout,
        bars_timeframe=settings.strategy.bars_timeframe,
        bars_limit=settings.strategy.bars_limit,
        default_notional=settings.engine.default_notional,
        dry_run=settings.engine.dry_run,
        mode=mode,
        session_id=settings.engine.session_id or uuid.uuid4().hex[:12],
    )
