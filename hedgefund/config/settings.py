"""
Configuration settings for the hedge-fund trading engine
"""
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class AlpacaSettings(BaseSettings):
    """Alpaca broker configuration"""
    model_config = {"env_file": ".env", "env_prefix": "ALPACA_", "extra": "ignore"}

    api_key: str = Field("", description="Alpaca API key id")
    api_secret: str = Field("", description="Alpaca API secret")
    paper: bool = Field(True, description="Trade against the paper endpoint")
    paper_base_url: str = "https://paper-api.alpaca.markets"
    live_base_url: str = "https://api.alpaca.markets"
    data_base_url: str = "https://data.alpaca.markets"
    data_feed: Literal["iex", "sip"] = "iex"
    request_timeout_seconds: float = Field(10.0, gt=0)
    use_bracket_orders: bool = False

    @property
    def base_url(self) -> str:
        return self.paper_base_url if self.paper else self.live_base_url

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.api_secret)


class DatabaseSettings(BaseSettings):
    """Supabase configuration"""
    model_config = {"env_file": ".env", "env_prefix": "SUPABASE_", "extra": "ignore"}

    url: Optional[str] = None
    key: Optional[str] = None
    enabled: bool = True

    @property
    def configured(self) -> bool:
        return bool(self.enabled and self.url and self.key)


class RiskSettings(BaseSettings):
    """Pre-trade risk limits, fractions of equity"""
    model_config = {"env_file": ".env", "env_prefix": "RISK_", "extra": "ignore"}

    min_confidence: float = Field(0.60, ge=0, le=1)
    max_open_positions: int = Field(10, ge=1)
    max_exposure: float = Field(0.50, gt=0, le=1)
    max_position_size: float = Field(0.10, gt=0, le=1)
    max_daily_loss: float = Field(0.05, gt=0, le=1)
    max_drawdown: float = Field(0.15, gt=0, le=1)
    require_stop_loss: bool = True
    min_buying_power: float = Field(0.0, ge=0)


class StrategySettings(BaseSettings):
    """Multi-strategy scoring configuration"""
    model_config = {"env_file": ".env", "env_prefix": "STRATEGY_", "extra": "ignore"}

    min_confidence: float = Field(0.60, ge=0, le=1)
    switch_threshold: float = Field(10.0, ge=5)
    min_trades_before_switch: int = Field(20, ge=1)
    auto_switch_enabled: bool = True
    bars_timeframe: str = "1Day"
    bars_limit: int = Field(100, ge=50)
    min_bars: int = Field(50, ge=1)


class LearningSettings(BaseSettings):
    """Outcome feedback configuration"""
    model_config = {"env_file": ".env", "env_prefix": "LEARNING_", "extra": "ignore"}

    probation_trades: int = Field(7, ge=1)
    test_pass_win_rate: float = Field(0.40, ge=0, le=1)
    test_pass_profit_min: float = 0.0
    history_window: int = Field(100, ge=2)


class EngineSettings(BaseSettings):
    """Engine identity and cycle behaviour"""
    model_config = {"env_file": ".env", "env_prefix": "ENGINE_", "extra": "ignore"}

    user_id: Optional[str] = None
    mode: Literal["paper", "live"] = "paper"
    session_id: Optional[str] = None
    port_timeout_seconds: float = Field(15.0, gt=0)
    default_notional: Optional[float] = Field(None, gt=0)
    dry_run: bool = False


class LoggingSettings(BaseSettings):
    """Logging configuration"""
    model_config = {"env_file": ".env", "extra": "ignore"}

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_to_file: bool = True
    log_file_path: Path = Path("logs/hedgefund.log")
    log_max_size_mb: int = 100
    log_backup_count: int = 10
    log_format: str = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"


class ApiSettings(BaseSettings):
    """HTTP API server"""
    model_config = {"env_file": ".env", "env_prefix": "API_", "extra": "ignore"}

    host: str = "0.0.0.0"
    port: int = Field(8000, ge=1, le=65535)


class Settings(BaseSettings):
    """Main settings aggregator"""
    model_config = {"extra": "ignore"}  # Nested groups read their own env vars

    alpaca: AlpacaSettings = Field(default_factory=AlpacaSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    risk: RiskSettings = Field(default_factory=RiskSettings)
    strategy: StrategySettings = Field(default_factory=StrategySettings)
    learning: LearningSettings = Field(default_factory=LearningSettings)
    engine: EngineSettings = Field(default_factory=EngineSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)

    @classmethod
    def load(cls) -> "Settings":
        """Load settings from environment"""
        return cls(
            alpaca=AlpacaSettings(),
            database=DatabaseSettings(),
            risk=RiskSettings(),
            strategy=StrategySettings(),
            learning=LearningSettings(),
            engine=EngineSettings(),
            logging=LoggingSettings(),
            api=ApiSettings(),
        )
