"""
config.py
Centralized configuration for the FX signal trader.

Loads settings from a .env file and defines the strategy to run.
Separates configuration from application logic (SOLID's SRP).
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from fxbridge import ConfigurationError, RiskProfile, StrategySettings

logger = logging.getLogger(__name__)

# --- Load .env file ---
# Create a file named .env in the working directory and add your keys:
# GEMINI_API_KEY=your-key-here
# METAAPI_TOKEN=your-metaapi-token
# METAAPI_ACCOUNT_ID=your-account-id
# FOREX_DATA_PROVIDER=alphavantage
# ALPHAVANTAGE_API_KEY=your-key-here
load_dotenv()

DATA_PROVIDERS = ("alphavantage", "twelve-data")
LLM_PROVIDERS = ("gemini", "deepseek", "qwen")


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    return value if value not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _env_bool(name: str, default: bool) -> bool:
    return (_env(name, str(default)) or "").lower() == "true"


@dataclass(frozen=True)
class Config:
    """
    Holds all configuration for the application, loaded from environment variables.
    """
    # LLM Configuration
    llm_provider: str = field(default_factory=lambda: _env("LLM_PROVIDER", "gemini"))
    gemini_api_key: Optional[str] = field(default_factory=lambda: _env("GEMINI_API_KEY"))
    deepseek_api_key: Optional[str] = field(default_factory=lambda: _env("DEEPSEEK_API_KEY"))
    qwen_api_key: Optional[str] = field(default_factory=lambda: _env("QWEN_API_KEY"))
    llm_model: Optional[str] = field(default_factory=lambda: _env("LLM_MODEL"))

    # MetaApi Configuration
    metaapi_token: Optional[str] = field(default_factory=lambda: _env("METAAPI_TOKEN"))
    metaapi_account_id: Optional[str] = field(default_factory=lambda: _env("METAAPI_ACCOUNT_ID"))
    metaapi_application_id: str = field(
        default_factory=lambda: _env("METAAPI_APPLICATION_ID", "auto-trading-app"))

    # Market Data Configuration
    forex_data_provider: str = field(default_factory=lambda: _env("FOREX_DATA_PROVIDER", "alphavantage"))
    alphavantage_api_key: Optional[str] = field(default_factory=lambda: _env("ALPHAVANTAGE_API_KEY"))
    twelve_data_api_key: Optional[str] = field(default_factory=lambda: _env("TWELVE_DATA_API_KEY"))
    candle_interval: str = field(default_factory=lambda: _env("CANDLE_INTERVAL", "5min"))

    # Outbound HTTP calls (market data, LLM)
    http_timeout_seconds: float = field(default_factory=lambda: _env_float("HTTP_TIMEOUT_SECONDS", 60.0))

    # Scheduler Configuration
    run_interval_seconds: int = field(default_factory=lambda: _env_int("RUN_INTERVAL_SECONDS", 300))  # 5 minutes

    # Strategy Configuration
    symbol: str = field(default_factory=lambda: _env("SYMBOL", "EURUSD"))
    timeframe: str = field(default_factory=lambda: _env("TIMEFRAME", "M5"))
    risk_per_trade: float = field(default_factory=lambda: _env_float("RISK_PER_TRADE", 1.0))
    max_concurrent_trades: int = field(default_factory=lambda: _env_int("MAX_CONCURRENT_TRADES", 3))
    max_drawdown: float = field(default_factory=lambda: _env_float("MAX_DRAWDOWN", 10.0))
    magic_number: int = field(default_factory=lambda: _env_int("MAGIC_NUMBER", 18012025))
    auto_execute: bool = field(default_factory=lambda: _env_bool("AUTO_EXECUTE", False))

    @property
    def market_data_api_key(self) -> Optional[str]:
        if self.forex_data_provider == "twelve-data":
            return self.twelve_data_api_key
        return self.alphavantage_api_key

    @property
    def llm_api_key(self) -> Optional[str]:
        return {
            "gemini": self.gemini_api_key,
            "deepseek": self.deepseek_api_key,
            "qwen": self.qwen_api_key,
        }.get(self.llm_provider)

    def strategy_settings(self) -> StrategySettings:
        """Builds the validated strategy settings for the engine."""
        return StrategySettings(
            symbol=self.symbol,
            timeframe=self.timeframe,
            magic_number=self.magic_number,
            risk_profile=RiskProfile(
                risk_per_trade=self.risk_per_trade,
                max_concurrent_trades=self.max_concurrent_trades,
                max_drawdown=self.max_drawdown,
            ),
        )


def load_config() -> Config:
    """Loads and validates the application configuration."""
    cfg = Config()
    missing = []

    # Validate MetaApi config
    if not cfg.metaapi_token:
        missing.append("METAAPI_TOKEN")
    if not cfg.metaapi_account_id:
        missing.append("METAAPI_ACCOUNT_ID")

    # Validate LLM config
    if cfg.llm_provider not in LLM_PROVIDERS:
        raise ConfigurationError(f"LLM_PROVIDER must be one of {LLM_PROVIDERS}, got {cfg.llm_provider!r}")
    if not cfg.llm_api_key:
        missing.append(f"{cfg.llm_provider.upper()}_API_KEY")

    # Validate market data config
    if cfg.forex_data_provider not in DATA_PROVIDERS:
        raise ConfigurationError(
            f"FOREX_DATA_PROVIDER must be one of {DATA_PROVIDERS}, got {cfg.forex_data_provider!r}")
    if not cfg.market_data_api_key:
        key_name = "TWELVE_DATA_API_KEY" if cfg.forex_data_provider == "twelve-data" else "ALPHAVANTAGE_API_KEY"
        missing.append(key_name)

    if missing:
        raise ConfigurationError(f"Invalid environment configuration, missing: {', '.join(missing)}")

    if cfg.run_interval_seconds <= 0:
        raise ConfigurationError("RUN_INTERVAL_SECONDS must be positive")
    if cfg.http_timeout_seconds <= 0:
        raise ConfigurationError("HTTP_TIMEOUT_SECONDS must be positive")

    # Fails fast on invalid risk parameters
    cfg.strategy_settings()

    logger.info(f"Configuration loaded. LLM: {cfg.llm_provider}, Data: {cfg.forex_data_provider}, "
                f"Symbol: {cfg.symbol}, Auto Execute: {cfg.auto_execute}")
    return cfg
