"""
Configuration loading and management.
Loads settings from YAML files and environment variables.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field, fields
from typing import Optional
import yaml


@dataclass
class AccountConfig:
    """Paper account configuration."""
    starting_balance: float = 10000.0
    fee_percent: float = 0.0  # Per-fill fee, percent of notional


@dataclass
class RiskConfig:
    """Risk planner and intrabar guard configuration."""
    max_leverage: float = 5.0
    risk_per_trade_pct: float = 1.0  # Percent of equity risked per entry
    max_positions: int = 1
    sl_pct: float = 1.0  # Fallback stop distance, percent of price
    tp_pct: float = 2.0  # Fallback take profit distance, percent of price

    # Trailing stop (fractions of entry price, 0 trail = disabled)
    trailing_activation_pct: float = 0.0
    trailing_trail_pct: float = 0.0


@dataclass
class DataConfig:
    """Historical data provider configuration."""
    exchange_id: str = "binance"
    market_type: str = "spot"


@dataclass
class StrategySelection:
    """Which strategy and profile to run."""
    id: str = "ultra_aggressive_btc_usdt"
    profile: Optional[str] = None  # None = the strategy's default profile
    config_dir: str = "config/strategies"


@dataclass
class BacktestSettings:
    """Backtest runner defaults."""
    cache_limit: int = 5000  # Max candles kept per timeframe in the store
    symbol: Optional[str] = None  # None = the strategy config's symbol


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "json"
    file: Optional[str] = None  # JSON lines copy of every record


@dataclass
class Settings:
    """Main application settings container."""
    strategy: StrategySelection = field(default_factory=StrategySelection)
    risk: RiskConfig = field(default_factory=RiskConfig)
    account: AccountConfig = field(default_factory=AccountConfig)
    data: DataConfig = field(default_factory=DataConfig)
    backtest: BacktestSettings = field(default_factory=BacktestSettings)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# YAML top-level key -> section dataclass
_SECTIONS = {
    "strategy": StrategySelection,
    "risk": RiskConfig,
    "account": AccountConfig,
    "data": DataConfig,
    "backtest": BacktestSettings,
    "logging": LoggingConfig,
}

DEFAULT_CONFIG_PATH = Path("config/config.yaml")


def _resolve_config_path(config_path: Optional[str]) -> Optional[Path]:
    """Explicit path, then CONFIG_PATH, then config/config.yaml."""
    candidate = config_path or os.environ.get("CONFIG_PATH")
    path = Path(candidate) if candidate else DEFAULT_CONFIG_PATH
    return path if path.exists() else None


def _build_section(config_class, data: Optional[dict]):
    # Unknown keys are ignored; missing keys keep the dataclass default
    known = {f.name for f in fields(config_class)}
    return config_class(**{k: v for k, v in (data or {}).items() if k in known})


def load_settings(config_path: Optional[str] = None) -> Settings:
    """
    Load settings from the YAML config file, then apply environment overrides.

    A missing file yields the defaults.
    """
    data = {}
    path = _resolve_config_path(config_path)
    if path is not None:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

    settings = Settings(**{
        name: _build_section(config_class, data.get(name))
        for name, config_class in _SECTIONS.items()
    })
    _apply_env_overrides(settings)
    return settings


def _apply_env_overrides(settings: Settings) -> None:
    if strategy_id := os.environ.get("STRATEGY_ID"):
        settings.strategy.id = strategy_id.strip()

    if profile := os.environ.get("STRATEGY_PROFILE"):
        settings.strategy.profile = profile.strip()

    if balance := os.environ.get("INITIAL_BALANCE"):
        settings.account.starting_balance = float(balance)

    if risk_pct := os.environ.get("RISK_PER_TRADE_PCT"):
        settings.risk.risk_per_trade_pct = float(risk_pct)

    if exchange_id := os.environ.get("EXCHANGE_ID"):
        settings.data.exchange_id = exchange_id.strip().lower()

    if log_level := os.environ.get("LOG_LEVEL"):
        settings.logging.level = log_level.upper()

    if log_format := os.environ.get("LOG_FORMAT"):
        settings.logging.format = log_format.lower()

    if log_file := os.environ.get("LOG_FILE"):
        settings.logging.file = log_file
