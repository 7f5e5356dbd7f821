from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import os
import yaml


class ConfigError(ValueError):
    pass


def _env_override(value: Any, env_key: str) -> Any:
    env_val = os.getenv(env_key)
    if env_val is None:
        return value
    # basic parsing
    if isinstance(value, bool):
        return env_val.strip().lower() in ("1", "true", "yes", "y", "on")
    if isinstance(value, int):
        try:
            return int(env_val)
        except ValueError:
            return value
    if isinstance(value, float):
        try:
            return float(env_val)
        except ValueError:
            return value
    return env_val


def _csv(value: Optional[str]) -> List[str]:
    return [x.strip() for x in (value or "").split(",") if x.strip()]


@dataclass(frozen=True)
class AppConfig:
    name: str = "Confluence Sentinel"
    log_level: str = "INFO"


@dataclass(frozen=True)
class ProviderConfig:
    market: str = "spot"  # spot|futures
    interval: str = "15m"
    limit: int = 300
    context_intervals: Tuple[str, ...] = ("1h", "4h")
    context_limit: int = 200
    rest_timeout_s: int = 15
    rest_max_retries: int = 3
    rest_backoff_s: float = 0.8


@dataclass(frozen=True)
class StrategyConfig:
    bos_lookback: int = 20

    ob_window: int = 5
    ob_body_ratio: float = 0.6

    liq_min_bars: int = 20
    liq_window: int = 30
    liq_multiplier: float = 1.8

    pattern_body_ratio: float = 0.3
    pattern_wick_ratio: float = 2.0

    min_score: int = 6
    stop_pct: float = 0.01
    target_pct: float = 0.02
    price_decimals: int = 6


@dataclass(frozen=True)
class ScanConfig:
    symbols: Tuple[str, ...] = ("BTCUSDT", "ETHUSDT", "SOLUSDT", "DOGEUSDT", "BNBUSDT")
    interval_min: int = 10
    weaker_resend_s: int = 300
    stronger_resend_s: int = 600
    quote_asset: str = "USDT"


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = True
    token: str = ""
    admin_id: str = ""
    poll_timeout_s: int = 25
    disable_web_page_preview: bool = True


@dataclass(frozen=True)
class StorageConfig:
    directory: str = "data"
    history_max: int = 2000


@dataclass(frozen=True)
class HealthConfig:
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 3000


@dataclass(frozen=True)
class Config:
    app: AppConfig = field(default_factory=AppConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    health: HealthConfig = field(default_factory=HealthConfig)

    def validate(self) -> None:
        errs = []
        if self.telegram.enabled and not self.telegram.token:
            errs.append("telegram.token (TELEGRAM_TOKEN) is required")
        if self.telegram.enabled and not self.telegram.admin_id:
            errs.append("telegram.admin_id (ADMIN_ID) is required")
        if not self.scan.symbols:
            errs.append("scan.symbols must not be empty")
        if self.scan.interval_min <= 0:
            errs.append("scan.interval_min must be positive")
        if errs:
            raise ConfigError("Invalid config: " + "; ".join(errs))


def load_config(path: Optional[str] = None) -> Config:
    raw: Dict[str, Any] = {}
    if path:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

    app = dict(raw.get("app") or {})
    provider = dict(raw.get("provider") or {})
    strategy = dict(raw.get("strategy") or {})
    scan = dict(raw.get("scan") or {})
    tg = dict(raw.get("telegram") or {})
    storage = dict(raw.get("storage") or {})
    health = dict(raw.get("health") or {})

    # env overrides
    tg["token"] = str(_env_override(tg.get("token", ""), "TELEGRAM_TOKEN") or "").strip()
    tg["admin_id"] = str(_env_override(tg.get("admin_id", ""), "ADMIN_ID") or "").strip()
    scan["interval_min"] = _env_override(int(scan.get("interval_min", ScanConfig.interval_min)), "AUTO_INTERVAL_MIN")
    coins_env = os.getenv("AUTO_COINS")
    if coins_env:
        scan["symbols"] = _csv(coins_env)
    storage["directory"] = _env_override(storage.get("directory", StorageConfig.directory), "DATA_DIR")
    health["port"] = _env_override(int(health.get("port", HealthConfig.port)), "PORT")

    if "symbols" in scan:
        # order-preserving de-dup
        scan["symbols"] = tuple(dict.fromkeys(str(s).strip().upper() for s in scan["symbols"] or [] if str(s).strip()))
    if "context_intervals" in provider:
        provider["context_intervals"] = tuple(provider["context_intervals"] or ())

    return Config(
        app=AppConfig(**app),
        provider=ProviderConfig(**provider),
        strategy=StrategyConfig(**strategy),
        scan=ScanConfig(**scan),
        telegram=TelegramConfig(**tg),
        storage=StorageConfig(**storage),
        health=HealthConfig(**health),
    )
