from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, model_validator

ENV_PREFIX = "BITREDICT_"
_SECRET_KEYS = ("password", "private_key", "api_token", "api_key", "token", "secret")


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _data_dir() -> Path:
    override = os.getenv(f"{ENV_PREFIX}DATA_DIR")
    path = Path(override) if override else _project_root() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


class DatabaseSettings(BaseModel):
    url: Optional[str] = None
    host: str = "127.0.0.1"
    port: int = 5432
    user: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    pool_size: int = Field(default=10, ge=1, le=100)
    echo: bool = False
    run_migrations: bool = True


class ChainSettings(BaseModel):
    rpc_url: str = "http://127.0.0.1:8545"
    chain_id: Optional[int] = None
    private_key: Optional[str] = None
    pool_core_address: Optional[str] = None
    guided_oracle_address: Optional[str] = None
    oddyssey_address: Optional[str] = None
    settlement_address: Optional[str] = None
    start_block: int = Field(default=0, ge=0)
    max_block_range: int = Field(default=2000, ge=1, le=100_000)
    gas_limit: int = Field(default=2_000_000, ge=21_000)
    receipt_timeout_seconds: float = Field(default=120.0, gt=0)
    request_timeout_seconds: float = Field(default=30.0, gt=0)

    def watched_addresses(self) -> list[str]:
        return [
            addr
            for addr in (
                self.pool_core_address,
                self.guided_oracle_address,
                self.oddyssey_address,
                self.settlement_address,
            )
            if addr
        ]


class ProviderSettings(BaseModel):
    sportmonks_api_token: Optional[str] = None
    sportmonks_base_url: str = "https://api.sportmonks.com/v3/football"
    sportmonks_rate_per_minute: int = Field(default=50, ge=1)
    coinpaprika_api_key: Optional[str] = None
    coinpaprika_base_url: str = "https://api.coinpaprika.com/v1"
    coinpaprika_rate_per_minute: int = Field(default=60, ge=1)
    timeout_seconds: float = Field(default=15.0, gt=0)
    max_retries: int = Field(default=2, ge=0, le=10)


class TimerSettings(BaseModel):
    ingestion_interval_seconds: int = 300
    sync_interval_seconds: int = 5
    settlement_interval_seconds: int = 300
    resolver_interval_seconds: int = 60
    monitor_interval_seconds: int = 900
    cycle_start_utc: str = "23:50"

    @model_validator(mode="after")
    def _validate_intervals(self) -> "TimerSettings":
        for field_name in (
            "ingestion_interval_seconds",
            "sync_interval_seconds",
            "settlement_interval_seconds",
            "resolver_interval_seconds",
            "monitor_interval_seconds",
        ):
            if getattr(self, field_name) <= 0:
                raise ValueError(f"{field_name} must be > 0")
        hour, _, minute = self.cycle_start_utc.partition(":")
        if not (hour.isdigit() and minute.isdigit() and int(hour) < 24 and int(minute) < 60):
            raise ValueError("cycle_start_utc must be HH:MM")
        return self

    @property
    def cycle_start_time(self) -> tuple[int, int]:
        hour, _, minute = self.cycle_start_utc.partition(":")
        return int(hour), int(minute)


class RuntimeSettings(BaseModel):
    test_mode: bool = False
    log_level: str = "INFO"
    log_retention_bytes: int = 50 * 1024 * 1024
    health_host: str = "0.0.0.0"
    health_port: int = Field(default=8088, ge=0, le=65535)
    enable_oddyssey: bool = True
    # consecutive transient tick failures before a component gives up
    fatal_after_failures: int = Field(default=20, ge=1)
    shutdown_grace_seconds: float = Field(default=30.0, ge=0)


class Settings(BaseModel):
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    chain: ChainSettings = Field(default_factory=ChainSettings)
    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    timers: TimerSettings = Field(default_factory=TimerSettings)
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)


def _default_config_path() -> Path:
    override = os.getenv(f"{ENV_PREFIX}CONFIG")
    if override:
        return Path(override)
    return _project_root() / "config" / "oracle.yaml"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"config file {path} must contain a mapping")
    return data


def _env_overrides(environ: Optional[Dict[str, str]] = None) -> Dict[str, Dict[str, str]]:
    """Collect BITREDICT_<SECTION>__<FIELD> variables into nested dicts."""
    env = os.environ if environ is None else environ
    sections = set(Settings.model_fields)
    overrides: Dict[str, Dict[str, str]] = {}
    for key, value in env.items():
        if not key.startswith(ENV_PREFIX) or "__" not in key:
            continue
        section, _, field = key[len(ENV_PREFIX):].lower().partition("__")
        if section not in sections or not field:
            continue
        overrides.setdefault(section, {})[field] = value
    if "url" not in overrides.get("database", {}) and env.get("DATABASE_URL"):
        overrides.setdefault("database", {})["url"] = env["DATABASE_URL"]
    return overrides


def load_settings(
    path: Optional[str | Path] = None,
    *,
    environ: Optional[Dict[str, str]] = None,
) -> Settings:
    """Build settings from defaults, the YAML file, then environment overrides."""
    raw = _load_yaml(Path(path) if path else _default_config_path())
    for section, fields in _env_overrides(environ).items():
        current = raw.get(section) or {}
        if not isinstance(current, dict):
            raise ValueError(f"config section {section} must be a mapping")
        raw[section] = {**current, **fields}
    return Settings.model_validate(raw)


def sanitize_dict(data: Any) -> Any:
    """Redact secret-looking values before settings are logged."""
    if isinstance(data, dict):
        out: Dict[str, Any] = {}
        for key, value in data.items():
            if any(marker in str(key).lower() for marker in _SECRET_KEYS) and value:
                out[key] = "***"
            else:
                out[key] = sanitize_dict(value)
        return out
    if isinstance(data, list):
        return [sanitize_dict(item) for item in data]
    return data


__all__ = [
    "ENV_PREFIX",
    "DatabaseSettings",
    "ChainSettings",
    "ProviderSettings",
    "TimerSettings",
    "RuntimeSettings",
    "Settings",
    "load_settings",
    "sanitize_dict",
    "_project_root",
    "_data_dir",
]
