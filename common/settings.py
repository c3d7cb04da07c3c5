import os
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

_LOG_SOURCES = ("receipts", "logs")
_DRIVERS = ("sqlite", "postgres")


class RPC(BaseModel):
    url: str
    timeout: float = 30.0
    log_source: str = "receipts"

    @field_validator("url")
    @classmethod
    def must_be_https(cls, v: str) -> str:
        # allow placeholder during tests by swapping in a safe default
        if "${" in v:
            return "https://example.invalid"
        if not v.startswith("https://"):
            raise ValueError("RPC URL must be HTTPS")
        return v

    @field_validator("log_source")
    @classmethod
    def known_log_source(cls, v: str) -> str:
        v = v.lower()
        if v not in _LOG_SOURCES:
            raise ValueError(f"log_source must be one of {_LOG_SOURCES}")
        return v


class DB(BaseModel):
    driver: str = "sqlite"
    sqlite_path: str = "data/pool_events.db"
    dsn: Optional[str] = None

    @field_validator("driver")
    @classmethod
    def known_driver(cls, v: str) -> str:
        v = v.lower()
        if v in ("postgresql", "pg"):
            v = "postgres"
        if v not in _DRIVERS:
            raise ValueError(f"driver must be one of {_DRIVERS}")
        return v


class Retry(BaseModel):
    max_attempts: int = Field(default=3, ge=1)
    initial_backoff_ms: int = Field(default=100, ge=0)
    max_backoff_ms: int = Field(default=10_000, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)


class Ingestion(BaseModel):
    start_block: int = Field(default=0, ge=0)
    poll_interval_seconds: float = Field(default=2.0, ge=0)
    delay_between_blocks_ms: int = Field(default=0, ge=0)
    prefetch: bool = False
    retry: Retry = Retry()


class Tracking(BaseModel):
    pools: List[str] = []


class Settings(BaseModel):
    network: str = "ethereum"
    log_level: str = "info"
    rpc: RPC
    db: DB = DB()
    ingestion: Ingestion = Ingestion()
    tracking: Tracking = Tracking()


def _apply_env_overrides(cfg: dict) -> dict:
    env_rpc = os.environ.get("RPC_URL_OVERRIDE")
    if env_rpc:
        cfg.setdefault("rpc", {})["url"] = env_rpc

    env_dsn = os.environ.get("DATABASE_URL")
    if env_dsn:
        db = cfg.setdefault("db", {})
        db["dsn"] = env_dsn
        # a database URL always selects the postgres backend
        db["driver"] = "postgres"

    env_pools = os.environ.get("POOLS")
    if env_pools:
        pools = [p.strip() for p in env_pools.split(",") if p.strip()]
        cfg.setdefault("tracking", {})["pools"] = pools

    env_level = os.environ.get("LOG_LEVEL")
    if env_level:
        cfg["log_level"] = env_level
    return cfg


def load_settings(path: str = "config.yaml") -> Settings:
    import yaml
    with open(path, "r") as f:
        cfg = yaml.safe_load(f) or {}

    # allow secure override via env at runtime
    cfg = _apply_env_overrides(cfg)

    try:
        return Settings.model_validate(cfg)
    except ValidationError as e:
        raise RuntimeError(f"Configuration error in {path}: {e}") from e
