"""Application configuration loaded from config.yaml + environment variables."""

from __future__ import annotations

import yaml
from pathlib import Path
from pydantic import Field
from pydantic_settings import BaseSettings

_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"


def _load_yaml() -> dict:
    if _CONFIG_PATH.exists():
        with open(_CONFIG_PATH) as f:
            return yaml.safe_load(f) or {}
    return {}


_yaml = _load_yaml()


class DispatchConfig(BaseSettings):
    batch_size: int = 10
    interest_window_minutes: float = 10.0
    mechanic_source: str = "queue"  # queue | snapshot
    snapshot_limit: int = 10
    max_concurrent_tickets: int = 5
    pause_when_busy: bool = True

    model_config = {"env_prefix": "DISPATCH_"}


class VapiConfig(BaseSettings):
    api_key: str = ""
    base_url: str = "https://api.vapi.ai"
    timeout_seconds: float = 30.0
    assistant_id: str = ""
    model: str = "gpt-4o"
    temperature: float = 0.7
    tool_server_url: str = ""
    tool_api_key: str = ""
    experienced_api_key: str = ""  # used for mechanics who have onboarded before

    model_config = {"env_prefix": "VAPI_"}


class TwilioConfig(BaseSettings):
    account_sid: str = ""
    auth_token: str = ""
    phone_number: str = ""

    model_config = {"env_prefix": "TWILIO_"}


class SchedulerConfig(BaseSettings):
    enabled: bool = False
    batch_interval_seconds: float = 120.0
    cleanup_interval_seconds: float = 600.0
    status_interval_seconds: float = 600.0
    alert_after_failures: int = 3
    base_url: str = "http://localhost:8000"
    request_timeout_seconds: float = 120.0

    model_config = {"env_prefix": "SCHEDULER_"}


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///data/dispatch.db"
    cron_api_key: str = ""
    default_company_name: str = "24Hr Truck Services"
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    vapi: VapiConfig = Field(default_factory=VapiConfig)
    twilio: TwilioConfig = Field(default_factory=TwilioConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


def get_settings() -> Settings:
    """Build Settings by merging YAML defaults with env overrides."""
    y = _yaml
    overrides = {}
    db_url = y.get("database", {}).get("url")
    if db_url:
        overrides["database_url"] = db_url
    if y.get("cron_api_key"):
        overrides["cron_api_key"] = y["cron_api_key"]
    return Settings(
        dispatch=DispatchConfig(**y.get("dispatch", {})),
        vapi=VapiConfig(**y.get("vapi", {})),
        twilio=TwilioConfig(**y.get("twilio", {})),
        scheduler=SchedulerConfig(**y.get("scheduler", {})),
        **overrides,
    )
