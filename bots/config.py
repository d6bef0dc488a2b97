"""Configuration helpers for the bot runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

REQUIRED_VARS = (
    "DISCORD_TOKEN",
    "DISCORD_GUILD_ID",
    "DISCORD_ADMIN_ROLE_ID",
    "DISCORD_VETTING_CATEGORY_ID",
    "VEYRA_API_BASE_URL",
    "VEYRA_API_USERNAME",
    "VEYRA_API_PASSWORD",
)

STORAGE_BACKENDS = {"json", "dynamodb"}


def env_bool(name: str, *, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return default


def env_int(name: str, *, default: int | None = None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class ConfigError(RuntimeError):
    """Raised when required configuration is missing or malformed."""


@dataclass(frozen=True, slots=True)
class BotConfig:
    discord_token: str
    guild_id: int
    admin_role_id: int
    vetting_category_id: int
    veyra_base_url: str
    veyra_username: str
    veyra_password: str
    commission_category_id: int | None = None
    admin_log_channel_id: int | None = None
    data_dir: Path = Path("data")
    storage_backend: str = "json"
    ddb_table_name: str | None = None
    aws_region: str = "us-east-1"
    vetting_retention_days: int = 30
    commission_retention_days: int = 7
    vetting_timeout_days: int = 14
    cleanup_include_timeout: bool = False
    cleanup_interval_hours: int = 24
    log_level: str = "INFO"

    @property
    def vettings_path(self) -> Path:
        return self.data_dir / "vettings.json"

    @property
    def commissions_path(self) -> Path:
        return self.data_dir / "commissions.json"

    @classmethod
    def load(cls) -> BotConfig:
        missing = [name for name in REQUIRED_VARS if not os.getenv(name)]
        if missing:
            raise ConfigError("Missing env vars: " + ", ".join(sorted(missing)))

        numeric: dict[str, int] = {}
        for name in ("DISCORD_GUILD_ID", "DISCORD_ADMIN_ROLE_ID", "DISCORD_VETTING_CATEGORY_ID"):
            value = env_int(name)
            if value is None:
                raise ConfigError(f"{name} must be a numeric Discord id")
            numeric[name] = value

        storage_backend = (os.getenv("STORAGE_BACKEND") or "json").strip().lower()
        if storage_backend not in STORAGE_BACKENDS:
            raise ConfigError(
                f"STORAGE_BACKEND must be one of {', '.join(sorted(STORAGE_BACKENDS))}"
            )
        ddb_table_name = os.getenv("DDB_TABLE_NAME") or None
        if storage_backend == "dynamodb" and not ddb_table_name:
            raise ConfigError("Missing env vars: DDB_TABLE_NAME")

        return cls(
            discord_token=os.environ["DISCORD_TOKEN"],
            guild_id=numeric["DISCORD_GUILD_ID"],
            admin_role_id=numeric["DISCORD_ADMIN_ROLE_ID"],
            vetting_category_id=numeric["DISCORD_VETTING_CATEGORY_ID"],
            veyra_base_url=os.environ["VEYRA_API_BASE_URL"],
            veyra_username=os.environ["VEYRA_API_USERNAME"],
            veyra_password=os.environ["VEYRA_API_PASSWORD"],
            commission_category_id=env_int("DISCORD_COMMISSION_CATEGORY_ID"),
            admin_log_channel_id=env_int("ADMIN_LOG_CHANNEL_ID"),
            data_dir=Path(os.getenv("DATA_DIR") or "data"),
            storage_backend=storage_backend,
            ddb_table_name=ddb_table_name,
            aws_region=os.getenv("AWS_REGION", "us-east-1"),
            vetting_retention_days=env_int("VETTING_RETENTION_DAYS", default=30),
            commission_retention_days=env_int("COMMISSION_RETENTION_DAYS", default=7),
            vetting_timeout_days=env_int("VETTING_TIMEOUT_DAYS", default=14),
            cleanup_include_timeout=env_bool("VETTING_CLEANUP_INCLUDE_TIMEOUT"),
            cleanup_interval_hours=env_int("CLEANUP_INTERVAL_HOURS", default=24),
            log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        )
