from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import dotenv_values


def _env_get(env: dict[str, str | None], key: str, default: str | None = None) -> str | None:
    value = env.get(key)
    if value is None or value == "":
        return default
    return value


def _env_int(env: dict[str, str | None], key: str, default: int) -> int:
    return int(_env_get(env, key, str(default)) or default)


def _env_float(env: dict[str, str | None], key: str, default: float) -> float:
    return float(_env_get(env, key, str(default)) or default)


def _env_timezone(env: dict[str, str | None], key: str, default: str) -> str:
    name = _env_get(env, key, default) or default
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"{key}={name!r} is not an IANA timezone name") from exc
    return name


@dataclass(frozen=True)
class ReminderPolicy:
    """Knobs shared by the selector, delivery, commands and snooze."""

    timezone: str = "Asia/Kolkata"
    max_per_run: int = 3
    min_urgency: float = 4.0
    critical_urgency: float = 9.0
    quiet_start_hour: int = 9
    quiet_end_hour: int = 22
    snooze_hours: float = 4.0
    match_threshold: int = 30
    list_limit: int = 10

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def is_quiet_hour(self, hour: int) -> bool:
        return hour < self.quiet_start_hour or hour > self.quiet_end_hour


@dataclass(frozen=True)
class Settings:
    mode: str = "dev"
    log_level: str = "INFO"

    llm_api_base: str = "https://api.groq.com/openai/v1/chat/completions"
    llm_api_key: str | None = None
    llm_model: str = "llama-3.3-70b-versatile"
    llm_timeout_sec: int = 30

    whatsapp_gateway_url: str | None = None
    whatsapp_api_key: str | None = None
    reminder_recipient: str | None = None

    db_host: str = "127.0.0.1"
    db_port: int = 5432
    db_name: str = "nudge"
    db_user: str = "nudge"
    db_password: str | None = None

    timezone: str = "Asia/Kolkata"
    reminder_max_per_run: int = 3
    reminder_min_urgency: float = 4.0
    reminder_critical_urgency: float = 9.0
    quiet_start_hour: int = 9
    quiet_end_hour: int = 22
    snooze_hours: float = 4.0
    match_threshold: int = 30
    list_limit: int = 10

    @classmethod
    def load(cls, env_path: Path | None = None) -> "Settings":
        if env_path is None:
            env_path = Path(__file__).resolve().parents[3] / ".env"
        env: dict[str, str | None] = dict(dotenv_values(env_path))
        env.update(os.environ)
        return cls.from_env(env)

    @classmethod
    def from_env(cls, env: dict[str, str | None]) -> "Settings":
        return cls(
            mode=_env_get(env, "MODE", "dev") or "dev",
            log_level=(_env_get(env, "LOG_LEVEL", "INFO") or "INFO").upper(),
            llm_api_base=_env_get(env, "LLM_API_BASE", cls.llm_api_base) or cls.llm_api_base,
            llm_api_key=_env_get(env, "LLM_API_KEY"),
            llm_model=_env_get(env, "LLM_MODEL", cls.llm_model) or cls.llm_model,
            llm_timeout_sec=_env_int(env, "LLM_TIMEOUT_SEC", 30),
            whatsapp_gateway_url=_env_get(env, "WHATSAPP_GATEWAY_URL"),
            whatsapp_api_key=_env_get(env, "WHATSAPP_API_KEY"),
            reminder_recipient=_env_get(env, "REMINDER_RECIPIENT"),
            db_host=_env_get(env, "DB_HOST", "127.0.0.1") or "127.0.0.1",
            db_port=_env_int(env, "DB_PORT", 5432),
            db_name=_env_get(env, "DB_NAME", "nudge") or "nudge",
            db_user=_env_get(env, "DB_USER", "nudge") or "nudge",
            db_password=_env_get(env, "DB_PASSWORD"),
            timezone=_env_timezone(env, "TZ", "Asia/Kolkata"),
            reminder_max_per_run=_env_int(env, "REMINDER_MAX_PER_RUN", 3),
            reminder_min_urgency=_env_float(env, "REMINDER_MIN_URGENCY", 4.0),
            reminder_critical_urgency=_env_float(env, "REMINDER_CRITICAL_URGENCY", 9.0),
            quiet_start_hour=_env_int(env, "QUIET_START_HOUR", 9),
            quiet_end_hour=_env_int(env, "QUIET_END_HOUR", 22),
            snooze_hours=_env_float(env, "SNOOZE_HOURS", 4.0),
            match_threshold=_env_int(env, "MATCH_THRESHOLD", 30),
            list_limit=_env_int(env, "LIST_LIMIT", 10),
        )

    def policy(self) -> ReminderPolicy:
        return ReminderPolicy(
            timezone=self.timezone,
            max_per_run=self.reminder_max_per_run,
            min_urgency=self.reminder_min_urgency,
            critical_urgency=self.reminder_critical_urgency,
            quiet_start_hour=self.quiet_start_hour,
            quiet_end_hour=self.quiet_end_hour,
            snooze_hours=self.snooze_hours,
            match_threshold=self.match_threshold,
            list_limit=self.list_limit,
        )
