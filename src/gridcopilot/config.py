"""Configuration helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

SECRET_KEYS = frozenset({"GEMINI_API_KEY", "DATABASE_URL"})


def mask_secret(value: str, visible_prefix: int = 4, visible_suffix: int = 2) -> str:
    """Mask a secret for logs, keeping a short prefix and suffix."""
    secret = (value or "").strip()
    if not secret:
        return ""
    hidden = len(secret) - visible_prefix - visible_suffix
    if hidden <= 0:
        return "*" * len(secret)
    return secret[:visible_prefix] + "*" * hidden + secret[-visible_suffix:]


@dataclass(frozen=True)
class Settings:
    """Runtime settings loaded from environment variables."""

    database_url: str
    llm_provider: str
    gemini_api_key: str
    gemini_model: str
    ollama_model: str
    ollama_base_url: str
    llm_trigger_severity: int
    critical_backup_threshold_hours: float
    alert_cache_ttl_seconds: float
    weather_user_agent: str
    monitor_interval_seconds: int
    log_level: str

    def redacted_snapshot(self) -> dict[str, Any]:
        """Return safe-to-log config snapshot with sensitive values masked."""
        snapshot = {
            "DATABASE_URL": self.database_url,
            "LLM_PROVIDER": self.llm_provider,
            "GEMINI_API_KEY": self.gemini_api_key,
            "GEMINI_MODEL": self.gemini_model,
            "OLLAMA_MODEL": self.ollama_model,
            "OLLAMA_BASE_URL": self.ollama_base_url,
            "LLM_TRIGGER_SEVERITY": self.llm_trigger_severity,
            "CRITICAL_BACKUP_THRESHOLD_HOURS": self.critical_backup_threshold_hours,
            "ALERT_CACHE_TTL_SECONDS": self.alert_cache_ttl_seconds,
            "WEATHER_USER_AGENT": self.weather_user_agent,
            "MONITOR_INTERVAL_SECONDS": self.monitor_interval_seconds,
            "LOG_LEVEL": self.log_level,
        }
        return {key: mask_secret(value) if key in SECRET_KEYS else value for key, value in snapshot.items()}

    @classmethod
    def from_env(cls) -> "Settings":
        database_url = os.getenv("DATABASE_URL", "").strip()
        llm_provider = os.getenv("LLM_PROVIDER", "none").strip().lower() or "none"
        gemini_api_key = os.getenv("GEMINI_API_KEY", "").strip()
        gemini_model = os.getenv("GEMINI_MODEL", "gemini-1.5-pro").strip() or "gemini-1.5-pro"
        ollama_model = os.getenv("OLLAMA_MODEL", "llama3").strip() or "llama3"
        ollama_base_url = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434").strip()
        if not ollama_base_url:
            ollama_base_url = "http://localhost:11434"
        llm_trigger_severity = int(os.getenv("LLM_TRIGGER_SEVERITY", "4"))
        critical_backup_threshold_hours = float(os.getenv("CRITICAL_BACKUP_THRESHOLD_HOURS", "4"))
        alert_cache_ttl_seconds = float(os.getenv("ALERT_CACHE_TTL_SECONDS", "90"))
        weather_user_agent = (
            os.getenv("WEATHER_USER_AGENT", "").strip() or "OutageCommandMap/1.0 (operator-copilot)"
        )
        monitor_interval_seconds = int(os.getenv("MONITOR_INTERVAL_SECONDS", "900"))
        log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

        if llm_provider not in {"gemini", "ollama", "none"}:
            raise ValueError("LLM_PROVIDER must be one of 'gemini', 'ollama' or 'none'.")
        if llm_provider == "gemini" and not gemini_api_key:
            raise ValueError("Missing GEMINI_API_KEY in environment for Gemini provider.")
        if not 1 <= llm_trigger_severity <= 5:
            raise ValueError("LLM_TRIGGER_SEVERITY must be between 1 and 5.")
        if critical_backup_threshold_hours <= 0:
            raise ValueError("CRITICAL_BACKUP_THRESHOLD_HOURS must be positive.")
        if alert_cache_ttl_seconds < 0:
            raise ValueError("ALERT_CACHE_TTL_SECONDS must not be negative.")
        if monitor_interval_seconds < 60:
            raise ValueError("MONITOR_INTERVAL_SECONDS must be at least 60.")
        if log_level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("LOG_LEVEL must be a standard logging level name.")

        return cls(
            database_url=database_url,
            llm_provider=llm_provider,
            gemini_api_key=gemini_api_key,
            gemini_model=gemini_model,
            ollama_model=ollama_model,
            ollama_base_url=ollama_base_url,
            llm_trigger_severity=llm_trigger_severity,
            critical_backup_threshold_hours=critical_backup_threshold_hours,
            alert_cache_ttl_seconds=alert_cache_ttl_seconds,
            weather_user_agent=weather_user_agent,
            monitor_interval_seconds=monitor_interval_seconds,
            log_level=log_level,
        )
