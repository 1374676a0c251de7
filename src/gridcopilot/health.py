"""Startup preflight checks for the advisory runtime."""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

import aiohttp
import asyncpg
from dotenv import load_dotenv

from .config import Settings
from .ingestion import NWS_ALERTS_URL


def validate_required_keys(settings: Settings, require_database: bool = True) -> None:
    """Ensure values needed by the configured runtime are present and not placeholders."""
    missing: list[str] = []
    if require_database and not settings.database_url:
        missing.append("DATABASE_URL")
    if settings.llm_provider == "gemini" and not settings.gemini_api_key:
        missing.append("GEMINI_API_KEY")
    if missing:
        raise RuntimeError(f"Missing required environment values: {', '.join(missing)}")

    placeholder_keys: list[str] = []
    if settings.llm_provider == "gemini" and settings.gemini_api_key == "replace_me":
        placeholder_keys.append("GEMINI_API_KEY")
    if "://user:password@" in settings.database_url:
        placeholder_keys.append("DATABASE_URL")
    if placeholder_keys:
        raise RuntimeError(
            "Replace placeholder environment values before startup: "
            f"{', '.join(placeholder_keys)}"
        )


async def _check_database(database_url: str) -> None:
    try:
        conn = await asyncpg.connect(database_url, timeout=8)
        try:
            await conn.execute("SELECT 1")
        finally:
            await conn.close()
    except Exception as exc:
        raise RuntimeError(
            "Database check failed. Verify PostgreSQL is running and DATABASE_URL has valid "
            f"credentials: {exc}"
        ) from exc


async def _check_nws(user_agent: str) -> None:
    timeout = aiohttp.ClientTimeout(total=10)
    headers = {"User-Agent": user_agent, "Accept": "application/geo+json"}
    async with aiohttp.ClientSession(timeout=timeout, headers=headers) as session:
        async with session.get(NWS_ALERTS_URL, params={"limit": "1"}) as resp:
            if resp.status != 200:
                body = await resp.text()
                raise RuntimeError(f"NWS alerts reachability check failed ({resp.status}): {body[:120]}")


async def _check_gemini(api_key: str) -> None:
    url = f"https://generativelanguage.googleapis.com/v1beta/models?key={api_key}"
    timeout = aiohttp.ClientTimeout(total=10)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        async with session.get(url) as resp:
            if resp.status != 200:
                body = await resp.text()
                raise RuntimeError(f"Gemini API reachability check failed ({resp.status}): {body[:120]}")


async def _check_ollama(base_url: str, model_name: str) -> None:
    url = f"{base_url.rstrip('/')}/api/tags"
    timeout = aiohttp.ClientTimeout(total=10)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        async with session.get(url) as resp:
            if resp.status != 200:
                body = await resp.text()
                raise RuntimeError(f"Ollama connectivity check failed ({resp.status}): {body[:120]}")

            payload = await resp.json()
            names = {
                str(item.get("name", "")).split(":")[0]
                for item in payload.get("models", [])
                if isinstance(item, dict)
            }
            if model_name and model_name.split(":")[0] not in names:
                raise RuntimeError(
                    f"Ollama model '{model_name}' is not available. Run: ollama pull {model_name}"
                )


async def run_startup_health(settings: Settings, require_database: bool = True) -> None:
    """Run startup checks; raise RuntimeError on the first failure."""
    validate_required_keys(settings, require_database=require_database)
    checks = [_check_nws(settings.weather_user_agent)]
    if require_database:
        checks.append(_check_database(settings.database_url))
    if settings.llm_provider == "gemini":
        checks.append(_check_gemini(settings.gemini_api_key))
    elif settings.llm_provider == "ollama":
        checks.append(_check_ollama(settings.ollama_base_url, settings.ollama_model))

    await asyncio.gather(*checks)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Grid copilot startup health checks")
    parser.add_argument("--no-database", action="store_true", help="Skip the PostgreSQL check")
    return parser


def main() -> None:
    args = build_parser().parse_args()
    load_dotenv(Path(__file__).resolve().parents[2] / ".env")
    try:
        settings = Settings.from_env()
        asyncio.run(run_startup_health(settings, require_database=not args.no_database))
    except (ValueError, RuntimeError) as exc:
        print(f"[ERROR] {exc}")
        raise SystemExit(1) from exc
    print("[HEALTH] startup checks passed")


if __name__ == "__main__":
    main()
