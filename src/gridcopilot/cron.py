"""Monitoring loop: re-evaluate every active outage event on an interval."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from dotenv import load_dotenv

from .config import Settings
from .engine import AdvisoryEngine
from .health import run_startup_health
from .ingestion import TTLCache, ingest_weather
from .main import build_reasoner, configure_logging
from .schemas import AdvisoryResult
from .scoring import compute_all_weather_risks
from .storage import Storage

logger = logging.getLogger(__name__)


def summarize(result: AdvisoryResult) -> str:
    return (
        f"[EVENT] {result.event_id} | severity={result.severity} ({result.severity_label}) | "
        f"weather={result.weather_risk.tier}:{result.weather_risk.score} | "
        f"etr={result.policy.etr_band.band} | escalate={'yes' if result.requires_escalation else 'no'}"
    )


async def run_once(
    settings: Settings,
    storage: Storage,
    engine: AdvisoryEngine,
    cache: TTLCache,
    dry_run: bool = False,
) -> int:
    """Execute one monitoring cycle; returns how many events were evaluated."""
    events = await storage.fetch_events(active_only=True)
    alerts, wind = await ingest_weather(cache=cache, user_agent=settings.weather_user_agent)

    if not dry_run:
        await storage.save_weather_risks(compute_all_weather_risks(events, alerts, wind))

    results = await asyncio.gather(*(engine.evaluate_event(event, alerts, wind) for event in events))
    for result in results:
        print(summarize(result))
        if not dry_run:
            await storage.log_advisory(result)

    escalations = sum(1 for result in results if result.requires_escalation)
    print(f"[MONITOR] evaluated={len(results)} escalations={escalations} alerts={len(alerts)}")
    return len(results)


async def monitoring_loop(settings: Settings, once: bool = False, dry_run: bool = False) -> int:
    """Continuously run monitoring cycles at the configured interval."""
    storage = Storage(settings.database_url)
    engine = AdvisoryEngine(
        storage=storage,
        reasoner=build_reasoner(settings),
        llm_trigger_severity=settings.llm_trigger_severity,
        backup_threshold_hours=settings.critical_backup_threshold_hours,
    )
    cache = TTLCache(settings.alert_cache_ttl_seconds)

    print(f"Grid copilot monitoring active | interval={settings.monitor_interval_seconds}s")
    print(f"[CONFIG] {settings.redacted_snapshot()}")

    await storage.connect()
    try:
        if once:
            await run_once(settings, storage, engine, cache, dry_run=dry_run)
            return 0

        while True:
            try:
                await run_once(settings, storage, engine, cache, dry_run=dry_run)
                await asyncio.sleep(settings.monitor_interval_seconds)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.exception("Monitoring cycle failed")
                print(f"[LOOP_ERROR] {exc}")
                await asyncio.sleep(300)
    finally:
        await storage.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Grid copilot monitoring runner")
    parser.add_argument("--once", action="store_true", help="Run one cycle and exit")
    parser.add_argument("--dry-run", action="store_true", help="Do not write snapshots or advisory logs")
    return parser


def main() -> None:
    args = build_parser().parse_args()
    load_dotenv(Path(__file__).resolve().parents[2] / ".env")
    try:
        settings = Settings.from_env()
        configure_logging(settings.log_level)
        asyncio.run(run_startup_health(settings))
    except (ValueError, RuntimeError) as exc:
        print(f"[ERROR] {exc}")
        raise SystemExit(1) from exc

    raise SystemExit(asyncio.run(monitoring_loop(settings, once=args.once, dry_run=args.dry_run)))


if __name__ == "__main__":
    main()
