"""CLI entrypoint: evaluate one outage event and print the operator update."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from .actions import export_filename, render_operator_update
from .config import Settings
from .engine import AdvisoryEngine
from .health import run_startup_health
from .ingestion import TTLCache, ingest_weather
from .reasoning import AdvisoryReasoner, ReasoningError
from .schemas import OutageEvent
from .storage import Storage


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_reasoner(settings: Settings) -> AdvisoryReasoner | None:
    if settings.llm_provider == "none":
        return None
    return AdvisoryReasoner(
        llm_provider=settings.llm_provider,
        api_key=settings.gemini_api_key,
        model_name=settings.gemini_model,
        ollama_model=settings.ollama_model,
        ollama_base_url=settings.ollama_base_url,
    )


def load_event_file(path: Path) -> OutageEvent:
    return OutageEvent.model_validate(json.loads(path.read_text(encoding="utf-8")))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Outage decision-support copilot")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--event-id", help="Evaluate an event stored in PostgreSQL")
    source.add_argument("--event-file", type=Path, help="Evaluate an event from a JSON file")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Skip database reads/writes and preflight checks",
    )
    parser.add_argument("--no-weather", action="store_true", help="Skip NWS and wind collectors")
    parser.add_argument("--export", type=Path, help="Directory to write the operator update file")
    return parser


async def run(args: argparse.Namespace) -> int:
    load_dotenv(Path(__file__).resolve().parents[2] / ".env")
    storage: Storage | None = None

    try:
        settings = Settings.from_env()
        configure_logging(settings.log_level)
        if args.dry_run and args.event_id:
            raise ValueError("--event-id needs the database; use --event-file with --dry-run.")
        if not args.dry_run:
            await run_startup_health(settings)

        storage = Storage(settings.database_url)
        if not args.dry_run:
            await storage.connect()

        engine = AdvisoryEngine(
            storage=storage,
            reasoner=build_reasoner(settings),
            llm_trigger_severity=settings.llm_trigger_severity,
            backup_threshold_hours=settings.critical_backup_threshold_hours,
        )

        if args.event_file:
            event = load_event_file(args.event_file)
        else:
            event = await storage.get_event(args.event_id)
            if event is None:
                raise ValueError(f"Event not found: {args.event_id}")

        alerts, wind = [], []
        if not args.no_weather:
            alerts, wind = await ingest_weather(
                cache=TTLCache(settings.alert_cache_ttl_seconds),
                user_agent=settings.weather_user_agent,
            )
        print(f"[ADVISORY] event={event.id} alerts={len(alerts)} wind_points={len(wind)}")

        result = await engine.evaluate_event(event, alerts, wind)
        await storage.log_advisory(result)

        document = render_operator_update(
            result.contract,
            event_name=event.name or event.id,
            timestamp=result.evaluated_at,
            model_engine=result.model_engine,
        )
        print(result.model_dump_json(indent=2))
        print("\n--- Operator Update ---\n")
        print(document)

        if args.export:
            args.export.mkdir(parents=True, exist_ok=True)
            target = args.export / export_filename(event.name or event.id, result.evaluated_at)
            target.write_text(document, encoding="utf-8")
            print(f"[ADVISORY] exported {target}")
        return 0
    except (ReasoningError, ValueError, RuntimeError, ValidationError, OSError) as exc:
        print(f"[ERROR] {exc}")
        return 1
    finally:
        if storage is not None:
            await storage.close()


def main() -> None:
    args = build_parser().parse_args()
    raise SystemExit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
