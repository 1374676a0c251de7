"""Database migration runner."""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

import asyncpg
from dotenv import load_dotenv

from .config import Settings

DEFAULT_SQL_PATH = Path(__file__).resolve().parents[2] / "sql" / "init.sql"


def split_sql_statements(sql_text: str) -> list[str]:
    return [stmt.strip() for stmt in sql_text.split(";") if stmt.strip()]


async def run_migrations(database_url: str, sql_path: Path) -> int:
    """Apply every statement in ``sql_path``; returns how many ran."""
    if not database_url:
        raise ValueError("Missing DATABASE_URL in environment.")
    if not sql_path.exists():
        raise FileNotFoundError(f"Migration file not found: {sql_path}")

    statements = split_sql_statements(sql_path.read_text(encoding="utf-8"))

    conn = await asyncpg.connect(database_url)
    try:
        async with conn.transaction():
            for stmt in statements:
                await conn.execute(stmt)
    finally:
        await conn.close()
    return len(statements)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Grid copilot database migration runner")
    parser.add_argument("--sql", default=str(DEFAULT_SQL_PATH), help="Path to SQL migration file")
    return parser


def main() -> None:
    args = build_parser().parse_args()
    load_dotenv(Path(__file__).resolve().parents[2] / ".env")
    try:
        settings = Settings.from_env()
        applied = asyncio.run(run_migrations(settings.database_url, Path(args.sql)))
    except (ValueError, RuntimeError, FileNotFoundError) as exc:
        print(f"[ERROR] {exc}")
        raise SystemExit(1) from exc
    print(f"[MIGRATE] completed statements={applied}")


if __name__ == "__main__":
    main()
