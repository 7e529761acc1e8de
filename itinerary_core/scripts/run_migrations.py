#!/usr/bin/env python
"""
scripts/run_migrations.py
--------------------------
Applies db/migrations/*.sql (lexical order) to the configured Postgres database.

Usage:
    python -m itinerary_core.scripts.run_migrations [--dry-run]

Exit codes:
    0 — migrations applied successfully (or dry-run completed)
    1 — connection failed or SQL error

Environment variables (all have defaults — override as needed):
    POSTGRES_HOST, POSTGRES_PORT, POSTGRES_DB, POSTGRES_USER, POSTGRES_PASSWORD
    (same vars used by PostgresRouteSegmentStore in db/route_store.py)

Notes:
    - All files run in a single transaction so all-or-nothing semantics apply.
    - Re-running is idempotent: every CREATE TABLE / CREATE INDEX statement
      uses IF NOT EXISTS.
"""

from __future__ import annotations

import argparse
import pathlib
import re
import sys

import psycopg2

from itinerary_core import config

MIGRATIONS_DIR = pathlib.Path(__file__).resolve().parent.parent / "db" / "migrations"


def _read_sql_files(directory: pathlib.Path = MIGRATIONS_DIR) -> list[pathlib.Path]:
    files = sorted(directory.glob("*.sql"))
    if not files:
        raise FileNotFoundError(f"No .sql files found in {directory}")
    return files


def _strip_comments(sql: str) -> str:
    """Remove /* ... */ block comments and -- line comments."""
    sql = re.sub(r"/\*.*?\*/", "", sql, flags=re.DOTALL)
    sql = re.sub(r"--[^\n]*", "", sql)
    return sql


def _split_statements(sql: str) -> list[str]:
    """Split on semicolons; return non-empty statements."""
    return [s.strip() for s in sql.split(";") if s.strip()]


def collect_statements(directory: pathlib.Path = MIGRATIONS_DIR) -> list[str]:
    """Every executable statement of every migration file, in file order."""
    statements: list[str] = []
    for path in _read_sql_files(directory):
        statements.extend(_split_statements(_strip_comments(path.read_text(encoding="utf-8"))))
    return statements


def run(dry_run: bool = False) -> None:
    statements = collect_statements()

    print(f"[migrations] Directory  : {MIGRATIONS_DIR}")
    print(f"[migrations] Statements : {len(statements)}")
    print(f"[migrations] Target DB  : {config.POSTGRES_DB} @ "
          f"{config.POSTGRES_HOST}:{config.POSTGRES_PORT}")

    if dry_run:
        print("[migrations] DRY-RUN — no changes applied.")
        for i, stmt in enumerate(statements, 1):
            preview = stmt[:80].replace("\n", " ")
            print(f"  [{i:03d}] {preview}...")
        return

    conn = psycopg2.connect(
        host=config.POSTGRES_HOST,
        port=config.POSTGRES_PORT,
        dbname=config.POSTGRES_DB,
        user=config.POSTGRES_USER,
        password=config.POSTGRES_PASSWORD,
    )
    conn.autocommit = False
    try:
        with conn.cursor() as cur:
            for i, stmt in enumerate(statements, 1):
                try:
                    cur.execute(stmt)
                except psycopg2.Error as exc:
                    print(f"  [✗] Statement {i} failed: {exc.pgerror or exc}")
                    raise
                else:
                    preview = stmt[:60].replace("\n", " ")
                    print(f"  [✓] {preview}")
        conn.commit()
        print(f"[migrations] Done — {len(statements)} statements applied.")
    except Exception:
        conn.rollback()
        print("[migrations] ROLLED BACK due to error.")
        raise
    finally:
        conn.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Apply Postgres schema migrations.")
    parser.add_argument(
        "--dry-run", action="store_true",
        help="Print statements without executing them.",
    )
    args = parser.parse_args()
    try:
        run(dry_run=args.dry_run)
    except Exception as exc:
        print(f"[migrations] ERROR: {exc}", file=sys.stderr)
        sys.exit(1)
