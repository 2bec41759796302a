from __future__ import annotations

import argparse
import os
import sqlite3
from typing import Iterable

SERIAL_TABLES = ("authors", "posts", "post_images")


def _parse_args() -> argparse.Namespace:
    data_dir = os.environ.get("RT_DATA_DIR", "/data")
    parser = argparse.ArgumentParser(description="Copy the Rusty Tablet state DB into PostgreSQL")
    parser.add_argument(
        "--sqlite",
        default=os.environ.get("RT_SQLITE_PATH", os.path.join(data_dir, "state.sqlite3")),
    )
    parser.add_argument("--pg-url", default=os.environ.get("RT_DB_URL", ""))
    return parser.parse_args()


def _list_tables(conn: sqlite3.Connection) -> list[str]:
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
    )
    return [row[0] for row in cursor.fetchall()]


def _table_columns(conn: sqlite3.Connection, table: str) -> list[str]:
    return [row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()]


def _chunked(rows: Iterable[tuple], size: int = 500) -> Iterable[list[tuple]]:
    batch: list[tuple] = []
    for row in rows:
        batch.append(row)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


def _order_tables(tables: list[str]) -> list[str]:
    # parents before children so foreign keys resolve
    priority = {"authors": 0, "posts": 1, "post_images": 2, "pulse_queue": 0, "pulse_logs": 1}
    return sorted(tables, key=lambda name: (priority.get(name, 0), name))


def main() -> int:
    args = _parse_args()
    if not args.pg_url:
        raise SystemExit("RT_DB_URL is required for Postgres migration")

    try:
        import psycopg
    except ImportError as exc:
        raise SystemExit("psycopg is required for Postgres migration") from exc

    from rustytablet.db import DBConn
    from rustytablet.migrations_pg import apply_migrations_pg

    sqlite_conn = sqlite3.connect(args.sqlite)
    pg_conn = psycopg.connect(args.pg_url)
    pg_conn.autocommit = False
    apply_migrations_pg(DBConn(pg_conn, "postgres"))

    tables = _order_tables(_list_tables(sqlite_conn))
    skip = {"schema_migrations"}
    for table in tables:
        if table in skip:
            continue
        columns = _table_columns(sqlite_conn, table)
        if not columns:
            continue
        cols_sql = ", ".join(columns)
        placeholders = ", ".join(["%s"] * len(columns))
        insert_sql = (
            f"INSERT INTO {table} ({cols_sql}) VALUES ({placeholders}) "
            "ON CONFLICT DO NOTHING"
        )
        cursor = sqlite_conn.execute(f"SELECT {cols_sql} FROM {table}")
        copied = 0
        for batch in _chunked(cursor.fetchall(), 500):
            with pg_conn.cursor() as pg_cursor:
                pg_cursor.executemany(insert_sql, batch)
            pg_conn.commit()
            copied += len(batch)
        print(f"{table}: {copied} rows")

    for table in SERIAL_TABLES:
        if table not in tables:
            continue
        pg_conn.execute(
            f"SELECT setval(pg_get_serial_sequence('{table}', 'id'), "
            f"COALESCE((SELECT MAX(id) FROM {table}), 0) + 1, false)"
        )
    pg_conn.commit()

    sqlite_conn.close()
    pg_conn.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
