"""Schema bootstrap: jobs table, index and the server-side ``lock_head`` routine."""

import logging
from typing import Any

import psycopg
from psycopg import sql

from .database import Database
from .errors import StoreError

logger = logging.getLogger(__name__)

LOCK_HEAD_FUNCTION = "lock_head"

_LOCK_HEAD_SQL = """
CREATE OR REPLACE FUNCTION {function}(window_size integer DEFAULT 10)
RETURNS SETOF {table} AS $$
DECLARE
  unlocked integer;
  relative_top integer;
  job_count integer;
BEGIN
  SELECT count(*) INTO job_count FROM {table} WHERE locked_at IS NULL;

  IF job_count < window_size THEN
    relative_top := 0;
  ELSE
    relative_top := floor(random() * window_size)::integer;
  END IF;

  SELECT id INTO unlocked
    FROM {table}
    WHERE locked_at IS NULL
    ORDER BY id ASC
    LIMIT 1
    OFFSET relative_top
    FOR UPDATE;

  RETURN QUERY UPDATE {table}
    SET locked_at = CURRENT_TIMESTAMP
    WHERE id = unlocked AND locked_at IS NULL
    RETURNING *;
END;
$$ LANGUAGE plpgsql
"""


def lock_head_function_name(table: str) -> str:
    """Routine name for ``table``; the default table keeps the bare name."""
    if table == "jobs":
        return LOCK_HEAD_FUNCTION
    return f"{LOCK_HEAD_FUNCTION}_{table}"


def silence_warnings(conn: psycopg.Connection[Any]) -> None:
    conn.execute("SET client_min_messages TO 'warning'")


def drop_table(conn: psycopg.Connection[Any], table: str = "jobs") -> None:
    conn.execute(sql.SQL("DROP TABLE IF EXISTS {} CASCADE").format(sql.Identifier(table)))


def create_table(conn: psycopg.Connection[Any], table: str = "jobs") -> None:
    conn.execute(
        sql.SQL(
            "CREATE TABLE {table} ("
            "id SERIAL PRIMARY KEY, "
            "details text, "
            "locked_at timestamptz"
            ")"
        ).format(table=sql.Identifier(table))
    )
    conn.execute(
        sql.SQL("CREATE INDEX {index} ON {table} (id)").format(
            index=sql.Identifier(f"{table}_id_idx"),
            table=sql.Identifier(table),
        )
    )


def load_functions(conn: psycopg.Connection[Any], table: str = "jobs") -> None:
    conn.execute(
        sql.SQL(_LOCK_HEAD_SQL).format(
            function=sql.Identifier(lock_head_function_name(table)),
            table=sql.Identifier(table),
        )
    )


def init_db(db: Database, table: str = "jobs") -> None:
    """Recreate the jobs table and routine from scratch (drops existing jobs)."""
    try:
        with db.transaction() as conn:
            silence_warnings(conn)
            drop_table(conn, table)
            create_table(conn, table)
            load_functions(conn, table)
    except psycopg.Error as e:
        raise StoreError(f"Schema bootstrap failed: {e}", operation="init_db") from e
    logger.info("Initialized table %s with %s()", table, lock_head_function_name(table))
