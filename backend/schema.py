"""Forward-only schema migrations for the todo store.

Safe to run on every start. Each step checks the live table shape first,
so a run that died half way resumes from whatever is still missing.
"""
from collections import defaultdict
import logging

from sqlalchemy import text

from db import Base
from dates import key_from_timestamp
import models  # noqa: F401  (registers tables on Base.metadata)

logger = logging.getLogger(__name__)

_BY_ID = "id"
_BY_POSITION = "position, id"


def table_columns(conn, table: str) -> set[str]:
    return {row[1] for row in conn.execute(text(f"PRAGMA table_info({table})"))}


def ensure_schema(engine):
    Base.metadata.create_all(bind=engine)

    with engine.begin() as conn:
        cols = table_columns(conn, "todos")

        if "status" not in cols:
            logger.info("adding todos.status")
            conn.execute(text("ALTER TABLE todos ADD COLUMN status INTEGER DEFAULT 0"))

        if "target_date" not in cols:
            logger.info("adding todos.target_date")
            conn.execute(text("ALTER TABLE todos ADD COLUMN target_date INTEGER NOT NULL DEFAULT 0"))
        repaired = backfill_target_dates(conn)

        if "position" not in cols:
            logger.info("adding todos.position")
            conn.execute(text("ALTER TABLE todos ADD COLUMN position INTEGER NOT NULL DEFAULT 0"))
            renumber_positions(conn, _BY_ID)
        elif repaired:
            # groups were split by date; keep the existing relative order
            renumber_positions(conn, _BY_POSITION)

        conn.execute(text(
            "CREATE INDEX IF NOT EXISTS ix_todos_group ON todos (target_date, parent_id, position)"
        ))

        if conn.execute(text("SELECT COUNT(*) FROM daily_stats")).scalar() == 0:
            backfill_daily_stats(conn)


def backfill_target_dates(conn) -> int:
    """Derive target_date from created_at for rows still holding the 0 default."""
    rows = conn.execute(text("SELECT id, created_at FROM todos WHERE target_date = 0")).fetchall()
    for id_, created_at in rows:
        conn.execute(
            text("UPDATE todos SET target_date = :d WHERE id = :id"),
            {"d": key_from_timestamp(created_at), "id": id_},
        )
    if rows:
        # a child lives on its parent's day
        conn.execute(text(
            "UPDATE todos SET target_date = ("
            "  SELECT p.target_date FROM todos AS p WHERE p.id = todos.parent_id"
            ") WHERE parent_id IS NOT NULL"
            "  AND EXISTS (SELECT 1 FROM todos AS p WHERE p.id = todos.parent_id)"
        ))
        logger.info("backfilled target_date for %d todos", len(rows))
    return len(rows)


def renumber_positions(conn, order_by: str) -> None:
    """Assign dense 1..n positions per (parent_id, target_date) group of live rows."""
    rows = conn.execute(text(
        f"SELECT id, parent_id, target_date FROM todos WHERE is_deleted = 0 ORDER BY {order_by}"
    )).fetchall()
    counters = defaultdict(int)
    for id_, parent_id, target_date in rows:
        counters[(parent_id, target_date)] += 1
        conn.execute(
            text("UPDATE todos SET position = :p WHERE id = :id"),
            {"p": counters[(parent_id, target_date)], "id": id_},
        )
    logger.info("renumbered positions for %d todos in %d groups", len(rows), len(counters))


def backfill_daily_stats(conn) -> None:
    result = conn.execute(text(
        "INSERT INTO daily_stats (date, total_count, completed_count) "
        "SELECT target_date, COUNT(*), SUM(CASE WHEN status = 1 THEN 1 ELSE 0 END) "
        "FROM todos WHERE is_deleted = 0 GROUP BY target_date"
    ))
    if result.rowcount:
        logger.info("backfilled daily_stats for %d days", result.rowcount)
