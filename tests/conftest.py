import pytest
from sqlalchemy import select, text

from db import create_db_engine, create_session_factory
from models import DailyStat, Todo
from repository import TodoRepository
from schema import ensure_schema

DAY = 20261019
NEXT_DAY = 20261020


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(str(tmp_path / "todos.sqlite3"))
    yield engine
    engine.dispose()


@pytest.fixture
def sessions(engine):
    ensure_schema(engine)
    return create_session_factory(engine)


@pytest.fixture
def repo(sessions):
    return TodoRepository(sessions)


@pytest.fixture
def legacy_engine(engine):
    """Engine plus a helper that creates a todos table in an older shape."""
    def make(columns_sql, rows):
        with engine.begin() as conn:
            conn.execute(text(f"CREATE TABLE todos ({columns_sql})"))
            for row in rows:
                cols = ", ".join(row)
                params = ", ".join(f":{c}" for c in row)
                conn.execute(text(f"INSERT INTO todos ({cols}) VALUES ({params})"), row)
        return engine
    return make


def group_positions(sessions, parent_id, target_date):
    """Positions of live todos in one group, as {title: position}."""
    parent = Todo.parent_id.is_(None) if parent_id is None else Todo.parent_id == parent_id
    stmt = (
        select(Todo)
        .where(parent, Todo.target_date == target_date, Todo.is_deleted.is_(False))
        .order_by(Todo.position)
    )
    with sessions() as db:
        return {t.title: t.position for t in db.execute(stmt).scalars()}


def assert_dense(sessions):
    with sessions() as db:
        rows = db.execute(select(Todo).where(Todo.is_deleted.is_(False))).scalars().all()
    groups = {}
    for t in rows:
        groups.setdefault((t.parent_id, t.target_date), []).append(t.position)
    for key, positions in groups.items():
        assert sorted(positions) == list(range(1, len(positions) + 1)), key


def assert_stats_consistent(sessions):
    with sessions() as db:
        rows = db.execute(select(Todo).where(Todo.is_deleted.is_(False))).scalars().all()
        stats = {s.date: (s.total_count, s.completed_count) for s in db.execute(select(DailyStat)).scalars()}
    expected = {}
    for t in rows:
        total, done = expected.get(t.target_date, (0, 0))
        expected[t.target_date] = (total + 1, done + (1 if t.status == 1 else 0))
    assert stats == expected
