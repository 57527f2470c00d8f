"""Todo persistence and ordering.

Every live todo belongs to a sibling group keyed by ``(parent_id,
target_date)`` and the positions inside a group are always exactly
``1..n``. Each public mutation runs in one transaction, and every day
whose membership or completion could change gets its ``DailyStat``
recomputed inside that same transaction.
"""
from collections import defaultdict
from collections.abc import Mapping
import logging

from sqlalchemy import select, update, func

from dates import now_iso
from errors import ConsistencyRisk, NotFound, ValidationFailure
from models import DailyStat, Todo, TodoStatus

logger = logging.getLogger(__name__)

_live = Todo.is_deleted.is_(False)


def _group(parent_id, target_date):
    parent_clause = Todo.parent_id.is_(None) if parent_id is None else Todo.parent_id == parent_id
    return (parent_clause, Todo.target_date == target_date, _live)


def _clean_title(title) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise ValidationFailure("title must not be blank")
    return cleaned


def _whole_number(value):
    """The value as an int if it is one (1.0 counts, True and 1.5 do not), else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _as_pair(item):
    try:
        if isinstance(item, Mapping):
            todo_id, position = item["id"], item["position"]
        else:
            todo_id, position = item
    except (KeyError, TypeError, ValueError):
        raise ValidationFailure("each reorder entry needs an id and a position") from None

    if _whole_number(todo_id) is None:
        raise ValidationFailure(f"invalid id: {todo_id!r}")
    if _whole_number(position) is None:
        raise ConsistencyRisk(f"position must be a whole number, got {position!r}")
    return _whole_number(todo_id), _whole_number(position)


class TodoRepository:
    def __init__(self, session_factory):
        self._sessions = session_factory

    # ---------- reads ----------
    def get(self, todo_id: int) -> Todo:
        with self._sessions() as db:
            return self._get_live(db, todo_id)

    def list_by_date(self, date_key: int) -> list[Todo]:
        """Live todos for one day: top-level first, then children, each by position."""
        stmt = (
            select(Todo)
            .where(Todo.target_date == date_key, _live)
            .order_by(Todo.parent_id.is_not(None), Todo.position, Todo.id)
        )
        with self._sessions() as db:
            return list(db.execute(stmt).scalars())

    def get_yearly_stats(self, window_start: int, window_end: int) -> list[DailyStat]:
        stmt = (
            select(DailyStat)
            .where(DailyStat.date >= window_start, DailyStat.date <= window_end)
            .order_by(DailyStat.date)
        )
        with self._sessions() as db:
            return list(db.execute(stmt).scalars())

    # ---------- writes ----------
    def create(self, title: str, date_key: int, parent_id: int | None = None) -> Todo:
        title = _clean_title(title)
        with self._sessions.begin() as db:
            if parent_id is not None:
                parent = self._get_live(db, parent_id)
                if parent.parent_id is not None:
                    raise ValidationFailure("todos nest only one level deep")
                if parent.target_date != date_key:
                    raise ValidationFailure("a child must share its parent's date")

            now = now_iso()
            todo = Todo(
                parent_id=parent_id,
                title=title,
                status=int(TodoStatus.PENDING),
                position=self._next_position(db, parent_id, date_key),
                target_date=date_key,
                created_at=now,
                updated_at=now,
                is_deleted=False,
            )
            db.add(todo)
            db.flush()
            self._recompute(db, date_key)
        logger.debug("created todo %s at (%s, %s)#%s", todo.id, parent_id, date_key, todo.position)
        return todo

    def update(self, todo_id: int, title: str) -> Todo:
        title = _clean_title(title)
        with self._sessions.begin() as db:
            todo = self._get_live(db, todo_id)
            todo.title = title
            todo.updated_at = now_iso()
        return todo

    def update_status(self, todo_id: int, status) -> Todo:
        try:
            status = TodoStatus(int(status))
        except (TypeError, ValueError):
            raise ValidationFailure(f"unknown status: {status!r}") from None

        with self._sessions.begin() as db:
            todo = self._get_live(db, todo_id)
            todo.status = int(status)
            todo.updated_at = now_iso()
            self._recompute(db, todo.target_date)
        return todo

    def soft_delete(self, todo_id: int) -> bool:
        """Mark a todo deleted and close up its group.

        Children are promoted into the vacated slot, in their existing order,
        and later siblings shift down to make room. Deleting a missing or
        already-deleted todo is a no-op and returns False.
        """
        with self._sessions.begin() as db:
            todo = db.execute(select(Todo).where(Todo.id == todo_id, _live)).scalar_one_or_none()
            if todo is None:
                logger.debug("soft_delete(%s): nothing to delete", todo_id)
                return False

            children = self._children(db, todo.id)
            now = now_iso()

            todo.is_deleted = True
            todo.updated_at = now
            db.flush()
            self._recompute(db, todo.target_date)

            if children:
                self._shift(db, todo.parent_id, todo.target_date, todo.position, len(children) - 1, now)
                for offset, child in enumerate(children):
                    child.parent_id = todo.parent_id
                    child.position = todo.position + offset
                    child.updated_at = now
            else:
                self._shift(db, todo.parent_id, todo.target_date, todo.position, -1, now)

        logger.debug("soft-deleted todo %s, promoted %d children", todo_id, len(children))
        return True

    def reorder(self, updates) -> list[Todo]:
        """Apply a complete new ordering for one or more sibling groups.

        ``updates`` is an iterable of ``{"id", "position"}`` mappings or
        ``(id, position)`` pairs. Every live member of each touched group must
        be listed and the positions must be exactly 1..n; otherwise nothing
        is written and ConsistencyRisk is raised.
        """
        pairs = [_as_pair(item) for item in updates]
        if not pairs:
            return []
        ids = [todo_id for todo_id, _ in pairs]
        if len(set(ids)) != len(ids):
            raise ConsistencyRisk("reorder lists the same todo more than once")

        with self._sessions.begin() as db:
            todos = {
                t.id: t for t in db.execute(select(Todo).where(Todo.id.in_(ids), _live)).scalars()
            }
            for todo_id in ids:
                if todo_id not in todos:
                    raise NotFound(todo_id)

            proposed = defaultdict(dict)
            for todo_id, position in pairs:
                todo = todos[todo_id]
                proposed[(todo.parent_id, todo.target_date)][todo_id] = position

            for (parent_id, target_date), assignment in proposed.items():
                members = set(db.execute(select(Todo.id).where(*_group(parent_id, target_date))).scalars())
                if set(assignment) != members:
                    raise ConsistencyRisk(
                        f"reorder of group ({parent_id}, {target_date}) must list all {len(members)} todos"
                    )
                if sorted(assignment.values()) != list(range(1, len(members) + 1)):
                    raise ConsistencyRisk(
                        f"positions for group ({parent_id}, {target_date}) must be 1..{len(members)}"
                    )

            now = now_iso()
            for todo_id, position in pairs:
                todos[todo_id].position = position
                todos[todo_id].updated_at = now

        logger.debug("reordered %d todos across %d groups", len(pairs), len(proposed))
        return sorted(todos.values(), key=lambda t: (t.parent_id is not None, t.parent_id or 0, t.position))

    def update_parent(self, todo_id: int, new_parent_id: int | None) -> Todo:
        """Move a todo under another top-level todo, or to top level with None.

        The todo lands at the end of its new group and the gap it leaves
        behind is closed.
        """
        with self._sessions.begin() as db:
            todo = self._get_live(db, todo_id)
            if todo.parent_id == new_parent_id:
                return todo

            if new_parent_id is not None:
                if new_parent_id == todo.id:
                    raise ValidationFailure("a todo cannot be its own parent")
                parent = self._get_live(db, new_parent_id)
                if parent.parent_id is not None:
                    raise ValidationFailure("todos nest only one level deep")
                if parent.target_date != todo.target_date:
                    raise ValidationFailure("a child must share its parent's date")
                if self._children(db, todo.id):
                    raise ValidationFailure("a todo with children cannot become a child")

            old_parent_id, old_position = todo.parent_id, todo.position
            now = now_iso()
            todo.position = self._next_position(db, new_parent_id, todo.target_date)
            todo.parent_id = new_parent_id
            todo.updated_at = now
            db.flush()
            self._shift(db, old_parent_id, todo.target_date, old_position, -1, now)

        logger.debug("moved todo %s from parent %s to %s", todo_id, old_parent_id, new_parent_id)
        return todo

    def update_date(self, todo_id: int, new_date: int) -> Todo:
        """Reschedule a todo to another day, appending it to that day's top level.

        Children travel with their parent. A child moved on its own leaves
        its parent behind and becomes top-level on the new day.
        """
        with self._sessions.begin() as db:
            todo = self._get_live(db, todo_id)
            old_date = todo.target_date
            if old_date == new_date:
                return todo

            old_parent_id, old_position = todo.parent_id, todo.position
            children = self._children(db, todo.id)
            now = now_iso()

            todo.position = self._next_position(db, None, new_date)
            todo.parent_id = None
            todo.target_date = new_date
            todo.updated_at = now
            for child in children:
                child.target_date = new_date
                child.updated_at = now
            db.flush()

            self._shift(db, old_parent_id, old_date, old_position, -1, now)
            self._recompute(db, old_date)
            self._recompute(db, new_date)

        logger.debug("moved todo %s (+%d children) from %s to %s", todo_id, len(children), old_date, new_date)
        return todo

    def recompute_daily_stat(self, date_key: int) -> DailyStat | None:
        with self._sessions.begin() as db:
            return self._recompute(db, date_key)

    # ---------- helpers ----------
    @staticmethod
    def _get_live(db, todo_id) -> Todo:
        todo = db.execute(select(Todo).where(Todo.id == todo_id, _live)).scalar_one_or_none()
        if todo is None:
            raise NotFound(todo_id)
        return todo

    @staticmethod
    def _children(db, parent_id) -> list[Todo]:
        stmt = select(Todo).where(Todo.parent_id == parent_id, _live).order_by(Todo.position, Todo.id)
        return list(db.execute(stmt).scalars())

    @staticmethod
    def _next_position(db, parent_id, target_date) -> int:
        stmt = select(func.coalesce(func.max(Todo.position), 0)).where(*_group(parent_id, target_date))
        return db.execute(stmt).scalar() + 1

    @staticmethod
    def _shift(db, parent_id, target_date, after: int, delta: int, now: str) -> None:
        """Move every sibling positioned after ``after`` by ``delta``."""
        if delta == 0:
            return
        db.execute(
            update(Todo)
            .where(*_group(parent_id, target_date), Todo.position > after)
            .values(position=Todo.position + delta, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )

    @staticmethod
    def _recompute(db, date_key) -> DailyStat | None:
        """Bring the day's DailyStat in line with its live todos; drop it at zero."""
        db.flush()
        total = db.execute(
            select(func.count(Todo.id)).where(Todo.target_date == date_key, _live)
        ).scalar()
        completed = db.execute(
            select(func.count(Todo.id)).where(
                Todo.target_date == date_key, _live, Todo.status == int(TodoStatus.COMPLETED)
            )
        ).scalar()

        stat = db.get(DailyStat, date_key)
        if total == 0:
            if stat is not None:
                db.delete(stat)
            return None
        if stat is None:
            stat = DailyStat(date=date_key)
            db.add(stat)
        stat.total_count = total
        stat.completed_count = completed
        return stat
