# models.py
import enum
from sqlalchemy import Column, Integer, String, Text, Boolean, ForeignKey
from db import Base


class TodoStatus(enum.IntEnum):
    PENDING = 0
    COMPLETED = 1


class Todo(Base):
    __tablename__ = "todos"

    id          = Column(Integer, primary_key=True, autoincrement=True)
    parent_id   = Column(Integer, ForeignKey("todos.id"), nullable=True)
    title       = Column(Text, nullable=False)
    status      = Column(Integer, default=int(TodoStatus.PENDING))
    position    = Column(Integer, nullable=False, default=0)     # 1..n within (parent_id, target_date)
    target_date = Column(Integer, nullable=False)                # yyyymmdd date key

    # ISO-8601 text, UTC with a trailing 'Z'
    created_at  = Column(String, nullable=False)
    updated_at  = Column(String, nullable=False)
    is_deleted  = Column(Boolean, default=False)

    @property
    def todo_status(self) -> TodoStatus:
        return TodoStatus(self.status or 0)

    def to_dict(self):
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "title": self.title,
            "status": int(self.todo_status),
            "position": self.position,
            "target_date": self.target_date,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "is_deleted": bool(self.is_deleted),
        }

    def __repr__(self) -> str:  # pragma: no cover - convenience only
        return (f"Todo(id={self.id}, parent_id={self.parent_id}, "
                f"position={self.position}, target_date={self.target_date})")


class DailyStat(Base):
    """Per-day cache of live todo counts. A missing row means zero todos."""
    __tablename__ = "daily_stats"

    date            = Column(Integer, primary_key=True, autoincrement=False)
    total_count     = Column(Integer, nullable=False, default=0)
    completed_count = Column(Integer, nullable=False, default=0)

    def to_dict(self):
        return {"date": self.date, "total": self.total_count, "completed": self.completed_count}
