import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool


DB_PATH = os.getenv("TODO_DB_PATH", os.path.join(os.getcwd(), "todos.sqlite3"))
Base = declarative_base()


def create_db_engine(path: str | None = None):
    """Open a SQLite engine. ``:memory:`` shares one connection across threads."""
    path = path or DB_PATH
    if path == ":memory:":
        return create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(f"sqlite:///{path}", connect_args={"check_same_thread": False})


def create_session_factory(engine):
    # rows handed back by the repository must stay readable after commit
    return sessionmaker(autoflush=False, expire_on_commit=False, bind=engine)
