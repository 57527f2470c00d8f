from db import create_db_engine, create_session_factory
from dates import today_key
from models import Todo
from repository import TodoRepository
from schema import ensure_schema


def seed(engine=None):
    engine = engine or create_db_engine()
    ensure_schema(engine)
    sessions = create_session_factory(engine)

    with sessions() as db:
        if db.query(Todo).count():
            return False

    repo = TodoRepository(sessions)
    today = today_key()
    errands = repo.create("Errands", today)
    repo.create("Buy milk", today, errands.id)
    repo.create("Post the letter", today, errands.id)
    repo.create("Water the plants", today)
    return True


if __name__ == "__main__":
    seed()
