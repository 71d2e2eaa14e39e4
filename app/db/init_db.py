"""
Create tables directly from the models (local development and tests).

Production schemas are managed by Alembic, see app.db.migrate.
"""
from app.db.base import Base
import app.db.models  # noqa: F401  registers all models on Base.metadata


def init_db(bind=None):
    if bind is None:
        from app.db.session import engine
        bind = engine
    Base.metadata.create_all(bind=bind)


if __name__ == "__main__":
    init_db()
