from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from app.core.config import get_settings


def build_database_url(database_url: str, service_role_key: str = None):
    """Return the connection URL, using the service-role credential as password when set."""
    url = make_url(database_url)
    if service_role_key and not url.drivername.startswith("sqlite"):
        url = url.set(password=service_role_key)
    return url


def create_db_engine(database_url: str, service_role_key: str = None):
    url = build_database_url(database_url, service_role_key)
    if url.drivername.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


_settings = get_settings()
engine = create_db_engine(_settings.database_url, _settings.service_role_key)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
