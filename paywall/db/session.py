"""Database session management"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from paywall.core.config import settings
from paywall.models.base import Base


def _connect_args(url: str) -> dict:
    """Bounded timeouts so a stalled database surfaces as an error instead of hanging"""
    if url.startswith("postgresql"):
        return {
            "connect_timeout": settings.DB_CONNECT_TIMEOUT,
            "options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}",
        }
    if url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": settings.DB_CONNECT_TIMEOUT}
    return {}


engine_options = {
    "pool_pre_ping": True,
    "pool_recycle": 3600,
    "connect_args": _connect_args(settings.DATABASE_URL),
}
if not settings.DATABASE_URL.startswith("sqlite"):
    engine_options["pool_timeout"] = settings.DB_POOL_TIMEOUT

# Create engine
engine = create_engine(settings.DATABASE_URL, **engine_options)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Dependency for FastAPI endpoints"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Initialize database (create all tables)"""
    Base.metadata.create_all(bind=engine)
