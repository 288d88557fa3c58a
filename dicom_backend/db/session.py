"""
Database session management.
"""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from dicom_backend.core.config import settings


def make_engine(database_url: str, timeout: int = settings.DATABASE_TIMEOUT) -> Engine:
    """Create an engine, with SQLite connections usable from the request threadpool."""
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": timeout}
    else:
        connect_args = {}
    return create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)


# Create SQLAlchemy engine
engine = make_engine(settings.DATABASE_URL)

# Create SessionLocal class
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Dependency to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
