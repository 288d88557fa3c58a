"""
Database initialization script.
"""
import logging
from pathlib import Path

from sqlalchemy.engine import Engine

from dicom_backend.core.config import settings
from dicom_backend.db.schema import upgrade_catalog_schema
from dicom_backend.db.session import engine as default_engine

logger = logging.getLogger(__name__)


def create_storage_root(storage_root: str = settings.STORAGE_ROOT) -> Path:
    """Make sure the blob store directory exists."""
    root = Path(storage_root)
    root.mkdir(parents=True, exist_ok=True)
    logger.info(f"Blob storage root: {root.resolve()}")
    return root


def init_db(engine: Engine = default_engine):
    """Initialize the catalog database and blob storage."""
    logger.info(f"Initializing database at {settings.database_url_safe}...")
    upgrade_catalog_schema(engine)
    create_storage_root()
    logger.info("Database initialization completed")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
