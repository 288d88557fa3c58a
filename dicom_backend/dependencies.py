"""
FastAPI dependencies for dependency injection.
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from dicom_backend.core.config import settings
from dicom_backend.db.session import get_db
from dicom_backend.services.catalog_service import CatalogService
from dicom_backend.services.storage_service import LocalBlobStore


def get_blob_store() -> LocalBlobStore:
    """Blob store rooted at the configured storage directory."""
    return LocalBlobStore(settings.STORAGE_ROOT)


def get_catalog(db: Session = Depends(get_db)) -> CatalogService:
    """Catalog bound to the request's database session."""
    return CatalogService(db)
