"""
Health check API endpoints.
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.orm import Session

from dicom_backend.db.schema import applied_versions
from dicom_backend.db.session import get_db
from dicom_backend.dependencies import get_blob_store, get_catalog
from dicom_backend import __version__ as VERSION
from dicom_backend.schemas.image import ConsistencyReport
from dicom_backend.services.catalog_service import CatalogService
from dicom_backend.services.reconciliation_service import find_inconsistencies
from dicom_backend.services.storage_service import LocalBlobStore

router = APIRouter()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/")
def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": _now(),
        "version": VERSION
    }


@router.get("/detailed")
def detailed_health_check(
    db: Session = Depends(get_db),
    blob_store: LocalBlobStore = Depends(get_blob_store),
):
    """Detailed health check including database and blob storage."""
    health_status = {
        "status": "healthy",
        "timestamp": _now(),
        "version": VERSION,
        "services": {}
    }

    # Check database connectivity
    try:
        db.execute(text("SELECT 1"))
        health_status["services"]["database"] = {
            "status": "healthy",
            "dialect": db.get_bind().dialect.name,
            "schema_version": max(applied_versions(db.get_bind()), default=0)
        }
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["services"]["database"] = {
            "status": "unhealthy",
            "error": str(e)
        }

    # Check blob storage
    try:
        health_status["services"]["storage"] = {"status": "healthy", **blob_store.stats()}
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["services"]["storage"] = {
            "status": "unhealthy",
            "error": str(e)
        }

    if health_status["status"] != "healthy":
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=health_status
        )

    return health_status


@router.get("/consistency", response_model=ConsistencyReport)
def consistency_check(
    catalog: CatalogService = Depends(get_catalog),
    blob_store: LocalBlobStore = Depends(get_blob_store),
):
    """Report records without blobs and blobs without records. Changes nothing."""
    return find_inconsistencies(catalog, blob_store)


@router.get("/ready")
def readiness_check():
    """Readiness probe."""
    return {
        "status": "ready",
        "timestamp": _now()
    }


@router.get("/live")
def liveness_check():
    """Liveness probe."""
    return {
        "status": "alive",
        "timestamp": _now()
    }
