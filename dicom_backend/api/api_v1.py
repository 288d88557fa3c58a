"""
API router configuration - combines all API endpoints.
"""
from fastapi import APIRouter
from dicom_backend import __version__
from dicom_backend.api.v1 import health, images

# Create main API router
api_router = APIRouter()

api_router.include_router(images.router, prefix="/image", tags=["images"])
api_router.include_router(health.router, prefix="/health", tags=["health"])


# Root endpoint
@api_router.get("/")
def api_root():
    """API root endpoint."""
    return {
        "message": "DICOM Image Backend API",
        "version": __version__,
        "images": "/api/image",
        "health": "/api/health/",
        "status": "operational"
    }
