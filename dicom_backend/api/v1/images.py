"""
DICOM image upload and management API endpoints.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile, status

from dicom_backend.core.exceptions import NotFoundError, StorageError, ValidationError
from dicom_backend.dependencies import get_blob_store, get_catalog
from dicom_backend.schemas.image import DeleteResponse, ImageSummary, UploadResponse
from dicom_backend.services import image_service
from dicom_backend.services.catalog_service import CatalogService
from dicom_backend.services.storage_service import LocalBlobStore
from dicom_backend.utils.file_utils import content_disposition

logger = logging.getLogger(__name__)

router = APIRouter()


def _not_found(exc: NotFoundError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=str(exc),
        headers={"X-Not-Found-Kind": exc.kind},
    )


def _storage_failure(action: str, exc: StorageError) -> HTTPException:
    logger.error(f"Error {action}: {exc}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Error {action}"
    )


@router.post("/upload", response_model=UploadResponse)
def upload_image(
    file: Optional[UploadFile] = File(None),
    metadata: Optional[str] = Form(None),
    catalog: CatalogService = Depends(get_catalog),
    blob_store: LocalBlobStore = Depends(get_blob_store),
):
    """Upload a DICOM file with optional JSON metadata."""
    if file is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded")

    try:
        image = image_service.ingest_image(
            payload=file.file.read(),
            filename=file.filename,
            content_type=file.content_type,
            metadata_json=metadata,
            catalog=catalog,
            blob_store=blob_store,
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except StorageError as e:
        raise _storage_failure("uploading DICOM image", e)

    return UploadResponse.model_validate(image)


@router.get("", response_model=List[ImageSummary])
def list_images(catalog: CatalogService = Depends(get_catalog)):
    """List every stored DICOM image."""
    try:
        return image_service.list_images(catalog)
    except StorageError as e:
        raise _storage_failure("retrieving images", e)


@router.get(
    "/{image_id}",
    response_class=Response,
    responses={200: {"content": {"application/dicom": {}}}},
)
def get_image(
    image_id: int,
    catalog: CatalogService = Depends(get_catalog),
    blob_store: LocalBlobStore = Depends(get_blob_store),
):
    """Download the raw DICOM bytes of an image."""
    try:
        retrieved = image_service.retrieve_image(image_id, catalog, blob_store)
    except NotFoundError as e:
        logger.warning(f"Image {image_id} not found ({e.kind})")
        raise _not_found(e)
    except StorageError as e:
        raise _storage_failure("retrieving image", e)

    return Response(
        content=retrieved.content,
        media_type=retrieved.content_type,
        headers={"Content-Disposition": content_disposition(retrieved.filename)},
    )


@router.delete("/{image_id}", response_model=DeleteResponse)
def delete_image(
    image_id: int,
    catalog: CatalogService = Depends(get_catalog),
    blob_store: LocalBlobStore = Depends(get_blob_store),
):
    """Delete an image and its stored file."""
    try:
        name = image_service.delete_image(image_id, catalog, blob_store)
    except NotFoundError as e:
        logger.warning(f"Delete attempted for non-existent image. ID: {image_id}")
        raise _not_found(e)
    except StorageError as e:
        raise _storage_failure("deleting image", e)

    return DeleteResponse(message=f"DICOM image {name} deleted successfully")
