"""
Intake, retrieval, deletion and listing of DICOM images.

Each handler is a plain function of its input plus a catalog and a blob
store; nothing is cached between calls. Blob and catalog writes are two
separate steps with no transaction spanning them:

* intake writes the blob, then inserts the row. If the insert fails the blob
  is left behind as an orphan and logged.
* deletion removes the blob, then the row. If the row delete fails the row
  is left dangling and later retrievals report the blob as not found.
"""
import json
import logging
from datetime import datetime, timezone
from typing import List, NamedTuple, Optional

from pydantic import ValidationError as PydanticValidationError

from dicom_backend.core.config import settings
from dicom_backend.core.dicom import DICOM_CONTENT_TYPE, UNKNOWN_PATIENT, image_url
from dicom_backend.core.exceptions import MetadataParseError, NotFoundError, StorageError, ValidationError
from dicom_backend.core.logging import audit_logger
from dicom_backend.models.dicom_image import DicomImage
from dicom_backend.schemas.image import ImageSummary, UnverifiedDicomMetadata
from dicom_backend.services.catalog_service import CatalogService
from dicom_backend.services.storage_service import LocalBlobStore
from dicom_backend.utils.file_utils import format_file_size, generate_storage_key, is_dicom_upload

logger = logging.getLogger(__name__)


class RetrievedImage(NamedTuple):
    content: bytes
    content_type: str
    filename: str


def parse_metadata(metadata_json: str) -> UnverifiedDicomMetadata:
    """Decode the JSON metadata part of an upload.

    Raises:
        MetadataParseError: the text is not a JSON object or a recognised
            field has a value of the wrong type.
    """
    try:
        data = json.loads(metadata_json)
    except ValueError as e:
        raise MetadataParseError(f"Metadata is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MetadataParseError(f"Metadata must be a JSON object, got {type(data).__name__}")
    try:
        return UnverifiedDicomMetadata.from_mapping(data)
    except PydanticValidationError as e:
        raise MetadataParseError(f"Metadata has invalid fields: {e}") from e


def _load_metadata(metadata_json: Optional[str]) -> Optional[UnverifiedDicomMetadata]:
    if not metadata_json or not metadata_json.strip():
        return None
    try:
        metadata = parse_metadata(metadata_json)
    except MetadataParseError as e:
        logger.warning(f"Ignoring unparseable DICOM metadata: {e}")
        return None
    logger.debug(f"Received DICOM metadata: {metadata_json}")
    return metadata


def _apply_metadata(image: DicomImage, metadata: Optional[UnverifiedDicomMetadata]) -> None:
    if metadata is None:
        image.patient_name = UNKNOWN_PATIENT
        image.patient_id = UNKNOWN_PATIENT
        image.has_annotations = False
        return

    for field, value in metadata.recognized_fields().items():
        setattr(image, field, value)

    # Annotation flag follows the data, whatever the uploader claimed
    has_data = bool(image.annotation_data)
    if metadata.has_annotations is not None and metadata.has_annotations != has_data:
        logger.warning(
            f"hasAnnotations={metadata.has_annotations} contradicts annotation data presence "
            f"for {image.name}, using {has_data}"
        )
    image.has_annotations = has_data


def ingest_image(
    payload: Optional[bytes],
    filename: Optional[str],
    content_type: Optional[str],
    metadata_json: Optional[str],
    catalog: CatalogService,
    blob_store: LocalBlobStore,
) -> DicomImage:
    """Validate, store and catalogue an uploaded DICOM file.

    Args:
        payload: Raw file bytes.
        filename: Name of the file on the client.
        content_type: Content type the client claimed for the file.
        metadata_json: Optional JSON object of descriptive metadata. A value
            that fails to parse is logged and treated as absent.
        catalog: Catalog the record is inserted into.
        blob_store: Store the bytes are written to.

    Returns:
        The created catalog record.

    Raises:
        ValidationError: empty upload, oversized upload, or not DICOM-like.
        StorageError: the blob write or catalog insert failed.
    """
    if not payload:
        logger.warning("Upload attempted with no file")
        raise ValidationError("No file uploaded")
    if not filename:
        raise ValidationError("Uploaded file has no filename")

    logger.info(
        f"File upload attempted: Name={filename}, ContentType={content_type}, "
        f"Length={format_file_size(len(payload))}"
    )

    if settings.MAX_UPLOAD_SIZE is not None and len(payload) > settings.MAX_UPLOAD_SIZE:
        raise ValidationError(
            f"File size {len(payload)} exceeds maximum allowed size {settings.MAX_UPLOAD_SIZE}"
        )

    if not is_dicom_upload(filename, content_type):
        logger.warning(f"Upload attempted with non-DICOM file: {content_type}")
        raise ValidationError("Only DICOM files (.dcm) are supported")

    storage_key = generate_storage_key(filename)
    blob_store.write(storage_key, payload)

    now = datetime.now(timezone.utc)
    image = DicomImage(
        name=filename,
        storage_key=storage_key,
        content_type=DICOM_CONTENT_TYPE,
        file_size=len(payload),
        is_compressed=False,
        created_at=now,
        upload_date=now,
    )
    _apply_metadata(image, _load_metadata(metadata_json))

    try:
        catalog.insert(image)
    except StorageError:
        audit_logger.log_inconsistency(
            "orphan_blob", f"blob {storage_key} written but catalog insert failed"
        )
        raise

    logger.info(f"DICOM image record created successfully. ID: {image.id}, Name: {image.name}")
    audit_logger.log_image_ingested(image.id, image.name, storage_key, image.file_size)
    return image


def retrieve_image(image_id: int, catalog: CatalogService, blob_store: LocalBlobStore) -> RetrievedImage:
    """Return the stored bytes of an image along with its display name.

    Raises:
        NotFoundError: kind ``"record"`` when the id is unknown, ``"blob"``
            when the record exists but its file does not.
    """
    image = catalog.get(image_id)
    name, storage_key = image.name, image.storage_key

    if not storage_key:
        logger.error(f"Image {image_id} has no storage key")
        raise NotFoundError(NotFoundError.BLOB, f"DICOM file for image ID {image_id} not found on server", image_id=image_id)

    try:
        content = blob_store.read(storage_key)
    except NotFoundError as e:
        logger.error(f"DICOM file not found in blob store: {storage_key}")
        audit_logger.log_inconsistency("missing_blob", f"image {image_id} references absent blob {storage_key}")
        raise NotFoundError(
            NotFoundError.BLOB,
            f"DICOM file for image ID {image_id} not found on server",
            image_id=image_id,
            storage_key=storage_key,
        ) from e

    if settings.TRACK_LAST_ACCESS:
        catalog.touch_last_accessed(image_id)

    logger.info(f"DICOM image retrieved successfully. ID: {image_id}, Name: {name}")
    return RetrievedImage(content=content, content_type=DICOM_CONTENT_TYPE, filename=name)


def delete_image(image_id: int, catalog: CatalogService, blob_store: LocalBlobStore) -> str:
    """Remove an image's blob and then its record. Returns the display name.

    Raises:
        NotFoundError: kind ``"record"`` when the id is unknown.
        StorageError: blob or catalog removal failed.
    """
    image = catalog.get(image_id)
    name, storage_key = image.name, image.storage_key

    blob_removed = blob_store.delete(storage_key) if storage_key else False
    try:
        catalog.delete(image_id)
    except StorageError:
        audit_logger.log_inconsistency(
            "dangling_record", f"image {image_id} kept after its blob {storage_key} was removed"
        )
        raise

    logger.info(f"DICOM image deleted successfully. ID: {image_id}, Name: {name}")
    audit_logger.log_image_deleted(image_id, name, blob_removed)
    return name


def list_images(catalog: CatalogService) -> List[ImageSummary]:
    """Summaries of every catalogued image, each with its retrieval locator."""
    images = catalog.list()
    logger.info(f"Retrieved {len(images)} DICOM images from catalog")
    return [ImageSummary.from_record(image, image_url(image.id)) for image in images]
