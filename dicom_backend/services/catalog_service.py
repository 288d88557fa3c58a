"""
Catalog of ingested DICOM images, backed by SQLAlchemy.
"""
import logging
from datetime import datetime, timezone
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dicom_backend.core.exceptions import NotFoundError, StorageError
from dicom_backend.models.dicom_image import DicomImage

logger = logging.getLogger(__name__)


class CatalogService:
    """Insert, look up, list and delete image records.

    There is deliberately no update operation: records are write-once apart
    from ``last_accessed``.
    """

    def __init__(self, db: Session):
        self.db = db

    def insert(self, image: DicomImage) -> int:
        """Persist a new record and return its assigned id."""
        if image.id is not None:
            raise ValueError("New catalog records must not carry an id")
        try:
            self.db.add(image)
            self.db.commit()
            self.db.refresh(image)
        except (SQLAlchemyError, OverflowError) as e:
            self.db.rollback()
            logger.error(f"Failed to insert catalog record for {image.name}: {e}")
            raise StorageError(f"Failed to insert catalog record: {e}") from e
        return image.id

    def get(self, image_id: int) -> DicomImage:
        try:
            image = self.db.get(DicomImage, image_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to look up image {image_id}: {e}") from e
        if image is None:
            raise NotFoundError(NotFoundError.RECORD, f"Image with ID {image_id} not found", image_id=image_id)
        return image

    def list(self) -> List[DicomImage]:
        try:
            return self.db.query(DicomImage).order_by(DicomImage.id).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list images: {e}") from e

    def delete(self, image_id: int) -> None:
        image = self.get(image_id)
        try:
            self.db.delete(image)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to delete catalog record {image_id}: {e}")
            raise StorageError(f"Failed to delete catalog record {image_id}: {e}") from e

    def touch_last_accessed(self, image_id: int) -> None:
        image = self.get(image_id)
        try:
            image.last_accessed = datetime.now(timezone.utc)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Failed to record access to image {image_id}: {e}") from e
