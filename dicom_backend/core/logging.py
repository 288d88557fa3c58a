"""
Logging configuration for the DICOM image backend.
"""
import logging
import logging.handlers
from pathlib import Path
from typing import Optional
from dicom_backend.core.config import settings


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _rotating_handler(log_file: str, formatter: logging.Formatter) -> logging.Handler:
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        filename=log_file,
        maxBytes=settings.LOG_MAX_SIZE,
        backupCount=settings.LOG_BACKUP_COUNT,
        encoding='utf-8'
    )
    handler.setFormatter(formatter)
    return handler


def setup_logging() -> None:
    """Configure application logging."""

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL))

    # Clear existing handlers
    root_logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    # File handler with rotation
    file_handler = _rotating_handler(settings.LOG_FILE, formatter)
    file_handler.setLevel(logging.INFO)
    root_logger.addHandler(file_handler)

    # Console handler for development
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    setup_specific_loggers()
    audit_logger.attach_file(settings.AUDIT_LOG_FILE)

    logging.info("Logging configuration completed")
    logging.info(f"Log level: {settings.LOG_LEVEL}")
    logging.info(f"Log file: {settings.LOG_FILE}")


def setup_specific_loggers() -> None:
    """Configure specific module loggers."""

    # SQLAlchemy logging
    sqlalchemy_logger = logging.getLogger('sqlalchemy.engine')
    sqlalchemy_logger.setLevel(logging.INFO if settings.DEBUG else logging.WARNING)

    logging.getLogger('fastapi').setLevel(logging.INFO)
    logging.getLogger('uvicorn').setLevel(logging.INFO)
    logging.getLogger('dicom_backend').setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)


class AuditLogger:
    """Logger for the audit trail of stored and removed images."""

    def __init__(self, name: str = 'dicom_backend.audit'):
        self.logger = logging.getLogger(name)
        self._file_handler: Optional[logging.Handler] = None

    def attach_file(self, log_file: str) -> None:
        """Send audit lines to their own rotating file."""
        if self._file_handler is not None:
            self.logger.removeHandler(self._file_handler)
            self._file_handler.close()
        formatter = logging.Formatter(fmt='%(asctime)s - AUDIT - %(message)s', datefmt=DATE_FORMAT)
        self._file_handler = _rotating_handler(log_file, formatter)
        self.logger.addHandler(self._file_handler)

    def log_image_ingested(self, image_id: int, name: str, storage_key: str, file_size: int):
        self.logger.info(f"IMAGE_INGESTED - Image {image_id} - {name} - {storage_key} - {file_size} bytes")

    def log_image_deleted(self, image_id: int, name: str, blob_removed: bool):
        blob_state = "blob removed" if blob_removed else "blob already absent"
        self.logger.info(f"IMAGE_DELETED - Image {image_id} - {name} - {blob_state}")

    def log_inconsistency(self, kind: str, description: str):
        """Record a record/blob mismatch that needs manual recovery."""
        self.logger.warning(f"INCONSISTENCY - {kind} - {description}")


# Global instance
audit_logger = AuditLogger()

