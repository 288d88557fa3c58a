"""
Error taxonomy for the DICOM ingestion, storage and retrieval services.

Services raise these; the API layer maps them onto HTTP status codes.
"""
from typing import Optional


class DicomBackendError(Exception):
    """Base class for all service errors."""


class ValidationError(DicomBackendError):
    """The upload was rejected before anything was stored."""


class NotFoundError(DicomBackendError):
    """A catalog record or its blob does not exist.

    ``kind`` is ``"record"`` when the catalog has no row for the id and
    ``"blob"`` when the row exists but its stored file is missing. Both reach
    the caller as not-found, the distinction is kept for diagnosing
    record/blob inconsistencies.
    """

    RECORD = "record"
    BLOB = "blob"

    def __init__(self, kind: str, message: str, image_id: Optional[int] = None, storage_key: Optional[str] = None):
        if kind not in (self.RECORD, self.BLOB):
            raise ValueError(f"Unknown not-found kind: {kind}")
        super().__init__(message)
        self.kind = kind
        self.image_id = image_id
        self.storage_key = storage_key


class MetadataParseError(DicomBackendError):
    """Caller-supplied metadata could not be parsed.

    Never surfaced to the caller: intake logs it and continues without metadata.
    """


class StorageError(DicomBackendError):
    """Underlying blob or catalog I/O failed."""
