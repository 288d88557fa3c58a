"""DICOM image ingestion, storage and retrieval service."""

__version__ = "1.0.0"
