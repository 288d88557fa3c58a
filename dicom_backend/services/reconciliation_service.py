"""
Read-only comparison of catalog records against stored blobs.

Reports the leftovers of the two-step write and delete paths without fixing
anything: blobs no record points to, and records whose blob is gone.
"""
import logging

from dicom_backend.schemas.image import ConsistencyReport
from dicom_backend.services.catalog_service import CatalogService
from dicom_backend.services.storage_service import LocalBlobStore

logger = logging.getLogger(__name__)


def find_inconsistencies(catalog: CatalogService, blob_store: LocalBlobStore) -> ConsistencyReport:
    blob_keys = set(blob_store.keys())
    referenced = set()
    missing_blobs = []
    legacy_records = []

    for image in catalog.list():
        if not image.storage_key:
            legacy_records.append(image.id)
            continue
        referenced.add(image.storage_key)
        if image.storage_key not in blob_keys:
            missing_blobs.append(image.id)

    report = ConsistencyReport(
        orphan_blobs=sorted(blob_keys - referenced),
        missing_blobs=missing_blobs,
        legacy_records=legacy_records,
    )
    if not report.is_consistent:
        logger.warning(
            f"Catalog/blob mismatch: {len(report.orphan_blobs)} orphan blobs, "
            f"{len(report.missing_blobs)} records missing blobs, "
            f"{len(report.legacy_records)} records without storage key"
        )
    return report
