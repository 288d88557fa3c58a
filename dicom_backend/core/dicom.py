"""
DICOM designations used when accepting and serving uploads.
"""

DICOM_EXTENSION = ".dcm"

# Content type stored on every record and sent back on retrieval
DICOM_CONTENT_TYPE = "application/dicom"

# Claimed content types accepted regardless of file extension. Browsers often
# label unknown binary files as octet-stream.
ACCEPTED_CONTENT_TYPES = frozenset({
    DICOM_CONTENT_TYPE,
    "application/octet-stream",
})

# Placeholder for patient identity when an upload carries no metadata
UNKNOWN_PATIENT = "Unknown"

IMAGE_URL_TEMPLATE = "/api/image/{image_id}"


def image_url(image_id: int) -> str:
    """Retrieval locator for a catalog id."""
    return IMAGE_URL_TEMPLATE.format(image_id=image_id)
