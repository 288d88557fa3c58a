"""
Image schemas for DICOM upload, retrieval and listing.
"""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, conint
from pydantic.alias_generators import to_camel
from datetime import datetime


# Matches a 32-bit signed INTEGER column on every backend
PixelCount = conint(ge=0, le=2**31 - 1)


class CamelModel(BaseModel):
    """Snake-case attributes, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class UnverifiedDicomMetadata(CamelModel):
    """Descriptive metadata as supplied by the uploader.

    The values are taken at face value: nothing here has been read from the
    DICOM payload itself. Unknown keys are dropped.
    """
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    patient_name: Optional[str] = None
    patient_id: Optional[str] = None
    patient_birth_date: Optional[str] = None
    patient_sex: Optional[str] = None
    modality: Optional[str] = None
    rows: Optional[PixelCount] = None
    columns: Optional[PixelCount] = None
    image_type: Optional[str] = None
    study_id: Optional[str] = None
    study_instance_uid: Optional[str] = None
    study_date: Optional[str] = None
    study_time: Optional[str] = None
    series_instance_uid: Optional[str] = None
    series_number: Optional[str] = None
    series_description: Optional[str] = None
    body_part: Optional[str] = None
    window_center: Optional[str] = None
    window_width: Optional[str] = None
    instance_number: Optional[str] = None
    sop_instance_uid: Optional[str] = None
    has_annotations: Optional[bool] = None
    annotation_type: Optional[str] = None
    annotation_label: Optional[str] = None
    annotation_data: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "UnverifiedDicomMetadata":
        """Validate a decoded JSON object, matching key names case-insensitively."""
        by_key = {name.replace("_", ""): name for name in cls.model_fields}
        normalized = {}
        for key, value in data.items():
            field_name = by_key.get(str(key).lower().replace("_", ""))
            if field_name is not None:
                normalized[field_name] = value
        return cls.model_validate(normalized)

    def recognized_fields(self) -> Dict[str, Any]:
        """Fields to copy onto a catalog record."""
        return self.model_dump(by_alias=False)


class UploadResponse(CamelModel):
    """Summary returned after a successful upload."""
    id: int
    name: str
    patient_name: Optional[str] = None
    patient_id: Optional[str] = None
    modality: Optional[str] = None
    study_date: Optional[str] = None
    series_description: Optional[str] = None
    message: str = "DICOM image uploaded successfully"


class DeleteResponse(BaseModel):
    message: str


class ImageSummary(CamelModel):
    """Listing projection of a catalog record, everything except the storage key."""
    id: int
    name: str
    created_at: datetime
    modified_at: Optional[datetime] = None
    file_size: Optional[int] = None
    upload_date: Optional[datetime] = None
    last_accessed: Optional[datetime] = None
    content_type: str
    is_compressed: bool = False

    patient_id: Optional[str] = None
    patient_name: Optional[str] = None
    patient_birth_date: Optional[str] = None
    patient_sex: Optional[str] = None
    modality: Optional[str] = None
    rows: Optional[int] = None
    columns: Optional[int] = None
    image_type: Optional[str] = None
    study_id: Optional[str] = None
    study_instance_uid: Optional[str] = None
    study_date: Optional[str] = None
    study_time: Optional[str] = None
    series_instance_uid: Optional[str] = None
    series_number: Optional[str] = None
    series_description: Optional[str] = None
    body_part: Optional[str] = None
    window_center: Optional[str] = None
    window_width: Optional[str] = None
    instance_number: Optional[str] = None
    sop_instance_uid: Optional[str] = None
    has_annotations: bool = False
    annotation_type: Optional[str] = None
    annotation_label: Optional[str] = None
    annotation_data: Optional[str] = None

    dicom_url: str = Field(..., description="Path that serves the raw DICOM bytes")

    @classmethod
    def from_record(cls, image, dicom_url: str) -> "ImageSummary":
        """Project a catalog record, adding its retrieval locator."""
        data = {name: getattr(image, name) for name in cls.model_fields if name != "dicom_url"}
        data["is_compressed"] = bool(image.is_compressed)
        data["has_annotations"] = bool(image.has_annotations)
        return cls(dicom_url=dicom_url, **data)


class ConsistencyReport(BaseModel):
    """Record/blob mismatches found by a read-only scan."""
    orphan_blobs: List[str] = []
    missing_blobs: List[int] = []
    legacy_records: List[int] = []

    @property
    def is_consistent(self) -> bool:
        return not (self.orphan_blobs or self.missing_blobs or self.legacy_records)
