"""
DICOM image model: one catalog row per ingested file.
"""
from sqlalchemy import Column, Integer, BigInteger, String, Boolean, DateTime, Text, false
from dicom_backend.db.base import Base


class DicomImage(Base):
    """Catalog record for an uploaded DICOM file.

    Descriptive fields are written once at ingest and never edited. They come
    from the uploader and are not checked against the stored bytes.
    """
    __tablename__ = "images"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)  # Original upload filename
    content_type = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    modified_at = Column(DateTime(timezone=True))

    # Blob location, relative to the blob store root
    storage_key = Column(String(500), unique=True, index=True)
    file_size = Column(BigInteger)  # Size in bytes
    upload_date = Column(DateTime(timezone=True))
    last_accessed = Column(DateTime(timezone=True))
    is_compressed = Column(Boolean, nullable=False, default=False, server_default=false())

    # Patient
    patient_id = Column(Text)
    patient_name = Column(Text)
    patient_birth_date = Column(Text)
    patient_sex = Column(Text)

    # Image
    modality = Column(Text)
    rows = Column(Integer)
    columns = Column(Integer)
    image_type = Column(Text)

    # Study
    study_id = Column(Text)
    study_instance_uid = Column(Text)
    study_date = Column(Text)
    study_time = Column(Text)

    # Series
    series_instance_uid = Column(Text)
    series_number = Column(Text)
    series_description = Column(Text)
    body_part = Column(Text)

    # Display and instance
    window_center = Column(Text)
    window_width = Column(Text)
    instance_number = Column(Text)
    sop_instance_uid = Column(Text)

    # Annotations
    has_annotations = Column(Boolean, nullable=False, default=False, server_default=false())
    annotation_type = Column(Text)
    annotation_label = Column(Text)
    annotation_data = Column(Text)

    def __repr__(self):
        return f"<DicomImage(id={self.id}, name='{self.name}', storage_key='{self.storage_key}')>"
