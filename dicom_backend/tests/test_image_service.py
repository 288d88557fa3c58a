import json
import re

import pytest
from sqlalchemy import Text

from ..core.config import settings
from ..core.exceptions import MetadataParseError, NotFoundError, StorageError, ValidationError
from ..models.dicom_image import DicomImage
from ..services import image_service
from ..services.image_service import delete_image, ingest_image, list_images, parse_metadata, retrieve_image


KEY_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}_(.+)$")

FULL_METADATA = {
    "patientName": "John Doe",
    "patientId": "P-001",
    "patientBirthDate": "19700101",
    "patientSex": "M",
    "modality": "CT",
    "rows": 512,
    "columns": 512,
    "imageType": "ORIGINAL\\PRIMARY\\AXIAL",
    "studyId": "S1",
    "studyInstanceUid": "1.2.3",
    "studyDate": "20250101",
    "studyTime": "101500",
    "seriesInstanceUid": "1.2.3.4",
    "seriesNumber": "2",
    "seriesDescription": "Chest",
    "bodyPart": "CHEST",
    "windowCenter": "40",
    "windowWidth": "400",
    "instanceNumber": "7",
    "sopInstanceUid": "1.2.3.4.5",
    "annotationType": "ROI",
    "annotationLabel": "lesion",
    "annotationData": "{\"points\": [[1, 2]]}",
}


def ingest(catalog, blob_store, payload, filename="scan.dcm", content_type="application/dicom", metadata=None):
    metadata_json = None if metadata is None else json.dumps(metadata)
    return ingest_image(payload, filename, content_type, metadata_json, catalog, blob_store)


def test_ingest_roundtrip(catalog, blob_store, dicom_bytes):
    image = ingest(catalog, blob_store, dicom_bytes)
    assert image.id is not None
    assert image.file_size == len(dicom_bytes)
    assert image.content_type == "application/dicom"
    assert image.is_compressed is False
    assert image.created_at is not None and image.upload_date is not None
    assert blob_store.read(image.storage_key) == dicom_bytes

    retrieved = retrieve_image(image.id, catalog, blob_store)
    assert retrieved.content == dicom_bytes
    assert retrieved.content_type == "application/dicom"
    assert retrieved.filename == "scan.dcm"


def test_storage_key_format(catalog, blob_store, dicom_bytes):
    image = ingest(catalog, blob_store, dicom_bytes, filename="../../etc/My Scan.dcm")
    match = KEY_RE.match(image.storage_key)
    assert match is not None
    assert match.group(1) == "My_Scan.dcm"
    # Display name keeps what the client sent
    assert image.name == "../../etc/My Scan.dcm"


def test_identical_filenames_get_distinct_keys(catalog, blob_store, dicom_bytes):
    keys = {ingest(catalog, blob_store, dicom_bytes).storage_key for _ in range(5)}
    assert len(keys) == 5
    assert sorted(blob_store.keys()) == sorted(keys)


@pytest.mark.parametrize("filename,content_type", [
    ("scan.dcm", "text/plain"),
    ("SCAN.DCM", None),
    ("scan.bin", "application/dicom"),
    ("scan.bin", "Application/DICOM; charset=binary"),
    ("scan", "application/octet-stream"),
])
def test_accepted_uploads(catalog, blob_store, dicom_bytes, filename, content_type):
    image = ingest(catalog, blob_store, dicom_bytes, filename=filename, content_type=content_type)
    assert catalog.get(image.id).name == filename


@pytest.mark.parametrize("filename,content_type", [
    ("notes.txt", "text/plain"),
    ("scan.dcm.txt", "text/plain"),
    ("image.png", "image/png"),
    ("scan", None),
])
def test_rejected_uploads(catalog, blob_store, dicom_bytes, filename, content_type):
    with pytest.raises(ValidationError):
        ingest(catalog, blob_store, dicom_bytes, filename=filename, content_type=content_type)
    assert catalog.list() == []
    assert blob_store.keys() == []


@pytest.mark.parametrize("payload", [None, b""])
def test_empty_upload_rejected(catalog, blob_store, payload):
    with pytest.raises(ValidationError):
        ingest(catalog, blob_store, payload)
    assert blob_store.keys() == []


def test_missing_filename_rejected(catalog, blob_store, dicom_bytes):
    with pytest.raises(ValidationError):
        ingest(catalog, blob_store, dicom_bytes, filename=None)


def test_upload_size_limit(catalog, blob_store, dicom_bytes, monkeypatch):
    monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE", len(dicom_bytes) - 1)
    with pytest.raises(ValidationError):
        ingest(catalog, blob_store, dicom_bytes)
    monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE", len(dicom_bytes))
    assert ingest(catalog, blob_store, dicom_bytes).id is not None


def test_metadata_fields_copied(catalog, blob_store, dicom_bytes):
    image = ingest(catalog, blob_store, dicom_bytes, metadata=dict(FULL_METADATA, vendorTag="ignored"))
    assert image.patient_name == "John Doe"
    assert image.patient_id == "P-001"
    assert image.rows == 512
    assert image.columns == 512
    assert image.image_type == "ORIGINAL\\PRIMARY\\AXIAL"
    assert image.series_description == "Chest"
    assert image.sop_instance_uid == "1.2.3.4.5"
    assert image.annotation_label == "lesion"
    assert image.has_annotations is True
    assert not hasattr(image, "vendor_tag")


def test_partial_metadata_leaves_other_fields_absent(catalog, blob_store, dicom_bytes):
    image = ingest(catalog, blob_store, dicom_bytes, metadata={"patientName": "John Doe", "modality": "CT"})
    assert image.patient_name == "John Doe"
    assert image.modality == "CT"
    assert image.patient_id is None
    assert image.study_date is None


def test_metadata_keys_case_insensitive(catalog, blob_store, dicom_bytes):
    image = ingest(catalog, blob_store, dicom_bytes, metadata={"PATIENTNAME": "Ann", "study_date": "20240101"})
    assert image.patient_name == "Ann"
    assert image.study_date == "20240101"


def test_no_metadata_defaults(catalog, blob_store, dicom_bytes):
    image = ingest(catalog, blob_store, dicom_bytes)
    assert image.patient_name == "Unknown"
    assert image.patient_id == "Unknown"
    for field in ("modality", "study_date", "series_description", "rows", "annotation_data", "patient_sex"):
        assert getattr(image, field) is None
    assert image.has_annotations is False


@pytest.mark.parametrize("metadata_json", [
    "{not json",
    "[1, 2, 3]",
    "\"a string\"",
    json.dumps({"patientName": "X", "rows": "many"}),
    json.dumps({"patientName": "X", "rows": 10**20}),
    json.dumps({"patientName": "X", "columns": -1}),
])
def test_bad_metadata_treated_as_absent(catalog, blob_store, dicom_bytes, metadata_json):
    image = ingest_image(dicom_bytes, "scan.dcm", "application/dicom", metadata_json, catalog, blob_store)
    assert image.patient_name == "Unknown"
    assert image.patient_id == "Unknown"


def test_blank_metadata_is_absent(catalog, blob_store, dicom_bytes):
    image = ingest_image(dicom_bytes, "scan.dcm", "application/dicom", "   ", catalog, blob_store)
    assert image.patient_name == "Unknown"


def test_parse_metadata_errors():
    with pytest.raises(MetadataParseError):
        parse_metadata("nope")
    with pytest.raises(MetadataParseError):
        parse_metadata("null")
    meta = parse_metadata(json.dumps({"seriesNumber": 3, "windowCenter": 40.5}))
    assert meta.series_number == "3"
    assert meta.window_center == "40.5"


@pytest.mark.parametrize("metadata,expected", [
    ({"hasAnnotations": True}, False),
    ({"hasAnnotations": False, "annotationData": "{}"}, True),
    ({"annotationData": "{}"}, True),
    ({"hasAnnotations": True, "annotationData": ""}, False),
])
def test_has_annotations_follows_annotation_data(catalog, blob_store, dicom_bytes, metadata, expected):
    image = ingest(catalog, blob_store, dicom_bytes, metadata=metadata)
    assert image.has_annotations is expected


def test_failed_insert_leaves_orphan_blob(catalog, blob_store, dicom_bytes, monkeypatch):
    def _fail(image):
        raise StorageError("catalog unavailable")

    monkeypatch.setattr(catalog, "insert", _fail)
    with pytest.raises(StorageError):
        ingest(catalog, blob_store, dicom_bytes)
    assert len(blob_store.keys()) == 1


def test_blob_written_before_insert(catalog, blob_store, dicom_bytes, monkeypatch):
    seen = []
    real_insert = catalog.insert

    def _insert(image):
        seen.append(blob_store.exists(image.storage_key))
        return real_insert(image)

    monkeypatch.setattr(catalog, "insert", _insert)
    ingest(catalog, blob_store, dicom_bytes)
    assert seen == [True]


def test_retrieve_missing_record(catalog, blob_store):
    with pytest.raises(NotFoundError) as exc_info:
        retrieve_image(999999, catalog, blob_store)
    assert exc_info.value.kind == NotFoundError.RECORD


def test_retrieve_missing_blob(catalog, blob_store, dicom_bytes):
    image = ingest(catalog, blob_store, dicom_bytes)
    blob_store.delete(image.storage_key)
    with pytest.raises(NotFoundError) as exc_info:
        retrieve_image(image.id, catalog, blob_store)
    assert exc_info.value.kind == NotFoundError.BLOB
    assert exc_info.value.image_id == image.id


def test_retrieve_tracks_access_when_enabled(catalog, blob_store, dicom_bytes, monkeypatch):
    image = ingest(catalog, blob_store, dicom_bytes)
    retrieve_image(image.id, catalog, blob_store)
    assert catalog.get(image.id).last_accessed is None

    monkeypatch.setattr(settings, "TRACK_LAST_ACCESS", True)
    retrieve_image(image.id, catalog, blob_store)
    assert catalog.get(image.id).last_accessed is not None


def test_delete_removes_blob_and_record(catalog, blob_store, dicom_bytes):
    image = ingest(catalog, blob_store, dicom_bytes, filename="gone.dcm")
    image_id, key = image.id, image.storage_key
    assert delete_image(image_id, catalog, blob_store) == "gone.dcm"
    assert not blob_store.exists(key)
    with pytest.raises(NotFoundError) as exc_info:
        delete_image(image_id, catalog, blob_store)
    assert exc_info.value.kind == NotFoundError.RECORD


def test_delete_with_blob_already_gone(catalog, blob_store, dicom_bytes):
    image = ingest(catalog, blob_store, dicom_bytes)
    image_id = image.id
    blob_store.delete(image.storage_key)
    assert delete_image(image_id, catalog, blob_store) == "scan.dcm"
    assert catalog.list() == []


def test_failed_row_delete_leaves_dangling_record(catalog, blob_store, dicom_bytes, monkeypatch):
    image = ingest(catalog, blob_store, dicom_bytes)
    image_id = image.id

    def _fail(image_id):
        raise StorageError("catalog unavailable")

    monkeypatch.setattr(catalog, "delete", _fail)
    with pytest.raises(StorageError):
        delete_image(image_id, catalog, blob_store)
    monkeypatch.undo()

    with pytest.raises(NotFoundError) as exc_info:
        retrieve_image(image_id, catalog, blob_store)
    assert exc_info.value.kind == NotFoundError.BLOB


def test_list_images(catalog, blob_store, dicom_bytes):
    ids = [ingest(catalog, blob_store, dicom_bytes, filename=f"{n}.dcm").id for n in range(3)]
    summaries = list_images(catalog)
    assert [s.id for s in summaries] == ids
    assert [s.dicom_url for s in summaries] == [f"/api/image/{i}" for i in ids]
    dumped = summaries[0].model_dump(by_alias=True)
    assert "storageKey" not in dumped
    assert dumped["annotationData"] is None
    assert dumped["patientName"] == "Unknown"


def test_handlers_keep_no_module_state():
    public = {name for name in vars(image_service) if not name.startswith("_")}
    mutable = [name for name in public if isinstance(getattr(image_service, name), (list, dict, set))]
    assert mutable == []


def test_long_descriptive_values_are_kept(catalog, blob_store, dicom_bytes):
    description = "Series " * 100
    image = ingest(catalog, blob_store, dicom_bytes, filename="x" * 300 + ".dcm",
                   metadata={"modality": "MODALITY-LONGER-THAN-TWENTY", "seriesDescription": description})
    stored = catalog.get(image.id)
    assert stored.modality == "MODALITY-LONGER-THAN-TWENTY"
    assert stored.series_description == description
    assert stored.name == "x" * 300 + ".dcm"


@pytest.mark.parametrize("column", ["name", "patient_name", "modality", "study_date", "series_description", "sop_instance_uid"])
def test_descriptive_columns_are_unbounded(column):
    assert isinstance(DicomImage.__table__.c[column].type, Text)
