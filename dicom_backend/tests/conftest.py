import json
import logging

from pytest import fixture
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from ..db.schema import upgrade_catalog_schema
from ..db.session import get_db, make_engine
from ..dependencies import get_blob_store
from ..main import app
from ..services.catalog_service import CatalogService
from ..services.storage_service import LocalBlobStore


def pytest_configure(config):
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


# 128 byte preamble, the DICM magic, then a little filler
DICOM_BYTES = b"\x00" * 128 + b"DICM" + bytes(range(256)) * 4


@fixture
def dicom_bytes():
    return DICOM_BYTES


@fixture
def engine(tmp_path):
    """Fresh SQLite catalog for each test"""
    eng = make_engine(f"sqlite:///{tmp_path / 'catalog.db'}")
    upgrade_catalog_schema(eng)
    yield eng
    eng.dispose()


@fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@fixture
def catalog(db_session):
    return CatalogService(db_session)


@fixture
def blob_store(tmp_path):
    return LocalBlobStore(tmp_path / "blobs")


@fixture
def client(session_factory, blob_store):
    """TestClient wired to the temporary catalog and blob store"""

    def _get_test_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_test_db
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@fixture
def upload(client, dicom_bytes):
    """Factory fixture that posts a file (and optional metadata) to the upload route"""

    def _upload(filename="scan.dcm", content=None, content_type="application/dicom", metadata=None):
        data = {}
        if metadata is not None:
            data["metadata"] = metadata if isinstance(metadata, str) else json.dumps(metadata)
        content = dicom_bytes if content is None else content
        return client.post(
            "/api/image/upload",
            files={"file": (filename, content, content_type)},
            data=data,
        )

    return _upload
