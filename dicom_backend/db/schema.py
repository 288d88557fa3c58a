"""
Catalog schema history and additive upgrades.

The ``images`` table has grown over time by adding optional columns. Each
step is recorded below as a field set; the list is append-only. Upgrading an
existing database adds whatever model columns the live table lacks, so rows
written under an older schema read back with the newer fields absent.
"""
import logging
from datetime import datetime, timezone
from typing import Iterable, List, NamedTuple, Tuple

from sqlalchemy import Column, DateTime, Integer, String, Table, inspect, select, text
from sqlalchemy.engine import Connection, Engine

from dicom_backend.db.base import Base
from dicom_backend.models.dicom_image import DicomImage

logger = logging.getLogger(__name__)


class SchemaVersion(NamedTuple):
    number: int
    name: str
    columns: Tuple[str, ...]


SCHEMA_VERSIONS: Tuple[SchemaVersion, ...] = (
    SchemaVersion(1, "initial", (
        "id", "name", "content_type", "created_at", "modified_at",
    )),
    SchemaVersion(2, "dicom_identity", (
        "patient_id", "patient_name", "modality",
        "study_instance_uid", "series_instance_uid", "sop_instance_uid",
    )),
    SchemaVersion(3, "compression_flag", (
        "is_compressed",
    )),
    SchemaVersion(4, "file_system_storage", (
        "storage_key", "file_size",
    )),
    SchemaVersion(5, "extended_dicom_metadata", (
        "upload_date", "last_accessed",
        "patient_birth_date", "patient_sex",
        "rows", "columns", "image_type",
        "study_id", "study_date", "study_time",
        "series_number", "series_description", "body_part",
        "window_center", "window_width", "instance_number",
        "has_annotations", "annotation_type", "annotation_label", "annotation_data",
    )),
)

CURRENT_VERSION = SCHEMA_VERSIONS[-1].number

schema_versions_table = Table(
    "catalog_schema_versions",
    Base.metadata,
    Column("version", Integer, primary_key=True),
    Column("name", String(100), nullable=False),
    Column("applied_at", DateTime(timezone=True), nullable=False),
)


def versioned_columns() -> List[str]:
    """All column names across the schema history, in order of introduction."""
    return [name for version in SCHEMA_VERSIONS for name in version.columns]


def _add_column_sql(conn: Connection, table: Table, column: Column) -> str:
    dialect = conn.dialect
    preparer = dialect.identifier_preparer
    col_type = column.type.compile(dialect=dialect)
    sql = f"ALTER TABLE {preparer.format_table(table)} ADD COLUMN {preparer.format_column(column)} {col_type}"
    if column.server_default is not None:
        default = column.server_default.arg
        if hasattr(default, "compile"):
            default = default.compile(dialect=dialect)
        sql += f" DEFAULT {default}"
    return sql


def _add_missing_columns(conn: Connection, table: Table) -> List[str]:
    existing = {col["name"] for col in inspect(conn).get_columns(table.name)}
    added = []
    for column in table.columns:
        if column.name in existing:
            continue
        if column.primary_key:
            raise RuntimeError(f"Cannot add primary key column {column.name} to existing table {table.name}")
        conn.execute(text(_add_column_sql(conn, table, column)))
        added.append(column.name)
    for index in table.indexes:
        index.create(bind=conn, checkfirst=True)
    return added


def _stamp_versions(conn: Connection, versions: Iterable[SchemaVersion]) -> None:
    applied = set(conn.execute(select(schema_versions_table.c.version)).scalars())
    now = datetime.now(timezone.utc)
    for version in versions:
        if version.number not in applied:
            conn.execute(schema_versions_table.insert().values(
                version=version.number, name=version.name, applied_at=now
            ))


def upgrade_catalog_schema(engine: Engine) -> List[str]:
    """Bring the catalog tables up to the current schema.

    Creates missing tables outright. For an existing ``images`` table, adds
    each missing column as nullable (or with its server default) and creates
    missing indexes. Returns the names of columns that were added.
    """
    table = DicomImage.__table__
    with engine.begin() as conn:
        had_table = inspect(conn).has_table(table.name)
        Base.metadata.create_all(bind=conn)
        added = _add_missing_columns(conn, table) if had_table else []
        _stamp_versions(conn, SCHEMA_VERSIONS)

    if added:
        logger.info(f"Catalog schema upgraded, added columns: {', '.join(added)}")
    logger.info(f"Catalog schema at version {CURRENT_VERSION}")
    return added


def applied_versions(engine: Engine) -> List[int]:
    with engine.connect() as conn:
        if not inspect(conn).has_table(schema_versions_table.name):
            return []
        rows = conn.execute(schema_versions_table.select().order_by(schema_versions_table.c.version))
        return [row.version for row in rows]
