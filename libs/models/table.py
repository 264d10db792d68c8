# =============================================================================
# Table Models Module
# =============================================================================
# Models for storage-side objects and load results:
# - BucketInfo / TableInfo: descriptors returned by the storage API
# - TableSchema: column view used for schema reconciliation
# - TableMetrics / TableResult: load outcome aggregation
# =============================================================================

from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .base import MetadataItem

__all__ = [
    "DATATYPE_BACKEND_KEY",
    "DATATYPE_TYPE_KEY",
    "DATATYPE_BASETYPE_KEY",
    "DATATYPE_LENGTH_KEY",
    "DATATYPE_NULLABLE_KEY",
    "DATATYPE_DEFAULT_KEY",
    "BucketInfo",
    "TableInfo",
    "TableSchema",
    "TableMetrics",
    "TableResult",
]

# Column datatype descriptor keys (column metadata)
DATATYPE_TYPE_KEY = "KBC.datatype.type"
DATATYPE_BASETYPE_KEY = "KBC.datatype.basetype"
DATATYPE_LENGTH_KEY = "KBC.datatype.length"
DATATYPE_NULLABLE_KEY = "KBC.datatype.nullable"
DATATYPE_DEFAULT_KEY = "KBC.datatype.default"

# Table metadata key naming the backend the column types were written for
DATATYPE_BACKEND_KEY = "KBC.datatype.backend"


def _metadata_items(raw: Optional[list[dict]]) -> list[MetadataItem]:
    """Keep key/value of API metadata entries (drops provider, timestamp, ...)."""
    return [
        MetadataItem(key=item["key"], value=item.get("value", ""))
        for item in raw or []
        if item.get("key")
    ]


# =============================================================================
# Bucket Info
# =============================================================================


class BucketInfo(BaseModel):
    """
    Bucket descriptor.

    Attributes:
        id: Bucket id (e.g., "out.c-main")
        name: Bucket name without stage and "c-" prefix (e.g., "main")
        stage: "in" or "out"
        backend: Storage backend (e.g., "snowflake")
        branch_id: Development branch owning the bucket (None = default branch)
    """

    id: str = Field(..., description="Bucket id")
    name: str = Field("", description="Bucket name")
    stage: str = Field("", description="Bucket stage")
    backend: Optional[str] = Field(None, description="Storage backend")
    branch_id: Optional[str] = Field(None, description="Owning development branch")

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "BucketInfo":
        """Build from a storage API bucket detail."""
        branch_id = data.get("idBranch")
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            stage=data.get("stage", ""),
            backend=data.get("backend"),
            branch_id=str(branch_id) if branch_id not in (None, "") else None,
        )

    model_config = ConfigDict(frozen=True)


# =============================================================================
# Table Info
# =============================================================================


class TableInfo(BaseModel):
    """
    Table descriptor returned after a successful load.

    Attributes:
        id: Table id (e.g., "out.c-main.orders")
        name: Table name
        display_name: Display name
        columns: Ordered column names
        primary_key: Primary key column names
        is_typed: Column types are authoritative (never auto-migrated)
        backend: Backend of the owning bucket
        last_import_date: Last import timestamp string
        last_change_date: Last change timestamp string
        metadata: Table metadata items
        column_metadata: Column name -> metadata items
    """

    id: str = Field(..., description="Table id")
    name: str = Field("", description="Table name")
    display_name: str = Field("", description="Display name")
    columns: list[str] = Field(default_factory=list, description="Column names")
    primary_key: list[str] = Field(default_factory=list, description="Primary key")
    is_typed: bool = Field(False, description="Typed table")
    backend: Optional[str] = Field(None, description="Bucket backend")
    last_import_date: Optional[str] = Field(None, description="Last import date")
    last_change_date: Optional[str] = Field(None, description="Last change date")
    metadata: list[MetadataItem] = Field(default_factory=list, description="Table metadata")
    column_metadata: dict[str, list[MetadataItem]] = Field(
        default_factory=dict, description="Column metadata"
    )

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "TableInfo":
        """Build from a storage API table detail."""
        bucket = data.get("bucket") or {}
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            display_name=data.get("displayName", data.get("name", "")),
            columns=list(data.get("columns") or []),
            primary_key=list(data.get("primaryKey") or []),
            is_typed=bool(data.get("isTyped", False)),
            backend=bucket.get("backend"),
            last_import_date=data.get("lastImportDate"),
            last_change_date=data.get("lastChangeDate"),
            metadata=_metadata_items(data.get("metadata")),
            column_metadata={
                column: _metadata_items(items)
                for column, items in (data.get("columnMetadata") or {}).items()
            },
        )


# =============================================================================
# Table Schema
# =============================================================================


class TableSchema(BaseModel):
    """
    Column view of a table used by schema reconciliation.

    Attributes:
        is_typed: Typed tables are schema-authoritative and never widened
        columns: Ordered column names
        column_metadata: Column name -> metadata items
        backend: Backend the column types were written for
    """

    is_typed: bool = Field(False, description="Typed table")
    columns: list[str] = Field(default_factory=list, description="Ordered column names")
    column_metadata: dict[str, list[MetadataItem]] = Field(
        default_factory=dict, description="Column metadata"
    )
    backend: Optional[str] = Field(None, description="Backend of column types")

    @classmethod
    def from_table_info(cls, table: TableInfo) -> "TableSchema":
        """Live schema of an existing destination table."""
        return cls(
            is_typed=table.is_typed,
            columns=table.columns,
            column_metadata=table.column_metadata,
            backend=table.backend,
        )


# =============================================================================
# Metrics and Results
# =============================================================================


@dataclass
class TableMetrics:
    """Bytes transferred by one load job."""

    table_id: str
    compressed_bytes: int = 0
    uncompressed_bytes: int = 0

    @classmethod
    def from_job(cls, table_id: str, job: dict[str, Any]) -> "TableMetrics":
        """Read metrics from a finished job; missing values default to 0."""
        metrics = job.get("metrics") or {}
        return cls(
            table_id=table_id,
            compressed_bytes=int(metrics.get("inBytes") or 0),
            uncompressed_bytes=int(metrics.get("inBytesUncompressed") or 0),
        )


@dataclass
class TableResult:
    """
    Tables and metrics of successfully loaded destinations.

    Entries are keyed by table id and kept in insertion (submission) order.
    """

    _tables: dict[str, TableInfo] = field(default_factory=dict)
    _metrics: dict[str, TableMetrics] = field(default_factory=dict)

    def add(self, table: TableInfo, metrics: TableMetrics) -> None:
        self._tables[table.id] = table
        self._metrics[table.id] = metrics

    @property
    def tables(self) -> list[TableInfo]:
        return list(self._tables.values())

    @property
    def metrics(self) -> list[TableMetrics]:
        return list(self._metrics.values())

    def __len__(self) -> int:
        return len(self._tables)
