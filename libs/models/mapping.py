# =============================================================================
# Mapping Models Module
# =============================================================================
# Defines the validated shapes that enter the output-mapping core:
# - TableManifest: sidecar descriptor written next to a staged artifact
# - MappingEntry: configuration record (manifest shape + required source)
# - OutputMappingConfiguration: {mapping: [...], bucket?}
# - OutputMappingRequest: one upload_tables invocation (used by the op)
# =============================================================================

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .base import MetadataItem, merge_column_metadata, merge_metadata
from .provenance import SystemMetadata

__all__ = [
    "DEFAULT_DELIMITER",
    "DEFAULT_ENCLOSURE",
    "DataTypeSupport",
    "TableManifest",
    "MappingEntry",
    "OutputMappingConfiguration",
    "OutputMappingRequest",
    "combine_manifest_and_entry",
]

DEFAULT_DELIMITER = ","
DEFAULT_ENCLOSURE = '"'


# =============================================================================
# Data Type Support Enum
# =============================================================================


class DataTypeSupport(str, Enum):
    """
    How column data types declared in manifests are treated.

    - authoritative: types create typed tables and typed columns
    - hints: types are used for new columns only
    - none: types are ignored (columns are always added untyped)
    """

    AUTHORITATIVE = "authoritative"
    HINTS = "hints"
    NONE = "none"


# =============================================================================
# Table Manifest Model
# =============================================================================


def _clean_names(values: list[str]) -> list[str]:
    """Trim names, drop empty ones and deduplicate preserving order."""
    cleaned = [v.strip() for v in values if isinstance(v, str) and v.strip()]
    return list(dict.fromkeys(cleaned))


class TableManifest(BaseModel):
    """
    Sidecar manifest for one staged table (``<name>.manifest``).

    Supplies schema and metadata a configuration entry may omit. Every field
    is optional; fields that were not written in the manifest are not
    "set" and never override configuration values during merging.

    Attributes:
        destination: Destination table id (e.g., "out.c-main.orders")
        columns: Ordered column names (required for headless sliced files)
        column_metadata: Column name -> metadata items (datatype descriptors)
        metadata: Table metadata items
        primary_key: Primary key column names
        incremental: Append instead of replacing table content
        write_always: Upload even when the producing job failed
        delimiter: CSV delimiter (legacy, only "," is accepted at upload)
        enclosure: CSV enclosure (legacy, only '"' is accepted at upload)
        delete_where_column: Column filter for incremental delete
        delete_where_values: Values for the delete filter
        delete_where_operator: "eq" or "ne"
        distribution_key: Distribution key for new tables
    """

    destination: Optional[str] = Field(None, description="Destination table id")
    columns: list[str] = Field(default_factory=list, description="Ordered column names")
    column_metadata: dict[str, list[MetadataItem]] = Field(
        default_factory=dict,
        description="Column name -> metadata items",
    )
    metadata: list[MetadataItem] = Field(
        default_factory=list, description="Table metadata items"
    )
    primary_key: list[str] = Field(default_factory=list, description="Primary key columns")
    incremental: bool = Field(False, description="Incremental load")
    write_always: bool = Field(False, description="Upload even if the job failed")
    delimiter: str = Field(DEFAULT_DELIMITER, description="CSV delimiter")
    enclosure: str = Field(DEFAULT_ENCLOSURE, description="CSV enclosure")
    delete_where_column: Optional[str] = Field(None, description="Delete filter column")
    delete_where_values: list[str] = Field(
        default_factory=list, description="Delete filter values"
    )
    delete_where_operator: Literal["eq", "ne"] = Field("eq", description="Delete filter operator")
    distribution_key: list[str] = Field(
        default_factory=list, description="Distribution key columns"
    )

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: Optional[str]) -> Optional[str]:
        """Normalize empty destinations to None."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("columns", "primary_key", "distribution_key")
    @classmethod
    def validate_names(cls, v: list[str]) -> list[str]:
        """Trim, drop empty and deduplicate column name lists."""
        return _clean_names(v)

    @field_validator("delete_where_values", mode="before")
    @classmethod
    def coerce_delete_values(cls, v):
        """Delete filter values are compared as strings."""
        if isinstance(v, list):
            return [str(item) for item in v]
        return v

    @field_validator("delimiter")
    @classmethod
    def validate_delimiter(cls, v: str) -> str:
        if len(v) != 1:
            raise ValueError(f"Delimiter must be a single character, got {v!r}")
        return v

    @field_validator("enclosure")
    @classmethod
    def validate_enclosure(cls, v: str) -> str:
        if len(v) > 1:
            raise ValueError(f"Enclosure must be at most one character, got {v!r}")
        return v

    @model_validator(mode="after")
    def validate_delete_where(self) -> "TableManifest":
        """Delete filter values require a delete filter column."""
        if self.delete_where_values and not self.delete_where_column:
            raise ValueError("delete_where_values requires delete_where_column")
        return self

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "destination": "out.c-main.orders",
                "columns": ["id", "customer", "total"],
                "primary_key": ["id"],
                "incremental": True,
                "column_metadata": {
                    "total": [
                        {"key": "KBC.datatype.type", "value": "NUMBER"},
                        {"key": "KBC.datatype.basetype", "value": "NUMERIC"},
                    ]
                },
                "metadata": [{"key": "KBC.description", "value": "Orders"}],
            }
        },
    )


# =============================================================================
# Mapping Entry Model
# =============================================================================


class MappingEntry(TableManifest):
    """
    Output mapping configuration entry.

    Same shape as a manifest plus the required ``source`` naming the staged
    artifact (file name for local staging, table/object name for
    workspaces).
    """

    source: str = Field(..., description="Staged artifact name")

    @field_validator("source")
    @classmethod
    def validate_source(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Mapping source cannot be empty")
        return v

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "source": "orders.csv",
                "destination": "out.c-main.orders",
                "incremental": True,
                "primary_key": ["id"],
            }
        },
    )


def combine_manifest_and_entry(
    source_name: str,
    manifest: Optional[TableManifest],
    entry: Optional[MappingEntry],
) -> MappingEntry:
    """
    Merge a manifest with a configuration entry into one mapping entry.

    Fields explicitly set in the configuration entry override the manifest.
    Table metadata merges by key and column metadata merges per column by
    key, configuration winning in both cases.

    Args:
        source_name: Name of the staged artifact
        manifest: Parsed manifest (None if absent)
        entry: Configuration entry (None if absent)

    Returns:
        MappingEntry with ``source`` set to ``source_name``
    """
    data: dict = {}
    metadata: list[MetadataItem] = []
    column_metadata: dict[str, list[MetadataItem]] = {}

    if manifest is not None:
        data.update(
            manifest.model_dump(exclude_unset=True, exclude={"metadata", "column_metadata"})
        )
        metadata = list(manifest.metadata)
        column_metadata = dict(manifest.column_metadata)

    if entry is not None:
        data.update(
            entry.model_dump(
                exclude_unset=True, exclude={"source", "metadata", "column_metadata"}
            )
        )
        metadata = merge_metadata(metadata, entry.metadata)
        column_metadata = merge_column_metadata(column_metadata, entry.column_metadata)

    data["source"] = source_name
    if metadata:
        data["metadata"] = metadata
    if column_metadata:
        data["column_metadata"] = column_metadata
    return MappingEntry.model_validate(data)


# =============================================================================
# Output Mapping Configuration Model
# =============================================================================


class OutputMappingConfiguration(BaseModel):
    """
    Table output mapping configuration of one component run.

    Attributes:
        mapping: Configuration entries, in processing order
        bucket: Default bucket for sources without an explicit destination
    """

    mapping: list[MappingEntry] = Field(
        default_factory=list, description="Output mapping entries"
    )
    bucket: Optional[str] = Field(None, description="Default destination bucket id")

    @field_validator("bucket")
    @classmethod
    def validate_bucket(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    model_config = ConfigDict(extra="forbid")


# =============================================================================
# Output Mapping Request Model
# =============================================================================


class OutputMappingRequest(BaseModel):
    """
    One upload_tables invocation as passed to the Dagster op.

    Attributes:
        source_path_prefix: Staging prefix holding the artifacts
        staging: Staging name ("local", "workspace-snowflake", "workspace-s3", ...)
        configuration: Output mapping configuration
        system_metadata: Provenance of the producing run
        is_failed_job: Producing job failed (only write_always entries are uploaded)
        data_type_support: Treatment of declared column types
        local_root: Root directory for local files and manifests
        workspace_id: Workspace id for workspace stagings
    """

    source_path_prefix: str = Field("", description="Staging prefix")
    staging: str = Field("local", description="Staging name")
    configuration: OutputMappingConfiguration = Field(
        default_factory=OutputMappingConfiguration,
        description="Output mapping configuration",
    )
    system_metadata: SystemMetadata = Field(..., description="Run provenance")
    is_failed_job: bool = Field(False, description="Producing job failed")
    data_type_support: DataTypeSupport = Field(
        DataTypeSupport.NONE, description="Column type treatment"
    )
    local_root: Optional[str] = Field(None, description="Local data root")
    workspace_id: Optional[str] = Field(None, description="Workspace id")

    model_config = ConfigDict(extra="forbid")
