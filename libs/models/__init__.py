# =============================================================================
# Data Models Library
# =============================================================================
# Pydantic models and schemas for the Output Mapping Pipeline.
# =============================================================================

"""
Data models for the output mapping pipeline.

This library provides:
- MetadataItem: Key/value metadata entries
- TableManifest / MappingEntry: Validated manifest and configuration shapes
- FileManifest / FileMappingEntry: File output mapping shapes
- SystemMetadata: Run provenance
- BucketInfo / TableInfo / TableSchema: Storage-side descriptors
- TableMetrics / TableResult: Load outcome aggregation
- Configuration models
"""

__version__ = "0.1.0"

# Base models
from .base import (
    MetadataItem,
    merge_metadata,
    merge_column_metadata,
)

# Provenance models
from .provenance import (
    SYSTEM_METADATA_PROVIDER,
    SystemMetadata,
)

# Mapping models
from .mapping import (
    DEFAULT_DELIMITER,
    DEFAULT_ENCLOSURE,
    DataTypeSupport,
    TableManifest,
    MappingEntry,
    OutputMappingConfiguration,
    OutputMappingRequest,
    combine_manifest_and_entry,
)

# File mapping models
from .file import (
    FileManifest,
    FileMappingEntry,
    FileOutputMappingConfiguration,
    FileUploadRequest,
)

# Table models
from .table import (
    DATATYPE_BACKEND_KEY,
    DATATYPE_TYPE_KEY,
    DATATYPE_BASETYPE_KEY,
    DATATYPE_LENGTH_KEY,
    DATATYPE_NULLABLE_KEY,
    DATATYPE_DEFAULT_KEY,
    BucketInfo,
    TableInfo,
    TableSchema,
    TableMetrics,
    TableResult,
)

# Configuration models
from .config import (
    StorageApiSettings,
    MinIOSettings,
)

__all__ = [
    # Base models
    "MetadataItem",
    "merge_metadata",
    "merge_column_metadata",
    # Provenance models
    "SYSTEM_METADATA_PROVIDER",
    "SystemMetadata",
    # Mapping models
    "DEFAULT_DELIMITER",
    "DEFAULT_ENCLOSURE",
    "DataTypeSupport",
    "TableManifest",
    "MappingEntry",
    "OutputMappingConfiguration",
    "OutputMappingRequest",
    "combine_manifest_and_entry",
    # File mapping models
    "FileManifest",
    "FileMappingEntry",
    "FileOutputMappingConfiguration",
    "FileUploadRequest",
    # Table models
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
    # Configuration models
    "StorageApiSettings",
    "MinIOSettings",
]
