# =============================================================================
# Output Mapping Library
# =============================================================================
# Maps staged output artifacts onto storage tables and drives the deferred
# load jobs that materialize the mapping.
# =============================================================================

"""
Output mapping engine.

This library provides:
- SourceResolver: staged artifacts + manifests + configuration entries
- DestinationResolver / BucketCreator: destination table ids and buckets
- SlicerDecider / FormatOverridePolicy: pre-upload slicing decisions
- SchemaReconciler: additive column and primary key reconciliation
- LoadTableTask / LoadTableQueue: deferred remote load jobs
- TableWriter: the upload_tables entry point
- FileWriter: the upload_files entry point (file output mapping)
"""

from .exceptions import (
    OutputMappingError,
    ConfigurationError,
    RemoteOperationError,
    PolicyViolation,
)
from .naming import MappingDestination, is_table_id, sanitize_column_name
from .staging import (
    StagingKind,
    StagedArtifact,
    StagingProvider,
    LocalStaging,
    WorkspaceTableStaging,
    ObjectStoreStaging,
    StagingFactory,
)
from .manifest_adapter import ManifestAdapter
from .sources import MappingSource, SourceResolver
from .environment import BranchInfo, FileSlicer, OutputMappingEnvironment
from .destination import DestinationResolver, BucketCreator
from .slicing import FormatOverridePolicy, SlicerDecider
from .schema import SchemaReconciler
from .metadata import MetadataDefinition, MetadataKind
from .deferred import LoadTableTask, LoadTableQueue, TaskState
from .table_writer import TableWriter
from .file_writer import FileWriter

__all__ = [
    # Exceptions
    "OutputMappingError",
    "ConfigurationError",
    "RemoteOperationError",
    "PolicyViolation",
    # Naming
    "MappingDestination",
    "is_table_id",
    "sanitize_column_name",
    # Staging
    "StagingKind",
    "StagedArtifact",
    "StagingProvider",
    "LocalStaging",
    "WorkspaceTableStaging",
    "ObjectStoreStaging",
    "StagingFactory",
    "ManifestAdapter",
    # Resolution
    "MappingSource",
    "SourceResolver",
    "BranchInfo",
    "FileSlicer",
    "OutputMappingEnvironment",
    "DestinationResolver",
    "BucketCreator",
    "FormatOverridePolicy",
    "SlicerDecider",
    "SchemaReconciler",
    "MetadataDefinition",
    "MetadataKind",
    # Deferred tasks
    "LoadTableTask",
    "LoadTableQueue",
    "TaskState",
    # Entry points
    "TableWriter",
    "FileWriter",
]
