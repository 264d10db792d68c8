# =============================================================================
# Table Writer - upload_tables Entry Point
# =============================================================================
# Resolution phase (no job is submitted until every source resolves):
#   1. SourceResolver pairs artifacts, manifests and configuration entries
#   2. SlicerDecider picks local sources to slice (optional FileSlicer)
#   3. Merged entries are filtered, cleaned and given destinations
# Preparation phase (per source):
#   4. BucketCreator ensures the bucket, SchemaReconciler fixes the table
#   5. Local files are uploaded; a LoadTableTask is built
# Execution phase:
#   6. LoadTableQueue.start() submits all jobs; the caller waits
# =============================================================================

"""
Table output mapping writer.

Example:
    >>> writer = TableWriter(environment)
    >>> queue = writer.upload_tables(
    ...     "out/tables",
    ...     {"mapping": [{"source": "orders.csv", "destination": "out.c-main.orders"}]},
    ...     {"componentId": "keboola.ex-db-mysql", "configurationId": "123"},
    ...     "local",
    ... )
    >>> queue.wait_for_all()
    ['1001']
"""

from typing import Any, Optional, Union

from pydantic import ValidationError

from libs.models import (
    DATATYPE_BACKEND_KEY,
    DATATYPE_TYPE_KEY,
    SYSTEM_METADATA_PROVIDER,
    BucketInfo,
    DataTypeSupport,
    MappingEntry,
    OutputMappingConfiguration,
    SystemMetadata,
    TableInfo,
    TableSchema,
)
from libs.storage_api import StorageApiError

from .deferred import LoadTableQueue, LoadTableTask
from .destination import BucketCreator, DestinationResolver
from .environment import OutputMappingEnvironment
from .exceptions import ConfigurationError, RemoteOperationError
from .metadata import MetadataDefinition
from .naming import MappingDestination, sanitize_column_name
from .schema import SchemaReconciler, column_definition
from .slicing import SlicerDecider
from .sources import MappingSource, SourceResolver
from .staging import StagingProvider

__all__ = ["TableWriter", "TIMESTAMP_COLUMN"]

# System column maintained by storage; never written by components
TIMESTAMP_COLUMN = "_timestamp"


class TableWriter:
    """
    Maps staged output artifacts to storage tables.

    Args:
        environment: Storage client, branch, staging factory, slicer and logger
    """

    def __init__(self, environment: OutputMappingEnvironment) -> None:
        self.environment = environment
        self.client = environment.client
        self.logger = environment.logger

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def upload_tables(
        self,
        source_path_prefix: str,
        configuration: Union[OutputMappingConfiguration, dict[str, Any]],
        system_metadata: Union[SystemMetadata, dict[str, Any]],
        staging_storage: str,
        is_failed_job: bool = False,
        data_type_support: Union[DataTypeSupport, str] = DataTypeSupport.NONE,
    ) -> LoadTableQueue:
        """
        Resolve the output mapping and start one load job per destination.

        Args:
            source_path_prefix: Staging prefix holding the artifacts
            configuration: Output mapping configuration ``{mapping, bucket?}``
            system_metadata: Provenance of the producing run
            staging_storage: Staging name ("local", "workspace-snowflake", ...)
            is_failed_job: Only upload entries with ``write_always``
            data_type_support: Treatment of declared column types

        Returns:
            Started LoadTableQueue; call ``wait_for_all()`` on it

        Raises:
            ConfigurationError: If the mapping cannot be resolved
            PolicyViolation: If a destination bucket breaks branch isolation
            RemoteOperationError: If preparing a destination or submitting a
                job fails
        """
        configuration = self._validate(OutputMappingConfiguration, configuration, "configuration")
        system_metadata = self._validate(SystemMetadata, system_metadata, "system metadata")
        try:
            data_type_support = DataTypeSupport(data_type_support)
        except ValueError as exc:
            raise ConfigurationError(
                f'Data type support "{data_type_support}" is not supported.'
            ) from exc

        staging = self.environment.staging_factory.get(staging_storage)
        sources = self._resolve_sources(staging, source_path_prefix, configuration)

        destination_resolver = DestinationResolver(configuration.bucket)
        resolved = []
        for source in sources:
            entry = self._merged_entry(source)
            if is_failed_job and not entry.write_always:
                self.logger.info(
                    f'Skipping "{source.source_name}": job failed and write_always is not set'
                )
                continue
            entry = self._without_timestamp_column(entry)
            if source.is_sliced and not entry.columns:
                raise ConfigurationError(
                    f'Sliced file "{source.source_name}" columns specification missing.'
                )
            resolved.append((source, entry, destination_resolver.resolve(entry)))

        bucket_creator = BucketCreator(self.client, self.environment.branch)
        reconciler = SchemaReconciler(self.client, self.logger)
        tasks = [
            self._build_task(
                source,
                entry,
                destination,
                system_metadata,
                data_type_support,
                bucket_creator,
                reconciler,
            )
            for source, entry, destination in resolved
        ]

        queue = LoadTableQueue(self.client, tasks, self.logger)
        queue.start()
        return queue

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def _validate(self, model, value, label: str):
        if isinstance(value, model):
            return value
        try:
            return model.model_validate(value)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid output mapping {label}: {exc}") from exc

    def _resolve_sources(
        self,
        staging: StagingProvider,
        prefix: str,
        configuration: OutputMappingConfiguration,
    ) -> list[MappingSource]:
        resolver = SourceResolver(staging)
        sources = resolver.resolve_mapping_sources(prefix, configuration.mapping)

        to_slice = SlicerDecider(self.logger).decide_slice_files(sources)
        if not to_slice:
            return sources
        if self.environment.slicer is None:
            self.logger.debug(f"No slicer configured; {len(to_slice)} file(s) uploaded unsliced")
            return sources

        for source in to_slice:
            self.logger.info(f'Slicing "{source.source_name}"')
            self.environment.slicer.slice(source.artifact.path)
        return resolver.resolve_mapping_sources(prefix, configuration.mapping)

    def _merged_entry(self, source: MappingSource) -> MappingEntry:
        try:
            return source.combined_entry()
        except ValidationError as exc:
            raise ConfigurationError(
                f'Invalid output mapping for "{source.source_name}": {exc}'
            ) from exc

    def _without_timestamp_column(self, entry: MappingEntry) -> MappingEntry:
        """Drop the storage-owned timestamp column from columns and column metadata."""
        columns = [c for c in entry.columns if c.lower() != TIMESTAMP_COLUMN]
        column_metadata = {
            column: items
            for column, items in entry.column_metadata.items()
            if column.lower() != TIMESTAMP_COLUMN
        }
        if len(columns) == len(entry.columns) and len(column_metadata) == len(entry.column_metadata):
            return entry
        self.logger.warning(
            f'Column "{TIMESTAMP_COLUMN}" of "{entry.source}" is a system column and will be skipped.'
        )
        return entry.model_copy(update={"columns": columns, "column_metadata": column_metadata})

    # -------------------------------------------------------------------------
    # Preparation
    # -------------------------------------------------------------------------

    def _get_table(self, table_id: str) -> Optional[TableInfo]:
        try:
            return TableInfo.from_api(self.client.get_table(table_id))
        except StorageApiError as exc:
            if exc.is_not_found:
                return None
            raise RemoteOperationError(f'Failed to read table "{table_id}": {exc}') from exc

    @staticmethod
    def _declared_backend(entry: MappingEntry) -> Optional[str]:
        for item in entry.metadata:
            if item.key == DATATYPE_BACKEND_KEY:
                return item.value or None
        return None

    def _desired_schema(self, entry: MappingEntry) -> TableSchema:
        """Listed columns followed by columns named only in column metadata."""
        columns = list(entry.columns)
        columns += [c for c in entry.column_metadata if c not in entry.columns]
        return TableSchema(
            is_typed=False,
            columns=columns,
            column_metadata=entry.column_metadata,
            backend=self._declared_backend(entry),
        )

    def _typed_definition(
        self,
        destination: MappingDestination,
        entry: MappingEntry,
        bucket: BucketInfo,
    ) -> Optional[dict[str, Any]]:
        """Typed table definition when every column declares a type for the bucket's backend."""
        backend = self._declared_backend(entry)
        if not entry.columns or backend is None or backend != bucket.backend:
            return None

        columns = []
        for column in entry.columns:
            items = entry.column_metadata.get(column, [])
            if not any(item.key == DATATYPE_TYPE_KEY and item.value for item in items):
                return None
            definition, basetype = column_definition(items)
            column_spec: dict[str, Any] = {
                "name": sanitize_column_name(column),
                "definition": definition,
            }
            if basetype:
                column_spec["basetype"] = basetype
            columns.append(column_spec)

        return {
            "name": destination.table_name,
            "primaryKeysNames": [sanitize_column_name(c) for c in entry.primary_key],
            "columns": columns,
        }

    def _create_typed_table(self, bucket: BucketInfo, definition: dict[str, Any]) -> None:
        try:
            self.client.create_table_definition(bucket.id, definition)
        except StorageApiError as exc:
            raise RemoteOperationError(
                f'Failed to create table "{definition["name"]}" in bucket "{bucket.id}": {exc}'
            ) from exc

    def _file_options(self, system_metadata: SystemMetadata) -> dict[str, Any]:
        tags = [f"componentId: {system_metadata.component_id}"]
        if system_metadata.configuration_id:
            tags.append(f"configurationId: {system_metadata.configuration_id}")
        if system_metadata.run_id:
            tags.append(f"runId: {system_metadata.run_id}")
        return {"isPermanent": False, "tags": tags}

    def _data_reference(
        self, source: MappingSource, system_metadata: SystemMetadata
    ) -> dict[str, Any]:
        artifact = source.artifact
        if not artifact.is_local:
            return {"dataWorkspaceId": artifact.workspace_id, "dataObject": artifact.path}

        options = self._file_options(system_metadata)
        try:
            if artifact.is_sliced:
                file_id = self.client.upload_sliced_file(list(artifact.parts), options)
            else:
                file_id = self.client.upload_file(artifact.path, options)
        except StorageApiError as exc:
            raise RemoteOperationError(
                f'Failed to upload file "{source.source_name}": {exc}'
            ) from exc
        return {"dataFileId": file_id}

    def _load_options(
        self,
        source: MappingSource,
        entry: MappingEntry,
        system_metadata: SystemMetadata,
        create_table: bool,
    ) -> dict[str, Any]:
        options = self._data_reference(source, system_metadata)
        options["incremental"] = entry.incremental
        if entry.columns:
            options["columns"] = [sanitize_column_name(c) for c in entry.columns]
        if source.is_local:
            options["delimiter"] = entry.delimiter
            options["enclosure"] = entry.enclosure
        if create_table:
            if entry.primary_key:
                options["primaryKey"] = ",".join(sanitize_column_name(c) for c in entry.primary_key)
            if entry.distribution_key:
                options["distributionKey"] = ",".join(
                    sanitize_column_name(c) for c in entry.distribution_key
                )
        if entry.delete_where_column:
            options["deleteWhereColumn"] = entry.delete_where_column
            options["deleteWhereValues"] = entry.delete_where_values
            options["deleteWhereOperator"] = entry.delete_where_operator
        return options

    def _metadata_definitions(
        self,
        destination: MappingDestination,
        entry: MappingEntry,
        system_metadata: SystemMetadata,
        table_created: bool,
    ) -> list[MetadataDefinition]:
        table_id = destination.table_id
        system_items = system_metadata.last_updated_by_metadata()
        if table_created:
            system_items = system_metadata.created_by_metadata() + system_items

        definitions = [
            MetadataDefinition.for_table(table_id, SYSTEM_METADATA_PROVIDER, system_items),
            MetadataDefinition.for_table(table_id, system_metadata.component_id, entry.metadata),
            MetadataDefinition.for_columns(
                table_id,
                system_metadata.component_id,
                {
                    sanitize_column_name(column): items
                    for column, items in entry.column_metadata.items()
                },
            ),
        ]
        return [definition for definition in definitions if not definition.is_empty()]

    def _build_task(
        self,
        source: MappingSource,
        entry: MappingEntry,
        destination: MappingDestination,
        system_metadata: SystemMetadata,
        data_type_support: DataTypeSupport,
        bucket_creator: BucketCreator,
        reconciler: SchemaReconciler,
    ) -> LoadTableTask:
        bucket = bucket_creator.ensure_destination_bucket(destination, system_metadata)
        table = self._get_table(destination.table_id)

        create_table = table is None
        table_created = create_table
        if table is not None:
            # Typed tables keep the primary key they were defined with
            if not table.is_typed:
                reconciler.reconcile_primary_key(
                    destination.table_id, table.primary_key, entry.primary_key
                )
            reconciler.add_missing_columns(
                destination.table_id,
                TableSchema.from_table_info(table),
                self._desired_schema(entry),
                data_type_support,
            )
        elif data_type_support == DataTypeSupport.AUTHORITATIVE:
            definition = self._typed_definition(destination, entry, bucket)
            if definition is not None:
                self.logger.info(f'Creating typed table "{destination.table_id}"')
                self._create_typed_table(bucket, definition)
                create_table = False

        return LoadTableTask(
            destination,
            self._load_options(source, entry, system_metadata, create_table),
            self._metadata_definitions(destination, entry, system_metadata, table_created),
            create_table=create_table,
        )
