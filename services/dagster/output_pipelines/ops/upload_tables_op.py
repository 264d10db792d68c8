# =============================================================================
# Upload Tables Op - Staged Output -> Storage Tables
# =============================================================================
# Resolves the output mapping of one component run and waits for every
# table load job. Fails the op on the first failed load.
# =============================================================================

from dataclasses import asdict
from typing import Any, Dict

from dagster import op, OpExecutionContext, In, Out
from pydantic import ValidationError

from libs.models import OutputMappingRequest
from libs.output_mapping import (
    LocalStaging,
    OutputMappingEnvironment,
    StagingFactory,
    TableWriter,
    WorkspaceTableStaging,
)

# Local output directory of a component run
DEFAULT_LOCAL_ROOT = "/data/out/tables"

# Database workspaces; manifests are read from the local root
TABLE_WORKSPACE_STAGINGS = ("workspace-snowflake", "workspace-bigquery")
OBJECT_STORE_STAGING = "workspace-s3"


def _build_staging_factory(minio, request: OutputMappingRequest) -> StagingFactory:
    """
    Register the stagings usable by this request.

    Workspace stagings need ``workspace_id``; asking for one without it is
    an error rather than an unknown staging.
    """
    local_root = request.local_root or DEFAULT_LOCAL_ROOT
    factory = StagingFactory({"local": LocalStaging(local_root)})

    if request.staging in TABLE_WORKSPACE_STAGINGS + (OBJECT_STORE_STAGING,) and not request.workspace_id:
        raise ValueError(f'Staging "{request.staging}" requires workspace_id')

    if request.workspace_id:
        for name in TABLE_WORKSPACE_STAGINGS:
            factory.register(name, WorkspaceTableStaging(request.workspace_id, local_root))
        if request.staging == OBJECT_STORE_STAGING:
            factory.register(OBJECT_STORE_STAGING, minio.get_workspace_staging(request.workspace_id))
    return factory


def _upload_output_tables(
    storage_api,
    minio,
    request: Dict[str, Any],
    run_id: str,
    log,
) -> Dict[str, Any]:
    """
    Core logic for uploading output tables.

    This function is extracted for easier unit testing without Dagster context.

    Args:
        storage_api: StorageApiResource instance
        minio: MinIOResource instance
        request: Upload request dict (OutputMappingRequest shape)
        run_id: Dagster run ID (used as provenance run id when none is given)
        log: Logger instance (context.log)

    Returns:
        Result dict containing:
        - job_ids: Storage job ids in submission order
        - tables: Loaded table ids
        - metrics: Per-table byte metrics
        - task_count: Number of load tasks

    Raises:
        ValueError: If the request is invalid
        OutputMappingError: If resolution or any load fails
    """
    # Unwrap 'value' key if present (Dagster wraps op inputs in 'value' when passed via run config)
    if "value" in request and isinstance(request.get("value"), dict):
        request = request["value"]

    try:
        validated = OutputMappingRequest.model_validate(request)
    except ValidationError as e:
        raise ValueError(f"Invalid upload request: {e}") from e

    system_metadata = validated.system_metadata
    if not system_metadata.run_id:
        system_metadata = system_metadata.model_copy(update={"run_id": run_id})

    log.info(
        f"Uploading tables from '{validated.source_path_prefix}' "
        f"(staging={validated.staging}, entries={len(validated.configuration.mapping)})"
    )

    client = storage_api.get_client()
    try:
        environment = OutputMappingEnvironment(
            client=client,
            branch=storage_api.get_branch(),
            staging_factory=_build_staging_factory(minio, validated),
            logger=log,
        )
        queue = TableWriter(environment).upload_tables(
            validated.source_path_prefix,
            validated.configuration,
            system_metadata,
            validated.staging,
            is_failed_job=validated.is_failed_job,
            data_type_support=validated.data_type_support,
        )
        job_ids = queue.wait_for_all()
    finally:
        client.close()

    result = queue.get_table_result()
    log.info(f"Loaded {len(result)} table(s) with {len(job_ids)} job(s)")

    return {
        "job_ids": job_ids,
        "tables": [table.id for table in result.tables],
        "metrics": [asdict(metrics) for metrics in result.metrics],
        "task_count": queue.get_task_count(),
    }


@op(
    ins={"request": In(dagster_type=dict)},
    out={"upload_result": Out(dagster_type=dict)},
    required_resource_keys={"storage_api", "minio"},
)
def upload_output_tables(context: OpExecutionContext, request: dict) -> dict:
    """
    Upload the staged output tables of a component run to storage.

    Args:
        context: Dagster op execution context
        request: Upload request dict with source_path_prefix, staging,
            configuration, system_metadata, etc.

    Returns:
        Upload result dict containing job_ids, tables, metrics and task_count

    Raises:
        ValueError: If the request is invalid
        OutputMappingError: If resolution or any load fails
    """
    return _upload_output_tables(
        storage_api=context.resources.storage_api,
        minio=context.resources.minio,
        request=request,
        run_id=context.run_id,
        log=context.log,
    )
