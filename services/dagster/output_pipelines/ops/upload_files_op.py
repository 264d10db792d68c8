# =============================================================================
# Upload Files Op - Staged Output -> Storage Files
# =============================================================================
# Uploads the staged output files of one component run with their tags and
# options. Fails the op on the first failed upload.
# =============================================================================

from typing import Any, Dict

from dagster import op, OpExecutionContext, In, Out
from pydantic import ValidationError

from libs.models import FileUploadRequest
from libs.output_mapping import (
    FileWriter,
    LocalStaging,
    OutputMappingEnvironment,
    StagingFactory,
)

# Local output directory for files of a component run
DEFAULT_LOCAL_FILES_ROOT = "/data/out/files"


def _upload_output_files(storage_api, request: Dict[str, Any], log) -> Dict[str, Any]:
    """
    Core logic for uploading output files.

    Args:
        storage_api: StorageApiResource instance
        request: Upload request dict (FileUploadRequest shape)
        log: Logger instance (context.log)

    Returns:
        Result dict containing:
        - file_ids: Storage file ids in file name order
        - file_count: Number of uploaded files

    Raises:
        ValueError: If the request is invalid
        OutputMappingError: If the mapping cannot be resolved or an upload fails
    """
    if "value" in request and isinstance(request.get("value"), dict):
        request = request["value"]

    try:
        validated = FileUploadRequest.model_validate(request)
    except ValidationError as e:
        raise ValueError(f"Invalid file upload request: {e}") from e

    log.info(
        f"Uploading files from '{validated.source_path_prefix}' "
        f"(entries={len(validated.configuration.mapping)})"
    )

    local_root = validated.local_root or DEFAULT_LOCAL_FILES_ROOT
    client = storage_api.get_client()
    try:
        environment = OutputMappingEnvironment(
            client=client,
            branch=storage_api.get_branch(),
            staging_factory=StagingFactory({"local": LocalStaging(local_root)}),
            logger=log,
        )
        file_ids = FileWriter(environment).upload_files(
            validated.source_path_prefix,
            validated.configuration,
            validated.staging,
        )
    finally:
        client.close()

    return {
        "file_ids": file_ids,
        "file_count": len(file_ids),
    }


@op(
    ins={"request": In(dagster_type=dict)},
    out={"upload_result": Out(dagster_type=dict)},
    required_resource_keys={"storage_api"},
)
def upload_output_files(context: OpExecutionContext, request: dict) -> dict:
    """
    Upload the staged output files of a component run to storage.

    Returns:
        Upload result dict containing file_ids and file_count
    """
    return _upload_output_files(
        storage_api=context.resources.storage_api,
        request=request,
        log=context.log,
    )
