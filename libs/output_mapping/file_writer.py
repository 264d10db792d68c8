# =============================================================================
# File Writer - upload_files Entry Point
# =============================================================================
# File (non-table) output mapping:
#   1. Every configured source must be a staged file
#   2. Every manifest must belong to a staged file
#   3. Each file uploads with its configuration entry, else its manifest
# =============================================================================

"""
File output mapping writer.

Uploads staged files to file storage. Unlike tables there is no deferred
job: each upload is synchronous and returns the new file id.

Example:
    >>> writer = FileWriter(environment)
    >>> writer.upload_files(
    ...     "out/files",
    ...     {"mapping": [{"source": "report.pdf", "tags": ["monthly"]}]},
    ...     "local",
    ... )
    ['1001']
"""

from pathlib import Path
from typing import Any, Optional, Union

from pydantic import ValidationError

from libs.models import FileManifest, FileOutputMappingConfiguration
from libs.storage_api import StorageApiError

from .environment import OutputMappingEnvironment
from .exceptions import ConfigurationError, RemoteOperationError
from .manifest_adapter import ManifestAdapter
from .staging import StagedArtifact, StagingKind, manifest_source_name

__all__ = ["FileWriter"]


class FileWriter:
    """
    Maps staged output files to storage files.

    Args:
        environment: Storage client, branch, staging factory and logger
        manifest_adapter: Manifest parser (JSON by default)
    """

    def __init__(
        self,
        environment: OutputMappingEnvironment,
        manifest_adapter: Optional[ManifestAdapter] = None,
    ) -> None:
        self.environment = environment
        self.client = environment.client
        self.logger = environment.logger
        self.manifest_adapter = manifest_adapter or ManifestAdapter()

    def upload_files(
        self,
        source_path_prefix: str,
        configuration: Union[FileOutputMappingConfiguration, dict[str, Any]],
        staging_storage: str,
    ) -> list[str]:
        """
        Upload every staged file under ``source_path_prefix``.

        A configuration entry replaces the file's manifest entirely; a file
        with neither is uploaded with default options.

        Args:
            source_path_prefix: Staging prefix holding the files
            configuration: File output mapping configuration ``{mapping}``
            staging_storage: Staging name (must be a local staging)

        Returns:
            Storage file ids in file name order

        Raises:
            ConfigurationError: On a missing configured file, an orphaned
                manifest or an invalid manifest
            RemoteOperationError: If an upload fails
        """
        configuration = self._validate(configuration)
        staging = self.environment.staging_factory.get(staging_storage)
        if staging.kind != StagingKind.LOCAL:
            raise ConfigurationError(
                f'Staging "{staging_storage}" does not support file output mapping.'
            )

        # Sliced directories are table artifacts, not files
        files = [a for a in staging.list_artifacts(source_path_prefix) if not a.is_sliced]
        file_names = {f.name for f in files}

        for entry in configuration.mapping:
            if entry.source not in file_names:
                raise ConfigurationError(f"File '{entry.source}' not found.")

        manifests = {}
        for path in staging.list_manifests(source_path_prefix):
            name = manifest_source_name(path)
            if name not in file_names:
                raise ConfigurationError(f"Found orphaned file manifest: '{Path(path).name}'")
            manifests[name] = path

        configured = {}
        for entry in configuration.mapping:
            configured[entry.source] = entry.as_manifest()

        file_ids = []
        processed = set()
        for file in files:
            if file.name in configured:
                manifest = configured[file.name]
                processed.add(file.name)
            elif file.name in manifests:
                path = manifests[file.name]
                manifest = self.manifest_adapter.parse(
                    staging.read_manifest(path), Path(path).name, FileManifest
                )
            else:
                manifest = FileManifest()
            file_ids.append(self._upload(file, manifest))

        unprocessed = [name for name in dict.fromkeys(configured) if name not in processed]
        if unprocessed:
            names = "', '".join(unprocessed)
            raise ConfigurationError(f"Couldn't process output mapping for file(s) '{names}'.")

        self.logger.info(f"Uploaded {len(file_ids)} file(s) from '{source_path_prefix}'")
        return file_ids

    def _validate(self, value) -> FileOutputMappingConfiguration:
        if isinstance(value, FileOutputMappingConfiguration):
            return value
        try:
            return FileOutputMappingConfiguration.model_validate(value)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid file output mapping configuration: {exc}") from exc

    def _branch_tags(self, tags: list[str]) -> list[str]:
        """Prefix tags with the branch id when writing to a development branch."""
        branch = self.environment.branch
        if branch.is_default:
            return list(tags)
        return [f"{branch.id}-{tag}" for tag in tags]

    def _upload(self, file: StagedArtifact, manifest: FileManifest) -> str:
        options = manifest.upload_options()
        options["tags"] = self._branch_tags(manifest.tags)
        try:
            file_id = self.client.upload_file(file.path, options)
        except StorageApiError as exc:
            raise RemoteOperationError(
                f"Cannot upload file '{file.name}' to Storage API: {exc}"
            ) from exc
        self.logger.info(f"Uploaded file '{file.name}' as {file_id}")
        return file_id
