# =============================================================================
# Staging Providers - Where Output Artifacts Live Before Mapping
# =============================================================================
# - LocalStaging: files and sliced directories on the local filesystem
# - WorkspaceTableStaging: tables in a database workspace (not enumerable)
# - ObjectStoreStaging: objects in an S3-compatible workspace (MinIO)
# - StagingFactory: staging name ("local", "workspace-s3", ...) -> provider
# =============================================================================

"""
Staging providers.

A provider reports the staged artifacts under a prefix (name, byte size,
sliced-ness) and the sidecar manifests (``<name>.manifest``) next to them.
Database workspaces cannot list their tables; sources there are derived
from configuration entries and manifests instead.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol

from minio import Minio
from minio.error import S3Error

from .exceptions import ConfigurationError, RemoteOperationError

__all__ = [
    "MANIFEST_SUFFIX",
    "StagingKind",
    "StagedArtifact",
    "StagingProvider",
    "LocalStaging",
    "WorkspaceTableStaging",
    "ObjectStoreStaging",
    "StagingFactory",
    "manifest_source_name",
]

logger = logging.getLogger(__name__)

MANIFEST_SUFFIX = ".manifest"


def manifest_source_name(manifest_path: str) -> str:
    """Artifact name a manifest belongs to ("dir/orders.csv.manifest" -> "orders.csv")."""
    return Path(manifest_path).name[: -len(MANIFEST_SUFFIX)]


class StagingKind(str, Enum):
    """Kind of staging an artifact lives in."""

    LOCAL = "local"
    WORKSPACE_TABLE = "workspace-table"
    WORKSPACE_OBJECT = "workspace-object"


@dataclass(frozen=True)
class StagedArtifact:
    """
    Physical artifact reference.

    Attributes:
        name: Artifact name (file name, directory name, table or object name)
        path: Local path, workspace table name or workspace-relative object path
        kind: Staging kind
        size: Byte size (sum of parts for sliced artifacts, None if unknown)
        is_sliced: Artifact is a directory/prefix of part files
        parts: Part paths of a sliced artifact
        workspace_id: Workspace holding the artifact (workspace kinds only)
    """

    name: str
    path: str
    kind: StagingKind
    size: Optional[int] = None
    is_sliced: bool = False
    parts: tuple[str, ...] = ()
    workspace_id: Optional[str] = None

    @property
    def is_local(self) -> bool:
        return self.kind == StagingKind.LOCAL


class StagingProvider(Protocol):
    """Enumerates staged artifacts and manifests."""

    kind: StagingKind
    enumerable: bool

    def list_artifacts(self, prefix: str) -> list[StagedArtifact]: ...

    def list_manifests(self, prefix: str) -> list[str]: ...

    def read_manifest(self, path: str) -> str: ...

    def artifact_for(self, prefix: str, name: str) -> StagedArtifact: ...


# =============================================================================
# Local Filesystem
# =============================================================================


class LocalStaging:
    """
    Artifacts on the local filesystem under ``root/prefix``.

    A regular file is one artifact; a directory is one sliced artifact whose
    files are its parts. Files ending with ``.manifest`` are manifests.
    """

    kind = StagingKind.LOCAL
    enumerable = True

    def __init__(self, root: str) -> None:
        self.root = Path(root)

    def _directory(self, prefix: str) -> Path:
        return self.root / prefix.strip("/") if prefix.strip("/") else self.root

    def list_artifacts(self, prefix: str) -> list[StagedArtifact]:
        directory = self._directory(prefix)
        if not directory.is_dir():
            return []

        artifacts = []
        for entry in sorted(directory.iterdir()):
            if entry.name.endswith(MANIFEST_SUFFIX):
                continue
            if entry.is_dir():
                parts = sorted(p for p in entry.iterdir() if p.is_file())
                artifacts.append(
                    StagedArtifact(
                        name=entry.name,
                        path=str(entry),
                        kind=self.kind,
                        size=sum(p.stat().st_size for p in parts),
                        is_sliced=True,
                        parts=tuple(str(p) for p in parts),
                    )
                )
            else:
                artifacts.append(
                    StagedArtifact(
                        name=entry.name,
                        path=str(entry),
                        kind=self.kind,
                        size=entry.stat().st_size,
                    )
                )
        return artifacts

    def list_manifests(self, prefix: str) -> list[str]:
        directory = self._directory(prefix)
        if not directory.is_dir():
            return []
        return [
            str(entry)
            for entry in sorted(directory.iterdir())
            if entry.is_file() and entry.name.endswith(MANIFEST_SUFFIX)
        ]

    def read_manifest(self, path: str) -> str:
        return Path(path).read_text(encoding="utf-8")

    def artifact_for(self, prefix: str, name: str) -> StagedArtifact:
        path = self._directory(prefix) / name
        return StagedArtifact(name=name, path=str(path), kind=self.kind, size=0)


# =============================================================================
# Database Workspace
# =============================================================================


class WorkspaceTableStaging:
    """
    Tables in a database workspace (e.g., Snowflake, BigQuery).

    Workspace tables are not enumerated; manifests are read from the local
    ``manifest_root`` directory.
    """

    kind = StagingKind.WORKSPACE_TABLE
    enumerable = False

    def __init__(self, workspace_id: str, manifest_root: str) -> None:
        self.workspace_id = workspace_id
        self._manifests = LocalStaging(manifest_root)

    def list_artifacts(self, prefix: str) -> list[StagedArtifact]:
        return []

    def list_manifests(self, prefix: str) -> list[str]:
        return self._manifests.list_manifests(prefix)

    def read_manifest(self, path: str) -> str:
        return self._manifests.read_manifest(path)

    def artifact_for(self, prefix: str, name: str) -> StagedArtifact:
        return StagedArtifact(
            name=name,
            path=name,
            kind=self.kind,
            workspace_id=self.workspace_id,
        )


# =============================================================================
# Object Store Workspace (MinIO / S3)
# =============================================================================


class ObjectStoreStaging:
    """
    Objects in an S3-compatible workspace.

    Objects live under ``<workspace_id>/<prefix>/`` in ``bucket``. An object
    directly under the prefix is one artifact; objects nested one level
    deeper form a sliced artifact named after the directory.
    """

    kind = StagingKind.WORKSPACE_OBJECT
    enumerable = True

    def __init__(self, client: Minio, bucket: str, workspace_id: str) -> None:
        self.client = client
        self.bucket = bucket
        self.workspace_id = workspace_id

    def _key_prefix(self, prefix: str) -> str:
        prefix = prefix.strip("/")
        if prefix:
            return f"{self.workspace_id}/{prefix}/"
        return f"{self.workspace_id}/"

    def _list_objects(self, prefix: str) -> list:
        try:
            return list(
                self.client.list_objects(
                    self.bucket,
                    prefix=self._key_prefix(prefix),
                    recursive=True,
                )
            )
        except S3Error as exc:
            raise RemoteOperationError(f'Failed to list files: "{exc.message}".') from exc

    def _relative_path(self, object_name: str) -> str:
        """Path relative to the workspace root (used as the job's data object)."""
        return object_name[len(self.workspace_id) + 1:]

    def list_artifacts(self, prefix: str) -> list[StagedArtifact]:
        key_prefix = self._key_prefix(prefix)
        singles: dict[str, object] = {}
        sliced: dict[str, list] = {}

        for obj in self._list_objects(prefix):
            relative = obj.object_name[len(key_prefix):]
            if not relative or relative.endswith(MANIFEST_SUFFIX) and "/" not in relative:
                continue
            if "/" in relative:
                directory = relative.split("/", 1)[0]
                sliced.setdefault(directory, []).append(obj)
            else:
                singles[relative] = obj

        artifacts = [
            StagedArtifact(
                name=name,
                path=self._relative_path(obj.object_name),
                kind=self.kind,
                size=obj.size or 0,
                workspace_id=self.workspace_id,
            )
            for name, obj in singles.items()
        ]
        for name, objects in sliced.items():
            objects = sorted(objects, key=lambda o: o.object_name)
            artifacts.append(
                StagedArtifact(
                    name=name,
                    path=self._relative_path(f"{key_prefix}{name}/"),
                    kind=self.kind,
                    size=sum(o.size or 0 for o in objects),
                    is_sliced=True,
                    parts=tuple(self._relative_path(o.object_name) for o in objects),
                    workspace_id=self.workspace_id,
                )
            )
        return sorted(artifacts, key=lambda a: a.name)

    def list_manifests(self, prefix: str) -> list[str]:
        key_prefix = self._key_prefix(prefix)
        return sorted(
            obj.object_name
            for obj in self._list_objects(prefix)
            if obj.object_name.endswith(MANIFEST_SUFFIX)
            and "/" not in obj.object_name[len(key_prefix):]
        )

    def read_manifest(self, path: str) -> str:
        try:
            response = self.client.get_object(self.bucket, path)
            try:
                data = response.read()
            finally:
                response.close()
                response.release_conn()
        except S3Error as exc:
            raise RemoteOperationError(
                f'Failed to read manifest "{path}": "{exc.message}".'
            ) from exc
        return data.decode("utf-8")

    def artifact_for(self, prefix: str, name: str) -> StagedArtifact:
        return StagedArtifact(
            name=name,
            path=self._relative_path(f"{self._key_prefix(prefix)}{name}"),
            kind=self.kind,
            workspace_id=self.workspace_id,
        )


# =============================================================================
# Staging Factory
# =============================================================================


class StagingFactory:
    """
    Registry of staging providers by staging name.

    Example:
        >>> factory = StagingFactory({"local": LocalStaging("/data/out/tables")})
        >>> factory.get("local").kind
        <StagingKind.LOCAL: 'local'>
    """

    def __init__(self, providers: Optional[dict[str, StagingProvider]] = None) -> None:
        self._providers: dict[str, StagingProvider] = dict(providers or {})

    def register(self, name: str, provider: StagingProvider) -> None:
        self._providers[name] = provider

    def get(self, name: str) -> StagingProvider:
        try:
            return self._providers[name]
        except KeyError:
            raise ConfigurationError(f'Staging "{name}" is not supported.') from None

    def names(self) -> list[str]:
        return sorted(self._providers)
