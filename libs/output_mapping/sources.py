# =============================================================================
# Source Resolver - Pair Staged Artifacts with Manifests and Configuration
# =============================================================================

"""
Source resolution.

Produces one :class:`MappingSource` per (artifact, configuration entry)
pair. An artifact matched by several configuration entries yields several
sources; an artifact with no configuration entry yields one source driven
by its manifest alone.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from libs.models import MappingEntry, TableManifest, combine_manifest_and_entry

from .exceptions import ConfigurationError
from .manifest_adapter import ManifestAdapter
from .staging import StagedArtifact, StagingKind, StagingProvider, manifest_source_name

__all__ = ["MappingSource", "SourceResolver"]

logger = logging.getLogger(__name__)


@dataclass
class MappingSource:
    """
    One staged artifact paired with its manifest and configuration entry.

    Attributes:
        source_name: Artifact name
        artifact: Physical artifact reference
        manifest_path: Path of the sidecar manifest (None if absent)
        manifest: Parsed manifest (None if absent)
        configuration: Matching configuration entry (None if absent)
    """

    source_name: str
    artifact: StagedArtifact
    manifest_path: Optional[str] = None
    manifest: Optional[TableManifest] = None
    configuration: Optional[MappingEntry] = None

    @property
    def is_sliced(self) -> bool:
        return self.artifact.is_sliced

    @property
    def is_local(self) -> bool:
        return self.artifact.is_local

    def combined_entry(self) -> MappingEntry:
        """Manifest merged with the configuration entry (configuration wins)."""
        return combine_manifest_and_entry(self.source_name, self.manifest, self.configuration)


class SourceResolver:
    """
    Resolves mapping sources from one staging provider.

    Args:
        staging: Provider holding the artifacts and manifests
        manifest_adapter: Manifest parser (JSON by default)
    """

    def __init__(
        self,
        staging: StagingProvider,
        manifest_adapter: Optional[ManifestAdapter] = None,
    ) -> None:
        self.staging = staging
        self.manifest_adapter = manifest_adapter or ManifestAdapter()

    def _read_manifests(self, prefix: str) -> dict[str, str]:
        """Artifact name -> manifest path."""
        return {
            manifest_source_name(path): path
            for path in self.staging.list_manifests(prefix)
        }

    def resolve_mapping_sources(
        self,
        prefix: str,
        entries: list[MappingEntry],
    ) -> list[MappingSource]:
        """
        Enumerate artifacts under ``prefix`` and pair them up.

        Sources with configuration entries come first, in configuration
        order; artifacts without configuration follow in name order.

        Args:
            prefix: Staging prefix (directory or object key prefix)
            entries: Configuration entries

        Returns:
            Resolved mapping sources

        Raises:
            ConfigurationError: On an orphaned manifest, a missing local
                source or an unparsable manifest
        """
        manifests = self._read_manifests(prefix)
        artifacts = {a.name: a for a in self.staging.list_artifacts(prefix)}

        if self.staging.enumerable:
            for name, path in manifests.items():
                if name not in artifacts:
                    raise ConfigurationError(
                        f'Found orphaned table manifest: "{Path(path).name}"'
                    )
        else:
            for name in list(manifests) + [e.source for e in entries]:
                if name not in artifacts:
                    artifacts[name] = self.staging.artifact_for(prefix, name)

        missing = [e.source for e in entries if e.source not in artifacts]
        if missing:
            if self.staging.kind == StagingKind.LOCAL:
                names = ", ".join(f'"{name}"' for name in dict.fromkeys(missing))
                raise ConfigurationError(f"Table sources not found: {names}")
            for name in missing:
                logger.debug(f'Source "{name}" not listed in workspace, passing through')
                artifacts[name] = self.staging.artifact_for(prefix, name)

        parsed: dict[str, TableManifest] = {}

        def manifest_for(name: str) -> Optional[TableManifest]:
            path = manifests.get(name)
            if path is None:
                return None
            if name not in parsed:
                parsed[name] = self.manifest_adapter.parse(
                    self.staging.read_manifest(path), Path(path).name
                )
            return parsed[name]

        sources = [
            MappingSource(
                source_name=entry.source,
                artifact=artifacts[entry.source],
                manifest_path=manifests.get(entry.source),
                manifest=manifest_for(entry.source),
                configuration=entry,
            )
            for entry in entries
        ]

        configured = {entry.source for entry in entries}
        for name in sorted(artifacts):
            if name in configured:
                continue
            sources.append(
                MappingSource(
                    source_name=name,
                    artifact=artifacts[name],
                    manifest_path=manifests.get(name),
                    manifest=manifest_for(name),
                )
            )

        logger.info(f"Resolved {len(sources)} mapping source(s) under '{prefix}'")
        return sources
