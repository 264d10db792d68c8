# =============================================================================
# Output Mapping Environment
# =============================================================================
# Explicit collaborators shared by the components of one upload_tables call:
# storage client, branch, staging factory, optional file slicer and logger.
# =============================================================================

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

from libs.storage_api import StorageClient

from .staging import StagingFactory

__all__ = ["BranchInfo", "FileSlicer", "OutputMappingEnvironment"]


@dataclass(frozen=True)
class BranchInfo:
    """
    Branch the storage client writes to.

    Attributes:
        id: Branch id
        name: Branch name
        is_default: True for the production (default) branch
    """

    id: str
    name: str = "Main"
    is_default: bool = True


class FileSlicer(Protocol):
    """Splits a local file into upload-friendly parts in place."""

    def slice(self, path: str) -> None: ...


@dataclass
class OutputMappingEnvironment:
    """
    Collaborators passed into every output mapping component.

    Attributes:
        client: Storage client
        branch: Branch the client is scoped to
        staging_factory: Staging name -> provider
        slicer: File slicer (None = local files are uploaded as they are)
        logger: Logger (Dagster ``context.log`` or a stdlib logger)
    """

    client: StorageClient
    branch: BranchInfo
    staging_factory: StagingFactory
    slicer: Optional[FileSlicer] = None
    logger: logging.Logger = field(
        default_factory=lambda: logging.getLogger("libs.output_mapping")
    )
