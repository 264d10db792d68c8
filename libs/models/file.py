# =============================================================================
# File Mapping Models Module
# =============================================================================
# Defines the validated shapes of file (non-table) output mapping:
# - FileManifest: sidecar descriptor written next to a staged file
# - FileMappingEntry: configuration record (manifest shape + required source)
# - FileOutputMappingConfiguration: {mapping: [...]}
# - FileUploadRequest: one upload_files invocation (used by the op)
# =============================================================================

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "FileManifest",
    "FileMappingEntry",
    "FileOutputMappingConfiguration",
    "FileUploadRequest",
]


class FileManifest(BaseModel):
    """
    Sidecar manifest for one staged file (``<name>.manifest``).

    Attributes:
        tags: Tags attached to the uploaded file
        is_public: File is publicly readable
        is_permanent: File is never expired by storage
        is_encrypted: File is stored encrypted
        notify: Notify project members about the upload
    """

    tags: list[str] = Field(default_factory=list, description="File tags")
    is_public: bool = Field(False, description="Publicly readable")
    is_permanent: bool = Field(False, description="Never expired")
    is_encrypted: bool = Field(True, description="Stored encrypted")
    notify: bool = Field(False, description="Notify project members")

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: list[str]) -> list[str]:
        """Trim tags, drop empty ones and deduplicate preserving order."""
        cleaned = [tag.strip() for tag in v if tag.strip()]
        return list(dict.fromkeys(cleaned))

    def upload_options(self) -> dict:
        """Options sent with the file upload."""
        return {
            "isPublic": self.is_public,
            "isPermanent": self.is_permanent,
            "isEncrypted": self.is_encrypted,
            "notify": self.notify,
            "tags": list(self.tags),
        }

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "tags": ["report", "monthly"],
                "is_permanent": True,
            }
        },
    )


class FileMappingEntry(FileManifest):
    """File output mapping configuration entry naming the staged file."""

    source: str = Field(..., description="Staged file name")

    @field_validator("source")
    @classmethod
    def validate_source(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Mapping source cannot be empty")
        return v

    def as_manifest(self) -> FileManifest:
        return FileManifest.model_validate(self.model_dump(exclude={"source"}))


class FileOutputMappingConfiguration(BaseModel):
    """
    File output mapping configuration of one component run.

    Attributes:
        mapping: Configuration entries; every source must be a staged file
    """

    mapping: list[FileMappingEntry] = Field(
        default_factory=list, description="File output mapping entries"
    )

    model_config = ConfigDict(extra="forbid")


class FileUploadRequest(BaseModel):
    """
    One upload_files invocation as passed to the Dagster op.

    Attributes:
        source_path_prefix: Staging prefix holding the files
        staging: Staging name (only "local" stagings hold files)
        configuration: File output mapping configuration
        local_root: Root directory for local files and manifests
    """

    source_path_prefix: str = Field("", description="Staging prefix")
    staging: str = Field("local", description="Staging name")
    configuration: FileOutputMappingConfiguration = Field(
        default_factory=FileOutputMappingConfiguration,
        description="File output mapping configuration",
    )
    local_root: Optional[str] = Field(None, description="Local data root")

    model_config = ConfigDict(extra="forbid")
