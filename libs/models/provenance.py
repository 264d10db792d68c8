# =============================================================================
# Provenance Models Module
# =============================================================================
# SystemMetadata carries the provenance of the run that produced the output.
# It is written as bucket/table metadata when buckets and tables are created
# or updated.
# =============================================================================

"""
Provenance models.

Provenance keys written to storage:

- ``KBC.createdBy.*``: written once, when a bucket or table is created
- ``KBC.lastUpdatedBy.*``: written after every successful load

Only keys with a non-empty value are written.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .base import MetadataItem

__all__ = [
    "SYSTEM_METADATA_PROVIDER",
    "SystemMetadata",
]

SYSTEM_METADATA_PROVIDER = "system"

_CREATED_BY_PREFIX = "KBC.createdBy"
_LAST_UPDATED_BY_PREFIX = "KBC.lastUpdatedBy"


class SystemMetadata(BaseModel):
    """
    Provenance of the producing run.

    Accepts both snake_case and the camelCase keys used by job runners
    (``componentId``, ``configurationId``, ``branchId``, ...).

    Attributes:
        component_id: Component that produced the output (required)
        run_id: Run identifier
        configuration_id: Configuration identifier
        configuration_row_id: Configuration row identifier
        branch_id: Development branch identifier (None on the default branch)
    """

    component_id: str = Field(..., alias="componentId", description="Producing component id")
    run_id: Optional[str] = Field(None, alias="runId", description="Run id")
    configuration_id: Optional[str] = Field(
        None, alias="configurationId", description="Configuration id"
    )
    configuration_row_id: Optional[str] = Field(
        None, alias="configurationRowId", description="Configuration row id"
    )
    branch_id: Optional[str] = Field(None, alias="branchId", description="Branch id")

    @field_validator(
        "run_id", "configuration_id", "configuration_row_id", "branch_id", mode="before"
    )
    @classmethod
    def coerce_identifier(cls, v):
        """Identifiers may arrive as integers; empty values become None."""
        if v is None or v == "":
            return None
        return str(v)

    @field_validator("component_id")
    @classmethod
    def validate_component_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("componentId cannot be empty")
        return v

    def _provenance(self, prefix: str) -> list[MetadataItem]:
        values = [
            ("component.id", self.component_id),
            ("configuration.id", self.configuration_id),
            ("configurationRow.id", self.configuration_row_id),
            ("branch.id", self.branch_id),
        ]
        return [
            MetadataItem(key=f"{prefix}.{suffix}", value=value)
            for suffix, value in values
            if value
        ]

    def created_by_metadata(self) -> list[MetadataItem]:
        """Metadata written when a bucket or table is created."""
        return self._provenance(_CREATED_BY_PREFIX)

    def last_updated_by_metadata(self) -> list[MetadataItem]:
        """Metadata written after every successful load."""
        return self._provenance(_LAST_UPDATED_BY_PREFIX)

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        json_schema_extra={
            "example": {
                "componentId": "keboola.ex-db-mysql",
                "configurationId": "123",
                "runId": "456",
            }
        },
    )
