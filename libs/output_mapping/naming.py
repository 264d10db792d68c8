# =============================================================================
# Storage Naming - Table Ids, Bucket Ids and Column Names
# =============================================================================
# Parsing of "stage.c-bucket.table" identifiers and column name sanitizing.
# =============================================================================

import re

from pydantic import BaseModel, Field, field_validator

__all__ = [
    "MappingDestination",
    "is_table_id",
    "sanitize_column_name",
]

_STAGES = ("in", "out")
_INVALID_COLUMN_CHARS = re.compile(r"[^A-Za-z0-9_]")


def is_table_id(value: str) -> bool:
    """
    Check that ``value`` looks like "stage.bucket.table".

    Example:
        >>> is_table_id("out.c-main.orders")
        True
        >>> is_table_id("orders")
        False
    """
    parts = value.split(".")
    return len(parts) == 3 and parts[0] in _STAGES and all(parts)


def sanitize_column_name(name: str) -> str:
    """
    Replace characters storage does not accept in column names with "_".

    Example:
        >>> sanitize_column_name("crm id")
        'crm_id'
    """
    return _INVALID_COLUMN_CHARS.sub("_", name)


class MappingDestination(BaseModel):
    """
    Parsed destination table id.

    Attributes:
        table_id: Full table id (e.g., "out.c-main.orders")

    Example:
        >>> destination = MappingDestination(table_id="out.c-main.orders")
        >>> destination.bucket_id
        'out.c-main'
        >>> destination.bucket_name
        'main'
        >>> destination.table_name
        'orders'
    """

    table_id: str = Field(..., description="Destination table id")

    @field_validator("table_id")
    @classmethod
    def validate_table_id(cls, v: str) -> str:
        if not is_table_id(v):
            raise ValueError(f'"{v}" is not a valid table ID.')
        return v

    @property
    def stage(self) -> str:
        return self.table_id.split(".")[0]

    @property
    def bucket_id(self) -> str:
        stage, bucket, _ = self.table_id.split(".")
        return f"{stage}.{bucket}"

    @property
    def bucket_name(self) -> str:
        """Bucket name as passed to bucket creation ("c-" prefix removed)."""
        bucket = self.table_id.split(".")[1]
        return bucket[2:] if bucket.startswith("c-") else bucket

    @property
    def table_name(self) -> str:
        return self.table_id.split(".")[2]

    def __str__(self) -> str:
        return self.table_id

    model_config = {"frozen": True}
