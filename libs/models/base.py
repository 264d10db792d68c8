# =============================================================================
# Base Models and Helpers
# =============================================================================
# Shared metadata item model used by manifests, mapping entries and the
# storage metadata writers.
# =============================================================================

"""Base models and helpers for key/value metadata."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = ["MetadataItem", "merge_metadata", "merge_column_metadata"]


class MetadataItem(BaseModel):
    """
    Single key/value metadata entry.

    Storage keeps table, column and bucket metadata as ordered lists of
    key/value pairs. Values are always stored as strings.

    Attributes:
        key: Metadata key (e.g., "KBC.datatype.type")
        value: Metadata value
    """

    key: str = Field(..., description="Metadata key")
    value: str = Field("", description="Metadata value")

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        """Reject empty keys and trim surrounding whitespace."""
        v = v.strip()
        if not v:
            raise ValueError("Metadata key cannot be empty")
        return v

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, v):
        """Coerce scalar values (int, float, bool) to strings."""
        if v is None:
            return ""
        if isinstance(v, bool):
            return "true" if v else "false"
        if isinstance(v, (int, float)):
            return str(v)
        return v

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        json_schema_extra={
            "example": {"key": "KBC.description", "value": "Orders exported nightly"}
        },
    )


def merge_metadata(
    base: list[MetadataItem], override: list[MetadataItem]
) -> list[MetadataItem]:
    """
    Merge two metadata lists by key.

    Keys from ``override`` win. Order follows first appearance: keys from
    ``base`` first, then keys only present in ``override``.

    Example:
        >>> merged = merge_metadata(
        ...     [MetadataItem(key="foo", value="baz"), MetadataItem(key="bar", value="baz")],
        ...     [MetadataItem(key="foo", value="bar")],
        ... )
        >>> [(m.key, m.value) for m in merged]
        [('foo', 'bar'), ('bar', 'baz')]
    """
    merged: dict[str, MetadataItem] = {item.key: item for item in base}
    for item in override:
        merged[item.key] = item
    return list(merged.values())


def merge_column_metadata(
    base: dict[str, list[MetadataItem]],
    override: dict[str, list[MetadataItem]],
) -> dict[str, list[MetadataItem]]:
    """Merge per-column metadata; each column is merged with merge_metadata."""
    merged = {column: list(items) for column, items in base.items()}
    for column, items in override.items():
        merged[column] = merge_metadata(merged.get(column, []), items)
    return merged
