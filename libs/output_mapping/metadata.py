# =============================================================================
# Metadata Definitions
# =============================================================================
# Deferred table/column metadata writes, applied after a load succeeds.
# =============================================================================

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from libs.models import MetadataItem
from libs.storage_api import StorageClient

__all__ = ["MetadataKind", "MetadataDefinition"]


class MetadataKind(str, Enum):
    TABLE = "table"
    COLUMN = "column"


@dataclass(frozen=True)
class MetadataDefinition:
    """
    One metadata write against a destination table.

    Attributes:
        destination: Destination table id
        provider: Metadata provider ("system" or the component id)
        kind: Table or column metadata
        metadata: Items (table) or column name -> items (column)

    Example:
        >>> definition = MetadataDefinition.for_table(
        ...     "out.c-main.orders", "system", [MetadataItem(key="foo", value="bar")]
        ... )
        >>> definition.apply(client)  # posts table metadata
    """

    destination: str
    provider: str
    kind: MetadataKind
    metadata: Union[list[MetadataItem], dict[str, list[MetadataItem]]] = field(
        default_factory=list
    )

    @classmethod
    def for_table(
        cls, destination: str, provider: str, metadata: list[MetadataItem]
    ) -> "MetadataDefinition":
        return cls(destination, provider, MetadataKind.TABLE, list(metadata))

    @classmethod
    def for_columns(
        cls, destination: str, provider: str, metadata: dict[str, list[MetadataItem]]
    ) -> "MetadataDefinition":
        return cls(destination, provider, MetadataKind.COLUMN, dict(metadata))

    def is_empty(self) -> bool:
        if self.kind == MetadataKind.COLUMN:
            return not any(self.metadata.values())
        return not self.metadata

    def apply(self, client: StorageClient) -> None:
        """Post the metadata; column ids are "<table id>.<column>"."""
        if self.kind == MetadataKind.COLUMN:
            for column, items in self.metadata.items():
                if not items:
                    continue
                client.post_column_metadata(
                    f"{self.destination}.{column}",
                    self.provider,
                    [item.model_dump() for item in items],
                )
        else:
            if self.metadata:
                client.post_table_metadata(
                    self.destination,
                    self.provider,
                    [item.model_dump() for item in self.metadata],
                )
