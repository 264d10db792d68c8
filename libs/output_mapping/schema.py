# =============================================================================
# Schema Reconciliation
# =============================================================================
# Brings an existing destination table in line with the desired schema:
# - add_missing_columns: additive only, never on typed tables
# - reconcile_primary_key: replaces a differing primary key
# =============================================================================

"""
Schema reconciliation against the live destination table.

Columns are compared case-sensitively on sanitized names. Added columns
are remembered per table, so reconciling the same pair again issues no
further calls.
"""

import logging
from typing import Any, Optional

from libs.models import (
    DATATYPE_BASETYPE_KEY,
    DATATYPE_DEFAULT_KEY,
    DATATYPE_LENGTH_KEY,
    DATATYPE_NULLABLE_KEY,
    DATATYPE_TYPE_KEY,
    DataTypeSupport,
    MetadataItem,
    TableSchema,
)
from libs.storage_api import StorageApiError, StorageClient

from .exceptions import RemoteOperationError
from .naming import sanitize_column_name

__all__ = ["SchemaReconciler", "column_definition"]

_TRUE_VALUES = ("1", "true", "yes")


def column_definition(
    items: list[MetadataItem],
) -> tuple[Optional[dict[str, Any]], Optional[str]]:
    """
    Build a storage column definition from datatype metadata.

    Returns:
        (definition, basetype); definition is None when no type is declared

    Example:
        >>> column_definition([MetadataItem(key="KBC.datatype.type", value="VARCHAR"),
        ...                    MetadataItem(key="KBC.datatype.length", value="255")])
        ({'type': 'VARCHAR', 'length': '255'}, None)
    """
    values = {item.key: item.value for item in items}
    basetype = values.get(DATATYPE_BASETYPE_KEY) or None
    if not values.get(DATATYPE_TYPE_KEY):
        return None, basetype

    definition: dict[str, Any] = {"type": values[DATATYPE_TYPE_KEY]}
    if values.get(DATATYPE_LENGTH_KEY):
        definition["length"] = values[DATATYPE_LENGTH_KEY]
    if DATATYPE_NULLABLE_KEY in values:
        definition["nullable"] = values[DATATYPE_NULLABLE_KEY].lower() in _TRUE_VALUES
    if values.get(DATATYPE_DEFAULT_KEY):
        definition["default"] = values[DATATYPE_DEFAULT_KEY]
    return definition, basetype


class SchemaReconciler:
    """
    Reconciles destination table schemas.

    Args:
        client: Storage client
        logger: Logger (defaults to the module logger)
    """

    def __init__(self, client: StorageClient, logger: Optional[logging.Logger] = None) -> None:
        self.client = client
        self.logger = logger or logging.getLogger(__name__)
        self._added: dict[str, set[str]] = {}

    def add_missing_columns(
        self,
        table_id: str,
        existing: TableSchema,
        desired: TableSchema,
        data_type_support: DataTypeSupport = DataTypeSupport.NONE,
    ) -> list[str]:
        """
        Add desired columns absent from the existing table.

        Columns are added one call each, in desired order. A column carries
        a type definition only when it declares a type, the desired backend
        matches the table's backend and ``data_type_support`` is not
        "none"; otherwise it is added untyped.

        Args:
            table_id: Destination table id
            existing: Live schema of the destination
            desired: Schema from the merged mapping entry
            data_type_support: Treatment of declared column types

        Returns:
            Names of the columns added

        Raises:
            RemoteOperationError: If an add-column call fails
        """
        if existing.is_typed:
            missing = set(map(sanitize_column_name, desired.columns)) - set(existing.columns)
            if missing:
                self.logger.debug(
                    f'Table "{table_id}" is typed; not adding columns {sorted(missing)}'
                )
            return []

        known = set(existing.columns) | self._added.setdefault(table_id, set())
        typed = (
            data_type_support != DataTypeSupport.NONE
            and desired.backend is not None
            and desired.backend == existing.backend
        )

        added = []
        for column in desired.columns:
            name = sanitize_column_name(column)
            if name in known:
                continue

            definition, basetype = None, None
            if typed:
                definition, basetype = column_definition(desired.column_metadata.get(column, []))
                if definition is None:
                    basetype = None

            try:
                self.client.add_table_column(table_id, name, definition, basetype)
            except StorageApiError as exc:
                raise RemoteOperationError(
                    f'Failed to add column "{name}" to table "{table_id}": {exc}'
                ) from exc

            known.add(name)
            self._added[table_id].add(name)
            added.append(name)

        if added:
            self.logger.info(f'Added columns {added} to table "{table_id}"')
        return added

    def reconcile_primary_key(
        self,
        table_id: str,
        existing: list[str],
        desired: list[str],
    ) -> bool:
        """
        Replace the table's primary key when it differs from ``desired``.

        An empty ``desired`` key leaves the table alone.

        Returns:
            True if the primary key was changed

        Raises:
            RemoteOperationError: If a primary key call fails
        """
        desired = [sanitize_column_name(column) for column in desired]
        if not desired or desired == existing:
            return False

        self.logger.warning(
            f'Modifying primary key of table "{table_id}" from '
            f'[{", ".join(existing)}] to [{", ".join(desired)}].'
        )
        try:
            if existing:
                self.client.remove_table_primary_key(table_id)
            self.client.create_table_primary_key(table_id, desired)
        except StorageApiError as exc:
            raise RemoteOperationError(
                f'Error changing primary key of table "{table_id}": {exc}'
            ) from exc
        return True
