"""
Unit tests for SchemaReconciler.
"""

from unittest.mock import Mock, call

import pytest

from libs.models import DataTypeSupport, MetadataItem, TableSchema
from libs.output_mapping import RemoteOperationError, SchemaReconciler
from libs.output_mapping.schema import column_definition
from libs.storage_api import StorageApiError

TABLE_ID = "out.c-main.orders"


def typed_items(type_, basetype=None, length=None, nullable=None):
    items = [MetadataItem(key="KBC.datatype.type", value=type_)]
    if basetype:
        items.append(MetadataItem(key="KBC.datatype.basetype", value=basetype))
    if length:
        items.append(MetadataItem(key="KBC.datatype.length", value=length))
    if nullable is not None:
        items.append(MetadataItem(key="KBC.datatype.nullable", value=nullable))
    return items


# =============================================================================
# Test: add_missing_columns
# =============================================================================


class TestAddMissingColumns:
    """Test additive column reconciliation."""

    def test_adds_missing_columns_in_desired_order(self):
        client = Mock()
        existing = TableSchema(columns=["id"], backend="snowflake")
        desired = TableSchema(columns=["id", "name", "crm id"])

        added = SchemaReconciler(client).add_missing_columns(TABLE_ID, existing, desired)

        assert added == ["name", "crm_id"]
        assert client.add_table_column.call_args_list == [
            call(TABLE_ID, "name", None, None),
            call(TABLE_ID, "crm_id", None, None),
        ]

    def test_second_run_is_a_no_op(self):
        """Test that reconciling the same pair twice adds columns once."""
        client = Mock()
        reconciler = SchemaReconciler(client)
        existing = TableSchema(columns=["id"])
        desired = TableSchema(columns=["id", "name"])

        reconciler.add_missing_columns(TABLE_ID, existing, desired)
        second = reconciler.add_missing_columns(TABLE_ID, existing, desired)

        assert second == []
        assert client.add_table_column.call_count == 1

    def test_rerun_with_refreshed_schema_is_a_no_op(self):
        """Test that a fresh reconciler issues no calls once columns exist."""
        client = Mock()
        existing = TableSchema(columns=["id", "name"])
        desired = TableSchema(columns=["id", "name"])

        assert SchemaReconciler(client).add_missing_columns(TABLE_ID, existing, desired) == []
        client.add_table_column.assert_not_called()

    def test_typed_table_never_mutated(self):
        client = Mock()
        logger = Mock()
        existing = TableSchema(is_typed=True, columns=["id"], backend="snowflake")
        desired = TableSchema(columns=["id", "name"], backend="snowflake")

        added = SchemaReconciler(client, logger).add_missing_columns(
            TABLE_ID, existing, desired, DataTypeSupport.AUTHORITATIVE
        )

        assert added == []
        client.add_table_column.assert_not_called()
        logger.debug.assert_called_once()

    def test_typed_definition_when_backends_match(self):
        client = Mock()
        existing = TableSchema(columns=["id"], backend="snowflake")
        desired = TableSchema(
            columns=["id", "name"],
            column_metadata={"name": typed_items("VARCHAR", "STRING", "255", "true")},
            backend="snowflake",
        )

        SchemaReconciler(client).add_missing_columns(
            TABLE_ID, existing, desired, DataTypeSupport.HINTS
        )

        client.add_table_column.assert_called_once_with(
            TABLE_ID,
            "name",
            {"type": "VARCHAR", "length": "255", "nullable": True},
            "STRING",
        )

    def test_untyped_when_backends_differ(self):
        client = Mock()
        existing = TableSchema(columns=["id"], backend="bigquery")
        desired = TableSchema(
            columns=["id", "name"],
            column_metadata={"name": typed_items("VARCHAR", "STRING")},
            backend="snowflake",
        )

        SchemaReconciler(client).add_missing_columns(
            TABLE_ID, existing, desired, DataTypeSupport.AUTHORITATIVE
        )

        client.add_table_column.assert_called_once_with(TABLE_ID, "name", None, None)

    def test_untyped_when_type_support_is_none(self):
        client = Mock()
        existing = TableSchema(columns=[], backend="snowflake")
        desired = TableSchema(
            columns=["name"],
            column_metadata={"name": typed_items("VARCHAR")},
            backend="snowflake",
        )

        SchemaReconciler(client).add_missing_columns(
            TABLE_ID, existing, desired, DataTypeSupport.NONE
        )

        client.add_table_column.assert_called_once_with(TABLE_ID, "name", None, None)

    def test_add_column_failure_wrapped(self):
        client = Mock()
        error = StorageApiError("Column limit reached")
        client.add_table_column.side_effect = error

        with pytest.raises(RemoteOperationError, match='Failed to add column "name"') as exc_info:
            SchemaReconciler(client).add_missing_columns(
                TABLE_ID, TableSchema(columns=["id"]), TableSchema(columns=["name"])
            )

        assert exc_info.value.__cause__ is error


# =============================================================================
# Test: reconcile_primary_key
# =============================================================================


class TestReconcilePrimaryKey:
    """Test primary key replacement."""

    def test_differing_key_replaced_with_warning(self):
        client = Mock()
        logger = Mock()

        changed = SchemaReconciler(client, logger).reconcile_primary_key(TABLE_ID, ["id"], ["id", "name"])

        assert changed is True
        client.remove_table_primary_key.assert_called_once_with(TABLE_ID)
        client.create_table_primary_key.assert_called_once_with(TABLE_ID, ["id", "name"])
        logger.warning.assert_called_once()

    def test_table_without_key_only_creates(self):
        client = Mock()

        SchemaReconciler(client).reconcile_primary_key(TABLE_ID, [], ["id"])

        client.remove_table_primary_key.assert_not_called()
        client.create_table_primary_key.assert_called_once_with(TABLE_ID, ["id"])

    def test_same_key_untouched(self):
        client = Mock()
        assert SchemaReconciler(client).reconcile_primary_key(TABLE_ID, ["id"], ["id"]) is False
        client.create_table_primary_key.assert_not_called()

    def test_empty_desired_key_untouched(self):
        client = Mock()
        assert SchemaReconciler(client).reconcile_primary_key(TABLE_ID, ["id"], []) is False
        client.remove_table_primary_key.assert_not_called()


# =============================================================================
# Test: column_definition
# =============================================================================


class TestColumnDefinition:
    """Test datatype metadata to column definition mapping."""

    def test_no_type(self):
        assert column_definition([MetadataItem(key="KBC.description", value="x")]) == (None, None)

    def test_nullable_false(self):
        definition, basetype = column_definition(typed_items("INTEGER", "INTEGER", nullable="false"))
        assert definition == {"type": "INTEGER", "nullable": False}
        assert basetype == "INTEGER"
