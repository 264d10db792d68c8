"""
Unit tests for TableWriter.upload_tables.

Runs the whole resolution/preparation/submission flow against a mocked
storage client and local staging under tmp_path.
"""

from unittest.mock import Mock

import pytest

from libs.models import DataTypeSupport
from libs.output_mapping import (
    BranchInfo,
    ConfigurationError,
    PolicyViolation,
    StagingFactory,
    TableWriter,
    WorkspaceTableStaging,
)

PREFIX = "out/tables"


def job_success(table_id, in_bytes=0, uncompressed=0):
    return {
        "status": "success",
        "tableId": table_id,
        "metrics": {"inBytes": in_bytes, "inBytesUncompressed": uncompressed},
    }


def bucket_detail(bucket_id, backend="snowflake", branch_id=None):
    detail = {
        "id": bucket_id,
        "name": bucket_id.split(".")[1][2:],
        "stage": bucket_id.split(".")[0],
        "backend": backend,
    }
    if branch_id is not None:
        detail["idBranch"] = branch_id
    return detail


# =============================================================================
# Test: Local Staging End To End
# =============================================================================


class TestUploadLocalTables:
    """Test uploads from local staging."""

    def test_single_table(self, environment, storage_client, write_staged, make_table, system_metadata_dict):
        write_staged(f"{PREFIX}/t1", "a,b\n1,2\n")
        write_staged(f"{PREFIX}/t1.manifest", {"columns": ["Id", "Name"]})
        storage_client.get_bucket.return_value = bucket_detail("out.c-x")
        storage_client.create_table_async.return_value = "1001"
        storage_client.wait_for_job.return_value = job_success("out.c-x.t1", 10, 20)

        queue = TableWriter(environment).upload_tables(
            PREFIX,
            {"mapping": [{"source": "t1", "destination": "out.c-x.t1"}]},
            system_metadata_dict,
            "local",
        )
        storage_client.tables["out.c-x.t1"] = make_table("out.c-x.t1", columns=["a", "b"])

        assert queue.get_task_count() == 1
        assert queue.wait_for_all() == ["1001"]
        assert [t.id for t in queue.get_table_result().tables] == ["out.c-x.t1"]
        assert queue.get_table_result().metrics[0].uncompressed_bytes == 20

        storage_client.upload_file.assert_called_once()
        path, file_options = storage_client.upload_file.call_args.args
        assert path.endswith(f"{PREFIX}/t1")
        assert file_options == {
            "isPermanent": False,
            "tags": [
                "componentId: keboola.ex-db-mysql",
                "configurationId: 123",
                "runId: 456",
            ],
        }
        storage_client.create_table_async.assert_called_once_with(
            "out.c-x",
            "t1",
            {
                "dataFileId": "file-1",
                "incremental": False,
                "columns": ["Id", "Name"],
                "delimiter": ",",
                "enclosure": '"',
            },
        )
        storage_client.create_bucket.assert_not_called()

    def test_unconfigured_file_uses_default_bucket(self, environment, storage_client, write_staged):
        write_staged(f"{PREFIX}/orders.csv", "id\n1\n")
        storage_client.create_table_async.return_value = "1"

        queue = TableWriter(environment).upload_tables(
            PREFIX, {"bucket": "out.c-main"}, {"componentId": "comp"}, "local"
        )

        assert queue.tasks[0].destination_table_name == "out.c-main.orders"

    def test_missing_source(self, environment, storage_client, write_staged):
        write_staged(f"{PREFIX}/t1", "a\n1\n")

        with pytest.raises(ConfigurationError, match='Table sources not found: "t2"'):
            TableWriter(environment).upload_tables(
                PREFIX,
                {"mapping": [{"source": "t2", "destination": "out.c-main.t2"}]},
                {"componentId": "comp"},
                "local",
            )

        storage_client.create_table_async.assert_not_called()
        storage_client.write_table_async.assert_not_called()

    def test_invalid_destination_submits_nothing(self, environment, storage_client, write_staged):
        """Test that one bad destination fails before any job is submitted."""
        write_staged(f"{PREFIX}/t1", "a\n1\n")
        write_staged(f"{PREFIX}/t2", "a\n1\n")

        with pytest.raises(ConfigurationError, match='"out.c-main" is not a valid table ID.'):
            TableWriter(environment).upload_tables(
                PREFIX,
                {
                    "mapping": [
                        {"source": "t1", "destination": "out.c-main.t1"},
                        {"source": "t2", "destination": "out.c-main"},
                    ]
                },
                {"componentId": "comp"},
                "local",
            )

        storage_client.upload_file.assert_not_called()
        storage_client.create_table_async.assert_not_called()

    def test_failed_job_uploads_write_always_only(self, environment, storage_client, write_staged):
        write_staged(f"{PREFIX}/t1", "a\n1\n")
        write_staged(f"{PREFIX}/t2", "a\n1\n")
        storage_client.create_table_async.return_value = "1"

        queue = TableWriter(environment).upload_tables(
            PREFIX,
            {
                "mapping": [
                    {"source": "t1", "destination": "out.c-main.t1"},
                    {"source": "t2", "destination": "out.c-main.t2", "write_always": True},
                ]
            },
            {"componentId": "comp"},
            "local",
            is_failed_job=True,
        )

        assert queue.get_task_count() == 1
        assert queue.tasks[0].destination_table_name == "out.c-main.t2"

    def test_timestamp_column_skipped(self, environment, storage_client, write_staged):
        environment.logger = Mock()
        write_staged(f"{PREFIX}/t1", "id,_timestamp\n1,2\n")
        write_staged(
            f"{PREFIX}/t1.manifest",
            {
                "destination": "out.c-main.t1",
                "columns": ["id", "_timestamp"],
                "column_metadata": {"_timestamp": [{"key": "KBC.description", "value": "x"}]},
            },
        )
        storage_client.create_table_async.return_value = "1"

        queue = TableWriter(environment).upload_tables(PREFIX, {}, {"componentId": "comp"}, "local")

        options = storage_client.create_table_async.call_args.args[2]
        assert options["columns"] == ["id"]
        environment.logger.warning.assert_called_once()
        assert "_timestamp" in environment.logger.warning.call_args.args[0]
        assert [d.kind.value for d in queue.tasks[0].metadata] == ["table"]

    def test_manifest_columns_sanitized_and_keys_joined(self, environment, storage_client, write_staged):
        write_staged(f"{PREFIX}/t1", "1,2\n")
        write_staged(
            f"{PREFIX}/t1.manifest",
            {
                "destination": "out.c-main.t1",
                "columns": ["id", "crm id"],
                "primary_key": ["id", "crm id"],
                "distribution_key": ["id"],
                "incremental": True,
                "delete_where_column": "id",
                "delete_where_values": [1, 2],
            },
        )
        storage_client.create_table_async.return_value = "1"

        TableWriter(environment).upload_tables(PREFIX, {}, {"componentId": "comp"}, "local")

        storage_client.create_table_async.assert_called_once_with(
            "out.c-main",
            "t1",
            {
                "dataFileId": "file-1",
                "incremental": True,
                "columns": ["id", "crm_id"],
                "delimiter": ",",
                "enclosure": '"',
                "primaryKey": "id,crm_id",
                "distributionKey": "id",
                "deleteWhereColumn": "id",
                "deleteWhereValues": ["1", "2"],
                "deleteWhereOperator": "eq",
            },
        )


# =============================================================================
# Test: Sliced Sources
# =============================================================================


class TestSlicedSources:
    """Test sliced artifacts and the optional slicer."""

    def test_sliced_directory_uploaded_as_sliced_file(self, environment, storage_client, write_staged):
        write_staged(f"{PREFIX}/events/part1", "1\n")
        write_staged(f"{PREFIX}/events/part2", "2\n")
        write_staged(f"{PREFIX}/events.manifest", {"columns": ["id"]})
        storage_client.create_table_async.return_value = "1"

        TableWriter(environment).upload_tables(
            PREFIX, {"bucket": "out.c-main"}, {"componentId": "comp"}, "local"
        )

        paths, _ = storage_client.upload_sliced_file.call_args.args
        assert [p.rsplit("/", 1)[-1] for p in paths] == ["part1", "part2"]
        options = storage_client.create_table_async.call_args.args[2]
        assert options["dataFileId"] == "file-sliced-1"
        assert options["columns"] == ["id"]

    def test_sliced_without_columns(self, environment, storage_client, write_staged):
        write_staged(f"{PREFIX}/events/part1", "1\n")

        with pytest.raises(
            ConfigurationError, match='Sliced file "events" columns specification missing.'
        ):
            TableWriter(environment).upload_tables(
                PREFIX, {"bucket": "out.c-main"}, {"componentId": "comp"}, "local"
            )

        storage_client.upload_sliced_file.assert_not_called()

    def test_slicer_invoked_for_plain_files(self, environment, storage_client, write_staged):
        environment.slicer = Mock()
        path = write_staged(f"{PREFIX}/t1", "a\n1\n")
        storage_client.create_table_async.return_value = "1"

        TableWriter(environment).upload_tables(
            PREFIX,
            {"mapping": [{"source": "t1", "destination": "out.c-main.t1"}]},
            {"componentId": "comp"},
            "local",
        )

        environment.slicer.slice.assert_called_once_with(str(path))

    def test_format_override_rejected(self, environment, storage_client, write_staged):
        write_staged(f"{PREFIX}/t1", "a;b\n1;2\n")

        with pytest.raises(ConfigurationError, match="not longer supported"):
            TableWriter(environment).upload_tables(
                PREFIX,
                {"mapping": [{"source": "t1", "destination": "out.c-main.t1", "delimiter": ";"}]},
                {"componentId": "comp"},
                "local",
            )


# =============================================================================
# Test: Workspace Staging
# =============================================================================


class TestWorkspaceStaging:
    """Test uploads from a database workspace."""

    def test_one_source_cloned_to_two_destinations(self, tmp_path, environment, storage_client):
        environment.staging_factory.register(
            "workspace-snowflake", WorkspaceTableStaging("ws-1", str(tmp_path / "manifests"))
        )
        storage_client.get_bucket.return_value = None
        storage_client.create_bucket.return_value = bucket_detail("out.c-d")
        storage_client.create_table_async.side_effect = ["1", "2"]

        queue = TableWriter(environment).upload_tables(
            "",
            {
                "mapping": [
                    {"source": "a", "destination": "out.c-d.t"},
                    {"source": "a", "destination": "out.c-d.t2"},
                ]
            },
            {"componentId": "comp", "configurationId": "cfg"},
            "workspace-snowflake",
        )

        assert [t.destination_table_name for t in queue.tasks] == ["out.c-d.t", "out.c-d.t2"]
        storage_client.create_bucket.assert_called_once_with("d", "out")
        storage_client.post_bucket_metadata.assert_called_once_with(
            "out.c-d",
            "system",
            [
                {"key": "KBC.createdBy.component.id", "value": "comp"},
                {"key": "KBC.createdBy.configuration.id", "value": "cfg"},
            ],
        )
        first_options = storage_client.create_table_async.call_args_list[0].args[2]
        assert first_options == {
            "dataWorkspaceId": "ws-1",
            "dataObject": "a",
            "incremental": False,
        }
        storage_client.upload_file.assert_not_called()

    def test_unknown_staging(self, environment):
        with pytest.raises(ConfigurationError, match='Staging "workspace-x" is not supported.'):
            TableWriter(environment).upload_tables("", {}, {"componentId": "comp"}, "workspace-x")


# =============================================================================
# Test: Existing Tables and Typed Tables
# =============================================================================


class TestExistingTables:
    """Test loads into existing tables."""

    def test_existing_table_reconciled_and_loaded(self, environment, storage_client, write_staged, make_table):
        write_staged(f"{PREFIX}/t1", "1,2\n")
        write_staged(
            f"{PREFIX}/t1.manifest",
            {"destination": "out.c-main.t1", "columns": ["id", "name"], "primary_key": ["id", "name"]},
        )
        storage_client.tables["out.c-main.t1"] = make_table(
            "out.c-main.t1", columns=["id"], primary_key=["id"]
        )
        storage_client.write_table_async.return_value = "1"

        queue = TableWriter(environment).upload_tables(PREFIX, {}, {"componentId": "comp"}, "local")

        storage_client.remove_table_primary_key.assert_called_once_with("out.c-main.t1")
        storage_client.create_table_primary_key.assert_called_once_with("out.c-main.t1", ["id", "name"])
        storage_client.add_table_column.assert_called_once_with("out.c-main.t1", "name", None, None)
        storage_client.create_table_async.assert_not_called()
        options = storage_client.write_table_async.call_args.args[1]
        assert "primaryKey" not in options
        assert queue.tasks[0].create_table is False

    def test_columns_named_only_in_column_metadata_are_added(
        self, tmp_path, environment, storage_client, make_table
    ):
        environment.staging_factory.register(
            "workspace-snowflake", WorkspaceTableStaging("ws-1", str(tmp_path / "manifests"))
        )
        storage_client.tables["out.c-main.t1"] = make_table("out.c-main.t1", columns=["id", "name"])
        storage_client.write_table_async.return_value = "1"

        TableWriter(environment).upload_tables(
            "",
            {
                "mapping": [
                    {
                        "source": "t1",
                        "destination": "out.c-main.t1",
                        "metadata": [{"key": "KBC.datatype.backend", "value": "snowflake"}],
                        "column_metadata": {
                            "id": [],
                            "name": [],
                            "address": [
                                {"key": "KBC.datatype.type", "value": "VARCHAR"},
                                {"key": "KBC.datatype.basetype", "value": "STRING"},
                            ],
                            "crm id": [
                                {"key": "KBC.datatype.type", "value": "INT"},
                                {"key": "KBC.datatype.basetype", "value": "INTEGER"},
                            ],
                        },
                    }
                ]
            },
            {"componentId": "comp"},
            "workspace-snowflake",
        )

        assert [c.args for c in storage_client.add_table_column.call_args_list] == [
            ("out.c-main.t1", "address", None, None),
            ("out.c-main.t1", "crm_id", None, None),
        ]
        options = storage_client.write_table_async.call_args.args[1]
        assert "columns" not in options

    def test_typed_table_primary_key_left_alone(
        self, environment, storage_client, write_staged, make_table
    ):
        write_staged(f"{PREFIX}/t1", "1,2\n")
        write_staged(
            f"{PREFIX}/t1.manifest",
            {"destination": "out.c-main.t1", "columns": ["id", "name"], "primary_key": ["name"]},
        )
        storage_client.tables["out.c-main.t1"] = make_table(
            "out.c-main.t1", columns=["id", "name"], is_typed=True, primary_key=["id"]
        )
        storage_client.write_table_async.return_value = "1"

        TableWriter(environment).upload_tables(PREFIX, {}, {"componentId": "comp"}, "local")

        storage_client.remove_table_primary_key.assert_not_called()
        storage_client.create_table_primary_key.assert_not_called()
        storage_client.add_table_column.assert_not_called()
        storage_client.write_table_async.assert_called_once()

    def test_provenance_metadata(self, environment, storage_client, write_staged, make_table, system_metadata_dict):
        write_staged(f"{PREFIX}/t1", "a\n1\n")
        storage_client.tables["out.c-main.t1"] = make_table("out.c-main.t1", columns=["a"])
        storage_client.write_table_async.return_value = "1"

        queue = TableWriter(environment).upload_tables(
            PREFIX,
            {
                "mapping": [
                    {
                        "source": "t1",
                        "destination": "out.c-main.t1",
                        "metadata": [{"key": "KBC.description", "value": "Orders"}],
                    }
                ]
            },
            system_metadata_dict,
            "local",
        )

        definitions = {d.provider: d for d in queue.tasks[0].metadata}
        system_keys = [item.key for item in definitions["system"].metadata]
        assert system_keys == [
            "KBC.lastUpdatedBy.component.id",
            "KBC.lastUpdatedBy.configuration.id",
        ]
        assert definitions["keboola.ex-db-mysql"].metadata[0].value == "Orders"

    def test_new_table_gets_created_by_metadata(self, environment, storage_client, write_staged):
        write_staged(f"{PREFIX}/t1", "a\n1\n")
        storage_client.create_table_async.return_value = "1"

        queue = TableWriter(environment).upload_tables(
            PREFIX,
            {"mapping": [{"source": "t1", "destination": "out.c-main.t1"}]},
            {"componentId": "comp"},
            "local",
        )

        system = [d for d in queue.tasks[0].metadata if d.provider == "system"][0]
        assert [item.key for item in system.metadata] == [
            "KBC.createdBy.component.id",
            "KBC.lastUpdatedBy.component.id",
        ]


class TestTypedTables:
    """Test typed table creation."""

    def _write_typed_manifest(self, write_staged, backend):
        write_staged(f"{PREFIX}/t1", "1,x\n")
        write_staged(
            f"{PREFIX}/t1.manifest",
            {
                "destination": "out.c-main.t1",
                "columns": ["id", "name"],
                "primary_key": ["id"],
                "metadata": [{"key": "KBC.datatype.backend", "value": backend}],
                "column_metadata": {
                    "id": [
                        {"key": "KBC.datatype.type", "value": "INTEGER"},
                        {"key": "KBC.datatype.basetype", "value": "INTEGER"},
                        {"key": "KBC.datatype.nullable", "value": False},
                    ],
                    "name": [{"key": "KBC.datatype.type", "value": "VARCHAR"}],
                },
            },
        )

    def test_typed_table_created_then_loaded(self, environment, storage_client, write_staged):
        self._write_typed_manifest(write_staged, "snowflake")
        storage_client.write_table_async.return_value = "1"

        queue = TableWriter(environment).upload_tables(
            PREFIX, {}, {"componentId": "comp"}, "local", data_type_support="authoritative"
        )

        storage_client.create_table_definition.assert_called_once_with(
            "out.c-main",
            {
                "name": "t1",
                "primaryKeysNames": ["id"],
                "columns": [
                    {
                        "name": "id",
                        "definition": {"type": "INTEGER", "nullable": False},
                        "basetype": "INTEGER",
                    },
                    {"name": "name", "definition": {"type": "VARCHAR"}},
                ],
            },
        )
        storage_client.create_table_async.assert_not_called()
        assert queue.tasks[0].create_table is False

    def test_backend_mismatch_creates_untyped(self, environment, storage_client, write_staged):
        self._write_typed_manifest(write_staged, "bigquery")
        storage_client.create_table_async.return_value = "1"

        TableWriter(environment).upload_tables(
            PREFIX, {}, {"componentId": "comp"}, "local", data_type_support=DataTypeSupport.AUTHORITATIVE
        )

        storage_client.create_table_definition.assert_not_called()
        storage_client.create_table_async.assert_called_once()

    def test_invalid_data_type_support(self, environment):
        with pytest.raises(ConfigurationError, match='Data type support "strict"'):
            TableWriter(environment).upload_tables(
                PREFIX, {}, {"componentId": "comp"}, "local", data_type_support="strict"
            )


# =============================================================================
# Test: Branch Isolation
# =============================================================================


class TestBranchIsolation:
    """Test development branch bucket checks."""

    def test_production_bucket_rejected_on_dev_branch(self, environment, storage_client, write_staged):
        environment.branch = BranchInfo(id="123", name="my-branch", is_default=False)
        write_staged(f"{PREFIX}/t1", "a\n1\n")

        with pytest.raises(PolicyViolation, match='on branch "my-branch" \\(ID "123"\\)'):
            TableWriter(environment).upload_tables(
                PREFIX,
                {"mapping": [{"source": "t1", "destination": "out.c-main.t1"}]},
                {"componentId": "comp"},
                "local",
            )

        storage_client.create_table_async.assert_not_called()

    def test_branch_bucket_accepted(self, environment, storage_client, write_staged):
        environment.branch = BranchInfo(id="123", name="my-branch", is_default=False)
        storage_client.get_bucket.return_value = bucket_detail("out.c-main", branch_id=123)
        write_staged(f"{PREFIX}/t1", "a\n1\n")
        storage_client.create_table_async.return_value = "1"

        queue = TableWriter(environment).upload_tables(
            PREFIX,
            {"mapping": [{"source": "t1", "destination": "out.c-main.t1"}]},
            {"componentId": "comp"},
            "local",
        )

        assert queue.get_task_count() == 1


def test_staging_factory_names(environment):
    assert "local" in environment.staging_factory.names()
    assert isinstance(environment.staging_factory, StagingFactory)
