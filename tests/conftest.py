"""
Shared pytest fixtures for output mapping tests.

Provides reusable provenance, storage client and local staging fixtures to
avoid duplication across test files.
"""

import json
from unittest.mock import Mock

import pytest

from libs.models import SystemMetadata
from libs.output_mapping import (
    BranchInfo,
    LocalStaging,
    OutputMappingEnvironment,
    StagingFactory,
)
from libs.storage_api import StorageApiError


# =============================================================================
# Provenance Fixtures
# =============================================================================

@pytest.fixture
def system_metadata_dict():
    """Provenance of a component run as sent by job runners."""
    return {
        "componentId": "keboola.ex-db-mysql",
        "configurationId": "123",
        "runId": "456",
    }


@pytest.fixture
def system_metadata(system_metadata_dict):
    """SystemMetadata model instance."""
    return SystemMetadata.model_validate(system_metadata_dict)


# =============================================================================
# Storage Client Fixtures
# =============================================================================

def _not_found_error(message="Not found"):
    """StorageApiError as raised for a missing table or bucket."""
    return StorageApiError(message, code="storage.notFound", status_code=404)


def _table_detail(table_id, columns=None, is_typed=False, backend="snowflake", primary_key=None):
    """Table detail dict as returned by the storage API."""
    return {
        "id": table_id,
        "name": table_id.split(".")[-1],
        "displayName": table_id.split(".")[-1],
        "columns": list(columns or []),
        "primaryKey": list(primary_key or []),
        "isTyped": is_typed,
        "bucket": {"id": table_id.rsplit(".", 1)[0], "backend": backend},
        "lastImportDate": None,
        "lastChangeDate": None,
    }


@pytest.fixture
def storage_client():
    """
    Mock storage client with an existing "out.c-main" bucket and no tables.

    Tables added to ``client.tables`` (table id -> detail dict) are returned
    by ``get_table``; other ids raise a 404 StorageApiError.
    """
    client = Mock()
    client.tables = {}

    def get_table(table_id):
        if table_id in client.tables:
            return client.tables[table_id]
        raise _not_found_error(f"Table {table_id} not found")

    client.get_table.side_effect = get_table
    client.get_bucket.return_value = {
        "id": "out.c-main",
        "name": "main",
        "stage": "out",
        "backend": "snowflake",
    }
    client.upload_file.return_value = "file-1"
    client.upload_sliced_file.return_value = "file-sliced-1"
    return client


# =============================================================================
# Local Staging Fixtures
# =============================================================================

@pytest.fixture
def write_staged(tmp_path):
    """
    Write staged files under ``tmp_path``.

    Returns a function ``write(relative_path, content)``; dict content is
    written as JSON (manifests).
    """
    def write(relative_path, content):
        path = tmp_path / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, dict):
            content = json.dumps(content)
        path.write_text(content)
        return path

    return write


@pytest.fixture
def environment(tmp_path, storage_client):
    """Output mapping environment on the default branch with local staging at tmp_path."""
    return OutputMappingEnvironment(
        client=storage_client,
        branch=BranchInfo(id="default", name="Main", is_default=True),
        staging_factory=StagingFactory({"local": LocalStaging(str(tmp_path))}),
    )


@pytest.fixture
def make_table():
    """Factory for storage API table detail dicts."""
    return _table_detail
