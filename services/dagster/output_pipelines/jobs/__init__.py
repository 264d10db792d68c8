"""Dagster Jobs - Executable Workflows."""

from .upload_files_job import upload_files_job
from .upload_tables_job import upload_tables_job

__all__ = ["upload_files_job", "upload_tables_job"]
