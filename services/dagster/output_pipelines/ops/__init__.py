"""Dagster Ops - Reusable Computation Units."""

from .upload_files_op import upload_output_files
from .upload_tables_op import upload_output_tables

__all__ = [
    "upload_output_files",
    "upload_output_tables",
]
