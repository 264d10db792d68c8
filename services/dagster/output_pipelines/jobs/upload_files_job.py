"""File upload job (op-based)."""

from dagster import job

from ..ops import upload_output_files


@job(
    name="upload_files_job",
    description="Uploads the staged output files of a component run to storage",
)
def upload_files_job():
    """File output mapping job; the request is passed via run config."""
    upload_output_files()
