"""Table upload job (op-based)."""

from dagster import job

from ..ops import upload_output_tables


@job(
    name="upload_tables_job",
    description="Uploads the staged output tables of a component run to storage and waits for all load jobs",
)
def upload_tables_job():
    """
    Output mapping job.

    The upload request is passed as an op input to upload_output_tables
    via run config.
    """
    upload_output_tables()
