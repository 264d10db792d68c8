# =============================================================================
# Output Mapping Shared Libraries
# =============================================================================
# Shared libraries for the output mapping pipeline.
# See individual sub-packages for detailed documentation.
# =============================================================================

"""
Output mapping shared libraries.

Sub-packages:
- models: Pydantic data models and settings
- storage_api: HTTP client for the tabular storage service
- output_mapping: source/destination resolution and deferred load jobs
"""

__version__ = "0.1.0"
