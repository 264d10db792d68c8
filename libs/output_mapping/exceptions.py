# =============================================================================
# Output Mapping Exceptions
# =============================================================================

"""
Error taxonomy of the output mapping engine.

- ConfigurationError: the mapping cannot be resolved from configuration,
  manifests and staged artifacts
- RemoteOperationError: a storage call or storage job failed; the original
  StorageApiError is chained as ``__cause__``
- PolicyViolation: a write would cross development branch isolation
"""

__all__ = [
    "OutputMappingError",
    "ConfigurationError",
    "RemoteOperationError",
    "PolicyViolation",
]


class OutputMappingError(Exception):
    """Base class for all output mapping failures."""


class ConfigurationError(OutputMappingError):
    """Invalid or unresolvable output mapping."""


class RemoteOperationError(OutputMappingError):
    """A storage call or storage job failed."""


class PolicyViolation(OutputMappingError):
    """A write would violate development branch isolation."""
