# =============================================================================
# Slicing Decision
# =============================================================================
# Decides which local sources are sliced before upload. Workspace sources
# never participate.
# =============================================================================

import logging
from collections import Counter
from typing import Optional

from libs.models import DEFAULT_DELIMITER, DEFAULT_ENCLOSURE, MappingEntry

from .exceptions import ConfigurationError
from .sources import MappingSource

__all__ = ["FormatOverridePolicy", "SlicerDecider"]

FORMAT_OVERRIDE_MESSAGE = (
    'Params "delimiter", "enclosure" or "columns" specified in mapping are not longer supported.'
)


class FormatOverridePolicy:
    """
    Rejects legacy per-entry format overrides on sliced uploads.

    A configuration entry with a non-default delimiter or enclosure, or an
    explicit column list, cannot be sliced. By default that is an error;
    with ``warn_only`` the source is logged and left unsliced.
    """

    def __init__(self, warn_only: bool = False, logger: Optional[logging.Logger] = None) -> None:
        self.warn_only = warn_only
        self.logger = logger or logging.getLogger(__name__)

    def check(self, entry: Optional[MappingEntry]) -> bool:
        """
        Return True if the entry allows slicing.

        Raises:
            ConfigurationError: If the entry overrides the format and
                ``warn_only`` is off
        """
        if entry is None:
            return True
        overrides = (
            entry.delimiter != DEFAULT_DELIMITER
            or entry.enclosure != DEFAULT_ENCLOSURE
            or bool(entry.columns)
        )
        if not overrides:
            return True
        if self.warn_only:
            self.logger.warning(f'Source "{entry.source}" not sliced: {FORMAT_OVERRIDE_MESSAGE}')
            return False
        raise ConfigurationError(FORMAT_OVERRIDE_MESSAGE)


class SlicerDecider:
    """
    Selects local sources that need slicing.

    Args:
        logger: Logger for skipped sources
        policy: Format override policy (rejecting by default)
    """

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        policy: Optional[FormatOverridePolicy] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.policy = policy or FormatOverridePolicy(logger=self.logger)

    def decide_slice_files(self, sources: list[MappingSource]) -> list[MappingSource]:
        """
        Return the local sources that should be sliced.

        Raises:
            ConfigurationError: If a local source has more than one
                configuration entry, or the format override policy rejects
                an entry
        """
        local_sources = [source for source in sources if source.is_local]

        occurrences = Counter(source.source_name for source in local_sources)
        for source in local_sources:
            if occurrences[source.source_name] > 1:
                raise ConfigurationError(
                    f'Source "{source.source_name}" has multiple destinations set.'
                )

        return [source for source in local_sources if self._decide_slice_file(source)]

    def _decide_slice_file(self, source: MappingSource) -> bool:
        if source.is_sliced and source.manifest is None:
            self.logger.warning(
                f'Sliced source "{source.source_name}" has no manifest; sliced files '
                "without manifest are not supported."
            )
            return False

        if not source.artifact.size:
            self.logger.warning(f'Source "{source.source_name}" is empty and cannot be sliced.')
            return False

        return self.policy.check(source.configuration)
