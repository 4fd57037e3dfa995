"""Holder of the most recently published snapshot."""

import logging
from typing import Optional

from ..utils.errors import RegistryNotReadyError
from ..utils.metrics import Snapshot


class MetricRegistry:
    """
    Single-writer, many-reader snapshot holder.

    ``publish`` replaces the reference in one assignment, so a reader that
    already fetched a snapshot keeps using it and never sees a partial update.
    No lock is taken on the read path.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = (logger or logging.getLogger(__name__)).getChild("MetricRegistry")
        self._snapshot: Optional[Snapshot] = None

    @property
    def ready(self) -> bool:
        return self._snapshot is not None

    @property
    def generation(self) -> int:
        """Generation of the current snapshot, 0 before the first publish."""
        snapshot = self._snapshot
        return snapshot.generation if snapshot is not None else 0

    def publish(self, snapshot: Snapshot) -> None:
        """
        Make ``snapshot`` the current one.

        Raises:
            ValueError: If the generation does not increase
        """
        current = self._snapshot
        if current is not None and snapshot.generation <= current.generation:
            raise ValueError(
                f"Snapshot generation {snapshot.generation} is not newer than "
                f"{current.generation}"
            )
        self._snapshot = snapshot
        self.logger.debug(
            f"Published generation {snapshot.generation} with {len(snapshot.records)} record(s)"
        )

    def current(self) -> Snapshot:
        """
        Return the current snapshot.

        Raises:
            RegistryNotReadyError: Nothing has been published yet
        """
        snapshot = self._snapshot
        if snapshot is None:
            raise RegistryNotReadyError("No snapshot published yet")
        return snapshot
