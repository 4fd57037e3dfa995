"""Base collector abstract class."""

from abc import ABC, abstractmethod
import logging

from ..utils.metrics import Snapshot


class BaseCollector(ABC):
    """Abstract base class for snapshot producers."""

    def __init__(self, logger: logging.Logger):
        """
        Initialize base collector.

        Args:
            logger: Logger instance
        """
        self.logger = logger.getChild(self.__class__.__name__)

    @abstractmethod
    async def collect(self, generation: int) -> Snapshot:
        """
        Run one collection pass and return its snapshot.

        Args:
            generation: Generation number to stamp on the snapshot

        Returns:
            Snapshot: Records produced by this pass

        Raises:
            CredentialsRejectedError: The pass cannot run with the current credentials
        """
        pass
