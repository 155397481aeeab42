# =============================================================================
# core/identity_source.py - Abstract identity source
# =============================================================================

from abc import ABC, abstractmethod
from typing import Dict, Iterator
import logging

from core.errors import PreconditionError
from core.models import SourceUser, SourceGroup


class IdentitySource(ABC):
    """Directory treated as ground truth for a sync run.

    ``populate()`` loads a snapshot; ``users()`` and ``groups()`` may then be
    iterated any number of times and always yield that same snapshot.
    """

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)
        self._users: Dict[str, SourceUser] = {}
        self._groups: Dict[str, SourceGroup] = {}
        self._populated = False
        self._partial_errors = False

    @abstractmethod
    def load(self) -> None:
        """Fill ``_users`` and ``_groups``; raise LoadError on total failure"""
        pass

    def test_connection(self) -> bool:
        """Check the source is reachable"""
        return True

    def close(self) -> None:
        """Release connections held by the source"""
        pass

    def populate(self) -> None:
        """Load a fresh snapshot"""
        self._users = {}
        self._groups = {}
        self._partial_errors = False
        self.load()
        self._populated = True
        self.logger.info(f"Loaded {len(self._users)} user(s) and {len(self._groups)} group(s)")

    def users(self) -> Iterator[SourceUser]:
        self._require_populated()
        return iter(list(self._users.values()))

    def groups(self) -> Iterator[SourceGroup]:
        self._require_populated()
        return iter(list(self._groups.values()))

    def had_partial_errors(self) -> bool:
        return self._partial_errors

    def mark_partial_error(self, message: str) -> None:
        """Record a non-fatal load problem"""
        self.logger.warning(message)
        self._partial_errors = True

    def _require_populated(self) -> None:
        if not self._populated:
            raise PreconditionError(f"{self.__class__.__name__} was not populated")
