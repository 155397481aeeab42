# =============================================================================
# core/base_reconciler.py - Abstract base reconciler
# =============================================================================

from abc import ABC, abstractmethod
from typing import List, Dict, Tuple, Iterable, TypeVar
import logging

from core.errors import DataIntegrityError
from core.models import SyncPolicy, fold
from core.scim_client import ScimClient

Record = TypeVar("Record")


class BaseReconciler(ABC):
    """Abstract base class for reconciliation phases"""

    def __init__(self, client: ScimClient, policy: SyncPolicy):
        self.client = client
        self.policy = policy
        self.logger = logging.getLogger(self.__class__.__name__)
        self.successes: List[str] = []
        self.failures: List[str] = []

    @abstractmethod
    def reconcile(self, *args) -> Tuple[List[str], List[str]]:
        """Run the phase and return (successes, failures)"""
        pass

    def begin(self) -> None:
        """Reset outcome logs for a new run"""
        self.successes = []
        self.failures = []

    def result(self) -> Tuple[List[str], List[str]]:
        self.logger.info(f"{self.__class__.__name__} finished: "
                         f"{len(self.successes)} succeeded, {len(self.failures)} failed or skipped")
        return self.successes, self.failures

    def record_success(self, message: str) -> None:
        self.logger.info(message)
        self.successes.append(message)

    def record_failure(self, message: str) -> None:
        self.logger.warning(message)
        self.failures.append(message)

    def record_skip(self, message: str) -> None:
        """Skips only reach the failure log in verbose mode"""
        if self.policy.verbose:
            self.record_failure(message)
        else:
            self.logger.debug(message)

    @staticmethod
    def index_by_external_id(records: Iterable[Record], kind: str) -> Dict[str, Record]:
        """Map non-empty externalId to record, rejecting duplicates"""
        lookup: Dict[str, Record] = {}
        for record in records:
            external_id = getattr(record, "external_id", "")
            if not external_id:
                continue
            if external_id in lookup:
                raise DataIntegrityError(
                    f"SCIM {kind} \"{record.id}\" and \"{lookup[external_id].id}\" "
                    f"share externalId \"{external_id}\""
                )
            lookup[external_id] = record
        return lookup

    def index_by_email(self, users: Iterable[Record]) -> Dict[str, Record]:
        """Map case-folded email to user, first record wins"""
        lookup: Dict[str, Record] = {}
        for user in users:
            key = fold(user.email)
            if not key:
                continue
            if key in lookup:
                self.logger.warning(f"Duplicate SCIM user email \"{user.email}\", keeping first match")
                continue
            lookup[key] = user
        return lookup
