# =============================================================================
# core/sync.py - Sync orchestrator
# =============================================================================

import logging
from typing import Dict, Optional

from core.identity_source import IdentitySource
from core.models import SyncPolicy, SyncStat, TargetGroup, TargetUser
from core.scim_client import ScimClient
from reconcilers.groups import GroupReconciler
from reconcilers.membership import MembershipReconciler
from reconcilers.users import UserReconciler


class ScimSync:
    """Runs groups, users and membership reconciliation in order"""

    def __init__(self, source: IdentitySource, client: ScimClient, verbose: bool = False,
                 update_users: bool = False, destructive: int = 0):
        self.source = source
        self.client = client
        self.verbose = verbose
        self.update_users = update_users
        self.destructive = destructive
        self.logger = logging.getLogger(self.__class__.__name__)

        self.target_groups: Optional[Dict[str, TargetGroup]] = None
        self.target_users: Optional[Dict[str, TargetUser]] = None

    def _debug(self, message: str) -> None:
        # Verbose runs promote sync progress to INFO
        self.logger.log(logging.INFO if self.verbose else logging.DEBUG, message)

    def populate_target(self) -> None:
        """Load current SCIM groups and users"""
        self.target_groups = self.client.list_groups()
        self.target_users = self.client.list_users()
        self._debug(f"Loaded {len(self.target_groups)} SCIM group(s) "
                    f"and {len(self.target_users)} SCIM user(s)")

    def sync(self) -> SyncStat:
        """Converge the SCIM target to the source snapshot"""
        self.source.populate()

        policy = SyncPolicy(destructive=self.destructive, verbose=self.verbose)
        if self.source.had_partial_errors():
            self.logger.warning("Switching to the Safe Mode due to errors")
            policy.destructive = -1

        self.populate_target()
        stat = SyncStat()

        self._debug("Synchronize groups")
        stat.success_groups, stat.failed_groups = GroupReconciler(self.client, policy).reconcile(
            self.source.groups(), self.target_groups)

        if self.update_users:
            self._debug("Synchronize users")
            stat.success_users, stat.failed_users = UserReconciler(self.client, policy).reconcile(
                self.source.users(), self.target_users)

        self._debug("Synchronize membership")
        stat.success_membership, stat.failed_membership = MembershipReconciler(
            self.client, policy).reconcile(self.source.users(), self.target_users, self.target_groups)

        self.logger.info(f"Sync completed: {stat.total_changes} change(s) applied")
        return stat


def format_statistics(stat: Optional[SyncStat]) -> str:
    """Render a SyncStat as indented text sections"""
    if stat is None:
        return ""
    lines = []
    for title, entries in stat.sections():
        if entries:
            lines.append(f"{title}:")
            lines.extend(f"\t{entry}" for entry in entries)
    return "\n".join(lines) + ("\n" if lines else "")
