# =============================================================================
# reconcilers/membership.py - Group membership reconciliation
# =============================================================================

from typing import List, Dict, Set, Tuple, Iterable, Optional

from core.base_reconciler import BaseReconciler
from core.errors import PreconditionError, RequestError
from core.models import (
    SourceUser, TargetUser, TargetGroup, MembershipUpdate, ResourceKind, fold
)


class MembershipReconciler(BaseReconciler):
    """Aligns SCIM group membership of matched users with the source.

    Source group ids are translated to SCIM group ids through the SCIM
    groups' externalId. Source groups without a SCIM counterpart are outside
    of SCIM control and ignored.
    """

    def reconcile(self, source_users: Iterable[SourceUser],
                  target_users: Optional[Dict[str, TargetUser]],
                  target_groups: Optional[Dict[str, TargetGroup]]) -> Tuple[List[str], List[str]]:
        if target_users is None:
            raise PreconditionError("SCIM users were not populated")
        if target_groups is None:
            raise PreconditionError("SCIM groups were not populated")

        self.begin()
        user_lookup = self.index_by_email(target_users.values())
        group_lookup = self.index_by_external_id(target_groups.values(), "group")

        synced: Set[str] = set()
        for source in source_users:
            target = user_lookup.get(fold(source.email))
            if target is None:
                continue
            if target.id in synced:
                self.record_skip(f"Membership of user \"{source.email}\" skipped. "
                                 f"Email is shared with another source user")
                continue
            synced.add(target.id)
            self.sync_user(source, target, group_lookup, target_groups)

        return self.result()

    def sync_user(self, source: SourceUser, target: TargetUser,
                  group_lookup: Dict[str, TargetGroup],
                  target_groups: Dict[str, TargetGroup]) -> None:
        """Issue one combined add/remove patch for a single user"""
        wanted: List[str] = []
        for source_group_id in source.groups:
            group = group_lookup.get(source_group_id)
            if group is not None and group.id not in wanted:
                wanted.append(group.id)

        to_add = [group_id for group_id in wanted if group_id not in target.groups]
        candidate_remove = sorted(target.groups.difference(wanted))
        to_remove = self.filter_removals(source, candidate_remove, target_groups)

        if to_remove and self.policy.safe_mode:
            self.record_failure(
                f"REMOVE membership for user \"{source.email}\" skipped since the \"Safe Mode\" is enforced")
            to_remove = []

        update = MembershipUpdate(add=to_add, remove=to_remove)
        if update.is_empty():
            return

        try:
            self.client.patch(ResourceKind.USERS, target.id, update.to_operations())
        except RequestError as e:
            self.record_failure(f"PATCH user \"{target.email}\" membership error: {e}")
            return

        update.apply(target)
        self.record_success(f"SCIM changed user \"{target.email}\" membership: "
                            f"{len(update.add)} added; {len(update.remove)} removed")

    def filter_removals(self, source: SourceUser, candidate_remove: List[str],
                        target_groups: Dict[str, TargetGroup]) -> List[str]:
        """Drop removals the deletion policy does not allow"""
        if self.policy.full_delete:
            return list(candidate_remove)

        allowed = []
        for group_id in candidate_remove:
            group = target_groups.get(group_id)
            if group is None:
                self.record_skip(f"Remove team Id \"{group_id}\" from user \"{source.email}\" skipped. "
                                 f"Team is outside of SCIM node")
            elif not group.is_scim_controlled:
                self.record_skip(f"Remove team \"{group.name}\" from user \"{source.email}\" skipped. "
                                 f"Team is not controlled by SCIM")
            else:
                allowed.append(group_id)
        return allowed
