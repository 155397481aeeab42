# =============================================================================
# reconcilers/users.py - User reconciliation
# =============================================================================

from typing import List, Dict, Tuple, Iterable, Optional

from core.base_reconciler import BaseReconciler
from core.errors import PreconditionError, RequestError
from core.models import (
    SourceUser, TargetUser, UserUpdate, ResourceKind, fold, user_create_payload
)


class UserReconciler(BaseReconciler):
    """Correlates source users with SCIM users by case-folded email"""

    def reconcile(self, source_users: Iterable[SourceUser],
                  target_users: Optional[Dict[str, TargetUser]]) -> Tuple[List[str], List[str]]:
        if target_users is None:
            raise PreconditionError("SCIM users were not populated")

        self.begin()
        remaining_source = self.unique_by_email(source_users)
        remaining_target: Dict[str, TargetUser] = dict(target_users)

        if remaining_source and remaining_target:
            lookup = self.index_by_email(target_users.values())
            for source in list(remaining_source.values()):
                target = lookup.get(fold(source.email))
                if target is None or target.id not in remaining_target:
                    continue
                self.update_user(source, target)
                del remaining_source[source.id]
                del remaining_target[target.id]

        for source in remaining_source.values():
            # Never provision an account only to have it deleted again
            if not source.active:
                continue
            self.create_user(source, target_users)

        for target in sorted(remaining_target.values(), key=lambda u: u.id):
            if not target.active:
                continue
            self.delete_user(target, target_users)

        return self.result()

    def unique_by_email(self, source_users: Iterable[SourceUser]) -> Dict[str, SourceUser]:
        """Source users keyed by id, keeping only the first of each case-folded email"""
        unique: Dict[str, SourceUser] = {}
        owners: Dict[str, SourceUser] = {}
        for source in source_users:
            owner = owners.setdefault(fold(source.email), source)
            if owner is not source:
                self.record_failure(f"User \"{source.email}\" skipped: email is already used by "
                                    f"source user \"{owner.id}\"")
                continue
            unique[source.id] = source
        return unique

    def update_user(self, source: SourceUser, target: TargetUser) -> None:
        update = UserUpdate.diff(target, source)
        if update.is_empty():
            return

        try:
            self.client.patch(ResourceKind.USERS, target.id, update.to_operations())
        except RequestError as e:
            self.record_failure(f"PATCH user \"{source.email}\" error: {e}")
            return

        update.apply(target)
        self.record_success(f"SCIM updated user \"{source.email}\"")

    def create_user(self, source: SourceUser, target_users: Dict[str, TargetUser]) -> None:
        try:
            created = self.client.create(ResourceKind.USERS, user_create_payload(source))
        except RequestError as e:
            self.record_failure(f"POST user \"{source.email}\" error: {e}")
            return

        user = TargetUser.from_scim(created)
        if user:
            user.email = user.email or source.email
            user.external_id = user.external_id or source.id
            target_users[user.id] = user
        self.record_success(f"SCIM added user \"{source.email}\"")

    def delete_user(self, target: TargetUser, target_users: Dict[str, TargetUser]) -> None:
        if self.policy.safe_mode:
            self.record_failure(
                f"DELETE user \"{target.email}\": delete skipped since the \"Safe Mode\" is enforced")
            return

        try:
            self.client.delete(ResourceKind.USERS, target.id)
        except RequestError as e:
            self.record_failure(f"DELETE user \"{target.email}\" error: {e}")
            return

        target_users.pop(target.id, None)
        self.record_success(f"SCIM deleted user \"{target.email}\"")
