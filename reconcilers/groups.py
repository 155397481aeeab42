# =============================================================================
# reconcilers/groups.py - Group reconciliation
# =============================================================================

from typing import List, Dict, Tuple, Iterable, Optional

from core.base_reconciler import BaseReconciler
from core.errors import PreconditionError, RequestError
from core.models import (
    SourceGroup, TargetGroup, GroupUpdate, MatchRound, ResourceKind,
    fold, group_create_payload
)

GroupPair = Tuple[SourceGroup, TargetGroup]


class GroupReconciler(BaseReconciler):
    """Correlates source groups with SCIM groups in three rounds.

    Round 0 matches on externalId, round 1 on case-folded display name and
    round 2 pairs whatever is left positionally. Round 2 only considers SCIM
    groups that carry an externalId and is a best-effort guess at renamed or
    re-identified groups, not proof of identity.
    """

    def reconcile(self, source_groups: Iterable[SourceGroup],
                  target_groups: Optional[Dict[str, TargetGroup]]) -> Tuple[List[str], List[str]]:
        """Patch matched groups, create missing ones, delete leftovers per policy.

        ``target_groups`` is updated in place so later phases see created and
        deleted groups.
        """
        if target_groups is None:
            raise PreconditionError("SCIM groups were not populated")

        self.begin()
        remaining_source: Dict[str, SourceGroup] = {g.id: g for g in source_groups}
        remaining_target: Dict[str, TargetGroup] = dict(target_groups)

        for match_round in MatchRound:
            if not remaining_source or not remaining_target:
                break
            pairs = self.match(match_round, remaining_source, remaining_target)
            self.logger.debug(f"Round {match_round.name}: {len(pairs)} group(s) matched")

            for source, target in pairs:
                self.update_group(source, target)
                del remaining_source[source.id]
                del remaining_target[target.id]

        for source in remaining_source.values():
            self.create_group(source, target_groups)

        for target in sorted(remaining_target.values(), key=lambda g: g.id):
            self.delete_group(target, target_groups)

        return self.result()

    def match(self, match_round: MatchRound, remaining_source: Dict[str, SourceGroup],
              remaining_target: Dict[str, TargetGroup]) -> List[GroupPair]:
        """Pairs found by one round over the still unmatched groups"""
        if match_round == MatchRound.EXTERNAL_ID:
            return self.match_by_external_id(remaining_source, remaining_target)
        if match_round == MatchRound.NAME:
            return self.match_by_name(remaining_source, remaining_target)
        return self.match_by_position(remaining_source, remaining_target)

    def match_by_external_id(self, remaining_source: Dict[str, SourceGroup],
                             remaining_target: Dict[str, TargetGroup]) -> List[GroupPair]:
        lookup = self.index_by_external_id(remaining_target.values(), "group")
        return [(source, lookup[source.id])
                for source in remaining_source.values() if source.id in lookup]

    def match_by_name(self, remaining_source: Dict[str, SourceGroup],
                      remaining_target: Dict[str, TargetGroup]) -> List[GroupPair]:
        lookup: Dict[str, TargetGroup] = {}
        for target in remaining_target.values():
            lookup.setdefault(fold(target.name), target)

        pairs = []
        used = set()
        for source in remaining_source.values():
            target = lookup.get(fold(source.name))
            if target is None or target.id in used:
                continue
            used.add(target.id)
            pairs.append((source, target))
        return pairs

    def match_by_position(self, remaining_source: Dict[str, SourceGroup],
                          remaining_target: Dict[str, TargetGroup]) -> List[GroupPair]:
        # Sorted by id so the pairing is stable between runs
        sources = sorted(remaining_source.values(), key=lambda g: g.id)
        targets = sorted((g for g in remaining_target.values() if g.is_scim_controlled),
                         key=lambda g: g.id)
        return list(zip(sources, targets))

    def update_group(self, source: SourceGroup, target: TargetGroup) -> None:
        """Patch only the attributes that differ"""
        update = GroupUpdate.diff(target, source)
        if update.is_empty():
            return

        try:
            self.client.patch(ResourceKind.GROUPS, target.id, update.to_operations())
        except RequestError as e:
            self.record_failure(f"PATCH group \"{source.name}\" error: {e}")
            return

        update.apply(target)
        self.record_success(f"SCIM updated group \"{source.name}\"")

    def create_group(self, source: SourceGroup, target_groups: Dict[str, TargetGroup]) -> None:
        try:
            created = self.client.create(ResourceKind.GROUPS, group_create_payload(source))
        except RequestError as e:
            self.record_failure(f"POST group \"{source.name}\" error: {e}")
            return

        group = TargetGroup.from_scim(created)
        if group:
            # Servers may omit externalId from the response
            group.external_id = group.external_id or source.id
            group.name = group.name or source.name
            target_groups[group.id] = group
        self.record_success(f"SCIM added group \"{source.name}\"")

    def delete_group(self, target: TargetGroup, target_groups: Dict[str, TargetGroup]) -> None:
        if self.policy.safe_mode:
            self.record_failure(
                f"DELETE group \"{target.name}\": delete skipped since the \"Safe Mode\" is enforced")
            return

        if not self.policy.full_delete and not target.is_scim_controlled:
            self.record_skip(
                f"DELETE group \"{target.name}\": delete skipped since the group is not controlled by SCIM")
            return

        try:
            self.client.delete(ResourceKind.GROUPS, target.id)
        except RequestError as e:
            self.record_failure(f"DELETE group \"{target.name}\" error: {e}")
            return

        target_groups.pop(target.id, None)
        self.record_success(f"SCIM deleted group \"{target.name}\"")
