# =============================================================================
# core/models.py - Unified data models
# =============================================================================

from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Set
from enum import Enum


PATCH_OP_SCHEMA = "urn:ietf:params:scim:api:messages:2.0:PatchOp"
GROUP_SCHEMA = "urn:ietf:params:scim:schemas:core:2.0:Group"
USER_SCHEMA = "urn:ietf:params:scim:schemas:core:2.0:User"
ENTERPRISE_USER_SCHEMA = "urn:ietf:params:scim:schemas:extension:enterprise:2.0:User"


class ResourceKind(Enum):
    """SCIM resource endpoints"""
    USERS = "Users"
    GROUPS = "Groups"


class MatchRound(Enum):
    """Enumeration of group correlation rounds"""
    EXTERNAL_ID = 0
    NAME = 1
    POSITIONAL = 2


def fold(value: Optional[str]) -> str:
    """Unicode case-folding used for email and name comparison"""
    return (value or "").casefold()


@dataclass
class SourceGroup:
    """Group as read from the identity source"""
    id: str
    name: str = ""


@dataclass
class SourceUser:
    """User as read from the identity source"""
    id: str
    email: str
    full_name: str = ""
    first_name: str = ""
    last_name: str = ""
    active: bool = True
    groups: List[str] = field(default_factory=list)


@dataclass
class TargetGroup:
    """Group record provisioned in the SCIM target"""
    id: str
    external_id: str = ""
    name: str = ""

    @property
    def is_scim_controlled(self) -> bool:
        return bool(self.external_id)

    @classmethod
    def from_scim(cls, resource: Dict[str, Any]) -> Optional["TargetGroup"]:
        """Build from a SCIM Group resource, None if it has no id"""
        group_id = resource.get("id")
        if not group_id:
            return None
        return cls(
            id=str(group_id),
            external_id=resource.get("externalId") or "",
            name=resource.get("displayName") or "",
        )


@dataclass
class TargetUser:
    """User record provisioned in the SCIM target"""
    id: str
    email: str = ""
    external_id: str = ""
    full_name: str = ""
    first_name: str = ""
    last_name: str = ""
    active: bool = True
    groups: Set[str] = field(default_factory=set)

    @classmethod
    def from_scim(cls, resource: Dict[str, Any]) -> Optional["TargetUser"]:
        """Build from a SCIM User resource, None if it has no id"""
        user_id = resource.get("id")
        if not user_id:
            return None

        email = resource.get("userName") or ""
        if not email:
            emails = resource.get("emails") or []
            primary = [e for e in emails if e.get("primary")]
            if primary or emails:
                email = (primary or emails)[0].get("value") or ""

        name = resource.get("name") or {}
        groups = {str(g["value"]) for g in resource.get("groups") or [] if g.get("value")}

        return cls(
            id=str(user_id),
            email=email,
            external_id=resource.get("externalId") or "",
            full_name=resource.get("displayName") or "",
            first_name=name.get("givenName") or "",
            last_name=name.get("familyName") or "",
            active=bool(resource.get("active", True)),
            groups=groups,
        )


@dataclass
class SyncPolicy:
    """Deletion policy and verbosity shared by the reconcilers"""
    destructive: int = 0
    verbose: bool = False

    @property
    def safe_mode(self) -> bool:
        return self.destructive < 0

    @property
    def full_delete(self) -> bool:
        return self.destructive > 0


# -----------------------------------------------------------------------------
# Partial updates. Only fields that are set are sent on the wire.
# -----------------------------------------------------------------------------

@dataclass
class GroupUpdate:
    """Changed attributes of a matched group"""
    external_id: Optional[str] = None
    display_name: Optional[str] = None

    @classmethod
    def diff(cls, target: TargetGroup, source: SourceGroup) -> "GroupUpdate":
        update = cls()
        if target.external_id != source.id:
            update.external_id = source.id
        if target.name != source.name:
            update.display_name = source.name
        return update

    def is_empty(self) -> bool:
        return self.external_id is None and self.display_name is None

    def apply(self, target: TargetGroup) -> None:
        if self.external_id is not None:
            target.external_id = self.external_id
        if self.display_name is not None:
            target.name = self.display_name

    def to_operations(self) -> List[Dict[str, Any]]:
        value: Dict[str, Any] = {}
        if self.external_id is not None:
            value["externalId"] = self.external_id
        if self.display_name is not None:
            value["displayName"] = self.display_name
        return [{"op": "replace", "value": value}]


@dataclass
class UserUpdate:
    """Changed attributes of a matched user"""
    external_id: Optional[str] = None
    display_name: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    active: Optional[bool] = None

    @classmethod
    def diff(cls, target: TargetUser, source: SourceUser) -> "UserUpdate":
        update = cls()
        if target.external_id != source.id:
            update.external_id = source.id
        if target.full_name != source.full_name:
            update.display_name = source.full_name
        if target.first_name != source.first_name:
            update.given_name = source.first_name
        if target.last_name != source.last_name:
            update.family_name = source.last_name
        if target.active != source.active:
            update.active = source.active
        return update

    def is_empty(self) -> bool:
        return all(v is None for v in (self.external_id, self.display_name,
                                       self.given_name, self.family_name, self.active))

    def apply(self, target: TargetUser) -> None:
        if self.external_id is not None:
            target.external_id = self.external_id
        if self.display_name is not None:
            target.full_name = self.display_name
        if self.given_name is not None:
            target.first_name = self.given_name
        if self.family_name is not None:
            target.last_name = self.family_name
        if self.active is not None:
            target.active = self.active

    def to_operations(self) -> List[Dict[str, Any]]:
        value: Dict[str, Any] = {}
        if self.external_id is not None:
            value["externalId"] = self.external_id
        if self.display_name is not None:
            value["displayName"] = self.display_name
        if self.given_name is not None:
            value["name.givenName"] = self.given_name
        if self.family_name is not None:
            value["name.familyName"] = self.family_name
        if self.active is not None:
            value["active"] = self.active
        return [{"op": "replace", "value": value}]


@dataclass
class MembershipUpdate:
    """Group ids to add to and remove from a single user"""
    add: List[str] = field(default_factory=list)
    remove: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.add and not self.remove

    def apply(self, target: TargetUser) -> None:
        target.groups.update(self.add)
        target.groups.difference_update(self.remove)

    def to_operations(self) -> List[Dict[str, Any]]:
        operations = []
        if self.add:
            operations.append({
                "op": "add",
                "path": "groups",
                "value": [{"value": group_id} for group_id in self.add],
            })
        if self.remove:
            operations.append({
                "op": "remove",
                "path": "groups",
                "value": [{"value": group_id} for group_id in self.remove],
            })
        return operations


def group_create_payload(group: SourceGroup) -> Dict[str, Any]:
    """SCIM payload for a new group correlated to its source"""
    return {
        "schemas": [GROUP_SCHEMA],
        "displayName": group.name,
        "externalId": group.id,
    }


def user_create_payload(user: SourceUser) -> Dict[str, Any]:
    """SCIM payload for a new user correlated to its source"""
    return {
        "schemas": [USER_SCHEMA, ENTERPRISE_USER_SCHEMA],
        "userName": user.email,
        "externalId": user.id,
        "displayName": user.full_name,
        "name": {
            "givenName": user.first_name,
            "familyName": user.last_name,
        },
        "active": user.active,
    }


@dataclass
class SyncStat:
    """Outcome descriptions of a sync run, per category"""
    success_groups: List[str] = field(default_factory=list)
    failed_groups: List[str] = field(default_factory=list)
    success_users: List[str] = field(default_factory=list)
    failed_users: List[str] = field(default_factory=list)
    success_membership: List[str] = field(default_factory=list)
    failed_membership: List[str] = field(default_factory=list)

    @property
    def total_changes(self) -> int:
        return len(self.success_groups) + len(self.success_users) + len(self.success_membership)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed_groups or self.failed_users or self.failed_membership)

    def sections(self) -> List[tuple]:
        """(title, entries) pairs in display order"""
        return [
            ("Group Success", self.success_groups),
            ("Group Failure", self.failed_groups),
            ("User Success", self.success_users),
            ("User Failure", self.failed_users),
            ("Membership Success", self.success_membership),
            ("Membership Failure", self.failed_membership),
        ]
