import itertools

import pytest

from core.errors import RequestError
from core.identity_source import IdentitySource
from core.models import ResourceKind, SourceGroup, SourceUser, SyncPolicy, TargetGroup, TargetUser


def scim_group(group_id, name, external_id=None):
    resource = {"id": group_id, "displayName": name}
    if external_id:
        resource["externalId"] = external_id
    return resource


def scim_user(user_id, email, external_id=None, full_name="", first_name="", last_name="",
              active=True, groups=()):
    resource = {
        "id": user_id,
        "userName": email,
        "displayName": full_name,
        "name": {"givenName": first_name, "familyName": last_name},
        "active": active,
        "groups": [{"value": g} for g in groups],
    }
    if external_id:
        resource["externalId"] = external_id
    return resource


class FakeScimClient:
    """In-memory SCIM target that applies PatchOp operations to its store"""

    def __init__(self, groups=(), users=()):
        self.store = {
            ResourceKind.GROUPS: {g["id"]: dict(g) for g in groups},
            ResourceKind.USERS: {u["id"]: dict(u) for u in users},
        }
        self.calls = []
        self.failing = set()
        self._ids = itertools.count(1)

    def fail(self, method, kind, resource_id=None):
        self.failing.add((method, kind, resource_id))

    def _check(self, method, kind, resource_id=None):
        if (method, kind, resource_id) in self.failing or (method, kind, None) in self.failing:
            raise RequestError(f"{method} {kind.value} failed", 500, "server error")

    @property
    def mutations(self):
        return [c for c in self.calls if c[0] in ("create", "patch", "delete")]

    def list_groups(self):
        self.calls.append(("list", ResourceKind.GROUPS))
        return {r["id"]: TargetGroup.from_scim(r) for r in self.store[ResourceKind.GROUPS].values()}

    def list_users(self):
        self.calls.append(("list", ResourceKind.USERS))
        return {r["id"]: TargetUser.from_scim(r) for r in self.store[ResourceKind.USERS].values()}

    def get(self, kind, resource_id):
        return self.store[kind][resource_id]

    def create(self, kind, payload):
        self.calls.append(("create", kind, payload))
        self._check("create", kind)
        resource = dict(payload, id=f"new-{next(self._ids)}")
        self.store[kind][resource["id"]] = resource
        return resource

    def patch(self, kind, resource_id, operations):
        self.calls.append(("patch", kind, resource_id, operations))
        self._check("patch", kind, resource_id)
        resource = self.store[kind][resource_id]
        for operation in operations:
            if operation["op"] == "replace":
                for key, value in operation["value"].items():
                    if key.startswith("name."):
                        resource.setdefault("name", {})[key[len("name."):]] = value
                    else:
                        resource[key] = value
            elif operation["op"] == "add":
                resource.setdefault("groups", []).extend(operation["value"])
            elif operation["op"] == "remove":
                removed = {v["value"] for v in operation["value"]}
                resource["groups"] = [g for g in resource.get("groups", []) if g["value"] not in removed]

    def delete(self, kind, resource_id):
        self.calls.append(("delete", kind, resource_id))
        self._check("delete", kind, resource_id)
        del self.store[kind][resource_id]


class FakeSource(IdentitySource):
    def __init__(self, users=(), groups=(), partial_errors=False):
        super().__init__()
        self.source_users = list(users)
        self.source_groups = list(groups)
        self.partial_errors = partial_errors

    def load(self):
        for group in self.source_groups:
            self._groups[group.id] = group
        for user in self.source_users:
            self._users[user.id] = user
        if self.partial_errors:
            self.mark_partial_error("Group \"missing\" could not be resolved")


@pytest.fixture
def policy():
    return SyncPolicy(destructive=0, verbose=False)


@pytest.fixture
def make_source_user():
    def _make(user_id, email, groups=(), active=True, full_name="", first_name="", last_name=""):
        return SourceUser(id=user_id, email=email, full_name=full_name, first_name=first_name,
                          last_name=last_name, active=active, groups=list(groups))
    return _make


@pytest.fixture
def make_source_group():
    def _make(group_id, name):
        return SourceGroup(id=group_id, name=name)
    return _make
