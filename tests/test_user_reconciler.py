import pytest

from conftest import FakeScimClient, scim_user
from core.errors import PreconditionError
from core.models import ResourceKind, SyncPolicy
from reconcilers.users import UserReconciler


def run(client, source_users, destructive=0):
    target_users = client.list_users()
    reconciler = UserReconciler(client, SyncPolicy(destructive=destructive))
    successes, failures = reconciler.reconcile(source_users, target_users)
    return successes, failures, target_users


def test_unloaded_target_users_raise_precondition_error(make_source_user):
    reconciler = UserReconciler(FakeScimClient(), SyncPolicy())
    with pytest.raises(PreconditionError):
        reconciler.reconcile([make_source_user("u1", "a@example.com")], None)


@pytest.mark.parametrize("source_email, target_email", [
    ("Jane.Doe@Example.com", "jane.doe@example.com"),
    ("JÖRG@x.com", "jörg@x.com"),
])
def test_email_match_is_case_folded(make_source_user, source_email, target_email):
    client = FakeScimClient(users=[scim_user("t1", target_email, external_id="u1")])

    successes, failures, _ = run(client, [make_source_user("u1", source_email)])

    # Matched and identical: nothing to create, patch or delete
    assert successes == [] and failures == []
    assert client.mutations == []


def test_matched_user_patches_changed_attributes_only(make_source_user):
    client = FakeScimClient(users=[
        scim_user("t1", "jane@example.com", full_name="Jane Doe", first_name="Jane", last_name="Doe"),
    ])
    source = make_source_user("u1", "jane@example.com", full_name="Jane Smith",
                              first_name="Jane", last_name="Smith")

    successes, _, target_users = run(client, [source])

    assert successes == ['SCIM updated user "jane@example.com"']
    operations = client.mutations[0][3]
    assert operations == [{"op": "replace", "value": {
        "externalId": "u1",
        "displayName": "Jane Smith",
        "name.familyName": "Smith",
    }}]
    assert target_users["t1"].external_id == "u1"
    assert target_users["t1"].last_name == "Smith"


def test_deactivated_source_user_patches_active_flag(make_source_user):
    client = FakeScimClient(users=[scim_user("t1", "jane@example.com", external_id="u1")])

    run(client, [make_source_user("u1", "jane@example.com", active=False)])

    assert client.mutations[0][3][0]["value"] == {"active": False}


def test_active_source_user_without_match_is_created(make_source_user):
    client = FakeScimClient()
    source = make_source_user("u1", "new@example.com", full_name="New User",
                              first_name="New", last_name="User")

    successes, _, target_users = run(client, [source])

    assert successes == ['SCIM added user "new@example.com"']
    payload = client.mutations[0][2]
    assert payload["userName"] == "new@example.com"
    assert payload["externalId"] == "u1"
    assert payload["name"] == {"givenName": "New", "familyName": "User"}
    assert [u.email for u in target_users.values()] == ["new@example.com"]


def test_inactive_source_user_is_never_created(make_source_user):
    client = FakeScimClient()

    successes, failures, _ = run(client, [make_source_user("u1", "gone@example.com", active=False)])

    assert client.mutations == []
    assert successes == [] and failures == []


@pytest.mark.parametrize("destructive", [0, 1])
def test_unmatched_active_target_user_is_deleted(destructive):
    client = FakeScimClient(users=[scim_user("t1", "left@example.com")])

    successes, _, target_users = run(client, [], destructive=destructive)

    assert successes == ['SCIM deleted user "left@example.com"']
    assert target_users == {}


def test_safe_mode_skips_user_deletion():
    client = FakeScimClient(users=[scim_user("t1", "left@example.com")])

    successes, failures, target_users = run(client, [], destructive=-1)

    assert client.mutations == []
    assert failures == ['DELETE user "left@example.com": delete skipped since the "Safe Mode" is enforced']
    assert "t1" in target_users


def test_unmatched_inactive_target_user_is_left_alone():
    client = FakeScimClient(users=[scim_user("t1", "off@example.com", active=False)])

    successes, failures, _ = run(client, [], destructive=1)

    assert client.mutations == []
    assert successes == [] and failures == []


def test_failed_delete_is_recorded():
    client = FakeScimClient(users=[scim_user("t1", "left@example.com")])
    client.fail("delete", ResourceKind.USERS, "t1")

    successes, failures, target_users = run(client, [])

    assert successes == []
    assert failures[0].startswith('DELETE user "left@example.com" error:')
    assert "t1" in target_users


def test_failed_patch_is_recorded_and_target_kept(make_source_user):
    client = FakeScimClient(users=[scim_user("t1", "jane@example.com", full_name="Jane Doe")])
    client.fail("patch", ResourceKind.USERS, "t1")

    successes, failures, target_users = run(client, [make_source_user("u1", "jane@example.com",
                                                                       full_name="Jane Smith")])

    assert successes == []
    assert failures[0].startswith('PATCH user "jane@example.com" error:')
    assert target_users["t1"].full_name == "Jane Doe"


def test_failed_create_is_recorded(make_source_user):
    client = FakeScimClient()
    client.fail("create", ResourceKind.USERS)

    successes, failures, target_users = run(client, [make_source_user("u1", "new@example.com")])

    assert successes == []
    assert failures[0].startswith('POST user "new@example.com" error:')
    assert target_users == {}


def test_source_users_sharing_an_email_create_once(make_source_user):
    client = FakeScimClient()
    first = make_source_user("u1", "Sam@example.com")
    second = make_source_user("u2", "sam@EXAMPLE.com")

    successes, failures, target_users = run(client, [first, second])

    assert [c[0] for c in client.mutations] == ["create"]
    assert successes == ['SCIM added user "Sam@example.com"']
    assert failures == ['User "sam@EXAMPLE.com" skipped: email is already used by source user "u1"']
    assert len(target_users) == 1
