# =============================================================================
# sources/csv_snapshot.py - Directory export read from CSV files
# =============================================================================

from typing import Dict, Any

from core.errors import LoadError
from core.identity_source import IdentitySource
from core.models import SourceUser, SourceGroup
from utils.config import to_boolean
from utils.csv_utils import CSVHandler


class CsvSnapshotSource(IdentitySource):
    """Offline identity source backed by a users CSV and a groups CSV.

    groups file: ``id,name``
    users file:  ``id,email,full_name,first_name,last_name,active,groups``
    where ``groups`` lists group ids separated by ``;``.
    """

    # Column mappings
    ID_COLUMN = 'id'
    NAME_COLUMN = 'name'
    EMAIL_COLUMN = 'email'
    FULL_NAME_COLUMN = 'full_name'
    FIRST_NAME_COLUMN = 'first_name'
    LAST_NAME_COLUMN = 'last_name'
    ACTIVE_COLUMN = 'active'
    GROUPS_COLUMN = 'groups'
    GROUP_SEPARATOR = ';'

    def __init__(self, users_file: str, groups_file: str):
        super().__init__()
        self.users_file = users_file
        self.groups_file = groups_file

    def load(self) -> None:
        try:
            group_rows, _ = CSVHandler.read_csv(self.groups_file)
            user_rows, _ = CSVHandler.read_csv(self.users_file)
        except OSError as e:
            raise LoadError(f"Could not read directory snapshot: {e}") from e

        for row in group_rows:
            group_id = (row.get(self.ID_COLUMN) or '').strip()
            if not group_id:
                self.mark_partial_error("Skipping group row with empty id")
                continue
            self._groups[group_id] = SourceGroup(
                id=group_id, name=(row.get(self.NAME_COLUMN) or '').strip())

        for row in user_rows:
            user = self.parse_user(row)
            if user:
                self._users[user.id] = user

        if not self._groups and not self._users:
            raise LoadError("Directory snapshot contains no users or groups")

    def parse_user(self, row: Dict[str, Any]):
        user_id = (row.get(self.ID_COLUMN) or '').strip()
        email = (row.get(self.EMAIL_COLUMN) or '').strip()
        if not user_id or not email:
            self.mark_partial_error(f"Skipping user row without id or email: {user_id or email!r}")
            return None

        groups = []
        for group_id in (row.get(self.GROUPS_COLUMN) or '').split(self.GROUP_SEPARATOR):
            group_id = group_id.strip()
            if not group_id:
                continue
            if group_id not in self._groups:
                self.mark_partial_error(f"User \"{email}\" references unknown group \"{group_id}\"")
                continue
            groups.append(group_id)

        first_name = (row.get(self.FIRST_NAME_COLUMN) or '').strip()
        last_name = (row.get(self.LAST_NAME_COLUMN) or '').strip()
        full_name = (row.get(self.FULL_NAME_COLUMN) or '').strip() or f"{first_name} {last_name}".strip()
        active = to_boolean(row.get(self.ACTIVE_COLUMN))

        return SourceUser(
            id=user_id,
            email=email,
            full_name=full_name,
            first_name=first_name,
            last_name=last_name,
            active=True if active is None else active,
            groups=groups,
        )
