# =============================================================================
# sources/active_directory.py - Active Directory identity source
# =============================================================================

import uuid
from collections import deque
from email.utils import parseaddr
from typing import Dict, Any, List, Optional

from ldap3 import Server, Connection, ALL, BASE, SUBTREE
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

from core.errors import LoadError
from core.identity_source import IdentitySource
from core.models import SourceUser, SourceGroup
from utils.config import parse_group_list


ATTRIBUTES = [
    'objectGUID', 'objectClass', 'mail', 'userPrincipalName', 'displayName',
    'givenName', 'sn', 'cn', 'userAccountControl', 'member'
]


def first_value(attributes: Dict[str, Any], name: str) -> Any:
    """First value of a possibly multi-valued attribute"""
    value = attributes.get(name)
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def as_list(attributes: Dict[str, Any], name: str) -> List[Any]:
    value = attributes.get(name)
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def format_guid(value: Any) -> str:
    """objectGUID as a stable string, whether ldap3 decoded it or not"""
    if isinstance(value, (bytes, bytearray)) and len(value) == 16:
        return str(uuid.UUID(bytes_le=bytes(value)))
    return str(value or "").strip("{}").lower()


def is_account_active(user_account_control: Any) -> bool:
    """Check if user account is active based on userAccountControl flags"""
    # 0x2 = ACCOUNTDISABLE flag
    try:
        return not bool(int(user_account_control or 0) & 0x2)
    except (TypeError, ValueError):
        return True


class ActiveDirectorySource(IdentitySource):
    """Users and groups under the configured SCIM groups in Active Directory.

    Each configured entry is either an email (group ``mail`` first, then a
    user's ``mail``/``userPrincipalName``) or a group ``cn``. Nested groups
    are expanded and their users attributed to the configured root group.
    """

    def __init__(self, server_url: str, username: str, password: str, base_dn: str,
                 scim_groups: List[str]):
        super().__init__()
        self.server_url = server_url
        self.username = username
        self.password = password
        self.base_dn = base_dn
        self.scim_groups = scim_groups
        self.connection: Optional[Connection] = None
        self._entry_cache: Dict[str, Optional[Dict[str, Any]]] = {}

    def __enter__(self):
        """Context manager entry"""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        self.disconnect()

    def connect(self) -> None:
        """Establish connection to Active Directory"""
        if self.connection:
            return
        try:
            server = Server(self.server_url, get_info=ALL)
            self.connection = Connection(
                server,
                user=self.username,
                password=self.password,
                auto_bind=True
            )
            self.logger.info("Successfully connected to Active Directory")
        except LDAPException as e:
            raise LoadError(f"Failed to connect to AD: {e}") from e

    def disconnect(self) -> None:
        """Close Active Directory connection"""
        if self.connection:
            self.connection.unbind()
            self.connection = None
            self.logger.info("Disconnected from Active Directory")

    def close(self) -> None:
        self.disconnect()

    def test_connection(self) -> bool:
        try:
            self.connect()
            self.connection.search(self.base_dn, '(objectClass=*)', search_scope=BASE)
            return True
        except (LoadError, LDAPException) as e:
            self.logger.error(f"Active Directory connection test failed: {e}")
            return False

    def _search(self, search_filter: str, search_base: Optional[str] = None,
                scope=SUBTREE) -> List[Dict[str, Any]]:
        """Run a search and return entries as {'dn', 'attributes'} dicts"""
        self.connection.search(
            search_base=search_base or self.base_dn,
            search_filter=search_filter,
            search_scope=scope,
            attributes=ATTRIBUTES
        )
        return [{'dn': entry.entry_dn, 'attributes': entry.entry_attributes_as_dict}
                for entry in self.connection.entries]

    def _lookup_dn(self, dn: str) -> Optional[Dict[str, Any]]:
        """Read a single entry by DN, cached for the run"""
        if dn not in self._entry_cache:
            try:
                found = self._search('(objectClass=*)', search_base=dn, scope=BASE)
            except LDAPException as e:
                self.mark_partial_error(f"Lookup of \"{dn}\" failed: {e}")
                found = []
            else:
                # An incomplete lookup must not look like a removed member
                description = (getattr(self.connection, 'result', None) or {}).get('description')
                if not found and description not in (None, 'success', 'noSuchObject'):
                    self.mark_partial_error(f"Lookup of \"{dn}\" returned \"{description}\"")
            self._entry_cache[dn] = found[0] if found else None
        return self._entry_cache[dn]

    def load(self) -> None:
        self.connect()
        self._entry_cache = {}

        entries = parse_group_list(self.scim_groups)
        if not entries:
            raise LoadError("could not resolve \"SCIM Group\" content to groups")

        self.logger.debug("Resolving \"SCIM Group\" content")
        roots: Dict[str, Dict[str, Any]] = {}
        for entry in entries:
            try:
                self._resolve_entry(entry, roots)
            except LDAPException as e:
                self.mark_partial_error(f"Resolving \"{entry}\" failed: {e}")

        if not self._groups and not self._users:
            raise LoadError("no Active Directory groups could be resolved")

        for group_id, group_entry in roots.items():
            self._expand_group(group_id, group_entry)

    def _resolve_entry(self, entry: str, roots: Dict[str, Dict[str, Any]]) -> None:
        _, address = parseaddr(entry)
        if address and '@' in address:
            value = escape_filter_chars(address)
            groups = self._search(f"(&(objectClass=group)(mail={value}))")
            if groups:
                for found in groups:
                    group = self._add_group(found, roots)
                    self.logger.debug(f"Found AD group \"{group.name}\" for email \"{address}\"")
                return

            users = self._search(
                f"(&(objectClass=user)(|(mail={value})(userPrincipalName={value})))")
            if users:
                for found in users:
                    user = self._add_user(found)
                    self.logger.debug(f"Found AD user for email \"{user.email}\"")
                return

            self.mark_partial_error(
                f"An email \"{address}\" could not be resolved as either AD User or Group")
            return

        groups = self._search(f"(&(objectClass=group)(cn={escape_filter_chars(entry)}))")
        if groups:
            for found in groups:
                group = self._add_group(found, roots)
                self.logger.debug(f"Found AD group \"{group.name}\" by name")
        else:
            self.mark_partial_error(f"A name \"{entry}\" could not be resolved to AD Group")

    def _add_group(self, found: Dict[str, Any], roots: Dict[str, Dict[str, Any]]) -> SourceGroup:
        attributes = found['attributes']
        group = SourceGroup(
            id=format_guid(first_value(attributes, 'objectGUID')),
            name=first_value(attributes, 'displayName') or first_value(attributes, 'cn') or "",
        )
        self._groups[group.id] = group
        roots[group.id] = found
        return group

    def _add_user(self, found: Dict[str, Any]) -> SourceUser:
        user_id = format_guid(first_value(found['attributes'], 'objectGUID'))
        if user_id not in self._users:
            self._users[user_id] = self._parse_user(found)
        return self._users[user_id]

    def _parse_user(self, found: Dict[str, Any]) -> SourceUser:
        attributes = found['attributes']
        first_name = first_value(attributes, 'givenName') or ""
        last_name = first_value(attributes, 'sn') or ""
        full_name = first_value(attributes, 'displayName') or ""
        if not full_name:
            full_name = " ".join([first_name, last_name]).strip()
        return SourceUser(
            id=format_guid(first_value(attributes, 'objectGUID')),
            email=first_value(attributes, 'mail') or first_value(attributes, 'userPrincipalName') or "",
            full_name=full_name,
            first_name=first_name,
            last_name=last_name,
            active=is_account_active(first_value(attributes, 'userAccountControl')),
        )

    def _expand_group(self, group_id: str, group_entry: Dict[str, Any]) -> None:
        """Breadth-first walk of nested membership under one root group"""
        queue = deque([group_entry])
        queued = {group_entry['dn']}
        members_found = 0

        while queue:
            current = queue.popleft()
            for member_dn in as_list(current['attributes'], 'member'):
                if member_dn in queued:
                    continue
                member = self._lookup_dn(member_dn)
                if member is None:
                    self.logger.debug(f"Member \"{member_dn}\" of group \"{current['dn']}\" not found")
                    continue

                object_classes = [str(c).lower() for c in as_list(member['attributes'], 'objectClass')]
                if 'group' in object_classes:
                    queued.add(member_dn)
                    queue.append(member)
                elif 'computer' in object_classes:
                    continue
                elif 'user' in object_classes or 'person' in object_classes:
                    user = self._add_user(member)
                    if group_id not in user.groups:
                        user.groups.append(group_id)
                        members_found += 1

        self.logger.debug(f"Group \"{self._groups[group_id].name}\" expanded to {members_found} user(s)")
