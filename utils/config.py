# =============================================================================
# utils/config.py - Configuration management
# =============================================================================

import os
from typing import Optional, List, Iterable, Union
from dotenv import load_dotenv


SOURCE_LDAP = "ldap"
SOURCE_CSV = "csv"


def to_boolean(value: Optional[str]) -> Optional[bool]:
    """Parse a boolean setting, None if unrecognised"""
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in ("1", "true", "yes", "on", "y"):
        return True
    if normalized in ("0", "false", "no", "off", "n"):
        return False
    return None


def parse_group_list(value: Union[str, Iterable[str], None]) -> List[str]:
    """Split comma and newline separated group entries, dropping blanks and duplicates"""
    if not value:
        return []
    chunks = [value] if isinstance(value, str) else list(value)

    groups: List[str] = []
    for chunk in chunks:
        for line in chunk.split("\n"):
            for part in line.split(","):
                part = part.strip()
                if part and part not in groups:
                    groups.append(part)
    return groups


class Config:
    """Configuration management"""

    def __init__(self):
        load_dotenv()

    # SCIM target

    @property
    def scim_url(self) -> Optional[str]:
        return os.getenv("SCIM_URL")

    @property
    def scim_token(self) -> Optional[str]:
        return os.getenv("SCIM_TOKEN")

    @property
    def verbose(self) -> bool:
        return bool(to_boolean(os.getenv("SCIM_VERBOSE")))

    @property
    def update_users(self) -> bool:
        return bool(to_boolean(os.getenv("SCIM_UPDATE_USERS")))

    @property
    def destructive(self) -> int:
        """-1 safe mode, 0 partial, >0 full. Unparsable values fall back to safe mode"""
        value = os.getenv("SCIM_DESTRUCTIVE")
        if not value or not value.strip():
            return 0
        try:
            return int(value.strip())
        except ValueError:
            return -1

    # Identity source

    @property
    def source_type(self) -> str:
        return (os.getenv("SCIM_SOURCE") or SOURCE_LDAP).strip().lower()

    @property
    def scim_groups(self) -> List[str]:
        return parse_group_list(os.getenv("SCIM_GROUPS"))

    @property
    def ad_server(self) -> Optional[str]:
        return os.getenv("AD_SERVER")

    @property
    def ad_username(self) -> Optional[str]:
        return os.getenv("AD_USERNAME")

    @property
    def ad_password(self) -> Optional[str]:
        return os.getenv("AD_PASSWORD")

    @property
    def base_dn(self) -> Optional[str]:
        return os.getenv("BASE_DN")

    @property
    def csv_users_file(self) -> Optional[str]:
        return os.getenv("CSV_USERS_FILE")

    @property
    def csv_groups_file(self) -> Optional[str]:
        return os.getenv("CSV_GROUPS_FILE")

    def validate_scim_config(self) -> bool:
        """Validate that the SCIM endpoint settings are present"""
        return not self.get_missing_scim_vars()

    def get_missing_scim_vars(self) -> List[str]:
        vars_and_names = [
            (self.scim_url, "SCIM_URL"),
            (self.scim_token, "SCIM_TOKEN"),
        ]
        return [name for var, name in vars_and_names if not var]

    def validate_source_config(self, source_type: Optional[str] = None) -> bool:
        """Validate that all required identity source configuration is present"""
        return not self.get_missing_source_vars(source_type)

    def get_missing_source_vars(self, source_type: Optional[str] = None) -> List[str]:
        """Get list of missing identity source variables"""
        if (source_type or self.source_type) == SOURCE_CSV:
            vars_and_names = [
                (self.csv_users_file, "CSV_USERS_FILE"),
                (self.csv_groups_file, "CSV_GROUPS_FILE"),
            ]
        else:
            vars_and_names = [
                (self.ad_server, "AD_SERVER"),
                (self.ad_username, "AD_USERNAME"),
                (self.ad_password, "AD_PASSWORD"),
                (self.base_dn, "BASE_DN"),
                (self.scim_groups, "SCIM_GROUPS"),
            ]
        return [name for var, name in vars_and_names if not var]

    def get_missing_vars(self, source_type: Optional[str] = None) -> List[str]:
        return self.get_missing_scim_vars() + self.get_missing_source_vars(source_type)
