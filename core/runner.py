# =============================================================================
# core/runner.py - Wiring of configuration, source, client and sync
# =============================================================================

import logging
from typing import Optional

from core.errors import ConfigurationError
from core.identity_source import IdentitySource
from core.models import SyncStat
from core.scim_client import ScimClient
from core.sync import ScimSync
from sources.active_directory import ActiveDirectorySource
from sources.csv_snapshot import CsvSnapshotSource
from utils.config import Config, SOURCE_CSV, SOURCE_LDAP

logger = logging.getLogger(__name__)


def build_source(config: Config, source_type: Optional[str] = None) -> IdentitySource:
    """Create the identity source selected by configuration"""
    source_type = (source_type or config.source_type).lower()

    if source_type == SOURCE_CSV:
        return CsvSnapshotSource(config.csv_users_file, config.csv_groups_file)
    if source_type == SOURCE_LDAP:
        return ActiveDirectorySource(
            config.ad_server, config.ad_username, config.ad_password,
            config.base_dn, config.scim_groups
        )
    raise ConfigurationError(f"Unknown identity source: {source_type}")


def validate(config: Config, source_type: Optional[str] = None) -> None:
    missing_vars = config.get_missing_vars(source_type)
    if missing_vars:
        raise ConfigurationError(f"Missing required environment variables: {', '.join(missing_vars)}")


def run_scim_sync(config: Config, source_type: Optional[str] = None,
                  verbose: Optional[bool] = None, destructive: Optional[int] = None,
                  update_users: Optional[bool] = None) -> SyncStat:
    """Run one sync; explicit arguments override configuration"""
    validate(config, source_type)
    source = build_source(config, source_type)

    try:
        with ScimClient(config.scim_url, config.scim_token) as client:
            sync = ScimSync(
                source,
                client,
                verbose=config.verbose if verbose is None else verbose,
                update_users=config.update_users if update_users is None else update_users,
                destructive=config.destructive if destructive is None else destructive,
            )
            logger.info(f"Starting sync (destructive={sync.destructive}, "
                        f"update_users={sync.update_users})")
            return sync.sync()
    finally:
        source.close()


def check_connections(config: Config, source_type: Optional[str] = None) -> bool:
    """Check both the identity source and the SCIM endpoint"""
    validate(config, source_type)
    source = build_source(config, source_type)
    try:
        source_ok = source.test_connection()
    finally:
        source.close()

    with ScimClient(config.scim_url, config.scim_token) as client:
        target_ok = client.test_connection()
    return source_ok and target_ok
