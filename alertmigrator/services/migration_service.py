# alertmigrator/services/migration_service.py
"""
Org migration orchestrator.

Every public operation:
  - is serialized behind one in-process mutex,
  - runs in a single session/transaction (commit on success, rollback and
    re-raise on failure),
  - gets a fresh OrgMigration context holding the caches and deduplicators
    for that run only.

Per-alert and per-channel failures are recorded in the ledger and do not
abort the operation. Anything that prevents loading or writing the ledger
does.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

from sqlalchemy.orm import sessionmaker

from alertmigrator.config import Settings
from alertmigrator.config import settings as app_settings
from alertmigrator.core.dedupe import Deduplicator
from alertmigrator.schemas.amconfig import PostableUserConfig
from alertmigrator.schemas.folder import Folder, migration_user
from alertmigrator.schemas.ledger import ContactPair, DashboardUpgrade, OrgMigrationState
from alertmigrator.schemas.legacy import Dashboard, DashAlert, DashAlertSettings, LegacyChannel
from alertmigrator.schemas.silence import MeshSilence
from alertmigrator.schemas.unified import UnifiedAlertRule
from alertmigrator.services.alert_rules import ALERT_RULE_MAX_TITLE_LENGTH, RuleInfo, make_alert_rule
from alertmigrator.services.channels import ChannelMigrator, create_base_config
from alertmigrator.services.collaborators import (
    EncryptionService,
    FolderService,
    NotifierValidator,
    PermissionService,
)
from alertmigrator.services.conditions import translate_conditions
from alertmigrator.services.datasources import DatasourceCache
from alertmigrator.services.errors import (
    ActiveMigrationError,
    DuplicateTitleError,
    FolderResolutionError,
    ForceMigrationError,
    InvalidAlertmanagerConfigError,
    MigrationError,
    NotFoundError,
    ProvisioningChangedError,
    ServerLockExistsError,
)
from alertmigrator.services.folders import GENERAL_ALERTING_FOLDER_TITLE, FolderHelper
from alertmigrator.services.migration_store import ANY_ORG, SqlMigrationStore
from alertmigrator.services.notifier import IntegrationValidator
from alertmigrator.services.server_lock import ServerLockService
from alertmigrator.services.silences import create_silences

logger = logging.getLogger("alertmigrator.migration")

MIGRATION_LOCK_ACTION = "alerting migration"


class OrgMigration:
    """State of one migration operation for one org."""

    def __init__(
        self,
        org_id: int,
        store: SqlMigrationStore,
        folder_service: FolderService,
        permission_service: PermissionService,
        encryption_service: EncryptionService,
        base_interval: Optional[int] = None,
    ) -> None:
        self.org_id = org_id
        self.store = store
        self.base_interval = base_interval
        self.log = logging.getLogger("alertmigrator.migration").getChild(f"org{org_id}")

        self.state = store.get_org_migration_state(org_id)
        self.folder_helper = FolderHelper(org_id, folder_service, permission_service)
        self.datasources = DatasourceCache(store)
        self.channels = ChannelMigrator(encryption_service)

        self.case_insensitive = store.case_insensitive_titles()
        # folder uid -> titles used in that folder
        self.title_dedups: Dict[str, Deduplicator] = {}

        self.silences: List[MeshSilence] = []
        self.removed_rule_uids: List[str] = []
        # legacy channel id -> uid
        self._channel_uids: Dict[int, Optional[str]] = {}

    # ------------------------------------------------------------------
    # bookkeeping
    # ------------------------------------------------------------------
    def title_dedup(self, folder_uid: str) -> Deduplicator:
        dedup = self.title_dedups.get(folder_uid)
        if dedup is None:
            dedup = Deduplicator(self.case_insensitive, ALERT_RULE_MAX_TITLE_LENGTH)
            for title in self.store.get_alert_rule_titles(self.org_id, folder_uid):
                dedup.add(title)
            self.title_dedups[folder_uid] = dedup
        return dedup

    def record_created_folders(self) -> None:
        for f in self.folder_helper.created_folders:
            if f.uid not in self.state.created_folders:
                self.state.created_folders.append(f.uid)

    def save_state(self) -> None:
        self.record_created_folders()
        self.store.set_org_migration_state(self.org_id, self.state)

    def flush_silences(self) -> None:
        if not self.silences and not self.removed_rule_uids:
            return
        self.store.replace_silences(self.org_id, self.removed_rule_uids, self.silences)
        self.silences = []
        self.removed_rule_uids = []

    # ------------------------------------------------------------------
    # alerts
    # ------------------------------------------------------------------
    def channel_uids(self, parsed: DashAlertSettings) -> List[str]:
        uids: List[str] = []
        for ref in parsed.notifications:
            if ref.uid:
                uid: Optional[str] = ref.uid
            elif ref.id:
                if ref.id not in self._channel_uids:
                    try:
                        self._channel_uids[ref.id] = self.store.get_alert_notification_uid_with_id(self.org_id, ref.id)
                    except NotFoundError:
                        self.log.warning("Failed to get alert notification, skipping notification_id=%s", ref.id)
                        self._channel_uids[ref.id] = None
                uid = self._channel_uids[ref.id]
            else:
                uid = None
            if uid and uid not in uids:
                uids.append(uid)
        return uids

    def migrate_alert(self, alert: DashAlert, dash: Dashboard, folder: Folder) -> Tuple[UnifiedAlertRule, DashAlertSettings]:
        """Builds the rule for one legacy alert. Raises MigrationError."""
        self.log.debug("Migrating alert rule alert_id=%s dashboard_uid=%s", alert.id, dash.uid)
        parsed = alert.parsed_settings()
        cond = translate_conditions(parsed, self.org_id, self.datasources)
        info = RuleInfo(dashboard_uid=dash.uid, dashboard_name=dash.title, folder_uid=folder.uid)
        rule = make_alert_rule(cond, alert, parsed, info, self.channel_uids(parsed), self.base_interval)
        return rule, parsed

    def insert_rule(self, rule: UnifiedAlertRule, provisioned: bool) -> None:
        """
        Inserts the rule, retrying once with a deduplicated title when the
        store reports the title as taken.
        """
        try:
            self.store.insert_alert_rule(rule, provisioned)
            return
        except DuplicateTitleError:
            dedup = self.title_dedup(rule.namespace_uid)
            old = rule.title
            rule.title = dedup.deduplicate(old)
            dedup.add(rule.title)
            self.log.warning(
                "Duplicate alert rule title found, renaming rule_uid=%s old=%r new=%r", rule.uid, old, rule.title
            )
        self.store.insert_alert_rule(rule, provisioned)

    def add_rules(self, du: DashboardUpgrade, dash: Dashboard, folder: Folder, alerts: List[DashAlert]) -> None:
        dedup = self.title_dedup(folder.uid)
        for alert in alerts:
            try:
                rule, parsed = self.migrate_alert(alert, dash, folder)
            except MigrationError as e:
                self.log.warning(
                    "Failed to migrate alert alert_id=%s dashboard_uid=%s error=%s", alert.id, dash.uid, e
                )
                du.add_alert_errors(f"migrate alert '{alert.name}': {e}", alert)
                continue

            if dedup.contains(rule.title):
                old = rule.title
                rule.title = dedup.deduplicate(old)
                self.log.warning(
                    "Duplicate alert rule title found, renaming alert_id=%s old=%r new=%r", alert.id, old, rule.title
                )
            dedup.add(rule.title)

            silences = create_silences(rule, parsed)
            pair = du.add_alert(alert)
            try:
                self.insert_rule(rule, du.provisioned)
            except DuplicateTitleError as e:
                pair.error = f"insert alert rule '{alert.name}': {e}"
                continue
            pair.attach_rule(rule)
            self.silences.extend(silences)

    # ------------------------------------------------------------------
    # dashboards
    # ------------------------------------------------------------------
    def migrate_dashboard(self, dashboard_id: int, alerts: List[DashAlert]) -> DashboardUpgrade:
        du = DashboardUpgrade(dashboard_id=dashboard_id)
        try:
            dash = self.store.get_dashboard(self.org_id, dashboard_id)
        except NotFoundError as e:
            self.log.warning("Failed to get dashboard, skipping its alerts dashboard_id=%s error=%s", dashboard_id, e)
            du.errors.append(f"get dashboard {dashboard_id}: {e}")
            du.add_alert_errors(f"get dashboard {dashboard_id}: {e}", *alerts)
            return du
        du.set_dashboard(dash.uid, dash.title)

        try:
            du.provisioned = self.store.is_provisioned(self.org_id, dash.uid)
        except MigrationError as e:
            du.warnings.append(f"failed to get provisioned status: {e}")

        try:
            dash_folder, folder = self.folder_helper.resolve_or_create(dash)
        except FolderResolutionError as e:
            self.log.warning("Failed to resolve folder dashboard_uid=%s error=%s", dash.uid, e)
            du.errors.append(str(e))
            du.add_alert_errors(str(e), *alerts)
            return du

        if dash_folder is not None:
            du.set_folder(dash_folder.uid, dash_folder.title)
        elif dash.folder_id:
            du.warnings.append("dashboard alerts moved to general alerting folder during upgrade: original folder not found")
        if dash_folder is None or folder.uid != dash_folder.uid:
            du.set_new_folder(folder.uid, folder.title)
            if folder.title != GENERAL_ALERTING_FOLDER_TITLE:
                du.warnings.append("dashboard alerts moved to new folder during upgrade: folder permission changes were needed")
                self.log.warning(
                    "Dashboard alerts moved to new folder dashboard_uid=%s folder_uid=%s", dash.uid, folder.uid
                )

        self.add_rules(du, dash, folder, alerts)
        return du

    def cleanup_dashboard(self, du: DashboardUpgrade) -> None:
        """
        Deletes the rules a previous migration produced for the dashboard and
        the folder it created for them, unless another migrated dashboard
        still uses that folder. du must already be removed from the ledger.
        """
        uids = du.rule_uids()
        self.store.delete_alert_rules(self.org_id, uids)
        self.removed_rule_uids.extend(uids)

        uid = du.new_folder_uid
        if not uid or uid == du.folder_uid:
            return
        if any(other.new_folder_uid == uid for other in self.state.migrated_dashboards):
            return
        # Never delete a folder the migration did not create.
        if self.state.remove_created_folder(uid):
            self.store.delete_folders(self.org_id, [uid])
            self.title_dedups.pop(uid, None)

    def migrate_dashboards(self, by_dashboard: Dict[int, List[DashAlert]], skip_existing: bool) -> None:
        if not skip_existing:
            # Clear everything first so re-created titles never collide with stale rules.
            for du in list(self.state.migrated_dashboards):
                self.state.pop_dashboard_upgrade(du.dashboard_id)
                self.cleanup_dashboard(du)

        for dashboard_id in sorted(by_dashboard):
            if self.state.get_dashboard_upgrade(dashboard_id) is not None:
                continue
            self.state.migrated_dashboards.append(self.migrate_dashboard(dashboard_id, by_dashboard[dashboard_id]))

    # ------------------------------------------------------------------
    # channels
    # ------------------------------------------------------------------
    def load_config(self) -> PostableUserConfig:
        config = self.store.get_alertmanager_configuration(self.org_id)
        if config is None:
            config, _ = create_base_config()
        return config

    def replace_channels(
        self,
        config: PostableUserConfig,
        channels: List[LegacyChannel],
        skip_existing: bool,
        replace_all: bool = True,
    ) -> List[ContactPair]:
        """
        Migrates channels into config. Unless skip_existing, contact points
        from earlier runs are removed first: all of them when replace_all,
        otherwise only those of the given channels.
        """
        if skip_existing:
            done = {p.legacy_channel.id for p in self.state.migrated_channels}
            channels = [c for c in channels if c.id not in done]
        else:
            wanted = None if replace_all else {c.id for c in channels}
            for pair in list(self.state.migrated_channels):
                if wanted is None or pair.legacy_channel.id in wanted:
                    self.state.pop_contact_pair(pair.legacy_channel.id)
                    self.channels.remove_contact_point(config, pair)

        pairs = self.channels.migrate_channels(config, channels)
        self.state.migrated_channels.extend(pairs)
        return pairs

    def validate(self, config: PostableUserConfig, validator: NotifierValidator) -> None:
        self.channels.validate_config(config, validator)


class MigrationService:
    def __init__(
        self,
        session_factory: sessionmaker,
        folder_service: FolderService,
        permission_service: PermissionService,
        encryption_service: EncryptionService,
        notifier_validator: Optional[NotifierValidator] = None,
        settings: Optional[Settings] = None,
        lock_service: Optional[ServerLockService] = None,
    ) -> None:
        self.session_factory = session_factory
        self.folder_service = folder_service
        self.permission_service = permission_service
        self.encryption_service = encryption_service
        self.validator = notifier_validator or IntegrationValidator()
        self.settings = settings or app_settings
        self.lock = lock_service or ServerLockService(session_factory)
        self._mtx = threading.Lock()

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------
    @contextmanager
    def _transaction(self) -> Iterator[SqlMigrationStore]:
        with self._mtx:
            db = self.session_factory()
            try:
                yield SqlMigrationStore(
                    db, self.folder_service, self.settings.DATA_PATH, self.settings.CASE_INSENSITIVE_TITLES
                )
                db.commit()
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

    def _org(self, store: SqlMigrationStore, org_id: int) -> OrgMigration:
        return OrgMigration(
            org_id,
            store,
            self.folder_service,
            self.permission_service,
            self.encryption_service,
            self.settings.BASE_INTERVAL_SECONDS,
        )

    # ------------------------------------------------------------------
    # alerts
    # ------------------------------------------------------------------
    def migrate_alert(self, org_id: int, dashboard_id: int, panel_id: int) -> DashboardUpgrade:
        """
        Re-migrates one panel alert into the folder recorded for its
        dashboard. Returns the dashboard's ledger entry.
        """
        with self._transaction() as store:
            om = self._org(store, org_id)
            alert = store.get_dashboard_alert(org_id, dashboard_id, panel_id)
            dash = store.get_dashboard(org_id, dashboard_id)
            provisioned = store.is_provisioned(org_id, dash.uid)

            du = om.state.get_dashboard_upgrade(dashboard_id)
            if du is None:
                du = DashboardUpgrade(dashboard_id=dashboard_id, provisioned=provisioned)
                du.set_dashboard(dash.uid, dash.title)
                om.state.migrated_dashboards.append(du)
            elif du.provisioned != provisioned:
                raise ProvisioningChangedError(dash.uid)

            existing = du.pop_alert_pair_by_panel_id(panel_id)
            if existing is not None and existing.alert_rule is not None:
                store.delete_alert_rules(org_id, [existing.alert_rule.uid])
                om.removed_rule_uids.append(existing.alert_rule.uid)

            folder = self._alert_folder(om, du, dash)
            om.add_rules(du, dash, folder, [alert])
            om.flush_silences()
            om.save_state()
            return du

    def _alert_folder(self, om: OrgMigration, du: DashboardUpgrade, dash: Dashboard) -> Folder:
        uid = du.new_folder_uid or du.folder_uid
        if uid:
            folder = self.folder_service.get(om.org_id, migration_user(om.org_id), uid=uid)
            if folder is None:
                raise NotFoundError(f"folder {uid} of dashboard {dash.uid} not found")
            return folder

        # First migration of this dashboard.
        dash_folder, folder = om.folder_helper.resolve_or_create(dash)
        if dash_folder is not None:
            du.set_folder(dash_folder.uid, dash_folder.title)
        if dash_folder is None or folder.uid != dash_folder.uid:
            du.set_new_folder(folder.uid, folder.title)
        return folder

    def migrate_dashboard_alerts(self, org_id: int, dashboard_id: int, skip_existing: bool = False) -> DashboardUpgrade:
        with self._transaction() as store:
            om = self._org(store, org_id)
            existing = om.state.get_dashboard_upgrade(dashboard_id)
            if existing is not None:
                if skip_existing:
                    return existing
                om.state.pop_dashboard_upgrade(dashboard_id)
                om.cleanup_dashboard(existing)

            alerts = store.get_dashboard_alerts(org_id, dashboard_id)
            du = om.migrate_dashboard(dashboard_id, alerts)
            om.state.migrated_dashboards.append(du)
            om.flush_silences()
            om.save_state()
            return du

    def migrate_all_dashboard_alerts(self, org_id: int, skip_existing: bool = False) -> OrgMigrationState:
        with self._transaction() as store:
            om = self._org(store, org_id)
            by_dashboard, count = store.get_org_dashboard_alerts(org_id)
            om.log.info("Migrating dashboard alerts alerts=%s dashboards=%s", count, len(by_dashboard))
            om.migrate_dashboards(by_dashboard, skip_existing)
            om.flush_silences()
            om.save_state()
            return om.state

    # ------------------------------------------------------------------
    # channels
    # ------------------------------------------------------------------
    def migrate_channel(self, org_id: int, channel_id: int) -> ContactPair:
        with self._transaction() as store:
            om = self._org(store, org_id)
            channel = store.get_notification_channel(org_id, channel_id)
            config = om.load_config()
            pair = om.replace_channels(config, [channel], skip_existing=False, replace_all=False)[0]
            om.validate(config, self.validator)
            store.save_alertmanager_configuration(org_id, config)
            om.save_state()
            return pair

    def migrate_all_channels(self, org_id: int, skip_existing: bool = False) -> List[ContactPair]:
        with self._transaction() as store:
            om = self._org(store, org_id)
            channels = store.get_notification_channels(org_id)
            config = om.load_config()
            pairs = om.replace_channels(config, channels, skip_existing)
            om.validate(config, self.validator)
            store.save_alertmanager_configuration(org_id, config)
            om.save_state()
            return pairs

    # ------------------------------------------------------------------
    # orgs
    # ------------------------------------------------------------------
    def _migrate_org(
        self, store: SqlMigrationStore, org_id: int, skip_existing: bool, allow_migrated: bool = True
    ) -> OrgMigrationState:
        if not allow_migrated and store.is_migrated(org_id):
            raise ActiveMigrationError(org_id)
        om = self._org(store, org_id)
        om.log.info("Migrating alerts for organisation")

        by_dashboard, count = store.get_org_dashboard_alerts(org_id)
        om.log.info("Alerts found to migrate alerts=%s dashboards=%s", count, len(by_dashboard))
        om.migrate_dashboards(by_dashboard, skip_existing)

        channels = store.get_notification_channels(org_id)
        config = om.load_config()
        previous_channels = [p.model_copy(deep=True) for p in om.state.migrated_channels]
        om.replace_channels(config, channels, skip_existing)
        try:
            om.validate(config, self.validator)
        except InvalidAlertmanagerConfigError as e:
            # The stored configuration is kept, so the ledger must keep describing it.
            om.log.warning("Alertmanager configuration failed validation error=%s", e)
            om.state.errors.append(f"validate alertmanager configuration: {e}")
            om.state.migrated_channels = previous_channels
        else:
            store.save_alertmanager_configuration(org_id, config)

        try:
            om.flush_silences()
        except OSError as e:
            om.log.exception("Failed to write silences")
            om.state.errors.append(f"write silence file: {e}")

        om.save_state()
        store.set_migrated(org_id, True)
        return om.state

    def migrate_org(self, org_id: int, skip_existing: bool = False) -> OrgMigrationState:
        """
        Migrates every dashboard alert and channel of the org and marks it
        migrated. Item failures are recorded in the returned summary.
        """
        with self._transaction() as store:
            return self._migrate_org(store, org_id, skip_existing)

    def migrate_all_orgs(self) -> Dict[int, OrgMigrationState]:
        """Migrates every org not yet migrated. Already migrated orgs are skipped."""
        out: Dict[int, OrgMigrationState] = {}
        with self._transaction() as store:
            for org_id in store.get_all_org_ids():
                try:
                    out[org_id] = self._migrate_org(store, org_id, skip_existing=False, allow_migrated=False)
                except ActiveMigrationError as e:
                    logger.info("Skipping org migration org_id=%s reason=%s", org_id, e)
            store.set_migrated(ANY_ORG, True)
        return out

    def get_org_migration_summary(self, org_id: int) -> OrgMigrationState:
        with self._transaction() as store:
            return store.get_org_migration_state(org_id)

    # ------------------------------------------------------------------
    # revert
    # ------------------------------------------------------------------
    def revert_org(self, org_id: int) -> None:
        with self._transaction() as store:
            logger.info("Reverting alerting migration org_id=%s", org_id)
            store.revert_org(org_id)

    def revert_all_orgs(self) -> None:
        with self._transaction() as store:
            logger.info("Reverting alerting migration for all orgs")
            store.revert_all_orgs()

    # ------------------------------------------------------------------
    # startup entry point
    # ------------------------------------------------------------------
    def _is_migrated(self) -> bool:
        with self._transaction() as store:
            return store.is_migrated(ANY_ORG)

    def _run(self) -> Optional[str]:
        migrated = self._is_migrated()
        enabled = bool(self.settings.UNIFIED_ALERTING_ENABLED)
        if migrated == enabled:
            logger.info("No migrations are required migrated=%s unified_alerting=%s", migrated, enabled)
            return None

        if migrated:
            if not self.settings.LEGACY_ALERTING_ENABLED:
                # Both alerting systems off: keep the unified data.
                logger.info("Unified alerting is disabled and legacy alerting is not enabled, nothing to revert")
                return None
            if not self.settings.FORCE_MIGRATION:
                raise ForceMigrationError()
            logger.info("Reverting migration to legacy alerting")
            self.revert_all_orgs()
            return "reverted"

        logger.info("Starting migration to unified alerting")
        self.migrate_all_orgs()
        logger.info("Completed migration to unified alerting")
        return "migrated"

    def run(self) -> Optional[str]:
        """
        Brings the store in line with UNIFIED_ALERTING_ENABLED. Returns
        "migrated", "reverted" or None when nothing was done (including when
        another instance holds the migration lock).
        """
        try:
            return self.lock.lock_execute_and_release(
                MIGRATION_LOCK_ACTION, self.settings.MIGRATION_LOCK_SECONDS, self._run
            )
        except ServerLockExistsError:
            logger.warning("Skipping alerting migration, another instance is already running it")
            return None
