# alertmigrator/services/migration_store.py
"""
Relational access for the migration. Every method works inside the caller's
session; the orchestrator owns commit/rollback.
"""
from __future__ import annotations

import hashlib
import json
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from alertmigrator.config import settings as app_settings
from alertmigrator.core.enums import Provenance
from alertmigrator.core.timeutils import ns_to_seconds, seconds_to_ns, utcnow
from alertmigrator.db import uses_case_insensitive_collation
from alertmigrator.models import (
    AlertConfiguration,
    AlertInstance,
    AlertNotification,
    AlertRule,
    AlertRuleVersion,
    Dashboard,
    DashboardProvisioning,
    DataSource,
    KVStoreEntry,
    LegacyAlert,
    NgalertConfiguration,
    Org,
    ProvenanceType,
)
from alertmigrator.schemas import legacy
from alertmigrator.schemas.amconfig import PostableUserConfig
from alertmigrator.schemas.folder import migration_revert_user
from alertmigrator.schemas.ledger import OrgMigrationState
from alertmigrator.schemas.silence import MeshSilence
from alertmigrator.schemas.unified import UnifiedAlertRule
from alertmigrator.services.collaborators import FolderService
from alertmigrator.services.errors import DuplicateTitleError, MigrationError, NotFoundError
from alertmigrator.services.silences import SilenceFile

logger = logging.getLogger("alertmigrator.migration.store")

KV_MIGRATION_NAMESPACE = "ngalert.migration"
KV_MIGRATED_KEY = "migrated"
KV_STATE_KEY = "stateSummary"
# Alertmanager runtime state (notification log etc.) kept by the notifier.
KV_ALERTMANAGER_NAMESPACE = "alertmanager"
# Org 0 holds the instance-wide flag.
ANY_ORG = 0

CONFIGURATION_VERSION = "v1"
ALERT_RULE_RECORD_TYPE = "alertRule"


def _parse_json_object(raw: Optional[str], what: str, ident: int) -> Dict:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except ValueError:
        logger.warning("Could not decode %s id=%s, treating as empty", what, ident)
        return {}
    return value if isinstance(value, dict) else {}


def _to_dash_alert(row: LegacyAlert) -> legacy.DashAlert:
    return legacy.DashAlert(
        id=row.id,
        org_id=row.org_id,
        dashboard_id=row.dashboard_id,
        panel_id=row.panel_id,
        name=row.name,
        message=row.message or "",
        state=row.state or "",
        # Decoded lazily so a broken blob only fails its own alert.
        settings=row.settings or "{}",
        frequency=int(row.frequency or 0),
        for_seconds=ns_to_seconds(row.for_ns),
        silenced=bool(row.silenced),
        execution_error=row.execution_error or "",
    )


def _to_channel(row: AlertNotification) -> legacy.LegacyChannel:
    secure = _parse_json_object(row.secure_settings, "secure settings of channel", row.id)
    return legacy.LegacyChannel(
        id=row.id,
        org_id=row.org_id,
        uid=row.uid,
        name=row.name,
        type=row.type,
        settings=_parse_json_object(row.settings, "settings of channel", row.id),
        secure_settings={k: str(v) for k, v in secure.items()},
        is_default=bool(row.is_default),
        send_reminder=bool(row.send_reminder),
        frequency_seconds=ns_to_seconds(row.frequency),
        disable_resolve_message=bool(row.disable_resolve_message),
    )


class SqlMigrationStore:
    def __init__(
        self,
        db: Session,
        folder_service: Optional[FolderService] = None,
        data_path: Optional[str] = None,
        case_insensitive: Optional[bool] = None,
    ) -> None:
        self.db = db
        self.folders = folder_service
        self.case_insensitive = case_insensitive
        self.silence_file = SilenceFile(data_path or app_settings.DATA_PATH)

    # ------------------------------------------------------------------
    # ledger
    # ------------------------------------------------------------------
    def _kv_get(self, org_id: int, namespace: str, key: str) -> Optional[KVStoreEntry]:
        return (
            self.db.query(KVStoreEntry)
            .filter(KVStoreEntry.org_id == org_id, KVStoreEntry.namespace == namespace, KVStoreEntry.key == key)
            .first()
        )

    def _kv_set(self, org_id: int, namespace: str, key: str, value: str) -> None:
        row = self._kv_get(org_id, namespace, key)
        if row is None:
            self.db.add(KVStoreEntry(org_id=org_id, namespace=namespace, key=key, value=value))
        else:
            row.value = value
            row.updated = utcnow()
        self.db.flush()

    def is_migrated(self, org_id: int) -> bool:
        row = self._kv_get(org_id, KV_MIGRATION_NAMESPACE, KV_MIGRATED_KEY)
        if row is None:
            return False
        return (row.value or "").strip().lower() == "true"

    def set_migrated(self, org_id: int, migrated: bool) -> None:
        self._kv_set(org_id, KV_MIGRATION_NAMESPACE, KV_MIGRATED_KEY, "true" if migrated else "false")

    def get_org_migration_state(self, org_id: int) -> OrgMigrationState:
        row = self._kv_get(org_id, KV_MIGRATION_NAMESPACE, KV_STATE_KEY)
        if row is None or not row.value:
            return OrgMigrationState(org_id=org_id)
        return OrgMigrationState.from_json(row.value)

    def set_org_migration_state(self, org_id: int, state: OrgMigrationState) -> None:
        self._kv_set(org_id, KV_MIGRATION_NAMESPACE, KV_STATE_KEY, state.to_json())

    # ------------------------------------------------------------------
    # legacy reads
    # ------------------------------------------------------------------
    def get_all_org_ids(self) -> List[int]:
        return [r.id for r in self.db.query(Org).order_by(Org.id.asc()).all()]

    def get_org_dashboard_alerts(self, org_id: int) -> Tuple[Dict[int, List[legacy.DashAlert]], int]:
        """dashboard id -> alerts, plus the total alert count."""
        rows = (
            self.db.query(LegacyAlert)
            .filter(LegacyAlert.org_id == org_id)
            .order_by(LegacyAlert.dashboard_id.asc(), LegacyAlert.panel_id.asc(), LegacyAlert.id.asc())
            .all()
        )
        out: Dict[int, List[legacy.DashAlert]] = {}
        for row in rows:
            out.setdefault(row.dashboard_id, []).append(_to_dash_alert(row))
        return out, len(rows)

    def get_dashboard_alerts(self, org_id: int, dashboard_id: int) -> List[legacy.DashAlert]:
        rows = (
            self.db.query(LegacyAlert)
            .filter(LegacyAlert.org_id == org_id, LegacyAlert.dashboard_id == dashboard_id)
            .order_by(LegacyAlert.panel_id.asc(), LegacyAlert.id.asc())
            .all()
        )
        return [_to_dash_alert(r) for r in rows]

    def get_dashboard_alert(self, org_id: int, dashboard_id: int, panel_id: int) -> legacy.DashAlert:
        row = (
            self.db.query(LegacyAlert)
            .filter(
                LegacyAlert.org_id == org_id,
                LegacyAlert.dashboard_id == dashboard_id,
                LegacyAlert.panel_id == panel_id,
            )
            .first()
        )
        if row is None:
            raise NotFoundError(f"alert for dashboard {dashboard_id} panel {panel_id} not found in org {org_id}")
        return _to_dash_alert(row)

    def get_dashboard(self, org_id: int, dashboard_id: int) -> legacy.Dashboard:
        row = (
            self.db.query(Dashboard)
            .filter(Dashboard.org_id == org_id, Dashboard.id == dashboard_id, Dashboard.is_folder.is_(False))
            .first()
        )
        if row is None:
            raise NotFoundError(f"dashboard {dashboard_id} not found in org {org_id}")
        return legacy.Dashboard(id=row.id, uid=row.uid, org_id=row.org_id, title=row.title, folder_id=row.folder_id or 0)

    def is_provisioned(self, org_id: int, dashboard_uid: str) -> bool:
        q = (
            self.db.query(DashboardProvisioning.id)
            .join(Dashboard, Dashboard.id == DashboardProvisioning.dashboard_id)
            .filter(Dashboard.org_id == org_id, Dashboard.uid == dashboard_uid)
        )
        return q.first() is not None

    def get_datasource(self, org_id: int, datasource_id: int) -> Optional[legacy.DataSourceRef]:
        row = self.db.query(DataSource).filter(DataSource.org_id == org_id, DataSource.id == datasource_id).first()
        if row is None:
            return None
        return legacy.DataSourceRef(uid=row.uid, type=row.type, name=row.name)

    def get_alert_notification_uid_with_id(self, org_id: int, channel_id: int) -> str:
        row = (
            self.db.query(AlertNotification.uid)
            .filter(AlertNotification.org_id == org_id, AlertNotification.id == channel_id)
            .first()
        )
        if row is None:
            raise NotFoundError(f"notification channel {channel_id} not found in org {org_id}")
        return row.uid

    def get_notification_channels(self, org_id: int) -> List[legacy.LegacyChannel]:
        """Default channels first."""
        rows = (
            self.db.query(AlertNotification)
            .filter(AlertNotification.org_id == org_id)
            .order_by(AlertNotification.is_default.desc(), AlertNotification.id.asc())
            .all()
        )
        return [_to_channel(r) for r in rows]

    def get_notification_channel(self, org_id: int, channel_id: int) -> legacy.LegacyChannel:
        row = (
            self.db.query(AlertNotification)
            .filter(AlertNotification.org_id == org_id, AlertNotification.id == channel_id)
            .first()
        )
        if row is None:
            raise NotFoundError(f"notification channel {channel_id} not found in org {org_id}")
        return _to_channel(row)

    # ------------------------------------------------------------------
    # unified alert rules
    # ------------------------------------------------------------------
    def case_insensitive_titles(self) -> bool:
        return uses_case_insensitive_collation(self.db.get_bind(), self.case_insensitive)

    def get_alert_rule_titles(self, org_id: int, namespace_uid: str) -> List[str]:
        rows = (
            self.db.query(AlertRule.title)
            .filter(AlertRule.org_id == org_id, AlertRule.namespace_uid == namespace_uid)
            .all()
        )
        return [r.title for r in rows]

    def _title_taken(self, rule: UnifiedAlertRule) -> bool:
        q = self.db.query(AlertRule.id).filter(
            AlertRule.org_id == rule.org_id, AlertRule.namespace_uid == rule.namespace_uid
        )
        if self.case_insensitive_titles():
            q = q.filter(func.lower(AlertRule.title) == rule.title.lower())
        else:
            q = q.filter(AlertRule.title == rule.title)
        return q.first() is not None

    def insert_alert_rule(self, rule: UnifiedAlertRule, provisioned: bool = False) -> None:
        """
        Raises DuplicateTitleError when the title is taken in the rule's
        folder. The failed insert is rolled back to a savepoint so the outer
        transaction stays usable.
        """
        if self._title_taken(rule):
            raise DuplicateTitleError(rule.title, rule.namespace_uid)

        data = [q.model_dump(by_alias=True) for q in rule.data]
        row = AlertRule(
            org_id=rule.org_id,
            uid=rule.uid,
            title=rule.title,
            condition=rule.condition,
            data=data,
            interval_seconds=rule.interval_seconds,
            version=rule.version,
            namespace_uid=rule.namespace_uid,
            rule_group=rule.rule_group,
            rule_group_idx=rule.rule_group_index,
            dashboard_uid=rule.dashboard_uid,
            panel_id=rule.panel_id,
            no_data_state=rule.no_data_state.value,
            exec_err_state=rule.exec_err_state.value,
            for_ns=seconds_to_ns(rule.for_seconds),
            annotations=dict(rule.annotations),
            labels=dict(rule.labels),
            is_paused=rule.is_paused,
        )
        try:
            with self.db.begin_nested():
                self.db.add(row)
                self.db.flush()
        except IntegrityError as e:
            raise DuplicateTitleError(rule.title, rule.namespace_uid) from e

        self.db.add(
            AlertRuleVersion(
                rule_org_id=rule.org_id,
                rule_uid=rule.uid,
                rule_namespace_uid=rule.namespace_uid,
                rule_group=rule.rule_group,
                version=rule.version,
                title=rule.title,
                condition=rule.condition,
                data=data,
                interval_seconds=rule.interval_seconds,
                annotations=dict(rule.annotations),
                labels=dict(rule.labels),
                message="migrated from legacy alerting",
            )
        )
        if provisioned:
            self.db.add(
                ProvenanceType(
                    org_id=rule.org_id,
                    record_key=rule.uid,
                    record_type=ALERT_RULE_RECORD_TYPE,
                    provenance=Provenance.UPGRADE.value,
                )
            )
        self.db.flush()

    def delete_alert_rules(self, org_id: int, uids: Iterable[str]) -> int:
        uids = [u for u in uids if u]
        if not uids:
            return 0
        n = (
            self.db.query(AlertRule)
            .filter(AlertRule.org_id == org_id, AlertRule.uid.in_(uids))
            .delete(synchronize_session=False)
        )
        self.db.query(AlertRuleVersion).filter(
            AlertRuleVersion.rule_org_id == org_id, AlertRuleVersion.rule_uid.in_(uids)
        ).delete(synchronize_session=False)
        self.db.query(ProvenanceType).filter(
            ProvenanceType.org_id == org_id,
            ProvenanceType.record_type == ALERT_RULE_RECORD_TYPE,
            ProvenanceType.record_key.in_(uids),
        ).delete(synchronize_session=False)
        self.db.query(AlertInstance).filter(
            AlertInstance.rule_org_id == org_id, AlertInstance.rule_uid.in_(uids)
        ).delete(synchronize_session=False)
        self.db.flush()
        return int(n or 0)

    # ------------------------------------------------------------------
    # alertmanager configuration
    # ------------------------------------------------------------------
    def get_alertmanager_configuration(self, org_id: int) -> Optional[PostableUserConfig]:
        row = (
            self.db.query(AlertConfiguration)
            .filter(AlertConfiguration.org_id == org_id)
            .order_by(AlertConfiguration.id.desc())
            .first()
        )
        if row is None:
            return None
        try:
            return PostableUserConfig.from_json(row.alertmanager_configuration)
        except ValueError as e:
            raise MigrationError(f"failed to parse alertmanager configuration for org {org_id}: {e}") from e

    def save_alertmanager_configuration(self, org_id: int, config: PostableUserConfig) -> None:
        raw = config.to_json()
        self.db.add(
            AlertConfiguration(
                org_id=org_id,
                alertmanager_configuration=raw,
                configuration_version=CONFIGURATION_VERSION,
                configuration_hash=hashlib.md5(raw.encode("utf-8")).hexdigest(),
                default=False,
            )
        )
        self.db.flush()

    # ------------------------------------------------------------------
    # silences
    # ------------------------------------------------------------------
    def replace_silences(self, org_id: int, removed_rule_uids: Iterable[str], added: Iterable[MeshSilence]) -> None:
        self.silence_file.replace_for_rules(org_id, removed_rule_uids, added)

    # ------------------------------------------------------------------
    # folders
    # ------------------------------------------------------------------
    def delete_folders(self, org_id: int, uids: Iterable[str]) -> List[str]:
        """Deletes folders the migration created. Returns the uids deleted."""
        uids = [u for u in uids if u]
        if not uids:
            return []
        if self.folders is None:
            raise MigrationError("folder service is required to delete folders")
        user = migration_revert_user(org_id)
        deleted: List[str] = []
        for uid in uids:
            try:
                self.folders.delete(org_id, user, uid)
            except NotFoundError:
                logger.warning("Migrated folder already gone org_id=%s folder_uid=%s", org_id, uid)
                continue
            deleted.append(uid)
            logger.info("Deleted migrated folder org_id=%s folder_uid=%s", org_id, uid)
        return deleted

    # ------------------------------------------------------------------
    # revert
    # ------------------------------------------------------------------
    def _delete_unified_rows(self, org_id: Optional[int]) -> None:
        targets = (
            (AlertRule, AlertRule.org_id),
            (AlertRuleVersion, AlertRuleVersion.rule_org_id),
            (AlertConfiguration, AlertConfiguration.org_id),
            (NgalertConfiguration, NgalertConfiguration.org_id),
            (AlertInstance, AlertInstance.rule_org_id),
            (ProvenanceType, ProvenanceType.org_id),
        )
        for model, org_col in targets:
            q = self.db.query(model)
            if org_id is not None:
                q = q.filter(org_col == org_id)
            n = q.delete(synchronize_session=False)
            logger.debug("Reverted %s rows table=%s org_id=%s", n, model.__tablename__, org_id)

        kv = self.db.query(KVStoreEntry).filter(
            KVStoreEntry.namespace.in_((KV_ALERTMANAGER_NAMESPACE, KV_MIGRATION_NAMESPACE))
        )
        if org_id is not None:
            kv = kv.filter(KVStoreEntry.org_id == org_id)
        kv.delete(synchronize_session=False)
        self.db.flush()

    def revert_org(self, org_id: int) -> None:
        """
        Removes all unified alerting data of one org. Folders are deleted only
        when the ledger lists them as created by the migration.
        """
        state = self.get_org_migration_state(org_id)
        self.delete_folders(org_id, state.created_folders)
        self._delete_unified_rows(org_id)
        self.set_migrated(org_id, False)
        self.silence_file.remove(org_id)

    def revert_all_orgs(self) -> None:
        org_ids = set(self.get_all_org_ids())
        # Ledgers may outlive their org row.
        org_ids.update(
            r.org_id
            for r in self.db.query(KVStoreEntry.org_id)
            .filter(KVStoreEntry.namespace == KV_MIGRATION_NAMESPACE, KVStoreEntry.key == KV_STATE_KEY)
            .all()
        )
        for org_id in sorted(org_ids):
            state = self.get_org_migration_state(org_id)
            self.delete_folders(org_id, state.created_folders)
        self._delete_unified_rows(None)
        self.set_migrated(ANY_ORG, False)
        self.silence_file.remove()
