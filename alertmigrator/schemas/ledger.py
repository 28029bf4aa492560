# alertmigrator/schemas/ledger.py
"""
Per-org migration ledger. Persisted as JSON in the kv store and returned to
callers as the migration summary.
"""
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from alertmigrator.core.enums import LegacyAlertState
from alertmigrator.core.timeutils import format_duration
from alertmigrator.schemas.legacy import DashAlert, LegacyChannel
from alertmigrator.schemas.unified import UnifiedAlertRule


class _LedgerModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LegacyAlertInfo(_LedgerModel):
    id: int
    dashboard_id: int
    panel_id: int
    name: str
    paused: bool = False
    silenced: bool = False
    execution_error: str = ""
    frequency: int = 0
    for_: str = Field("0s", alias="for")
    modified: bool = False


class AlertRuleUpgrade(_LedgerModel):
    uid: str
    title: str
    dashboard_uid: Optional[str] = None
    panel_id: Optional[int] = None
    no_data_state: str = ""
    exec_err_state: str = ""
    for_: str = Field("0s", alias="for")
    annotations: Dict[str, str] = Field(default_factory=dict)
    labels: Dict[str, str] = Field(default_factory=dict)
    is_paused: bool = False
    modified: bool = False

    @classmethod
    def from_rule(cls, rule: UnifiedAlertRule) -> "AlertRuleUpgrade":
        return cls(
            uid=rule.uid,
            title=rule.title,
            dashboard_uid=rule.dashboard_uid,
            panel_id=rule.panel_id,
            no_data_state=rule.no_data_state.value,
            exec_err_state=rule.exec_err_state.value,
            for_=format_duration(rule.for_seconds),
            annotations=dict(rule.annotations),
            labels=dict(rule.labels),
            is_paused=rule.is_paused,
        )


class AlertPair(_LedgerModel):
    legacy_alert: LegacyAlertInfo
    alert_rule: Optional[AlertRuleUpgrade] = None
    error: str = ""

    def attach_rule(self, rule: UnifiedAlertRule) -> None:
        self.alert_rule = AlertRuleUpgrade.from_rule(rule)


class DashboardUpgrade(_LedgerModel):
    migrated_alerts: List[AlertPair] = Field(default_factory=list)
    dashboard_id: int
    dashboard_uid: str = ""
    dashboard_name: str = ""
    folder_uid: str = ""
    folder_name: str = ""
    new_folder_uid: str = ""
    new_folder_name: str = ""
    provisioned: bool = False
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    def set_dashboard(self, uid: str, name: str) -> None:
        self.dashboard_uid = uid
        self.dashboard_name = name

    def set_folder(self, uid: str, name: str) -> None:
        self.folder_uid = uid
        self.folder_name = name

    def set_new_folder(self, uid: str, name: str) -> None:
        self.new_folder_uid = uid
        self.new_folder_name = name

    def add_alert(self, alert: DashAlert) -> AlertPair:
        pair = AlertPair(
            legacy_alert=LegacyAlertInfo(
                id=alert.id,
                dashboard_id=alert.dashboard_id,
                panel_id=alert.panel_id,
                name=alert.name,
                paused=alert.state == LegacyAlertState.PAUSED.value,
                silenced=alert.silenced,
                execution_error=alert.execution_error,
                frequency=alert.frequency,
                for_=format_duration(alert.for_seconds),
            )
        )
        self.migrated_alerts.append(pair)
        return pair

    def add_alert_errors(self, err: object, *alerts: DashAlert) -> None:
        for alert in alerts:
            self.add_alert(alert).error = str(err)

    def pop_alert_pair_by_panel_id(self, panel_id: int) -> Optional[AlertPair]:
        for i, pair in enumerate(self.migrated_alerts):
            if pair.legacy_alert.panel_id == panel_id:
                return self.migrated_alerts.pop(i)
        return None

    def rule_uids(self) -> List[str]:
        return [p.alert_rule.uid for p in self.migrated_alerts if p.alert_rule is not None and p.alert_rule.uid]


class LegacyChannelInfo(_LedgerModel):
    id: int
    uid: str
    name: str
    type: str
    send_reminder: bool = False
    disable_resolve_message: bool = False
    frequency: str = "0s"
    is_default: bool = False
    modified: bool = False

    @classmethod
    def from_channel(cls, channel: LegacyChannel) -> "LegacyChannelInfo":
        return cls(
            id=channel.id,
            uid=channel.uid,
            name=channel.name,
            type=channel.type,
            send_reminder=channel.send_reminder,
            disable_resolve_message=channel.disable_resolve_message,
            frequency=format_duration(channel.frequency_seconds),
            is_default=channel.is_default,
        )


class ContactPointUpgrade(_LedgerModel):
    name: str
    uid: str
    type: str
    disable_resolve_message: bool = False
    route_label: str = ""
    modified: bool = False


class ContactPair(_LedgerModel):
    legacy_channel: LegacyChannelInfo
    contact_point: Optional[ContactPointUpgrade] = None
    provisioned: bool = False
    error: str = ""


class OrgMigrationState(_LedgerModel):
    org_id: int
    migrated_dashboards: List[DashboardUpgrade] = Field(default_factory=list)
    migrated_channels: List[ContactPair] = Field(default_factory=list)
    created_folders: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

    def get_dashboard_upgrade(self, dashboard_id: int) -> Optional[DashboardUpgrade]:
        for du in self.migrated_dashboards:
            if du.dashboard_id == dashboard_id:
                return du
        return None

    def pop_dashboard_upgrade(self, dashboard_id: int) -> Optional[DashboardUpgrade]:
        for i, du in enumerate(self.migrated_dashboards):
            if du.dashboard_id == dashboard_id:
                return self.migrated_dashboards.pop(i)
        return None

    def pop_contact_pair(self, channel_id: int) -> Optional[ContactPair]:
        for i, pair in enumerate(self.migrated_channels):
            if pair.legacy_channel.id == channel_id:
                return self.migrated_channels.pop(i)
        return None

    def remove_created_folder(self, uid: str) -> bool:
        if uid in self.created_folders:
            self.created_folders.remove(uid)
            return True
        return False

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str) -> "OrgMigrationState":
        return cls.model_validate_json(raw)
