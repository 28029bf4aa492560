from alertmigrator.models.alert_configuration import AlertConfiguration, AlertInstance, NgalertConfiguration
from alertmigrator.models.alert_notification import AlertNotification
from alertmigrator.models.alert_rule import AlertRule, AlertRuleVersion, ProvenanceType
from alertmigrator.models.dashboard import Dashboard, DashboardProvisioning
from alertmigrator.models.data_source import DataSource
from alertmigrator.models.kv_store import KVStoreEntry
from alertmigrator.models.legacy_alert import LegacyAlert
from alertmigrator.models.org import Org
from alertmigrator.models.server_lock import ServerLock

__all__ = [
    "AlertConfiguration",
    "AlertInstance",
    "AlertNotification",
    "AlertRule",
    "AlertRuleVersion",
    "Dashboard",
    "DashboardProvisioning",
    "DataSource",
    "KVStoreEntry",
    "LegacyAlert",
    "NgalertConfiguration",
    "Org",
    "ProvenanceType",
    "ServerLock",
]
