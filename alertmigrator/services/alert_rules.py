# alertmigrator/services/alert_rules.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from alertmigrator.config import settings as app_settings
from alertmigrator.core.dedupe import generate_short_uid
from alertmigrator.core.enums import (
    ExecErrState,
    LegacyAlertState,
    LegacyExecErrOption,
    LegacyNoDataOption,
    NoDataState,
)
from alertmigrator.schemas.legacy import DashAlert, DashAlertSettings
from alertmigrator.schemas.unified import UnifiedAlertRule
from alertmigrator.services.conditions import TranslatedCondition
from alertmigrator.services.query_rewrite import rewrite_queries

logger = logging.getLogger("alertmigrator.alert_rules")

# Max length of alert rule titles.
ALERT_RULE_MAX_TITLE_LENGTH = 190

# Routes a rule to the migrated channel with this uid.
CONTACT_LABEL_TEMPLATE = "__contacts_{}__"

# Routes a rule into the nested policy holding all migrated channels.
USE_LEGACY_CHANNELS_LABEL = "__use_legacy_channels__"

DASHBOARD_UID_ANNOTATION = "__dashboardUid__"
PANEL_ID_ANNOTATION = "__panelId__"
ALERT_ID_ANNOTATION = "__alertId__"
MESSAGE_ANNOTATION = "message"

INSTANCE_PLACEHOLDER = "${instance}"
MERGED_LABELS_PREAMBLE = "{{- $mergedLabels := mergeLabelValues $values -}}\n"
MERGED_LABELS_INSTANCE = "{{ $mergedLabels.instance }}"


@dataclass
class RuleInfo:
    """Where a migrated rule goes."""

    dashboard_uid: str
    dashboard_name: str
    folder_uid: str


def contact_label(channel_uid: str) -> str:
    return CONTACT_LABEL_TEMPLATE.format(channel_uid)


def migrate_message_template(message: str) -> str:
    """
    ${instance} in legacy messages meant "labels of the firing series". It
    becomes a lookup into the merged label values of all series.
    """
    if INSTANCE_PLACEHOLDER not in (message or ""):
        return message or ""
    return MERGED_LABELS_PREAMBLE + message.replace(INSTANCE_PLACEHOLDER, MERGED_LABELS_INSTANCE)


def labels_and_annotations(
    alert: DashAlert,
    parsed: DashAlertSettings,
    dashboard_uid: str,
    channel_uids: List[str],
) -> Tuple[Dict[str, str], Dict[str, str]]:
    labels = parsed.tags()

    labels[USE_LEGACY_CHANNELS_LABEL] = "true"
    for uid in channel_uids:
        labels[contact_label(uid)] = "true"

    annotations = {
        DASHBOARD_UID_ANNOTATION: dashboard_uid,
        PANEL_ID_ANNOTATION: str(alert.panel_id),
        ALERT_ID_ANNOTATION: str(alert.id),
        MESSAGE_ANNOTATION: migrate_message_template(alert.message),
    }
    return labels, annotations


def trans_no_data(value: str) -> NoDataState:
    if value == LegacyNoDataOption.OK.value:
        return NoDataState.OK
    if value in ("", LegacyNoDataOption.NO_DATA.value):
        return NoDataState.NO_DATA
    if value == LegacyNoDataOption.ALERTING.value:
        return NoDataState.ALERTING
    if value == LegacyNoDataOption.KEEP_STATE.value:
        # Unified alerting fires a DatasourceNoData alert instead; it gets silenced.
        return NoDataState.NO_DATA
    logger.warning("Unable to translate NoData state. Using default old=%r new=%s", value, NoDataState.NO_DATA.value)
    return NoDataState.NO_DATA


def trans_exec_err(value: str) -> ExecErrState:
    if value in ("", LegacyExecErrOption.ALERTING.value):
        return ExecErrState.ALERTING
    if value == LegacyExecErrOption.KEEP_STATE.value:
        # Unified alerting fires a DatasourceError alert instead; it gets silenced.
        return ExecErrState.ERROR
    if value == LegacyExecErrOption.OK.value:
        return ExecErrState.OK
    logger.warning("Unable to translate Error state. Using default old=%r new=%s", value, ExecErrState.ERROR.value)
    return ExecErrState.ERROR


def adjust_interval(frequency: int, base: Optional[int] = None) -> int:
    base_freq = int(base or app_settings.BASE_INTERVAL_SECONDS)
    freq = int(frequency or 0)
    if freq <= base_freq:
        return base_freq
    return freq - (freq % base_freq)


def truncate_title(name: str) -> str:
    return (name or "")[:ALERT_RULE_MAX_TITLE_LENGTH]


def rule_group_name(dashboard_name: str, panel_id: int) -> str:
    # One rule per group, unique to the dashboard panel.
    return f"{dashboard_name} - {panel_id}"


def make_alert_rule(
    cond: TranslatedCondition,
    alert: DashAlert,
    parsed: DashAlertSettings,
    info: RuleInfo,
    channel_uids: List[str],
    base_interval: Optional[int] = None,
) -> UnifiedAlertRule:
    labels, annotations = labels_and_annotations(alert, parsed, info.dashboard_uid, channel_uids)
    data = rewrite_queries(cond.data)

    return UnifiedAlertRule(
        uid=generate_short_uid(),
        org_id=alert.org_id,
        title=truncate_title(alert.name),
        condition=cond.condition,
        data=data,
        interval_seconds=adjust_interval(alert.frequency, base_interval),
        version=1,
        namespace_uid=info.folder_uid,
        rule_group=rule_group_name(info.dashboard_name, alert.panel_id),
        rule_group_index=1,
        dashboard_uid=info.dashboard_uid,
        panel_id=alert.panel_id,
        no_data_state=trans_no_data(parsed.no_data_state),
        exec_err_state=trans_exec_err(parsed.execution_error_state),
        for_seconds=alert.for_seconds,
        annotations=annotations,
        labels=labels,
        is_paused=alert.state == LegacyAlertState.PAUSED.value,
    )
