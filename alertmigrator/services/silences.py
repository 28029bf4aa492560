# alertmigrator/services/silences.py
from __future__ import annotations

import json
import logging
import os
from datetime import timedelta
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from alertmigrator.core.dedupe import generate_short_uid
from alertmigrator.core.enums import LegacyExecErrOption, LegacyNoDataOption
from alertmigrator.core.timeutils import utcnow
from alertmigrator.schemas.legacy import DashAlertSettings
from alertmigrator.schemas.silence import MeshSilence, Silence, SilenceMatcher
from alertmigrator.schemas.unified import UnifiedAlertRule

logger = logging.getLogger("alertmigrator.silences")

SILENCE_LABEL = "__legacy_silence__"

ERROR_ALERT_NAME = "DatasourceError"
NO_DATA_ALERT_NAME = "DatasourceNoData"

SILENCE_CREATED_BY = "Grafana Migration"
SILENCE_DURATION = timedelta(days=365)
# Alertmanager keeps expired silences around for this long.
SILENCE_RETENTION = timedelta(days=5)


def label_for_silence_matching(rule_uid: str) -> Tuple[str, str]:
    return SILENCE_LABEL, rule_uid


def _create_silence(rule: UnifiedAlertRule, alert_name: str, comment: str) -> MeshSilence:
    name, value = label_for_silence_matching(rule.uid)
    if not value:
        raise ValueError("alert rule has no uid")
    now = utcnow()
    ends = now + SILENCE_DURATION
    return MeshSilence(
        silence=Silence(
            id=generate_short_uid(),
            matchers=[
                SilenceMatcher(type="EQUAL", name="alertname", pattern=alert_name),
                SilenceMatcher(type="EQUAL", name=name, pattern=value),
            ],
            starts_at=now,
            ends_at=ends,
            updated_at=now,
            created_by=SILENCE_CREATED_BY,
            comment=comment,
        ),
        expires_at=ends + SILENCE_RETENTION,
    )


def create_silences(rule: UnifiedAlertRule, parsed: DashAlertSettings) -> List[MeshSilence]:
    """
    Silences for rules whose legacy NoData or Error option was "keep last
    state". Adds the matching label to the rule. A silence that cannot be
    built is logged and skipped.
    """
    keep_err = parsed.execution_error_state == LegacyExecErrOption.KEEP_STATE.value
    keep_no_data = parsed.no_data_state == LegacyNoDataOption.KEEP_STATE.value
    if not (keep_err or keep_no_data):
        return []

    name, value = label_for_silence_matching(rule.uid)
    rule.labels[name] = value

    silences: List[MeshSilence] = []
    if keep_err:
        try:
            silences.append(
                _create_silence(
                    rule,
                    ERROR_ALERT_NAME,
                    "Created during migration to unified alerting to silence Error state "
                    "when the option 'Keep Last State' was selected for Error state",
                )
            )
        except ValueError:
            logger.exception("alert migration error: failed to create silence for Error rule_name=%s", rule.title)
    if keep_no_data:
        try:
            silences.append(
                _create_silence(
                    rule,
                    NO_DATA_ALERT_NAME,
                    "Created during migration to unified alerting to silence NoData state "
                    "when the option 'Keep Last State' was selected for NoData state",
                )
            )
        except ValueError:
            logger.exception("alert migration error: failed to create silence for NoData rule_name=%s", rule.title)
    return silences


class SilenceFile:
    """Per-org silence file: <data_path>/alerting/<org_id>/silences"""

    FILE_NAME = "silences"

    def __init__(self, data_path: str) -> None:
        self.data_path = data_path

    def path(self, org_id: int) -> Path:
        return Path(self.data_path) / "alerting" / str(org_id) / self.FILE_NAME

    def read(self, org_id: int) -> List[MeshSilence]:
        p = self.path(org_id)
        if not p.exists():
            return []
        raw = json.loads(p.read_text(encoding="utf-8") or "[]")
        return [MeshSilence.model_validate(s) for s in raw]

    def write(self, org_id: int, silences: Iterable[MeshSilence]) -> None:
        p = self.path(org_id)
        p.parent.mkdir(parents=True, exist_ok=True)
        payload = [s.model_dump(mode="json") for s in silences]
        tmp = p.with_suffix(".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, p)

    def replace_for_rules(self, org_id: int, removed_rule_uids: Iterable[str], added: Iterable[MeshSilence]) -> None:
        removed = set(removed_rule_uids)
        kept = [
            s for s in self.read(org_id)
            if not any(s.matches_label(SILENCE_LABEL, uid) for uid in removed)
        ]
        added = list(added)
        if not kept and not added and not self.path(org_id).exists():
            return
        self.write(org_id, kept + added)

    def remove(self, org_id: Optional[int] = None) -> List[Path]:
        """Delete one org's silence file, or every org's when org_id is None."""
        base = Path(self.data_path) / "alerting"
        files = [self.path(org_id)] if org_id is not None else list(base.glob(f"*/{self.FILE_NAME}"))
        removed: List[Path] = []
        for f in files:
            if not f.exists():
                continue
            try:
                f.unlink()
                removed.append(f)
            except OSError:
                logger.exception("alert migration error: failed to remove silence file file=%s", f)
        return removed
