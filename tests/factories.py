"""Row builders for the legacy tables."""
from __future__ import annotations

import base64
import json
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from alertmigrator.core.timeutils import seconds_to_ns
from alertmigrator.models import (
    AlertNotification,
    Dashboard,
    DashboardProvisioning,
    DataSource,
    LegacyAlert,
    Org,
)


def condition(
    ref_id: str = "A",
    frm: str = "5m",
    to: str = "now",
    evaluator: str = "gt",
    params: Optional[List[float]] = None,
    reducer: str = "avg",
    operator: str = "and",
    datasource_id: int = 1,
    model: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    return {
        "type": "query",
        "evaluator": {"type": evaluator, "params": params if params is not None else [10]},
        "operator": {"type": operator},
        "query": {
            "params": [ref_id, frm, to],
            "datasourceId": datasource_id,
            "model": model if model is not None else {"refId": ref_id, "expr": "up"},
        },
        "reducer": {"type": reducer, "params": []},
    }


def alert_settings(
    conditions: Optional[List[Dict[str, Any]]] = None,
    notifications: Optional[List[Dict[str, Any]]] = None,
    no_data: str = "no_data",
    exec_err: str = "alerting",
    tags: Any = None,
) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "conditions": conditions if conditions is not None else [condition()],
        "noDataState": no_data,
        "executionErrorState": exec_err,
        "notifications": notifications or [],
    }
    if tags is not None:
        out["alertRuleTags"] = tags
    return out


def add_org(db: Session, org_id: int = 1, name: Optional[str] = None) -> Org:
    org = Org(id=org_id, name=name or f"org-{org_id}")
    db.add(org)
    db.flush()
    return org


def add_datasource(db: Session, org_id: int = 1, id: int = 1, uid: str = "prom-uid", type: str = "prometheus") -> DataSource:
    ds = DataSource(id=id, org_id=org_id, uid=uid, name=f"ds-{id}", type=type)
    db.add(ds)
    db.flush()
    return ds


def add_dashboard(
    db: Session,
    org_id: int = 1,
    id: int = 10,
    uid: str = "dash-uid",
    title: str = "Dashboard",
    folder_id: int = 0,
    provisioned: bool = False,
) -> Dashboard:
    dash = Dashboard(id=id, org_id=org_id, uid=uid, title=title, folder_id=folder_id, is_folder=False)
    db.add(dash)
    if provisioned:
        db.add(DashboardProvisioning(dashboard_id=id, name="file", external_id="dash.json"))
    db.flush()
    return dash


def add_alert(
    db: Session,
    org_id: int = 1,
    dashboard_id: int = 10,
    panel_id: int = 1,
    name: str = "High CPU",
    message: str = "",
    settings: Any = None,
    frequency: int = 60,
    for_seconds: int = 0,
    state: str = "ok",
    id: Optional[int] = None,
) -> LegacyAlert:
    if settings is None:
        settings = alert_settings()
    raw = settings if isinstance(settings, str) else json.dumps(settings)
    row = LegacyAlert(
        id=id,
        org_id=org_id,
        dashboard_id=dashboard_id,
        panel_id=panel_id,
        name=name,
        message=message,
        state=state,
        settings=raw,
        frequency=frequency,
        for_ns=seconds_to_ns(for_seconds),
    )
    db.add(row)
    db.flush()
    return row


def encrypted(value: str) -> str:
    # Matches FakeEncryptionService.
    return base64.b64encode(b"enc:" + value.encode("utf-8")).decode("ascii")


def add_channel(
    db: Session,
    org_id: int = 1,
    id: Optional[int] = None,
    uid: str = "chan-uid",
    name: str = "Ops Slack",
    type: str = "slack",
    settings: Optional[Dict[str, Any]] = None,
    secure_settings: Optional[Dict[str, str]] = None,
    is_default: bool = False,
    send_reminder: bool = False,
    frequency_seconds: int = 0,
) -> AlertNotification:
    row = AlertNotification(
        id=id,
        org_id=org_id,
        uid=uid,
        name=name,
        type=type,
        settings=json.dumps(settings if settings is not None else {"url": "https://hooks.example.com/x"}),
        secure_settings=json.dumps({k: encrypted(v) for k, v in (secure_settings or {}).items()}),
        is_default=is_default,
        send_reminder=send_reminder,
        frequency=seconds_to_ns(frequency_seconds),
    )
    db.add(row)
    db.flush()
    return row
