# alertmigrator/schemas/legacy.py
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from alertmigrator.services.errors import MigrationError


class DashAlertNotification(BaseModel):
    """Either id or uid is set in a dashboard alert's notification list."""

    model_config = ConfigDict(extra="ignore")

    uid: str = ""
    id: int = 0


class ConditionEvaluator(BaseModel):
    model_config = ConfigDict(extra="allow")

    params: List[float] = Field(default_factory=list)
    type: str = ""


class ConditionOperator(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = "and"


class ConditionQuery(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    # [refId, from, to], e.g. ["A", "5m", "now"]
    params: List[str] = Field(default_factory=list)
    datasource_id: int = Field(0, alias="datasourceId")
    model: Any = None


class ConditionReducer(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = ""


class DashAlertCondition(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = "query"
    evaluator: ConditionEvaluator = Field(default_factory=ConditionEvaluator)
    operator: ConditionOperator = Field(default_factory=ConditionOperator)
    query: ConditionQuery = Field(default_factory=ConditionQuery)
    reducer: ConditionReducer = Field(default_factory=ConditionReducer)


class DashAlertSettings(BaseModel):
    """
    Settings blob of a legacy dashboard alert. Known fields are typed, anything
    else is kept in model_extra.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    no_data_state: str = Field("", alias="noDataState")
    execution_error_state: str = Field("", alias="executionErrorState")
    conditions: List[DashAlertCondition] = Field(default_factory=list)
    # Usually an object; some old dashboards stored an array, which carries no tags.
    alert_rule_tags: Any = Field(None, alias="alertRuleTags")
    notifications: List[DashAlertNotification] = Field(default_factory=list)

    def tags(self) -> Dict[str, str]:
        if not isinstance(self.alert_rule_tags, dict):
            return {}
        out: Dict[str, str] = {}
        for key, value in self.alert_rule_tags.items():
            out[str(key)] = value if isinstance(value, str) else ""
        return out


class DashAlert(BaseModel):
    """Legacy alert row as seen by the migration."""

    id: int
    org_id: int
    dashboard_id: int
    panel_id: int
    name: str
    message: str = ""
    state: str = ""
    # Raw settings blob; a str when the stored JSON could not be decoded.
    settings: Any = Field(default_factory=dict)
    frequency: int = 60  # seconds
    for_seconds: int = 0
    silenced: bool = False
    execution_error: str = ""

    def parsed_settings(self) -> DashAlertSettings:
        raw = self.settings
        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw or "{}")
            except ValueError as e:
                raise MigrationError(f"failed to parse settings: {e}") from e
        try:
            return DashAlertSettings.model_validate(raw or {})
        except ValidationError as e:
            raise MigrationError(f"failed to parse settings: {e}") from e


class LegacyChannel(BaseModel):
    """Legacy notification channel row."""

    id: int
    org_id: int
    uid: str
    name: str
    type: str
    settings: Dict[str, Any] = Field(default_factory=dict)
    # key -> base64(encrypted value)
    secure_settings: Dict[str, str] = Field(default_factory=dict)
    is_default: bool = False
    send_reminder: bool = False
    frequency_seconds: int = 0
    disable_resolve_message: bool = False


class Dashboard(BaseModel):
    id: int
    uid: str
    org_id: int
    title: str
    folder_id: int = 0


class DataSourceRef(BaseModel):
    uid: str
    type: str
    name: Optional[str] = None
