# alertmigrator/schemas/unified.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from alertmigrator.core.enums import ExecErrState, NoDataState


class RelativeTimeRange(BaseModel):
    # seconds before now
    from_: int = Field(0, alias="from")
    to: int = 0

    model_config = ConfigDict(populate_by_name=True)


class AlertQuery(BaseModel):
    ref_id: str
    query_type: str = ""
    relative_time_range: RelativeTimeRange = Field(default_factory=RelativeTimeRange)
    datasource_uid: str
    model: Dict[str, Any] = Field(default_factory=dict)


class UnifiedAlertRule(BaseModel):
    uid: str
    org_id: int
    title: str
    condition: str
    data: List[AlertQuery] = Field(default_factory=list)
    interval_seconds: int = 60
    version: int = 1
    namespace_uid: str
    rule_group: str
    rule_group_index: int = 1
    dashboard_uid: Optional[str] = None
    panel_id: Optional[int] = None
    no_data_state: NoDataState = NoDataState.NO_DATA
    exec_err_state: ExecErrState = ExecErrState.ALERTING
    for_seconds: int = 0
    annotations: Dict[str, str] = Field(default_factory=dict)
    labels: Dict[str, str] = Field(default_factory=dict)
    is_paused: bool = False
