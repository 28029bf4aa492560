# alertmigrator/schemas/amconfig.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_serializer, model_validator

MATCH_EQUAL = "="
MATCH_NOT_EQUAL = "!="
MATCH_REGEXP = "=~"
MATCH_NOT_REGEXP = "!~"

_MATCH_TYPES = (MATCH_EQUAL, MATCH_NOT_EQUAL, MATCH_REGEXP, MATCH_NOT_REGEXP)


class ObjectMatcher(BaseModel):
    """Label matcher, serialized as ["name", "op", "value"]."""

    name: str
    type: str = MATCH_EQUAL
    value: str

    @model_validator(mode="before")
    @classmethod
    def _from_triple(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            if len(data) != 3:
                raise ValueError(f"matcher must have 3 elements, got {len(data)}")
            return {"name": data[0], "type": data[1], "value": data[2]}
        return data

    @model_validator(mode="after")
    def _check_type(self) -> "ObjectMatcher":
        if self.type not in _MATCH_TYPES:
            raise ValueError(f"unknown matcher type {self.type!r}")
        return self

    @model_serializer
    def _to_triple(self) -> List[str]:
        return [self.name, self.type, self.value]


class Route(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    receiver: Optional[str] = None
    object_matchers: List[ObjectMatcher] = Field(default_factory=list)
    group_by: Optional[List[str]] = None
    continue_: bool = Field(False, alias="continue")
    repeat_interval: Optional[str] = None
    routes: List["Route"] = Field(default_factory=list)


class GrafanaReceiver(BaseModel):
    """One integration of a contact point."""

    model_config = ConfigDict(populate_by_name=True)

    uid: str
    name: str
    type: str
    disable_resolve_message: bool = Field(False, alias="disableResolveMessage")
    settings: Dict[str, Any] = Field(default_factory=dict)
    # key -> base64(encrypted value)
    secure_settings: Dict[str, str] = Field(default_factory=dict, alias="secureSettings")


class Receiver(BaseModel):
    """Contact point."""

    name: str
    grafana_managed_receiver_configs: List[GrafanaReceiver] = Field(default_factory=list)


class AlertmanagerConfig(BaseModel):
    route: Route
    receivers: List[Receiver] = Field(default_factory=list)
    templates: List[str] = Field(default_factory=list)


class PostableUserConfig(BaseModel):
    template_files: Dict[str, str] = Field(default_factory=dict)
    alertmanager_config: AlertmanagerConfig

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str) -> "PostableUserConfig":
        return cls.model_validate_json(raw)


Route.model_rebuild()
