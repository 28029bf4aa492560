# alertmigrator/schemas/silence.py
from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class SilenceMatcher(BaseModel):
    type: str = "EQUAL"
    name: str
    pattern: str


class Silence(BaseModel):
    id: str
    matchers: List[SilenceMatcher] = Field(default_factory=list)
    starts_at: datetime
    ends_at: datetime
    updated_at: datetime
    created_by: str
    comment: str = ""


class MeshSilence(BaseModel):
    silence: Silence
    expires_at: datetime

    def matches_label(self, name: str, value: str) -> bool:
        return any(m.name == name and m.pattern == value for m in self.silence.matchers)
