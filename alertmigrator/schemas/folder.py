# alertmigrator/schemas/folder.py
from __future__ import annotations

from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

PERMISSION_LEVELS = {"View": 1, "Edit": 2, "Admin": 4}


class Folder(BaseModel):
    id: int = 0
    uid: str
    org_id: int
    title: str
    parent_uid: Optional[str] = None


class ResourcePermission(BaseModel):
    """One ACL entry on a dashboard or folder."""

    user_id: int = 0
    team_id: int = 0
    built_in_role: str = ""
    permission: str = "View"
    is_managed: bool = True
    is_inherited: bool = False

    def principal(self) -> Tuple[str, str]:
        if self.user_id:
            return ("user", str(self.user_id))
        if self.team_id:
            return ("team", str(self.team_id))
        return ("role", self.built_in_role)

    def level(self) -> int:
        return PERMISSION_LEVELS.get(self.permission, 0)


class SignedInUser(BaseModel):
    """Identity used for calls into the folder and permission services."""

    login: str
    org_id: int
    org_role: str = "Admin"
    # (action, scope)
    permissions: List[Tuple[str, str]] = Field(default_factory=list)


def migration_user(org_id: int) -> SignedInUser:
    return SignedInUser(
        login="ngalert_migration",
        org_id=org_id,
        permissions=[
            ("dashboards:read", "dashboards:*"),
            ("dashboards.permissions:read", "dashboards:*"),
            ("folders:read", "folders:*"),
            ("folders:create", "folders:*"),
            ("folders.permissions:read", "folders:*"),
            ("folders.permissions:write", "folders:*"),
        ],
    )


def migration_revert_user(org_id: int) -> SignedInUser:
    # Only what is needed to delete folders created by the migration.
    return SignedInUser(
        login="ngalert_migration_revert",
        org_id=org_id,
        permissions=[("folders:delete", "folders:*")],
    )
