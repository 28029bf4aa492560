# alertmigrator/services/collaborators.py
"""
Contracts of the services the migration calls but does not own. Production
wiring passes real implementations; tests use in-memory fakes.
"""
from __future__ import annotations

from typing import Callable, List, Optional, Protocol

from alertmigrator.schemas.amconfig import GrafanaReceiver
from alertmigrator.schemas.folder import Folder, ResourcePermission, SignedInUser


class FolderService(Protocol):
    def get(
        self,
        org_id: int,
        user: SignedInUser,
        *,
        uid: Optional[str] = None,
        id: Optional[int] = None,
        title: Optional[str] = None,
    ) -> Optional[Folder]:
        """None when no folder matches."""

    def create(self, org_id: int, user: SignedInUser, *, title: str, uid: str, parent_uid: Optional[str] = None) -> Folder:
        ...

    def delete(self, org_id: int, user: SignedInUser, uid: str) -> None:
        """Also removes the folder's permissions."""


class PermissionService(Protocol):
    def get_dashboard_permissions(self, org_id: int, user: SignedInUser, dashboard_uid: str) -> List[ResourcePermission]:
        """Includes entries inherited from the parent folder, flagged is_inherited."""

    def get_folder_permissions(self, org_id: int, user: SignedInUser, folder_uid: str) -> List[ResourcePermission]:
        ...

    def set_folder_permissions(self, org_id: int, folder_uid: str, permissions: List[ResourcePermission]) -> List[ResourcePermission]:
        ...


class EncryptionService(Protocol):
    # Scope-free encryption: values are not tied to an org.
    def encrypt(self, payload: bytes) -> bytes:
        ...

    def decrypt(self, payload: bytes) -> bytes:
        ...


# (secure settings key, fallback) -> decrypted value
DecryptFn = Callable[[str, str], str]


class NotifierValidator(Protocol):
    def validate(self, integration: GrafanaReceiver, decrypt: DecryptFn) -> None:
        """Raise if the integration cannot be built from its settings."""
