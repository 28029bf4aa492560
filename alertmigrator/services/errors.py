# alertmigrator/services/errors.py
from __future__ import annotations

FORCE_MIGRATION_MESSAGE = (
    "Grafana has already been migrated to Unified Alerting. Any alert rules created while using "
    "Unified Alerting will be deleted by rolling back. Set force_migration=true in your grafana.ini "
    "and restart Grafana to roll back and delete Unified Alerting configuration data."
)


class MigrationError(Exception):
    pass


class ActiveMigrationError(MigrationError):
    def __init__(self, org_id: int) -> None:
        super().__init__(f"organization {org_id} has already been migrated")
        self.org_id = org_id


class ForceMigrationError(MigrationError):
    def __init__(self) -> None:
        super().__init__(FORCE_MIGRATION_MESSAGE)


class NotFoundError(MigrationError):
    pass


class DuplicateTitleError(MigrationError):
    def __init__(self, title: str, namespace_uid: str) -> None:
        super().__init__(f"alert rule title {title!r} already exists in folder {namespace_uid}")
        self.title = title
        self.namespace_uid = namespace_uid


class ProvisioningChangedError(MigrationError):
    def __init__(self, dashboard_uid: str) -> None:
        super().__init__(
            f"provisioned status has changed for dashboard {dashboard_uid}, must re-upgrade entire dashboard"
        )


class ServerLockExistsError(MigrationError):
    pass


class QueryRewriteError(MigrationError):
    pass


class ConditionTranslationError(MigrationError):
    pass


class DiscontinuedChannelError(MigrationError):
    def __init__(self, channel_type: str) -> None:
        super().__init__(f"{channel_type} is a discontinued channel type")
        self.channel_type = channel_type


class InvalidAlertmanagerConfigError(MigrationError):
    pass


class FolderResolutionError(MigrationError):
    pass
