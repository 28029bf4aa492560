# alertmigrator/services/notifier.py
from __future__ import annotations

from typing import Dict, List, Tuple

from alertmigrator.schemas.amconfig import GrafanaReceiver
from alertmigrator.services.collaborators import DecryptFn
from alertmigrator.services.errors import InvalidAlertmanagerConfigError

# type -> groups of keys; each group needs at least one non-empty key,
# read from settings or secure settings.
REQUIRED_SETTINGS: Dict[str, List[Tuple[str, ...]]] = {
    "email": [("addresses",)],
    "slack": [("url", "token")],
    "webhook": [("url",)],
    "pagerduty": [("integrationKey",)],
    "opsgenie": [("apiKey",)],
    "telegram": [("bottoken",), ("chatid",)],
    "line": [("token",)],
    "pushover": [("apiToken",), ("userKey",)],
    "threema": [("gateway_id",), ("recipient_id",), ("api_secret",)],
    "prometheus-alertmanager": [("url",)],
    "discord": [("url",)],
    "teams": [("url",)],
    "googlechat": [("url",)],
    "victorops": [("url",)],
    "dingding": [("url",)],
    "kafka": [("kafkaRestProxy",), ("kafkaTopic",)],
    "sensugo": [("url",), ("apikey",)],
    "webex": [("room_id",)],
}


class IntegrationValidator:
    """Checks that an integration has the settings its notifier needs."""

    def __init__(self, required: Dict[str, List[Tuple[str, ...]]] = None) -> None:
        self.required = required if required is not None else REQUIRED_SETTINGS

    def validate(self, integration: GrafanaReceiver, decrypt: DecryptFn) -> None:
        groups = self.required.get(integration.type)
        if groups is None:
            raise InvalidAlertmanagerConfigError(
                f"notifier {integration.name!r}: unsupported integration type {integration.type!r}"
            )
        for group in groups:
            if not any(self._value(integration, key, decrypt) for key in group):
                raise InvalidAlertmanagerConfigError(
                    f"notifier {integration.name!r} ({integration.type}): could not find {' or '.join(group)} in settings"
                )

    @staticmethod
    def _value(integration: GrafanaReceiver, key: str, decrypt: DecryptFn) -> str:
        if key in integration.secure_settings:
            return decrypt(key, "")
        v = integration.settings.get(key)
        if v is None:
            return ""
        return str(v).strip()
