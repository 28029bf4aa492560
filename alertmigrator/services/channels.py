# alertmigrator/services/channels.py
from __future__ import annotations

import base64
import binascii
import logging
from typing import Dict, List, Optional, Tuple

from alertmigrator.core.timeutils import format_duration
from alertmigrator.schemas.amconfig import (
    MATCH_EQUAL,
    MATCH_REGEXP,
    AlertmanagerConfig,
    GrafanaReceiver,
    ObjectMatcher,
    PostableUserConfig,
    Receiver,
    Route,
)
from alertmigrator.schemas.ledger import ContactPair, ContactPointUpgrade, LegacyChannelInfo
from alertmigrator.schemas.legacy import LegacyChannel
from alertmigrator.services.alert_rules import USE_LEGACY_CHANNELS_LABEL, contact_label
from alertmigrator.services.collaborators import EncryptionService, NotifierValidator
from alertmigrator.services.errors import (
    DiscontinuedChannelError,
    InvalidAlertmanagerConfigError,
    MigrationError,
)

logger = logging.getLogger("alertmigrator.channels")

# Pseudo-disables repeats for channels without reminders (1y).
DISABLED_REPEAT_INTERVAL = format_duration(8736 * 3600)

DEFAULT_RECEIVER_NAME = "autogen-contact-point-default"

ALERTNAME_LABEL = "alertname"
FOLDER_TITLE_LABEL = "grafana_folder"

DISCONTINUED_CHANNEL_TYPES = ("hipchat", "sensu")

# Settings that later legacy versions moved into secure settings.
SECURE_KEYS_TO_MIGRATE: Dict[str, List[str]] = {
    "slack": ["url", "token"],
    "pagerduty": ["integrationKey"],
    "webhook": ["password"],
    "prometheus-alertmanager": ["basicAuthPassword"],
    "opsgenie": ["apiKey"],
    "telegram": ["bottoken"],
    "line": ["token"],
    "pushover": ["apiToken", "userKey"],
    "threema": ["api_secret"],
}


def create_nested_legacy_route() -> Route:
    return Route(
        object_matchers=[ObjectMatcher(name=USE_LEGACY_CHANNELS_LABEL, type=MATCH_EQUAL, value="true")],
        continue_=True,
    )


def is_nested_legacy_route(route: Route) -> bool:
    return len(route.object_matchers) == 1 and route.object_matchers[0].name == USE_LEGACY_CHANNELS_LABEL


def create_base_config() -> Tuple[PostableUserConfig, Route]:
    """Root route with an empty default receiver and the nested legacy route."""
    nested = create_nested_legacy_route()
    root = Route(
        receiver=DEFAULT_RECEIVER_NAME,
        routes=[nested],
        # Same grouping as legacy notifications.
        group_by=[FOLDER_TITLE_LABEL, ALERTNAME_LABEL],
    )
    config = PostableUserConfig(
        alertmanager_config=AlertmanagerConfig(
            route=root,
            receivers=[Receiver(name=DEFAULT_RECEIVER_NAME, grafana_managed_receiver_configs=[])],
        )
    )
    return config, nested


def get_or_create_nested_legacy_route(config: PostableUserConfig) -> Route:
    root = config.alertmanager_config.route
    for r in root.routes:
        if is_nested_legacy_route(r):
            return r
    nested = create_nested_legacy_route()
    root.routes.insert(0, nested)
    return nested


def create_route(channel: LegacyChannel, receiver_name: str) -> Route:
    """
    One route per channel, matched on the channel's contact label. Default
    channels match every alert. All routes continue so siblings still match.
    """
    if channel.is_default:
        matcher = ObjectMatcher(name=ALERTNAME_LABEL, type=MATCH_REGEXP, value=".+")
    else:
        matcher = ObjectMatcher(name=contact_label(channel.uid), type=MATCH_EQUAL, value="true")

    repeat = DISABLED_REPEAT_INTERVAL
    if channel.send_reminder:
        repeat = format_duration(channel.frequency_seconds)

    return Route(receiver=receiver_name, object_matchers=[matcher], continue_=True, repeat_interval=repeat)


def new_contact_pair(
    channel: LegacyChannel,
    receiver: Optional[Receiver] = None,
    route: Optional[Route] = None,
    error: Optional[object] = None,
) -> ContactPair:
    pair = ContactPair(legacy_channel=LegacyChannelInfo.from_channel(channel), provisioned=False)
    if receiver is not None and receiver.grafana_managed_receiver_configs:
        integration = receiver.grafana_managed_receiver_configs[0]
        pair.contact_point = ContactPointUpgrade(
            name=receiver.name,
            uid=integration.uid,
            type=integration.type,
            disable_resolve_message=integration.disable_resolve_message,
            route_label=route.object_matchers[0].name if route is not None and route.object_matchers else "",
        )
    if error is not None:
        pair.error = str(error)
    return pair


class ChannelMigrator:
    """Builds contact points and routes from legacy notification channels."""

    def __init__(self, encryption: EncryptionService) -> None:
        self.encryption = encryption

    def decrypt_value(self, encoded: str) -> str:
        try:
            raw = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise MigrationError(f"failed to decode secure setting: {e}") from e
        return self.encryption.decrypt(raw).decode("utf-8")

    def encrypt_value(self, value: str) -> str:
        return base64.b64encode(self.encryption.encrypt(value.encode("utf-8"))).decode("ascii")

    def migrate_settings_to_secure_settings(
        self, channel_type: str, settings: Dict[str, object], secure_settings: Dict[str, str]
    ) -> Tuple[Dict[str, object], Dict[str, str]]:
        """
        Moves plaintext values of known secret keys into secure settings
        (existing secure values win) and re-encrypts all secure settings.
        """
        new_secure = {k: self.decrypt_value(v) for k, v in (secure_settings or {}).items()}
        clone = dict(settings or {})
        for key in SECURE_KEYS_TO_MIGRATE.get(channel_type, []):
            if new_secure.get(key):
                continue
            value = clone.get(key)
            if isinstance(value, str) and value != "":
                new_secure[key] = value
                del clone[key]

        try:
            encrypted = {k: self.encrypt_value(v) for k, v in new_secure.items()}
        except Exception as e:
            raise MigrationError(f"failed to encrypt secure settings: {e}") from e
        return clone, encrypted

    def create_receiver(self, channel: LegacyChannel) -> Receiver:
        if channel.type in DISCONTINUED_CHANNEL_TYPES:
            raise DiscontinuedChannelError(channel.type)
        settings, secure = self.migrate_settings_to_secure_settings(channel.type, channel.settings, channel.secure_settings)
        integration = GrafanaReceiver(
            uid=channel.uid,
            name=channel.name,
            type=channel.type,
            disable_resolve_message=channel.disable_resolve_message,
            settings=settings,
            secure_settings=secure,
        )
        # Channel names are unique within an org.
        return Receiver(name=channel.name, grafana_managed_receiver_configs=[integration])

    def migrate_channel(self, channel: LegacyChannel) -> Tuple[ContactPair, Optional[Receiver], Optional[Route]]:
        try:
            receiver = self.create_receiver(channel)
        except MigrationError as e:
            logger.warning(
                "Failed to create receiver type=%s name=%s uid=%s error=%s", channel.type, channel.name, channel.uid, e
            )
            return new_contact_pair(channel, error=f"create receiver: {e}"), None, None

        route = create_route(channel, receiver.name)
        return new_contact_pair(channel, receiver, route), receiver, route

    def migrate_channels(self, config: PostableUserConfig, channels: List[LegacyChannel]) -> List[ContactPair]:
        nested = get_or_create_nested_legacy_route(config)
        pairs: List[ContactPair] = []
        for channel in channels:
            pair, receiver, route = self.migrate_channel(channel)
            if receiver is not None and route is not None:
                # Receiver names and channel routes stay unique per org.
                self.remove_contact_point(config, pair)
                nested.routes.append(route)
                config.alertmanager_config.receivers.append(receiver)
            pairs.append(pair)
        return pairs

    @staticmethod
    def remove_contact_point(config: PostableUserConfig, pair: ContactPair) -> None:
        """
        Drops the receiver and route a previous migration created for this
        pair. Receivers are matched by contact point name and by the legacy
        channel uid, routes by receiver name and by the channel's contact
        label, so leftovers are found even when the pair has no contact point.
        """
        am = config.alertmanager_config
        channel_uid = pair.legacy_channel.uid
        names = set()
        if pair.contact_point is not None:
            names.add(pair.contact_point.name)
        if channel_uid:
            for r in am.receivers:
                if any(i.uid == channel_uid for i in r.grafana_managed_receiver_configs):
                    names.add(r.name)
        label = contact_label(channel_uid) if channel_uid else None

        am.receivers = [r for r in am.receivers if r.name not in names]
        nested = get_or_create_nested_legacy_route(config)
        nested.routes = [
            r
            for r in nested.routes
            if r.receiver not in names and not any(m.name == label for m in r.object_matchers)
        ]

    def validate_config(self, config: PostableUserConfig, validator: NotifierValidator) -> None:
        for receiver in config.alertmanager_config.receivers:
            for integration in receiver.grafana_managed_receiver_configs:

                def decrypt(key: str, fallback: str, _secure=integration.secure_settings) -> str:
                    encoded = _secure.get(key)
                    if not encoded:
                        return fallback
                    return self.decrypt_value(encoded)

                try:
                    validator.validate(integration, decrypt)
                except InvalidAlertmanagerConfigError:
                    raise
                except Exception as e:
                    raise InvalidAlertmanagerConfigError(
                        f"failed to validate integration {integration.name!r} ({integration.type}) uid={integration.uid}: {e}"
                    ) from e
