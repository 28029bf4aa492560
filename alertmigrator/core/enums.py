# alertmigrator/core/enums.py
from enum import Enum


class NoDataState(str, Enum):
    ALERTING = "Alerting"
    NO_DATA = "NoData"
    OK = "OK"


class ExecErrState(str, Enum):
    ALERTING = "Alerting"
    ERROR = "Error"
    OK = "OK"


class LegacyNoDataOption(str, Enum):
    NO_DATA = "no_data"
    ALERTING = "alerting"
    OK = "ok"
    KEEP_STATE = "keep_state"


class LegacyExecErrOption(str, Enum):
    ALERTING = "alerting"
    OK = "ok"
    KEEP_STATE = "keep_state"


class LegacyAlertState(str, Enum):
    OK = "ok"
    PAUSED = "paused"
    ALERTING = "alerting"
    PENDING = "pending"
    NO_DATA = "no_data"
    UNKNOWN = "unknown"


class Provenance(str, Enum):
    NONE = ""
    API = "api"
    FILE = "file"
    UPGRADE = "upgrade"


# Expression queries use this reserved datasource identifier.
EXPRESSION_DATASOURCE_UID = "__expr__"
