# alertmigrator/services/query_rewrite.py
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from alertmigrator.core.enums import EXPRESSION_DATASOURCE_UID
from alertmigrator.schemas.unified import AlertQuery
from alertmigrator.services.errors import QueryRewriteError

logger = logging.getLogger("alertmigrator.query_rewrite")

# Graphite: targetFull holds `target` with referenced sub-queries expanded.
GRAPHITE_TARGET_FIELD = "target"
GRAPHITE_TARGET_FULL_FIELD = "targetFull"

HIDE_FIELD = "hide"


def _load_payload(payload: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(payload, dict):
        return dict(payload)
    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as e:
        raise QueryRewriteError(f"failed to parse query model: {e}") from e
    if not isinstance(data, dict):
        raise QueryRewriteError(f"query model must be a JSON object, got {type(data).__name__}")
    return data


def fix_graphite_referenced_subqueries(data: Dict[str, Any]) -> Dict[str, Any]:
    if GRAPHITE_TARGET_FULL_FIELD in data:
        data[GRAPHITE_TARGET_FIELD] = data.pop(GRAPHITE_TARGET_FULL_FIELD)
    return data


def _is_prometheus_query(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """(is_prometheus, reason the datasource could not be read)"""
    if "datasource" not in data:
        return False, "missing datasource field"
    ds = data["datasource"]
    if not isinstance(ds, dict):
        return False, f"failed to parse datasource {ds!r}"
    ds_type = ds.get("type")
    if not isinstance(ds_type, str) or not ds_type:
        return False, f"missing type field {ds!r}"
    return ds_type == "prometheus", None


def fix_prometheus_both_type_query(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Prometheus 'Both' (instant + range) queries are not supported by unified
    alerting. They are converted to range queries.
    """
    flags = {}
    for field in ("instant", "range"):
        if field not in data:
            flags[field] = False
            continue
        value = data[field]
        if value is None:
            flags[field] = False
            continue
        if not isinstance(value, bool):
            is_prom, _ = _is_prometheus_query(data)
            if is_prom:
                logger.info("Failed to parse %s field on Prometheus query %s=%r", field, field, value)
            return data
        flags[field] = value

    if not (flags["instant"] and flags["range"]):
        return data

    is_prom, reason = _is_prometheus_query(data)
    if reason is not None:
        logger.info("Unable to convert query that resembles a Prometheus 'Both' type query to 'Range': %s", reason)
        return data
    if not is_prom:
        return data

    logger.warning("Prometheus 'Both' type queries are not supported in unified alerting. Converting to range query.")
    data["instant"] = False
    return data


def rewrite(payload: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
    """
    Returns a rewritten copy of one query model. Raises QueryRewriteError when
    the payload is not a JSON object.
    """
    data = _load_payload(payload)
    data.pop(HIDE_FIELD, None)
    data = fix_graphite_referenced_subqueries(data)
    data = fix_prometheus_both_type_query(data)
    return data


def rewrite_queries(queries: List[AlertQuery]) -> List[AlertQuery]:
    result: List[AlertQuery] = []
    for q in queries:
        if q.datasource_uid == EXPRESSION_DATASOURCE_UID:
            result.append(q)
            continue
        result.append(q.model_copy(update={"model": rewrite(q.model)}))
    return result
