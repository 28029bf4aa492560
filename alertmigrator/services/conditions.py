# alertmigrator/services/conditions.py
"""
Classic condition translation.

A legacy alert evaluates its conditions in order, each one reducing a query
and comparing the result, and joins them with their operator strictly left to
right. The translated rule keeps that shape: every condition becomes a reduce
expression and a threshold expression, and a math expression chains the
thresholds, parenthesized so evaluation order stays left to right.
"""
from __future__ import annotations

import json
import string
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Set, Tuple

from alertmigrator.core.enums import EXPRESSION_DATASOURCE_UID
from alertmigrator.core.timeutils import parse_relative_time
from alertmigrator.schemas.legacy import DashAlertCondition, DashAlertSettings
from alertmigrator.schemas.unified import AlertQuery, RelativeTimeRange
from alertmigrator.services.datasources import DatasourceCache
from alertmigrator.services.errors import ConditionTranslationError, MigrationError

DEFAULT_INTERVAL_MS = 1000
DEFAULT_MAX_DATA_POINTS = 43200

# Legacy reducer names that differ in the reduce expression.
REDUCER_NAMES = {"avg": "mean"}

OPERATORS = {"and": "&&", "or": "||"}

EXPRESSION_DATASOURCE = {"type": EXPRESSION_DATASOURCE_UID, "uid": EXPRESSION_DATASOURCE_UID}


@dataclass
class TranslatedCondition:
    condition: str
    data: List[AlertQuery] = field(default_factory=list)


def _ref_id_candidates() -> Iterator[str]:
    letters = string.ascii_uppercase
    for c in letters:
        yield c
    for a in letters:
        for b in letters:
            yield a + b


class _RefIDs:
    def __init__(self, reserved: Set[str]) -> None:
        self._used = set(reserved)
        self._gen = _ref_id_candidates()

    def take(self, ref_id: str) -> None:
        self._used.add(ref_id)

    def next(self) -> str:
        for candidate in self._gen:
            if candidate not in self._used:
                self._used.add(candidate)
                return candidate
        raise ConditionTranslationError("ran out of query reference ids")


def _query_model(cond: DashAlertCondition) -> Dict[str, Any]:
    model = cond.query.model
    if model is None:
        return {}
    if isinstance(model, (str, bytes)):
        try:
            model = json.loads(model)
        except ValueError as e:
            raise ConditionTranslationError(f"failed to parse query model: {e}") from e
    if not isinstance(model, dict):
        raise ConditionTranslationError("query model must be a JSON object")
    return dict(model)


def _time_range(cond: DashAlertCondition) -> Tuple[str, str, RelativeTimeRange]:
    params = cond.query.params
    if len(params) < 3:
        raise ConditionTranslationError(f"condition query params must be [refId, from, to], got {params!r}")
    try:
        rng = RelativeTimeRange(from_=parse_relative_time(params[1]), to=parse_relative_time(params[2]))
    except ValueError as e:
        raise ConditionTranslationError(f"invalid time range in condition query: {e}") from e
    return params[1], params[2], rng


def translate_conditions(settings: DashAlertSettings, org_id: int, datasources: DatasourceCache) -> TranslatedCondition:
    if not settings.conditions:
        raise ConditionTranslationError("alert has no conditions")

    refs = _RefIDs({c.query.params[0] for c in settings.conditions if c.query.params})
    data: List[AlertQuery] = []

    # (legacy refId, from, to) -> ref id of the query in the new rule
    query_refs: Dict[Tuple[str, str, str], str] = {}
    assigned: Set[str] = set()
    cond_queries: List[str] = []

    for cond in settings.conditions:
        frm, to, rng = _time_range(cond)
        legacy_ref = cond.query.params[0]
        key = (legacy_ref, frm, to)
        if key in query_refs:
            cond_queries.append(query_refs[key])
            continue

        # Same refId over a different time range needs its own query.
        ref_id = legacy_ref if legacy_ref and legacy_ref not in assigned else refs.next()
        assigned.add(ref_id)
        refs.take(ref_id)

        try:
            ds = datasources.get(org_id, cond.query.datasource_id)
        except MigrationError as e:
            raise ConditionTranslationError(f"failed to resolve datasource {cond.query.datasource_id}: {e}") from e

        model = _query_model(cond)
        model["refId"] = ref_id
        model["datasource"] = {"type": ds.type, "uid": ds.uid}
        model.setdefault("intervalMs", DEFAULT_INTERVAL_MS)
        model.setdefault("maxDataPoints", DEFAULT_MAX_DATA_POINTS)

        data.append(AlertQuery(ref_id=ref_id, relative_time_range=rng, datasource_uid=ds.uid, model=model))
        query_refs[key] = ref_id
        cond_queries.append(ref_id)

    thresholds: List[str] = []
    for cond, query_ref in zip(settings.conditions, cond_queries):
        if not cond.reducer.type:
            raise ConditionTranslationError("condition is missing a reducer type")
        if not cond.evaluator.type:
            raise ConditionTranslationError("condition is missing an evaluator type")

        reduce_ref = refs.next()
        data.append(
            _expression(
                reduce_ref,
                {
                    "type": "reduce",
                    "reducer": REDUCER_NAMES.get(cond.reducer.type, cond.reducer.type),
                    "expression": query_ref,
                },
            )
        )

        threshold_ref = refs.next()
        data.append(
            _expression(
                threshold_ref,
                {
                    "type": "threshold",
                    "expression": reduce_ref,
                    "conditions": [{"evaluator": {"type": cond.evaluator.type, "params": list(cond.evaluator.params)}}],
                },
            )
        )
        thresholds.append(threshold_ref)

    if len(thresholds) == 1:
        return TranslatedCondition(condition=thresholds[0], data=data)

    expr = f"${thresholds[0]}"
    for cond, ref in zip(settings.conditions[1:], thresholds[1:]):
        op = OPERATORS.get((cond.operator.type or "and").lower())
        if op is None:
            raise ConditionTranslationError(f"unknown condition operator {cond.operator.type!r}")
        expr = f"({expr} {op} ${ref})"

    math_ref = refs.next()
    data.append(_expression(math_ref, {"type": "math", "expression": expr}))
    return TranslatedCondition(condition=math_ref, data=data)


def _expression(ref_id: str, body: Dict[str, Any]) -> AlertQuery:
    model = {
        "refId": ref_id,
        "datasource": dict(EXPRESSION_DATASOURCE),
        "intervalMs": DEFAULT_INTERVAL_MS,
        "maxDataPoints": DEFAULT_MAX_DATA_POINTS,
    }
    model.update(body)
    return AlertQuery(
        ref_id=ref_id,
        relative_time_range=RelativeTimeRange(from_=0, to=0),
        datasource_uid=EXPRESSION_DATASOURCE_UID,
        model=model,
    )
