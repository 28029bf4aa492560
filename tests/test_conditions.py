import pytest

from alertmigrator.schemas.legacy import DashAlertSettings, DataSourceRef
from alertmigrator.services.conditions import translate_conditions
from alertmigrator.services.datasources import DatasourceCache
from alertmigrator.services.errors import ConditionTranslationError
from tests.factories import alert_settings, condition


class _Source:
    def __init__(self):
        self.calls = 0

    def get_datasource(self, org_id, datasource_id):
        self.calls += 1
        if datasource_id == 404:
            return None
        return DataSourceRef(uid=f"ds-{datasource_id}", type="prometheus")


def _translate(conditions):
    settings = DashAlertSettings.model_validate(alert_settings(conditions=conditions))
    return translate_conditions(settings, 1, DatasourceCache(_Source()))


def _by_ref(result):
    return {q.ref_id: q for q in result.data}


def test_single_condition_threshold_is_the_condition():
    result = _translate([condition("A", params=[80], reducer="avg")])
    refs = _by_ref(result)

    assert [q.ref_id for q in result.data] == ["A", "B", "C"]
    assert result.condition == "C"

    query = refs["A"]
    assert query.datasource_uid == "ds-1"
    assert query.relative_time_range.from_ == 300
    assert query.relative_time_range.to == 0
    assert query.model["datasource"] == {"type": "prometheus", "uid": "ds-1"}
    assert query.model["intervalMs"] == 1000
    assert query.model["maxDataPoints"] == 43200

    reduce_expr = refs["B"].model
    assert reduce_expr["type"] == "reduce"
    assert reduce_expr["reducer"] == "mean"
    assert reduce_expr["expression"] == "A"
    assert refs["B"].datasource_uid == "__expr__"

    threshold = refs["C"].model
    assert threshold["type"] == "threshold"
    assert threshold["expression"] == "B"
    assert threshold["conditions"][0]["evaluator"] == {"type": "gt", "params": [80.0]}


def test_conditions_chain_left_to_right():
    result = _translate(
        [
            condition("A", reducer="max"),
            condition("B", operator="and", reducer="min"),
            condition("C", operator="or", reducer="last"),
        ]
    )
    refs = _by_ref(result)
    math = refs[result.condition].model
    assert math["type"] == "math"
    # thresholds are allocated after the three queries: E, G, I
    assert math["expression"] == "(($E && $G) || $I)"
    assert refs["D"].model["reducer"] == "max"


def test_same_query_and_range_is_shared():
    result = _translate([condition("A", evaluator="gt"), condition("A", evaluator="lt")])
    queries = [q for q in result.data if q.datasource_uid != "__expr__"]
    assert len(queries) == 1


def test_same_ref_id_other_range_gets_new_query():
    result = _translate([condition("A", frm="5m"), condition("A", frm="1h")])
    queries = [q for q in result.data if q.datasource_uid != "__expr__"]
    assert len(queries) == 2
    assert queries[0].ref_id == "A"
    assert queries[1].ref_id != "A"
    assert queries[1].relative_time_range.from_ == 3600


def test_datasource_lookups_are_cached():
    source = _Source()
    settings = DashAlertSettings.model_validate(
        alert_settings(conditions=[condition("A", frm="5m"), condition("A", frm="10m")])
    )
    translate_conditions(settings, 1, DatasourceCache(source))
    assert source.calls == 1


@pytest.mark.parametrize(
    "conditions",
    [
        [],
        [condition(datasource_id=404)],
        [condition(reducer="")],
        [condition(evaluator="")],
        [condition("A"), condition("B", operator="xor")],
    ],
)
def test_translation_errors(conditions):
    with pytest.raises(ConditionTranslationError):
        _translate(conditions)


def test_short_params_rejected():
    cond = condition()
    cond["query"]["params"] = ["A"]
    with pytest.raises(ConditionTranslationError):
        _translate([cond])
