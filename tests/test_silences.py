import json
from datetime import timedelta

from alertmigrator.schemas.legacy import DashAlertSettings
from alertmigrator.schemas.unified import UnifiedAlertRule
from alertmigrator.services.silences import SILENCE_LABEL, SilenceFile, create_silences
from tests.factories import alert_settings


def _rule(uid="rule-1"):
    return UnifiedAlertRule(uid=uid, org_id=1, title="t", condition="B", namespace_uid="f", rule_group="g")


def _settings(no_data="no_data", exec_err="alerting"):
    return DashAlertSettings.model_validate(alert_settings(no_data=no_data, exec_err=exec_err))


def test_no_silences_without_keep_state():
    rule = _rule()
    assert create_silences(rule, _settings()) == []
    assert SILENCE_LABEL not in rule.labels


def test_keep_state_creates_both_silences():
    rule = _rule()
    silences = create_silences(rule, _settings(no_data="keep_state", exec_err="keep_state"))
    assert rule.labels[SILENCE_LABEL] == "rule-1"
    names = sorted(m.pattern for s in silences for m in s.silence.matchers if m.name == "alertname")
    assert names == ["DatasourceError", "DatasourceNoData"]
    for s in silences:
        assert s.matches_label(SILENCE_LABEL, "rule-1")
        assert s.silence.ends_at - s.silence.starts_at == timedelta(days=365)


def test_keep_state_no_data_only():
    silences = create_silences(_rule(), _settings(no_data="keep_state"))
    assert len(silences) == 1
    assert silences[0].matches_label("alertname", "DatasourceNoData")


def test_silence_file_roundtrip_and_replace(tmp_path):
    sf = SilenceFile(str(tmp_path))
    keep = create_silences(_rule("keep"), _settings(no_data="keep_state"))
    drop = create_silences(_rule("drop"), _settings(exec_err="keep_state"))
    sf.write(1, keep + drop)

    path = tmp_path / "alerting" / "1" / "silences"
    assert path.exists()
    assert len(json.loads(path.read_text())) == 2

    added = create_silences(_rule("new"), _settings(exec_err="keep_state"))
    sf.replace_for_rules(1, ["drop"], added)
    labels = sorted(m.pattern for s in sf.read(1) for m in s.silence.matchers if m.name == SILENCE_LABEL)
    assert labels == ["keep", "new"]


def test_replace_without_file_or_silences_writes_nothing(tmp_path):
    sf = SilenceFile(str(tmp_path))
    sf.replace_for_rules(1, ["x"], [])
    assert not sf.path(1).exists()


def test_remove(tmp_path):
    sf = SilenceFile(str(tmp_path))
    silences = create_silences(_rule(), _settings(no_data="keep_state"))
    sf.write(1, silences)
    sf.write(2, silences)

    assert sf.remove(1) == [sf.path(1)]
    assert not sf.path(1).exists()
    assert sf.path(2).exists()

    sf.write(3, silences)
    removed = sf.remove()
    assert sorted(p.parent.name for p in removed) == ["2", "3"]
    assert sf.read(2) == []
