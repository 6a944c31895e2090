from pathlib import Path

import pytest

from content_lifecycle.app_shell.config import Settings, validate_ops_rules
from content_lifecycle.rules.models import OpsRules, Rules, SchedulingRules


def test_settings_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("LIFECYCLE_DATA_DIR", str(tmp_path / "store"))
    monkeypatch.setenv("LIFECYCLE_RULES_PATH", str(tmp_path / "custom.yaml"))

    settings = Settings()

    assert settings.data_dir == tmp_path / "store"
    assert settings.db_path == str(tmp_path / "store" / "lifecycle.db")
    assert settings.rules_path == tmp_path / "custom.yaml"


def test_settings_defaults(monkeypatch):
    monkeypatch.delenv("LIFECYCLE_DATA_DIR", raising=False)
    settings = Settings()
    assert settings.data_dir == Path("./data")
    assert settings.rules_path == Path.cwd() / "rules.yaml"


def test_validate_passes(capsys):
    validate_ops_rules(Rules())
    assert "Configuration Validated." in capsys.readouterr().out


def test_missing_required_env_exits(monkeypatch, capsys):
    monkeypatch.delenv("LIFECYCLE_TEST_SECRET", raising=False)
    rules = Rules(ops=OpsRules(required_env=["LIFECYCLE_TEST_SECRET"]))

    with pytest.raises(SystemExit) as exc:
        validate_ops_rules(rules)

    assert exc.value.code == 1
    assert "LIFECYCLE_TEST_SECRET" in capsys.readouterr().err


def test_required_env_present(monkeypatch):
    monkeypatch.setenv("LIFECYCLE_TEST_SECRET", "x")
    validate_ops_rules(Rules(ops=OpsRules(required_env=["LIFECYCLE_TEST_SECRET"])))


def test_shard_index_out_of_range_exits():
    rules = Rules(scheduling=SchedulingRules(shard_index=2, shard_count=2))
    with pytest.raises(SystemExit):
        validate_ops_rules(rules)
