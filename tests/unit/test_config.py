"""
Unit tests for static and layered configuration.
"""

import pytest

from questline.core.config.config import Config, Environment
from questline.core.config.manager import ConfigManager, ConfigManagerError, ConfigWriteError


@pytest.mark.unit
class TestStaticConfig:
    def test_testing_environment_is_active(self):
        assert Config.is_testing() is True
        assert Config.is_production() is False

    def test_safe_int_reads_environment(self, monkeypatch):
        monkeypatch.setenv("QL_TEST_INT", "42")

        assert Config._safe_int("QL_TEST_INT", 7) == 42

    def test_safe_int_falls_back_on_garbage(self, monkeypatch):
        monkeypatch.setenv("QL_TEST_INT", "forty-two")

        assert Config._safe_int("QL_TEST_INT", 7) == 7

    def test_safe_int_enforces_bounds(self, monkeypatch):
        monkeypatch.setenv("QL_TEST_INT", "500")

        assert Config._safe_int("QL_TEST_INT", 7, min_val=1, max_val=100) == 7

    @pytest.mark.parametrize("raw,expected", [("yes", True), ("ON", True), ("0", False), ("off", False)])
    def test_safe_bool_spellings(self, monkeypatch, raw, expected):
        monkeypatch.setenv("QL_TEST_BOOL", raw)

        assert Config._safe_bool("QL_TEST_BOOL", None) is expected

    def test_safe_bool_unset_returns_default(self, monkeypatch):
        monkeypatch.delenv("QL_TEST_BOOL", raising=False)

        assert Config._safe_bool("QL_TEST_BOOL", None) is None

    def test_unknown_environment_defaults_to_development(self):
        assert Environment.from_string("moon") is Environment.DEVELOPMENT

    def test_summary_hides_database_url(self):
        summary = Config.get_config_summary()

        assert "database_url_set" in summary
        assert "database_url" not in summary


@pytest.mark.unit
class TestConfigManager:
    def test_bundled_defaults(self, config_manager):
        assert config_manager.get("quests.daily.max_worlds") == 3
        assert config_manager.get("streaks.milestones") == [3, 7, 14, 30, 60, 100]

    def test_missing_key_returns_default(self, config_manager):
        assert config_manager.get("quests.nope.value", "fallback") == "fallback"

    def test_override_does_not_touch_defaults(self, config_manager):
        config_manager.set("streaks.milestones", [3, 7])

        assert config_manager.get("streaks.milestones") == [3, 7]
        assert config_manager.get_defaults("streaks.milestones") == [3, 7, 14, 30, 60, 100]

    def test_reload_discards_overrides(self, config_manager):
        config_manager.set("quests.weekly.max_quests", 5)

        config_manager.reload()

        assert config_manager.get("quests.weekly.max_quests") == 2

    def test_validator_blocks_bad_write(self, config_manager):
        def positive(value):
            if value <= 0:
                raise ValueError("must be positive")
            return value

        config_manager.register_validator("quests.weekly.max_quests", positive)

        with pytest.raises(ConfigWriteError):
            config_manager.set("quests.weekly.max_quests", 0)
        assert config_manager.get("quests.weekly.max_quests") == 2

    def test_yaml_files_are_deep_merged(self, config_manager, tmp_path):
        (tmp_path / "a.yaml").write_text("quests:\n  daily:\n    max_worlds: 1\n")
        (tmp_path / "b.yaml").write_text("quests:\n  weekly:\n    max_quests: 4\n")

        config_manager.initialize(tmp_path, force=True)

        assert config_manager.get("quests.daily.max_worlds") == 1
        assert config_manager.get("quests.weekly.max_quests") == 4

    def test_invalid_yaml_raises(self, config_manager, tmp_path):
        (tmp_path / "broken.yaml").write_text("quests: [unclosed\n")

        with pytest.raises(ConfigManagerError):
            config_manager.initialize(tmp_path, force=True)
