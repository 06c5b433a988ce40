"""
Tests for Orchestrator Configuration and the Module Config File.
"""

import os

import pytest

from hostcore.exceptions import ConfigurationError
from modhost.config import OrchestratorConfig, load_module_config


ENV_VARS = (
    "MODHOST_START_TIMEOUT_SECONDS",
    "MODHOST_STOP_TIMEOUT_SECONDS",
    "MODHOST_CLEANUP_ON_FAILURE",
    "MODHOST_LOG_LEVEL",
    "MODHOST_LOG_FORMAT",
    "MODHOST_PLUGIN_DIRS",
    "MODHOST_MODULE_CONFIG",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        # setenv first so teardown also removes values loaded from .env
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    # keep load_dotenv() from picking up a developer's .env
    monkeypatch.chdir(tmp_path)
    return monkeypatch


class TestOrchestratorConfig:

    def test_defaults(self, clean_env):
        config = OrchestratorConfig.from_env()
        assert config.start_timeout_seconds is None
        assert config.stop_timeout_seconds is None
        assert config.cleanup_on_failure is True
        assert config.log_level == "INFO"
        assert config.log_format == "json"
        assert config.plugin_dirs == []
        assert config.module_config_path is None
        assert config.validate() == []

    def test_from_env(self, clean_env):
        clean_env.setenv("MODHOST_START_TIMEOUT_SECONDS", "2.5")
        clean_env.setenv("MODHOST_STOP_TIMEOUT_SECONDS", "10")
        clean_env.setenv("MODHOST_CLEANUP_ON_FAILURE", "false")
        clean_env.setenv("MODHOST_LOG_LEVEL", "DEBUG")
        clean_env.setenv("MODHOST_LOG_FORMAT", "text")
        clean_env.setenv("MODHOST_PLUGIN_DIRS", os.pathsep.join(["plugins", "extra"]))
        clean_env.setenv("MODHOST_MODULE_CONFIG", "modules.yaml")

        config = OrchestratorConfig.from_env()
        assert config.start_timeout_seconds == 2.5
        assert config.stop_timeout_seconds == 10.0
        assert config.cleanup_on_failure is False
        assert config.log_level == "DEBUG"
        assert config.log_format == "text"
        assert config.plugin_dirs == ["plugins", "extra"]
        assert config.module_config_path == "modules.yaml"

    def test_from_dotenv_file(self, clean_env, tmp_path):
        (tmp_path / ".env").write_text("MODHOST_LOG_LEVEL=WARNING\n")
        config = OrchestratorConfig.from_env()
        assert config.log_level == "WARNING"

    def test_invalid_timeout_in_env(self, clean_env):
        clean_env.setenv("MODHOST_START_TIMEOUT_SECONDS", "soon")
        with pytest.raises(ConfigurationError) as exc_info:
            OrchestratorConfig.from_env()
        assert exc_info.value.context["config_key"] == "MODHOST_START_TIMEOUT_SECONDS"

    def test_validate(self):
        config = OrchestratorConfig(
            start_timeout_seconds=0,
            log_level="LOUD",
            log_format="xml",
            correlation_id_prefix="",
        )
        errors = config.validate()
        assert len(errors) == 4
        assert "start_timeout_seconds must be positive" in errors


class TestLoadModuleConfig:

    def test_loads_sections(self, tmp_path):
        path = tmp_path / "modules.yaml"
        path.write_text(
            "db:\n"
            "  url: postgres://localhost/app\n"
            "  pool_size: 10\n"
            "api:\n"
            "  port: 8080\n"
            "log:\n"
        )
        config = load_module_config(path)
        assert config == {
            "db": {"url": "postgres://localhost/app", "pool_size": 10},
            "api": {"port": 8080},
            "log": {},
        }

    def test_empty_document(self, tmp_path):
        path = tmp_path / "modules.yaml"
        path.write_text("")
        assert load_module_config(path) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_module_config(tmp_path / "absent.yaml")

    @pytest.mark.parametrize(
        "content",
        [
            "- db\n- api\n",
            "db: 5\n",
            "db: [unclosed\n",
        ],
    )
    def test_malformed(self, tmp_path, content):
        path = tmp_path / "modules.yaml"
        path.write_text(content)
        with pytest.raises(ConfigurationError):
            load_module_config(str(path))

    def test_undecodable_file(self, tmp_path):
        path = tmp_path / "modules.yaml"
        path.write_bytes(b"db:\n  url: \xff\xfe\xfa\n")
        with pytest.raises(ConfigurationError) as exc_info:
            load_module_config(path)
        assert "could not be read" in exc_info.value.message
        assert isinstance(exc_info.value.cause, UnicodeDecodeError)

    def test_unreadable_file(self, tmp_path, monkeypatch):
        path = tmp_path / "modules.yaml"
        path.write_text("db: {}\n")

        def denied(*args, **kwargs):
            raise PermissionError("permission denied")

        monkeypatch.setattr("modhost.config.open", denied, raising=False)
        with pytest.raises(ConfigurationError) as exc_info:
            load_module_config(path)
        assert isinstance(exc_info.value.cause, PermissionError)
