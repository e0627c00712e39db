"""
Tests for YAML configuration loading and logging setup.
"""

import json
import logging

import pytest

import quorate.engine.config as engine_config
from quorate.engine import EngineConfig, ValidationError, load_config
from quorate.logging_utils import JsonFormatter, setup_logging


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    monkeypatch.delenv(engine_config.CONFIG_ENV_VAR, raising=False)
    monkeypatch.delenv(engine_config.LOG_LEVEL_ENV_VAR, raising=False)
    # Never pick up a config.yaml lying around in the checkout.
    monkeypatch.setattr(engine_config, "_default_config_path", lambda: tmp_path / "absent.yaml")


def _write(tmp_path, text: str):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


# ===========================================================================
# Loading
# ===========================================================================


class TestLoadConfig:

    def test_defaults_without_file(self):
        config = load_config()
        assert config == EngineConfig()
        assert config.default_cluster_type == "cassandra"
        assert config.max_members_per_cluster == 100
        assert config.witness_electable is False

    def test_reads_sections(self, tmp_path):
        path = _write(
            tmp_path,
            "engine:\n"
            "  max_members_per_cluster: 9\n"
            "  witness_electable: true\n"
            "  address_prefix: '10.1.0.'\n"
            "logging:\n"
            "  level: DEBUG\n"
            "  json: true\n",
        )
        config = load_config(str(path))

        assert config.max_members_per_cluster == 9
        assert config.witness_electable is True
        assert config.address_prefix == "10.1.0."
        assert config.log_level == "DEBUG"
        assert config.json_logs is True
        assert config.base_port == 7000

    def test_empty_file_gives_defaults(self, tmp_path):
        assert load_config(str(_write(tmp_path, ""))) == EngineConfig()

    def test_env_var_names_file(self, tmp_path, monkeypatch):
        path = _write(tmp_path, "engine:\n  cluster_id_prefix: lab\n")
        monkeypatch.setenv(engine_config.CONFIG_ENV_VAR, str(path))
        assert load_config().cluster_id_prefix == "lab"

    def test_argument_beats_env_var(self, tmp_path, monkeypatch):
        path = _write(tmp_path, "engine:\n  cluster_id_prefix: arg\n")
        monkeypatch.setenv(engine_config.CONFIG_ENV_VAR, str(tmp_path / "other.yaml"))
        assert load_config(str(path)).cluster_id_prefix == "arg"

    def test_log_level_env_override(self, tmp_path, monkeypatch):
        path = _write(tmp_path, "logging:\n  level: INFO\n")
        monkeypatch.setenv(engine_config.LOG_LEVEL_ENV_VAR, "warning")
        assert load_config(str(path)).log_level == "WARNING"

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_missing_env_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv(engine_config.CONFIG_ENV_VAR, str(tmp_path / "nope.yaml"))
        with pytest.raises(FileNotFoundError):
            load_config()

    @pytest.mark.parametrize(
        "text",
        [
            "engine:\n  max_nodes: 3\n",
            "logging:\n  colour: true\n",
            "storage:\n  size: 1\n",
            "engine:\n  log_level: DEBUG\n",
        ],
    )
    def test_unknown_keys_are_rejected(self, tmp_path, text):
        with pytest.raises(ValidationError, match="Unknown"):
            load_config(str(_write(tmp_path, text)))

    def test_out_of_range_values_are_rejected(self, tmp_path):
        with pytest.raises(ValidationError):
            load_config(str(_write(tmp_path, "engine:\n  max_members_per_cluster: 0\n")))

    def test_non_mapping_document(self, tmp_path):
        with pytest.raises(ValidationError, match="mapping"):
            load_config(str(_write(tmp_path, "- just\n- a list\n")))


# ===========================================================================
# Logging
# ===========================================================================


class TestLogging:

    def test_json_formatter_fields(self):
        record = logging.LogRecord("quorate.test", logging.WARNING, __file__, 1, "lost %s", ("quorum",), None)
        payload = json.loads(JsonFormatter().format(record))

        assert payload["level"] == "WARNING"
        assert payload["message"] == "lost quorum"
        assert payload["logger"] == "quorate.test"
        assert "timestamp" in payload

    def test_unknown_level(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            setup_logging("LOUD")

    def test_log_file_is_written(self, tmp_path):
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        log_file = tmp_path / "logs" / "quorate.log"
        try:
            setup_logging("INFO", str(log_file), json_format=True)
            logging.getLogger("quorate.test").info("cluster created")
            for handler in root.handlers:
                handler.flush()
        finally:
            for handler in list(root.handlers):
                root.removeHandler(handler)
                if handler not in saved_handlers:
                    handler.close()
            for handler in saved_handlers:
                root.addHandler(handler)
            root.setLevel(saved_level)

        lines = log_file.read_text(encoding="utf-8").splitlines()
        assert json.loads(lines[-1])["message"] == "cluster created"
