"""
Engine configuration.

Settings come from ``config.yaml`` at the project root, or from the file
named by ``QUORATE_CONFIG``. Environment variables take precedence over
the file; anything missing from both keeps its default.

Example ``config.yaml``::

    engine:
      default_cluster_type: cassandra
      max_members_per_cluster: 100
      witness_electable: false
    logging:
      level: INFO
      file: logs/quorate.log
      json: false
"""

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from .errors import ValidationError

CONFIG_ENV_VAR = "QUORATE_CONFIG"
LOG_LEVEL_ENV_VAR = "QUORATE_LOG_LEVEL"

# Keys of the ``logging:`` section and the EngineConfig fields they set.
_LOGGING_KEYS = {"level": "log_level", "file": "log_file", "json": "json_logs"}


@dataclass(frozen=True)
class EngineConfig:
    """Settings for the coordinator and the entry points that build it.

    Attributes:
        default_cluster_type: Type tag used when a cluster is created without one.
        default_replication_factor: Replication factor used when none is given.
        max_members_per_cluster: Upper bound on the membership of one cluster.
        base_port: Member ports are ``base_port + slot``.
        address_prefix: Member hosts are ``address_prefix + (host_base + slot)``.
        host_base: Offset added to the slot for the last address octet.
        witness_electable: Whether witness members may become leader.
        cluster_id_prefix: Prefix of generated cluster IDs.
        store_dir: Directory for the JSON file store.
        log_level: Logging level name.
        log_file: Optional log file path.
        json_logs: Emit one JSON object per log line.
    """

    default_cluster_type: str = "cassandra"
    default_replication_factor: int = 3
    max_members_per_cluster: int = 100
    base_port: int = 7000
    address_prefix: str = "192.168.1."
    host_base: int = 100
    witness_electable: bool = False
    cluster_id_prefix: str = "cls"
    store_dir: str = "./data/clusters"
    log_level: str = "INFO"
    log_file: str | None = None
    json_logs: bool = False

    def __post_init__(self):
        if self.default_replication_factor < 1:
            raise ValidationError(
                f"default_replication_factor must be at least 1, got {self.default_replication_factor}"
            )
        if self.max_members_per_cluster < 1:
            raise ValidationError(
                f"max_members_per_cluster must be at least 1, got {self.max_members_per_cluster}"
            )
        if self.base_port < 0 or self.host_base < 0:
            raise ValidationError("base_port and host_base must not be negative")


def _default_config_path() -> Path:
    """Find config.yaml at the project root (parent of the quorate/ package)."""
    return Path(__file__).resolve().parent.parent.parent / "config.yaml"


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, dict):
        raise ValidationError(f"Config section '{name}' must be a mapping")
    return section


def config_from_dict(raw: dict[str, Any]) -> EngineConfig:
    """Build a config from the parsed YAML document.

    Raises:
        ValidationError: On unknown sections or keys.
    """
    unknown_sections = set(raw) - {"engine", "logging"}
    if unknown_sections:
        raise ValidationError(f"Unknown config sections: {sorted(unknown_sections)}")

    engine = _section(raw, "engine")
    logging_section = _section(raw, "logging")

    engine_keys = {f.name for f in fields(EngineConfig)} - set(_LOGGING_KEYS.values())
    unknown = set(engine) - engine_keys
    if unknown:
        raise ValidationError(f"Unknown engine config keys: {sorted(unknown)}")
    unknown = set(logging_section) - set(_LOGGING_KEYS)
    if unknown:
        raise ValidationError(f"Unknown logging config keys: {sorted(unknown)}")

    values = dict(engine)
    values.update({_LOGGING_KEYS[k]: v for k, v in logging_section.items()})
    return EngineConfig(**values)


def load_config(config_path: str | None = None) -> EngineConfig:
    """Load engine settings.

    Args:
        config_path: YAML file to read. Falls back to ``QUORATE_CONFIG``,
            then to ``config.yaml`` at the project root.

    Returns:
        The config, with ``QUORATE_LOG_LEVEL`` applied on top.

    Raises:
        FileNotFoundError: If an explicitly named file does not exist.
        ValidationError: On unknown keys or out-of-range values.
    """
    explicit = config_path or os.getenv(CONFIG_ENV_VAR)
    resolved_path = Path(explicit) if explicit else _default_config_path()

    if resolved_path.exists():
        with resolved_path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
        if not isinstance(raw, dict):
            raise ValidationError(f"Config file {resolved_path} must contain a mapping")
        config = config_from_dict(raw)
    elif explicit:
        raise FileNotFoundError(
            f"Missing quorate config at {resolved_path}. "
            f"Create it or unset {CONFIG_ENV_VAR}."
        )
    else:
        config = EngineConfig()

    env_level = os.getenv(LOG_LEVEL_ENV_VAR)
    if env_level:
        config = replace(config, log_level=env_level.upper())
    return config
