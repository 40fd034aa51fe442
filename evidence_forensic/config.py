"""
Configuration for the evidence forensic toolkit.

Settings are read from an optional YAML or JSON file and then overridden by
environment variables. Every path the toolkit writes to (ledger, mesh
packets, sealed documents, audit logs) is derived from ``data_dir``.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from evidence_forensic import __version__
from evidence_forensic.utils.exceptions import ConfigError

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class SMTPConfig(BaseModel):
    """Outgoing mail settings for transporting signed packets."""

    host: Optional[str] = None
    port: int = Field(default=587, ge=1, le=65535)
    username: Optional[str] = None
    password: Optional[str] = None
    sender: Optional[str] = None
    recipient: Optional[str] = None
    use_starttls: bool = True
    timeout: float = Field(default=30.0, gt=0)

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.sender and self.recipient)


class ForensicConfig(BaseModel):
    """Top-level toolkit configuration."""

    data_dir: Path = Field(default_factory=lambda: Path.home() / ".evidence_forensic")
    ledger_filename: str = "recovery_ledger.jsonl"
    rules_path: Optional[Path] = Field(
        None, description="External rule document; bundled rules are used when unset"
    )
    app_version: str = f"v{__version__}"
    template_version: str = "1.0"
    mesh_schema: str = "evidence.mesh.v1"
    default_jurisdiction: str = "UNKNOWN"
    log_level: str = "INFO"
    smtp: SMTPConfig = Field(default_factory=SMTPConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level

    @field_validator("ledger_filename")
    @classmethod
    def validate_ledger_filename(cls, v: str) -> str:
        if not v or Path(v).name != v:
            raise ValueError("ledger_filename must be a bare file name")
        return v

    @property
    def ledger_path(self) -> Path:
        return self.data_dir / self.ledger_filename

    @property
    def mesh_dir(self) -> Path:
        return self.data_dir / "mesh"

    @property
    def sealed_dir(self) -> Path:
        return self.data_dir / "sealed"

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"

    @property
    def directive_state_path(self) -> Path:
        return self.data_dir / "directives.json"

    def ensure_directories(self) -> None:
        """Create the data directory tree."""
        for directory in (self.data_dir, self.mesh_dir, self.sealed_dir, self.log_dir):
            directory.mkdir(parents=True, exist_ok=True)


# Environment variable -> (section, key); section None means top level
ENV_OVERRIDES: Dict[str, tuple] = {
    "EVIDENCE_FORENSIC_DATA_DIR": (None, "data_dir"),
    "EVIDENCE_FORENSIC_RULES_PATH": (None, "rules_path"),
    "EVIDENCE_FORENSIC_LOG_LEVEL": (None, "log_level"),
    "EVIDENCE_FORENSIC_JURISDICTION": (None, "default_jurisdiction"),
    "EVIDENCE_FORENSIC_SMTP_HOST": ("smtp", "host"),
    "EVIDENCE_FORENSIC_SMTP_PORT": ("smtp", "port"),
    "EVIDENCE_FORENSIC_SMTP_USERNAME": ("smtp", "username"),
    "EVIDENCE_FORENSIC_SMTP_PASSWORD": ("smtp", "password"),
    "EVIDENCE_FORENSIC_SMTP_SENDER": ("smtp", "sender"),
    "EVIDENCE_FORENSIC_SMTP_RECIPIENT": ("smtp", "recipient"),
}


def _read_config_file(config_path: Path) -> Dict[str, Any]:
    """Parse a YAML or JSON configuration file into a dict."""
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read configuration file: {e}", str(config_path))

    try:
        if config_path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Invalid configuration file: {e}", str(config_path))

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping", str(config_path))
    return data


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    for env_var, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value is None or value == "":
            continue
        if section is None:
            data[key] = value
        else:
            target = data.setdefault(section, {})
            if not isinstance(target, dict):
                target = {}
                data[section] = target
            target[key] = value
        logger.debug(f"Config override from {env_var}")
    return data


def load_config(config_path: Optional[Union[str, Path]] = None) -> ForensicConfig:
    """
    Load configuration from a file and the environment.

    Args:
        config_path: Optional YAML or JSON file. Missing keys use defaults.

    Returns:
        Validated ForensicConfig

    Raises:
        ConfigError: If the file cannot be read, parsed or validated
    """
    data: Dict[str, Any] = {}
    source = None

    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise ConfigError("Configuration file not found", str(path))
        data = _read_config_file(path)
        source = str(path)

    data = _apply_env_overrides(data)

    try:
        config = ForensicConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}", source)

    logger.debug(f"Configuration loaded (data_dir={config.data_dir})")
    return config
