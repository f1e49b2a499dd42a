# reauthor/config.py
"""
Configuration loading and validation.

Responsibilities:
- Load the YAML rewrite policy
- Validate it against JSON Schema
- Merge command line overrides
- Expose a normalised config object

This module does NOT:
- interact with git
- check cross-field rules (see reauthor.validation)
- perform rewrites
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import json
import yaml
from jsonschema import Draft202012Validator


class ConfigError(RuntimeError):
    pass


DEFAULT_BRANCH = "resigned"
DEFAULT_REVISION = "HEAD"
DEFAULT_MODE = "all"


@dataclass(frozen=True)
class IdentityConfig:
    old_name: Optional[str] = None
    old_email: Optional[str] = None
    new_name: Optional[str] = None
    new_email: Optional[str] = None


@dataclass(frozen=True)
class ResignConfig:
    enabled: bool = False
    branch: str = DEFAULT_BRANCH
    mode: str = DEFAULT_MODE  # all | matching
    revision: str = DEFAULT_REVISION
    base: Optional[str] = None
    key: Optional[str] = None


@dataclass(frozen=True)
class Config:
    identity: IdentityConfig = field(default_factory=IdentityConfig)
    resign: ResignConfig = field(default_factory=ResignConfig)


def _load_schema(schema_path: Path) -> Dict[str, Any]:
    """
    Load JSON Schema from a schema.json file.
    """
    try:
        raw = schema_path.read_text(encoding="utf-8")
    except Exception as e:
        raise ConfigError(f"Failed to read schema file: {schema_path}") from e

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Schema is not valid JSON: {schema_path}") from e

    if not isinstance(parsed, dict):
        raise ConfigError(f"Schema must be a JSON object: {schema_path}")

    return parsed


def _load_yaml(config_path: Path) -> Dict[str, Any]:
    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except Exception as e:
        raise ConfigError(f"Failed to load config: {config_path}") from e

    if raw is None:
        raise ConfigError(f"Config is empty: {config_path}")

    if not isinstance(raw, dict):
        raise ConfigError(f"Config must be a mapping at top level: {config_path}")

    return raw


def check_schema(raw_config: Mapping[str, Any], schema: Mapping[str, Any]) -> None:
    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(raw_config), key=lambda e: list(e.path))

    if errors:
        messages = []
        for err in errors:
            path = ".".join(str(p) for p in err.path)
            prefix = path if path else "<root>"
            messages.append(f"{prefix}: {err.message}")
        raise ConfigError("Invalid configuration:\n" + "\n".join(messages))


def config_from_mapping(raw_config: Mapping[str, Any]) -> Config:
    identity_raw = raw_config.get("identity") or {}
    resign_raw = raw_config.get("resign") or {}

    identity_cfg = IdentityConfig(
        old_name=identity_raw.get("old_name"),
        old_email=identity_raw.get("old_email"),
        new_name=identity_raw.get("new_name"),
        new_email=identity_raw.get("new_email"),
    )

    resign_cfg = ResignConfig(
        enabled=bool(resign_raw.get("enabled", False)),
        branch=str(resign_raw.get("branch", DEFAULT_BRANCH)),
        mode=str(resign_raw.get("mode", DEFAULT_MODE)),
        revision=str(resign_raw.get("revision", DEFAULT_REVISION)),
        base=resign_raw.get("base"),
        key=resign_raw.get("key"),
    )

    return Config(identity=identity_cfg, resign=resign_cfg)


def load_config(config_path: Path, schema_path: Path) -> Config:
    """
    Load and validate configuration.

    Raises ConfigError on validation failure.
    """
    raw_config = _load_yaml(config_path)
    schema = _load_schema(schema_path)
    check_schema(raw_config, schema)
    return config_from_mapping(raw_config)


def apply_overrides(
    cfg: Config,
    *,
    identity: Mapping[str, Optional[str]],
    resign: Mapping[str, Any],
) -> Config:
    """
    Return a copy of cfg where every non-None override replaces the file value.
    """
    identity_changes = {k: v for k, v in identity.items() if v is not None}
    resign_changes = {k: v for k, v in resign.items() if v is not None}

    try:
        return Config(
            identity=replace(cfg.identity, **identity_changes),
            resign=replace(cfg.resign, **resign_changes),
        )
    except TypeError as e:
        raise ConfigError(f"Unknown configuration override: {e}") from e
