from pathlib import Path

import pytest

from reauthor.config import (
    Config,
    ConfigError,
    IdentityConfig,
    ResignConfig,
    apply_overrides,
    load_config,
)
from reauthor.validation import ValidationError, validate_config


SCHEMA = Path(__file__).resolve().parents[1] / "reauthor" / "schema.json"

FULL_IDENTITY = IdentityConfig(
    old_name="Old Name",
    old_email="old@example.com",
    new_name="New Name",
    new_email="new@example.com",
)


def write_policy(tmp_path, text: str) -> Path:
    path = tmp_path / "policy.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_config(tmp_path):
    path = write_policy(
        tmp_path,
        """
identity:
  old_name: Old Name
  old_email: old@example.com
  new_name: New Name
  new_email: new@example.com
resign:
  enabled: true
  branch: signed/main
  mode: matching
  key: ABCDEF12
""",
    )

    cfg = load_config(path, SCHEMA)

    assert cfg.identity == FULL_IDENTITY
    assert cfg.resign == ResignConfig(
        enabled=True,
        branch="signed/main",
        mode="matching",
        revision="HEAD",
        base=None,
        key="ABCDEF12",
    )


def test_load_config_defaults(tmp_path):
    cfg = load_config(write_policy(tmp_path, "resign:\n  enabled: true\n"), SCHEMA)

    assert cfg.identity == IdentityConfig()
    assert cfg.resign.branch == "resigned"
    assert cfg.resign.mode == "all"


@pytest.mark.parametrize(
    "text",
    [
        "resign:\n  mode: sometimes\n",
        "identity:\n  old_mail: typo@example.com\n",
        "unknown: 1\n",
        "identity:\n  new_name: ''\n",
    ],
)
def test_schema_rejects(tmp_path, text):
    with pytest.raises(ConfigError, match="Invalid configuration"):
        load_config(write_policy(tmp_path, text), SCHEMA)


def test_empty_config(tmp_path):
    with pytest.raises(ConfigError, match="empty"):
        load_config(write_policy(tmp_path, ""), SCHEMA)


def test_missing_schema(tmp_path):
    path = write_policy(tmp_path, "resign:\n  enabled: true\n")

    with pytest.raises(ConfigError, match="schema"):
        load_config(path, tmp_path / "missing.json")


def test_overrides_replace_only_given_values():
    cfg = Config(identity=FULL_IDENTITY, resign=ResignConfig(branch="from-file"))

    merged = apply_overrides(
        cfg,
        identity={"new_email": "other@example.com", "old_email": None},
        resign={"enabled": True, "branch": None},
    )

    assert merged.identity.new_email == "other@example.com"
    assert merged.identity.old_email == "old@example.com"
    assert merged.resign.enabled is True
    assert merged.resign.branch == "from-file"


def test_validate_builds_mapping():
    validated = validate_config(Config(identity=FULL_IDENTITY))

    assert validated.rewrite_enabled
    assert validated.mapping.old_email == "old@example.com"
    assert validated.mapping.new_name == "New Name"


def test_validate_partial_identity():
    cfg = Config(identity=IdentityConfig(old_email="old@example.com", new_email="new@example.com"))

    with pytest.raises(ValidationError) as excinfo:
        validate_config(cfg)

    assert excinfo.value.path == "identity.old_name"


def test_validate_nothing_to_do():
    with pytest.raises(ValidationError, match="nothing to do"):
        validate_config(Config())


def test_validate_resign_only():
    validated = validate_config(Config(resign=ResignConfig(enabled=True)))

    assert validated.mapping is None
    assert validated.resign.enabled


def test_validate_matching_needs_identity():
    with pytest.raises(ValidationError) as excinfo:
        validate_config(Config(resign=ResignConfig(enabled=True, mode="matching")))

    assert excinfo.value.path == "resign.mode"


@pytest.mark.parametrize("email", ["old@example.com>", "a<b@example.com", "x@example.com\n"])
def test_validate_rejects_brackets_in_identity(email):
    identity = IdentityConfig(
        old_name="Old Name",
        old_email="old@example.com",
        new_name="New Name",
        new_email=email,
    )

    with pytest.raises(ValidationError) as excinfo:
        validate_config(Config(identity=identity))

    assert excinfo.value.path == "identity.new_email"


@pytest.mark.parametrize("branch", ["-x", "a..b", "has space", "ends/", "x.lock", "a@{1}", "a~1"])
def test_validate_rejects_bad_branch(branch):
    with pytest.raises(ValidationError) as excinfo:
        validate_config(Config(resign=ResignConfig(enabled=True, branch=branch)))

    assert excinfo.value.path == "resign.branch"


def test_validate_rejects_option_like_revision():
    with pytest.raises(ValidationError) as excinfo:
        validate_config(Config(resign=ResignConfig(enabled=True, base="--all")))

    assert excinfo.value.path == "resign.base"
