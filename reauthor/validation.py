# reauthor/validation.py
"""
Semantic validation for configuration.

Responsibilities:
- Validate cross-field constraints the JSON Schema cannot express
- Turn identity fields into an IdentityMapping
- Produce actionable errors with field path context

This module does NOT:
- load YAML files
- load JSON Schema files
- interact with git
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
import re

from reauthor.config import Config, IdentityConfig, ResignConfig
from reauthor.identity import IdentityMapping


class ValidationError(RuntimeError):
    """
    Raised when configuration is structurally valid but semantically invalid.

    Attributes:
        path: dotted path of the failing field, for example identity.new_email
    """

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(f"{path}: {message}")


_IDENTITY_FIELDS = ("old_name", "old_email", "new_name", "new_email")

_FORBIDDEN_IDENT_CHARS = set("<>\n\r\x00")

# Subset of git-check-ref-format(1).
_BAD_REF_RE = re.compile(r"(\.\.|@\{|//|[\x00-\x20\x7f~^:?*\[\\])")

_MODES = ("all", "matching")


@dataclass(frozen=True)
class ValidatedConfig:
    mapping: Optional[IdentityMapping]
    resign: ResignConfig

    @property
    def rewrite_enabled(self) -> bool:
        return self.mapping is not None


def validate_config(cfg: Config) -> ValidatedConfig:
    """
    Validate configuration into a form the pipeline and walker can trust.

    Enforces:
    - identity fields are given all together or not at all
    - at least one of identity rewrite or re-signing is requested
    - matching mode has an identity to match on
    """
    mapping = validate_identity(cfg.identity)
    resign = validate_resign(cfg.resign)

    if mapping is None and not resign.enabled:
        raise ValidationError(
            "<root>",
            "nothing to do, give an identity to rewrite or enable re-signing",
        )

    if resign.enabled and resign.mode == "matching" and mapping is None:
        raise ValidationError("resign.mode", "matching mode needs an identity to match on")

    return ValidatedConfig(mapping=mapping, resign=resign)


def validate_identity(identity: IdentityConfig) -> Optional[IdentityMapping]:
    values = {name: getattr(identity, name) for name in _IDENTITY_FIELDS}
    given = [name for name, value in values.items() if value is not None]

    if not given:
        return None

    missing = [name for name in _IDENTITY_FIELDS if name not in given]
    if missing:
        raise ValidationError(
            f"identity.{missing[0]}",
            "old_name, old_email, new_name and new_email must be given together",
        )

    for name, value in values.items():
        _check_ident_part(f"identity.{name}", value)

    return IdentityMapping(
        old_name=values["old_name"].strip(),
        old_email=values["old_email"].strip(),
        new_name=values["new_name"].strip(),
        new_email=values["new_email"].strip(),
    )


def validate_resign(resign: ResignConfig) -> ResignConfig:
    if resign.mode not in _MODES:
        raise ValidationError("resign.mode", f"unsupported mode: {resign.mode}")

    _check_branch("resign.branch", resign.branch)
    _check_revision("resign.revision", resign.revision)

    if resign.base is not None:
        _check_revision("resign.base", resign.base)

    if resign.key is not None:
        _check_revision("resign.key", resign.key)

    return resign


def _check_ident_part(path: str, value: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(path, "must be a non-empty string")

    bad = _FORBIDDEN_IDENT_CHARS.intersection(value)
    if bad:
        raise ValidationError(path, f"must not contain {''.join(sorted(bad))!r}")


def _check_branch(path: str, branch: str) -> None:
    if not branch:
        raise ValidationError(path, "branch must not be empty")

    if (
        branch.startswith(("-", "/", "."))
        or branch.endswith(("/", ".", ".lock"))
        or "/." in branch
        or branch == "@"
        or _BAD_REF_RE.search(branch)
    ):
        raise ValidationError(path, f"not a valid branch name: {branch!r}")


def _check_revision(path: str, value: str) -> None:
    if not value.strip():
        raise ValidationError(path, "must not be empty")

    # Keep values from being read as git options.
    if value.startswith("-"):
        raise ValidationError(path, f"must not start with '-': {value!r}")
