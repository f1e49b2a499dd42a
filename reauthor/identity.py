# reauthor/identity.py
"""
Identity rewriting helpers shared by the stream rewriter and the re-signer.

Identity lines follow the grammar

    <role> <name> <<email>> <epoch> <tz>

The email is taken between the first "<" and the last ">", so names may hold
any text that is free of angle brackets. Everything after the closing ">" is
the suffix and is never modified.

All functions work on bytes: git does not guarantee any encoding for names or
messages and the rewrite must not alter bytes it does not act on.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple


_SIGNOFF_PREFIX = b"signed-off-by:"


@dataclass(frozen=True)
class IdentityMapping:
    old_name: str
    old_email: str
    new_name: str
    new_email: str

    @property
    def old_email_bytes(self) -> bytes:
        return self.old_email.encode("utf-8")

    @property
    def new_ident_bytes(self) -> bytes:
        """`New Name <new@example.com>` as it appears in headers and trailers."""
        return f"{self.new_name} <{self.new_email}>".encode("utf-8")

    def matches(self, email: bytes) -> bool:
        # exact, case-sensitive comparison on the bracketed address
        return email == self.old_email_bytes


@dataclass(frozen=True)
class IdentityLine:
    role: bytes
    name: bytes
    email: bytes
    suffix: bytes


def parse_identity_line(line: bytes) -> Optional[IdentityLine]:
    space = line.find(b" ")
    if space <= 0:
        return None

    lt = line.find(b"<", space)
    gt = line.rfind(b">")
    if lt == -1 or gt < lt:
        return None

    return IdentityLine(
        role=line[:space],
        name=line[space + 1 : lt].strip(),
        email=line[lt + 1 : gt],
        suffix=line[gt + 1 :],
    )


def rewrite_identity_line(line: bytes, mapping: IdentityMapping) -> bytes:
    """
    Replace name and email of an author/committer/tagger line.

    Lines whose email is not the old email, and lines that do not parse,
    are returned unchanged.
    """
    parsed = parse_identity_line(line)
    if parsed is None or not mapping.matches(parsed.email):
        return line

    return parsed.role + b" " + mapping.new_ident_bytes + parsed.suffix


def rewrite_signoffs(message: bytes, mapping: IdentityMapping) -> bytes:
    """
    Rewrite `Signed-off-by:` trailers that carry the old email.

    Only matching trailer lines change. Line order, blank lines, CRLF endings
    and the presence of a final newline are kept.
    """
    needle = b"<" + mapping.old_email_bytes + b">"
    replacement = b"Signed-off-by: " + mapping.new_ident_bytes

    lines = message.split(b"\n")
    for i, line in enumerate(lines):
        if not line.lower().startswith(_SIGNOFF_PREFIX) or needle not in line:
            continue
        lines[i] = replacement + (b"\r" if line.endswith(b"\r") else b"")

    return b"\n".join(lines)


def split_timestamp(suffix: bytes) -> Tuple[str, str]:
    """
    Split an identity suffix such as b" 1700000000 +0000" into epoch and tz.

    Raises ValueError when the suffix is not `<epoch> <tz>`.
    """
    parts = suffix.split()
    if len(parts) != 2:
        raise ValueError(f"Malformed identity timestamp: {suffix!r}")

    epoch, tz = parts
    if not epoch.isdigit() or len(tz) != 5 or tz[:1] not in (b"+", b"-") or not tz[1:].isdigit():
        raise ValueError(f"Malformed identity timestamp: {suffix!r}")

    return epoch.decode("ascii"), tz.decode("ascii")
