# reauthor/dryrun.py
"""
Dry run reporting.

Responsibilities:
- Build a report of the commits an identity rewrite would touch
- Render a deterministic, human readable output

This module does NOT:
- call git
- rewrite history
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from reauthor.identity import IdentityMapping
from reauthor.repo import Commit


@dataclass(frozen=True)
class DryRunEntry:
    index: int
    hash_prefix: str
    author_email: str
    committer_email: str
    subject: str
    changed: bool


def build_entries(
    commits: Sequence[Commit],
    mapping: IdentityMapping,
    *,
    hash_len: int = 12,
) -> List[DryRunEntry]:
    """
    Build per commit dry run entries.

    Raises:
        ValueError: if hash_len is invalid.
    """
    if hash_len <= 0:
        raise ValueError("hash_len must be a positive integer")

    entries: List[DryRunEntry] = []

    for c in commits:
        changed = mapping.old_email in (c.author_email, c.committer_email)

        entries.append(
            DryRunEntry(
                index=c.index,
                hash_prefix=c.hash[:hash_len],
                author_email=c.author_email,
                committer_email=c.committer_email,
                subject=c.subject,
                changed=changed,
            )
        )

    entries.sort(key=lambda e: e.index)
    return entries


def render_dryrun_report(
    *,
    total_commits: int,
    mapping: IdentityMapping,
    entries: Sequence[DryRunEntry],
    hash_len: int,
) -> str:
    """
    Render a dry run report as plain text.
    """
    lines: List[str] = []

    changed = [e for e in entries if e.changed]

    lines.append(f"Total commits: {total_commits}")
    lines.append(f"Old identity: {mapping.old_name} <{mapping.old_email}>")
    lines.append(f"New identity: {mapping.new_name} <{mapping.new_email}>")
    lines.append(f"Commits to rewrite: {len(changed)}")

    if not entries:
        return "\n".join(lines)

    lines.append("")
    lines.append(f"Hash shown as {hash_len} character prefix")
    lines.append("")

    headers = [
        "idx",
        "hash",
        "author_email",
        "committer_email",
        "rewrite",
        "subject",
    ]

    rows: List[List[str]] = []
    for e in sorted(entries, key=lambda x: x.index):
        rows.append(
            [
                str(e.index),
                e.hash_prefix,
                e.author_email,
                e.committer_email,
                "yes" if e.changed else "no",
                e.subject,
            ]
        )

    lines.extend(_format_table(headers, rows))
    return "\n".join(lines)


def _format_table(headers: List[str], rows: List[List[str]]) -> List[str]:
    widths = [len(h) for h in headers]

    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    def fmt_row(items: List[str]) -> str:
        return "  ".join(items[i].ljust(widths[i]) for i in range(len(items))).rstrip()

    lines: List[str] = []
    lines.append(fmt_row(headers))
    lines.append(fmt_row(["-" * w for w in widths]))

    for row in rows:
        lines.append(fmt_row(row))

    return lines
