# reauthor/cleanup.py
"""Post-rewrite housekeeping: reflog expiry, garbage collection, advice."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from reauthor.repo import run_git


def expire_reflog(repo_path: Path) -> None:
    run_git(repo_path, ["reflog", "expire", "--expire=now", "--all"])


def collect_garbage(repo_path: Path) -> None:
    run_git(repo_path, ["gc", "--prune=now", "--aggressive"])


def render_followup(branch: Optional[str] = None, *, cleaned: bool = False) -> str:
    lines: List[str] = []

    if branch is not None:
        lines.append(f"All commits have been re-signed and written to branch '{branch}'.")
        lines.append("You can inspect it using:")
        lines.append(f"  git log --show-signature {branch}")

    if not cleaned:
        lines.append("Old objects are still in the repository. To drop them run:")
        lines.append("  git reflog expire --expire=now --all && git gc --prune=now --aggressive")

    lines.append("Then publish the rewritten history:")
    lines.append("  git push --force --tags origin 'refs/heads/*'")
    return "\n".join(lines)
