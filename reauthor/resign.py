# reauthor/resign.py
"""
Topological re-signing of history.

Responsibilities:
- Walk commits parent-first from a base (or the roots) up to a revision
- Recreate each commit with `git commit-tree -S`, same tree, message and
  identities, parents redirected through the translation table
- Point a branch at the rewritten head, once, after every commit succeeded

This module does NOT:
- change identities (see reauthor.stream)
- verify signatures
- move any ref other than the target branch
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple
import os

from reauthor.config import DEFAULT_BRANCH, DEFAULT_REVISION
from reauthor.identity import IdentityLine, split_timestamp
from reauthor.repo import (
    CommitRecord,
    GitRepositoryError,
    list_commits_topo,
    read_commit,
    run_git,
    update_ref,
)


MODE_ALL = "all"
MODE_MATCHING = "matching"


class ResignError(RuntimeError):
    def __init__(self, message: str, oid: Optional[str] = None) -> None:
        self.oid = oid
        super().__init__(f"commit {oid}: {message}" if oid else message)


@dataclass(frozen=True)
class ResignPlan:
    repo_path: Path
    branch: str = DEFAULT_BRANCH
    revision: str = DEFAULT_REVISION
    base: Optional[str] = None
    mode: str = MODE_ALL
    match_email: Optional[str] = None
    key: Optional[str] = None


@dataclass(frozen=True)
class ResignResult:
    branch: str
    head: str
    translation: Mapping[str, str]
    signed: int
    total: int


def remap_parents(parents: Tuple[str, ...], table: Mapping[str, str]) -> List[str]:
    # Parents outside the walked range keep their original id.
    return [table.get(p, p) for p in parents]


def _identity_env(role: str, ident: IdentityLine) -> Dict[str, str]:
    epoch, tz = split_timestamp(ident.suffix)
    return {
        f"GIT_{role}_NAME": os.fsdecode(ident.name),
        f"GIT_{role}_EMAIL": os.fsdecode(ident.email),
        f"GIT_{role}_DATE": f"@{epoch} {tz}",
    }


def resign_commit(
    repo_path: Path,
    record: CommitRecord,
    table: Mapping[str, str],
    *,
    sign: bool = True,
    key: Optional[str] = None,
) -> str:
    """
    Recreate one commit and return the new object id.

    table is the translation built by every earlier step of the walk.
    """
    args: List[str] = []
    if record.encoding:
        args += ["-c", f"i18n.commitEncoding={record.encoding}"]

    args.append("commit-tree")
    if sign:
        args.append(f"-S{key}" if key else "-S")
    args.append(record.tree)
    for parent in remap_parents(record.parents, table):
        args += ["-p", parent]

    try:
        env = dict(os.environ)
        env.update(_identity_env("AUTHOR", record.author))
        env.update(_identity_env("COMMITTER", record.committer))
    except ValueError as e:
        raise ResignError(str(e), record.oid) from e

    try:
        out = run_git(repo_path, args, input=record.message, env=env)
    except GitRepositoryError as e:
        action = "sign" if sign else "recreate"
        raise ResignError(f"failed to {action}: {e}", record.oid) from e

    new_oid = out.decode("ascii", "replace").strip()
    if not new_oid:
        raise ResignError("git commit-tree returned no object id", record.oid)
    return new_oid


def _wants_signature(plan: ResignPlan, record: CommitRecord) -> bool:
    if plan.mode == MODE_ALL:
        return True
    return plan.match_email is not None and record.author.email == plan.match_email.encode("utf-8")


def resign_history(plan: ResignPlan) -> ResignResult:
    """
    Re-sign every commit reachable from plan.revision and move plan.branch.

    Any failure aborts before the branch is touched.
    """
    try:
        commits = list_commits_topo(plan.repo_path, plan.revision, plan.base)
    except GitRepositoryError as e:
        raise ResignError(f"Failed to list commits: {e}") from e

    if not commits:
        raise ResignError(f"No commits reachable from {plan.revision}")

    walked = frozenset(commits)
    table: Dict[str, str] = {}
    view = MappingProxyType(table)
    signed = 0

    for i, oid in enumerate(commits, start=1):
        try:
            record = read_commit(plan.repo_path, oid)
        except GitRepositoryError as e:
            raise ResignError(str(e), oid) from e

        pending = [p for p in record.parents if p in walked and p not in table]
        if pending:
            raise ResignError(f"parent {pending[0]} was not rewritten before its child", oid)

        if _wants_signature(plan, record):
            print(f"Re-signing commit {i}/{len(commits)}: {oid}")
            table[oid] = resign_commit(plan.repo_path, record, view, sign=True, key=plan.key)
            signed += 1
        elif any(table.get(p, p) != p for p in record.parents):
            print(f"Rewriting parents of commit {i}/{len(commits)}: {oid}")
            table[oid] = resign_commit(plan.repo_path, record, view, sign=False)
        else:
            table[oid] = oid

    head = table[commits[-1]]

    print(f"Resetting branch {plan.branch} to new head {head}")
    try:
        update_ref(plan.repo_path, plan.branch, head)
    except GitRepositoryError as e:
        raise ResignError(f"Failed to update refs/heads/{plan.branch}: {e}") from e

    return ResignResult(
        branch=plan.branch,
        head=head,
        translation=view,
        signed=signed,
        total=len(commits),
    )
