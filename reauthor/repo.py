# reauthor/repo.py
"""
Repository access through the git command line.

Reads commit envelopes and history listings from a target repository and
writes refs. Handles Git Bash <-> Windows path normalisation.

Only the commit header envelope is ever parsed. Trees and blobs stay opaque.
"""

from dataclasses import dataclass
from subprocess import run, PIPE, CalledProcessError
from typing import List, Mapping, Optional, Sequence, Tuple
from pathlib import Path
import os
import re

from reauthor.identity import IdentityLine, parse_identity_line


# Single source of truth for git field separation
_FIELD_SEP = "\x00"

_OID_RE = re.compile(rb"^(?:[0-9a-f]{40}|[0-9a-f]{64})$")


@dataclass(frozen=True)
class Commit:
    hash: str
    index: int

    subject: str = ""
    author_name: str = ""
    author_email: str = ""
    committer_name: str = ""
    committer_email: str = ""
    refs: str = ""


@dataclass(frozen=True)
class CommitRecord:
    """The envelope of one commit object, as stored."""

    oid: str
    tree: str
    parents: Tuple[str, ...]
    author: IdentityLine
    committer: IdentityLine
    message: bytes
    encoding: Optional[str] = None


class GitRepositoryError(RuntimeError):
    pass


def _normalise_repo_path(repo_path: Path) -> Path:
    """
    Convert Git Bash paths (/c/Users/...) to native Windows paths (C:\\Users\\...).
    No-op on non-Windows systems.
    """
    if os.name != "nt":
        return repo_path

    p = str(repo_path)

    if p.startswith("/") and len(p) >= 3 and p[2] == "/":
        drive = p[1]
        if drive.isalpha():
            return Path(f"{drive.upper()}:/{p[3:]}")

    return Path(p)


def git_command(repo_path: Path, args: Sequence[str]) -> List[str]:
    return ["git", "-C", str(_normalise_repo_path(repo_path))] + list(args)


def run_git(
    repo_path: Path,
    args: Sequence[str],
    *,
    input: Optional[bytes] = None,
    env: Optional[Mapping[str, str]] = None,
) -> bytes:
    """
    Run git and return raw stdout. Raises GitRepositoryError on failure.
    """
    try:
        result = run(
            git_command(repo_path, args),
            input=input,
            stdout=PIPE,
            stderr=PIPE,
            env=dict(env) if env is not None else None,
            check=True,
        )
    except CalledProcessError as e:
        stderr = (e.stderr or b"").decode("utf-8", "replace").strip()
        raise GitRepositoryError(stderr if stderr else "git command failed") from e
    except OSError as e:
        raise GitRepositoryError(f"Failed to start git: {e}") from e

    return result.stdout


def _run_git_command(repo_path: Path, args: List[str]) -> str:
    out = run_git(repo_path, args).decode("utf-8", "replace")
    # Do not strip spaces, only trailing newlines
    return out.rstrip("\n")


def ensure_git_repository(repo_path: Path) -> None:
    try:
        _run_git_command(repo_path, ["rev-parse", "--is-inside-work-tree"])
    except GitRepositoryError as e:
        raise GitRepositoryError(f"Not a git repository: {repo_path}") from e


def ensure_clean_worktree(repo_path: Path) -> None:
    if _run_git_command(repo_path, ["status", "--porcelain"]).strip():
        raise GitRepositoryError(
            "Working tree is not clean. Commit or stash changes, or pass --allow-dirty to override."
        )


def resolve_revision(repo_path: Path, revision: str) -> str:
    try:
        return _run_git_command(repo_path, ["rev-parse", "--verify", f"{revision}^{{commit}}"])
    except GitRepositoryError as e:
        raise GitRepositoryError(f"Unknown revision: {revision}") from e


def read_commit(repo_path: Path, oid: str) -> CommitRecord:
    """
    Read one commit with `git cat-file commit` and parse its header.

    Signature headers (gpgsig, mergetag) and their continuation lines are
    dropped. A parent line that is not an object id is an error, never
    silently treated as a root commit.
    """
    raw = run_git(repo_path, ["cat-file", "commit", oid])
    header, _sep, message = raw.partition(b"\n\n")

    tree: Optional[str] = None
    parents: List[str] = []
    author: Optional[IdentityLine] = None
    committer: Optional[IdentityLine] = None
    encoding: Optional[str] = None

    for line in header.split(b"\n"):
        if not line or line.startswith(b" "):
            continue

        key, _, value = line.partition(b" ")

        if key == b"tree":
            tree = value.decode("ascii")
        elif key == b"parent":
            if not _OID_RE.match(value):
                raise GitRepositoryError(f"Malformed parent {value!r} in commit {oid}")
            parents.append(value.decode("ascii"))
        elif key in (b"author", b"committer"):
            ident = parse_identity_line(line)
            if ident is None:
                raise GitRepositoryError(f"Malformed {key.decode()} line in commit {oid}")
            if key == b"author":
                author = ident
            else:
                committer = ident
        elif key == b"encoding":
            encoding = value.decode("ascii", "replace")

    if tree is None or author is None or committer is None:
        raise GitRepositoryError(f"Incomplete commit header in {oid}")

    return CommitRecord(
        oid=oid,
        tree=tree,
        parents=tuple(parents),
        author=author,
        committer=committer,
        message=message,
        encoding=encoding,
    )


def list_commits_topo(repo_path: Path, revision: str, base: Optional[str] = None) -> List[str]:
    """
    List commits reachable from revision, oldest first, parents before children.

    With base, only base and its descendants on the way to revision are
    listed. Side branches that fork before base are left out even when they
    are merged back after it.
    """
    tip = resolve_revision(repo_path, revision)

    if base is None:
        raw = _run_git_command(repo_path, ["rev-list", "--topo-order", "--reverse", tip])
        return raw.split() if raw else []

    base_oid = resolve_revision(repo_path, base)
    try:
        run_git(repo_path, ["merge-base", "--is-ancestor", base_oid, tip])
    except GitRepositoryError as e:
        raise GitRepositoryError(f"{base} is not an ancestor of {revision}") from e

    raw = _run_git_command(
        repo_path,
        ["rev-list", "--topo-order", "--reverse", "--ancestry-path", f"{base_oid}..{tip}"],
    )
    return [base_oid] + (raw.split() if raw else [])


def update_ref(repo_path: Path, branch: str, oid: str) -> None:
    run_git(repo_path, ["update-ref", f"refs/heads/{branch}", oid])


def load_commit_history(repo_path: Path) -> List[Commit]:
    """
    Load commits in deterministic oldest → newest order.

    Fields per commit:
    - hash
    - author/committer name + email
    - subject (first line of message)
    - refs (decorations from %D)
    """
    ensure_git_repository(repo_path)

    log_format = (
        "%H%x00"
        "%an%x00"
        "%ae%x00"
        "%cn%x00"
        "%ce%x00"
        "%s%x00"
        "%D"
    )

    raw_log = _run_git_command(
        repo_path,
        [
            "log",
            "--all",
            "--topo-order",
            "--reverse",
            f"--pretty=format:{log_format}",
        ],
    )

    commits: List[Commit] = []

    if not raw_log:
        return commits

    for idx, line in enumerate(raw_log.splitlines()):
        parts = line.split(_FIELD_SEP)

        if len(parts) != 7:
            raise GitRepositoryError(f"Malformed git log line: {line!r}")

        (
            commit_hash,
            author_name,
            author_email,
            committer_name,
            committer_email,
            subject,
            refs,
        ) = parts

        commits.append(
            Commit(
                hash=commit_hash,
                index=idx,
                subject=subject,
                author_name=author_name,
                author_email=author_email,
                committer_name=committer_name,
                committer_email=committer_email,
                refs=refs.strip(),
            )
        )

    return commits
