#!/usr/bin/env python3
"""git-reauthor CLI.

Rewrites an author identity across the whole history and, optionally,
re-signs the result onto a separate branch.
"""

from __future__ import annotations

import argparse
from pathlib import Path
import sys

from reauthor.cleanup import collect_garbage, expire_reflog, render_followup
from reauthor.config import Config, ConfigError, apply_overrides, load_config
from reauthor.dryrun import build_entries, render_dryrun_report
from reauthor.pipeline import PipelineError, run_rewrite_pipeline
from reauthor.repo import (
    GitRepositoryError,
    ensure_clean_worktree,
    ensure_git_repository,
    list_commits_topo,
    load_commit_history,
)
from reauthor.resign import ResignError, ResignPlan, resign_history
from reauthor.stream import StreamError
from reauthor.validation import ValidatedConfig, ValidationError, validate_config


def _default_schema_path() -> str:
    """
    Resolve schema.json relative to this script so the CLI works from any CWD.
    """
    return str((Path(__file__).resolve().parent / "reauthor" / "schema.json"))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="git-reauthor",
        description="Rewrite an author identity across git history and optionally re-sign it",
    )

    parser.add_argument("--repo", default=".", help="Path to the target git repository")
    parser.add_argument("--config", help="Path to a rewrite policy YAML (optional)")
    parser.add_argument("--schema", default=_default_schema_path(), help="Path to schema.json")

    identity = parser.add_argument_group("identity rewrite")
    identity.add_argument("--old-name", help="Old name")
    identity.add_argument("--old-email", help="Old email")
    identity.add_argument("--new-name", help="New name")
    identity.add_argument("--new-email", help="New email")

    resign = parser.add_argument_group("re-signing")
    resign.add_argument(
        "--sign-commits",
        action="store_true",
        default=None,
        help="Re-sign commits with git commit-tree -S",
    )
    resign.add_argument(
        "--sign-on-branch",
        help="Branch that receives the re-signed history (default: resigned)",
    )
    resign.add_argument(
        "--sign-mode",
        choices=("all", "matching"),
        help="Sign every commit, or only commits authored by the new identity",
    )
    resign.add_argument("--revision", help="Newest commit to re-sign (default: HEAD)")
    resign.add_argument("--base", help="Oldest commit to re-sign (default: all roots)")
    resign.add_argument("--signing-key", help="Key id passed to git commit-tree -S")

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print what would be rewritten without touching the repo",
    )
    parser.add_argument(
        "--hash-len",
        type=int,
        default=12,
        help="Number of characters to show for commit hash",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Allow the identity rewrite to force-update every ref",
    )
    parser.add_argument(
        "--allow-dirty",
        action="store_true",
        help="Proceed even if the working tree has uncommitted changes",
    )
    parser.add_argument(
        "--cleanup",
        action="store_true",
        help="Expire reflogs and run git gc after a successful run",
    )

    return parser


def _load(args: argparse.Namespace) -> ValidatedConfig:
    if args.config:
        cfg = load_config(
            Path(args.config).expanduser().resolve(),
            Path(args.schema).expanduser().resolve(),
        )
    else:
        cfg = Config()

    cfg = apply_overrides(
        cfg,
        identity={
            "old_name": args.old_name,
            "old_email": args.old_email,
            "new_name": args.new_name,
            "new_email": args.new_email,
        },
        resign={
            "enabled": args.sign_commits,
            "branch": args.sign_on_branch,
            "mode": args.sign_mode,
            "revision": args.revision,
            "base": args.base,
            "key": args.signing_key,
        },
    )
    return validate_config(cfg)


def _dry_run(repo_path: Path, validated: ValidatedConfig, hash_len: int) -> None:
    if validated.mapping is not None:
        commits = load_commit_history(repo_path)
        entries = build_entries(commits, validated.mapping, hash_len=hash_len)
        print(
            render_dryrun_report(
                total_commits=len(commits),
                mapping=validated.mapping,
                entries=entries,
                hash_len=hash_len,
            )
        )

    if validated.resign.enabled:
        resign = validated.resign
        commits_to_sign = list_commits_topo(repo_path, resign.revision, resign.base)
        print(
            f"Would re-sign {len(commits_to_sign)} commits from {resign.revision} "
            f"onto branch '{resign.branch}' (mode: {resign.mode})"
        )


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    if int(args.hash_len) <= 0:
        print("error: --hash-len must be a positive integer", file=sys.stderr)
        return 2

    repo_path = Path(args.repo).expanduser().resolve()

    try:
        validated = _load(args)

        ensure_git_repository(repo_path)

        if args.dry_run:
            _dry_run(repo_path, validated, int(args.hash_len))
            return 0

        if not args.allow_dirty:
            ensure_clean_worktree(repo_path)

        mapping = validated.mapping
        if mapping is not None:
            if not args.force:
                print(
                    "error: the identity rewrite force-updates every ref. Pass --force to proceed.",
                    file=sys.stderr,
                )
                return 2

            stats = run_rewrite_pipeline(repo_path, mapping)
            print(
                f"Rewrote {stats.identities_rewritten} identity lines and "
                f"{stats.messages_rewritten} messages across "
                f"{stats.commits} commits and {stats.tags} tags."
            )
            if stats.malformed:
                print(
                    f"warning: {stats.malformed} malformed data directives were forwarded unchanged",
                    file=sys.stderr,
                )

        branch = None
        resign = validated.resign
        if resign.enabled:
            plan = ResignPlan(
                repo_path=repo_path,
                branch=resign.branch,
                revision=resign.revision,
                base=resign.base,
                mode=resign.mode,
                # After the rewrite the matching commits carry the new email.
                match_email=mapping.new_email if mapping is not None else None,
                key=resign.key,
            )
            result = resign_history(plan)
            print(f"Signed {result.signed} of {result.total} commits.")
            branch = result.branch

        if args.cleanup:
            expire_reflog(repo_path)
            collect_garbage(repo_path)

        print("All commits rewritten successfully!")
        print(render_followup(branch, cleaned=bool(args.cleanup)))
        return 0

    except (
        ConfigError,
        ValidationError,
        GitRepositoryError,
        StreamError,
        PipelineError,
        ResignError,
    ) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
