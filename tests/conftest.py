import os
import subprocess
from pathlib import Path

import pytest


OLD_NAME = "Old Name"
OLD_EMAIL = "old@example.com"
NEW_NAME = "New Name"
NEW_EMAIL = "new@example.com"

FAKE_GPG = """#!/bin/sh
cat > /dev/null
printf '\\n[GNUPG:] SIG_CREATED D 1 8 00 1700000000 FAKEKEY\\n' >&2
printf -- '-----BEGIN PGP SIGNATURE-----\\n\\nZmFrZSBzaWduYXR1cmU=\\n-----END PGP SIGNATURE-----\\n'
"""

BROKEN_GPG = """#!/bin/sh
cat > /dev/null
echo "gpg: signing failed: No secret key" >&2
exit 2
"""


def run_git(repo: Path, *args: str, env=None, input=None) -> str:
    result = subprocess.run(
        ["git", "-C", str(repo), *args],
        capture_output=True,
        input=input,
        env=env,
    )
    if result.returncode != 0:
        raise RuntimeError(f"Failed to run git command: {args}\n{result.stderr.decode()}")
    return result.stdout.decode("utf-8").strip()


@pytest.fixture
def git():
    return run_git


@pytest.fixture
def repo(tmp_path, monkeypatch):
    """Empty repository on branch main, isolated from the user's git config."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for var in ("GIT_DIR", "GIT_WORK_TREE", "GIT_INDEX_FILE"):
        monkeypatch.delenv(var, raising=False)

    path = tmp_path / "repo"
    path.mkdir()
    run_git(path, "init", "-q")
    run_git(path, "symbolic-ref", "HEAD", "refs/heads/main")
    run_git(path, "config", "user.name", "Test Runner")
    run_git(path, "config", "user.email", "runner@example.com")
    return path


@pytest.fixture
def commit(repo):
    """Create a commit on the current branch and return its hash."""
    counter = {"n": 0}

    def _commit(
        message: str,
        *,
        name: str = OLD_NAME,
        email: str = OLD_EMAIL,
        epoch: int = 1700000000,
        tz: str = "+0100",
    ) -> str:
        counter["n"] += 1
        (repo / f"file{counter['n']}.txt").write_text(f"content {counter['n']}\n")
        run_git(repo, "add", ".")

        date = f"@{epoch + counter['n'] * 60} {tz}"
        env = {
            **os.environ,
            "GIT_AUTHOR_NAME": name,
            "GIT_AUTHOR_EMAIL": email,
            "GIT_AUTHOR_DATE": date,
            "GIT_COMMITTER_NAME": name,
            "GIT_COMMITTER_EMAIL": email,
            "GIT_COMMITTER_DATE": date,
        }
        run_git(repo, "commit", "-q", "--no-verify", "-F", "-", env=env, input=message.encode())
        return run_git(repo, "rev-parse", "HEAD")

    return _commit


def _install_gpg(repo: Path, script: str) -> Path:
    path = repo.parent / "gpg-program.sh"
    path.write_text(script)
    path.chmod(0o755)
    run_git(repo, "config", "gpg.program", str(path))
    return path


@pytest.fixture
def fake_gpg(repo):
    """Point gpg.program at a script that always produces a signature."""
    return _install_gpg(repo, FAKE_GPG)


@pytest.fixture
def broken_gpg(repo):
    """Point gpg.program at a script that always fails to sign."""
    return _install_gpg(repo, BROKEN_GPG)
