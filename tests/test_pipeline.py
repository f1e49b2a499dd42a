import pytest

from reauthor.identity import IdentityMapping
from reauthor.pipeline import PipelineError, run_rewrite_pipeline


MAPPING = IdentityMapping(
    old_name="Old Name",
    old_email="old@example.com",
    new_name="New Name",
    new_email="new@example.com",
)


def log(git, repo, fmt, rev="main"):
    return git(repo, "log", f"--format={fmt}", rev).splitlines()


def test_pipeline_rewrites_history(repo, commit, git):
    commit("first\n\nSigned-off-by: Old Name <old@example.com>\n")
    commit("from someone else\n", name="Other", email="other@example.com")
    commit("third\n\nReviewed-by: Other <other@example.com>\nSigned-off-by: Old Name <old@example.com>\n")
    git(
        repo,
        "-c", "user.name=Old Name",
        "-c", "user.email=old@example.com",
        "tag", "-a", "v1", "-m", "release",
    )

    trees_before = log(git, repo, "%T")
    dates_before = log(git, repo, "%ad|%cd")

    stats = run_rewrite_pipeline(repo, MAPPING)

    assert stats.commits == 3
    assert stats.tags == 1
    assert stats.messages_rewritten == 2

    assert log(git, repo, "%an <%ae>|%cn <%ce>") == [
        "New Name <new@example.com>|New Name <new@example.com>",
        "Other <other@example.com>|Other <other@example.com>",
        "New Name <new@example.com>|New Name <new@example.com>",
    ]
    assert log(git, repo, "%T") == trees_before
    assert log(git, repo, "%ad|%cd") == dates_before

    messages = git(repo, "log", "--format=%B%x00", "main")
    assert "Signed-off-by: Old Name" not in messages
    assert messages.count("Signed-off-by: New Name <new@example.com>") == 2
    assert "Reviewed-by: Other <other@example.com>" in messages

    tagger = git(repo, "for-each-ref", "--format=%(taggername) %(taggeremail)", "refs/tags/v1")
    assert tagger == "New Name <new@example.com>"
    assert git(repo, "rev-parse", "v1^{commit}") == git(repo, "rev-parse", "main")


def test_pipeline_is_noop_without_matches(repo, commit, git):
    commit("one", name="Other", email="other@example.com")
    head = commit("two", name="Other", email="other@example.com")

    stats = run_rewrite_pipeline(repo, MAPPING)

    assert stats.identities_rewritten == 0
    assert git(repo, "rev-parse", "main") == head


def test_pipeline_reports_export_failure(tmp_path):
    with pytest.raises(PipelineError) as excinfo:
        run_rewrite_pipeline(tmp_path / "not-a-repo", MAPPING)

    assert excinfo.value.stage in ("export", "import")


def test_pipeline_reports_import_failure(repo, commit):
    commit("one")

    with pytest.raises(PipelineError) as excinfo:
        run_rewrite_pipeline(repo, MAPPING, import_args=("fast-import", "--no-such-option"))

    assert excinfo.value.stage == "import"


def test_export_failure_leaves_refs_alone(repo, commit, git):
    head = commit("one")
    failing_export = (
        "-c",
        "alias.fx=!git fast-export --all --signed-tags=warn-strip; exit 1",
        "fx",
    )

    with pytest.raises(PipelineError) as excinfo:
        run_rewrite_pipeline(repo, MAPPING, export_args=failing_export)

    assert excinfo.value.stage == "export"
    assert git(repo, "rev-parse", "main") == head
    assert git(repo, "show", "-s", "--format=%ae", "main") == "old@example.com"


def test_transform_failure_leaves_refs_alone(repo, commit, git):
    head = commit("one")
    truncated_export = (
        "-c",
        "alias.fx=!printf 'commit refs/heads/main\\ndata 100\\nshort'",
        "fx",
    )

    with pytest.raises(PipelineError) as excinfo:
        run_rewrite_pipeline(repo, MAPPING, export_args=truncated_export)

    assert excinfo.value.stage == "transform"
    assert git(repo, "rev-parse", "main") == head
