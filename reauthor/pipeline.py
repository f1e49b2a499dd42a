# reauthor/pipeline.py
"""
git fast-export | StreamRewriter | git fast-import.

Responsibilities:
- Start the exporter and importer processes
- Run the stream rewriter as a third concurrent stage between their pipes
- Report which stage failed

This module does NOT:
- roll back a partially imported history (objects are append-only)
- expire reflogs or collect garbage
"""

from __future__ import annotations

from pathlib import Path
from subprocess import PIPE, Popen
from typing import BinaryIO, Optional, Sequence
import threading

from reauthor.identity import IdentityMapping
from reauthor.repo import git_command
from reauthor.stream import StreamRewriter, StreamStats


DEFAULT_EXPORT_ARGS = ("fast-export", "--all", "--signed-tags=warn-strip")
DEFAULT_IMPORT_ARGS = ("fast-import", "--force", "--quiet")


class PipelineError(RuntimeError):
    def __init__(self, stage: str, message: str) -> None:
        self.stage = stage
        super().__init__(f"{stage} stage failed: {message}")


class _TransformStage:
    """Drains the exporter into the importer until EOF or error."""

    def __init__(self, rewriter: StreamRewriter, source: BinaryIO, sink: BinaryIO) -> None:
        self.rewriter = rewriter
        self.source = source
        self.sink = sink
        self.error: Optional[BaseException] = None

    @property
    def stats(self) -> StreamStats:
        return self.rewriter.stats

    def run(self) -> None:
        # The sink stays open: only a clean export may give the importer EOF.
        try:
            self.rewriter.transform(self.source, self.sink)
        except Exception as e:
            self.error = e
        finally:
            self.source.close()


def _abort_import(importer: Popen) -> int:
    """Kill the importer before it sees EOF, so it never updates refs."""
    importer.kill()
    try:
        importer.stdin.close()
    except BrokenPipeError:
        # Buffered stream bytes have nowhere to go once the importer is gone.
        pass
    return importer.wait()


def run_rewrite_pipeline(
    repo_path: Path,
    mapping: IdentityMapping,
    *,
    export_args: Sequence[str] = DEFAULT_EXPORT_ARGS,
    import_args: Sequence[str] = DEFAULT_IMPORT_ARGS,
) -> StreamStats:
    """
    Rewrite every ref of the repository through the identity mapping.

    The importer is only allowed to finish when both the exporter and the
    transform succeeded. Any other outcome kills it before EOF.

    Raises PipelineError naming the export, transform or import stage.
    """
    try:
        exporter = Popen(git_command(repo_path, export_args), stdout=PIPE)
    except OSError as e:
        raise PipelineError("export", f"could not start git: {e}") from e

    try:
        importer = Popen(git_command(repo_path, import_args), stdin=PIPE)
    except OSError as e:
        exporter.kill()
        exporter.wait()
        raise PipelineError("import", f"could not start git: {e}") from e

    stage = _TransformStage(StreamRewriter(mapping), exporter.stdout, importer.stdin)
    worker = threading.Thread(target=stage.run, name="reauthor-transform", daemon=True)
    worker.start()
    worker.join()

    terminated = False
    if stage.error is not None and exporter.poll() is None:
        # Nobody reads the export pipe any more.
        exporter.terminate()
        terminated = True

    export_rc = exporter.wait()

    if export_rc != 0 and not terminated:
        _abort_import(importer)
        raise PipelineError("export", f"git fast-export exited with code {export_rc}")

    if isinstance(stage.error, BrokenPipeError):
        # The importer closed its input; it has already failed on its own.
        import_rc = importer.wait()
        _abort_import(importer)
        raise PipelineError(
            "import", f"git fast-import stopped reading its input (exit code {import_rc})"
        ) from stage.error

    if stage.error is not None:
        _abort_import(importer)
        raise PipelineError("transform", str(stage.error)) from stage.error

    try:
        importer.stdin.close()
    except BrokenPipeError as e:
        import_rc = importer.wait()
        raise PipelineError(
            "import", f"git fast-import stopped reading its input (exit code {import_rc})"
        ) from e

    import_rc = importer.wait()
    if import_rc != 0:
        raise PipelineError("import", f"git fast-import exited with code {import_rc}")

    return stage.stats
