# reauthor/stream.py
"""
Rewriter for the `git fast-export` stream.

Responsibilities:
- Copy the stream from source to sink one line or one payload at a time
- Rewrite author, committer and tagger identity lines
- Rewrite Signed-off-by trailers in commit and tag messages
- Keep every `data <n>` length in step with the payload that follows it

This module does NOT:
- start git processes (see reauthor.pipeline)
- parse trees, blobs or file commands
- reorder, merge or drop directives
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import BinaryIO, Optional
import sys

from reauthor.identity import IdentityMapping, rewrite_identity_line, rewrite_signoffs


class StreamError(RuntimeError):
    pass


_IDENTITY_PREFIXES = (b"author ", b"committer ", b"tagger ")
_DATA_PREFIX = b"data "
_DELIMITED_PREFIX = b"data <<"

# Payloads that are not rewritten are copied in chunks of this size.
_COPY_CHUNK = 64 * 1024


@dataclass
class StreamStats:
    commits: int = 0
    tags: int = 0
    blobs: int = 0
    identities_rewritten: int = 0
    messages_rewritten: int = 0
    malformed: int = 0


class StreamRewriter:
    """
    Filter a fast-export stream through an identity mapping.

    The first `data` payload after a `commit` or `tag` command is that
    record's message. Any other payload (blobs, inline file content) is
    copied through untouched.
    """

    def __init__(self, mapping: IdentityMapping) -> None:
        self.mapping = mapping
        self.stats = StreamStats()
        self._message_pending = False

    def transform(self, source: BinaryIO, sink: BinaryIO) -> StreamStats:
        while True:
            line = source.readline()
            if not line:
                break

            if line.startswith(_DELIMITED_PREFIX):
                self._copy_delimited(line, source, sink)
            elif line.startswith(_DATA_PREFIX):
                self._copy_counted(line, source, sink)
            else:
                sink.write(self._rewrite_line(line))

        sink.flush()
        return self.stats

    def _rewrite_line(self, line: bytes) -> bytes:
        if line.startswith(b"commit "):
            self.stats.commits += 1
            self._message_pending = True
        elif line.startswith(b"tag "):
            self.stats.tags += 1
            self._message_pending = True
        elif line == b"blob\n" or line == b"blob":
            self.stats.blobs += 1
            self._message_pending = False
        elif line.startswith(_IDENTITY_PREFIXES):
            rewritten = rewrite_identity_line(line, self.mapping)
            if rewritten != line:
                self.stats.identities_rewritten += 1
            return rewritten

        return line

    def _copy_counted(self, line: bytes, source: BinaryIO, sink: BinaryIO) -> None:
        length = _parse_length(line)
        if length is None:
            self.stats.malformed += 1
            print(
                f"warning: malformed data directive {line!r}, forwarding as-is",
                file=sys.stderr,
            )
            sink.write(line)
            return

        if not self._message_pending:
            sink.write(line)
            _copy_exact(source, sink, length)
            return

        self._message_pending = False
        message = _read_exact(source, length)
        rewritten = rewrite_signoffs(message, self.mapping)
        if rewritten != message:
            self.stats.messages_rewritten += 1

        # The length line must describe the bytes actually written after it.
        sink.write(b"data %d\n" % len(rewritten))
        sink.write(rewritten)

    def _copy_delimited(self, line: bytes, source: BinaryIO, sink: BinaryIO) -> None:
        delimiter = line[len(_DELIMITED_PREFIX) :].rstrip(b"\n")
        is_message = self._message_pending
        self._message_pending = False
        sink.write(line)

        while True:
            body = source.readline()
            if not body:
                raise StreamError(f"Stream ended inside delimited data {delimiter!r}")

            if body.rstrip(b"\n") == delimiter:
                sink.write(body)
                return

            if is_message:
                rewritten = rewrite_signoffs(body, self.mapping)
                if rewritten != body:
                    self.stats.messages_rewritten += 1
                body = rewritten

            sink.write(body)


def _parse_length(line: bytes) -> Optional[int]:
    raw = line[len(_DATA_PREFIX) :].strip()
    if not raw.isdigit():
        return None
    return int(raw)


def _read_exact(source: BinaryIO, length: int) -> bytes:
    chunks = []
    remaining = length
    while remaining > 0:
        chunk = source.read(remaining)
        if not chunk:
            raise StreamError(
                f"Stream ended {remaining} bytes short of a {length} byte payload"
            )
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def _copy_exact(source: BinaryIO, sink: BinaryIO, length: int) -> None:
    remaining = length
    while remaining > 0:
        chunk = source.read(min(remaining, _COPY_CHUNK))
        if not chunk:
            raise StreamError(
                f"Stream ended {remaining} bytes short of a {length} byte payload"
            )
        sink.write(chunk)
        remaining -= len(chunk)


def rewrite_stream(source: BinaryIO, sink: BinaryIO, mapping: IdentityMapping) -> StreamStats:
    return StreamRewriter(mapping).transform(source, sink)
