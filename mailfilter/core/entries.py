# ============================================================================
# mailfilter -- Mbox Entry Stream (mailfilter/core/entries.py)
# ============================================================================
#
# WHAT THIS FILE DOES (plain English):
#   Turns the raw bytes of an mbox archive into a flat sequence of small
#   events, one per physical line:
#
#     Begin            -- a "From " separator line opened a new message
#     HeaderEntry(h)   -- one top-level header, already unfolded
#     Body(line)       -- one body line, line terminator removed
#     End              -- the message is complete
#
#   The MIME decoder (decoder.py) consumes these events and never has to
#   think about mbox framing.
#
# MBOX FRAMING RULES:
#   - "From " at the start of the file, or right after a blank line,
#     starts a new message.
#   - The blank line in front of such a separator belongs to the archive
#     format, not to the previous message body.
#   - End of file closes the last message, unless the file stops inside
#     its header block. That message is left open so the consumer can
#     report the archive as truncated.
#   - Body lines that start with ">From " (or ">>From ", ...) were quoted
#     by the writer; one ">" is removed (mboxrd).
#
# HEADER UNFOLDING:
#   A header line that starts with a space or tab continues the previous
#   header. The line break is dropped and the whitespace kept, so
#       Content-Type: multipart/alternative;
#        boundary="abc"
#   becomes 'multipart/alternative; boundary="abc"'.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import io
import re
from dataclasses import dataclass
from typing import BinaryIO, Iterable, Iterator, Optional, Union

from .exceptions import UnrecognizedHeaderLine
from .mail import Header
from ..monitoring.logger import get_error_logger, get_logger

logger = get_logger("mailfilter.entries")

_FROM_QUOTED = re.compile(rb"^>+From ")


@dataclass(frozen=True)
class Begin:
    """Start of a message."""


@dataclass(frozen=True)
class HeaderEntry:
    header: Header


@dataclass(frozen=True)
class Body:
    line: bytes


@dataclass(frozen=True)
class End:
    """End of a message."""


Entry = Union[Begin, HeaderEntry, Body, End]


def split_header_line(line: str) -> Header:
    """
    Split "Key: value" into a Header.

    Raises:
        UnrecognizedHeaderLine: no colon, or an empty/space-containing key.
    """
    key, sep, value = line.partition(":")
    key = key.strip()
    if not sep or not key or " " in key or "\t" in key:
        raise UnrecognizedHeaderLine(line=line)
    return Header(key, value.lstrip())


def _strip_eol(raw: bytes) -> bytes:
    if raw.endswith(b"\r\n"):
        return raw[:-2]
    if raw.endswith(b"\n") or raw.endswith(b"\r"):
        return raw[:-1]
    return raw


def _decode_header_text(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")


class _Tokenizer:
    """Line-at-a-time mbox state machine behind iter_entries()."""

    def __init__(self) -> None:
        self.in_message = False
        self.in_headers = False
        self.pending_blank = False
        self.previous_blank = True   # start of file counts as "after blank"
        self.current: Optional[list] = None  # [key, value] being unfolded

    def _flush_header(self) -> Iterator[Entry]:
        if self.current is not None:
            key, value = self.current
            self.current = None
            yield HeaderEntry(Header(key, value))

    def feed(self, line: bytes) -> Iterator[Entry]:
        is_blank = line == b""

        if line.startswith(b"From ") and self.previous_blank:
            yield from self._flush_header()
            if self.in_message:
                yield End()
            self.in_message = True
            self.in_headers = True
            self.pending_blank = False
            self.previous_blank = False
            yield Begin()
            return

        self.previous_blank = is_blank

        if not self.in_message:
            if not is_blank:
                logger.warning("line_outside_message", line=line[:80].decode(
                    "utf-8", errors="replace"))
            return

        if self.in_headers:
            if is_blank:
                yield from self._flush_header()
                self.in_headers = False
                return
            text = _decode_header_text(line)
            if text[:1] in (" ", "\t") and self.current is not None:
                self.current[1] += text
                return
            yield from self._flush_header()
            try:
                header = split_header_line(text)
            except UnrecognizedHeaderLine as exc:
                errors = get_error_logger("mailfilter.entries")
                errors.warning("header_line_skipped", **exc.to_dict())
                return
            self.current = [header.key, header.value]
            return

        # Body: hold one blank line back in case a separator follows it
        if self.pending_blank:
            yield Body(b"")
            self.pending_blank = False
        if is_blank:
            self.pending_blank = True
            return
        if _FROM_QUOTED.match(line):
            line = line[1:]
        yield Body(line)

    def close(self) -> Iterator[Entry]:
        yield from self._flush_header()
        # EOF inside a header block is a truncated message: leave it open
        if self.in_message and not self.in_headers:
            yield End()
        self.in_message = False


def iter_entries(stream: Union[BinaryIO, Iterable[bytes]]) -> Iterator[Entry]:
    """
    Lazily tokenize an mbox byte stream into Begin/HeaderEntry/Body/End.

    `stream` is anything that yields raw lines as bytes: an open binary
    file, an io.BytesIO, or a list of byte strings.
    """
    tokenizer = _Tokenizer()
    for raw in stream:
        yield from tokenizer.feed(_strip_eol(raw))
    yield from tokenizer.close()


def entries_from_bytes(data: bytes) -> Iterator[Entry]:
    """Convenience wrapper for an archive held in memory."""
    return iter_entries(io.BytesIO(data))
