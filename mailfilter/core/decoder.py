# ============================================================================
# mailfilter -- Streaming MIME Decoder (mailfilter/core/decoder.py)
# ============================================================================
#
# WHAT THIS FILE DOES (plain English):
#   Rebuilds one Mail at a time from the Begin / Header / Body / End
#   events produced by entries.py. For multipart messages it tracks the
#   boundary lines and files each part's lines under that part's
#   Content-Type, so "the plain text version" and "the HTML version" of
#   an email end up in separate buffers.
#
# STATE MACHINE (per message):
#
#   begin()  -> Collecting top-level headers
#   header() -> a Content-Type with a boundary switches the message into
#               multipart mode (boundary = "--" + parameter)
#   body()   -> single-part: every line goes to text/plain
#               multipart:   boundary -> part headers -> blank -> part body
#                            -> boundary -> part headers -> ...
#                            boundary + "--" ends the parts (Done)
#   end()    -> hand back the finished Mail, reset
#
# WHAT IS NOT DONE HERE:
#   Transfer encodings (quoted-printable, base64) are left as they are.
#   Nested multiparts are not descended into; their lines land in the
#   enclosing part.
#
# ERRORS:
#   A Content-Type that cannot be parsed, or a part header line without a
#   colon, is logged and skipped. Decoding of the message continues.
#   These go to the error logger (error_YYYY-MM-DD.log when file logging
#   is on).
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

from typing import Callable, Iterable, Iterator, Optional

from .entries import Begin, Body, End, Entry, HeaderEntry, split_header_line
from .exceptions import (
    MailFilterError,
    MimeParseError,
    UnexpectedEndOfStream,
    UnrecognizedHeaderLine,
)
from .mail import TEXT_PLAIN, Header, Mail, MimeType
from ..monitoring.logger import get_error_logger, get_logger

logger = get_logger("mailfilter.decoder")

HeaderPredicate = Callable[[Header], bool]


class DecoderContext:
    """
    Mutable decoding state, reused sequentially for every message of one
    archive. begin/header/body/end are the only mutators.

    header_predicate, when given, decides which top-level headers are kept
    on the Mail. Content-Type is always inspected for the boundary whether
    or not it is kept.
    """

    def __init__(self, header_predicate: Optional[HeaderPredicate] = None) -> None:
        self.header_predicate = header_predicate
        self.mail: Optional[Mail] = None
        self.reading_headers = False
        self.reading_body = False
        self.done = False
        self.part_type: Optional[MimeType] = None

    @property
    def in_progress(self) -> bool:
        return self.mail is not None

    def _reset(self) -> None:
        self.mail = None
        self.reading_headers = False
        self.reading_body = False
        self.done = False
        self.part_type = None

    def begin(self) -> None:
        """Start a fresh Mail, discarding any unfinished one."""
        if self.mail is not None:
            logger.warning("message_discarded", reason="begin_without_end")
        self._reset()
        self.mail = Mail()

    def header(self, header: Header) -> None:
        """Record a top-level header; Content-Type may set the boundary."""
        if self.mail is None:
            return
        if self.header_predicate is None or self.header_predicate(header):
            self.mail.headers.append(header)

        if not header.key_matches("Content-Type"):
            return
        mime = _content_type(header.value)
        if mime is None:
            return
        boundary = mime.get_param("boundary")
        if boundary:
            self.mail.boundary = "--" + boundary

    def body(self, line: bytes) -> None:
        """Feed one raw body line (without its line terminator)."""
        mail = self.mail
        if mail is None:
            return

        if not mail.boundary:
            _append(mail, TEXT_PLAIN, line)
            return
        if self.done:
            return

        boundary = mail.boundary.encode("utf-8")
        if line == boundary + b"--":
            self.reading_headers = False
            self.reading_body = False
            self.done = True
            return

        # The checks below run in sequence on the same line: a boundary
        # that closes a part body also opens the next part's headers.
        if self.reading_body:
            if line == boundary:
                self.reading_body = False
            elif self.part_type is not None:
                _append(mail, self.part_type, line)

        if self.reading_headers:
            if line == b"":
                self.reading_headers = False
                self.reading_body = True
            else:
                self._part_header(line)
        elif not self.reading_body and line == boundary:
            self.reading_headers = True
            self.part_type = None

    def _part_header(self, line: bytes) -> None:
        text = line.decode("utf-8", errors="replace")
        if text[:1] in (" ", "\t"):
            # continuation of a folded part header
            return
        try:
            header = split_header_line(text)
        except UnrecognizedHeaderLine as exc:
            _log_recovered("part_header_skipped", exc)
            return
        if not header.key_matches("Content-Type"):
            return
        mime = _content_type(header.value)
        if mime is None:
            return
        mime = mime.without_params()
        self.mail.body.setdefault(mime, bytearray())
        self.part_type = mime

    def end(self) -> Mail:
        """
        Return the finished Mail and reset.

        Raises:
            UnexpectedEndOfStream: no message was open.
        """
        mail = self.mail
        self._reset()
        if mail is None:
            raise UnexpectedEndOfStream("End of message without a matching start.")
        return mail

    def feed(self, entry: Entry) -> Optional[Mail]:
        """Dispatch one entry; returns a Mail when `entry` is End."""
        if isinstance(entry, Begin):
            self.begin()
        elif isinstance(entry, HeaderEntry):
            self.header(entry.header)
        elif isinstance(entry, Body):
            self.body(entry.line)
        elif isinstance(entry, End):
            return self.end()
        return None


def _content_type(value: str) -> Optional[MimeType]:
    try:
        return MimeType.parse_lenient(value)
    except MimeParseError as exc:
        _log_recovered("content_type_skipped", exc)
        return None


def _log_recovered(event: str, exc: MailFilterError) -> None:
    # Looked up per event so a later initialize_logging(force=True) that
    # enables log_to_file still routes these to error_YYYY-MM-DD.log
    get_error_logger("mailfilter.decoder").warning(event, **exc.to_dict())


def _append(mail: Mail, mime: MimeType, line: bytes) -> None:
    buffer = mail.body.setdefault(mime, bytearray())
    buffer += line
    buffer += b"\n"


def iter_mails(
    entries: Iterable[Entry],
    header_predicate: Optional[HeaderPredicate] = None,
) -> Iterator[Mail]:
    """
    Decode every message in an entry stream.

    Raises:
        UnexpectedEndOfStream: the entries stop between Begin and End.
    """
    ctx = DecoderContext(header_predicate)
    for entry in entries:
        mail = ctx.feed(entry)
        if mail is not None:
            yield mail
    if ctx.in_progress:
        raise UnexpectedEndOfStream()
