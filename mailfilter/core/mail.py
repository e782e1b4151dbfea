# ============================================================================
# mailfilter -- Mail Value Types (mailfilter/core/mail.py)
# ============================================================================
#
# WHAT THIS FILE DOES (plain English):
#   Defines the small data objects everything else passes around:
#
#     Header   -- one "Key: value" line from a message
#     MimeType -- a parsed Content-Type such as text/plain; charset=UTF-8
#     Mail     -- one decoded message: its headers plus a body per MIME type
#
#   A multipart email can carry the same text twice (plain and HTML).
#   Mail.body keeps each version under its own MIME type so a filter can
#   say which one it wants to look at.
#
# MIME "ESSENCE":
#   "text/plain; charset=UTF-8" and "text/plain" are the same kind of
#   body. Only type/subtype matter for lookups; parameters are kept on
#   the object (the boundary lives there) but ignored by == and hash().
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import re
from dataclasses import dataclass, field
from email.utils import parsedate_to_datetime
from typing import Dict, List, Optional, Tuple

from .exceptions import MimeParseError


@dataclass(frozen=True)
class Header:
    """One header line. Values are verbatim; keys compare case-insensitively."""
    key: str
    value: str

    def key_matches(self, name: str) -> bool:
        return self.key.lower() == name.lower()


# RFC 2045 token characters (anything printable except tspecials/space)
_TOKEN = r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+"
_MIME_RE = re.compile(rf"^\s*({_TOKEN})/({_TOKEN})\s*(.*?)\s*$", re.DOTALL)
_PARAM_RE = re.compile(
    rf'\s*;\s*({_TOKEN})\s*=\s*(?:"((?:[^"\\]|\\.)*)"|({_TOKEN}))\s*', re.DOTALL
)


@dataclass(frozen=True)
class MimeType:
    """
    A MIME type. Equality and hashing use the essence (type/subtype) only.

    MimeType.parse() is strict; MimeType.parse_lenient() adds the fallback
    rules used for the sloppy Content-Type values real archives contain.
    """
    type: str
    subtype: str
    params: Tuple[Tuple[str, str], ...] = field(default=(), compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", self.type.lower())
        object.__setattr__(self, "subtype", self.subtype.lower())

    @property
    def essence(self) -> str:
        return f"{self.type}/{self.subtype}"

    def get_param(self, name: str) -> Optional[str]:
        for key, value in self.params:
            if key == name.lower():
                return value
        return None

    def without_params(self) -> "MimeType":
        return MimeType(self.type, self.subtype)

    def __str__(self) -> str:
        text = self.essence
        for key, value in self.params:
            text += f'; {key}="{value}"'
        return text

    @classmethod
    def parse(cls, value: str) -> "MimeType":
        """
        Strict parse of "type/subtype *(; name=value)".

        Raises:
            MimeParseError: the text is not a well-formed MIME type.
        """
        match = _MIME_RE.match(value)
        if not match:
            raise MimeParseError(value=value)
        type_, subtype, rest = match.groups()

        params: List[Tuple[str, str]] = []
        pos = 0
        while pos < len(rest):
            param = _PARAM_RE.match(rest, pos)
            if not param:
                raise MimeParseError(value=value)
            name, quoted, bare = param.groups()
            if quoted is not None:
                param_value = re.sub(r"\\(.)", r"\1", quoted)
            else:
                param_value = bare
            params.append((name.lower(), param_value))
            pos = param.end()
        return cls(type_, subtype, tuple(params))

    @classmethod
    def parse_lenient(cls, value: str) -> "MimeType":
        """
        Parse a Content-Type header value with fallbacks:

          1. Strict parse of the whole value.
          2. Otherwise take the text before the first ';'. A bare "text"
             means text/plain; anything else must parse strictly on its own.

        Raises:
            MimeParseError: nothing usable could be recovered.
        """
        try:
            return cls.parse(value)
        except MimeParseError:
            pass

        prefix = value.split(";", 1)[0].strip()
        if prefix.lower() == "text":
            return TEXT_PLAIN
        try:
            return cls.parse(prefix)
        except MimeParseError:
            raise MimeParseError(value=value) from None


TEXT_PLAIN = MimeType("text", "plain")
TEXT_HTML = MimeType("text", "html")


@dataclass
class Mail:
    """
    One decoded message.

    headers  -- every top-level header in archive order
    body     -- accumulated body bytes keyed by MIME essence
    boundary -- "--" + the multipart boundary, empty for single-part mail
    """
    headers: List[Header] = field(default_factory=list)
    body: Dict[MimeType, bytearray] = field(default_factory=dict)
    boundary: str = ""

    @classmethod
    def empty(cls) -> "Mail":
        return cls()

    @classmethod
    def parse(cls, text) -> "Mail":
        """
        Decode the first message of an in-memory mbox archive.

        Raises:
            UnexpectedEndOfStream: no complete message was found.
        """
        # Imported here: decoder and entries both depend on this module
        from .decoder import iter_mails
        from .entries import entries_from_bytes
        from .exceptions import UnexpectedEndOfStream

        data = text.encode("utf-8") if isinstance(text, str) else bytes(text)
        for mail in iter_mails(entries_from_bytes(data)):
            return mail
        raise UnexpectedEndOfStream(
            "Reached end of buffer before end of email."
        )

    def header(self, name: str) -> Optional[str]:
        """Value of the first header called `name` (any case), or None."""
        for header in self.headers:
            if header.key_matches(name):
                return header.value
        return None

    def part_text(self, mime: MimeType) -> Optional[str]:
        payload = self.body.get(mime)
        if payload is None:
            return None
        return bytes(payload).decode("utf-8", errors="replace")

    def body_text(self) -> str:
        return self.part_text(TEXT_PLAIN) or ""

    def subject(self) -> str:
        return self.header("Subject") or ""

    def date(self) -> str:
        """
        The Date header as YYYYMMDDTHHMMSS (sortable, filename-safe).

        The wall-clock time is kept in the sender's offset. Unparseable
        dates come back verbatim; a missing Date gives "".
        """
        raw = self.header("Date")
        if raw is None:
            return ""
        try:
            parsed = parsedate_to_datetime(raw)
        except (TypeError, ValueError, IndexError):
            return raw
        if parsed is None:
            return raw
        return parsed.strftime("%Y%m%dT%H%M%S")
