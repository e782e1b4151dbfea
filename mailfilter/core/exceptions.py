# ===========================================================================
# mailfilter -- TYPED EXCEPTIONS
# ===========================================================================
# FILE: mailfilter/core/exceptions.py
#
# WHAT THIS IS:
#   Custom error types for mailfilter. Each one names exactly what went
#   wrong (a bad query, a broken Content-Type header, a truncated archive)
#   and carries a fix suggestion that the CLI prints next to the message.
#
# TWO FAMILIES OF ERRORS:
#   Query errors (FILT-xxx) happen before any archive is opened. The whole
#   filter is rejected; nothing is ever half-applied.
#
#   Decode errors (MIME-xxx) happen on individual header lines while a
#   message is being decoded. The decoder catches them, logs them and
#   keeps going -- one odd Content-Type must not lose the rest of the mail.
#
#   Stream errors (STREAM-xxx) mean the archive ended in the middle of a
#   message. That is fatal to the run and reported as such.
#
# HOW IT'S USED:
#     try:
#         flt = parse(query)
#     except FilterSyntaxError as e:
#         show_user(f"Bad filter: {e} -- Fix: {e.fix_suggestion}")
#
#   All exceptions inherit from MailFilterError, so "except
#   MailFilterError" catches every error raised by this package.
# ===========================================================================

from __future__ import annotations


class MailFilterError(Exception):
    """
    Base class for all mailfilter errors.

    Attributes:
        fix_suggestion (str | None): Human-readable fix instruction.
        error_code (str | None): Machine-readable code like "FILT-001"
            for structured logs.
    """

    def __init__(self, message, fix_suggestion=None, error_code=None):
        self.fix_suggestion = fix_suggestion
        self.error_code = error_code
        super().__init__(message)

    def to_dict(self):
        """Convert to dictionary for JSON logging."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": str(self),
            "fix_suggestion": self.fix_suggestion,
        }


# ---------------------------------------------------------------------------
# QUERY ERRORS (FILT-xxx)
# Raised while compiling the filter string. Fatal to that filter.
# ---------------------------------------------------------------------------

class FilterSyntaxError(MailFilterError):
    """
    The filter query could not be parsed.

    WHEN YOU'LL SEE THIS:
      - An operator is missing or misspelled ("subject hello")
      - A literal with spaces or punctuation was not quoted
      - Something follows the last matcher that is not "and"/"or"

    The unparsed tail of the query is kept in `remainder` so the message
    can point at where parsing stopped.
    """
    def __init__(self, message=None, remainder=""):
        self.remainder = remainder
        detail = f" Stopped at: '{remainder}'" if remainder else ""
        super().__init__(
            message or f"Filter query is not valid.{detail}",
            fix_suggestion=(
                "Use key<op>value pairs joined by 'and'/'or', e.g. "
                "subject=~/invoice/ and from$=\"@example.com\". "
                "Quote values that contain spaces or punctuation."
            ),
            error_code="FILT-001",
        )


class InvalidRegexError(FilterSyntaxError):
    """
    A /.../ literal is not a valid regular expression.

    WHEN YOU'LL SEE THIS:
      - Unbalanced brackets or parentheses: /[abc/ or /(x/
      - A dangling quantifier: /*foo/
    """
    def __init__(self, message=None, pattern="", remainder=""):
        super().__init__(
            message or f"Invalid regular expression: /{pattern}/",
            remainder=remainder,
        )
        self.pattern = pattern
        self.fix_suggestion = (
            "Check the pattern for unbalanced brackets or quantifiers. "
            "A literal '/' inside the pattern must be written as '\\/'."
        )
        self.error_code = "FILT-002"


# ---------------------------------------------------------------------------
# DECODE ERRORS (MIME-xxx)
# Raised on single header lines. The decoder logs these and continues.
# ---------------------------------------------------------------------------

class MimeParseError(MailFilterError):
    """A Content-Type value is unparseable even after the fallback rules."""
    def __init__(self, message=None, value=""):
        self.value = value
        super().__init__(
            message or f"Cannot parse Content-Type: '{value}'",
            fix_suggestion="The value is skipped and decoding continues; no action needed.",
            error_code="MIME-001",
        )


class UnrecognizedHeaderLine(MailFilterError):
    """A line in a header block has no 'Key: value' shape."""
    def __init__(self, message=None, line=""):
        self.line = line
        super().__init__(
            message or f"Not a header line: '{line}'",
            fix_suggestion="The line is skipped; no action needed.",
            error_code="MIME-002",
        )


# ---------------------------------------------------------------------------
# OUTPUT ERRORS (OUT-xxx)
# Raised by extract when a matched message cannot be written. Fatal.
# ---------------------------------------------------------------------------

class OutputWriteError(MailFilterError):
    """
    An extracted message could not be written to the output directory.

    WHEN YOU'LL SEE THIS:
      - --output-dir (or output.directory) points below a regular file
      - The directory is read-only or the disk is full
    """
    def __init__(self, message=None, path="", reason=""):
        self.path = path
        self.reason = reason
        super().__init__(
            message or f"Cannot write {path}: {reason}",
            fix_suggestion=(
                "Pass an --output-dir you can write to, or fix "
                "output.directory in config/default_config.yaml."
            ),
            error_code="OUT-001",
        )


# ---------------------------------------------------------------------------
# STREAM ERRORS (STREAM-xxx)
# ---------------------------------------------------------------------------

class UnexpectedEndOfStream(MailFilterError):
    """
    The entry stream ended before the open message was closed.

    WHEN YOU'LL SEE THIS:
      - The archive was truncated (copy interrupted, disk full)
      - An in-memory archive contained no complete message at all
    """
    def __init__(self, message=None):
        super().__init__(
            message or "Reached end of stream before end of message.",
            fix_suggestion=(
                "The archive looks truncated. Re-copy or re-export it and "
                "run again."
            ),
            error_code="STREAM-001",
        )
