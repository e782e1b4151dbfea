# ============================================================================
# mailfilter -- Filter Query Language (mailfilter/core/filter.py)
# ============================================================================
#
# WHAT THIS FILE DOES (plain English):
#   Compiles a short query such as
#
#       subject=~/invoice/ and from$="@example.com"
#
#   into a small tree (the "expression") and answers one question per
#   message: does this Mail match?
#
# THE LANGUAGE:
#   A query is one or more matchers joined with "and" / "or".
#   A matcher is KEY OPERATOR VALUE:
#
#     KEY        a header name (case-insensitive): subject, from, X-Mailer
#                "body"         -> the text/plain part
#                "body.html"    -> the text/html part (body.<subtype>)
#
#     OPERATOR   =   exact          !=  not equal
#                ^=  starts with    $=  ends with
#                =~  regex search   !~  regex does not match
#
#     VALUE      hello              letters/digits only, unquoted
#                "hello, world"     anything else, double-quoted;
#                                   \" \\ \n \t and \u{1F602} escapes
#                /^re: .*$/         regex for =~ and !~; write / as \/
#
# NO OPERATOR PRECEDENCE:
#   Chains fold to the right. "A and B or C" means A and (B or C), never
#   (A and B) or C. Each matcher owns "the rest of the query" as its
#   right-hand side. This is deliberate and covered by tests.
#
# ERRORS:
#   Any part of the query that does not parse rejects the whole query
#   with FilterSyntaxError (InvalidRegexError for bad patterns). A filter
#   is never partially applied.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from .exceptions import FilterSyntaxError, InvalidRegexError, MimeParseError
from .mail import TEXT_PLAIN, Header, Mail, MimeType


# ============================================================================
# AST
# ============================================================================

class Operator(Enum):
    """The six comparison kinds. Values are the query spellings."""
    EXACT = "="
    STARTS_WITH = "^="
    ENDS_WITH = "$="
    NOT_EQUAL = "!="
    REGEX = "=~"
    NOT_REGEX = "!~"

    @property
    def is_regex(self) -> bool:
        return self in (Operator.REGEX, Operator.NOT_REGEX)


@dataclass(frozen=True)
class ValueMatcher:
    """
    One comparison against a header value or body text.

    For the regex operators `argument` is the pattern source and `regex`
    the compiled pattern. Equality uses the pattern text, never the
    compiled object's identity.
    """
    operator: Operator
    argument: str
    regex: Optional[re.Pattern] = field(default=None, compare=False, repr=False)

    @classmethod
    def build(cls, operator: Operator, argument: str) -> "ValueMatcher":
        """
        Raises:
            InvalidRegexError: a regex operator with a pattern that does
                not compile.
        """
        if not operator.is_regex:
            return cls(operator, argument)
        try:
            compiled = re.compile(argument)
        except re.error as exc:
            raise InvalidRegexError(
                f"Invalid regular expression /{argument}/: {exc}",
                pattern=argument,
            ) from exc
        return cls(operator, argument, compiled)

    def matches(self, value: str) -> bool:
        op = self.operator
        if op is Operator.EXACT:
            return value == self.argument
        if op is Operator.STARTS_WITH:
            return value.startswith(self.argument)
        if op is Operator.ENDS_WITH:
            return value.endswith(self.argument)
        if op is Operator.NOT_EQUAL:
            return value != self.argument
        found = self.regex.search(value) is not None
        return found if op is Operator.REGEX else not found

    def __str__(self) -> str:
        if self.operator.is_regex:
            return self.operator.value + _render_regex(self.argument)
        return self.operator.value + _render_literal(self.argument)


class KeyKind(Enum):
    HEADER = "header"
    BODY = "body"


@dataclass(frozen=True)
class MatcherKey:
    """
    What a matcher looks at: a header by name, or a body part by MIME type.

    `name` is the key as written in the query. For BODY keys `mime` is the
    resolved part type, or None when the subtype did not parse; such a
    key never matches anything.
    """
    kind: KeyKind
    name: str
    mime: Optional[MimeType] = None

    @classmethod
    def resolve(cls, name: str) -> "MatcherKey":
        lowered = name.lower()
        if lowered == "body":
            return cls(KeyKind.BODY, name, TEXT_PLAIN)
        if lowered.startswith("body."):
            try:
                mime = MimeType.parse("text/" + name[len("body."):])
            except MimeParseError:
                mime = None
            return cls(KeyKind.BODY, name, mime)
        return cls(KeyKind.HEADER, name)

    def is_header(self, header: Header) -> bool:
        return self.kind is KeyKind.HEADER and header.key_matches(self.name)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Matcher:
    """A single `key <op> value` predicate."""
    key: MatcherKey
    value_matcher: ValueMatcher

    def matches_header(self, header: Header) -> bool:
        return self.key.is_header(header) and self.value_matcher.matches(header.value)

    def matches(self, mail: Mail) -> bool:
        if self.key.kind is KeyKind.HEADER:
            return any(self.matches_header(h) for h in mail.headers)
        if self.key.mime is None:
            return False
        text = mail.part_text(self.key.mime)
        if text is None:
            return False
        return self.value_matcher.matches(text)

    def __str__(self) -> str:
        return f"{self.key}{self.value_matcher}"


class Combinator(Enum):
    MATCH = "match"
    OR = "or"
    AND = "and"


@dataclass(frozen=True)
class Expression:
    """
    Right-folded expression tree.

    MATCH holds only a matcher. OR and AND pair a matcher with the rest
    of the query in `rest`; the matcher is always evaluated first.
    """
    kind: Combinator
    matcher: Matcher
    rest: Optional["Expression"] = None

    @classmethod
    def match(cls, matcher: Matcher) -> "Expression":
        return cls(Combinator.MATCH, matcher)

    @classmethod
    def or_(cls, matcher: Matcher, rest: "Expression") -> "Expression":
        return cls(Combinator.OR, matcher, rest)

    @classmethod
    def and_(cls, matcher: Matcher, rest: "Expression") -> "Expression":
        return cls(Combinator.AND, matcher, rest)

    def matches(self, mail: Mail) -> bool:
        if self.kind is Combinator.MATCH:
            return self.matcher.matches(mail)
        if self.kind is Combinator.OR:
            return self.matcher.matches(mail) or self.rest.matches(mail)
        return self.matcher.matches(mail) and self.rest.matches(mail)

    def includes_header(self, header: Header) -> bool:
        if self.kind is Combinator.MATCH:
            return self.matcher.key.is_header(header)
        return self.matcher.key.is_header(header) or self.rest.includes_header(header)

    def __str__(self) -> str:
        if self.kind is Combinator.MATCH:
            return str(self.matcher)
        return f"{self.matcher} {self.kind.value} {self.rest}"


@dataclass(frozen=True)
class Filter:
    """A compiled query. expression=None is the filter that matches everything."""
    expression: Optional[Expression] = None

    def matches(self, mail: Mail) -> bool:
        if self.expression is None:
            return True
        return self.expression.matches(mail)

    def includes_header(self, header: Header) -> bool:
        if self.expression is None:
            return True
        return self.expression.includes_header(header)

    def __str__(self) -> str:
        return "" if self.expression is None else str(self.expression)


MATCH_ALL = Filter()


# ============================================================================
# PARSER
# ============================================================================
#
# Hand-written recursive descent. Every rule takes the remaining input and
# returns (value, remaining) or None when it does not apply, so
# alternatives can be tried in order without consuming anything.
# ============================================================================

_KEY_RE = re.compile(r"[A-Za-z][A-Za-z0-9-]*(?:\.[A-Za-z0-9+.-]*)?")
_ALNUM_RE = re.compile(r"[A-Za-z0-9]+")
_SPACE_RE = re.compile(r"\s+")
_HEX_ESCAPE_RE = re.compile(r"u\{([0-9A-Fa-f]{1,6})\}")

# Two-character operators first so "=" does not swallow "=~"
_OPERATORS = (
    Operator.REGEX,
    Operator.NOT_REGEX,
    Operator.STARTS_WITH,
    Operator.ENDS_WITH,
    Operator.NOT_EQUAL,
    Operator.EXACT,
)

_SIMPLE_ESCAPES = {
    '"': '"',
    "\\": "\\",
    "/": "/",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "b": "\b",
    "f": "\f",
    "0": "\0",
}
_RENDER_ESCAPES = {
    '"': '\\"',
    "\\": "\\\\",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\b": "\\b",
    "\f": "\\f",
    "\0": "\\0",
}


def parse(query: Optional[str]) -> Filter:
    """
    Compile a query string into a Filter.

    None or a blank string gives the match-everything filter.

    Raises:
        FilterSyntaxError: the query (or any part of it) is malformed.
        InvalidRegexError: a /.../ pattern does not compile.
    """
    if query is None or not query.strip():
        return MATCH_ALL

    text = query.strip()
    result = expression(text)
    if result is None:
        raise FilterSyntaxError(remainder=text)
    expr, rest = result
    if rest.strip():
        raise FilterSyntaxError(remainder=rest)
    return Filter(expr)


def expression(text: str) -> Optional[Tuple[Expression, str]]:
    """expression = and_expr | or_expr | match_expr"""
    return (
        _joined(text, "and", Expression.and_)
        or _joined(text, "or", Expression.or_)
        or match_expression(text)
    )


def _joined(text: str, keyword: str, build) -> Optional[Tuple[Expression, str]]:
    parsed = matcher(text)
    if parsed is None:
        return None
    left, rest = parsed

    rest = _space(rest)
    if rest is None or rest[:len(keyword)].lower() != keyword:
        return None
    rest = _space(rest[len(keyword):])
    if rest is None:
        return None

    right = expression(rest)
    if right is None:
        return None
    right_expr, rest = right
    return build(left, right_expr), rest


def match_expression(text: str) -> Optional[Tuple[Expression, str]]:
    parsed = matcher(text)
    if parsed is None:
        return None
    found, rest = parsed
    return Expression.match(found), rest


def matcher(text: str) -> Optional[Tuple[Matcher, str]]:
    """matcher = key value_matcher"""
    key_match = _KEY_RE.match(text)
    if key_match is None:
        return None
    parsed = value_matcher(text[key_match.end():])
    if parsed is None:
        return None
    found, rest = parsed
    return Matcher(MatcherKey.resolve(key_match.group()), found), rest


def value_matcher(text: str) -> Optional[Tuple[ValueMatcher, str]]:
    for op in _OPERATORS:
        if not text.startswith(op.value):
            continue
        after = text[len(op.value):]
        parsed = regex(after) if op.is_regex else literal(after)
        if parsed is None:
            return None
        argument, rest = parsed
        try:
            return ValueMatcher.build(op, argument), rest
        except InvalidRegexError as exc:
            exc.remainder = after
            raise
    return None


def literal(text: str) -> Optional[Tuple[str, str]]:
    """literal = alphanumeric_run | quoted_string"""
    found = _ALNUM_RE.match(text)
    if found:
        return found.group(), text[found.end():]
    return quoted_string(text)


def quoted_string(text: str) -> Optional[Tuple[str, str]]:
    """A double-quoted string with backslash escapes; "" is the empty string."""
    if not text.startswith('"'):
        return None
    out = []
    i = 1
    while i < len(text):
        ch = text[i]
        if ch == '"':
            return "".join(out), text[i + 1:]
        if ch != "\\":
            out.append(ch)
            i += 1
            continue

        escaped = text[i + 1:i + 2]
        if escaped in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[escaped])
            i += 2
            continue
        hex_escape = _HEX_ESCAPE_RE.match(text, i + 1)
        if hex_escape is None:
            return None
        code_point = int(hex_escape.group(1), 16)
        if code_point > 0x10FFFF or 0xD800 <= code_point <= 0xDFFF:
            return None
        out.append(chr(code_point))
        i = hex_escape.end()
    # unterminated
    return None


def regex(text: str) -> Optional[Tuple[str, str]]:
    """
    A /.../ delimited pattern. "\\/" becomes "/"; any other backslash
    pair is handed to the regex engine untouched. "//" is not a regex.
    """
    if not text.startswith("/"):
        return None
    out = []
    i = 1
    while i < len(text):
        ch = text[i]
        if ch == "/":
            if not out:
                return None
            return "".join(out), text[i + 1:]
        if ch == "\\" and i + 1 < len(text):
            nxt = text[i + 1]
            out.append("/" if nxt == "/" else ch + nxt)
            i += 2
            continue
        out.append(ch)
        i += 1
    return None


def _space(text: str) -> Optional[str]:
    found = _SPACE_RE.match(text)
    if found is None:
        return None
    return text[found.end():]


# ============================================================================
# CANONICAL RENDERING (str(filter) parses back to an equal filter)
# ============================================================================

def _render_literal(value: str) -> str:
    if _ALNUM_RE.fullmatch(value):
        return value
    out = []
    for ch in value:
        if ch in _RENDER_ESCAPES:
            out.append(_RENDER_ESCAPES[ch])
        elif ord(ch) < 0x20 or ord(ch) == 0x7F:
            out.append("\\u{%X}" % ord(ch))
        else:
            out.append(ch)
    return '"' + "".join(out) + '"'


def _render_regex(pattern: str) -> str:
    out = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\" and i + 1 < len(pattern):
            out.append(pattern[i:i + 2])
            i += 2
            continue
        out.append("\\/" if ch == "/" else ch)
        i += 1
    return "/" + "".join(out) + "/"
