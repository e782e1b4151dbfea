# ============================================================================
# test_entries.py -- Tests for the Mbox Entry Stream
# ============================================================================
#
# COVERS:
#   TestFraming        -- "From " separators, blank line ownership, EOF
#   TestHeaders        -- unfolding, bad header lines, split_header_line
#   TestBodyLines      -- line endings and >From unquoting
#
# RUN:
#   python -m pytest tests/test_entries.py -v
#
# INTERNET ACCESS: NONE
# ============================================================================

import io

import pytest

import sys as _sys, os as _os
_sys.path.insert(0, _os.path.dirname(__file__))
from conftest import ARCHIVE

from mailfilter.core.entries import (
    Begin,
    Body,
    End,
    HeaderEntry,
    entries_from_bytes,
    iter_entries,
    split_header_line,
)
from mailfilter.core.exceptions import UnrecognizedHeaderLine
from mailfilter.core.mail import Header


def tokens(text):
    return list(entries_from_bytes(text.encode("utf-8")))


def bodies(entries):
    return [e.line for e in entries if isinstance(e, Body)]


class TestFraming:

    def test_minimal_message(self):
        assert tokens("From a@b Mon Jan 1 00:00:00 2020\nSubject: hi\n\nhello\n") == [
            Begin(),
            HeaderEntry(Header("Subject", "hi")),
            Body(b"hello"),
            End(),
        ]

    def test_archive_has_three_messages(self):
        entries = tokens(ARCHIVE)
        assert entries.count(Begin()) == 3
        assert entries.count(End()) == 3

    def test_blank_line_before_separator_is_dropped(self):
        text = (
            "From a Mon Jan 1 00:00:00 2020\n\nfirst\n\n"
            "From b Mon Jan 1 00:00:00 2020\n\nsecond\n"
        )
        assert bodies(tokens(text)) == [b"first", b"second"]

    def test_from_without_blank_line_is_body(self):
        text = "From a Mon Jan 1 00:00:00 2020\n\nline\nFrom here on\n"
        entries = tokens(text)
        assert entries.count(Begin()) == 1
        assert bodies(entries) == [b"line", b"From here on"]

    def test_inner_blank_lines_are_kept(self):
        text = "From a Mon Jan 1 00:00:00 2020\n\none\n\n\ntwo\n"
        assert bodies(tokens(text)) == [b"one", b"", b"", b"two"]

    def test_trailing_blank_line_at_eof_is_dropped(self):
        text = "From a Mon Jan 1 00:00:00 2020\n\nonly\n\n"
        assert bodies(tokens(text)) == [b"only"]

    def test_lines_before_first_separator_are_ignored(self):
        text = "junk\nmore junk\n\nFrom a Mon Jan 1 00:00:00 2020\n\nreal\n"
        entries = tokens(text)
        assert entries[0] == Begin()
        assert bodies(entries) == [b"real"]

    def test_empty_input(self):
        assert tokens("") == []

    def test_eof_inside_headers_leaves_message_open(self):
        entries = tokens("From a Mon Jan 1 00:00:00 2020\nSubject: cut\n")
        assert entries == [Begin(), HeaderEntry(Header("Subject", "cut"))]

    def test_message_without_body(self):
        entries = tokens("From a Mon Jan 1 00:00:00 2020\nSubject: x\n\n")
        assert entries == [Begin(), HeaderEntry(Header("Subject", "x")), End()]


class TestHeaders:

    def test_folded_header_is_unfolded(self):
        text = (
            "From a Mon Jan 1 00:00:00 2020\n"
            "Content-Type: multipart/alternative;\n"
            ' boundary="abc"\n'
            "\n"
        )
        headers = [e.header for e in tokens(text) if isinstance(e, HeaderEntry)]
        assert headers == [Header("Content-Type", 'multipart/alternative; boundary="abc"')]

    def test_tab_continuation(self):
        text = "From a Mon Jan 1 00:00:00 2020\nSubject: long\n\tsubject\n\n"
        headers = [e.header for e in tokens(text) if isinstance(e, HeaderEntry)]
        assert headers == [Header("Subject", "long\tsubject")]

    def test_header_order_is_kept(self):
        text = "From a Mon Jan 1 00:00:00 2020\nB: 2\nA: 1\nB: 3\n\n"
        headers = [e.header for e in tokens(text) if isinstance(e, HeaderEntry)]
        assert [h.key for h in headers] == ["B", "A", "B"]

    def test_bad_header_line_is_skipped(self):
        text = (
            "From a Mon Jan 1 00:00:00 2020\n"
            "Subject: ok\n"
            "this is not a header\n"
            "Date: today\n"
            "\n"
            "body\n"
        )
        entries = tokens(text)
        headers = [e.header for e in entries if isinstance(e, HeaderEntry)]
        assert headers == [Header("Subject", "ok"), Header("Date", "today")]
        assert bodies(entries) == [b"body"]

    def test_split_header_line(self):
        assert split_header_line("Subject:  Hello: world") == Header("Subject", "Hello: world")

    def test_split_header_line_keeps_trailing_whitespace(self):
        assert split_header_line("Subject: padded  ") == Header("Subject", "padded  ")

    def test_header_value_is_verbatim_after_unfolding(self):
        text = "From a Mon Jan 1 00:00:00 2020\nSubject: one \n  two \n\n"
        headers = [e.header for e in tokens(text) if isinstance(e, HeaderEntry)]
        assert headers == [Header("Subject", "one   two ")]

    def test_split_header_line_empty_value(self):
        assert split_header_line("X-Empty:") == Header("X-Empty", "")

    @pytest.mark.parametrize("line", ["no colon here", ": no key", "two words: value"])
    def test_split_header_line_rejects(self, line):
        with pytest.raises(UnrecognizedHeaderLine) as info:
            split_header_line(line)
        assert info.value.line == line
        assert info.value.error_code == "MIME-002"


class TestBodyLines:

    def test_crlf_and_cr_are_stripped(self):
        data = b"From a Mon Jan 1 00:00:00 2020\r\nSubject: s\r\n\r\nwin\r\nmac\rlast"
        entries = list(iter_entries(io.BytesIO(data)))
        assert HeaderEntry(Header("Subject", "s")) in entries
        # only \n splits lines; a lone \r is stripped when it ends one
        assert bodies(entries) == [b"win", b"mac\rlast"]

    def test_from_quoting_is_removed_once(self):
        text = (
            "From a Mon Jan 1 00:00:00 2020\n\n"
            ">From the start\n"
            ">>From deeper\n"
            "> quoted reply\n"
        )
        assert bodies(tokens(text)) == [b"From the start", b">From deeper", b"> quoted reply"]

    def test_accepts_list_of_lines(self):
        lines = [b"From a Mon Jan 1 00:00:00 2020\n", b"\n", b"x\n"]
        assert list(iter_entries(lines)) == [Begin(), Body(b"x"), End()]

    def test_non_utf8_body_bytes_are_preserved(self):
        data = b"From a Mon Jan 1 00:00:00 2020\n\ncaf\xe9\n"
        assert bodies(list(iter_entries(io.BytesIO(data)))) == [b"caf\xe9"]
