# ============================================================================
# conftest.py -- Shared Test Fixtures for the mailfilter Test Suite
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Pytest automatically loads this file before any test runs.
#   It provides:
#     1. sys.path setup so "from mailfilter.core.X import Y" works from any test
#     2. Sample mbox archives shared by the decoder, driver and CLI tests
#     3. A write_archive fixture that puts an archive on disk
#
# INTERNET ACCESS: NONE
# ============================================================================

import sys
from pathlib import Path

import pytest

# -- sys.path setup --
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


# ============================================================================
# SAMPLE ARCHIVES
# ============================================================================
#
# Written as plain strings so each test can read the exact bytes the
# tokenizer sees. "\n" line endings throughout.
# ============================================================================

SINGLE_PART = (
    "From alice@example.com Fri Jun 05 23:22:35 2020\n"
    "From: Alice <alice@example.com>\n"
    "To: Bob <bob@example.com>\n"
    "Subject: Lunch on Friday\n"
    "Date: Fri, 05 Jun 2020 23:22:35 +0000\n"
    "\n"
    "Hi Bob,\n"
    "\n"
    "Lunch on Friday?\n"
    "\n"
)

MULTIPART = (
    "From 1@mail Fri Jun 05 23:22:35 +0000 2020\n"
    "From: One <1@mail>\n"
    "Subject: Quarterly report\n"
    "Date: Sat, 06 Jun 2020 08:15:00 +0200\n"
    "Content-Type: multipart/alternative;\n"
    ' boundary="X"\n'
    "\n"
    "This is a multi-part message in MIME format.\n"
    "--X\n"
    "Content-Type: text/plain; charset=UTF-8\n"
    "Content-Transfer-Encoding: quoted-printable\n"
    "\n"
    "Plain line one\n"
    "Plain line two\n"
    "--X\n"
    "Content-Type: text/html; charset=UTF-8\n"
    "\n"
    "<p>Html line</p>\n"
    "--X--\n"
    "epilogue text\n"
    "\n"
)

THIRD = (
    "From carol@example.org Mon Jun 08 09:00:00 2020\n"
    "From: Carol <carol@example.org>\n"
    "Subject: Re: Lunch on Friday\n"
    "Date: Mon, 08 Jun 2020 09:00:00 -0400\n"
    "\n"
    "Sounds good, dude.\n"
)

ARCHIVE = SINGLE_PART + MULTIPART + THIRD


@pytest.fixture
def write_archive(tmp_path):
    """
    WHAT: Write an mbox string to a temporary file and return its path.
    WHY:  The driver and CLI read real files; tmp_path is cleaned up
          after each test.
    """
    def _write(text=ARCHIVE, name="archive.mbox"):
        path = tmp_path / name
        path.write_bytes(text.encode("utf-8"))
        return path
    return _write
