# ============================================================================
# mailfilter -- Output File Naming (mailfilter/core/naming.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Turns "<date>-<subject>" into a name that is safe on every file system:
#   every run of characters other than A-Z, a-z, 0-9 becomes one "_",
#   trailing underscores are dropped, and the result is capped so that
#   the extension still fits in a 255-byte file name.
#
#   "20200605T232235-Re: Hello!!" -> "20200605T232235_Re_Hello"
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import re

MAX_NAME_LENGTH = 251

_UNSAFE_RUN = re.compile(r"[^A-Za-z0-9]+")


def envelope_filename(text: str, max_length: int = MAX_NAME_LENGTH) -> str:
    """Deterministic, pure sanitizer. Output is ASCII alphanumerics and '_'."""
    sanitized = _UNSAFE_RUN.sub("_", text).rstrip("_")
    return sanitized[:max_length]


def envelope_basename(date: str, subject: str, max_length: int = MAX_NAME_LENGTH) -> str:
    return envelope_filename(f"{date}-{subject}", max_length)
