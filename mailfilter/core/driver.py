# ============================================================================
# mailfilter -- Archive Driver (mailfilter/core/driver.py)
# ============================================================================
#
# WHAT THIS FILE DOES (plain English):
#   Runs one archive through the whole pipeline:
#
#     mbox file -> entries.py -> decoder.py -> Filter.matches -> consumer
#
#   The consumer decides what happens to each matching message: count it
#   (CountConsumer) or write its plain-text body to a file
#   (ExtractConsumer).
#
# ERROR POLICY:
#   - A malformed filter never reaches this file; the CLI parses it first.
#   - Odd headers inside a message are logged by the decoder and skipped.
#   - An archive that stops inside a header block raises
#     UnexpectedEndOfStream after the complete messages before it have
#     been consumed.
#   - A matched message that cannot be written raises OutputWriteError,
#     so the CLI can blame the output directory and not the archive.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from .config import Config
from .decoder import HeaderPredicate, iter_mails
from .entries import iter_entries
from .exceptions import OutputWriteError
from .filter import Filter
from .mail import Header, Mail
from .naming import MAX_NAME_LENGTH, envelope_basename
from ..monitoring.logger import ExtractLogEntry, get_app_logger

# Headers extract needs for file names, kept even when pruning
NAMING_HEADERS = ("Subject", "Date")


class MailConsumer(Protocol):
    def consume(self, mail: Mail) -> None:
        ...


@dataclass
class RunStats:
    seen: int = 0
    matched: int = 0


class CountConsumer:
    """Counts matching messages."""

    def __init__(self) -> None:
        self.count = 0

    def consume(self, mail: Mail) -> None:
        self.count += 1


class ExtractConsumer:
    """
    Writes body_text() of each matching message to
    <directory>/<sanitized "date-subject"><extension>.

    A later message with the same date and subject overwrites the earlier
    file, the same as re-running an extraction does.
    """

    def __init__(
        self,
        directory: str = ".",
        extension: str = ".txt",
        max_name_length: int = MAX_NAME_LENGTH,
    ) -> None:
        self.directory = Path(directory)
        self.extension = extension
        self.max_name_length = max_name_length
        self.written = []
        self.logger = get_app_logger("mailfilter.extract")

    @classmethod
    def from_config(cls, config: Config) -> "ExtractConsumer":
        return cls(
            config.output.directory,
            config.output.extension,
            config.output.max_name_length,
        )

    def path_for(self, mail: Mail) -> Path:
        name = envelope_basename(mail.date(), mail.subject(), self.max_name_length)
        return self.directory / f"{name}{self.extension}"

    def consume(self, mail: Mail) -> None:
        path = self.path_for(mail)
        if path.exists():
            self.logger.info("mail_overwrites_file", path=str(path))
        data = mail.body_text().encode("utf-8")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise OutputWriteError(path=str(path), reason=str(exc)) from exc
        self.written.append(path)
        self.logger.info(
            "mail_saved",
            **ExtractLogEntry.build(str(path), mail.subject(), mail.date(), len(data)),
        )


def header_predicate_for(flt: Filter, config: Optional[Config] = None) -> Optional[HeaderPredicate]:
    """
    The decoder's header filter: None keeps everything, otherwise keep the
    headers the query refers to plus the naming headers.
    """
    if config is None or config.decoder.retain_all_headers:
        return None

    def keep(header: Header) -> bool:
        if flt.includes_header(header):
            return True
        return any(header.key_matches(name) for name in NAMING_HEADERS)

    return keep


def run_archive(
    path: str,
    flt: Filter,
    consumer: MailConsumer,
    config: Optional[Config] = None,
) -> RunStats:
    """
    Decode every message in the archive at `path` and hand the ones that
    match `flt` to `consumer`.

    Raises:
        OSError: the archive cannot be opened or read.
        OutputWriteError: the consumer could not write a matched message.
        UnexpectedEndOfStream: the archive stops inside a message header
            block.
    """
    stats = RunStats()
    predicate = header_predicate_for(flt, config)
    with open(os.fspath(path), "rb") as stream:
        for mail in iter_mails(iter_entries(stream), predicate):
            stats.seen += 1
            if flt.matches(mail):
                stats.matched += 1
                consumer.consume(mail)
    return stats
