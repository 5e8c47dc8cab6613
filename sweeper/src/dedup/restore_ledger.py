"""
Restore ledger: append-only inverse script for quarantine moves.

The ledger is a self-contained bash script. Each applied move appends one
`restore_one <destination> <original>` line, flushed immediately, so a run
interrupted half-way still leaves a valid (partial) script. The file only
exists once a first move has been recorded.

The same file can be replayed from Python (read_entries + restore), which
is what `sweeper --restore` does.
"""

from __future__ import annotations

import os
import shlex
import shutil
from pathlib import Path
from typing import Iterable, Optional

import structlog

from sweeper.src.config.exceptions import LedgerError
from sweeper.src.dedup.models import RestoreEntry
from sweeper.src.dedup.scanner import is_under

logger = structlog.get_logger(__name__)

RESTORE_COMMAND = "restore_one"
ROOT_VARIABLE = "QUARANTINE_ROOT"
# Filenames are bytes on POSIX; non-UTF-8 names round-trip as surrogates
ENCODING = "utf-8"
ENCODING_ERRORS = "surrogateescape"

_HEADER = """#!/usr/bin/env bash
# restore script generated by sweeper
# Moves quarantined duplicates back to their original paths, in move order.
set -euo pipefail

{root_var}={root}
failures=0
trap '[ "$failures" -eq 0 ] || {{ echo "$failures file(s) could not be restored" >&2; exit 1; }}' EXIT

prune_empty() {{
  local dir="$1"
  while [ "$dir" != "${root_var}" ] && [ "${{dir#"${root_var}"/}}" != "$dir" ]; do
    rmdir -- "$dir" 2>/dev/null || break
    dir="$(dirname -- "$dir")"
  done
}}

{cmd}() {{
  local dest="$1" orig="$2" parent
  parent="$(dirname -- "$orig")"
  if [ ! -e "$dest" ] && [ ! -L "$dest" ]; then
    echo "missing in quarantine: $dest" >&2
    return 1
  fi
  if [ -e "$orig" ] || [ -L "$orig" ]; then
    echo "refusing to overwrite: $orig" >&2
    return 1
  fi
  if ! mkdir -p -- "$parent" 2>/dev/null || [ ! -w "$parent" ]; then
    if [ "$(id -u)" -ne 0 ]; then
      echo "Run as root to restore $orig" >&2
      exit 1
    fi
    echo "cannot create $parent" >&2
    return 1
  fi
  mv -- "$dest" "$orig" || return 1
  prune_empty "$(dirname -- "$dest")"
}}

"""


def format_entry(entry: RestoreEntry) -> str:
    return (
        f"{RESTORE_COMMAND} {shlex.quote(str(entry.destination))} "
        f"{shlex.quote(str(entry.original))} || failures=$((failures + 1))\n"
    )


class RestoreLedger:
    """Single-writer, append-only restore script."""

    def __init__(self, path: Path, quarantine_root: Path):
        self.path = Path(path)
        self.quarantine_root = Path(quarantine_root)
        self.entries_written = 0

    @property
    def created(self) -> bool:
        return self.entries_written > 0

    def append(self, entry: RestoreEntry) -> None:
        """
        Record one applied move.

        Raises:
            OSError: the ledger could not be created or written
        """
        if not self.created:
            self._create()

        with open(self.path, "a", encoding=ENCODING, errors=ENCODING_ERRORS) as f:
            f.write(format_entry(entry))
            f.flush()

        self.entries_written += 1

    def _create(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        header = _HEADER.format(
            root_var=ROOT_VARIABLE,
            root=shlex.quote(str(self.quarantine_root)),
            cmd=RESTORE_COMMAND,
        )
        # "x": never truncate the ledger of an earlier run
        with open(self.path, "x", encoding=ENCODING, errors=ENCODING_ERRORS) as f:
            f.write(header)
        os.chmod(self.path, 0o755)
        logger.info("restore_ledger_created", path=str(self.path))


def read_entries(path: Path) -> tuple[Optional[Path], list[RestoreEntry]]:
    """
    Parse a ledger written by RestoreLedger.

    Returns:
        (quarantine_root, entries in recorded order)

    A quoted name may contain newlines, so a statement spans as many lines
    as it takes for its quotes to close.

    Raises:
        LedgerError: file missing or a statement cannot be parsed
    """
    try:
        # newline="": keep "\r" and friends inside names untouched
        with open(path, encoding=ENCODING, errors=ENCODING_ERRORS, newline="") as f:
            lines = f.read().split("\n")
    except OSError as e:
        raise LedgerError(f"cannot read ledger {path}: {e}") from e

    quarantine_root: Optional[Path] = None
    entries: list[RestoreEntry] = []
    pending: Optional[str] = None
    start = 0

    for lineno, line in enumerate(lines, start=1):
        if pending is None:
            if not line.startswith((f"{ROOT_VARIABLE}=", f"{RESTORE_COMMAND} ")):
                continue
            pending, start = line, lineno
        else:
            pending = f"{pending}\n{line}"

        try:
            tokens = shlex.split(pending)
        except ValueError:
            continue  # quotes still open

        statement, pending = tokens, None
        try:
            if statement[0].startswith(f"{ROOT_VARIABLE}="):
                quarantine_root = Path(statement[0].split("=", 1)[1])
            else:
                entries.append(
                    RestoreEntry(destination=Path(statement[1]), original=Path(statement[2]))
                )
        except IndexError as e:
            raise LedgerError(f"{path}:{start}: malformed ledger statement") from e

    if pending is not None:
        raise LedgerError(f"{path}:{start}: unterminated quote in ledger statement")

    return quarantine_root, entries


class RestoreReport:
    """Result of replaying a ledger."""

    def __init__(self):
        self.restored: int = 0
        self.failed: int = 0
        self.failures: list[tuple[str, str]] = []  # (original, reason)


def _prune_empty(directory: Path, quarantine_root: Optional[Path]) -> None:
    if quarantine_root is None:
        return
    while directory != quarantine_root and is_under(directory, quarantine_root):
        try:
            directory.rmdir()
        except OSError:
            break
        directory = directory.parent


def restore(entries: Iterable[RestoreEntry], quarantine_root: Optional[Path] = None) -> RestoreReport:
    """Move every destination back to its original path, oldest entry first."""
    report = RestoreReport()

    for entry in entries:
        reason = None
        if not os.path.lexists(entry.destination):
            reason = "missing in quarantine"
        elif os.path.lexists(entry.original):
            reason = "original path already exists"

        if reason is None:
            try:
                entry.original.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(entry.destination), str(entry.original))
            except OSError as e:
                reason = str(e)

        if reason is not None:
            report.failed += 1
            report.failures.append((str(entry.original), reason))
            logger.warning(
                "restore_failed",
                destination=str(entry.destination),
                original=str(entry.original),
                reason=reason,
            )
            continue

        report.restored += 1
        _prune_empty(entry.destination.parent, quarantine_root)
        logger.info("restored", original=str(entry.original))

    return report
