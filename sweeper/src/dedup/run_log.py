"""
Plain-text audit log for one run.

Line formats:
    2025-11-11 10:00:00 <free text>
    MOVED|<source>|<destination>
    DEL|<source>
    WARN|<message>
    ERROR|<message>
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional, TextIO


class RunLog:
    """Append-only run log. Use as a context manager or call close()."""

    def __init__(self, path: Optional[Path] = None):
        """
        Args:
            path: Log file. None keeps the log in memory only (lines attribute).
        """
        self.path = Path(path) if path is not None else None
        self.lines: list[str] = []
        self._fh: Optional[TextIO] = None

    def open(self) -> "RunLog":
        if self.path is not None and self._fh is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # surrogateescape: non-UTF-8 filenames are written back as their original bytes
            self._fh = open(self.path, "a", encoding="utf-8", errors="surrogateescape")
        return self

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def __enter__(self) -> "RunLog":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _write(self, line: str) -> None:
        self.lines.append(line)
        if self._fh is not None:
            self._fh.write(line + "\n")
            self._fh.flush()

    def info(self, message: str) -> None:
        self._write(f"{datetime.now().strftime('%Y-%m-%d %H:%M:%S')} {message}")

    def moved(self, source: Path, destination: Path) -> None:
        self._write(f"MOVED|{source}|{destination}")

    def deleted(self, source: Path) -> None:
        self._write(f"DEL|{source}")

    def warning(self, message: str) -> None:
        self._write(f"WARN|{message}")

    def error(self, message: str) -> None:
        self._write(f"ERROR|{message}")
