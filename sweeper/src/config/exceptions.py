"""
Sweeper - Canonical exception hierarchy.

Per-file failures (scan, hash, move/delete) are handled locally as OSError
and never surface here. Only errors that must abort a run before any
mutation derive from SetupError.
"""


class SweeperError(Exception):
    """Base exception Sweeper."""


class SetupError(SweeperError):
    """Pipeline setup failed; nothing has been touched yet."""


class HashingUnavailableError(SetupError):
    """No usable SHA-256 primitive."""


class QuarantineSetupError(SetupError):
    """Quarantine root cannot be created or is not a directory."""


class ArtifactSetupError(SetupError):
    """Run log or restore script location is not writable."""


class LedgerError(SweeperError):
    """Restore ledger is unreadable or an entry could not be replayed."""
