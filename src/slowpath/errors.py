"""Exception hierarchy for slowpath.

Per-file failures (parse, I/O) are reported as run-level warnings and never
abort a batch. Configuration failures abort the whole run.
"""

from __future__ import annotations


class SlowpathError(Exception):
    """Base exception for all slowpath errors."""


class FileFailure(SlowpathError):
    """A single file could not be analyzed; the batch continues."""

    kind = "file"

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        self.message = message
        super().__init__(f"{self.describe()} {path}: {message}")

    def describe(self) -> str:
        return f"Failed to {self.kind}"


class ParseFailure(FileFailure):
    """The file is not syntactically valid Python."""

    kind = "parse"


class IoFailure(FileFailure):
    """The file could not be read or decoded."""

    kind = "read"


class ConfigurationError(SlowpathError):
    """Malformed settings. Running with ambiguous severities is refused."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Configuration error: {message}")
