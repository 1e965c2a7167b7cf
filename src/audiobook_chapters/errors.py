"""Exception hierarchy for audiobook chapter extraction.

Malformed or empty sidecar content is not an error: parsers return None for
it. Only conditions a caller may want to distinguish are raised.
"""

from pathlib import Path


class ChapterError(Exception):
    """Base exception for all chapter extraction errors."""


class ConfigError(ChapterError):
    """Invalid or missing configuration."""


class UnreadableFileError(ChapterError):
    """A candidate sidecar file could not be opened, read, or decoded."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Cannot read {path}: {reason}")
        self.path = path
        self.reason = reason


class ExternalToolError(ChapterError):
    """An external subprocess (ffprobe) failed."""

    def __init__(self, tool: str, exit_code: int, stderr: str) -> None:
        super().__init__(f"{tool} exited with code {exit_code}: {stderr}")
        self.tool = tool
        self.exit_code = exit_code
        self.stderr = stderr
