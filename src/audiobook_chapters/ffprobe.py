"""FFprobe subprocess wrappers for audio duration lookup."""

import subprocess
from pathlib import Path

from .errors import ExternalToolError


def _run_ffprobe(args: list[str]) -> subprocess.CompletedProcess:
    """Run ffprobe with common flags."""
    return subprocess.run(
        ["ffprobe", "-v", "error"] + args,
        capture_output=True,
        text=True,
    )


def get_duration(file: Path) -> float:
    """Get duration in seconds.

    Raises ExternalToolError if ffprobe fails, ValueError if it reports
    no duration (corrupt file, unsupported container).
    """
    result = _run_ffprobe([
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        str(file),
    ])
    if result.returncode != 0:
        raise ExternalToolError("ffprobe", result.returncode, result.stderr.strip())
    output = result.stdout.strip()
    if not output or output == "N/A":
        raise ValueError(f"ffprobe returned empty duration for {file}")
    return float(output)


def duration_to_timestamp(seconds: float) -> str:
    """Convert seconds to HH:MM:SS."""
    total = int(seconds)
    h = total // 3600
    m = (total % 3600) // 60
    s = total % 60
    return f"{h:02d}:{m:02d}:{s:02d}"
