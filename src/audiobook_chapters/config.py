"""Extraction configuration via pydantic-settings (.env + env vars)."""

import os
import sys
from pathlib import Path

from loguru import logger
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError
from .models import DEFAULT_PRIORITY, NamingStrategy, SourceKind

# Parser kind -> name of the flag that enables it
ENABLE_FLAGS: dict[SourceKind, str] = {
    SourceKind.CUE: "enable_cue",
    SourceKind.OPF: "enable_opf",
    SourceKind.JSON: "enable_json",
    SourceKind.NFO: "enable_nfo",
    SourceKind.FFMETADATA: "enable_ffmetadata",
    SourceKind.TEXT: "enable_text",
    SourceKind.MULTI_FILE: "enable_multi_file_detection",
}


def enable_flag_for(tag: str) -> str:
    """Name of the enable flag for a source-kind tag such as "cue" or "multifile".

    Raises ConfigError for tags that have no flag.
    """
    try:
        kind = SourceKind(tag.strip().lower())
    except ValueError:
        kind = None
    if kind not in ENABLE_FLAGS:
        known = ", ".join(k.value for k in ENABLE_FLAGS)
        raise ConfigError(f"Unknown source kind {tag!r} (expected one of: {known})")
    return ENABLE_FLAGS[kind]


def parse_priority_order(priority: str | None) -> list[str]:
    """Split a comma-separated priority string into lower-cased source tags.

    A blank string yields the default order.
    """
    if not priority or not priority.strip():
        return list(DEFAULT_PRIORITY)
    return [part.strip().lower() for part in priority.split(",") if part.strip()]


class ChapterConfig(BaseSettings):
    """All extraction configuration with layered resolution:
    .env file < environment variables < constructor kwargs.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # -- Sources --
    enable_cue: bool = True
    enable_opf: bool = True
    enable_json: bool = True
    enable_nfo: bool = True
    enable_ffmetadata: bool = True
    enable_text: bool = True
    enable_multi_file_detection: bool = True

    # -- Merge --
    multi_file_naming_strategy: NamingStrategy = NamingStrategy.USE_FILENAME
    metadata_priority: str = ",".join(DEFAULT_PRIORITY)

    # -- Parallel parsing --
    max_parallel_parsers: int = 0  # 0 = auto (CPU-based)

    # -- Logging --
    log_level: str = "INFO"
    log_dir: Path | None = None

    @property
    def priority_order(self) -> list[str]:
        """Source-kind tags, highest priority first."""
        return parse_priority_order(self.metadata_priority)

    @property
    def max_workers(self) -> int:
        if self.max_parallel_parsers > 0:
            return self.max_parallel_parsers
        return max(1, min(8, os.cpu_count() or 1))

    def is_enabled(self, kind: SourceKind) -> bool:
        """Whether the parser/detector of the given kind should run."""
        flag = ENABLE_FLAGS.get(kind)
        if flag is None:
            return True
        return bool(getattr(self, flag))

    def setup_logging(self) -> None:
        """Configure loguru for extraction runs."""
        logger.remove()  # Remove default stderr handler

        log_format = (
            "{time:YYYY-MM-DDTHH:mm:ssZ} | {level:<8} | "
            "{extra[stage]:<12} | {message}"
        )

        def _default_extra(record):
            record["extra"].setdefault("stage", "")
            return True

        logger.add(
            sys.stderr,
            format=log_format,
            level=self.log_level.upper(),
            filter=_default_extra,
        )

        if self.log_dir is None:
            return

        self.log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(self.log_dir / "audiobook-chapters.log"),
            format=log_format,
            level="DEBUG",
            rotation="10 MB",
            retention="30 days",
            filter=_default_extra,
        )
