"""CLI entry point for audiobook chapter extraction."""

import json
import os
from pathlib import Path

import click
from loguru import logger

from .aggregator import MetadataAggregator
from .config import ChapterConfig, enable_flag_for
from .errors import ConfigError
from .ffprobe import duration_to_timestamp
from .models import NamingStrategy, ParsedMetadata

log = logger.bind(stage="cli")


def _find_config_file() -> Path | None:
    """Look for .env next to the package or in cwd."""
    pkg_dir = Path(__file__).resolve().parent
    for candidate in [
        pkg_dir.parent.parent / ".env",  # dev: src/../.env
        Path.cwd() / ".env",
    ]:
        if candidate.is_file():
            return candidate
    return None


def _load_env_file(env_file: Path) -> None:
    """Load a shell-style .env file into os.environ (without overriding)."""
    for line in env_file.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        # Shell expansions like ${VAR:-default} are left to the shell
        if "${" in value:
            continue
        # CLI > env > file
        if key not in os.environ:
            os.environ[key] = value


def _print_summary(record: ParsedMetadata) -> None:
    click.echo(f"Title:     {record.title or '(unknown)'}")
    if record.authors:
        click.echo(f"Authors:   {', '.join(record.authors)}")
    if record.narrators:
        click.echo(f"Narrators: {', '.join(record.narrators)}")
    if record.series_name:
        index = f" #{record.series_index:g}" if record.series_index is not None else ""
        click.echo(f"Series:    {record.series_name}{index}")
    click.echo(f"Source:    {record.source_kind}")

    if not record.chapters:
        click.echo("Chapters:  none")
        return
    click.echo(f"Chapters:  {len(record.chapters)}")
    for chapter in record.chapters:
        click.echo(f"  {duration_to_timestamp(chapter.start_seconds)}  {chapter.name}")


@click.command()
@click.argument("path", type=click.Path(exists=True))
@click.option(
    "--priority",
    default=None,
    help="Comma-separated source order for merging, e.g. opf,json,nfo,cue,ffmetadata,txt.",
)
@click.option(
    "--naming",
    type=click.Choice([s.value for s in NamingStrategy]),
    default=None,
    help="Chapter naming for chapter-per-file audiobooks.",
)
@click.option("--no-multi-file", is_flag=True, help="Skip multi-file detection.")
@click.option(
    "--disable",
    "disabled",
    multiple=True,
    metavar="KIND",
    help="Skip a source kind (cue, opf, json, nfo, ffmetadata, txt). Repeatable.",
)
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(exists=True),
    default=None,
    help="Path to .env file.",
)
def main(
    path: str,
    priority: str | None,
    naming: str | None,
    no_multi_file: bool,
    disabled: tuple[str, ...],
    as_json: bool,
    verbose: bool,
    config_file: str | None,
) -> None:
    """Extract chapters and metadata from the sidecar files of an audiobook."""
    item_path = Path(path).resolve()

    # Load .env into environment before ChapterConfig reads env vars
    env_file = Path(config_file) if config_file else _find_config_file()
    if env_file and env_file.is_file():
        _load_env_file(env_file)
        log.debug(f"Loaded env from {env_file}")

    # Pass CLI flags as kwargs to avoid env pollution
    config_kwargs: dict[str, bool | str] = {}
    if priority is not None:
        config_kwargs["metadata_priority"] = priority
    if naming is not None:
        config_kwargs["multi_file_naming_strategy"] = naming
    if no_multi_file:
        config_kwargs["enable_multi_file_detection"] = False
    for tag in disabled:
        try:
            config_kwargs[enable_flag_for(tag)] = False
        except ConfigError as e:
            raise click.BadParameter(str(e), param_hint="--disable")
    if verbose:
        config_kwargs["log_level"] = "DEBUG"

    config = ChapterConfig(**config_kwargs)  # type: ignore[arg-type]
    config.setup_logging()

    log.debug(f"Extracting from {item_path} (priority={config.priority_order})")
    record = MetadataAggregator().collect(item_path, config)

    if record is None:
        click.echo("No metadata found", err=True)
        raise SystemExit(1)

    if as_json:
        click.echo(json.dumps(record.to_dict(), indent=2, ensure_ascii=False))
    else:
        _print_summary(record)
