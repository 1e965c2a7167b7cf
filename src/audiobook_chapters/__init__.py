"""Audiobook Chapters -- extract and merge chapter and book metadata from sidecar files.

Core modules:
    models      -- Record types (ParsedMetadata, ChapterMark), SourceKind/NamingStrategy
                   enums, canonical tick helpers (100 ns units)
    config      -- Extraction configuration via pydantic-settings. Passed explicitly
                   into every collection call; there is no global instance.
    aggregator  -- Directory scan, parallel parsing, priority-ordered merge
    multifile   -- Chapter-per-file directory detection and chapter synthesis
    ffprobe     -- Default per-file duration lookup via ffprobe subprocess. Raises
                   ValueError on empty output, ExternalToolError on failure.
    sanitize    -- HTML stripping and chapter-name cleanup
    cli         -- Click CLI entry point (audiobook-chapters PATH)

Subpackages:
    parsers     -- One parser per sidecar format (cue, opf, json, nfo, ffmetadata, txt)
"""
