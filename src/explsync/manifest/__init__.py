"""Manifest domain: parsing, content files, previous revisions."""

from explsync.manifest.content import ContentSource
from explsync.manifest.loader import (
    SHAPE_ENTRIES,
    SHAPE_MAPPING,
    Manifest,
    ManifestEntry,
    ManifestError,
    load_manifest,
    parse_manifest,
)
from explsync.manifest.revision import (
    PreviousSnapshot,
    changed_content_paths,
    head_revision,
    load_previous_snapshot,
    read_manifest_at_ref,
    validate_ref,
)

__all__ = [
    "SHAPE_ENTRIES",
    "SHAPE_MAPPING",
    "ContentSource",
    "Manifest",
    "ManifestEntry",
    "ManifestError",
    "PreviousSnapshot",
    "changed_content_paths",
    "head_revision",
    "load_manifest",
    "load_previous_snapshot",
    "parse_manifest",
    "read_manifest_at_ref",
    "validate_ref",
]
