"""Manifest parser: validate either manifest shape and normalize it.

Two shapes describe the same question/explanation relationship:

- *entries*: ``[{"file": "a.md", "questions": ["Q1", "Q2"]}, ...]``
- *mapping*: ``{"Q1": ["a.md", "b.md"], ...}`` (ordered per question)

Both are normalized into a :class:`Manifest` of :class:`ManifestEntry`
objects plus a per-question ordering view.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any

import yaml

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

SHAPE_ENTRIES = "entries"
SHAPE_MAPPING = "mapping"

_YAML_SUFFIXES = frozenset({".yml", ".yaml"})


class ManifestError(ValueError):
    """Raised when a manifest is malformed or violates its schema."""


@dataclass(frozen=True)
class ManifestEntry:
    """One content file and the questions that must reference it."""

    path: str
    questions: tuple[str, ...] = ()


@dataclass(frozen=True)
class Manifest:
    """A validated manifest snapshot."""

    entries: tuple[ManifestEntry, ...] = ()
    orders: dict[str, tuple[str, ...]] = field(default_factory=dict)
    shape: str = SHAPE_ENTRIES
    warnings: tuple[str, ...] = ()

    @classmethod
    def empty(cls) -> Manifest:
        """Manifest used when no prior revision exists."""
        return cls()

    @property
    def paths(self) -> set[str]:
        return {e.path for e in self.entries}

    def by_path(self) -> dict[str, ManifestEntry]:
        return {e.path: e for e in self.entries}

    def position(self, question_id: str, path: str) -> int:
        """Return *path*'s 0-based position in *question_id*'s ordered list."""
        return self.orders[question_id].index(path)


def normalize_path(raw: str) -> str:
    """Normalize a manifest path to relative POSIX form.

    Raises:
        ManifestError: If the path is empty, absolute, or escapes the
            content root.
    """
    text = raw.strip().replace("\\", "/")
    if not text:
        msg = "empty content path"
        raise ManifestError(msg)
    pure = PurePosixPath(text)
    if pure.is_absolute():
        msg = f"content path must be relative: '{raw}'"
        raise ManifestError(msg)
    if ".." in pure.parts:
        msg = f"content path escapes the content root: '{raw}'"
        raise ManifestError(msg)
    return str(pure)


def _require_str(value: Any, what: str) -> str:
    if not isinstance(value, str):
        msg = f"{what} must be a string, got {type(value).__name__}"
        raise ManifestError(msg)
    return value


def _require_list(value: Any, what: str) -> list[Any]:
    if not isinstance(value, list):
        msg = f"{what} must be a list, got {type(value).__name__}"
        raise ManifestError(msg)
    return value


def _parse_entries(data: list[Any]) -> Manifest:
    entries: list[ManifestEntry] = []
    seen_paths: set[str] = set()
    orders: dict[str, list[str]] = {}
    owners: dict[str, str] = {}
    warnings: list[str] = []

    for index, item in enumerate(data):
        where = f"entry #{index}"
        if not isinstance(item, dict):
            msg = f"{where} must be an object, got {type(item).__name__}"
            raise ManifestError(msg)
        raw_path = item.get("file", item.get("path"))
        if raw_path is None:
            msg = f"{where} has no 'file' field"
            raise ManifestError(msg)
        path = normalize_path(_require_str(raw_path, f"{where} file"))
        if path in seen_paths:
            msg = f"duplicate content path '{path}'"
            raise ManifestError(msg)
        seen_paths.add(path)

        questions: list[str] = []
        for q in _require_list(item.get("questions", []), f"{where} questions"):
            qid = _require_str(q, f"question id in '{path}'").strip()
            if not qid:
                msg = f"empty question id in '{path}'"
                raise ManifestError(msg)
            if qid in questions:
                msg = f"question '{qid}' listed twice for '{path}'"
                raise ManifestError(msg)
            questions.append(qid)
            orders.setdefault(qid, []).append(path)
            if qid in owners:
                warnings.append(
                    f"Question '{qid}' declared by both '{owners[qid]}' and '{path}'"
                )
            else:
                owners[qid] = path

        entries.append(ManifestEntry(path=path, questions=tuple(questions)))

    return Manifest(
        entries=tuple(sorted(entries, key=lambda e: e.path)),
        orders={q: tuple(paths) for q, paths in orders.items()},
        shape=SHAPE_ENTRIES,
        warnings=tuple(warnings),
    )


def _parse_mapping(data: dict[Any, Any]) -> Manifest:
    orders: dict[str, tuple[str, ...]] = {}
    questions_by_path: dict[str, list[str]] = {}

    for raw_qid, raw_paths in data.items():
        qid = _require_str(raw_qid, "question id").strip()
        if not qid:
            msg = "empty question id"
            raise ManifestError(msg)
        paths: list[str] = []
        for raw in _require_list(raw_paths, f"files of question '{qid}'"):
            path = normalize_path(_require_str(raw, f"file of question '{qid}'"))
            if path in paths:
                msg = f"file '{path}' listed twice for question '{qid}'"
                raise ManifestError(msg)
            paths.append(path)
            questions_by_path.setdefault(path, []).append(qid)
        if paths:
            orders[qid] = tuple(paths)

    entries = tuple(
        ManifestEntry(path=path, questions=tuple(qids))
        for path, qids in sorted(questions_by_path.items())
    )
    return Manifest(entries=entries, orders=orders, shape=SHAPE_MAPPING)


def parse_manifest(text: str, *, source: str = "manifest", fmt: str = "json") -> Manifest:
    """Parse and validate manifest *text*.

    Args:
        text: Raw manifest content.
        source: Label used in error messages (file name, ``ref:path``...).
        fmt: ``"json"`` or ``"yaml"``.

    Returns:
        A fully validated :class:`Manifest`.  Empty text yields an empty
        manifest.

    Raises:
        ManifestError: If the text cannot be decoded or violates the schema.
    """
    if not text.strip():
        return Manifest.empty()

    try:
        data = yaml.safe_load(text) if fmt == "yaml" else json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        msg = f"{source}: cannot decode {fmt}: {exc}"
        raise ManifestError(msg) from exc

    try:
        if data is None:
            manifest = Manifest.empty()
        elif isinstance(data, list):
            manifest = _parse_entries(data)
        elif isinstance(data, dict):
            manifest = _parse_mapping(data)
        else:
            msg = f"top level must be a list or an object, got {type(data).__name__}"
            raise ManifestError(msg)
    except ManifestError as exc:
        msg = f"{source}: {exc}"
        raise ManifestError(msg) from exc

    for warning in manifest.warnings:
        logger.warning("%s: %s", source, warning)
    return manifest


def manifest_format(path: str | PurePosixPath | Path) -> str:
    """Infer the manifest format from a file suffix."""
    suffix = PurePosixPath(str(path)).suffix.lower()
    return "yaml" if suffix in _YAML_SUFFIXES else "json"


def load_manifest(path: Path) -> Manifest:
    """Read and validate the manifest file at *path*."""
    text = path.read_text(encoding="utf-8")
    return parse_manifest(text, source=path.name, fmt=manifest_format(path))
