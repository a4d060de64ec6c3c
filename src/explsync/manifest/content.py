"""Content file reader for the explanations directory."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import quote

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

# Suffixes treated as explanation content when scanning the directory.
CONTENT_SUFFIXES = frozenset({".md", ".svg"})


class ContentSource:
    """Reads explanation bodies from *content_dir*.

    Markdown is returned verbatim.  SVG diagrams are not stored inline:
    they become a markdown image pointing at ``svg_base_url`` + the
    url-quoted relative path.
    """

    def __init__(self, content_dir: Path, *, svg_base_url: str = "") -> None:
        self.content_dir = content_dir
        self.svg_base_url = svg_base_url

    def read(self, path: str) -> str | None:
        """Return the stored body for *path*, or ``None`` if it is missing or unreadable."""
        file_path = self.content_dir / path
        if not file_path.is_file():
            logger.debug("Content file missing: %s", file_path)
            return None
        if file_path.suffix.lower() == ".svg":
            url = self.svg_base_url + quote(path, safe="")
            return f"![]({url})"
        try:
            return file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Cannot read %s: %s", file_path, exc)
            return None

    def scan(self) -> list[str]:
        """List content files on disk as sorted relative POSIX paths."""
        if not self.content_dir.is_dir():
            return []
        return sorted(
            p.relative_to(self.content_dir).as_posix()
            for p in self.content_dir.rglob("*")
            if p.is_file() and p.suffix.lower() in CONTENT_SUFFIXES
        )
