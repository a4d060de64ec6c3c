"""Previous-revision source: manifest and changed content paths at a git ref."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from explsync.manifest.loader import Manifest, manifest_format, parse_manifest

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreviousSnapshot:
    """Manifest state at *ref* plus content paths changed since then."""

    ref: str
    manifest: Manifest
    changed_paths: frozenset[str] = field(default_factory=frozenset)
    manifest_existed: bool = True


def _git(project_root: Path, *args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(  # noqa: S603
        ["git", *args],  # noqa: S607
        cwd=project_root,
        capture_output=True,
        text=True,
    )


def validate_ref(project_root: Path, ref: str) -> bool:
    """Check if the git ref is valid using ``git rev-parse --verify``."""
    result = _git(project_root, "rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}")
    return result.returncode == 0


def head_revision(project_root: Path) -> str | None:
    """Return the commit sha of ``HEAD``, or ``None`` outside a git repo."""
    result = _git(project_root, "rev-parse", "HEAD")
    if result.returncode != 0:
        return None
    return result.stdout.strip()


def read_manifest_at_ref(project_root: Path, manifest_rel: str, ref: str) -> str | None:
    """Read the manifest's content at a given git ref.

    *manifest_rel* is relative to *project_root*, which need not be the
    repository top level.  Returns ``None`` if the file didn't exist at
    that ref.
    """
    result = _git(project_root, "show", f"{ref}:./{manifest_rel}")
    if result.returncode != 0:
        return None
    return result.stdout


def changed_content_paths(project_root: Path, content_rel: str, ref: str) -> set[str]:
    """List content paths that differ between *ref* and the working tree.

    Returns paths relative to the content directory.  Renames are reported
    as a deletion plus an addition.
    """
    result = _git(
        project_root,
        "diff",
        "--name-only",
        "--no-renames",
        "--relative",
        "-z",
        ref,
        "--",
        content_rel,
    )
    if result.returncode != 0:
        msg = f"git diff against '{ref}' failed: {result.stderr.strip()}"
        raise ValueError(msg)

    prefix = PurePosixPath(content_rel)
    paths: set[str] = set()
    for name in result.stdout.split("\0"):
        if not name:
            continue
        pure = PurePosixPath(name)
        if str(prefix) not in ("", ".") and pure.is_relative_to(prefix):
            pure = pure.relative_to(prefix)
        paths.add(str(pure))
    return paths


def load_previous_snapshot(
    project_root: Path,
    manifest_rel: str,
    content_rel: str,
    ref: str,
) -> PreviousSnapshot:
    """Load the manifest at *ref* and the content paths changed since.

    A manifest absent at *ref* yields an empty manifest, so every current
    entry is treated as added.

    Raises:
        ValueError: If *ref* is not a valid git ref.
        ManifestError: If the manifest at *ref* is malformed.
    """
    if not validate_ref(project_root, ref):
        msg = f"Invalid git ref: '{ref}'"
        raise ValueError(msg)

    text = read_manifest_at_ref(project_root, manifest_rel, ref)
    if text is None:
        logger.info("No manifest at %s; treating every entry as new", ref)
        manifest = Manifest.empty()
    else:
        manifest = parse_manifest(
            text,
            source=f"{ref}:{manifest_rel}",
            fmt=manifest_format(manifest_rel),
        )

    changed = changed_content_paths(project_root, content_rel, ref)
    logger.debug("%d content paths changed since %s", len(changed), ref)
    return PreviousSnapshot(
        ref=ref,
        manifest=manifest,
        changed_paths=frozenset(changed),
        manifest_existed=text is not None,
    )
