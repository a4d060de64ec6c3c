"""Manifest delta: classify entries between two manifest revisions."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass

from explsync.manifest.loader import SHAPE_MAPPING, Manifest, ManifestEntry

LINK_SINGLE = "single"
LINK_ORDERED = "ordered"


@dataclass(frozen=True)
class EntryChange:
    """A kept entry whose linked questions differ between revisions."""

    path: str
    old_questions: tuple[str, ...]
    new_questions: tuple[str, ...]
    content_changed: bool = False

    @property
    def linked(self) -> tuple[str, ...]:
        """Questions present in the new revision only."""
        old = set(self.old_questions)
        return tuple(q for q in self.new_questions if q not in old)

    @property
    def unlinked(self) -> tuple[str, ...]:
        """Questions present in the old revision only."""
        new = set(self.new_questions)
        return tuple(q for q in self.old_questions if q not in new)


@dataclass(frozen=True)
class ManifestDiff:
    """Partition of ``old.paths | new.paths`` into five disjoint groups."""

    old: Manifest
    new: Manifest
    link_mode: str
    removed: tuple[ManifestEntry, ...] = ()
    added: tuple[ManifestEntry, ...] = ()
    links_modified: tuple[EntryChange, ...] = ()
    content_only: tuple[ManifestEntry, ...] = ()
    unchanged: tuple[ManifestEntry, ...] = ()

    @property
    def has_changes(self) -> bool:
        return bool(self.removed or self.added or self.links_modified or self.content_only)

    def counts(self) -> dict[str, int]:
        return {
            "removed": len(self.removed),
            "added": len(self.added),
            "links_modified": len(self.links_modified),
            "content_only": len(self.content_only),
            "unchanged": len(self.unchanged),
        }


def resolve_link_mode(requested: str, manifest: Manifest) -> str:
    """Pick the link variant: ``auto`` follows the manifest's shape."""
    if requested != "auto":
        return requested
    return LINK_ORDERED if manifest.shape == SHAPE_MAPPING else LINK_SINGLE


def _link_key(manifest: Manifest, entry: ManifestEntry, link_mode: str) -> frozenset[object]:
    if link_mode == LINK_ORDERED:
        return frozenset((q, manifest.position(q, entry.path)) for q in entry.questions)
    return frozenset(entry.questions)


def compute_diff(
    old: Manifest,
    new: Manifest,
    changed_paths: Iterable[str],
    *,
    link_mode: str = LINK_SINGLE,
) -> ManifestDiff:
    """Classify every path of *old* and *new*.

    Args:
        old: Manifest at the previous revision.
        new: Current manifest.
        changed_paths: Content paths whose bytes differ between revisions.
        link_mode: ``"single"`` compares question sets; ``"ordered"`` also
            compares each question's position so reorders are detected.

    Returns:
        A :class:`ManifestDiff`.  New paths are always ``added`` even when
        their content also changed.
    """
    changed = set(changed_paths)
    old_map = old.by_path()
    new_map = new.by_path()

    removed: list[ManifestEntry] = []
    added: list[ManifestEntry] = []
    links_modified: list[EntryChange] = []
    content_only: list[ManifestEntry] = []
    unchanged: list[ManifestEntry] = []

    for path in sorted(old_map.keys() | new_map.keys()):
        in_old = path in old_map
        in_new = path in new_map

        if in_old and not in_new:
            removed.append(old_map[path])
        elif in_new and not in_old:
            added.append(new_map[path])
        else:
            prev = old_map[path]
            curr = new_map[path]
            if _link_key(old, prev, link_mode) != _link_key(new, curr, link_mode):
                links_modified.append(
                    EntryChange(
                        path=path,
                        old_questions=prev.questions,
                        new_questions=curr.questions,
                        content_changed=path in changed,
                    )
                )
            elif path in changed:
                content_only.append(curr)
            else:
                unchanged.append(curr)

    return ManifestDiff(
        old=old,
        new=new,
        link_mode=link_mode,
        removed=tuple(removed),
        added=tuple(added),
        links_modified=tuple(links_modified),
        content_only=tuple(content_only),
        unchanged=tuple(unchanged),
    )


def full_diff(manifest: Manifest, *, link_mode: str = LINK_SINGLE) -> ManifestDiff:
    """Treat every entry of *manifest* as added (full rebuild)."""
    return compute_diff(Manifest.empty(), manifest, (), link_mode=link_mode)


def diff_to_dict(diff: ManifestDiff) -> dict[str, object]:
    """Serialize a ManifestDiff to a JSON-compatible dict."""
    return {
        "link_mode": diff.link_mode,
        "has_changes": diff.has_changes,
        "counts": diff.counts(),
        "removed": [asdict(e) for e in diff.removed],
        "added": [asdict(e) for e in diff.added],
        "links_modified": [asdict(c) for c in diff.links_modified],
        "content_only": [e.path for e in diff.content_only],
    }
