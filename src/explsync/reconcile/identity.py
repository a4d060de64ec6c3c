"""Deterministic explanation identity derived from a content path."""

from __future__ import annotations

import uuid


def derive_explanation_id(path: str) -> str:
    """Return the stable explanation id for a content *path*.

    UUIDv5 in the URL namespace: the same path yields the same id on every
    machine and every run, independent of the file's content.  Renaming a
    file therefore produces a different id (a delete plus an add).
    """
    return str(uuid.uuid5(uuid.NAMESPACE_URL, path))
