"""Shared test fixtures for explsync."""

from __future__ import annotations

import json
import os
import subprocess
from typing import TYPE_CHECKING

import pytest

from explsync.infrastructure.db import create_schema, open_db
from explsync.infrastructure.store import SqliteStore

if TYPE_CHECKING:
    import sqlite3
    from collections.abc import Iterator
    from pathlib import Path

QUESTION_IDS = ("Q1", "Q2", "Q3", "Q4", "Q5")

_GIT_ENV = {
    **os.environ,
    "GIT_AUTHOR_NAME": "test",
    "GIT_AUTHOR_EMAIL": "t@t",
    "GIT_COMMITTER_NAME": "test",
    "GIT_COMMITTER_EMAIL": "t@t",
}


def _git(cwd: Path, *args: str) -> subprocess.CompletedProcess[str]:
    """Run a git command in the given directory."""
    return subprocess.run(  # noqa: S603
        ["git", *args],  # noqa: S607
        cwd=cwd,
        capture_output=True,
        text=True,
        env=_GIT_ENV,
    )


def _commit_all(cwd: Path, message: str) -> None:
    _git(cwd, "add", "-A")
    _git(cwd, "commit", "-q", "-m", message)


def _write_manifest(project: Path, data: object, name: str = "meta.json") -> None:
    (project / name).write_text(json.dumps(data, indent=2), encoding="utf-8")


@pytest.fixture()
def project(tmp_path: Path) -> Path:
    """Create a content project with an empty manifest and explanations dir."""
    proj = tmp_path / "proj"
    (proj / "explanations").mkdir(parents=True)
    _write_manifest(proj, [])
    return proj


@pytest.fixture()
def git_project(project: Path) -> Path:
    """Content project under git with the empty manifest committed."""
    _git(project, "init", "-q")
    _commit_all(project, "initial")
    return project


@pytest.fixture()
def conn(tmp_path: Path) -> Iterator[sqlite3.Connection]:
    """Database with schema and questions Q1..Q5."""
    c = open_db(tmp_path / "store.db")
    create_schema(c)
    store = SqliteStore(c)
    for qid in QUESTION_IDS:
        store.add_question(qid)
    yield c
    c.close()


@pytest.fixture()
def store(conn: sqlite3.Connection) -> SqliteStore:
    return SqliteStore(conn)
