"""Tests for explsync.reconcile.engine — full and incremental runs end to end."""

from __future__ import annotations

import json
import os
import subprocess
from typing import TYPE_CHECKING

import pytest

from explsync.infrastructure.config import ConfigError, load_config
from explsync.infrastructure.db import create_schema, get_meta, open_db
from explsync.infrastructure.store import SqliteStore
from explsync.manifest.loader import ManifestError
from explsync.reconcile.engine import prepare_sync, run_sync
from explsync.reconcile.identity import derive_explanation_id as eid

if TYPE_CHECKING:
    import sqlite3
    from pathlib import Path

    from explsync.infrastructure.config import SyncConfig

_GIT_ENV = {
    **os.environ,
    "GIT_AUTHOR_NAME": "test",
    "GIT_AUTHOR_EMAIL": "t@t",
    "GIT_COMMITTER_NAME": "test",
    "GIT_COMMITTER_EMAIL": "t@t",
}

_QUESTIONS = ("Q1", "Q2", "Q3", "Q4", "Q5")


def _git(cwd: Path, *args: str) -> None:
    subprocess.run(  # noqa: S603
        ["git", *args],  # noqa: S607
        cwd=cwd,
        capture_output=True,
        text=True,
        env=_GIT_ENV,
        check=True,
    )


def _commit(cwd: Path, message: str) -> None:
    _git(cwd, "add", "-A")
    _git(cwd, "commit", "-q", "-m", message)


def _write_manifest(project: Path, data: object) -> None:
    (project / "meta.json").write_text(json.dumps(data, indent=2), encoding="utf-8")


def _write_content(project: Path, files: dict[str, str]) -> None:
    for rel, body in files.items():
        path = project / "explanations" / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(body, encoding="utf-8")


def _fresh_db(path: Path) -> sqlite3.Connection:
    conn = open_db(path)
    create_schema(conn)
    store = SqliteStore(conn)
    for qid in _QUESTIONS:
        store.add_question(qid)
    return conn


def _state(conn: sqlite3.Connection) -> tuple[object, ...]:
    return (
        sorted(tuple(r) for r in conn.execute("SELECT id, explanation FROM explanation")),
        sorted(tuple(r) for r in conn.execute("SELECT external_id, explanation_id FROM question")),
        sorted(
            tuple(r)
            for r in conn.execute(
                'SELECT q.external_id, l.explanation_id, l."order" '
                "FROM question_to_explanation l JOIN question q ON q.id = l.question_id"
            )
        ),
    )


def _config(project: Path, **overrides: str) -> SyncConfig:
    return load_config(project, database="unused.db", **overrides)


V1_ENTRIES = [
    {"file": "a.md", "questions": ["Q1", "Q2"]},
    {"file": "c.md", "questions": ["Q3"]},
    {"file": "d.md", "questions": ["Q4"]},
]
V2_ENTRIES = [
    {"file": "b.md", "questions": ["Q2"]},
    {"file": "c.md", "questions": ["Q3", "Q5"]},
    {"file": "d.md", "questions": ["Q4"]},
    {"file": "diagram.svg", "questions": ["Q1"]},
]


@pytest.fixture()
def history(git_project: Path) -> Path:
    """Two commits: V1 entries, then V2 entries with d.md edited."""
    _write_manifest(git_project, V1_ENTRIES)
    _write_content(git_project, {"a.md": "A", "c.md": "C", "d.md": "D v1"})
    _commit(git_project, "v1")

    _write_manifest(git_project, V2_ENTRIES)
    (git_project / "explanations" / "a.md").unlink()
    _write_content(git_project, {"b.md": "B", "d.md": "D v2", "diagram.svg": "<svg/>"})
    _commit(git_project, "v2")
    return git_project


class TestIncrementalMatchesFull:
    def test_single_links(self, history: Path, conn: sqlite3.Connection) -> None:
        store = SqliteStore(conn)
        run_sync(_config(history), store, full=True)
        full_state = _state(conn)

        # Replay history: V1 full, then V2 incrementally.
        other = _fresh_db(history.parent / "other.db")
        _git(history, "checkout", "-q", "HEAD~1")
        run_sync(_config(history), SqliteStore(other), full=True)
        _git(history, "checkout", "-q", "-")
        report = run_sync(_config(history), SqliteStore(other), since="HEAD~1")

        assert _state(other) == full_state
        assert report.mode == "incremental"
        assert report.diff_counts == {
            "removed": 1,
            "added": 2,
            "links_modified": 1,
            "content_only": 1,
            "unchanged": 0,
        }
        other.close()

    def test_ordered_links(self, git_project: Path, conn: sqlite3.Connection) -> None:
        _write_manifest(git_project, {"Q1": ["a.md", "b.md"], "Q2": ["c.md"]})
        _write_content(git_project, {"a.md": "A", "b.md": "B", "c.md": "C"})
        _commit(git_project, "v1")
        store = SqliteStore(conn)
        run_sync(_config(git_project), store, full=True)

        _write_manifest(git_project, {"Q1": ["c.md", "a.md"], "Q3": ["b.md"]})
        _commit(git_project, "v2")
        run_sync(_config(git_project), store)

        assert store.ordered_links("Q1") == [eid("c.md"), eid("a.md")]
        assert store.ordered_links("Q2") == []
        assert store.ordered_links("Q3") == [eid("b.md")]

    @pytest.mark.parametrize(
        "manifest",
        [
            [{"file": "a.md", "questions": ["Q1"]}, {"file": "b.md", "questions": ["Q2"]}],
            {"Q1": ["a.md", "b.md"], "Q2": ["b.md"]},
        ],
        ids=["single", "ordered"],
    )
    def test_file_committed_after_its_entry(
        self, git_project: Path, conn: sqlite3.Connection, manifest: object
    ) -> None:
        _write_manifest(git_project, manifest)
        _write_content(git_project, {"a.md": "A"})
        _commit(git_project, "entries")
        store = SqliteStore(conn)
        first = run_sync(_config(git_project), store, since="HEAD~1")
        assert first.files_not_found == ["b.md"]

        _write_content(git_project, {"b.md": "B"})
        _commit(git_project, "b.md")
        second = run_sync(_config(git_project), store, since="HEAD~1")
        assert second.files_not_found == []
        assert second.diff_counts["content_only"] == 1

        full = _fresh_db(git_project.parent / "full.db")
        run_sync(_config(git_project), SqliteStore(full), full=True)
        assert _state(conn) == _state(full)
        full.close()


class TestFullRebuild:
    def test_idempotent(self, history: Path, conn: sqlite3.Connection) -> None:
        store = SqliteStore(conn)
        first = run_sync(_config(history), store, full=True)
        state = _state(conn)
        second = run_sync(_config(history), store, full=True)

        assert _state(conn) == state
        assert first.explanations_upserted == second.explanations_upserted == 4
        assert first.mode == "full"
        assert first.since is None

    def test_svg_stored_as_link(self, history: Path, conn: sqlite3.Connection) -> None:
        store = SqliteStore(conn)
        run_sync(_config(history, svg_base_url="https://cdn/"), store, full=True)
        assert store.explanation_content(eid("diagram.svg")) == "![](https://cdn/diagram.svg)"

    def test_works_without_git(self, project: Path, conn: sqlite3.Connection) -> None:
        _write_manifest(project, [{"file": "a.md", "questions": ["Q1"]}])
        _write_content(project, {"a.md": "A"})
        report = run_sync(_config(project), SqliteStore(conn), full=True)
        assert report.links_created == 1


class TestRunSync:
    def test_dry_run_writes_nothing(self, history: Path, conn: sqlite3.Connection) -> None:
        before = _state(conn)
        report = run_sync(_config(history), SqliteStore(conn), full=True, dry_run=True, conn=conn)
        assert report.dry_run
        assert report.operations_planned > 0
        assert report.operations_applied == 0
        assert _state(conn) == before
        assert get_meta(conn, "last_sync_at") is None

    def test_meta_recorded(self, history: Path, conn: sqlite3.Connection) -> None:
        run_sync(_config(history), SqliteStore(conn), full=True, conn=conn)
        assert get_meta(conn, "last_sync_mode") == "full"
        assert get_meta(conn, "last_sync_at") is not None
        assert len(get_meta(conn, "last_sync_revision") or "") == 40

    def test_nothing_changed(self, git_project: Path, conn: sqlite3.Connection) -> None:
        _write_manifest(git_project, [{"file": "a.md", "questions": ["Q1"]}])
        _write_content(git_project, {"a.md": "A"})
        _commit(git_project, "v1")
        report = run_sync(_config(git_project), SqliteStore(conn), since="HEAD")
        assert report.nothing_changed

    def test_undeclared_and_unresolved(self, project: Path, conn: sqlite3.Connection) -> None:
        _write_manifest(
            project,
            [
                {"file": "a.md", "questions": ["Q1", "Q99"]},
                {"file": "gone.md", "questions": ["Q2"]},
            ],
        )
        _write_content(project, {"a.md": "A", "stray.md": "S"})
        report = run_sync(_config(project), SqliteStore(conn), full=True)
        assert report.questions_not_found == ["Q99"]
        assert report.files_not_found == ["gone.md"]
        assert report.undeclared_files == ["stray.md"]

    def test_malformed_manifest_aborts_before_writes(
        self, history: Path, conn: sqlite3.Connection
    ) -> None:
        (history / "meta.json").write_text('[{"file": "a.md", "questions": "Q1"}]')
        before = _state(conn)
        with pytest.raises(ManifestError):
            run_sync(_config(history), SqliteStore(conn), full=True)
        assert _state(conn) == before

    def test_malformed_previous_manifest_aborts(
        self, git_project: Path, conn: sqlite3.Connection
    ) -> None:
        (git_project / "meta.json").write_text("{not json")
        _commit(git_project, "broken")
        _write_manifest(git_project, [{"file": "a.md", "questions": ["Q1"]}])
        _write_content(git_project, {"a.md": "A"})
        with pytest.raises(ManifestError, match="HEAD:meta.json"):
            run_sync(_config(git_project), SqliteStore(conn), since="HEAD")
        assert SqliteStore(conn).question_link("Q1") is None

    def test_invalid_ref(self, git_project: Path, conn: sqlite3.Connection) -> None:
        with pytest.raises(ValueError, match="Invalid git ref"):
            run_sync(_config(git_project), SqliteStore(conn), since="HEAD~9")

    def test_missing_content_dir(self, project: Path, conn: sqlite3.Connection) -> None:
        with pytest.raises(ConfigError):
            run_sync(_config(project, content_dir="nowhere"), SqliteStore(conn), full=True)


class TestPrepareSync:
    def test_first_revision_treats_everything_as_added(self, git_project: Path) -> None:
        _write_content(git_project, {"a.md": "A"})
        (git_project / "questions.json").write_text(
            json.dumps([{"file": "a.md", "questions": ["Q1"]}]), encoding="utf-8"
        )
        prepared = prepare_sync(_config(git_project, manifest="questions.json"), since="HEAD")
        assert prepared.plan.diff.counts()["added"] == 1

    def test_link_mode_auto_follows_shape(self, project: Path) -> None:
        _write_manifest(project, {"Q1": ["a.md"]})
        prepared = prepare_sync(_config(project), full=True)
        assert prepared.plan.link_mode == "ordered"

    def test_link_mode_override(self, project: Path) -> None:
        _write_manifest(project, {"Q1": ["a.md"]})
        prepared = prepare_sync(_config(project, link_mode="single"), full=True)
        assert prepared.plan.link_mode == "single"
        assert prepared.plan.kind_counts() == {"upsert": 1, "link": 1}
