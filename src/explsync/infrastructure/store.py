"""Store collaborator: the only persistence surface the reconciler needs."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when a single store mutation fails (transport or constraint)."""


@dataclass(frozen=True)
class QuestionRef:
    """A question row resolved from its external id."""

    id: int
    external_id: str


class ExplanationStore(Protocol):
    """Operations the reconciler issues, one call at a time."""

    def upsert_explanation(self, explanation_id: str, content: str) -> bool: ...

    def delete_explanation(self, explanation_id: str) -> None: ...

    def explanation_exists(self, explanation_id: str) -> bool: ...

    def find_question(self, external_id: str) -> QuestionRef | None: ...

    def set_question_link(self, question: QuestionRef, explanation_id: str | None) -> None: ...

    def unlink_if_matches(self, question: QuestionRef, expected_explanation_id: str) -> bool: ...

    def replace_ordered_links(
        self, question: QuestionRef, explanation_ids: Sequence[str]
    ) -> tuple[int, int]: ...


class SqliteStore:
    """:class:`ExplanationStore` over a SQLite connection.

    Every mutation is committed on its own; there is no run-wide
    transaction, so a failure leaves the already-applied prefix in place.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def _write(self, sql: str, params: tuple[object, ...]) -> sqlite3.Cursor:
        try:
            cursor = self.conn.execute(sql, params)
            self.conn.commit()
        except sqlite3.Error as exc:
            self.conn.rollback()
            raise StoreError(str(exc)) from exc
        return cursor

    def upsert_explanation(self, explanation_id: str, content: str) -> bool:
        """Insert or update the row; returns ``True`` when the row is new."""
        existed = self.explanation_exists(explanation_id)
        self._write(
            "INSERT INTO explanation (id, explanation) VALUES (?, ?) "
            "ON CONFLICT(id) DO UPDATE SET explanation = excluded.explanation",
            (explanation_id, content),
        )
        return not existed

    def delete_explanation(self, explanation_id: str) -> None:
        # Absent rows are fine: a previous partial run may have removed it.
        self._write("DELETE FROM explanation WHERE id = ?", (explanation_id,))

    def explanation_exists(self, explanation_id: str) -> bool:
        try:
            row = self.conn.execute(
                "SELECT 1 FROM explanation WHERE id = ?", (explanation_id,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        return row is not None

    def find_question(self, external_id: str) -> QuestionRef | None:
        try:
            row = self.conn.execute(
                "SELECT id, external_id FROM question WHERE external_id = ?",
                (external_id,),
            ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        if row is None:
            return None
        return QuestionRef(id=row[0], external_id=row[1])

    def set_question_link(self, question: QuestionRef, explanation_id: str | None) -> None:
        self._write(
            "UPDATE question SET explanation_id = ? WHERE id = ?",
            (explanation_id, question.id),
        )

    def unlink_if_matches(self, question: QuestionRef, expected_explanation_id: str) -> bool:
        """Clear the link only while it still points at *expected_explanation_id*."""
        cursor = self._write(
            "UPDATE question SET explanation_id = NULL WHERE id = ? AND explanation_id = ?",
            (question.id, expected_explanation_id),
        )
        return cursor.rowcount > 0

    def replace_ordered_links(
        self, question: QuestionRef, explanation_ids: Sequence[str]
    ) -> tuple[int, int]:
        """Replace the question's ordered links; returns ``(removed, created)``.

        Delete and inserts run as one transaction so a question never ends
        up with a half-written order.
        """
        try:
            with self.conn:
                removed = self.conn.execute(
                    "DELETE FROM question_to_explanation WHERE question_id = ?",
                    (question.id,),
                ).rowcount
                for order, explanation_id in enumerate(explanation_ids):
                    self.conn.execute(
                        "INSERT INTO question_to_explanation "
                        '(id, question_id, explanation_id, "order") VALUES (?, ?, ?, ?)',
                        (str(uuid.uuid4()), question.id, explanation_id, order),
                    )
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        return removed, len(explanation_ids)

    # -- read helpers (tests, status) -------------------------------------

    def explanation_content(self, explanation_id: str) -> str | None:
        row = self.conn.execute(
            "SELECT explanation FROM explanation WHERE id = ?", (explanation_id,)
        ).fetchone()
        return None if row is None else str(row[0])

    def question_link(self, external_id: str) -> str | None:
        row = self.conn.execute(
            "SELECT explanation_id FROM question WHERE external_id = ?", (external_id,)
        ).fetchone()
        return None if row is None else row[0]

    def ordered_links(self, external_id: str) -> list[str]:
        rows = self.conn.execute(
            "SELECT l.explanation_id FROM question_to_explanation l "
            "JOIN question q ON q.id = l.question_id "
            'WHERE q.external_id = ? ORDER BY l."order"',
            (external_id,),
        ).fetchall()
        return [r[0] for r in rows]

    def add_question(self, external_id: str, text: str = "") -> QuestionRef:
        """Insert a question row (question bank import and tests)."""
        cursor = self._write(
            "INSERT INTO question (external_id, text) VALUES (?, ?)", (external_id, text)
        )
        return QuestionRef(id=int(cursor.lastrowid or 0), external_id=external_id)
