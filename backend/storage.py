"""
Student and saved card store.

The ``Storage`` interface is what the API routes talk to; ``MemStorage``
keeps everything in process memory. Rows mirror the persisted shape:
integer identities, with allergies, custom fields and custom layouts held
as JSON text and parsed back into models on read.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from importer import new_id
from models import SavedCard, SavedCardCreate, StoredStudent, StudentCreate

log = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the store cannot satisfy a write."""


class Storage(ABC):
    """Operations every persistence backend provides."""

    @abstractmethod
    def create_student(self, student: StudentCreate) -> StoredStudent: ...

    @abstractmethod
    def get_student_by_id(self, student_id: int) -> StoredStudent | None: ...

    @abstractmethod
    def get_student_by_unique_id(self, unique_id: str) -> StoredStudent | None: ...

    @abstractmethod
    def list_students(self) -> list[StoredStudent]: ...

    @abstractmethod
    def create_card(self, card: SavedCardCreate) -> SavedCard: ...

    @abstractmethod
    def get_card_by_id(self, card_id: int) -> SavedCard | None: ...

    @abstractmethod
    def get_card_by_unique_id(self, unique_id: str) -> SavedCard | None: ...

    @abstractmethod
    def list_cards(self) -> list[SavedCard]: ...


class MemStorage(Storage):
    """In-memory store backed by plain lists of row dicts."""

    def __init__(self, id_factory: Callable[[], str] = new_id):
        self._students: list[dict[str, Any]] = []
        self._cards: list[dict[str, Any]] = []
        self._next_ids = {"student": 1, "card": 1}
        self._id_factory = id_factory

    def _next_id(self, table: str) -> int:
        value = self._next_ids[table]
        self._next_ids[table] += 1
        return value

    # ── Students ───────────────────────────────────────────────────

    def _student_from_row(self, row: dict[str, Any]) -> StoredStudent:
        return StoredStudent.model_validate(row)

    def create_student(self, student: StudentCreate) -> StoredStudent:
        if student.unique_id and self.get_student_by_unique_id(student.unique_id) is not None:
            raise StorageError(f"A student with uniqueId {student.unique_id!r} already exists")
        row = student.model_dump(by_alias=True, mode="json")
        row["allergies"] = json.dumps(row["allergies"])
        row["customFields"] = json.dumps(row["customFields"]) if row["customFields"] else None
        row["id"] = self._next_id("student")
        row["uniqueId"] = student.unique_id or self._id_factory()
        row["createdAt"] = datetime.now(timezone.utc)
        self._students.append(row)
        log.debug(f"Stored student #{row['id']} ({row['uniqueId']})")
        return self._student_from_row(row)

    def get_student_by_id(self, student_id: int) -> StoredStudent | None:
        for row in self._students:
            if row["id"] == student_id:
                return self._student_from_row(row)
        return None

    def get_student_by_unique_id(self, unique_id: str) -> StoredStudent | None:
        for row in self._students:
            if row["uniqueId"] == unique_id:
                return self._student_from_row(row)
        return None

    def list_students(self) -> list[StoredStudent]:
        # Newest first; ids break ties between rows created in the same instant
        rows = sorted(self._students, key=lambda r: (r["createdAt"], r["id"]), reverse=True)
        return [self._student_from_row(r) for r in rows]

    # ── Saved cards ────────────────────────────────────────────────

    def _card_from_row(self, row: dict[str, Any]) -> SavedCard:
        student = self.get_student_by_id(row["studentId"])
        return SavedCard.model_validate({**row, "student": student})

    def _resolve_student_id(self, card: SavedCardCreate) -> int:
        if card.student_id is not None:
            if self.get_student_by_id(card.student_id) is None:
                raise StorageError(f"Cannot save card: student #{card.student_id} does not exist")
            return card.student_id

        if card.student is not None:
            existing = None
            if card.student.unique_id:
                existing = self.get_student_by_unique_id(card.student.unique_id)
            if existing is not None:
                return existing.id
            return self.create_student(card.student).id

        raise StorageError("Cannot save card: No valid student reference")

    def create_card(self, card: SavedCardCreate) -> SavedCard:
        row = {
            "id": self._next_id("card"),
            "studentId": self._resolve_student_id(card),
            "template": card.template,
            "customLayout": card.custom_layout.model_dump_json(by_alias=True) if card.custom_layout else None,
            "createdAt": datetime.now(timezone.utc),
            "uniqueId": card.unique_id or self._id_factory(),
        }
        self._cards.append(row)
        log.debug(f"Stored card #{row['id']} for student #{row['studentId']}")
        return self._card_from_row(row)

    def get_card_by_id(self, card_id: int) -> SavedCard | None:
        for row in self._cards:
            if row["id"] == card_id:
                return self._card_from_row(row)
        return None

    def get_card_by_unique_id(self, unique_id: str) -> SavedCard | None:
        for row in self._cards:
            if row["uniqueId"] == unique_id:
                return self._card_from_row(row)
        return None

    def list_cards(self) -> list[SavedCard]:
        rows = sorted(self._cards, key=lambda r: (r["createdAt"], r["id"]), reverse=True)
        return [self._card_from_row(r) for r in rows]
