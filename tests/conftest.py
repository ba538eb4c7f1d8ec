"""Shared fixtures: an in-memory remote store and a throwaway SQLite local store."""

from __future__ import annotations

import asyncio
import itertools
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402

from visual_aids.schema.visual_aids import VisualAidDraft, VisualAidRecord, utc_now  # noqa: E402
from visual_aids.services.visual_aids import VisualAidService  # noqa: E402
from visual_aids.storage.contracts import SERVER_TIMESTAMP, OrderBy, RemoteUnavailableError  # noqa: E402
from visual_aids.storage.local_box import LocalStore  # noqa: E402


class InMemoryVisualAidStore:
  """Remote store double holding camelCase documents in a dict.

  Set `failing` to a set of operation names to make those calls raise
  `RemoteUnavailableError`, or `fail_create_when` to fail only some creates.
  """

  def __init__(self) -> None:
    self.documents: dict[str, dict[str, Any]] = {}
    self.failing: set[str] = set()
    self.fail_create_when: Callable[[dict[str, Any]], bool] | None = None
    self.calls: list[tuple[str, Any]] = []
    self._ids = itertools.count(1)
    self._transaction_lock = asyncio.Lock()

  def seed(self, doc_id: str, **fields: Any) -> None:
    base = {"teacherId": "t-1", "subject": "math", "topic": "fractions", "visualContent": "diagram", "explanation": "halves", "language": "en", "gradeLevel": "4", "aiGenerated": True, "generatedAt": utc_now()}
    self.documents[doc_id] = {**base, **fields}

  def _check(self, operation: str) -> None:
    if operation in self.failing:
      raise RemoteUnavailableError(f"simulated {operation} failure")

  @staticmethod
  def _resolve(fields: dict[str, Any]) -> dict[str, Any]:
    return {key: (utc_now() if value is SERVER_TIMESTAMP else value) for key, value in fields.items()}

  async def create(self, fields: dict[str, Any]) -> str:
    self.calls.append(("create", fields))
    self._check("create")
    if self.fail_create_when is not None and self.fail_create_when(fields):
      raise RemoteUnavailableError("simulated create failure")
    doc_id = f"doc-{next(self._ids)}"
    self.documents[doc_id] = self._resolve(fields)
    return doc_id

  async def get(self, visual_aid_id: str) -> VisualAidRecord | None:
    self._check("get")
    data = self.documents.get(visual_aid_id)
    return None if data is None else VisualAidRecord.from_firestore(visual_aid_id, data)

  async def query(self, *, filters: dict[str, Any], order_by: tuple[OrderBy, ...] = (), limit: int | None = None) -> list[VisualAidRecord]:
    self.calls.append(("query", {"filters": filters, "order_by": order_by, "limit": limit}))
    self._check("query")
    rows = [(doc_id, data) for doc_id, data in self.documents.items() if all(data.get(key) == value for key, value in filters.items())]
    for order in reversed(order_by):
      rows.sort(key=lambda row, name=order.field: row[1].get(name, 0), reverse=order.direction == "desc")
    if limit is not None:
      rows = rows[:limit]
    return [VisualAidRecord.from_firestore(doc_id, data) for doc_id, data in rows]

  async def update(self, visual_aid_id: str, fields: dict[str, Any]) -> None:
    self._check("update")
    if visual_aid_id not in self.documents:
      raise RemoteUnavailableError(f"no document {visual_aid_id}")
    self.documents[visual_aid_id].update(self._resolve(fields))

  async def increment(self, visual_aid_id: str, field: str, delta: int = 1) -> None:
    self._check("increment")
    if visual_aid_id not in self.documents:
      raise RemoteUnavailableError(f"no document {visual_aid_id}")
    # Yield first so concurrent callers interleave before the atomic add.
    await asyncio.sleep(0)
    document = self.documents[visual_aid_id]
    document[field] = document.get(field, 0) + delta

  async def update_in_transaction(self, visual_aid_id: str, compute: Callable[[VisualAidRecord], dict[str, Any]]) -> dict[str, Any] | None:
    self._check("transaction")
    async with self._transaction_lock:
      data = self.documents.get(visual_aid_id)
      if data is None:
        return None
      await asyncio.sleep(0)
      fields = compute(VisualAidRecord.from_firestore(visual_aid_id, data))
      data.update(fields)
      return fields

  async def delete(self, visual_aid_id: str) -> None:
    self._check("delete")
    self.documents.pop(visual_aid_id, None)


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def remote_store():
  return InMemoryVisualAidStore()


@pytest.fixture
def local_store(tmp_path):
  return LocalStore(f"sqlite+aiosqlite:///{tmp_path / 'offline.db'}")


@pytest.fixture
def service(remote_store, local_store):
  return VisualAidService(remote=remote_store, local_store=local_store, cache_box="cache", queue_box="queue")


@pytest.fixture
def make_draft():
  def _make(**overrides: Any) -> VisualAidDraft:
    fields = {"teacher_id": "teacher-a", "subject": "math", "topic": "fractions", "visual_content": "pie chart of halves", "explanation": "Two equal parts", "language": "en", "grade_level": "4"}
    fields.update(overrides)
    return VisualAidDraft(**fields)

  return _make
