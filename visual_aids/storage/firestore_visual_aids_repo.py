"""Firestore-backed repository for visual aid documents."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from firebase_admin import firestore
from google.cloud.firestore import Client as FirestoreClient
from google.cloud.firestore_v1.base_query import FieldFilter
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from visual_aids.schema.visual_aids import VisualAidRecord
from visual_aids.storage.contracts import SERVER_TIMESTAMP, MalformedRecordError, OrderBy, RemoteUnavailableError, VisualAidRemoteStore, VisualAidStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _to_firestore_values(fields: dict[str, Any]) -> dict[str, Any]:
  """Swap library placeholders for Firestore sentinels."""
  return {key: (firestore.SERVER_TIMESTAMP if value is SERVER_TIMESTAMP else value) for key, value in fields.items()}


def _direction(order: OrderBy) -> str:
  return firestore.Query.DESCENDING if order.direction == "desc" else firestore.Query.ASCENDING


class FirestoreVisualAidRepository(VisualAidRemoteStore):
  """Persist visual aids in a top-level Firestore collection.

  The Firestore SDK is synchronous, so every call runs in the threadpool. Any
  SDK failure is surfaced as `RemoteUnavailableError`.
  """

  def __init__(self, client: FirestoreClient, *, collection: str = "visual_aids") -> None:
    self._client = client
    self._collection_name = collection

  async def create(self, fields: dict[str, Any]) -> str:
    payload = _to_firestore_values(fields)

    def _create() -> str:
      _, doc_ref = self._client.collection(self._collection_name).add(payload)
      return doc_ref.id

    return await self._call("create", _create)

  async def get(self, visual_aid_id: str) -> VisualAidRecord | None:
    def _get() -> VisualAidRecord | None:
      snapshot = self._document(visual_aid_id).get()
      if not snapshot.exists:
        return None
      return VisualAidRecord.from_firestore(snapshot.id, snapshot.to_dict() or {})

    return await self._call("get", _get)

  async def query(self, *, filters: dict[str, Any], order_by: tuple[OrderBy, ...] = (), limit: int | None = None) -> list[VisualAidRecord]:
    def _query() -> list[tuple[str, dict[str, Any]]]:
      query = self._client.collection(self._collection_name)
      for field, value in filters.items():
        query = query.where(filter=FieldFilter(field, "==", value))
      for order in order_by:
        query = query.order_by(order.field, direction=_direction(order))
      if limit is not None:
        query = query.limit(limit)
      return [(doc.id, doc.to_dict() or {}) for doc in query.stream()]

    rows = await self._call("query", _query)
    records: list[VisualAidRecord] = []
    # One bad document should not hide the rest of the page.
    for doc_id, data in rows:
      try:
        records.append(VisualAidRecord.from_firestore(doc_id, data))
      except ValidationError as exc:
        logger.warning("Skipping malformed visual aid document id=%s errors=%s", doc_id, exc.error_count())
    return records

  async def update(self, visual_aid_id: str, fields: dict[str, Any]) -> None:
    payload = _to_firestore_values(fields)
    await self._call("update", lambda: self._document(visual_aid_id).update(payload))

  async def increment(self, visual_aid_id: str, field: str, delta: int = 1) -> None:
    payload = {field: firestore.Increment(delta)}
    await self._call("increment", lambda: self._document(visual_aid_id).update(payload))

  async def update_in_transaction(self, visual_aid_id: str, compute: Callable[[VisualAidRecord], dict[str, Any]]) -> dict[str, Any] | None:
    def _run() -> dict[str, Any] | None:
      doc_ref = self._document(visual_aid_id)
      transaction = self._client.transaction()

      @firestore.transactional
      def update_in_transaction(transaction: firestore.Transaction, doc_ref: firestore.DocumentReference) -> dict[str, Any] | None:
        snapshot = doc_ref.get(transaction=transaction)
        if not snapshot.exists:
          return None

        record = VisualAidRecord.from_firestore(snapshot.id, snapshot.to_dict() or {})
        fields = compute(record)
        transaction.update(doc_ref, _to_firestore_values(fields))
        return fields

      return update_in_transaction(transaction, doc_ref)

    return await self._call("transaction", _run)

  async def delete(self, visual_aid_id: str) -> None:
    await self._call("delete", lambda: self._document(visual_aid_id).delete())

  def _document(self, visual_aid_id: str) -> firestore.DocumentReference:
    return self._client.collection(self._collection_name).document(visual_aid_id)

  async def _call(self, operation: str, func: Callable[[], T]) -> T:
    try:
      return await run_in_threadpool(func)
    except ValidationError as exc:
      raise MalformedRecordError(f"Firestore {operation} returned a malformed visual aid: {exc.error_count()} error(s)") from exc
    except VisualAidStoreError:
      raise
    except Exception as exc:  # noqa: BLE001
      raise RemoteUnavailableError(f"Firestore {operation} failed on {self._collection_name}: {exc}") from exc


class UnconfiguredVisualAidRepository(VisualAidRemoteStore):
  """Stand-in used when Firebase is not configured; every call is a remote failure.

  Writes therefore land in the offline queue and reads fall back the same way
  they do when the network is down.
  """

  def __init__(self, reason: str = "Firestore is not configured") -> None:
    self._reason = reason

  def _unavailable(self, operation: str) -> RemoteUnavailableError:
    logger.debug("Remote %s skipped: %s", operation, self._reason)
    return RemoteUnavailableError(f"{self._reason} ({operation})")

  async def create(self, fields: dict[str, Any]) -> str:
    raise self._unavailable("create")

  async def get(self, visual_aid_id: str) -> VisualAidRecord | None:
    raise self._unavailable("get")

  async def query(self, *, filters: dict[str, Any], order_by: tuple[OrderBy, ...] = (), limit: int | None = None) -> list[VisualAidRecord]:
    raise self._unavailable("query")

  async def update(self, visual_aid_id: str, fields: dict[str, Any]) -> None:
    raise self._unavailable("update")

  async def increment(self, visual_aid_id: str, field: str, delta: int = 1) -> None:
    raise self._unavailable("increment")

  async def update_in_transaction(self, visual_aid_id: str, compute: Callable[[VisualAidRecord], dict[str, Any]]) -> dict[str, Any] | None:
    raise self._unavailable("transaction")

  async def delete(self, visual_aid_id: str) -> None:
    raise self._unavailable("delete")
