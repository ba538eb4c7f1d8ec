"""Visual aid persistence with a local cache mirror and an offline write queue."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from visual_aids.schema.visual_aids import QueuedVisualAid, VisualAidAnalytics, VisualAidDraft, VisualAidRecord, new_document_fields, utc_now
from visual_aids.services.visual_aid_analytics import summarize_visual_aids
from visual_aids.services.visual_aid_tags import generate_tags
from visual_aids.storage.contracts import SERVER_TIMESTAMP, LocalStoreError, OrderBy, PartialFailureError, RemoteUnavailableError, VisualAidQueuedError, VisualAidRemoteStore, VisualAidStoreError
from visual_aids.storage.local_box import LocalBox, LocalStore
from visual_aids.utils.results import StoreResult

logger = logging.getLogger(__name__)

SUBJECT_PAGE_SIZE = 20
TRENDING_LIMIT = 10


@dataclass
class SyncReport:
  """Counts from one pass over the offline queue."""

  attempted: int = 0
  synced: int = 0
  failed: int = 0
  skipped: int = 0
  synced_ids: list[str] = field(default_factory=list)


def round_half_away_from_zero(value: float) -> int:
  if value < 0:
    return -math.floor(-value + 0.5)
  return math.floor(value + 0.5)


def fold_rating(record: VisualAidRecord, rating: int) -> dict[str, Any]:
  """Fields that fold one more rating into the record's running average."""
  new_count = record.rating_count + 1
  new_average = (record.average_rating * record.rating_count + rating) / new_count
  return {"averageRating": new_average, "ratingCount": new_count, "effectiveness": round_half_away_from_zero(new_average)}


class VisualAidService:
  """Reads and writes visual aids against the remote store, degrading to local state.

  Only `save_visual_aid` raises on a remote failure. The other public methods
  log and return an empty/zeroed value; their `*_result` variants expose the
  failure as a `StoreResult` instead.
  """

  def __init__(self, *, remote: VisualAidRemoteStore, local_store: LocalStore, cache_box: str = "visual_aids_offline", queue_box: str = "visual_aids_offline_queue") -> None:
    if cache_box == queue_box:
      raise ValueError("cache_box and queue_box must be different boxes.")
    self._remote = remote
    self._local_store = local_store
    self._cache_box_name = cache_box
    self._queue_box_name = queue_box
    self._sync_lock = asyncio.Lock()

  async def _cache_box(self) -> LocalBox:
    return await self._local_store.open_box(self._cache_box_name)

  async def _queue_box(self) -> LocalBox:
    return await self._local_store.open_box(self._queue_box_name)

  async def close(self) -> None:
    """Release the local store; the service is unusable afterwards."""
    await self._local_store.close()

  # -- writes ---------------------------------------------------------------

  async def save_visual_aid(self, draft: VisualAidDraft) -> str:
    """Create a visual aid remotely and return its id.

    When the remote write fails the document is queued locally and
    `VisualAidQueuedError` is raised; the write is not durable until a later
    `sync_offline_queue` replays it.
    """
    try:
      return await self._write_remote(draft)
    except RemoteUnavailableError as exc:
      logger.error("Error saving visual aid teacher_id=%s subject=%s: %s", draft.teacher_id, draft.subject, exc)
      queue_key = await self._enqueue(draft)
      raise VisualAidQueuedError(f"Visual aid queued for offline sync (queue key {queue_key})", queue_key=queue_key) from exc

  async def _write_remote(self, draft: VisualAidDraft) -> str:
    fields = new_document_fields(draft, generate_tags(draft.subject, draft.topic))
    visual_aid_id = await self._remote.create({**fields, "generatedAt": SERVER_TIMESTAMP})
    await self._mirror(visual_aid_id, fields)
    logger.info("Visual aid saved successfully: %s", visual_aid_id)
    return visual_aid_id

  async def _mirror(self, visual_aid_id: str, fields: dict[str, Any]) -> None:
    """Copy a durably written record into the cache box; failures only cost offline reads."""
    record = VisualAidRecord.model_validate({**fields, "id": visual_aid_id, "cachedAt": utc_now()})
    try:
      box = await self._cache_box()
      await box.put(visual_aid_id, record.to_local_entry())
    except LocalStoreError as exc:
      logger.warning("Visual aid %s saved remotely but not cached locally: %s", visual_aid_id, exc)

  async def _enqueue(self, draft: VisualAidDraft) -> str:
    fields = new_document_fields(draft, generate_tags(draft.subject, draft.topic))
    entry = QueuedVisualAid.model_validate({**fields, "queuedForSync": True, "queuedAt": utc_now()})
    box = await self._queue_box()
    queue_key = await box.add(entry.to_local_entry())
    logger.info("Visual aid queued for offline sync key=%s teacher_id=%s", queue_key, draft.teacher_id)
    return queue_key

  async def rate_visual_aid_result(self, visual_aid_id: str, rating: int) -> StoreResult[bool]:
    """Fold `rating` into the running average; EMPTY(False) when the record does not exist."""
    try:
      applied = await self._remote.update_in_transaction(visual_aid_id, lambda record: fold_rating(record, rating))
    except VisualAidStoreError as exc:
      logger.error("Error rating visual aid %s: %s", visual_aid_id, exc)
      return StoreResult.failed(exc, False)

    if applied is None:
      logger.debug("Rating ignored; visual aid %s does not exist", visual_aid_id)
      return StoreResult.empty(False)
    logger.info("Visual aid rated successfully: %s", visual_aid_id)
    return StoreResult.ok(True)

  async def rate_visual_aid(self, visual_aid_id: str, rating: int) -> None:
    await self.rate_visual_aid_result(visual_aid_id, rating)

  async def increment_usage_result(self, visual_aid_id: str) -> StoreResult[bool]:
    try:
      await self._remote.increment(visual_aid_id, "usageCount", 1)
    except VisualAidStoreError as exc:
      logger.error("Error incrementing usage count for %s: %s", visual_aid_id, exc)
      return StoreResult.failed(exc, False)
    return StoreResult.ok(True)

  async def increment_usage(self, visual_aid_id: str) -> None:
    await self.increment_usage_result(visual_aid_id)

  async def share_visual_aid_result(self, visual_aid_id: str) -> StoreResult[bool]:
    """Make a visual aid public. Nothing in this service makes it private again."""
    try:
      await self._remote.update(visual_aid_id, {"isPublic": True, "sharedAt": SERVER_TIMESTAMP})
    except VisualAidStoreError as exc:
      logger.error("Error sharing visual aid %s: %s", visual_aid_id, exc)
      return StoreResult.failed(exc, False)
    logger.info("Visual aid shared successfully: %s", visual_aid_id)
    return StoreResult.ok(True)

  async def share_visual_aid(self, visual_aid_id: str) -> None:
    await self.share_visual_aid_result(visual_aid_id)

  async def delete_visual_aid_result(self, visual_aid_id: str) -> StoreResult[bool]:
    """Delete remotely, then drop the cache mirror. The two steps are not atomic."""
    try:
      await self._remote.delete(visual_aid_id)
    except VisualAidStoreError as exc:
      logger.error("Error deleting visual aid %s: %s", visual_aid_id, exc)
      return StoreResult.failed(exc, False)

    try:
      box = await self._cache_box()
      await box.delete(visual_aid_id)
    except LocalStoreError as exc:
      logger.error("Visual aid %s deleted remotely but its cache entry remains: %s", visual_aid_id, exc)
      partial = PartialFailureError(f"Remote delete of {visual_aid_id} succeeded; local cache delete failed")
      partial.__cause__ = exc
      return StoreResult.failed(partial, False)

    logger.info("Visual aid deleted successfully: %s", visual_aid_id)
    return StoreResult.ok(True)

  async def delete_visual_aid(self, visual_aid_id: str) -> None:
    await self.delete_visual_aid_result(visual_aid_id)

  # -- reads ----------------------------------------------------------------

  async def get_visual_aid_result(self, visual_aid_id: str) -> StoreResult[VisualAidRecord | None]:
    """Fetch one record, falling back to the cache mirror when the remote store is unreachable."""
    try:
      return StoreResult.of(await self._remote.get(visual_aid_id))
    except VisualAidStoreError as exc:
      logger.error("Error fetching visual aid %s: %s", visual_aid_id, exc)
      try:
        box = await self._cache_box()
        entry = await box.get(visual_aid_id)
        return StoreResult.of(None if entry is None else VisualAidRecord.from_local_entry(entry), from_cache=True)
      except (LocalStoreError, ValidationError) as local_exc:
        logger.error("Cache fallback failed for visual aid %s: %s", visual_aid_id, local_exc)
        return StoreResult.failed(exc, None)

  async def get_visual_aid(self, visual_aid_id: str) -> VisualAidRecord | None:
    return (await self.get_visual_aid_result(visual_aid_id)).value_or_default()

  async def get_teacher_visual_aids_result(self, teacher_id: str) -> StoreResult[list[VisualAidRecord]]:
    """A teacher's aids, newest first; falls back to cached mirrors when the remote store fails.

    The fallback only sees records that were mirrored after a successful write,
    so queued writes never appear here. If the cache also fails, the result
    carries the local error.
    """
    try:
      records = await self._remote.query(filters={"teacherId": teacher_id}, order_by=(OrderBy("generatedAt", "desc"),))
      return StoreResult.of(records)
    except VisualAidStoreError as exc:
      logger.error("Error fetching teacher visual aids teacher_id=%s: %s", teacher_id, exc)

    try:
      cached = await self._cached_for_teacher(teacher_id)
    except LocalStoreError as local_exc:
      logger.error("Cache fallback failed for teacher_id=%s: %s", teacher_id, local_exc)
      return StoreResult.failed(local_exc, [])
    return StoreResult.of(cached, from_cache=True)

  async def get_teacher_visual_aids(self, teacher_id: str) -> list[VisualAidRecord]:
    """Like the result variant, but raises when neither store can answer."""
    return (await self.get_teacher_visual_aids_result(teacher_id)).unwrap()

  async def _cached_for_teacher(self, teacher_id: str) -> list[VisualAidRecord]:
    box = await self._cache_box()
    records: list[VisualAidRecord] = []
    for entry in await box.values():
      if entry.get("teacherId") != teacher_id:
        continue
      try:
        records.append(VisualAidRecord.from_local_entry(entry))
      except ValidationError as exc:
        logger.warning("Skipping malformed cache entry id=%s errors=%s", entry.get("id"), exc.error_count())
    return records

  async def get_visual_aids_by_subject_result(self, subject: str) -> StoreResult[list[VisualAidRecord]]:
    """Public aids for a subject, most used first, capped at one page."""
    try:
      records = await self._remote.query(filters={"subject": subject, "isPublic": True}, order_by=(OrderBy("usageCount", "desc"),), limit=SUBJECT_PAGE_SIZE)
    except VisualAidStoreError as exc:
      logger.error("Error fetching visual aids by subject %s: %s", subject, exc)
      return StoreResult.failed(exc, [])
    return StoreResult.of(records)

  async def get_visual_aids_by_subject(self, subject: str) -> list[VisualAidRecord]:
    return (await self.get_visual_aids_by_subject_result(subject)).value_or_default()

  async def search_visual_aids_result(self, query: str) -> StoreResult[list[VisualAidRecord]]:
    """Case-insensitive substring match over topic, subject and tags of public aids."""
    needle = query.lower()
    try:
      public = await self._remote.query(filters={"isPublic": True})
    except VisualAidStoreError as exc:
      logger.error("Error searching visual aids: %s", exc)
      return StoreResult.failed(exc, [])
    return StoreResult.of([record for record in public if needle in record.search_text()])

  async def search_visual_aids(self, query: str) -> list[VisualAidRecord]:
    return (await self.search_visual_aids_result(query)).value_or_default()

  async def get_trending_visual_aids_result(self) -> StoreResult[list[VisualAidRecord]]:
    try:
      records = await self._remote.query(filters={"isPublic": True}, order_by=(OrderBy("usageCount", "desc"), OrderBy("averageRating", "desc")), limit=TRENDING_LIMIT)
    except VisualAidStoreError as exc:
      logger.error("Error fetching trending visual aids: %s", exc)
      return StoreResult.failed(exc, [])
    return StoreResult.of(records)

  async def get_trending_visual_aids(self) -> list[VisualAidRecord]:
    return (await self.get_trending_visual_aids_result()).value_or_default()

  async def get_visual_aid_analytics_result(self, teacher_id: str) -> StoreResult[VisualAidAnalytics]:
    try:
      records = await self._remote.query(filters={"teacherId": teacher_id})
    except VisualAidStoreError as exc:
      logger.error("Error getting analytics for teacher_id=%s: %s", teacher_id, exc)
      return StoreResult.failed(exc, VisualAidAnalytics())
    # Documents that fail validation were dropped by the query, so the totals exclude them.
    if not records:
      return StoreResult.empty(VisualAidAnalytics())
    return StoreResult.ok(summarize_visual_aids(records))

  async def get_visual_aid_analytics(self, teacher_id: str) -> VisualAidAnalytics:
    return (await self.get_visual_aid_analytics_result(teacher_id)).value_or_default()

  # -- offline queue --------------------------------------------------------

  async def pending_sync_count(self) -> int:
    box = await self._queue_box()
    return sum(1 for entry in await box.values() if entry.get("queuedForSync") is True)

  async def sync_offline_queue(self) -> SyncReport:
    """Replay queued writes in insertion order.

    A replayed entry is removed only after its remote write succeeds; a failing
    entry stays queued for the next sweep and does not stop the rest.
    Overlapping calls run one after another.
    """
    async with self._sync_lock:
      box = await self._queue_box()
      report = SyncReport()
      for queue_key, entry in await box.items():
        if entry.get("queuedForSync") is not True:
          report.skipped += 1
          continue

        report.attempted += 1
        try:
          draft = QueuedVisualAid.from_local_entry(entry).to_draft()
        except ValidationError as exc:
          report.failed += 1
          logger.error("Error syncing offline data key=%s: malformed entry (%s error(s))", queue_key, exc.error_count())
          continue

        try:
          visual_aid_id = await self._write_remote(draft)
        except VisualAidStoreError as exc:
          report.failed += 1
          logger.error("Error syncing offline data key=%s: %s", queue_key, exc)
          continue

        report.synced += 1
        report.synced_ids.append(visual_aid_id)
        try:
          await box.delete(queue_key)
        except LocalStoreError as exc:
          # The remote copy exists; leaving the entry means the next sweep writes it again.
          logger.error("Synced visual aid %s but could not drop queue entry key=%s: %s", visual_aid_id, queue_key, exc)

      if report.attempted:
        logger.info("Offline sync finished attempted=%d synced=%d failed=%d", report.attempted, report.synced, report.failed)
      return report
