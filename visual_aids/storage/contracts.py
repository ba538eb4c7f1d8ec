"""Contracts and error types for visual aid persistence."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from visual_aids.schema.visual_aids import VisualAidRecord

SortDirection = Literal["asc", "desc"]


class _ServerTimestamp:
  """Placeholder the remote store replaces with its own commit time."""

  def __repr__(self) -> str:
    return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class OrderBy:
  """A single sort key for a remote query."""

  field: str
  direction: SortDirection = "desc"


class VisualAidStoreError(Exception):
  """Base class for visual aid persistence failures."""


class RemoteUnavailableError(VisualAidStoreError):
  """Raised when the remote document store call fails for any reason."""


class VisualAidQueuedError(RemoteUnavailableError):
  """Raised by the write path after a failed remote write was queued locally."""

  def __init__(self, message: str, *, queue_key: str) -> None:
    super().__init__(message)
    self.queue_key = queue_key


class LocalStoreError(VisualAidStoreError):
  """Raised when the on-device store cannot be read or written."""


class MalformedRecordError(VisualAidStoreError):
  """Raised when a stored document does not validate as a visual aid."""


class PartialFailureError(VisualAidStoreError):
  """Raised when one half of a remote/local operation succeeded and the other did not."""


class VisualAidRemoteStore(Protocol):
  """Remote document store contract used by the visual aid service."""

  async def create(self, fields: dict[str, Any]) -> str:
    """Create a document from Firestore-shaped fields and return its id."""

  async def get(self, visual_aid_id: str) -> VisualAidRecord | None:
    """Fetch one record, or None when the document does not exist."""

  async def query(self, *, filters: dict[str, Any], order_by: tuple[OrderBy, ...] = (), limit: int | None = None) -> list[VisualAidRecord]:
    """Return records matching equality filters in the requested order."""

  async def update(self, visual_aid_id: str, fields: dict[str, Any]) -> None:
    """Apply a partial update to an existing document."""

  async def increment(self, visual_aid_id: str, field: str, delta: int = 1) -> None:
    """Atomically add `delta` to a numeric field."""

  async def update_in_transaction(self, visual_aid_id: str, compute: Callable[[VisualAidRecord], dict[str, Any]]) -> dict[str, Any] | None:
    """Read, compute and write back fields atomically; None when the document is absent.

    `compute` may run more than once when the store retries a conflicting transaction.
    """

  async def delete(self, visual_aid_id: str) -> None:
    """Delete a document."""
