"""Typed visual aid records and their mapping to stored field maps.

Remote documents and local box entries are camelCase field maps. Everything
inside the library works with the models below; conversion happens only in
`from_firestore`, `from_local_entry`, `to_local_entry` and `new_document_fields`.
"""

from __future__ import annotations

import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, NonNegativeFloat, NonNegativeInt, StrictBool, StrictStr
from pydantic.alias_generators import to_camel

DRAFT_FIELDS = frozenset({"teacher_id", "subject", "topic", "visual_content", "explanation", "language", "grade_level", "ai_generated"})


def utc_now() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


class VisualAidDraft(BaseModel):
  """Caller-supplied content for a new visual aid."""

  teacher_id: StrictStr
  subject: StrictStr
  topic: StrictStr
  visual_content: StrictStr
  explanation: StrictStr
  language: StrictStr
  grade_level: StrictStr
  ai_generated: StrictBool = True

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore", frozen=True)


class VisualAidRecord(VisualAidDraft):
  """A visual aid as stored remotely or mirrored locally."""

  id: StrictStr | None = None
  generated_at: datetime.datetime | None = None
  usage_count: NonNegativeInt = 0
  rating_count: NonNegativeInt = 0
  average_rating: NonNegativeFloat = 0.0
  effectiveness: NonNegativeInt = 0
  is_public: bool = False
  shared_at: datetime.datetime | None = None
  tags: list[str] = Field(default_factory=list)
  cached_at: datetime.datetime | None = None

  @classmethod
  def from_firestore(cls, doc_id: str, data: dict[str, Any]) -> VisualAidRecord:
    """Validate a Firestore document payload; the document id wins over any stored `id`."""
    return cls.model_validate({**data, "id": doc_id})

  @classmethod
  def from_local_entry(cls, data: dict[str, Any]) -> VisualAidRecord:
    return cls.model_validate(data)

  def to_local_entry(self) -> dict[str, Any]:
    """Serialize to a JSON-safe camelCase map for the on-device store."""
    return self.model_dump(mode="json", by_alias=True)

  def to_draft(self) -> VisualAidDraft:
    return VisualAidDraft.model_validate(self.model_dump(include=set(DRAFT_FIELDS)))

  def search_text(self) -> str:
    """Lower-cased haystack used by client-side search."""
    # Tags render the way a list prints in the mobile client: "[a, b, c]".
    return f"{self.topic} {self.subject} [{', '.join(self.tags)}]".lower()


class QueuedVisualAid(VisualAidRecord):
  """A write that has not reached the remote store yet."""

  queued_for_sync: bool = False
  queued_at: datetime.datetime | None = None


class VisualAidAnalytics(BaseModel):
  """Per-teacher usage summary."""

  total_visual_aids: NonNegativeInt = 0
  total_usage: NonNegativeInt = 0
  average_rating: float = 0.0
  subject_distribution: dict[str, int] = Field(default_factory=dict)
  most_used_subject: str = "none"

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def new_document_fields(draft: VisualAidDraft, tags: list[str]) -> dict[str, Any]:
  """Build the camelCase field map for a brand-new remote document.

  Counters start at zero and the aid starts private. `generatedAt` is left to
  the remote store, which stamps it with its own clock.
  """
  fields = draft.model_dump(by_alias=True)
  fields.update({"usageCount": 0, "effectiveness": 0, "ratingCount": 0, "averageRating": 0.0, "tags": list(tags), "isPublic": False})
  return fields
