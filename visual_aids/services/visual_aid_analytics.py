"""Aggregation over a teacher's visual aids."""

from __future__ import annotations

from collections.abc import Iterable

from visual_aids.schema.visual_aids import VisualAidAnalytics, VisualAidRecord


def _most_used_subject(distribution: dict[str, int]) -> str:
  """Pick the most frequent subject; a later subject wins a tie."""
  best_subject = "none"
  best_count = -1
  for subject, count in distribution.items():
    if count >= best_count:
      best_subject = subject
      best_count = count
  return best_subject


def summarize_visual_aids(records: Iterable[VisualAidRecord]) -> VisualAidAnalytics:
  """Totals, mean rating and subject distribution; an empty input gives the zeroed summary."""
  items = list(records)
  if not items:
    return VisualAidAnalytics()

  distribution: dict[str, int] = {}
  for record in items:
    distribution[record.subject] = distribution.get(record.subject, 0) + 1

  return VisualAidAnalytics(
    total_visual_aids=len(items),
    total_usage=sum(record.usage_count for record in items),
    average_rating=sum(record.average_rating for record in items) / len(items),
    subject_distribution=distribution,
    most_used_subject=_most_used_subject(distribution),
  )
