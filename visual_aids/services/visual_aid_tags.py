"""Search tags derived from a visual aid's subject and topic."""

from __future__ import annotations

# Keyword sets keyed by lower-cased subject.
SUBJECT_KEYWORD_TAGS: dict[str, tuple[str, ...]] = {
  "math": ("mathematics", "calculation", "numbers"),
  "science": ("experiment", "observation", "discovery"),
  "english": ("language", "grammar", "communication"),
  "hindi": ("भाषा", "व्याकरण", "संचार"),
}


def generate_tags(subject: str, topic: str) -> list[str]:
  """Return `[subject, topic]` followed by the keyword set for the subject, if any."""
  tags = [subject, topic]
  tags.extend(SUBJECT_KEYWORD_TAGS.get(subject.lower(), ()))
  return tags
