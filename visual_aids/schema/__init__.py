"""Schema package exports."""

from .visual_aids import QueuedVisualAid, VisualAidAnalytics, VisualAidDraft, VisualAidRecord, new_document_fields

__all__ = ["QueuedVisualAid", "VisualAidAnalytics", "VisualAidDraft", "VisualAidRecord", "new_document_fields"]
