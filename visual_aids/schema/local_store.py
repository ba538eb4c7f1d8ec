"""SQLAlchemy model for on-device key-value boxes."""

from __future__ import annotations

import datetime

from sqlalchemy import JSON, DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from visual_aids.core.database import Base


class LocalBoxEntry(Base):
  """One value stored in a named box; `seq` preserves insertion order."""

  __tablename__ = "local_box_entries"
  __table_args__ = (UniqueConstraint("box", "key", name="uq_local_box_entries_box_key"),)

  seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  box: Mapped[str] = mapped_column(String, nullable=False, index=True)
  key: Mapped[str | None] = mapped_column(String, nullable=True)
  value_json: Mapped[dict] = mapped_column(JSON, nullable=False)
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
