"""On-device key-value boxes backed by SQLite."""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from visual_aids.core.database import Base, create_local_engine, create_session_factory
from visual_aids.schema.local_store import LocalBoxEntry
from visual_aids.storage.contracts import LocalStoreError

logger = logging.getLogger(__name__)


class LocalBox:
  """A named key-value collection.

  Keys are strings. `add` inserts under a generated key that grows with every
  insert, and `values`/`items` return entries in insertion order.
  """

  def __init__(self, name: str, session_factory: async_sessionmaker[AsyncSession]) -> None:
    self._name = name
    self._session_factory = session_factory

  @property
  def name(self) -> str:
    return self._name

  async def put(self, key: str, value: dict[str, Any]) -> None:
    """Insert or replace the value stored under `key`."""
    try:
      async with self._session_factory() as session:
        row = await self._find(session, key)
        if row is None:
          session.add(LocalBoxEntry(box=self._name, key=key, value_json=copy.deepcopy(value)))
        else:
          row.value_json = copy.deepcopy(value)
        await session.commit()
    except SQLAlchemyError as exc:
      raise LocalStoreError(f"put failed box={self._name} key={key}") from exc

  async def add(self, value: dict[str, Any]) -> str:
    """Append a value under a generated key and return that key."""
    try:
      async with self._session_factory() as session:
        row = LocalBoxEntry(box=self._name, key=None, value_json=copy.deepcopy(value))
        session.add(row)
        # Flush to obtain the sequence number, then reuse it as the key.
        await session.flush()
        row.key = str(row.seq)
        await session.commit()
        return row.key
    except SQLAlchemyError as exc:
      raise LocalStoreError(f"add failed box={self._name}") from exc

  async def get(self, key: str) -> dict[str, Any] | None:
    try:
      async with self._session_factory() as session:
        row = await self._find(session, key)
        return None if row is None else copy.deepcopy(row.value_json)
    except SQLAlchemyError as exc:
      raise LocalStoreError(f"get failed box={self._name} key={key}") from exc

  async def delete(self, key: str) -> bool:
    """Remove `key`; return False when it was not present."""
    try:
      async with self._session_factory() as session:
        result = await session.execute(delete(LocalBoxEntry).where(LocalBoxEntry.box == self._name, LocalBoxEntry.key == key))
        await session.commit()
        return bool(result.rowcount)
    except SQLAlchemyError as exc:
      raise LocalStoreError(f"delete failed box={self._name} key={key}") from exc

  async def items(self) -> list[tuple[str, dict[str, Any]]]:
    """Return (key, value) pairs in insertion order."""
    try:
      async with self._session_factory() as session:
        result = await session.execute(select(LocalBoxEntry).where(LocalBoxEntry.box == self._name).order_by(LocalBoxEntry.seq))
        return [(str(row.key), copy.deepcopy(row.value_json)) for row in result.scalars().all()]
    except SQLAlchemyError as exc:
      raise LocalStoreError(f"scan failed box={self._name}") from exc

  async def values(self) -> list[dict[str, Any]]:
    return [value for _, value in await self.items()]

  async def count(self) -> int:
    try:
      async with self._session_factory() as session:
        result = await session.execute(select(func.count()).select_from(LocalBoxEntry).where(LocalBoxEntry.box == self._name))
        return int(result.scalar_one())
    except SQLAlchemyError as exc:
      raise LocalStoreError(f"count failed box={self._name}") from exc

  async def _find(self, session: AsyncSession, key: str) -> LocalBoxEntry | None:
    result = await session.execute(select(LocalBoxEntry).where(LocalBoxEntry.box == self._name, LocalBoxEntry.key == key))
    return result.scalar_one_or_none()


class LocalStore:
  """Owns the SQLite engine and hands out box handles.

  The table is created lazily on the first `open_box` call. Opening a box that
  is already open returns the same handle.
  """

  def __init__(self, url: str, *, echo: bool = False) -> None:
    self._engine = create_local_engine(url, echo=echo)
    self._session_factory = create_session_factory(self._engine)
    self._boxes: dict[str, LocalBox] = {}
    self._schema_ready = False
    self._schema_lock = asyncio.Lock()

  def is_box_open(self, name: str) -> bool:
    return name in self._boxes

  async def open_box(self, name: str) -> LocalBox:
    """Return the handle for `name`, creating storage on first use."""
    box = self._boxes.get(name)
    if box is not None:
      return box

    await self._ensure_schema()
    # Another caller may have opened the box while the schema was being created.
    box = self._boxes.setdefault(name, LocalBox(name, self._session_factory))
    logger.debug("Opened local box %s", name)
    return box

  async def close(self) -> None:
    """Dispose the engine; handles become unusable afterwards."""
    self._boxes.clear()
    await self._engine.dispose()

  async def _ensure_schema(self) -> None:
    if self._schema_ready:
      return
    async with self._schema_lock:
      if self._schema_ready:
        return
      try:
        async with self._engine.begin() as connection:
          await connection.run_sync(Base.metadata.create_all)
      except SQLAlchemyError as exc:
        raise LocalStoreError("Failed to create local store schema") from exc
      self._schema_ready = True
