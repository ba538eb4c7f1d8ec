"""Async SQLite engine for the on-device store."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
  pass


def _is_memory_url(url: str) -> bool:
  return url.endswith(":memory:") or url.rstrip("/").endswith("sqlite+aiosqlite:")


def expand_sqlite_path(url: str) -> str:
  """Expand ~ in a file-backed SQLite URL and create its parent directory."""
  if not url.startswith("sqlite") or _is_memory_url(url) or "///" not in url:
    return url

  prefix_end = url.index("///") + 3
  prefix = url[:prefix_end]
  path = url[prefix_end:]

  abs_path = os.path.abspath(os.path.expanduser(path))
  Path(abs_path).parent.mkdir(parents=True, exist_ok=True)

  return f"{prefix}{abs_path}"


def create_local_engine(url: str, *, echo: bool = False) -> AsyncEngine:
  """Create the async engine backing the local boxes."""
  resolved = expand_sqlite_path(url)
  engine_kwargs: dict[str, Any] = {"echo": echo, "connect_args": {"check_same_thread": False}}
  # An in-memory database only lives as long as its single connection.
  if _is_memory_url(resolved):
    engine_kwargs["poolclass"] = StaticPool

  return create_async_engine(resolved, **engine_kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
  return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)
