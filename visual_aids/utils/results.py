"""Result wrapper that keeps "no data" apart from "store unreachable"."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar

T = TypeVar("T")


class ResultStatus(StrEnum):
  OK = "ok"
  EMPTY = "empty"
  FAILED = "failed"


@dataclass(frozen=True)
class StoreResult(Generic[T]):
  """Outcome of a read or best-effort write.

  `value` always holds something usable: the data for OK/EMPTY and the
  degraded default for FAILED, so `value_or_default()` reproduces the
  swallow-and-default behavior of the plain service methods.
  """

  status: ResultStatus
  value: T
  error: BaseException | None = None
  from_cache: bool = False

  @classmethod
  def ok(cls, value: T, *, from_cache: bool = False) -> StoreResult[T]:
    return cls(status=ResultStatus.OK, value=value, from_cache=from_cache)

  @classmethod
  def empty(cls, value: T, *, from_cache: bool = False) -> StoreResult[T]:
    return cls(status=ResultStatus.EMPTY, value=value, from_cache=from_cache)

  @classmethod
  def of(cls, value: T, *, from_cache: bool = False) -> StoreResult[T]:
    """OK for truthy values, EMPTY for empty collections and other falsy values."""
    if value:
      return cls.ok(value, from_cache=from_cache)
    return cls.empty(value, from_cache=from_cache)

  @classmethod
  def failed(cls, error: BaseException, default: T) -> StoreResult[T]:
    return cls(status=ResultStatus.FAILED, value=default, error=error)

  @property
  def is_ok(self) -> bool:
    return self.status is ResultStatus.OK

  @property
  def is_empty(self) -> bool:
    return self.status is ResultStatus.EMPTY

  @property
  def is_failed(self) -> bool:
    return self.status is ResultStatus.FAILED

  def value_or_default(self) -> T:
    return self.value

  def unwrap(self) -> T:
    """Return the value or re-raise the captured error."""
    if self.error is not None:
      raise self.error
    return self.value
