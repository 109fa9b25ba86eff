"""
Error taxonomy for the memo store.

Only HandleUnavailable is ever raised to callers. The other kinds are
recorded in ReadResult / WriteResult by the repository and turned into
empty lists, None or zero counts before they leave it.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class MemoStoreError(Exception):
    """Base class for memo store failures."""


class HandleUnavailable(MemoStoreError):
    """Opening the backing store or preference file failed."""


class StorageUnavailable(HandleUnavailable):
    pass


class PreferencesUnavailable(HandleUnavailable):
    pass


class WriteFailed(MemoStoreError):
    """An insert, update or delete was rejected by the store."""


class ReadDegraded(MemoStoreError):
    """A query failed; the caller sees an empty or absent result."""


class PreconditionViolation(MemoStoreError):
    """The operation was called with arguments it cannot act on."""


@dataclass(frozen=True)
class ReadResult(Generic[T]):
    value: T
    error: Optional[ReadDegraded] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class WriteResult(Generic[T]):
    value: T
    error: Optional[MemoStoreError] = None

    @property
    def ok(self) -> bool:
        return self.error is None
