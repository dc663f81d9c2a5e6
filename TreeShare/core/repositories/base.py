from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from ..models import Record


class RecordRepository(ABC):
    """
    Repository abstraction for tree records; can be backed by SQL or in-memory.

    Records are insert-only. ``insert`` must be atomic and immediately visible
    to ``get`` from any thread.
    """

    @abstractmethod
    def insert(self, record: Record) -> None:
        raise NotImplementedError

    @abstractmethod
    def get(self, record_id: str) -> Optional[Record]:
        raise NotImplementedError
