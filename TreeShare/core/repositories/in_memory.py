from __future__ import annotations

import copy
import threading
from typing import Dict, List, Optional

from .base import RecordRepository
from ..errors import StorageError
from ..models import Record


class InMemoryRecordRepository(RecordRepository):
    def __init__(self) -> None:
        self._records: Dict[str, Record] = {}
        self._lock = threading.Lock()

    def insert(self, record: Record) -> None:
        with self._lock:
            if record.id in self._records:
                raise StorageError(f"Record {record.id} already exists")
            self._records[record.id] = copy.deepcopy(record)

    def get(self, record_id: str) -> Optional[Record]:
        with self._lock:
            record = self._records.get(record_id)
        return copy.deepcopy(record) if record else None

    def list_ids(self) -> List[str]:
        with self._lock:
            return list(self._records)
