from .base import RecordRepository
from .in_memory import InMemoryRecordRepository
from .sql import SqlRecordRepository

__all__ = ["RecordRepository", "InMemoryRecordRepository", "SqlRecordRepository"]
