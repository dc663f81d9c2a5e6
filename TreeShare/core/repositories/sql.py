from __future__ import annotations

import logging
from datetime import timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .base import RecordRepository
from ..database import TreeModel
from ..errors import StorageError
from ..models import Palette, Record

log = logging.getLogger("treeshare.records")


class SqlRecordRepository(RecordRepository):
    """Stores records in the ``trees`` table, one transaction per insert."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def insert(self, record: Record) -> None:
        created_at = record.created_at.astimezone(timezone.utc).replace(tzinfo=None)
        row = TreeModel(
            id=record.id,
            images=list(record.blob_names),
            colors=record.palette.to_dict(),
            created_at=created_at,
        )
        with self._session_factory() as session:
            try:
                session.add(row)
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                log.error("Record id collision on %s", record.id)
                raise StorageError("Database error") from exc
            except SQLAlchemyError as exc:
                session.rollback()
                log.error("DB insert error for %s: %s", record.id, exc, exc_info=True)
                raise StorageError("Database error") from exc

    def get(self, record_id: str) -> Optional[Record]:
        try:
            with self._session_factory() as session:
                row = session.get(TreeModel, record_id)
                if row is None:
                    return None
                return self._to_record(row)
        except SQLAlchemyError as exc:
            log.error("DB read error for %s: %s", record_id, exc, exc_info=True)
            raise StorageError("Database error") from exc

    @staticmethod
    def _to_record(row: TreeModel) -> Record:
        return Record(
            id=row.id,
            blob_names=list(row.images or []),
            palette=Palette(**row.colors),
            created_at=row.created_at.replace(tzinfo=timezone.utc),
        )
