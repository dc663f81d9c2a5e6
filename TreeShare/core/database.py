from __future__ import annotations

from sqlalchemy import Column, DateTime, JSON, String, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


class TreeModel(Base):
    __tablename__ = "trees"

    id = Column(String(36), primary_key=True)
    images = Column(JSON, nullable=False)
    colors = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False)


def create_db_engine(url: str) -> Engine:
    connect_args = {}
    kwargs = {}
    if url.startswith("sqlite"):
        # SQLite needs check_same_thread disabled for the worker thread pool.
        connect_args = {"check_same_thread": False}
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
    return create_engine(url, connect_args=connect_args, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)
