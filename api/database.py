"""SQLite database for compiled graph snapshots."""

from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional

from sqlalchemy import DateTime, Integer, String, Text, create_engine
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    sessionmaker,
)
from sqlalchemy.pool import StaticPool

from api.settings import get_settings


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""

    pass


class GraphSnapshotRecord(Base):
    """Last graph recorded for an application."""

    __tablename__ = "graph_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    app_name: Mapped[str] = mapped_column(String(63), unique=True, index=True, nullable=False)
    auth_mode: Mapped[str] = mapped_column(String(20), nullable=False)
    graph: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )


class Database:
    """Database operations."""

    def __init__(self, database_url: str = "sqlite:///./appgraph.db"):
        engine_args: dict = {"echo": False}
        if database_url.startswith("sqlite") and ":memory:" in database_url:
            # One shared connection, otherwise every session sees an empty database
            engine_args.update(
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        self.engine = create_engine(database_url, **engine_args)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine)

    def get_session(self) -> Session:
        return self.SessionLocal()

    def save_snapshot(self, app_name: str, auth_mode: str, graph: str) -> GraphSnapshotRecord:
        """Create or replace the snapshot of an application."""
        with self.get_session() as session:
            record = session.query(GraphSnapshotRecord).filter_by(app_name=app_name).first()
            if record is None:
                record = GraphSnapshotRecord(app_name=app_name, auth_mode=auth_mode, graph=graph)
                session.add(record)
            else:
                record.auth_mode = auth_mode
                record.graph = graph
                record.updated_at = _utcnow()

            session.commit()
            session.refresh(record)
            return record

    def get_snapshot(self, app_name: str) -> Optional[GraphSnapshotRecord]:
        """Get snapshot by application name."""
        with self.get_session() as session:
            return session.query(GraphSnapshotRecord).filter_by(app_name=app_name).first()

    def list_snapshots(self) -> list[GraphSnapshotRecord]:
        """List all snapshots."""
        with self.get_session() as session:
            return session.query(GraphSnapshotRecord).order_by(GraphSnapshotRecord.app_name).all()

    def delete_snapshot(self, app_name: str) -> bool:
        """Delete snapshot."""
        with self.get_session() as session:
            record = session.query(GraphSnapshotRecord).filter_by(app_name=app_name).first()
            if not record:
                return False
            session.delete(record)
            session.commit()
            return True


@lru_cache
def get_database() -> Database:
    """Get the database configured in settings."""
    return Database(get_settings().database_url)
