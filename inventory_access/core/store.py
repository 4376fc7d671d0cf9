"""Database engine and transaction management for the principal store."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import AccessError, ConflictError, StoreError
from .models import Base, Tenant

logger = logging.getLogger(__name__)


class Store:
    """Relational principal store.

    One ``transaction()`` per public operation: everything written inside the
    block commits together or not at all.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "Store":
        """Create a store for a SQLAlchemy database URL.

        In-memory SQLite shares a single connection so every session sees the
        same database.
        """
        kwargs: dict = {"echo": echo, "future": True}
        if database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
                kwargs["poolclass"] = StaticPool
        else:
            kwargs["pool_pre_ping"] = True
        return cls(create_engine(database_url, **kwargs))

    def create_all(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        Base.metadata.drop_all(bind=self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as exc:
            logger.warning("Database ping failed: %s", exc)
            return False

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Open a session, commit on success, roll back on any exception.

        Raises:
            ConflictError: On uniqueness/constraint violations at commit
            StoreError: On any other database failure
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except AccessError:
            session.rollback()
            raise
        except IntegrityError as exc:
            session.rollback()
            logger.warning("Integrity violation, transaction rolled back: %s", exc.orig)
            raise ConflictError("Request conflicts with existing data") from exc
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Store failure, transaction rolled back: %s", exc)
            raise StoreError() from exc
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()


def lock_tenant(session: Session, tenant_id: int) -> Optional[Tenant]:
    """Lock a tenant row for the rest of the transaction.

    Serializes tenant-wide checks (e.g. the manager count before a demotion) on
    databases that support ``SELECT ... FOR UPDATE``; SQLite ignores the clause
    and serializes writers on its own.
    """
    return session.execute(
        select(Tenant).where(Tenant.id == tenant_id).with_for_update()
    ).scalar_one_or_none()
