"""
Persistence Gateway

WHY: Terminals must keep selling when the remote store goes away. Every
operation is attempted against the remote store first; the first store
failure flips the gateway to degraded mode and that operation (and every
later one) runs against the local cache, which holds the same tables keyed
by the same identifiers.

DESIGN PRINCIPLES:
- Degraded mode is sticky for the process; only initialize() re-evaluates it
- save() is an upsert keyed by primary key; replaying a payload leaves
  identical state and publishes nothing new
- A unit of work is one transaction on one store; events collected during
  it are published after commit and never fail the write
- Domain errors (ValidationError / ConflictError) and IntegrityError are
  not store failures and propagate untouched
- While online, committed rows are mirrored into the local cache
  (write-through) so a later degrade starts from recent data
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy import delete as sa_delete, event, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import sessionmaker

from ..extensions import db
from ..models.base import new_id
from ..time_utils import to_utc_z, utcnow
from .concurrency import run_with_retry

logger = logging.getLogger("posledger.gateway")

T = TypeVar("T")

MODE_ONLINE = "online"
MODE_DEGRADED = "degraded"

REMOTE = "remote"
LOCAL = "local"


class TransientStoreError(Exception):
    """Remote store unreachable or unusable (network, auth, schema)."""


def is_store_failure(exc: BaseException) -> bool:
    """True for failures of the store itself, as opposed to rejected data."""
    if isinstance(exc, IntegrityError):
        return False
    return isinstance(exc, (DBAPIError, PoolTimeoutError, TransientStoreError))


def _column_attrs(model):
    return model.__mapper__.column_attrs


def _clone(entity):
    """Fresh transient copy holding only the column values that are set."""
    model = type(entity)
    values = {}
    for attr in _column_attrs(model):
        value = getattr(entity, attr.key)
        if value is not None:
            values[attr.key] = value
    return model(**values)


def _copy_columns(source, target, *, include_version: bool) -> None:
    mapper = type(target).__mapper__
    version_col = mapper.version_id_col
    pk_keys = {c.key for c in mapper.primary_key}
    for attr in _column_attrs(type(target)):
        if attr.key in pk_keys:
            continue
        column = attr.columns[0]
        if version_col is not None and column is version_col and not include_version:
            continue
        value = getattr(source, attr.key)
        if value is None and not column.nullable:
            continue
        setattr(target, attr.key, value)


def _identity(obj) -> tuple:
    return (type(obj), obj.id)


class UnitOfWork:
    """
    One transaction against one store.

    Services do their reads and writes through `session`, queue
    notifications with `emit()`, and mark rows changed by Core statements
    with `touch()` so they are mirrored to the local cache.
    """

    def __init__(self, session, store: str):
        self.session = session
        self.store = store
        self.events: list[tuple[str, Any, Optional[str], Optional[str]]] = []
        self.touched: dict[tuple, Any] = {}
        self.removed: list[tuple] = []
        self.purged: list[tuple] = []
        event.listen(session, "after_flush", self._collect)

    def _collect(self, session, flush_context) -> None:
        # Still pre-flush state here: new/dirty/deleted are populated
        for obj in list(session.new) + list(session.dirty):
            if hasattr(obj, "id"):
                self.touched[_identity(obj)] = obj
        for obj in session.deleted:
            self.touched.pop(_identity(obj), None)
            self.removed.append(_identity(obj))

    def emit(self, event_type: str, payload: Any = None, section: Optional[str] = None, actor_id: Optional[str] = None) -> None:
        self.events.append((event_type, payload, section, actor_id))

    def emit_entity(self, obj, *, actor_id: Optional[str] = None, **extra) -> None:
        payload = {"entity": obj.__tablename__, "data": obj.to_dict()}
        payload.update(extra)
        self.emit(obj.__event_type__, payload, getattr(obj, "section", None), actor_id)

    def touch(self, *objs) -> None:
        for obj in objs:
            self.touched[_identity(obj)] = obj

    def purge(self, model, *criteria) -> int:
        """Bulk delete; repeated against the local cache on write-through."""
        result = self.session.execute(sa_delete(model).where(*criteria).execution_options(synchronize_session=False))
        self.purged.append((model, criteria))
        return result.rowcount or 0


class PersistenceGateway:
    """
    Remote-first persistence with sticky failover to a local cache.

    Instances are process-scoped and injected into the ledgers; the mode
    flag lives on the instance, never at module level.
    """

    def __init__(
        self,
        remote_engine: Engine,
        local_engine: Engine,
        bus=None,
        *,
        write_through: bool = True,
        retry_attempts: int = 3,
        retry_backoff: float = 0.05,
        metadata=None,
    ):
        self.remote_engine = remote_engine
        self.local_engine = local_engine
        self.bus = bus
        self.metadata = metadata if metadata is not None else db.metadata
        self._write_through = write_through
        self._retry_attempts = max(1, retry_attempts)
        self._retry_backoff = retry_backoff
        self._sessions = {
            REMOTE: sessionmaker(bind=remote_engine, expire_on_commit=False),
            LOCAL: sessionmaker(bind=local_engine, expire_on_commit=False),
        }
        self._mode = MODE_ONLINE
        self._reason: Optional[str] = None
        self._degraded_at = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Mode
    # ------------------------------------------------------------------

    def initialize(self) -> str:
        """
        Create the schema on both stores and decide the mode for this process.

        The only place degraded mode can go back to online.
        """
        self.metadata.create_all(self.local_engine)
        try:
            with self.remote_engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            self.metadata.create_all(self.remote_engine)
        except SQLAlchemyError as exc:
            with self._lock:
                self._mode = MODE_ONLINE
            self._degrade(exc)
        else:
            with self._lock:
                self._mode = MODE_ONLINE
                self._reason = None
                self._degraded_at = None
        logger.info("Persistence gateway initialized in %s mode", self._mode)
        return self._mode

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def is_online(self) -> bool:
        return self._mode == MODE_ONLINE

    def status(self) -> dict:
        return {
            "mode": self._mode,
            "online": self.is_online,
            "reason": self._reason,
            "degraded_at": to_utc_z(self._degraded_at),
        }

    def _degrade(self, exc: BaseException) -> None:
        with self._lock:
            if self._mode == MODE_DEGRADED:
                return
            self._mode = MODE_DEGRADED
            self._reason = f"{type(exc).__name__}: {exc}"[:500]
            self._degraded_at = utcnow()
        logger.warning("Remote store failed; switching to local cache: %s", self._reason)

    # ------------------------------------------------------------------
    # Units of work
    # ------------------------------------------------------------------

    def run(self, fn: Callable[[UnitOfWork], T]) -> T:
        """
        Execute fn(uow) in one transaction, failing over to the local cache.

        fn may be called more than once (retries, failover) and must keep
        its side effects inside the unit of work.
        """
        if self.is_online:
            try:
                return self._run_on(REMOTE, fn)
            except Exception as exc:
                if not is_store_failure(exc):
                    raise
                self._degrade(exc)
        return self._run_on(LOCAL, fn)

    def _run_on(self, store: str, fn: Callable[[UnitOfWork], T]) -> T:
        def _attempt():
            session = self._sessions[store]()
            uow = UnitOfWork(session, store)
            try:
                result = fn(uow)
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()
            return result, uow

        result, uow = run_with_retry(_attempt, attempts=self._retry_attempts, backoff_base=self._retry_backoff)
        self._after_commit(uow)
        return result

    def _after_commit(self, uow: UnitOfWork) -> None:
        if uow.store == REMOTE and self._write_through and (uow.touched or uow.removed or uow.purged):
            self._mirror(uow)
        for event_type, payload, section, actor_id in uow.events:
            self._publish(event_type, payload, section, actor_id)

    def _publish(self, event_type: str, payload: Any, section: Optional[str], actor_id: Optional[str]) -> None:
        if self.bus is None:
            return
        try:
            self.bus.publish(event_type, payload, section=section, actor_id=actor_id)
        except Exception:
            logger.warning("Publishing %s failed", event_type, exc_info=True)

    def _mirror(self, uow: UnitOfWork) -> None:
        session = self._sessions[LOCAL]()
        try:
            for model, criteria in uow.purged:
                session.execute(sa_delete(model).where(*criteria).execution_options(synchronize_session=False))
            for model, pk in uow.removed:
                row = session.get(model, pk)
                if row is not None:
                    session.delete(row)
            for obj in uow.touched.values():
                existing = session.get(type(obj), obj.id)
                if existing is None:
                    session.add(_clone(obj))
                else:
                    _copy_columns(obj, existing, include_version=True)
            session.commit()
        except Exception:
            session.rollback()
            logger.warning("Mirroring to local cache failed", exc_info=True)
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Entity CRUD
    # ------------------------------------------------------------------

    def save(self, entity, *, actor_id: Optional[str] = None):
        """
        Upsert entity by primary key and return the stored row.

        Publishes the model's event only when stored state changed.
        """
        model = type(entity)
        if getattr(entity, "id", None) is None:
            entity.id = new_id()

        def _op(uow: UnitOfWork):
            existing = uow.session.get(model, entity.id)
            before = existing.to_dict() if existing is not None else None
            if existing is None:
                target = _clone(entity)
                uow.session.add(target)
            else:
                _copy_columns(entity, existing, include_version=False)
                target = existing
            uow.session.flush()
            if target.to_dict() != before:
                uow.emit_entity(target, actor_id=actor_id)
            return target

        return self.run(_op)

    def get(self, model, entity_id) -> Optional[Any]:
        if entity_id is None:
            return None
        return self.run(lambda uow: uow.session.get(model, entity_id))

    def list(self, model, order_by=None, **filters) -> list:
        def _op(uow: UnitOfWork):
            stmt = select(model).filter_by(**filters)
            if order_by is not None:
                stmt = stmt.order_by(*(order_by if isinstance(order_by, (list, tuple)) else [order_by]))
            return list(uow.session.scalars(stmt))

        return self.run(_op)

    def delete(self, model, entity_id, *, actor_id: Optional[str] = None) -> bool:
        def _op(uow: UnitOfWork):
            row = uow.session.get(model, entity_id)
            if row is None:
                return False
            uow.session.delete(row)
            uow.emit(
                model.__event_type__,
                {"entity": model.__tablename__, "id": entity_id, "deleted": True},
                getattr(row, "section", None),
                actor_id,
            )
            return True

        return self.run(_op)
