# Overview: Transaction boundary and row locking for multi-row ledger operations.

"""
Unit of work

Every logical ledger operation (voucher create/update/delete, transfer,
contract creation, snapshot import) runs inside exactly one UnitOfWork:
all writes commit together or none do.

Units of work nest: an inner UnitOfWork joins the outermost one and never
commits on its own, so a service such as contract creation can call
ledger_service.record_voucher and still commit once.
"""

from __future__ import annotations

import time
from typing import Callable, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

T = TypeVar("T")

_DEPTH_KEY = "estate.uow_depth"


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def in_unit_of_work() -> bool:
    return db.session.info.get(_DEPTH_KEY, 0) > 0


class UnitOfWork:
    """
    begin/commit/rollback over the current SQLAlchemy session.

    Usable as a context manager: commits on clean exit of the outermost
    unit, rolls back on any exception. dry_run=True always rolls back
    (used by snapshot import previews).
    """

    def __init__(self, *, dry_run: bool = False):
        self.session = db.session
        self.dry_run = dry_run
        self._outermost = False

    def begin(self) -> "UnitOfWork":
        depth = self.session.info.get(_DEPTH_KEY, 0)
        self._outermost = depth == 0
        self.session.info[_DEPTH_KEY] = depth + 1
        return self

    def _leave(self) -> None:
        self.session.info[_DEPTH_KEY] = max(self.session.info.get(_DEPTH_KEY, 1) - 1, 0)

    def commit(self) -> None:
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def rollback(self) -> None:
        self.session.rollback()

    def __enter__(self) -> "UnitOfWork":
        return self.begin()

    def __exit__(self, exc_type, exc, tb) -> bool:
        self._leave()
        if not self._outermost:
            return False
        if exc_type is not None or self.dry_run:
            self.rollback()
        else:
            self.commit()
        return False


def run_in_unit_of_work(func: Callable[[], T], *, attempts: int = 3, backoff_base: float = 0.1) -> T:
    """
    Execute func inside a UnitOfWork with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts on Safe.version_id). Inside an enclosing
    unit of work, func runs once and the outer unit owns retry and commit.
    """
    if in_unit_of_work():
        with UnitOfWork():
            return func()

    for attempt in range(attempts):
        try:
            with UnitOfWork():
                return func()
        except (OperationalError, StaleDataError):
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    raise RuntimeError("unreachable")
