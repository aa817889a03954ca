# Overview: Locking, transaction and retry helpers shared by every mutating service.

"""
Concurrency model.

Every read -> validate -> write sequence on one product runs as a single
serializable unit:

1. In-process lock table: one RLock per key ("product:<id>", "reorder"),
   created lazily. Serializes threads of this process without touching
   unrelated products.
2. Database transaction: BEGIN IMMEDIATE on SQLite (takes the write lock up
   front), SELECT ... FOR UPDATE elsewhere. Covers other processes.
3. Optimistic version_id columns: a concurrent writer that slipped through
   raises StaleDataError, which run_with_retry() retries.

The ledger entry and the quantity change it documents are flushed in the same
transaction and committed once, or rolled back together.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

_locks: dict[str, threading.RLock] = {}
_locks_guard = threading.Lock()


def _lock_for(key: str) -> threading.RLock:
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _locks[key] = lock
        return lock


@contextmanager
def named_lock(key: str):
    lock = _lock_for(key)
    lock.acquire()
    try:
        yield
    finally:
        lock.release()


REORDER_LOCK_KEY = "reorder"


def product_lock_key(product_id: int) -> str:
    return f"product:{product_id}"


def product_lock(product_id: int):
    return named_lock(product_lock_key(product_id))


def lock_for_update(query):
    """
    Apply row-level locking and refresh any identity-map copy of the rows.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_immediate() covers it there.
    """
    return query.with_for_update().populate_existing()


def begin_immediate() -> None:
    """Take the SQLite write lock at the start of the transaction."""
    if db.engine.dialect.name != "sqlite":
        return
    conn = db.session.connection()
    if conn.connection.driver_connection.in_transaction:
        return
    db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.05):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Engine errors are never retried.
    """
    if attempts is None:
        attempts = current_app.config.get("LOCK_RETRY_ATTEMPTS", 3)
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_atomic(func, *, lock_key: str | None = None):
    """
    Run func() as one all-or-nothing unit: optional named lock, one
    transaction, commit on success, rollback on any exception.
    """
    def _op():
        if lock_key is None:
            return _transaction(func)
        with named_lock(lock_key):
            return _transaction(func)

    return run_with_retry(_op)


def _transaction(func):
    try:
        begin_immediate()
        result = func()
        db.session.commit()
        return result
    except Exception:
        db.session.rollback()
        raise
