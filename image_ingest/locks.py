"""Keyed mutual exclusion for check-then-act sequences.

With Redis configured the lock is a redis-py ``Lock`` and holds across
processes and hosts. Without Redis a process-local ``threading.Lock`` per key
is used, which is enough for a single-instance deployment.
"""
import logging
import threading
from contextlib import contextmanager

from flask import current_app
from redis.exceptions import LockError

from image_ingest import extensions
from image_ingest.errors import LockTimeout

logger = logging.getLogger(__name__)

_local_locks = {}
_registry_guard = threading.Lock()


def hash_key(file_hash):
    return f"image-hash:{file_hash}"


def product_key(product_id):
    return f"product-images:{product_id}"


def slot_key(slot):
    return f"site-slot:{slot}"


@contextmanager
def keyed_lock(key, wait=None):
    """Hold the lock named ``key`` for the duration of the block.

    Raises LockTimeout if it cannot be acquired within ``wait`` seconds.
    Not re-entrant.
    """
    if wait is None:
        wait = current_app.config["LOCK_WAIT"]

    if extensions.redis_client is not None:
        with _redis_lock(key, wait):
            yield
    else:
        with _local_lock(key, wait):
            yield


@contextmanager
def _redis_lock(key, wait):
    lock = extensions.redis_client.lock(
        f"lock:{key}",
        timeout=current_app.config["LOCK_TTL"],
        blocking_timeout=wait,
    )
    if not lock.acquire():
        raise LockTimeout(f"Timed out waiting for {key}", stage="lock")
    try:
        yield
    finally:
        try:
            lock.release()
        except LockError:
            logger.warning("Lock %s expired before release", key)


@contextmanager
def _local_lock(key, wait):
    with _registry_guard:
        entry = _local_locks.get(key)
        if entry is None:
            entry = _local_locks[key] = [threading.Lock(), 0]
        entry[1] += 1

    try:
        if not entry[0].acquire(timeout=wait):
            raise LockTimeout(f"Timed out waiting for {key}", stage="lock")
        try:
            yield
        finally:
            entry[0].release()
    finally:
        with _registry_guard:
            entry[1] -= 1
            if entry[1] == 0:
                _local_locks.pop(key, None)
