"""
Per-practitioner scheduling locks.

The conflict check and the write that follows it must not interleave with
another booking for the same practitioner. Within a process a re-entrant
lock per practitioner serializes them; on PostgreSQL a transaction-scoped
advisory lock additionally serializes writers across processes until the
surrounding transaction commits or rolls back.
"""
from contextlib import contextmanager
import threading
import logging
from sqlalchemy import text
from sqlalchemy.orm import Session

# Set up logging
logger = logging.getLogger(__name__)

_registry_guard = threading.Lock()
_practitioner_locks = {}

def _local_lock(practitioner_id: str) -> threading.RLock:
    with _registry_guard:
        lock = _practitioner_locks.get(practitioner_id)
        if lock is None:
            lock = threading.RLock()
            _practitioner_locks[practitioner_id] = lock
        return lock

@contextmanager
def practitioner_lock(db: Session, practitioner_id: str):
    """
    Hold the scheduling lock for a practitioner.
    
    The caller must commit or roll back before leaving the block so the
    advisory lock is released together with the local one.
    
    Args:
        db: Database session whose transaction carries the advisory lock
        practitioner_id: Practitioner whose calendar is being written
    """
    lock = _local_lock(practitioner_id)
    with lock:
        if db.get_bind().dialect.name == "postgresql":
            db.execute(
                text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
                {"key": f"appointments:{practitioner_id}"},
            )
            logger.debug(f"Advisory lock acquired for practitioner {practitioner_id}")
        try:
            yield
        except Exception:
            # Release the advisory lock along with the failed transaction
            db.rollback()
            raise
