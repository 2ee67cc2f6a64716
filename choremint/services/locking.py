"""
Per-child serialization for the achievement sequence.

Appends are independent inserts and need no lock. The read-sum, compare,
write-history/rollover/slot sequence must not run concurrently for the same
child. Within one process this is an in-memory lock keyed by child id;
across processes the goal service also takes a row lock on the child's
``GoalConfig`` (``SELECT ... FOR UPDATE``) where the database supports it.
"""

import threading
import weakref
from contextlib import contextmanager

_registry_lock = threading.Lock()

# Only children with a sequence in flight hold an entry
_child_locks = weakref.WeakValueDictionary()


def _lock_for(child_id: int):
    with _registry_lock:
        lock = _child_locks.get(child_id)
        if lock is None:
            lock = threading.RLock()
            _child_locks[child_id] = lock
        return lock


@contextmanager
def child_lock(child_id: int):
    """Hold the per-child lock for the duration of the block.

    Re-entrant, so the reconcile job can call into the post-append hook for
    a child it already holds.
    """
    lock = _lock_for(child_id)
    with lock:
        yield
