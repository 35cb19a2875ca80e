"""
Distributed locking for ride creation, matching and acceptance.
"""

from .locks import (
    RideLockManager,
    LockBackendUnavailable,
    get_lock_manager,
    LOCK_CONFIG,
)

__all__ = [
    "RideLockManager",
    "LockBackendUnavailable",
    "get_lock_manager",
    "LOCK_CONFIG",
]
