"""SQLAlchemy models for the quota modeler."""

from .execution_lock import ExecutionLock
from .realm import Realm
from .realm_stat import RealmStat

__all__ = [
    "ExecutionLock",
    "Realm",
    "RealmStat",
]
