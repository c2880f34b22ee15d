from .lifecycle import LifecycleController, check_transition
from .logs import ExecutionLog
from .sharing import SharingRegistry, has_at_least
from .users import UserDirectory
from .versions import VersionManager
from .workflows import WorkflowStore

__all__ = [
    "LifecycleController", "check_transition",
    "ExecutionLog",
    "SharingRegistry", "has_at_least",
    "UserDirectory",
    "VersionManager",
    "WorkflowStore",
]
