from .base import Timestamped, utcnow
from .workflow import WorkflowDefinition, WorkflowStatus, VersionSnapshot, VersionType
from .sharing import SharingGrant, Permission
from .runtime import NodeRuntimeStatus, NodeState, ExecutionLogEntry, LogLevel
from .user import User

__all__ = [
    "Timestamped", "utcnow",
    "WorkflowDefinition", "WorkflowStatus", "VersionSnapshot", "VersionType",
    "SharingGrant", "Permission",
    "NodeRuntimeStatus", "NodeState", "ExecutionLogEntry", "LogLevel",
    "User",
]
