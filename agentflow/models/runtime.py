from datetime import datetime
from typing import Dict, Any, Optional
from enum import Enum
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field
from .base import Timestamped, utcnow

class NodeState(str, Enum):
    idle = "idle"
    running = "running"
    success = "success"
    error = "error"

class NodeRuntimeStatus(SQLModel, table=True):
    # sin foreign key: el borrado en cascada es best-effort y puede dejar huérfanos
    agent_id: str = Field(primary_key=True)
    node_id: str = Field(primary_key=True)
    status: NodeState = Field(default=NodeState.idle, index=True)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)

class LogLevel(str, Enum):
    debug = "debug"
    info = "info"
    warning = "warning"
    error = "error"

class ExecutionLogEntry(Timestamped, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    agent_id: str = Field(index=True)
    execution_id: Optional[str] = Field(default=None, index=True)
    level: LogLevel = Field(default=LogLevel.info, index=True)
    message: str
    data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    user_id: Optional[str] = Field(default=None, index=True)
