from datetime import datetime
from typing import Optional
from enum import Enum
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field
from .base import utcnow

class Permission(str, Enum):
    view = "view"
    edit = "edit"
    admin = "admin"

    @property
    def rank(self) -> int:
        # cada nivel implica los inferiores
        return _RANKS[self]

_RANKS = {Permission.view: 0, Permission.edit: 1, Permission.admin: 2}

class SharingGrant(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("workflow_id", "user_id", name="uq_grant_workflow_user"),)

    id: str = Field(primary_key=True, index=True)
    workflow_id: str = Field(foreign_key="workflowdefinition.id", index=True)
    user_id: str = Field(index=True)
    user_name: str = "Unknown"
    user_email: Optional[str] = None
    permission: Permission = Field(default=Permission.view)
    shared_at: datetime = Field(default_factory=utcnow, nullable=False)
    shared_by: str
