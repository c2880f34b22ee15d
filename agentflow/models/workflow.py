from datetime import datetime
from typing import Dict, Any, List, Optional
from enum import Enum
from sqlalchemy import Column, JSON, Index, UniqueConstraint, text
from sqlmodel import Field
from .base import Timestamped, utcnow

class WorkflowStatus(str, Enum):
    draft = "draft"
    active = "active"
    paused = "paused"
    archived = "archived"

class WorkflowDefinition(Timestamped, table=True):
    __table_args__ = (
        # un usuario no puede tener dos workflows con el mismo nombre
        UniqueConstraint("owner_id", "name", name="uq_workflow_owner_name"),
    )

    id: str = Field(primary_key=True, index=True)
    name: str = Field(index=True)
    description: str = ""
    status: WorkflowStatus = Field(default=WorkflowStatus.draft, index=True)

    # grafo editable: nodos ordenados {id, type, config, ...} y conexiones
    nodes: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    connections: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    settings: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    owner_id: str = Field(index=True)
    owner_name: str = "Unknown"
    # proyección de SharingGrant, se refresca en la misma transacción que el grant
    shared_with: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    is_template: bool = Field(default=False, index=True)
    is_public: bool = Field(default=False, index=True)
    template_id: Optional[str] = Field(default=None, index=True)

    version: int = Field(default=1)
    last_versioned_at: Optional[datetime] = None
    last_updated: datetime = Field(default_factory=utcnow, nullable=False, index=True)

    def content(self) -> Dict[str, Any]:
        """The versionable fields of the definition."""
        return {
            "name": self.name,
            "description": self.description,
            "nodes": self.nodes,
            "connections": self.connections,
            "settings": self.settings,
            "tags": self.tags,
        }

class VersionType(str, Enum):
    minor = "minor"
    major = "major"

class VersionSnapshot(Timestamped, table=True):
    __table_args__ = (
        UniqueConstraint("workflow_id", "version_number", name="uq_version_number"),
        # a lo sumo una versión actual por workflow
        Index(
            "uq_version_current",
            "workflow_id",
            unique=True,
            sqlite_where=text("is_current = 1"),
            postgresql_where=text("is_current"),
        ),
    )

    id: str = Field(primary_key=True, index=True)
    workflow_id: str = Field(foreign_key="workflowdefinition.id", index=True)
    version_number: int = Field(index=True)
    name: str
    description: Optional[str] = None
    type: VersionType = Field(default=VersionType.minor)
    tag: Optional[str] = None
    # copia inmutable de name/description/nodes/connections/settings/tags
    snapshot: Dict[str, Any] = Field(sa_column=Column(JSON, nullable=False))
    is_current: bool = Field(default=False)
    created_by: str
    created_by_name: str = "Unknown"
