"""
API / service DTOs
Input shapes are validated here; the services convert pydantic failures into
agentflow.errors.ValidationError.
"""

from datetime import datetime
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .models import LogLevel, NodeState, Permission, VersionType, WorkflowStatus


T = TypeVar("T")

# Fields a caller may never set through update(): identity, ownership and
# the derived sharing projection.
PROTECTED_FIELDS = ("id", "owner_id", "owner_name", "created_at", "version", "shared_with", "last_updated")

SortField = Literal["name", "created_at", "last_updated", "status"]


def _clean_tags(tags: List[str]) -> List[str]:
    seen: List[str] = []
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def _check_unique_node_ids(nodes: Optional[List["NodeSpec"]]) -> None:
    if not nodes:
        return
    ids = [n.id for n in nodes]
    dupes = sorted({i for i in ids if ids.count(i) > 1})
    if dupes:
        raise ValueError(f"duplicate node ids: {', '.join(dupes)}")


# ============================================================================
# Workflow graph
# ============================================================================

class NodeSpec(BaseModel):
    """A graph node. UI keys (label, position, icon...) are kept as extras."""
    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    config: Dict[str, Any] = Field(default_factory=dict)


class ConnectionSpec(BaseModel):
    model_config = ConfigDict(extra="allow")

    source: str = Field(min_length=1)
    target: str = Field(min_length=1)


# ============================================================================
# Workflow inputs
# ============================================================================

class WorkflowCreate(BaseModel):
    """Request to create a workflow. New workflows always start as draft."""
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=1000)
    nodes: List[NodeSpec] = Field(default_factory=list)
    connections: List[ConnectionSpec] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    settings: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name is required")
        return v

    @field_validator("tags")
    @classmethod
    def _tags(cls, v: List[str]) -> List[str]:
        return _clean_tags(v)

    @model_validator(mode="after")
    def _nodes(self):
        _check_unique_node_ids(self.nodes)
        return self


class WorkflowPatch(BaseModel):
    """Partial update. Only the fields present in the request are applied.

    Status is not patchable: it moves through LifecycleController only.
    """
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    nodes: Optional[List[NodeSpec]] = None
    connections: Optional[List[ConnectionSpec]] = None
    tags: Optional[List[str]] = None
    settings: Optional[Dict[str, Any]] = None
    is_public: Optional[bool] = None
    is_template: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("name is required")
        return v

    @field_validator("tags")
    @classmethod
    def _tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return None if v is None else _clean_tags(v)

    @model_validator(mode="after")
    def _nodes(self):
        _check_unique_node_ids(self.nodes)
        return self


class TemplateCustomizations(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    tags: Optional[List[str]] = None
    settings: Optional[Dict[str, Any]] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() or None if v is not None else None

    @field_validator("tags")
    @classmethod
    def _tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return None if v is None else _clean_tags(v)


class ListOptions(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: Optional[int] = Field(default=None, ge=1)
    sort_by: SortField = "last_updated"
    descending: bool = True
    status: Optional[WorkflowStatus] = None
    tag: Optional[str] = None
    is_template: Optional[bool] = None


class StatusChange(BaseModel):
    status: WorkflowStatus


# ============================================================================
# Versions / sharing / logs inputs
# ============================================================================

class VersionCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    type: VersionType = VersionType.minor
    tag: Optional[str] = Field(default=None, max_length=50)


class VersionListOptions(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: Optional[int] = Field(default=None, ge=1)
    search: Optional[str] = None


class GrantCreate(BaseModel):
    user_id: str = Field(min_length=1)
    permission: Permission = Permission.view


class GrantUpdate(BaseModel):
    permission: Permission


class LogQuery(BaseModel):
    limit: Optional[int] = Field(default=None, ge=1)
    execution_id: Optional[str] = None
    level: Optional[LogLevel] = None


# ============================================================================
# Outputs
# ============================================================================

class Page(BaseModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    limit: int
    pages: int


class WorkflowRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    status: WorkflowStatus
    nodes: List[Dict[str, Any]]
    connections: List[Dict[str, Any]]
    tags: List[str]
    settings: Dict[str, Any]
    owner_id: str
    owner_name: str
    shared_with: List[str]
    is_template: bool
    is_public: bool
    template_id: Optional[str] = None
    version: int
    last_versioned_at: Optional[datetime] = None
    created_at: datetime
    last_updated: datetime


class VersionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    workflow_id: str
    version_number: int
    name: str
    description: Optional[str] = None
    type: VersionType
    tag: Optional[str] = None
    snapshot: Dict[str, Any]
    is_current: bool
    created_by: str
    created_by_name: str
    created_at: datetime


class GrantRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    workflow_id: str
    user_id: str
    user_name: str
    user_email: Optional[str] = None
    permission: Permission
    shared_at: datetime
    shared_by: str


class LogEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    agent_id: str
    execution_id: Optional[str] = None
    level: LogLevel
    message: str
    data: Optional[Dict[str, Any]] = None
    user_id: Optional[str] = None
    created_at: datetime


class NodeStatusRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    agent_id: str
    node_id: str
    status: NodeState
    updated_at: datetime


class WorkflowStats(BaseModel):
    total: int = 0
    draft: int = 0
    active: int = 0
    paused: int = 0
    archived: int = 0


class NodeDryRunResult(BaseModel):
    node_id: str
    status: NodeState
    output: Dict[str, Any] = Field(default_factory=dict)


class DryRunResult(BaseModel):
    execution_id: str
    success: bool
    start_time: datetime
    end_time: datetime
    nodes: List[NodeDryRunResult]


class UserProfile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    name: Optional[str] = None
    email: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.username or "Unknown"


class CreatedResponse(BaseModel):
    id: str


class CountResponse(BaseModel):
    count: int


def to_page(page: Page, read_model: type) -> Page:
    """Re-wrap a service Page with its items converted to ``read_model``."""
    return Page[read_model](
        items=[read_model.model_validate(item) for item in page.items],
        total=page.total,
        page=page.page,
        limit=page.limit,
        pages=page.pages,
    )
