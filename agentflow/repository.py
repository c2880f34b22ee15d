"""
Repository Layer
Handles all database operations for workflow definitions, versions, sharing
grants, node runtime status and execution logs.

Each repository is a small CRUD+query contract bound to one Session; the
services never build SQL themselves. A UnitOfWork bundles the repositories
over a single transaction so that multi-entity writes (grant + sharedWith
projection, clear + set current version) commit or roll back together.
"""

import json
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import Engine, String, cast, func, or_
from sqlmodel import Session, col, select

from .models import (
    ExecutionLogEntry,
    LogLevel,
    NodeRuntimeStatus,
    NodeState,
    SharingGrant,
    User,
    VersionSnapshot,
    WorkflowDefinition,
    WorkflowStatus,
    utcnow,
)


class WorkflowRepository:
    """Repository for workflow definition rows"""

    def __init__(self, session: Session):
        self.session = session

    def add(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        self.session.add(workflow)
        self.session.flush()
        return workflow

    def get(self, workflow_id: str, for_update: bool = False) -> Optional[WorkflowDefinition]:
        """
        Load a definition by id.

        ``for_update`` takes a row lock where the dialect supports it
        (PostgreSQL); SQLite serializes writers on its own.
        """
        stmt = select(WorkflowDefinition).where(WorkflowDefinition.id == workflow_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.exec(stmt).first()

    def find_by_name(
        self, owner_id: str, name: str, exclude_id: Optional[str] = None
    ) -> Optional[WorkflowDefinition]:
        stmt = select(WorkflowDefinition).where(
            WorkflowDefinition.owner_id == owner_id,
            WorkflowDefinition.name == name,
        )
        if exclude_id is not None:
            stmt = stmt.where(WorkflowDefinition.id != exclude_id)
        return self.session.exec(stmt).first()

    def save(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        self.session.add(workflow)
        self.session.flush()
        return workflow

    def delete(self, workflow: WorkflowDefinition) -> None:
        self.session.delete(workflow)
        self.session.flush()

    def _visible_clause(self, user_id: str):
        # owner ∪ grants; SharingGrant es la fuente de verdad, no shared_with
        shared_ids = select(SharingGrant.workflow_id).where(SharingGrant.user_id == user_id)
        return or_(WorkflowDefinition.owner_id == user_id, col(WorkflowDefinition.id).in_(shared_ids))

    def query_visible(
        self,
        user_id: str,
        *,
        offset: int = 0,
        limit: int = 20,
        sort_by: str = "last_updated",
        descending: bool = True,
        status: Optional[WorkflowStatus] = None,
        tag: Optional[str] = None,
        is_template: Optional[bool] = None,
        term: Optional[str] = None,
    ) -> Tuple[List[WorkflowDefinition], int]:
        """
        Paginated listing of the definitions a user owns or was granted.

        ``term`` matches name/description case-insensitively or a tag exactly.
        Returns (items, total) where total ignores pagination.
        """
        conditions = [self._visible_clause(user_id)]
        if status is not None:
            conditions.append(WorkflowDefinition.status == status)
        if is_template is not None:
            conditions.append(WorkflowDefinition.is_template == is_template)
        if tag:
            conditions.append(_tag_clause(tag))
        if term:
            pattern = term.lower()
            conditions.append(
                or_(
                    func.lower(WorkflowDefinition.name).contains(pattern, autoescape=True),
                    func.lower(WorkflowDefinition.description).contains(pattern, autoescape=True),
                    _tag_clause(term),
                )
            )

        total = self.session.exec(
            select(func.count()).select_from(WorkflowDefinition).where(*conditions)
        ).one()

        order_col = getattr(WorkflowDefinition, sort_by)
        primary = order_col.desc() if descending else order_col.asc()
        stmt = (
            select(WorkflowDefinition)
            .where(*conditions)
            .order_by(primary, col(WorkflowDefinition.id).asc())
            .offset(offset)
            .limit(limit)
        )
        return list(self.session.exec(stmt).all()), total

    def count_by_status(self, user_id: str) -> Dict[str, int]:
        stmt = (
            select(WorkflowDefinition.status, func.count())
            .where(self._visible_clause(user_id))
            .group_by(WorkflowDefinition.status)
        )
        return {_enum_value(status): n for status, n in self.session.exec(stmt).all()}

    def templates_for(self, user_id: str) -> List[WorkflowDefinition]:
        stmt = (
            select(WorkflowDefinition)
            .where(
                WorkflowDefinition.is_template == True,  # noqa: E712
                or_(WorkflowDefinition.owner_id == user_id, WorkflowDefinition.is_public == True),  # noqa: E712
            )
            .order_by(col(WorkflowDefinition.last_updated).desc())
        )
        return list(self.session.exec(stmt).all())


class VersionRepository:
    """Repository for immutable version snapshots"""

    def __init__(self, session: Session):
        self.session = session

    def get(self, version_id: str) -> Optional[VersionSnapshot]:
        return self.session.get(VersionSnapshot, version_id)

    def max_number(self, workflow_id: str) -> int:
        """Highest version_number for the workflow, 0 if none exist."""
        value = self.session.exec(
            select(func.max(VersionSnapshot.version_number)).where(VersionSnapshot.workflow_id == workflow_id)
        ).one()
        return value or 0

    def current(self, workflow_id: str) -> Optional[VersionSnapshot]:
        return self.session.exec(
            select(VersionSnapshot).where(
                VersionSnapshot.workflow_id == workflow_id,
                VersionSnapshot.is_current == True,  # noqa: E712
            )
        ).first()

    def clear_current(self, workflow_id: str) -> int:
        """
        Unflag every current version of the workflow and flush immediately,
        so the partial unique index never sees two current rows.
        """
        rows = self.session.exec(
            select(VersionSnapshot).where(
                VersionSnapshot.workflow_id == workflow_id,
                VersionSnapshot.is_current == True,  # noqa: E712
            )
        ).all()
        for row in rows:
            row.is_current = False
            self.session.add(row)
        self.session.flush()
        return len(rows)

    def add(self, version: VersionSnapshot) -> VersionSnapshot:
        self.session.add(version)
        self.session.flush()
        return version

    def mark_current(self, version: VersionSnapshot) -> None:
        version.is_current = True
        self.session.add(version)
        self.session.flush()

    def page(
        self, workflow_id: str, *, offset: int, limit: int, search: Optional[str] = None
    ) -> Tuple[List[VersionSnapshot], int]:
        conditions = [VersionSnapshot.workflow_id == workflow_id]
        if search:
            pattern = search.lower()
            conditions.append(
                or_(
                    func.lower(VersionSnapshot.name).contains(pattern, autoescape=True),
                    func.lower(func.coalesce(VersionSnapshot.tag, "")).contains(pattern, autoescape=True),
                )
            )
        total = self.session.exec(select(func.count()).select_from(VersionSnapshot).where(*conditions)).one()
        stmt = (
            select(VersionSnapshot)
            .where(*conditions)
            .order_by(col(VersionSnapshot.version_number).desc())
            .offset(offset)
            .limit(limit)
        )
        return list(self.session.exec(stmt).all()), total

    def delete_for(self, workflow_id: str) -> int:
        rows = self.session.exec(select(VersionSnapshot).where(VersionSnapshot.workflow_id == workflow_id)).all()
        for row in rows:
            self.session.delete(row)
        self.session.flush()
        return len(rows)


class GrantRepository:
    """Repository for (workflow, user) sharing grants"""

    def __init__(self, session: Session):
        self.session = session

    def get(self, workflow_id: str, user_id: str) -> Optional[SharingGrant]:
        return self.session.exec(
            select(SharingGrant).where(SharingGrant.workflow_id == workflow_id, SharingGrant.user_id == user_id)
        ).first()

    def list_for(self, workflow_id: str) -> List[SharingGrant]:
        stmt = (
            select(SharingGrant)
            .where(SharingGrant.workflow_id == workflow_id)
            .order_by(col(SharingGrant.shared_at).asc(), col(SharingGrant.id).asc())
        )
        return list(self.session.exec(stmt).all())

    def user_ids(self, workflow_id: str) -> List[str]:
        return [g.user_id for g in self.list_for(workflow_id)]

    def add(self, grant: SharingGrant) -> SharingGrant:
        self.session.add(grant)
        self.session.flush()
        return grant

    def save(self, grant: SharingGrant) -> SharingGrant:
        self.session.add(grant)
        self.session.flush()
        return grant

    def delete(self, grant: SharingGrant) -> None:
        self.session.delete(grant)
        self.session.flush()

    def delete_for(self, workflow_id: str) -> int:
        rows = self.list_for(workflow_id)
        for row in rows:
            self.session.delete(row)
        self.session.flush()
        return len(rows)


class NodeStatusRepository:
    """Repository for per-node runtime state"""

    def __init__(self, session: Session):
        self.session = session

    def upsert(self, agent_id: str, node_id: str, status: NodeState) -> NodeRuntimeStatus:
        row = self.session.get(NodeRuntimeStatus, (agent_id, node_id))
        if row is None:
            row = NodeRuntimeStatus(agent_id=agent_id, node_id=node_id)
        row.status = status
        row.updated_at = utcnow()
        self.session.add(row)
        self.session.flush()
        return row

    def list_for(self, agent_id: str) -> List[NodeRuntimeStatus]:
        stmt = (
            select(NodeRuntimeStatus)
            .where(NodeRuntimeStatus.agent_id == agent_id)
            .order_by(col(NodeRuntimeStatus.node_id).asc())
        )
        return list(self.session.exec(stmt).all())

    def delete_except(self, agent_id: str, keep: Iterable[str]) -> int:
        keep = set(keep)
        stale = [row for row in self.list_for(agent_id) if row.node_id not in keep]
        for row in stale:
            self.session.delete(row)
        self.session.flush()
        return len(stale)

    def delete_for(self, agent_id: str) -> int:
        return self.delete_except(agent_id, ())


class LogRepository:
    """Repository for append-only execution log entries"""

    def __init__(self, session: Session):
        self.session = session

    def append(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        self.session.add(entry)
        self.session.flush()
        return entry

    def query(
        self,
        agent_id: str,
        *,
        limit: int,
        execution_id: Optional[str] = None,
        level: Optional[LogLevel] = None,
    ) -> List[ExecutionLogEntry]:
        stmt = select(ExecutionLogEntry).where(ExecutionLogEntry.agent_id == agent_id)
        if execution_id:
            stmt = stmt.where(ExecutionLogEntry.execution_id == execution_id)
        if level is not None:
            stmt = stmt.where(ExecutionLogEntry.level == level)
        stmt = stmt.order_by(col(ExecutionLogEntry.created_at).desc(), col(ExecutionLogEntry.id).desc()).limit(limit)
        return list(self.session.exec(stmt).all())

    def delete_for(self, agent_id: str) -> int:
        rows = self.session.exec(select(ExecutionLogEntry).where(ExecutionLogEntry.agent_id == agent_id)).all()
        for row in rows:
            self.session.delete(row)
        self.session.flush()
        return len(rows)

    def delete_older_than(self, cutoff: datetime) -> int:
        rows = self.session.exec(select(ExecutionLogEntry).where(ExecutionLogEntry.created_at < cutoff)).all()
        for row in rows:
            self.session.delete(row)
        self.session.flush()
        return len(rows)


class UserRepository:
    """Read side of the identity directory"""

    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: str) -> Optional[User]:
        return self.session.get(User, user_id)

    def add(self, user: User) -> User:
        self.session.add(user)
        self.session.flush()
        return user

    def search(
        self, term: str, exclude: Sequence[str], *, offset: int, limit: int
    ) -> Tuple[List[User], int]:
        pattern = term.lower()
        conditions = [
            col(User.id).not_in(list(exclude)),
            or_(
                func.lower(User.username).contains(pattern, autoescape=True),
                func.lower(func.coalesce(User.name, "")).contains(pattern, autoescape=True),
                func.lower(func.coalesce(User.email, "")).contains(pattern, autoescape=True),
            ),
        ]
        total = self.session.exec(select(func.count()).select_from(User).where(*conditions)).one()
        stmt = select(User).where(*conditions).order_by(col(User.username).asc()).offset(offset).limit(limit)
        return list(self.session.exec(stmt).all()), total


class UnitOfWork:
    """
    One request-scoped transaction over every repository.

    Usage:
        with uow_factory() as uow:
            wf = uow.workflows.get(wid)
            ...
            uow.commit()

    Leaving the block without commit() rolls back.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.session: Optional[Session] = None

    def __enter__(self) -> "UnitOfWork":
        # expire_on_commit=False: los objetos devueltos se leen después de cerrar la sesión
        self.session = Session(self.engine, expire_on_commit=False)
        self.workflows = WorkflowRepository(self.session)
        self.versions = VersionRepository(self.session)
        self.grants = GrantRepository(self.session)
        self.node_status = NodeStatusRepository(self.session)
        self.logs = LogRepository(self.session)
        self.users = UserRepository(self.session)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.session is None:
            return
        if exc_type is not None:
            self.session.rollback()
        self.session.close()
        self.session = None

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()


class UnitOfWorkFactory:
    def __init__(self, engine: Engine):
        self.engine = engine

    def __call__(self) -> UnitOfWork:
        return UnitOfWork(self.engine)


def _tag_clause(tag: str):
    # JSON array serializado: '["a", "b"]' -> se busca el elemento exacto entre comillas
    return cast(WorkflowDefinition.tags, String).contains(json.dumps(tag), autoescape=True)


def _enum_value(value: Any) -> str:
    return getattr(value, "value", value)
