"""
WorkflowStore
Owns the workflow definition entity: CRUD, naming, visibility, templates.

Visibility rules:
    - get / duplicate:    owner, sharee (any level) or public
    - update:             owner or edit/admin grant
    - remove / template:  owner only
    - list / search:      owner ∪ grants (public workflows are not listed)
"""

import copy
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..config import Settings
from ..errors import DuplicateName, NotAuthorized, NotFound
from ..models import NodeState, WorkflowDefinition, WorkflowStatus, utcnow
from ..repository import UnitOfWork, UnitOfWorkFactory
from ..schemas import (
    PROTECTED_FIELDS,
    DryRunResult,
    ListOptions,
    NodeDryRunResult,
    Page,
    TemplateCustomizations,
    WorkflowCreate,
    WorkflowPatch,
    WorkflowStats,
)
from ..util.ids import new_id
from ..util.locks import KeyedLock
from ..util.pagination import clamp_limit, page_count, page_window
from .common import require_caller, validate_input
from .logs import ExecutionLog
from .sharing import SharingRegistry
from .users import UserDirectory

logger = logging.getLogger(__name__)


class WorkflowStore:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        users: UserDirectory,
        sharing: SharingRegistry,
        logs: ExecutionLog,
        settings: Settings,
        locks: KeyedLock,
    ):
        self._uow = uow_factory
        self._users = users
        self._sharing = sharing
        self._logs = logs
        self._settings = settings
        self._locks = locks

    # ── helpers ──────────────────────────────────────────────────────────────

    def _ensure_name_free(
        self, uow: UnitOfWork, owner_id: str, name: str, exclude_id: Optional[str] = None
    ) -> None:
        if uow.workflows.find_by_name(owner_id, name, exclude_id=exclude_id) is not None:
            raise DuplicateName(f'A workflow named "{name}" already exists', name=name)

    def _load_visible(self, uow: UnitOfWork, workflow_id: str, caller_id: str, for_update: bool = False):
        workflow = uow.workflows.get(workflow_id, for_update=for_update)
        if workflow is None or not self._sharing.can_view(uow, workflow, caller_id):
            # no distinguimos "no existe" de "no tienes acceso"
            raise NotFound("Workflow not found")
        return workflow

    def _clone(self, uow: UnitOfWork, source: WorkflowDefinition, caller_id: str, **overrides) -> WorkflowDefinition:
        """Fresh definition owned by ``caller_id`` with the source's content."""
        fields = dict(
            id=new_id("wf_"),
            name=source.name,
            description=source.description,
            status=WorkflowStatus.draft,
            nodes=copy.deepcopy(source.nodes),
            connections=copy.deepcopy(source.connections),
            tags=list(source.tags),
            settings=copy.deepcopy(source.settings),
            owner_id=caller_id,
            owner_name=self._users.display_name(caller_id, uow),
            shared_with=[],
            is_template=False,
            is_public=False,
            template_id=None,
            version=1,
        )
        fields.update(overrides)
        self._ensure_name_free(uow, caller_id, fields["name"])
        return uow.workflows.add(WorkflowDefinition(**fields))

    def _insert(self, build, holder: Dict[str, str]) -> WorkflowDefinition:
        """
        Run ``build(uow)`` in one transaction, mapping name races to DuplicateName.
        ``build`` records the candidate name in ``holder["name"]``.
        """
        try:
            with self._uow() as uow:
                workflow = build(uow)
                uow.commit()
        except IntegrityError as exc:
            name = holder.get("name", "")
            raise DuplicateName(f'A workflow named "{name}" already exists', name=name) from exc
        return workflow

    # ── CRUD ─────────────────────────────────────────────────────────────────

    def create(self, data: Any, caller_id: str) -> str:
        """
        Create a workflow owned by the caller.

        Returns:
            The new workflow id.

        Raises:
            NotAuthorized: no caller.
            ValidationError: malformed input.
            DuplicateName: the caller already owns a workflow with that name.
        """
        require_caller(caller_id, "create workflows")
        payload = validate_input(WorkflowCreate, data)

        def build(uow: UnitOfWork) -> WorkflowDefinition:
            self._ensure_name_free(uow, caller_id, payload.name)
            return uow.workflows.add(
                WorkflowDefinition(
                    id=new_id("wf_"),
                    name=payload.name,
                    description=payload.description,
                    status=WorkflowStatus.draft,
                    nodes=[n.model_dump() for n in payload.nodes],
                    connections=[c.model_dump() for c in payload.connections],
                    tags=payload.tags,
                    settings={**self._settings.default_workflow_settings(), **payload.settings},
                    owner_id=caller_id,
                    owner_name=self._users.display_name(caller_id, uow),
                )
            )

        workflow = self._insert(build, {"name": payload.name})
        self._logs.append(workflow.id, "Workflow created", data={"name": workflow.name}, user_id=caller_id)
        logger.info("workflow %s created by %s", workflow.id, caller_id)
        return workflow.id

    def update(self, workflow_id: str, patch: Any, caller_id: str) -> int:
        require_caller(caller_id, "update workflows")
        if isinstance(patch, dict):
            patch = {k: v for k, v in patch.items() if k not in PROTECTED_FIELDS}
        changes = validate_input(WorkflowPatch, patch).model_dump(exclude_unset=True, exclude_none=True)

        try:
            with self._locks.hold(workflow_id), self._uow() as uow:
                workflow = uow.workflows.get(workflow_id, for_update=True)
                if workflow is None:
                    raise NotFound("Workflow not found")
                if not self._sharing.can_edit(uow, workflow, caller_id):
                    raise NotAuthorized("You do not have permission to edit this workflow")
                if "name" in changes and changes["name"] != workflow.name:
                    self._ensure_name_free(uow, workflow.owner_id, changes["name"], exclude_id=workflow.id)

                for field, value in changes.items():
                    setattr(workflow, field, value)
                workflow.last_updated = utcnow()
                uow.workflows.save(workflow)
                uow.commit()
        except IntegrityError as exc:
            name = changes.get("name", "")
            raise DuplicateName(f'A workflow named "{name}" already exists', name=name) from exc

        fields = sorted(changes)
        self._logs.append(workflow_id, "Workflow updated", data={"fields": fields}, user_id=caller_id)
        logger.info("workflow %s updated by %s: %s", workflow_id, caller_id, ", ".join(fields) or "-")
        return 1

    def get(self, workflow_id: str, caller_id: str) -> WorkflowDefinition:
        require_caller(caller_id, "view workflows")
        with self._uow() as uow:
            return self._load_visible(uow, workflow_id, caller_id)

    def remove(self, workflow_id: str, caller_id: str) -> int:
        """
        Delete a workflow with its versions and grants.

        Node runtime rows and execution logs are removed afterwards on a
        best-effort basis; a failure there leaves orphans but never touches the
        (already deleted) definition.
        """
        require_caller(caller_id, "delete workflows")

        with self._locks.hold(workflow_id), self._uow() as uow:
            workflow = self._load_visible(uow, workflow_id, caller_id, for_update=True)
            if workflow.owner_id != caller_id:
                raise NotAuthorized("Only the owner can delete this workflow")
            versions = uow.versions.delete_for(workflow_id)
            grants = uow.grants.delete_for(workflow_id)
            uow.workflows.delete(workflow)
            uow.commit()

        logger.info(
            "workflow %s deleted by %s (%d versions, %d grants)", workflow_id, caller_id, versions, grants
        )
        try:
            with self._uow() as uow:
                uow.node_status.delete_for(workflow_id)
                uow.logs.delete_for(workflow_id)
                uow.commit()
        except SQLAlchemyError:
            logger.exception("cascade cleanup failed for deleted workflow %s", workflow_id)
        return 1

    def duplicate(self, workflow_id: str, caller_id: str) -> str:
        require_caller(caller_id, "duplicate workflows")
        holder: Dict[str, str] = {}

        def build(uow: UnitOfWork) -> WorkflowDefinition:
            source = self._load_visible(uow, workflow_id, caller_id)
            holder["name"] = f"{source.name} (Copy)"
            return self._clone(uow, source, caller_id, name=holder["name"])

        copy_ = self._insert(build, holder)
        self._logs.append(copy_.id, "Workflow duplicated", data={"source_id": workflow_id}, user_id=caller_id)
        logger.info("workflow %s duplicated into %s by %s", workflow_id, copy_.id, caller_id)
        return copy_.id

    # ── listing ──────────────────────────────────────────────────────────────

    def list(self, caller_id: str, options: Any = None, term: Optional[str] = None) -> Page:
        require_caller(caller_id, "list workflows")
        opts = validate_input(ListOptions, options)
        limit = clamp_limit(opts.limit, default=self._settings.default_page_size, max_=self._settings.max_page_size)
        page, offset = page_window(opts.page, limit)

        with self._uow() as uow:
            items, total = uow.workflows.query_visible(
                caller_id,
                offset=offset,
                limit=limit,
                sort_by=opts.sort_by,
                descending=opts.descending,
                status=opts.status,
                tag=opts.tag,
                is_template=opts.is_template,
                term=term.strip() if term else None,
            )
        return Page(items=items, total=total, page=page, limit=limit, pages=page_count(total, limit))

    def search(self, caller_id: str, term: str, options: Any = None) -> Page:
        """``list`` restricted to name/description substrings or an exact tag."""
        return self.list(caller_id, options, term=term or "")

    def stats(self, caller_id: str) -> WorkflowStats:
        require_caller(caller_id, "view statistics")
        with self._uow() as uow:
            counts = uow.workflows.count_by_status(caller_id)
        return WorkflowStats(total=sum(counts.values()), **{s.value: counts.get(s.value, 0) for s in WorkflowStatus})

    # ── templates ────────────────────────────────────────────────────────────

    def create_template(self, workflow_id: str, caller_id: str) -> str:
        require_caller(caller_id, "create templates")
        holder: Dict[str, str] = {}

        def build(uow: UnitOfWork) -> WorkflowDefinition:
            source = self._load_visible(uow, workflow_id, caller_id)
            if source.owner_id != caller_id:
                raise NotAuthorized("Only the owner can create a template from this workflow")
            holder["name"] = f"{source.name} Template"
            return self._clone(
                uow, source, caller_id, name=holder["name"], is_template=True, template_id=source.id
            )

        template = self._insert(build, holder)
        self._logs.append(template.id, "Template created", data={"source_id": workflow_id}, user_id=caller_id)
        logger.info("template %s created from %s by %s", template.id, workflow_id, caller_id)
        return template.id

    def get_templates(self, caller_id: str) -> List[WorkflowDefinition]:
        require_caller(caller_id, "view templates")
        with self._uow() as uow:
            return uow.workflows.templates_for(caller_id)

    def create_from_template(self, template_id: str, customizations: Any, caller_id: str) -> str:
        require_caller(caller_id, "create workflows")
        custom = validate_input(TemplateCustomizations, customizations)
        holder: Dict[str, str] = {}

        def build(uow: UnitOfWork) -> WorkflowDefinition:
            template = uow.workflows.get(template_id)
            if template is None or not template.is_template:
                raise NotFound("Template not found")
            if template.owner_id != caller_id and not template.is_public:
                raise NotFound("Template not found")
            holder["name"] = custom.name or f"New workflow from {template.name}"
            overrides: Dict[str, Any] = {"name": holder["name"], "template_id": template.id}
            if custom.description is not None:
                overrides["description"] = custom.description
            if custom.tags is not None:
                overrides["tags"] = custom.tags
            if custom.settings is not None:
                overrides["settings"] = {**template.settings, **custom.settings}
            return self._clone(uow, template, caller_id, **overrides)

        workflow = self._insert(build, holder)
        self._logs.append(workflow.id, "Workflow created from template", data={"template_id": template_id}, user_id=caller_id)
        logger.info("workflow %s created from template %s by %s", workflow.id, template_id, caller_id)
        return workflow.id

    # ── dry run ──────────────────────────────────────────────────────────────

    def test_run(self, workflow_id: str, caller_id: str, test_data: Optional[Dict[str, Any]] = None) -> DryRunResult:
        """
        Simulated execution. Nothing runs: every node is reported as
        successful and the run is only recorded in the execution log.
        """
        require_caller(caller_id, "test workflows")
        with self._uow() as uow:
            workflow = uow.workflows.get(workflow_id)
            # sin membresía se responde igual que si no existiera
            if workflow is None or not self._sharing.is_member(uow, workflow, caller_id):
                raise NotFound("Workflow not found or access denied")
            nodes = list(workflow.nodes)

        execution_id = new_id("exec_")
        started = utcnow()
        self._logs.append(
            workflow_id, "Test execution started", data={"test_data": test_data or {}},
            user_id=caller_id, execution_id=execution_id,
        )
        results = [
            NodeDryRunResult(node_id=node.get("id", ""), status=NodeState.success, output={"dry_run": True})
            for node in nodes
        ]
        finished = utcnow()
        self._logs.append(
            workflow_id, "Test execution completed", data={"nodes": len(results)},
            user_id=caller_id, execution_id=execution_id,
        )
        return DryRunResult(
            execution_id=execution_id, success=True, start_time=started, end_time=finished, nodes=results
        )
