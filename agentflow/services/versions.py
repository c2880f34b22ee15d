"""
VersionManager
Immutable snapshots of a definition's content, current-version tracking and
restore.

The current flag flip ("clear every is_current, set exactly one") is the
critical section of the store. It is guarded three ways:

1. an in-process lock per workflow id (KeyedLock);
2. one transaction that row-locks the definition before touching versions;
3. the unique (workflow_id, version_number) constraint plus the partial
   unique index on (workflow_id) WHERE is_current.

If (3) rejects a write from a racing process the whole transaction was rolled
back, so the attempt is retried up to ``version_write_retries`` times.
"""

import copy
import logging
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError

from ..config import Settings
from ..errors import DuplicateName, NotAuthorized, NotFound
from ..models import VersionSnapshot, WorkflowDefinition, utcnow
from ..repository import UnitOfWork, UnitOfWorkFactory
from ..schemas import Page, VersionCreate, VersionListOptions
from ..util.ids import new_id
from ..util.locks import KeyedLock
from ..util.pagination import clamp_limit, page_count, page_window
from .common import require_caller, validate_input
from .logs import ExecutionLog
from .sharing import SharingRegistry
from .users import UserDirectory

logger = logging.getLogger(__name__)

R = TypeVar("R")


class VersionManager:
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

    def _load(self, uow: UnitOfWork, workflow_id: str, caller_id: str, for_update: bool = False) -> WorkflowDefinition:
        workflow = uow.workflows.get(workflow_id, for_update=for_update)
        if workflow is None:
            raise NotFound("Workflow not found")
        if not self._sharing.can_view(uow, workflow, caller_id):
            raise NotAuthorized("Access denied")
        return workflow

    def _load_editable(self, uow: UnitOfWork, workflow_id: str, caller_id: str) -> WorkflowDefinition:
        workflow = self._load(uow, workflow_id, caller_id, for_update=True)
        if not self._sharing.can_edit(uow, workflow, caller_id):
            raise NotAuthorized("You do not have permission to version this workflow")
        return workflow

    def _write(self, workflow_id: str, step: Callable[[UnitOfWork], R]) -> R:
        """Run ``step`` under the workflow lock in one transaction, retrying rolled-back conflicts."""
        attempts = max(1, self._settings.version_write_retries)
        for attempt in range(1, attempts + 1):
            try:
                with self._locks.hold(workflow_id), self._uow() as uow:
                    result = step(uow)
                    uow.commit()
                return result
            except IntegrityError:
                if attempt == attempts:
                    raise
                logger.warning(
                    "version write conflict on %s (attempt %d/%d), retrying", workflow_id, attempt, attempts
                )

    def create_version(self, workflow_id: str, meta: Any, caller_id: str) -> str:
        """
        Snapshot the definition's current content as a new version and make it
        the current one.

        Returns:
            The new version id.

        Raises:
            NotFound: unknown workflow.
            NotAuthorized: caller is neither owner nor edit/admin grantee.
            ValidationError: malformed metadata.
        """
        require_caller(caller_id, "create versions")
        data = validate_input(VersionCreate, meta)

        def step(uow: UnitOfWork) -> VersionSnapshot:
            workflow = self._load_editable(uow, workflow_id, caller_id)
            number = uow.versions.max_number(workflow_id) + 1
            uow.versions.clear_current(workflow_id)
            version = uow.versions.add(
                VersionSnapshot(
                    id=new_id("ver_"),
                    workflow_id=workflow_id,
                    version_number=number,
                    name=data.name,
                    description=data.description,
                    type=data.type,
                    tag=data.tag,
                    snapshot=copy.deepcopy(workflow.content()),
                    is_current=True,
                    created_by=caller_id,
                    created_by_name=self._users.display_name(caller_id, uow),
                )
            )
            workflow.version = number
            workflow.last_versioned_at = version.created_at
            uow.workflows.save(workflow)
            return version

        version = self._write(workflow_id, step)
        self._logs.append(
            workflow_id,
            f"Version {version.version_number} created",
            data={"version_id": version.id, "version_number": version.version_number, "type": version.type.value},
            user_id=caller_id,
        )
        logger.info("workflow %s: version %d (%s) created by %s", workflow_id, version.version_number, version.id, caller_id)
        return version.id

    def list_versions(self, workflow_id: str, caller_id: str, options: Any = None) -> Page:
        """Newest first. Any viewer may list, including view-level grantees and public access."""
        require_caller(caller_id, "view versions")
        opts = validate_input(VersionListOptions, options)
        limit = clamp_limit(opts.limit, default=10, max_=self._settings.max_page_size)
        page, offset = page_window(opts.page, limit)

        with self._uow() as uow:
            self._load(uow, workflow_id, caller_id)
            items, total = uow.versions.page(workflow_id, offset=offset, limit=limit, search=opts.search)
        return Page(items=items, total=total, page=page, limit=limit, pages=page_count(total, limit))

    def get_current_version(self, workflow_id: str, caller_id: str) -> Optional[VersionSnapshot]:
        require_caller(caller_id, "view versions")
        with self._uow() as uow:
            self._load(uow, workflow_id, caller_id)
            return uow.versions.current(workflow_id)

    def restore_version(self, workflow_id: str, version_id: str, caller_id: str) -> bool:
        """
        Overwrite the definition's content from a snapshot and make that
        snapshot current. Owner, sharing and template flags stay untouched.
        """
        require_caller(caller_id, "restore versions")

        def step(uow: UnitOfWork) -> VersionSnapshot:
            workflow = self._load_editable(uow, workflow_id, caller_id)
            version = uow.versions.get(version_id)
            if version is None or version.workflow_id != workflow_id:
                raise NotFound("Version not found")

            content = copy.deepcopy(version.snapshot)
            name = content.get("name", workflow.name)
            if name != workflow.name and uow.workflows.find_by_name(workflow.owner_id, name, exclude_id=workflow_id):
                raise DuplicateName(f'A workflow named "{name}" already exists', name=name)

            uow.versions.clear_current(workflow_id)
            uow.versions.mark_current(version)
            for field in ("name", "description", "nodes", "connections", "settings", "tags"):
                if field in content:
                    setattr(workflow, field, content[field])
            workflow.version = version.version_number
            workflow.last_updated = utcnow()
            uow.workflows.save(workflow)
            return version

        version = self._write(workflow_id, step)
        self._logs.append(
            workflow_id,
            f"Restored to version {version.version_number}",
            data={"version_id": version.id, "version_number": version.version_number},
            user_id=caller_id,
        )
        logger.info("workflow %s restored to version %d by %s", workflow_id, version.version_number, caller_id)
        return True
