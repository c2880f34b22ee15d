"""
SharingRegistry: permission grants per (workflow, user).

SharingGrant rows are the single source of truth. The ``shared_with`` list on
the definition is a projection recomputed from the grants inside the same
transaction as every grant write, so the two never drift.
"""

import logging
from typing import List, Optional, Union

from sqlalchemy.exc import IntegrityError

from ..errors import AlreadyShared, NotAuthorized, NotFound, UserNotFound, ValidationError
from ..models import Permission, SharingGrant, WorkflowDefinition
from ..repository import UnitOfWork, UnitOfWorkFactory
from ..util.ids import new_id
from ..util.locks import KeyedLock
from .common import require_caller
from .users import UserDirectory

logger = logging.getLogger(__name__)


def has_at_least(grant: Optional[SharingGrant], level: Union[Permission, str]) -> bool:
    """True when ``grant`` carries ``level`` or a higher permission."""
    if grant is None:
        return False
    return Permission(grant.permission).rank >= Permission(level).rank


def _permission(value: Union[Permission, str]) -> Permission:
    try:
        return Permission(value)
    except ValueError as exc:
        raise ValidationError(
            "Invalid permission level",
            details=[{"path": "permission", "msg": f"must be one of {[p.value for p in Permission]}"}],
        ) from exc


class SharingRegistry:
    def __init__(self, uow_factory: UnitOfWorkFactory, users: UserDirectory, locks: KeyedLock):
        self._uow = uow_factory
        self._users = users
        self._locks = locks

    # ── Authorization helpers (run inside the caller's unit of work) ─────────

    def grant_for(self, uow: UnitOfWork, workflow_id: str, user_id: str) -> Optional[SharingGrant]:
        return uow.grants.get(workflow_id, user_id)

    def is_member(self, uow: UnitOfWork, workflow: WorkflowDefinition, user_id: str) -> bool:
        """Owner or holder of any grant, whatever its level."""
        return workflow.owner_id == user_id or self.grant_for(uow, workflow.id, user_id) is not None

    def can_view(self, uow: UnitOfWork, workflow: WorkflowDefinition, user_id: str) -> bool:
        return workflow.is_public or self.is_member(uow, workflow, user_id)

    def can_edit(self, uow: UnitOfWork, workflow: WorkflowDefinition, user_id: str) -> bool:
        if workflow.owner_id == user_id:
            return True
        return has_at_least(self.grant_for(uow, workflow.id, user_id), Permission.edit)

    def can_manage(self, uow: UnitOfWork, workflow: WorkflowDefinition, user_id: str) -> bool:
        if workflow.owner_id == user_id:
            return True
        return has_at_least(self.grant_for(uow, workflow.id, user_id), Permission.admin)

    def _refresh_projection(self, uow: UnitOfWork, workflow: WorkflowDefinition) -> None:
        workflow.shared_with = uow.grants.user_ids(workflow.id)
        uow.workflows.save(workflow)

    def _load_managed(self, uow: UnitOfWork, workflow_id: str, caller_id: str, action: str) -> WorkflowDefinition:
        workflow = uow.workflows.get(workflow_id, for_update=True)
        if workflow is None:
            raise NotFound("Workflow not found")
        if not self.can_manage(uow, workflow, caller_id):
            raise NotAuthorized(f"You do not have permission to {action}")
        return workflow

    # ── Operations ───────────────────────────────────────────────────────────

    def add_grant(
        self,
        workflow_id: str,
        user_id: str,
        permission: Union[Permission, str],
        caller_id: str,
    ) -> SharingGrant:
        """
        Share a workflow with another user.

        Raises:
            NotAuthorized: caller is neither owner nor admin grantee.
            AlreadyShared: a grant for (workflow, user) exists.
            UserNotFound: ``user_id`` is unknown to the identity directory.
        """
        require_caller(caller_id, "share workflows")
        level = _permission(permission)

        try:
            with self._locks.hold(workflow_id), self._uow() as uow:
                workflow = self._load_managed(uow, workflow_id, caller_id, "share this workflow")
                if uow.grants.get(workflow_id, user_id) is not None:
                    raise AlreadyShared("Workflow is already shared with this user")
                target = self._users.resolve(user_id, uow)
                if target is None:
                    raise UserNotFound("User not found")
                if user_id == workflow.owner_id:
                    raise ValidationError(
                        "The owner already has full access",
                        details=[{"path": "user_id", "msg": "cannot share with the owner"}],
                    )

                grant = uow.grants.add(
                    SharingGrant(
                        id=new_id("grant_"),
                        workflow_id=workflow_id,
                        user_id=user_id,
                        user_name=target.display_name,
                        user_email=target.email,
                        permission=level,
                        shared_by=caller_id,
                    )
                )
                self._refresh_projection(uow, workflow)
                uow.commit()
        except IntegrityError as exc:
            # otra transacción insertó el mismo par (workflow, user)
            raise AlreadyShared("Workflow is already shared with this user") from exc

        logger.info("workflow %s shared with %s as %s by %s", workflow_id, user_id, level.value, caller_id)
        return grant

    def update_grant(
        self,
        workflow_id: str,
        user_id: str,
        new_permission: Union[Permission, str],
        caller_id: str,
    ) -> SharingGrant:
        require_caller(caller_id)
        level = _permission(new_permission)

        with self._locks.hold(workflow_id), self._uow() as uow:
            self._load_managed(uow, workflow_id, caller_id, "update sharing")
            grant = uow.grants.get(workflow_id, user_id)
            if grant is None:
                raise NotFound("Sharing grant not found")
            old = grant.permission
            grant.permission = level
            uow.grants.save(grant)
            uow.commit()

        logger.info("grant %s/%s changed %s -> %s", workflow_id, user_id, Permission(old).value, level.value)
        return grant

    def remove_grant(self, workflow_id: str, user_id: str, caller_id: str) -> int:
        """Revoke a grant. Returns the number of grants removed (0 or 1)."""
        require_caller(caller_id)

        with self._locks.hold(workflow_id), self._uow() as uow:
            workflow = self._load_managed(uow, workflow_id, caller_id, "remove sharing")
            grant = uow.grants.get(workflow_id, user_id)
            if grant is None:
                return 0
            uow.grants.delete(grant)
            self._refresh_projection(uow, workflow)
            uow.commit()

        logger.info("workflow %s unshared from %s by %s", workflow_id, user_id, caller_id)
        return 1

    def list_grants(self, workflow_id: str, caller_id: str) -> List[SharingGrant]:
        # cualquier titular de un grant (incluido view) ve la lista completa de colaboradores
        require_caller(caller_id)
        with self._uow() as uow:
            workflow = uow.workflows.get(workflow_id)
            if workflow is None:
                raise NotFound("Workflow not found")
            if not self.is_member(uow, workflow, caller_id):
                raise NotAuthorized("Access denied")
            return uow.grants.list_for(workflow_id)
