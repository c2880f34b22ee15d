"""
LifecycleController: status state machine over a workflow definition.

    draft ──► active ◄──► paused
      │          │           │
      └──────────┴───► archived

Every pair is currently allowed; check_transition is the single place where
the graph gets tightened.
"""

import logging
from typing import Union

from ..errors import InvalidWorkflow, NotAuthorized, NotFound, ValidationError
from ..models import NodeState, WorkflowDefinition, WorkflowStatus, utcnow
from ..repository import UnitOfWork, UnitOfWorkFactory
from ..util.locks import KeyedLock
from .common import require_caller
from .logs import ExecutionLog
from .sharing import SharingRegistry

logger = logging.getLogger(__name__)


def check_transition(old: WorkflowStatus, new: WorkflowStatus) -> None:
    """Raise InvalidWorkflow when ``old -> new`` is not allowed. Permits everything for now."""
    return None


def _status(value: Union[WorkflowStatus, str]) -> WorkflowStatus:
    try:
        return WorkflowStatus(value)
    except ValueError as exc:
        raise ValidationError(
            "Invalid status",
            details=[{"path": "status", "msg": f"must be one of {[s.value for s in WorkflowStatus]}"}],
        ) from exc


class LifecycleController:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        sharing: SharingRegistry,
        logs: ExecutionLog,
        locks: KeyedLock,
    ):
        self._uow = uow_factory
        self._sharing = sharing
        self._logs = logs
        self._locks = locks

    def _load_owned(self, uow: UnitOfWork, workflow_id: str, caller_id: str) -> WorkflowDefinition:
        workflow = uow.workflows.get(workflow_id, for_update=True)
        if workflow is None or not self._sharing.can_view(uow, workflow, caller_id):
            raise NotFound("Workflow not found")
        if workflow.owner_id != caller_id:
            raise NotAuthorized("Only the owner can change the workflow status")
        return workflow

    def _reset_nodes(self, uow: UnitOfWork, workflow: WorkflowDefinition) -> int:
        # exactamente un registro idle por nodo actual; los de nodos borrados se eliminan
        node_ids = [node["id"] for node in workflow.nodes if node.get("id")]
        uow.node_status.delete_except(workflow.id, node_ids)
        for node_id in node_ids:
            uow.node_status.upsert(workflow.id, node_id, NodeState.idle)
        return len(node_ids)

    def _apply(self, uow: UnitOfWork, workflow: WorkflowDefinition, new: WorkflowStatus) -> WorkflowStatus:
        old = WorkflowStatus(workflow.status)
        check_transition(old, new)
        workflow.status = new
        workflow.last_updated = utcnow()
        uow.workflows.save(workflow)
        if new == WorkflowStatus.active:
            self._reset_nodes(uow, workflow)
        return old

    def _finish(self, workflow_id: str, caller_id: str, old: WorkflowStatus, new: WorkflowStatus) -> None:
        self._logs.append(
            workflow_id,
            f"Workflow status changed from {old.value} to {new.value}",
            data={"old_status": old.value, "new_status": new.value},
            user_id=caller_id,
        )
        logger.info("workflow %s: %s -> %s by %s", workflow_id, old.value, new.value, caller_id)

    def set_status(self, workflow_id: str, status: Union[WorkflowStatus, str], caller_id: str) -> int:
        """
        Owner-only status change. Entering ``active`` resets every node's
        runtime status to idle. Returns 1.
        """
        require_caller(caller_id, "change workflow status")
        new = _status(status)

        with self._locks.hold(workflow_id), self._uow() as uow:
            workflow = self._load_owned(uow, workflow_id, caller_id)
            old = self._apply(uow, workflow, new)
            uow.commit()

        self._finish(workflow_id, caller_id, old, new)
        return 1

    def deploy(self, workflow_id: str, caller_id: str) -> int:
        """set_status(active), refused for a workflow without nodes."""
        require_caller(caller_id, "deploy workflows")

        with self._locks.hold(workflow_id), self._uow() as uow:
            workflow = self._load_owned(uow, workflow_id, caller_id)
            if not workflow.nodes:
                raise InvalidWorkflow("Workflow must have at least one node to deploy")
            old = self._apply(uow, workflow, WorkflowStatus.active)
            uow.commit()

        self._finish(workflow_id, caller_id, old, WorkflowStatus.active)
        self._logs.append(workflow_id, "Workflow deployed", data={"nodes": len(workflow.nodes)}, user_id=caller_id)
        return 1

    def pause(self, workflow_id: str, caller_id: str) -> int:
        return self.set_status(workflow_id, WorkflowStatus.paused, caller_id)

    def archive(self, workflow_id: str, caller_id: str) -> int:
        return self.set_status(workflow_id, WorkflowStatus.archived, caller_id)
