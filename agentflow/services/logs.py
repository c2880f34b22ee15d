"""
ExecutionLog + NodeRuntimeStatus queries.

Appends are fire-and-forget: they run in their own unit of work AFTER the
caller's transaction has been committed, and a storage failure is reported
through the application logger instead of being raised.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..config import Settings
from ..errors import NotFound
from ..models import ExecutionLogEntry, LogLevel, NodeRuntimeStatus, utcnow
from ..repository import UnitOfWorkFactory
from ..schemas import LogQuery
from ..util.pagination import clamp_limit
from .common import require_caller, validate_input
from .sharing import SharingRegistry

logger = logging.getLogger(__name__)


class ExecutionLog:
    def __init__(self, uow_factory: UnitOfWorkFactory, sharing: SharingRegistry, settings: Settings):
        self._uow = uow_factory
        self._sharing = sharing
        self._settings = settings

    def append(
        self,
        agent_id: str,
        message: str,
        level: LogLevel = LogLevel.info,
        data: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        execution_id: Optional[str] = None,
    ) -> Optional[ExecutionLogEntry]:
        """Record one entry. Returns None when the write failed."""
        entry = ExecutionLogEntry(
            agent_id=agent_id,
            execution_id=execution_id,
            level=level,
            message=message,
            data=data,
            user_id=user_id,
        )
        try:
            with self._uow() as uow:
                uow.logs.append(entry)
                uow.commit()
        except SQLAlchemyError:
            logger.exception("could not append execution log for %s: %s", agent_id, message)
            return None
        return entry

    def get_logs(self, agent_id: str, caller_id: str, query: Any = None) -> List[ExecutionLogEntry]:
        """
        Newest-first entries of one workflow, visible to its owner and sharees.

        ``query`` accepts a LogQuery or a dict with ``limit``, ``execution_id``
        and ``level``.
        """
        require_caller(caller_id, "view logs")
        q = validate_input(LogQuery, query)
        limit = clamp_limit(q.limit, default=self._settings.default_log_limit, max_=self._settings.max_log_limit)

        with self._uow() as uow:
            workflow = uow.workflows.get(agent_id)
            # sin membresía se responde igual que si no existiera
            if workflow is None or not self._sharing.is_member(uow, workflow, caller_id):
                raise NotFound("Workflow not found or access denied")
            return uow.logs.query(agent_id, limit=limit, execution_id=q.execution_id, level=q.level)

    def get_node_statuses(self, agent_id: str, caller_id: str) -> List[NodeRuntimeStatus]:
        require_caller(caller_id)
        with self._uow() as uow:
            workflow = uow.workflows.get(agent_id)
            if workflow is None or not self._sharing.can_view(uow, workflow, caller_id):
                raise NotFound("Workflow not found")
            return uow.node_status.list_for(agent_id)

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete entries older than ``log_retention_days``. Returns how many went away."""
        cutoff = (now or utcnow()) - timedelta(days=self._settings.log_retention_days)
        with self._uow() as uow:
            removed = uow.logs.delete_older_than(cutoff)
            uow.commit()
        if removed:
            logger.info("purged %d execution log entries older than %s", removed, cutoff.isoformat())
        return removed
