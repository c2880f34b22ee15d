"""
Service wiring
Every component is built once per process and receives its collaborators
explicitly; nothing is kept in module-level collections.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import Engine

from .config import Settings, settings as default_settings
from .repository import UnitOfWorkFactory
from .services import (
    ExecutionLog,
    LifecycleController,
    SharingRegistry,
    UserDirectory,
    VersionManager,
    WorkflowStore,
)
from .util.locks import KeyedLock


@dataclass
class Services:
    users: UserDirectory
    sharing: SharingRegistry
    logs: ExecutionLog
    workflows: WorkflowStore
    lifecycle: LifecycleController
    versions: VersionManager


def build_services(engine: Engine, settings: Optional[Settings] = None) -> Services:
    settings = settings or default_settings
    uow = UnitOfWorkFactory(engine)
    # un único registro de locks: todas las escrituras sobre un workflow se serializan juntas
    locks = KeyedLock()

    users = UserDirectory(uow)
    sharing = SharingRegistry(uow, users, locks)
    logs = ExecutionLog(uow, sharing, settings)
    return Services(
        users=users,
        sharing=sharing,
        logs=logs,
        workflows=WorkflowStore(uow, users, sharing, logs, settings, locks),
        lifecycle=LifecycleController(uow, sharing, logs, locks),
        versions=VersionManager(uow, users, sharing, logs, settings, locks),
    )
