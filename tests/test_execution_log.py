# tests/test_execution_log.py
"""
ExecutionLog: escrituras best-effort, lectura filtrada (más reciente primero),
retención y consulta de NodeRuntimeStatus.
"""

import logging
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from agentflow.errors import NotFound
from agentflow.models import ExecutionLogEntry, LogLevel, NodeState, Permission, utcnow
from agentflow.repository import UnitOfWork, UnitOfWorkFactory
from agentflow.services import ExecutionLog

from conftest import BOB, CAROL, OWNER, nodes


def test_logs_are_newest_first(services, make_workflow):
    wid = make_workflow()
    for i in range(3):
        services.logs.append(wid, f"event {i}")

    messages = [e.message for e in services.logs.get_logs(wid, OWNER)]
    assert messages == ["event 2", "event 1", "event 0", "Workflow created"]


def test_logs_filters(services, make_workflow):
    wid = make_workflow()
    services.logs.append(wid, "boom", level=LogLevel.error, execution_id="exec_1")
    services.logs.append(wid, "step ok", execution_id="exec_1")
    services.logs.append(wid, "other run", execution_id="exec_2")

    by_run = services.logs.get_logs(wid, OWNER, {"execution_id": "exec_1"})
    assert [e.message for e in by_run] == ["step ok", "boom"]

    errors = services.logs.get_logs(wid, OWNER, {"level": "error"})
    assert [e.message for e in errors] == ["boom"]


def test_logs_default_and_max_limit(engine, services, make_workflow, settings):
    wid = make_workflow()
    with UnitOfWork(engine) as uow:
        for i in range(110):
            uow.logs.append(ExecutionLogEntry(agent_id=wid, message=f"bulk {i}"))
        uow.commit()

    assert len(services.logs.get_logs(wid, OWNER)) == settings.default_log_limit == 100
    assert len(services.logs.get_logs(wid, OWNER, {"limit": 5})) == 5

    capped = ExecutionLog(UnitOfWorkFactory(engine), services.sharing, settings.model_copy(update={"max_log_limit": 7}))
    assert len(capped.get_logs(wid, OWNER, {"limit": 50})) == 7


def test_logs_visible_to_owner_and_sharees_only(services, make_workflow):
    wid = make_workflow()
    services.sharing.add_grant(wid, BOB, Permission.view, OWNER)

    assert services.logs.get_logs(wid, BOB)
    with pytest.raises(NotFound) as hidden:
        services.logs.get_logs(wid, CAROL)
    with pytest.raises(NotFound) as missing:
        services.logs.get_logs("wf_missing", CAROL)
    # misma respuesta: no se revela que el workflow existe
    assert hidden.value.message == missing.value.message


def test_logs_of_public_workflow_stay_private(services, make_workflow):
    wid = make_workflow()
    services.workflows.update(wid, {"is_public": True}, OWNER)
    with pytest.raises(NotFound):
        services.logs.get_logs(wid, CAROL)


def test_logs_missing_workflow(services):
    with pytest.raises(NotFound):
        services.logs.get_logs("wf_missing", OWNER)


def test_append_failure_is_logged_not_raised(services, settings, caplog):
    class BrokenUnitOfWork:
        def __enter__(self):
            raise OperationalError("INSERT INTO executionlogentry", {}, Exception("disk I/O error"))

        def __exit__(self, *exc):
            return False

    broken = ExecutionLog(lambda: BrokenUnitOfWork(), services.sharing, settings)
    with caplog.at_level(logging.ERROR, logger="agentflow.services.logs"):
        assert broken.append("wf_x", "lost entry") is None
    assert "could not append execution log" in caplog.text


def test_purge_expired(engine, services, make_workflow, settings):
    wid = make_workflow()
    old = utcnow() - timedelta(days=settings.log_retention_days + 1)
    with UnitOfWork(engine) as uow:
        uow.logs.append(ExecutionLogEntry(agent_id=wid, message="ancient", created_at=old))
        uow.logs.append(ExecutionLogEntry(agent_id=wid, message="old", created_at=old))
        uow.commit()

    assert services.logs.purge_expired() == 2
    assert [e.message for e in services.logs.get_logs(wid, OWNER)] == ["Workflow created"]
    assert services.logs.purge_expired() == 0


def test_purge_expired_relative_to_given_now(services, make_workflow, settings):
    wid = make_workflow()
    future = utcnow() + timedelta(days=settings.log_retention_days + 1)
    assert services.logs.purge_expired(now=future) == 1
    assert services.logs.get_logs(wid, OWNER) == []


def test_node_statuses(services, make_workflow):
    wid = make_workflow(nodes=nodes("b", "a"))
    assert services.logs.get_node_statuses(wid, OWNER) == []

    services.lifecycle.deploy(wid, OWNER)
    rows = services.logs.get_node_statuses(wid, OWNER)
    assert [(r.node_id, r.status) for r in rows] == [("a", NodeState.idle), ("b", NodeState.idle)]


def test_node_statuses_hidden_from_strangers(services, make_workflow):
    wid = make_workflow(nodes=nodes("n1"))
    with pytest.raises(NotFound):
        services.logs.get_node_statuses(wid, BOB)
