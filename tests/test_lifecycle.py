# tests/test_lifecycle.py
"""
LifecycleController: set_status / deploy / pause / archive y el reinicio de
NodeRuntimeStatus al entrar en "active".
"""

import itertools

import pytest

from agentflow.errors import InvalidWorkflow, NotAuthorized, NotFound, ValidationError
from agentflow.models import NodeState, Permission, WorkflowStatus
from agentflow.repository import UnitOfWork
from agentflow.services import check_transition

from conftest import BOB, CAROL, OWNER, nodes


def _node_rows(services, wid):
    return {(s.node_id, s.status) for s in services.logs.get_node_statuses(wid, OWNER)}


def test_deploy_without_nodes_fails_and_keeps_status(services, make_workflow):
    wid = make_workflow()
    with pytest.raises(InvalidWorkflow) as exc:
        services.lifecycle.deploy(wid, OWNER)
    assert exc.value.kind == "invalid_workflow"
    assert services.workflows.get(wid, OWNER).status == WorkflowStatus.draft
    assert _node_rows(services, wid) == set()


def test_deploy_creates_one_idle_row_per_node(services, make_workflow):
    wid = make_workflow(nodes=nodes("n1", "n2", "n3"))
    assert services.lifecycle.deploy(wid, OWNER) == 1

    assert services.workflows.get(wid, OWNER).status == WorkflowStatus.active
    assert _node_rows(services, wid) == {("n1", NodeState.idle), ("n2", NodeState.idle), ("n3", NodeState.idle)}


def test_deploy_is_idempotent(services, make_workflow, engine):
    wid = make_workflow(nodes=nodes("n1", "n2"))
    services.lifecycle.deploy(wid, OWNER)
    # simula un nodo que quedó corriendo
    with UnitOfWork(engine) as uow:
        uow.node_status.upsert(wid, "n1", NodeState.running)
        uow.commit()

    services.lifecycle.deploy(wid, OWNER)
    assert _node_rows(services, wid) == {("n1", NodeState.idle), ("n2", NodeState.idle)}


def test_entering_active_drops_rows_of_removed_nodes(services, make_workflow):
    wid = make_workflow(nodes=nodes("n1", "n2"))
    services.lifecycle.deploy(wid, OWNER)
    services.workflows.update(wid, {"nodes": nodes("n2", "n3")}, OWNER)

    services.lifecycle.set_status(wid, "active", OWNER)
    assert _node_rows(services, wid) == {("n2", NodeState.idle), ("n3", NodeState.idle)}


def test_pause_and_archive(services, make_workflow):
    wid = make_workflow(nodes=nodes("n1"))
    services.lifecycle.deploy(wid, OWNER)

    services.lifecycle.pause(wid, OWNER)
    assert services.workflows.get(wid, OWNER).status == WorkflowStatus.paused

    services.lifecycle.archive(wid, OWNER)
    assert services.workflows.get(wid, OWNER).status == WorkflowStatus.archived


def test_pause_is_unguarded(services, make_workflow):
    wid = make_workflow()
    services.lifecycle.pause(wid, OWNER)
    assert services.workflows.get(wid, OWNER).status == WorkflowStatus.paused


def test_any_transition_is_allowed(services, make_workflow):
    wid = make_workflow()
    services.lifecycle.set_status(wid, WorkflowStatus.archived, OWNER)
    services.lifecycle.set_status(wid, WorkflowStatus.draft, OWNER)
    assert services.workflows.get(wid, OWNER).status == WorkflowStatus.draft


def test_check_transition_permits_every_pair():
    for old, new in itertools.product(WorkflowStatus, repeat=2):
        assert check_transition(old, new) is None


def test_set_status_logs_old_and_new(services, make_workflow):
    wid = make_workflow()
    services.lifecycle.set_status(wid, "paused", OWNER)

    entry = services.logs.get_logs(wid, OWNER)[0]
    assert entry.message == "Workflow status changed from draft to paused"
    assert entry.data == {"old_status": "draft", "new_status": "paused"}


def test_set_status_updates_last_updated(services, make_workflow):
    wid = make_workflow()
    before = services.workflows.get(wid, OWNER).last_updated
    services.lifecycle.set_status(wid, "paused", OWNER)
    assert services.workflows.get(wid, OWNER).last_updated >= before


def test_set_status_is_owner_only(services, make_workflow):
    wid = make_workflow(nodes=nodes("n1"))
    services.sharing.add_grant(wid, BOB, Permission.admin, OWNER)

    with pytest.raises(NotAuthorized):
        services.lifecycle.set_status(wid, "paused", BOB)
    with pytest.raises(NotAuthorized):
        services.lifecycle.deploy(wid, BOB)
    with pytest.raises(NotFound):
        services.lifecycle.pause(wid, CAROL)
    assert services.workflows.get(wid, OWNER).status == WorkflowStatus.draft


def test_set_status_rejects_unknown_status(services, make_workflow):
    wid = make_workflow()
    with pytest.raises(ValidationError):
        services.lifecycle.set_status(wid, "published", OWNER)


def test_deploy_missing_workflow(services):
    with pytest.raises(NotFound):
        services.lifecycle.deploy("wf_missing", OWNER)


def test_deploy_requires_caller(services, make_workflow):
    wid = make_workflow(nodes=nodes("n1"))
    with pytest.raises(NotAuthorized):
        services.lifecycle.deploy(wid, "")
