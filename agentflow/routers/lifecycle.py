from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from agentflow.container import Services
from agentflow.deps import caller_id, get_services
from agentflow.models import LogLevel
from agentflow.schemas import CountResponse, LogEntryRead, LogQuery, NodeStatusRead, StatusChange

router = APIRouter()


@router.put("/workflows/{workflow_id}/status", response_model=CountResponse)
def set_status(
    workflow_id: str,
    body: StatusChange,
    user: str = Depends(caller_id),
    services: Services = Depends(get_services),
):
    return CountResponse(count=services.lifecycle.set_status(workflow_id, body.status, user))


@router.post("/workflows/{workflow_id}/deploy", response_model=CountResponse)
def deploy(workflow_id: str, user: str = Depends(caller_id), services: Services = Depends(get_services)):
    return CountResponse(count=services.lifecycle.deploy(workflow_id, user))


@router.post("/workflows/{workflow_id}/pause", response_model=CountResponse)
def pause(workflow_id: str, user: str = Depends(caller_id), services: Services = Depends(get_services)):
    return CountResponse(count=services.lifecycle.pause(workflow_id, user))


@router.post("/workflows/{workflow_id}/archive", response_model=CountResponse)
def archive(workflow_id: str, user: str = Depends(caller_id), services: Services = Depends(get_services)):
    return CountResponse(count=services.lifecycle.archive(workflow_id, user))


@router.get("/workflows/{workflow_id}/logs", response_model=List[LogEntryRead])
def get_logs(
    workflow_id: str,
    limit: Optional[int] = Query(None, ge=1),
    execution_id: Optional[str] = Query(None),
    level: Optional[LogLevel] = Query(None),
    user: str = Depends(caller_id),
    services: Services = Depends(get_services),
):
    query = LogQuery(limit=limit, execution_id=execution_id, level=level)
    return [LogEntryRead.model_validate(e) for e in services.logs.get_logs(workflow_id, user, query)]


@router.get("/workflows/{workflow_id}/node-status", response_model=List[NodeStatusRead])
def node_status(workflow_id: str, user: str = Depends(caller_id), services: Services = Depends(get_services)):
    return [NodeStatusRead.model_validate(s) for s in services.logs.get_node_statuses(workflow_id, user)]
