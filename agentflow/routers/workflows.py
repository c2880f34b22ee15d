from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from agentflow.container import Services
from agentflow.deps import caller_id, get_services
from agentflow.models import WorkflowStatus
from agentflow.schemas import (
    CountResponse,
    CreatedResponse,
    DryRunResult,
    ListOptions,
    Page,
    SortField,
    WorkflowRead,
    WorkflowStats,
    to_page,
)

router = APIRouter()


def list_options(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    sort_by: SortField = Query("last_updated"),
    descending: bool = Query(True),
    status: Optional[WorkflowStatus] = Query(None),
    tag: Optional[str] = Query(None),
    is_template: Optional[bool] = Query(None),
) -> ListOptions:
    return ListOptions(
        page=page, limit=limit, sort_by=sort_by, descending=descending,
        status=status, tag=tag, is_template=is_template,
    )


@router.post("/workflows", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
def create_workflow(
    body: Dict[str, Any] = Body(...),
    user: str = Depends(caller_id),
    services: Services = Depends(get_services),
):
    return CreatedResponse(id=services.workflows.create(body, user))


@router.get("/workflows", response_model=Page[WorkflowRead])
def list_workflows(
    options: ListOptions = Depends(list_options),
    user: str = Depends(caller_id),
    services: Services = Depends(get_services),
):
    return to_page(services.workflows.list(user, options), WorkflowRead)


@router.get("/workflows/search", response_model=Page[WorkflowRead])
def search_workflows(
    q: str = Query("", max_length=200),
    options: ListOptions = Depends(list_options),
    user: str = Depends(caller_id),
    services: Services = Depends(get_services),
):
    return to_page(services.workflows.search(user, q, options), WorkflowRead)


@router.get("/workflows/stats", response_model=WorkflowStats)
def workflow_stats(user: str = Depends(caller_id), services: Services = Depends(get_services)):
    return services.workflows.stats(user)


@router.get("/workflows/templates", response_model=List[WorkflowRead])
def list_templates(user: str = Depends(caller_id), services: Services = Depends(get_services)):
    return [WorkflowRead.model_validate(t) for t in services.workflows.get_templates(user)]


@router.post(
    "/workflows/templates/{template_id}/instantiate",
    response_model=CreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
def instantiate_template(
    template_id: str,
    body: Optional[Dict[str, Any]] = Body(None),
    user: str = Depends(caller_id),
    services: Services = Depends(get_services),
):
    return CreatedResponse(id=services.workflows.create_from_template(template_id, body, user))


@router.get("/workflows/{workflow_id}", response_model=WorkflowRead)
def get_workflow(workflow_id: str, user: str = Depends(caller_id), services: Services = Depends(get_services)):
    return WorkflowRead.model_validate(services.workflows.get(workflow_id, user))


@router.patch("/workflows/{workflow_id}", response_model=CountResponse)
def update_workflow(
    workflow_id: str,
    body: Dict[str, Any] = Body(...),
    user: str = Depends(caller_id),
    services: Services = Depends(get_services),
):
    return CountResponse(count=services.workflows.update(workflow_id, body, user))


@router.delete("/workflows/{workflow_id}", response_model=CountResponse)
def delete_workflow(workflow_id: str, user: str = Depends(caller_id), services: Services = Depends(get_services)):
    return CountResponse(count=services.workflows.remove(workflow_id, user))


@router.post("/workflows/{workflow_id}/duplicate", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
def duplicate_workflow(workflow_id: str, user: str = Depends(caller_id), services: Services = Depends(get_services)):
    return CreatedResponse(id=services.workflows.duplicate(workflow_id, user))


@router.post("/workflows/{workflow_id}/template", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
def create_template(workflow_id: str, user: str = Depends(caller_id), services: Services = Depends(get_services)):
    return CreatedResponse(id=services.workflows.create_template(workflow_id, user))


@router.post("/workflows/{workflow_id}/test", response_model=DryRunResult)
def test_workflow(
    workflow_id: str,
    body: Optional[Dict[str, Any]] = Body(None),
    user: str = Depends(caller_id),
    services: Services = Depends(get_services),
):
    # ejecución simulada: no corre nada, solo deja rastro en los logs
    return services.workflows.test_run(workflow_id, user, body)
