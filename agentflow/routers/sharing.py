from typing import List

from fastapi import APIRouter, Depends, status

from agentflow.container import Services
from agentflow.deps import caller_id, get_services
from agentflow.schemas import CountResponse, GrantCreate, GrantRead, GrantUpdate

router = APIRouter()


@router.post("/workflows/{workflow_id}/grants", response_model=GrantRead, status_code=status.HTTP_201_CREATED)
def add_grant(
    workflow_id: str,
    body: GrantCreate,
    user: str = Depends(caller_id),
    services: Services = Depends(get_services),
):
    grant = services.sharing.add_grant(workflow_id, body.user_id, body.permission, user)
    return GrantRead.model_validate(grant)


@router.get("/workflows/{workflow_id}/grants", response_model=List[GrantRead])
def list_grants(workflow_id: str, user: str = Depends(caller_id), services: Services = Depends(get_services)):
    return [GrantRead.model_validate(g) for g in services.sharing.list_grants(workflow_id, user)]


@router.put("/workflows/{workflow_id}/grants/{user_id}", response_model=GrantRead)
def update_grant(
    workflow_id: str,
    user_id: str,
    body: GrantUpdate,
    user: str = Depends(caller_id),
    services: Services = Depends(get_services),
):
    grant = services.sharing.update_grant(workflow_id, user_id, body.permission, user)
    return GrantRead.model_validate(grant)


@router.delete("/workflows/{workflow_id}/grants/{user_id}", response_model=CountResponse)
def remove_grant(
    workflow_id: str,
    user_id: str,
    user: str = Depends(caller_id),
    services: Services = Depends(get_services),
):
    return CountResponse(count=services.sharing.remove_grant(workflow_id, user_id, user))
