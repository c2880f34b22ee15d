from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from agentflow.container import Services
from agentflow.deps import caller_id, get_services
from agentflow.schemas import CreatedResponse, Page, VersionListOptions, VersionRead, to_page

router = APIRouter()


@router.post("/workflows/{workflow_id}/versions", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
def create_version(
    workflow_id: str,
    body: Dict[str, Any] = Body(...),
    user: str = Depends(caller_id),
    services: Services = Depends(get_services),
):
    return CreatedResponse(id=services.versions.create_version(workflow_id, body, user))


@router.get("/workflows/{workflow_id}/versions", response_model=Page[VersionRead])
def list_versions(
    workflow_id: str,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    search: Optional[str] = Query(None),
    user: str = Depends(caller_id),
    services: Services = Depends(get_services),
):
    options = VersionListOptions(page=page, limit=limit, search=search)
    return to_page(services.versions.list_versions(workflow_id, user, options), VersionRead)


@router.get("/workflows/{workflow_id}/versions/current", response_model=Optional[VersionRead])
def current_version(workflow_id: str, user: str = Depends(caller_id), services: Services = Depends(get_services)):
    version = services.versions.get_current_version(workflow_id, user)
    return VersionRead.model_validate(version) if version else None


@router.post("/workflows/{workflow_id}/versions/{version_id}/restore")
def restore_version(
    workflow_id: str,
    version_id: str,
    user: str = Depends(caller_id),
    services: Services = Depends(get_services),
):
    return {"restored": services.versions.restore_version(workflow_id, version_id, user)}
