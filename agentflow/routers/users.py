from typing import Optional

from fastapi import APIRouter, Depends, Query

from agentflow.container import Services
from agentflow.deps import caller_id, get_services
from agentflow.schemas import Page, UserProfile, to_page

router = APIRouter()


@router.get("/users/search", response_model=Page[UserProfile])
def search_users(
    q: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    user: str = Depends(caller_id),
    services: Services = Depends(get_services),
):
    # nunca devuelve al propio usuario
    return to_page(services.users.search(q, user, page=page, limit=limit), UserProfile)
