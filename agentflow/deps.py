from typing import Optional

from fastapi import HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .container import Services

security = HTTPBearer(auto_error=False)

TOKEN_PREFIX = "mock-"


async def caller_id(credentials: Optional[HTTPAuthorizationCredentials] = Security(security)) -> str:
    """
    Resolve the caller from the bearer token.
    Stub: ``Bearer mock-<user_id>`` authenticates as ``<user_id>``.
    """
    if not credentials:
        raise HTTPException(status_code=401, detail="Missing Bearer token")

    token = credentials.credentials
    if not token.startswith(TOKEN_PREFIX) or len(token) == len(TOKEN_PREFIX):
        raise HTTPException(status_code=401, detail="Invalid token")
    return token[len(TOKEN_PREFIX):]


def get_services(request: Request) -> Services:
    return request.app.state.services
