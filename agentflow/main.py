"""
Agentflow API
Workflow definition store: CRUD, versioning, sharing and lifecycle.
"""

from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .container import Services, build_services
from .db import create_schema, make_engine
from .errors import AgentflowError
from .routers import lifecycle, sharing, users, versions, workflows
from .util.ids import new_id

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

# kind -> HTTP status
STATUS_BY_KIND = {
    "not_authorized": 403,
    "not_found": 404,
    "user_not_found": 404,
    "duplicate_name": 409,
    "already_shared": 409,
    "invalid_workflow": 422,
    "validation_error": 422,
}

HTTP_CODES = {401: "UNAUTHORIZED", 403: "FORBIDDEN", 404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}


def error_body(code: str, message: str, details: Optional[list] = None) -> dict:
    return {"error": {"code": code, "message": message, "details": details or []}}


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Build the API. Without ``services`` the store is wired on startup from
    ``settings.database_url``.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "services", None) is None:
            engine = make_engine(settings.database_url, echo=settings.sql_echo)
            create_schema(engine)
            app.state.services = build_services(engine, settings)
            logger.info("agentflow started (%s) on %s", settings.app_env, engine.url.render_as_string())
        yield

    app = FastAPI(title="Agentflow API", version="1.0.0", openapi_url="/openapi.json", lifespan=lifespan)
    app.state.services = services

    app.include_router(workflows.router, prefix=API_PREFIX, tags=["workflows"])
    app.include_router(lifecycle.router, prefix=API_PREFIX, tags=["lifecycle"])
    app.include_router(versions.router, prefix=API_PREFIX, tags=["versions"])
    app.include_router(sharing.router, prefix=API_PREFIX, tags=["sharing"])
    app.include_router(users.router, prefix=API_PREFIX, tags=["users"])

    @app.get("/healthz", tags=["health"])
    def healthz():
        return {"status": "ok"}

    @app.middleware("http")
    async def add_request_id_header(request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or new_id("req_")
        resp: Response = await call_next(request)
        resp.headers.setdefault("X-Request-Id", request_id)
        return resp

    @app.exception_handler(AgentflowError)
    async def agentflow_error_handler(request: Request, exc: AgentflowError):
        return JSONResponse(
            status_code=STATUS_BY_KIND.get(exc.kind, 500),
            content=error_body(exc.kind.upper(), exc.message, exc.details),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = [
            {"path": ".".join(str(p) for p in err.get("loc", ())), "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        return JSONResponse(status_code=422, content=error_body("VALIDATION_ERROR", "Invalid request", details))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(HTTP_CODES.get(exc.status_code, "HTTP_ERROR"), str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def default_exception_handler(request: Request, exc: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_body("INTERNAL", "Unhandled error", [{"path": "", "msg": str(exc)}]),
        )

    return app


app = create_app()
