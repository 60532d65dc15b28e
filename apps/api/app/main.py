import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.router import api_router
from app.core.config import get_settings
from app.core.errors import StackManagerError
from app.core.logging import configure_logging
from app.db.init_db import database_available, init_db
from app.services.docker_service import DockerService, get_docker_service

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging(settings.log_level)
    init_db()
    logger.info("%s ready, api prefix %s", settings.app_name, settings.api_v1_prefix)
    yield


app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.exception_handler(StackManagerError)
async def stack_manager_error_handler(_: Request, exc: StackManagerError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("%s: %s", exc.code, exc.message)
    return JSONResponse(status_code=exc.http_status, content={"error": exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": jsonable_encoder(exc.errors(), exclude={"ctx", "url"}),
            }
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        error = exc.detail
    else:
        error = {"code": "HTTP_ERROR", "message": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content={"error": error}, headers=exc.headers)


@app.get("/healthz")
def healthz(docker: DockerService = Depends(get_docker_service)) -> dict:
    docker_ok = docker.ping()
    database_ok = database_available()
    return {
        "status": "ok" if docker_ok and database_ok else "degraded",
        "docker": docker_ok,
        "database": database_ok,
    }


@app.get("/")
def root() -> dict:
    prefix = settings.api_v1_prefix
    return {
        "name": settings.app_name,
        "version": app.version,
        "endpoints": {
            "stacks": f"{prefix}/stacks",
            "audit_logs": f"{prefix}/audit-logs",
            "health": "/healthz",
            "docs": app.docs_url,
        },
    }
