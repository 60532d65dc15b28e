import hashlib
import secrets
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.db.session import get_db
from app.services.docker_service import DockerService, get_docker_service
from app.services.stack_service import StackService
from app.services.stack_store import StackStore

api_key_scheme = APIKeyHeader(name="X-API-Key", auto_error=False)


@dataclass(frozen=True)
class ApiClient:
    """Caller identified by its API key; only a fingerprint of the key is kept."""

    key_id: str


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": code, "message": message},
    )


def get_api_client(api_key: str | None = Depends(api_key_scheme)) -> ApiClient:
    if not api_key:
        raise _unauthorized("MISSING_API_KEY", "API key is required")

    valid = any(secrets.compare_digest(api_key, key) for key in get_settings().api_keys)
    if not valid:
        raise _unauthorized("INVALID_API_KEY", "Invalid API key")
    return ApiClient(key_id=hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:12])


def get_stack_service(
    db: Session = Depends(get_db),
    docker: DockerService = Depends(get_docker_service),
) -> StackService:
    return StackService(StackStore(db), docker)
