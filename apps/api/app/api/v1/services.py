from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.v1.stacks import service_view
from app.core.audit import write_audit_log
from app.core.config import get_settings
from app.core.deps import ApiClient, get_api_client, get_stack_service
from app.core.errors import StackManagerError
from app.db.session import get_db
from app.schemas.stack import ServiceActionResponse, ServiceLogsResponse, ServiceView
from app.services.stack_service import StackService

router = APIRouter(prefix="/stacks/{stack_id}/services", tags=["services"])
settings = get_settings()

ACTION_MESSAGES = {
    "start": "Service started successfully",
    "stop": "Service stopped successfully",
    "restart": "Service restarted successfully",
}


@router.get("/{service_id}", response_model=ServiceView, response_model_exclude_none=True)
def get_service(
    stack_id: str,
    service_id: str,
    _: ApiClient = Depends(get_api_client),
    service: StackService = Depends(get_stack_service),
) -> ServiceView:
    return service_view(stack_id, service.get_service(stack_id, service_id))


@router.get("/{service_id}/logs", response_model=ServiceLogsResponse)
def service_logs(
    stack_id: str,
    service_id: str,
    tail: int = Query(default=settings.default_log_tail, ge=1, le=10000),
    _: ApiClient = Depends(get_api_client),
    service: StackService = Depends(get_stack_service),
) -> ServiceLogsResponse:
    return ServiceLogsResponse(
        stack_id=stack_id,
        service_id=service_id,
        logs=service.service_logs(stack_id, service_id, tail),
    )


@router.post("/{service_id}/{action}", response_model=ServiceActionResponse)
def service_action(
    stack_id: str,
    service_id: str,
    action: Literal["start", "stop", "restart"],
    client: ApiClient = Depends(get_api_client),
    service: StackService = Depends(get_stack_service),
    db: Session = Depends(get_db),
) -> ServiceActionResponse:
    resource_id = f"{stack_id}/{service_id}"
    try:
        service.service_action(stack_id, service_id, action)
    except StackManagerError as exc:
        write_audit_log(
            db,
            action=f"service.{action}",
            resource_type="service",
            resource_id=resource_id,
            actor=client.key_id,
            status="failed",
            detail=exc.to_dict(),
        )
        raise

    write_audit_log(
        db,
        action=f"service.{action}",
        resource_type="service",
        resource_id=resource_id,
        actor=client.key_id,
    )
    return ServiceActionResponse(
        stack_id=stack_id,
        service_id=service_id,
        action=action,
        message=ACTION_MESSAGES[action],
    )
