from dataclasses import asdict

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.core.audit import write_audit_log
from app.core.config import get_settings
from app.core.deps import ApiClient, get_api_client, get_stack_service
from app.db.session import get_db
from app.models.stack import Stack
from app.schemas.stack import (
    ContainerStatusView,
    ServiceResultView,
    ServiceStatusView,
    ServiceView,
    StackActionResponse,
    StackDefinition,
    StackDetail,
    StackLogsResponse,
    StackRestartResponse,
    StackStatusResponse,
    StackSummary,
    StackUpdateRequest,
)
from app.services.lifecycle_service import ServiceResult
from app.services.stack_service import StackService
from app.services.status_service import ServiceState

router = APIRouter(prefix="/stacks", tags=["stacks"])
settings = get_settings()


def stack_link(stack_id: str) -> str:
    return f"{settings.api_v1_prefix}/stacks/{stack_id}"


def service_link(stack_id: str, service_id: str) -> str:
    return f"{stack_link(stack_id)}/services/{service_id}"


def service_view(stack_id: str, state: ServiceState) -> ServiceView:
    details = None
    if state.container_details is not None:
        details = ContainerStatusView(**asdict(state.container_details))
    link = service_link(stack_id, state.id)
    return ServiceView(
        id=state.id,
        name=state.name,
        image=state.image,
        container_config=state.container_config,
        status=state.status,
        error=state.error,
        container_details=details,
        details=link,
        logs=f"{link}/logs",
    )


def stack_detail(stack: Stack, states: list[ServiceState] | None = None) -> StackDetail:
    if states is None:
        services = [
            ServiceView(
                id=service.id,
                name=service.name,
                image=service.image,
                container_config=service.container_config or {},
                details=service_link(stack.id, service.id),
                logs=f"{service_link(stack.id, service.id)}/logs",
            )
            for service in stack.services
        ]
    else:
        services = [service_view(stack.id, state) for state in states]
    return StackDetail(
        id=stack.id,
        name=stack.name,
        services=services,
        created_at=stack.created_at,
        updated_at=stack.updated_at,
    )


def result_views(results: list[ServiceResult]) -> list[ServiceResultView]:
    return [ServiceResultView(**asdict(result)) for result in results]


def _failed_ids(results: list[ServiceResult]) -> list[str]:
    return [result.service_id for result in results if not result.success]


@router.get("", response_model=list[StackSummary])
def list_stacks(
    _: ApiClient = Depends(get_api_client),
    service: StackService = Depends(get_stack_service),
) -> list[StackSummary]:
    return [
        StackSummary(
            id=stack.id,
            name=stack.name,
            link=stack_link(stack.id),
            created_at=stack.created_at,
            updated_at=stack.updated_at,
        )
        for stack in service.list_stacks()
    ]


@router.post("", response_model=StackDetail, response_model_exclude_none=True, status_code=status.HTTP_201_CREATED)
def create_stack(
    payload: StackDefinition,
    client: ApiClient = Depends(get_api_client),
    service: StackService = Depends(get_stack_service),
    db: Session = Depends(get_db),
) -> StackDetail:
    stack = service.create_stack(payload)
    write_audit_log(
        db,
        action="stack.create",
        resource_type="stack",
        resource_id=stack.id,
        actor=client.key_id,
        detail={"services": [item.id for item in stack.services]},
    )
    return stack_detail(stack)


@router.get("/{stack_id}", response_model=StackDetail, response_model_exclude_none=True)
def get_stack(
    stack_id: str,
    _: ApiClient = Depends(get_api_client),
    service: StackService = Depends(get_stack_service),
) -> StackDetail:
    stack, states = service.get_stack(stack_id, with_status=True)
    return stack_detail(stack, states)


@router.put("/{stack_id}", response_model=StackDetail, response_model_exclude_none=True)
def update_stack(
    stack_id: str,
    payload: StackUpdateRequest,
    client: ApiClient = Depends(get_api_client),
    service: StackService = Depends(get_stack_service),
    db: Session = Depends(get_db),
) -> StackDetail:
    stack = service.update_stack(stack_id, payload)
    write_audit_log(
        db,
        action="stack.update",
        resource_type="stack",
        resource_id=stack_id,
        actor=client.key_id,
        detail={"services": [item.id for item in stack.services]},
    )
    return stack_detail(stack)


@router.delete("/{stack_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_stack(
    stack_id: str,
    client: ApiClient = Depends(get_api_client),
    service: StackService = Depends(get_stack_service),
    db: Session = Depends(get_db),
) -> Response:
    results = service.delete_stack(stack_id)
    write_audit_log(
        db,
        action="stack.delete",
        resource_type="stack",
        resource_id=stack_id,
        actor=client.key_id,
        detail={"containers_left": _failed_ids(results)},
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _stack_action(
    stack_id: str,
    action: str,
    results: list[ServiceResult],
    client: ApiClient,
    db: Session,
) -> StackActionResponse:
    write_audit_log(
        db,
        action=f"stack.{action}",
        resource_type="stack",
        resource_id=stack_id,
        actor=client.key_id,
        detail={"failed": _failed_ids(results)},
    )
    return StackActionResponse(stack_id=stack_id, action=action, results=result_views(results))


@router.post("/{stack_id}/start", response_model=StackActionResponse, response_model_exclude_none=True)
def start_stack(
    stack_id: str,
    client: ApiClient = Depends(get_api_client),
    service: StackService = Depends(get_stack_service),
    db: Session = Depends(get_db),
) -> StackActionResponse:
    return _stack_action(stack_id, "start", service.start_stack(stack_id), client, db)


@router.post("/{stack_id}/stop", response_model=StackActionResponse, response_model_exclude_none=True)
def stop_stack(
    stack_id: str,
    client: ApiClient = Depends(get_api_client),
    service: StackService = Depends(get_stack_service),
    db: Session = Depends(get_db),
) -> StackActionResponse:
    return _stack_action(stack_id, "stop", service.stop_stack(stack_id), client, db)


@router.post("/{stack_id}/restart", response_model=StackRestartResponse, response_model_exclude_none=True)
def restart_stack(
    stack_id: str,
    client: ApiClient = Depends(get_api_client),
    service: StackService = Depends(get_stack_service),
    db: Session = Depends(get_db),
) -> StackRestartResponse:
    stop_results, start_results = service.restart_stack(stack_id)
    write_audit_log(
        db,
        action="stack.restart",
        resource_type="stack",
        resource_id=stack_id,
        actor=client.key_id,
        detail={"stop_failed": _failed_ids(stop_results), "start_failed": _failed_ids(start_results)},
    )
    return StackRestartResponse(
        stack_id=stack_id,
        stop_results=result_views(stop_results),
        start_results=result_views(start_results),
    )


@router.get("/{stack_id}/status", response_model=StackStatusResponse, response_model_exclude_none=True)
def stack_status(
    stack_id: str,
    _: ApiClient = Depends(get_api_client),
    service: StackService = Depends(get_stack_service),
) -> StackStatusResponse:
    stack, states = service.stack_status(stack_id)
    services = []
    for state in states:
        details = state.container_details
        services.append(
            ServiceStatusView(
                service_id=state.id,
                service_name=state.name,
                status=state.status if details is None else details.status,
                running=state.running,
                started_at=details.started_at if details else None,
                finished_at=details.finished_at if details else None,
                exit_code=details.exit_code if details else None,
                error=state.error,
            )
        )
    return StackStatusResponse(stack_id=stack.id, stack_name=stack.name, services=services)


@router.get("/{stack_id}/logs", response_model=StackLogsResponse)
def stack_logs(
    stack_id: str,
    tail: int = Query(default=settings.default_log_tail, ge=1, le=10000),
    _: ApiClient = Depends(get_api_client),
    service: StackService = Depends(get_stack_service),
) -> StackLogsResponse:
    return StackLogsResponse(stack_id=stack_id, logs=service.stack_logs(stack_id, tail))
