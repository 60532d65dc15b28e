from __future__ import annotations

import logging

from app.core.errors import ServiceNotFoundError, StackNotFoundError
from app.models.stack import Service, Stack
from app.schemas.stack import StackDefinition, StackDefinitionBase
from app.services.docker_service import DockerService
from app.services.lifecycle_service import LifecycleService, ServiceResult
from app.services.stack_store import StackStore
from app.services.status_service import ServiceState, StatusService

logger = logging.getLogger(__name__)


class StackService:
    """Stack operations as the API sees them.

    Combines the definition store with the lifecycle and status services so
    routers never talk to the store and the runtime separately.
    """

    def __init__(self, store: StackStore, docker: DockerService) -> None:
        self.store = store
        self.lifecycle = LifecycleService(docker)
        self.status = StatusService(docker)
        self.docker = docker

    def list_stacks(self) -> list[Stack]:
        return self.store.list_stacks()

    def create_stack(self, definition: StackDefinition) -> Stack:
        return self.store.create_stack(definition)

    def update_stack(self, stack_id: str, definition: StackDefinitionBase) -> Stack:
        return self.store.update_stack(stack_id, definition)

    def require_stack(self, stack_id: str) -> Stack:
        stack = self.store.get_stack(stack_id)
        if stack is None:
            raise StackNotFoundError(stack_id)
        return stack

    def require_service(self, stack_id: str, service_id: str) -> Service:
        self.require_stack(stack_id)
        service = self.store.get_service(stack_id, service_id)
        if service is None:
            raise ServiceNotFoundError(stack_id, service_id)
        return service

    def get_stack(self, stack_id: str, with_status: bool = True) -> tuple[Stack, list[ServiceState] | None]:
        stack = self.require_stack(stack_id)
        if not with_status:
            return stack, None
        return stack, self.status.stack_status(stack.id, stack.services)

    def get_service(self, stack_id: str, service_id: str) -> ServiceState:
        service = self.require_service(stack_id, service_id)
        return self.status.service_status(stack_id, service)

    def delete_stack(self, stack_id: str) -> list[ServiceResult]:
        stack = self.require_stack(stack_id)
        services = list(stack.services)
        self.store.delete_stack(stack_id)
        # the definition is gone either way, container cleanup is best effort
        results = self.lifecycle.remove_stack(stack_id, services)
        for result in results:
            if not result.success:
                logger.warning("container of %s/%s left behind: %s", stack_id, result.service_id, result.error)
        return results

    def start_stack(self, stack_id: str) -> list[ServiceResult]:
        stack = self.require_stack(stack_id)
        return self.lifecycle.start_stack(stack_id, stack.services)

    def stop_stack(self, stack_id: str) -> list[ServiceResult]:
        stack = self.require_stack(stack_id)
        return self.lifecycle.stop_stack(stack_id, stack.services)

    def restart_stack(self, stack_id: str) -> tuple[list[ServiceResult], list[ServiceResult]]:
        stack = self.require_stack(stack_id)
        return self.lifecycle.restart_stack(stack_id, stack.services)

    def stack_status(self, stack_id: str) -> tuple[Stack, list[ServiceState]]:
        stack = self.require_stack(stack_id)
        return stack, self.status.stack_status(stack_id, stack.services)

    def service_action(self, stack_id: str, service_id: str, action: str) -> None:
        service = self.require_service(stack_id, service_id)
        if action == "start":
            self.lifecycle.start_service(stack_id, service)
        elif action == "stop":
            self.lifecycle.stop_service(stack_id, service)
        elif action == "restart":
            self.lifecycle.restart_service(stack_id, service)
        else:
            raise ValueError(f"Unsupported service action: {action}")

    def stack_logs(self, stack_id: str, tail: int) -> dict[str, list[str]]:
        stack = self.require_stack(stack_id)
        logs: dict[str, list[str]] = {}
        for service in stack.services:
            try:
                logs[service.id] = self.docker.logs(stack_id, service.id, tail=tail)
            except Exception as exc:  # noqa: BLE001
                logger.warning("reading logs of %s/%s failed: %s", stack_id, service.id, exc)
                logs[service.id] = [f"Error retrieving logs: {exc}"]
        return logs

    def service_logs(self, stack_id: str, service_id: str, tail: int) -> list[str]:
        self.require_service(stack_id, service_id)
        return self.docker.logs(stack_id, service_id, tail=tail)
