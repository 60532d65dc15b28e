from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from app.services.docker_service import ContainerStatus, DockerService

logger = logging.getLogger(__name__)


@dataclass
class ServiceState:
    id: str
    name: str
    image: str
    container_config: dict[str, Any] = field(default_factory=dict)
    status: str = "unknown"
    running: bool | None = None
    error: str | None = None
    container_details: ContainerStatus | None = None


class StatusService:
    def __init__(self, docker: DockerService) -> None:
        self.docker = docker

    def service_status(self, stack_id: str, service: Any) -> ServiceState:
        state = ServiceState(
            id=service.id,
            name=service.name,
            image=service.image,
            container_config=dict(service.container_config or {}),
        )
        try:
            details = self.docker.inspect(stack_id, service.id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("inspect of service %s/%s failed: %s", stack_id, service.id, exc)
            state.status = "error"
            state.error = str(exc)
            return state

        state.status = "running" if details.running else details.status
        state.running = details.running
        state.container_details = details
        return state

    def stack_status(self, stack_id: str, services: Sequence[Any]) -> list[ServiceState]:
        return [self.service_status(stack_id, service) for service in services]
