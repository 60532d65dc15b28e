from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from app.services.docker_service import DeclaredService, DockerService

logger = logging.getLogger(__name__)


@dataclass
class ServiceResult:
    service_id: str
    success: bool
    status: str | None = None
    error: str | None = None


class LifecycleService:
    """Drives the services of a stack through the runtime, one at a time.

    Stack-wide operations never abort: each service gets its own result and a
    failure is recorded against that service only. Single-service operations
    propagate the first error.
    """

    def __init__(self, docker: DockerService) -> None:
        self.docker = docker

    def start_stack(self, stack_id: str, services: Sequence[DeclaredService]) -> list[ServiceResult]:
        def _start(service: DeclaredService) -> None:
            self.docker.create(stack_id, service)
            self.docker.start(stack_id, service.id)

        return self._each("start", stack_id, services, _start, "started")

    def stop_stack(self, stack_id: str, services: Sequence[DeclaredService]) -> list[ServiceResult]:
        return self._each(
            "stop",
            stack_id,
            services,
            lambda service: self.docker.stop(stack_id, service.id),
            "stopped",
        )

    def restart_stack(
        self, stack_id: str, services: Sequence[DeclaredService]
    ) -> tuple[list[ServiceResult], list[ServiceResult]]:
        stop_results = self.stop_stack(stack_id, services)
        start_results = self.start_stack(stack_id, services)
        return stop_results, start_results

    def remove_stack(self, stack_id: str, services: Sequence[DeclaredService]) -> list[ServiceResult]:
        return self._each(
            "remove",
            stack_id,
            services,
            lambda service: self.docker.remove(stack_id, service.id),
            "removed",
        )

    def start_service(self, stack_id: str, service: DeclaredService) -> None:
        self.docker.create(stack_id, service)
        self.docker.start(stack_id, service.id)
        logger.info("service %s/%s started", stack_id, service.id)

    def stop_service(self, stack_id: str, service: DeclaredService) -> None:
        self.docker.stop(stack_id, service.id)
        logger.info("service %s/%s stopped", stack_id, service.id)

    def restart_service(self, stack_id: str, service: DeclaredService) -> None:
        self.docker.stop(stack_id, service.id)
        self.docker.create(stack_id, service)
        self.docker.start(stack_id, service.id)
        logger.info("service %s/%s restarted", stack_id, service.id)

    def _each(
        self,
        action: str,
        stack_id: str,
        services: Sequence[DeclaredService],
        operation: Callable[[DeclaredService], object],
        status: str,
    ) -> list[ServiceResult]:
        results: list[ServiceResult] = []
        for service in services:
            try:
                operation(service)
            except Exception as exc:  # noqa: BLE001
                logger.warning("%s of service %s/%s failed: %s", action, stack_id, service.id, exc)
                results.append(ServiceResult(service_id=service.id, success=False, error=str(exc)))
                continue
            results.append(ServiceResult(service_id=service.id, success=True, status=status))

        failed = sum(1 for result in results if not result.success)
        logger.info("%s stack %s: %d services, %d failed", action, stack_id, len(results), failed)
        return results
