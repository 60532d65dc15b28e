"""Typed failures raised by the stack core.

Each error carries a stable ``code`` and the HTTP status the API layer maps it
to. The core raises these; ``app.main`` turns them into responses.
"""

from __future__ import annotations

from typing import Any

from fastapi import status


class StackManagerError(Exception):
    code = "INTERNAL_SERVER_ERROR"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class DuplicateStackError(StackManagerError):
    code = "STACK_ALREADY_EXISTS"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, stack_id: str) -> None:
        super().__init__(f"Stack '{stack_id}' already exists")
        self.stack_id = stack_id


class StackNotFoundError(StackManagerError):
    code = "STACK_NOT_FOUND"
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, stack_id: str) -> None:
        super().__init__(f"Stack '{stack_id}' not found")
        self.stack_id = stack_id


class ServiceNotFoundError(StackManagerError):
    code = "SERVICE_NOT_FOUND"
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, stack_id: str, service_id: str) -> None:
        super().__init__(f"Service '{service_id}' not found in stack '{stack_id}'")
        self.stack_id = stack_id
        self.service_id = service_id


class ContainerNameTooLongError(StackManagerError):
    code = "CONTAINER_NAME_TOO_LONG"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, name: str, limit: int) -> None:
        super().__init__(f"Container name '{name}' exceeds {limit} character limit")
        self.name = name
        self.limit = limit


class RuntimeUnavailableError(StackManagerError):
    """The Docker engine could not be reached at all."""

    code = "DOCKER_UNAVAILABLE"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE


class RuntimeOperationError(StackManagerError):
    """The Docker engine answered, but the operation failed."""

    code = "DOCKER_API_ERROR"
    http_status = status.HTTP_502_BAD_GATEWAY

    def __init__(
        self,
        operation: str,
        container_name: str,
        message: str,
        *,
        status_code: int | None = None,
        outcome: str | None = None,
    ) -> None:
        super().__init__(f"Failed to {operation} container '{container_name}': {message}")
        self.operation = operation
        self.container_name = container_name
        self.status_code = status_code
        self.outcome = outcome

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["dockerStatus"] = self.status_code
        return data


class StoreError(StackManagerError):
    code = "DATABASE_ERROR"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
