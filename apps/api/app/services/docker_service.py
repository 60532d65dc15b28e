from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, Protocol

import docker
from docker.errors import APIError, DockerException, NotFound
from requests.exceptions import ConnectionError as RequestsConnectionError

from app.core.config import get_settings
from app.core.errors import RuntimeOperationError, RuntimeUnavailableError
from app.schemas.stack import ContainerConfig
from app.services.naming import container_name

logger = logging.getLogger(__name__)
settings = get_settings()

CONTAINER_NOT_FOUND_LINE = "Container not found"


class RuntimeOutcome(str, Enum):
    OK = "ok"
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    NOT_MODIFIED = "not_modified"
    NOT_FOUND = "not_found"
    OTHER = "other"


def classify_api_error(exc: APIError) -> RuntimeOutcome:
    if isinstance(exc, NotFound):
        return RuntimeOutcome.NOT_FOUND
    code = exc.status_code
    if code == 404:
        return RuntimeOutcome.NOT_FOUND
    if code == 409:
        return RuntimeOutcome.ALREADY_EXISTS
    if code == 304:
        return RuntimeOutcome.NOT_MODIFIED
    return RuntimeOutcome.OTHER


class DeclaredService(Protocol):
    id: str
    image: str
    container_config: Any


@dataclass(frozen=True)
class ContainerHandle:
    id: str
    name: str
    outcome: RuntimeOutcome


@dataclass(frozen=True)
class ContainerStatus:
    status: str
    running: bool
    started_at: str | None = None
    finished_at: str | None = None
    exit_code: int | None = None

    @classmethod
    def not_created(cls) -> ContainerStatus:
        return cls(status="not-created", running=False)


def build_create_options(name: str, image: str, config: ContainerConfig) -> dict[str, Any]:
    """Translate a stored container configuration into ``create_container`` kwargs.

    Every declared container port is exposed; only ports with a host port get
    a host binding.
    """
    options: dict[str, Any] = {"image": image, "name": name}
    if config.environment:
        options["environment"] = [f"{key}={_env_value(value)}" for key, value in config.environment.items()]

    host_config: dict[str, Any] = {}
    if config.ports:
        options["ports"] = [port.container_port for port in config.ports]
        bindings = {port.container_port: port.host_port for port in config.ports if port.host_port}
        if bindings:
            host_config["port_bindings"] = bindings
    if config.volumes:
        host_config["binds"] = [f"{volume.host_path}:{volume.container_path}" for volume in config.volumes]
    if host_config:
        options["host_config"] = host_config
    return options


def _env_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class DockerService:
    """Name-keyed container operations that are safe to repeat.

    Responses meaning "already in the requested state" or "already gone" are
    absorbed into success values; everything else is raised as a typed error.
    """

    def __init__(self, client: docker.DockerClient | None = None) -> None:
        self._client = client
        self._client_lock = threading.Lock()

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    self._client = self._connect()
        return self._client

    def _connect(self) -> docker.DockerClient:
        # the client asks the engine for its API version on construction
        try:
            return docker.DockerClient(
                base_url=settings.docker_base_url,
                timeout=settings.docker_timeout,
            )
        except DockerException as exc:
            raise RuntimeUnavailableError(f"Docker is not available: {exc}") from exc

    def ping(self) -> bool:
        try:
            self.client.ping()
            return True
        except (DockerException, RequestsConnectionError, RuntimeUnavailableError):
            return False

    def create(self, stack_id: str, service: DeclaredService) -> ContainerHandle:
        name = container_name(stack_id, service.id)
        config = ContainerConfig.model_validate(service.container_config or {})
        options = build_create_options(name, service.image, config)
        api = self.client.api
        if "host_config" in options:
            options["host_config"] = api.create_host_config(**options["host_config"])

        outcome, created = self._call(
            "create",
            name,
            lambda: api.create_container(**options),
            absorb={RuntimeOutcome.ALREADY_EXISTS},
        )
        if outcome is RuntimeOutcome.ALREADY_EXISTS:
            # the existing container is reused as-is, even if its definition drifted
            logger.debug("container %s already exists, reusing it", name)
            _, existing = self._call("inspect", name, lambda: api.inspect_container(name))
            return ContainerHandle(id=existing.get("Id", name), name=name, outcome=outcome)

        logger.info("created container %s from image %s", name, service.image)
        return ContainerHandle(id=created.get("Id", name), name=name, outcome=RuntimeOutcome.CREATED)

    def start(self, stack_id: str, service_id: str) -> RuntimeOutcome:
        name = container_name(stack_id, service_id)
        api = self.client.api
        outcome, _ = self._call("start", name, lambda: api.start(name), absorb={RuntimeOutcome.NOT_MODIFIED})
        logger.info("started container %s (%s)", name, outcome.value)
        return outcome

    def stop(self, stack_id: str, service_id: str) -> RuntimeOutcome:
        name = container_name(stack_id, service_id)
        api = self.client.api
        outcome, _ = self._call(
            "stop",
            name,
            lambda: api.stop(name),
            absorb={RuntimeOutcome.NOT_MODIFIED, RuntimeOutcome.NOT_FOUND},
        )
        logger.info("stopped container %s (%s)", name, outcome.value)
        return outcome

    def remove(self, stack_id: str, service_id: str) -> RuntimeOutcome:
        name = container_name(stack_id, service_id)
        api = self.client.api
        outcome, _ = self._call(
            "remove",
            name,
            lambda: api.remove_container(name, force=True),
            absorb={RuntimeOutcome.NOT_FOUND},
        )
        logger.info("removed container %s (%s)", name, outcome.value)
        return outcome

    def inspect(self, stack_id: str, service_id: str) -> ContainerStatus:
        name = container_name(stack_id, service_id)
        api = self.client.api
        outcome, data = self._call(
            "inspect",
            name,
            lambda: api.inspect_container(name),
            absorb={RuntimeOutcome.NOT_FOUND},
        )
        if outcome is RuntimeOutcome.NOT_FOUND:
            return ContainerStatus.not_created()

        state = data.get("State") or {}
        return ContainerStatus(
            status=state.get("Status", "unknown"),
            running=bool(state.get("Running", False)),
            started_at=state.get("StartedAt"),
            finished_at=state.get("FinishedAt"),
            exit_code=state.get("ExitCode"),
        )

    def logs(self, stack_id: str, service_id: str, *, tail: int = 100) -> list[str]:
        name = container_name(stack_id, service_id)
        api = self.client.api
        outcome, raw = self._call(
            "read logs of",
            name,
            lambda: api.logs(name, stdout=True, stderr=True, tail=tail, timestamps=True, follow=False),
            absorb={RuntimeOutcome.NOT_FOUND},
        )
        if outcome is RuntimeOutcome.NOT_FOUND:
            return [CONTAINER_NOT_FOUND_LINE]
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else str(raw)
        return split_log_lines(text)

    def _call(
        self,
        operation: str,
        name: str,
        func: Callable[[], Any],
        *,
        absorb: set[RuntimeOutcome] | frozenset[RuntimeOutcome] = frozenset(),
    ) -> tuple[RuntimeOutcome, Any]:
        try:
            return RuntimeOutcome.OK, func()
        except APIError as exc:
            outcome = classify_api_error(exc)
            if outcome in absorb:
                logger.debug("%s %s absorbed docker response %s", operation, name, exc.status_code)
                return outcome, None
            message = exc.explanation or str(exc)
            raise RuntimeOperationError(
                operation,
                name,
                str(message),
                status_code=exc.status_code,
                outcome=outcome.value,
            ) from exc
        except (DockerException, RequestsConnectionError) as exc:
            raise RuntimeUnavailableError(f"Docker is not available: {exc}") from exc


def split_log_lines(text: str) -> list[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


@lru_cache(maxsize=1)
def get_docker_service() -> DockerService:
    return DockerService()
