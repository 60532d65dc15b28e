from __future__ import annotations

import os
import shutil
from pathlib import Path

import pytest
import requests
from docker.errors import APIError, NotFound
from fastapi.testclient import TestClient

RUNTIME_DIR = Path(__file__).resolve().parent / ".runtime"
RUNTIME_DIR.mkdir(parents=True, exist_ok=True)

API_KEY = "test-key"

os.environ.setdefault("DATABASE_URL", f"sqlite:///{(RUNTIME_DIR / 'test.db').resolve()}")
os.environ.setdefault("API_KEYS", f'["{API_KEY}"]')
os.environ.setdefault("DOCKER_BASE_URL", "unix:///tmp/stack-manager-tests.sock")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from app.db.session import SessionLocal  # noqa: E402
from app.main import app  # noqa: E402
from app.models import AuditLog, Service, Stack  # noqa: E402
from app.services.docker_service import DockerService, get_docker_service  # noqa: E402


def api_error(status_code: int, explanation: str, name: str = "") -> APIError:
    response = requests.Response()
    response.status_code = status_code
    response.reason = explanation
    response.url = f"http+docker://localhost/v1.43/containers/{name}"
    error_cls = NotFound if status_code == 404 else APIError
    return error_cls(explanation, response=response, explanation=explanation)


class FakeDockerAPI:
    """In-memory stand-in for ``docker.APIClient`` keyed by container name.

    Raises the same ``docker.errors`` types the real client raises. Use
    ``fail`` to make one operation on one container answer with an error.
    """

    def __init__(self) -> None:
        self.containers: dict[str, dict] = {}
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[tuple[str, str], tuple[int, str]] = {}
        self.log_output: dict[str, bytes] = {}

    def fail(self, operation: str, name: str, status_code: int = 500, message: str = "engine exploded") -> None:
        self.failures[(operation, name)] = (status_code, message)

    def _record(self, operation: str, name: str) -> None:
        self.calls.append((operation, name))
        failure = self.failures.get((operation, name))
        if failure is not None:
            raise api_error(failure[0], failure[1], name)

    def _require(self, name: str) -> dict:
        container = self.containers.get(name)
        if container is None:
            raise api_error(404, f"No such container: {name}", name)
        return container

    def create_host_config(self, **kwargs) -> dict:
        return dict(kwargs)

    def create_container(self, image, name=None, environment=None, ports=None, host_config=None, **_kwargs) -> dict:
        self._record("create", name)
        if name in self.containers:
            raise api_error(409, f'Conflict. The container name "/{name}" is already in use', name)
        self.containers[name] = {
            "Id": f"id-{name}",
            "Name": f"/{name}",
            "Image": image,
            "Environment": environment,
            "Ports": ports,
            "HostConfig": host_config,
            "State": {
                "Status": "created",
                "Running": False,
                "StartedAt": "0001-01-01T00:00:00Z",
                "FinishedAt": "0001-01-01T00:00:00Z",
                "ExitCode": 0,
            },
        }
        return {"Id": f"id-{name}", "Warnings": []}

    def start(self, name) -> None:
        self._record("start", name)
        state = self._require(name)["State"]
        if state["Running"]:
            raise api_error(304, "container already started", name)
        state.update(Status="running", Running=True, StartedAt="2026-01-01T00:00:00Z")

    def stop(self, name, **_kwargs) -> None:
        self._record("stop", name)
        state = self._require(name)["State"]
        if not state["Running"]:
            raise api_error(304, "container already stopped", name)
        state.update(Status="exited", Running=False, FinishedAt="2026-01-01T01:00:00Z")

    def remove_container(self, name, force=False, **_kwargs) -> None:
        self._record("remove", name)
        self._require(name)
        del self.containers[name]

    def inspect_container(self, name) -> dict:
        self._record("inspect", name)
        return self._require(name)

    def logs(self, name, **_kwargs) -> bytes:
        self._record("logs", name)
        self._require(name)
        return self.log_output.get(name, b"")


class FakeDockerClient:
    def __init__(self, api: FakeDockerAPI) -> None:
        self.api = api
        self.reachable = True

    def ping(self) -> bool:
        if not self.reachable:
            raise requests.exceptions.ConnectionError("connection refused")
        return True


@pytest.fixture(scope="session", autouse=True)
def prepare_runtime() -> None:
    if RUNTIME_DIR.exists():
        shutil.rmtree(RUNTIME_DIR)
    RUNTIME_DIR.mkdir(parents=True, exist_ok=True)


@pytest.fixture
def fake_docker() -> FakeDockerAPI:
    return FakeDockerAPI()


@pytest.fixture
def docker_service(fake_docker) -> DockerService:
    return DockerService(client=FakeDockerClient(fake_docker))


@pytest.fixture
def raw_client(docker_service):
    app.dependency_overrides.clear()
    app.dependency_overrides[get_docker_service] = lambda: docker_service
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_state(raw_client):
    with SessionLocal() as db:
        db.query(AuditLog).delete()
        db.query(Service).delete()
        db.query(Stack).delete()
        db.commit()
    yield


@pytest.fixture
def client(raw_client):
    raw_client.headers.update({"X-API-Key": API_KEY})
    return raw_client


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def stack_payload(stack_id: str = "shop", services: int = 2) -> dict:
    catalog = [
        {
            "id": "web",
            "name": "web",
            "image": "nginx:1.25",
            "containerConfig": {
                "ports": [{"containerPort": 80, "hostPort": 8080}],
                "environment": {"MODE": "production"},
            },
        },
        {
            "id": "db",
            "name": "db",
            "image": "postgres:16",
            "containerConfig": {
                "environment": {"POSTGRES_PASSWORD": "secret"},
                "volumes": [{"hostPath": "/srv/shop/db", "containerPath": "/var/lib/postgresql/data"}],
            },
        },
        {"id": "cache", "name": "cache", "image": "redis", "containerConfig": {}},
    ]
    return {"id": stack_id, "name": stack_id, "services": catalog[:services]}


@pytest.fixture
def make_payload():
    return stack_payload
