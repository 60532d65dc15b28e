import re
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

IDENTIFIER_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"
IMAGE_RE = re.compile(
    r"^[a-z0-9]+([._-][a-z0-9]+)*(/[a-z0-9]+([._-][a-z0-9]+)*)*(:[\w][\w.-]{0,127})?$",
    re.IGNORECASE,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class OpaqueModel(CamelModel):
    """Keeps keys it does not declare, so stored configuration round-trips unchanged."""

    model_config = ConfigDict(extra="allow")


class PortMapping(OpaqueModel):
    container_port: int = Field(ge=1, le=65535)
    host_port: int | None = Field(default=None, ge=1, le=65535)


class VolumeBinding(OpaqueModel):
    host_path: str = Field(min_length=1)
    container_path: str = Field(min_length=1)


class ContainerConfig(OpaqueModel):
    ports: list[PortMapping] = Field(default_factory=list)
    environment: dict[str, str | int | float | bool] = Field(default_factory=dict)
    volumes: list[VolumeBinding] = Field(default_factory=list)


class ServiceDefinition(CamelModel):
    id: str = Field(min_length=1, max_length=31, pattern=IDENTIFIER_PATTERN)
    name: str = Field(min_length=1, max_length=31, pattern=IDENTIFIER_PATTERN)
    image: str = Field(min_length=1, max_length=512)
    container_config: ContainerConfig = Field(default_factory=ContainerConfig)

    @field_validator("image")
    @classmethod
    def _check_image(cls, value: str) -> str:
        if not IMAGE_RE.match(value):
            raise ValueError(f"Invalid Docker image format: '{value}'")
        return value

    def stored_config(self) -> dict:
        """Container configuration exactly as the client sent it."""
        return self.container_config.model_dump(mode="json", by_alias=True, exclude_unset=True)


class StackDefinitionBase(CamelModel):
    name: str = Field(min_length=1, max_length=31, pattern=IDENTIFIER_PATTERN)
    services: list[ServiceDefinition] = Field(min_length=1)

    @model_validator(mode="after")
    def _check_unique_services(self):
        seen_ids: set[str] = set()
        seen_names: set[str] = set()
        for service in self.services:
            if service.id in seen_ids:
                raise ValueError(f"Duplicate service ID: '{service.id}'")
            if service.name in seen_names:
                raise ValueError(f"Duplicate service name: '{service.name}'")
            seen_ids.add(service.id)
            seen_names.add(service.name)
        return self


class StackDefinition(StackDefinitionBase):
    id: str = Field(min_length=1, max_length=31, pattern=IDENTIFIER_PATTERN)


class StackUpdateRequest(StackDefinitionBase):
    # the path parameter is authoritative, a body id is accepted and ignored
    id: str | None = None


class StackSummary(CamelModel):
    id: str
    name: str
    link: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ContainerStatusView(CamelModel):
    status: str
    running: bool
    started_at: str | None = None
    finished_at: str | None = None
    exit_code: int | None = None


class ServiceView(CamelModel):
    id: str
    name: str
    image: str
    container_config: dict = Field(default_factory=dict)
    status: str | None = None
    error: str | None = None
    container_details: ContainerStatusView | None = None
    details: str
    logs: str


class StackDetail(CamelModel):
    id: str
    name: str
    services: list[ServiceView]
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ServiceResultView(CamelModel):
    service_id: str
    success: bool
    status: str | None = None
    error: str | None = None


class StackActionResponse(CamelModel):
    stack_id: str
    action: str
    results: list[ServiceResultView]


class StackRestartResponse(CamelModel):
    stack_id: str
    action: str = "restart"
    stop_results: list[ServiceResultView]
    start_results: list[ServiceResultView]


class ServiceActionResponse(CamelModel):
    stack_id: str
    service_id: str
    action: str
    success: bool = True
    message: str


class ServiceStatusView(CamelModel):
    service_id: str
    service_name: str
    status: str
    running: bool | None = None
    started_at: str | None = None
    finished_at: str | None = None
    exit_code: int | None = None
    error: str | None = None


class StackStatusResponse(CamelModel):
    stack_id: str
    stack_name: str
    services: list[ServiceStatusView]


class StackLogsResponse(CamelModel):
    stack_id: str
    logs: dict[str, list[str]]


class ServiceLogsResponse(CamelModel):
    stack_id: str
    service_id: str
    logs: list[str]
