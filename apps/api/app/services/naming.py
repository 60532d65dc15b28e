from app.core.errors import ContainerNameTooLongError

CONTAINER_NAME_MAX_LENGTH = 63
SEPARATOR = "-"


def container_name(stack_id: str, service_id: str) -> str:
    """Derive the runtime container name for a service.

    Stack and service ids are validated separately; only the joined name can
    overflow the engine's limit, so every runtime call checks it here.
    """
    name = f"{stack_id}{SEPARATOR}{service_id}"
    if len(name) > CONTAINER_NAME_MAX_LENGTH:
        raise ContainerNameTooLongError(name, CONTAINER_NAME_MAX_LENGTH)
    return name
