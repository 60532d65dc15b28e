from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import desc, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import DuplicateStackError, StackNotFoundError, StoreError
from app.models.stack import Service, Stack, utc_now
from app.schemas.stack import ServiceDefinition, StackDefinition, StackDefinitionBase
from app.services.naming import container_name

logger = logging.getLogger(__name__)


class StackStore:
    """Desired state of stacks and their services.

    Never consults the container runtime. Every mutation touching more than
    one row runs inside ``_transaction`` so readers see either the old or the
    new service set, never a mix.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        try:
            yield self.db
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"Database operation failed: {exc}") from exc
        except Exception:
            self.db.rollback()
            raise

    def create_stack(self, definition: StackDefinition) -> Stack:
        self._check_container_names(definition.id, definition.services)
        try:
            with self._transaction() as db:
                if db.get(Stack, definition.id) is not None:
                    raise DuplicateStackError(definition.id)
                stack = Stack(id=definition.id, name=definition.name)
                stack.services = self._build_services(definition.id, definition.services)
                db.add(stack)
        except StoreError as exc:
            if isinstance(exc.__cause__, IntegrityError):
                raise DuplicateStackError(definition.id) from exc.__cause__
            raise
        logger.info("created stack %s with %d services", stack.id, len(stack.services))
        return stack

    def get_stack(self, stack_id: str) -> Stack | None:
        try:
            return self.db.get(Stack, stack_id)
        except SQLAlchemyError as exc:
            raise StoreError(f"Database operation failed: {exc}") from exc

    def list_stacks(self) -> list[Stack]:
        stmt = select(Stack).order_by(desc(Stack.created_at), Stack.id)
        try:
            return list(self.db.scalars(stmt))
        except SQLAlchemyError as exc:
            raise StoreError(f"Database operation failed: {exc}") from exc

    def update_stack(self, stack_id: str, definition: StackDefinitionBase) -> Stack:
        self._check_container_names(stack_id, definition.services)
        with self._transaction() as db:
            stack = db.get(Stack, stack_id)
            if stack is None:
                raise StackNotFoundError(stack_id)
            stack.name = definition.name
            stack.updated_at = utc_now()
            # old rows must be gone before new rows reuse their primary keys
            stack.services.clear()
            db.flush()
            stack.services.extend(self._build_services(stack_id, definition.services))
        logger.info("replaced stack %s with %d services", stack_id, len(stack.services))
        return stack

    def delete_stack(self, stack_id: str) -> bool:
        with self._transaction() as db:
            stack = db.get(Stack, stack_id)
            if stack is None:
                return False
            db.delete(stack)
        logger.info("deleted stack %s", stack_id)
        return True

    def get_service(self, stack_id: str, service_id: str) -> Service | None:
        try:
            return self.db.get(Service, {"stack_id": stack_id, "id": service_id})
        except SQLAlchemyError as exc:
            raise StoreError(f"Database operation failed: {exc}") from exc

    def _build_services(self, stack_id: str, services: list[ServiceDefinition]) -> list[Service]:
        now = utc_now()
        return [
            Service(
                stack_id=stack_id,
                id=service.id,
                name=service.name,
                image=service.image,
                container_config=service.stored_config(),
                position=index,
                created_at=now,
                updated_at=now,
            )
            for index, service in enumerate(services)
        ]

    def _check_container_names(self, stack_id: str, services: list[ServiceDefinition]) -> None:
        for service in services:
            container_name(stack_id, service.id)
