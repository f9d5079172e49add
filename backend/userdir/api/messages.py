"""Message-pattern registry mapping ``users.*`` patterns to directory operations."""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from pydantic import BaseModel, ValidationError

from userdir.core.exceptions import InvalidPayload, NotFound
from userdir.schemas.messages import EmailPayload, IdPayload, UpdatePayload, UsernamePayload
from userdir.schemas.user import Caller, PaginationParams, UserCreate, UserPage
from userdir.services.users import DirectoryService

logger = logging.getLogger(__name__)

HEALTH_MESSAGE = "users service is up and running!"

Handler = Callable[[DirectoryService, dict[str, Any], "Caller | None"], Awaitable[Any]]
ModelT = TypeVar("ModelT", bound=BaseModel)


class MessageRouter:
    """Dispatch table from pattern names to async handlers."""

    def __init__(self) -> None:
        self._handlers: dict[str, Handler] = {}

    def pattern(self, *names: str) -> Callable[[Handler], Handler]:
        def register(handler: Handler) -> Handler:
            for name in names:
                if name in self._handlers:
                    raise ValueError(f"Message pattern '{name}' already registered")
                self._handlers[name] = handler
            return handler

        return register

    @property
    def patterns(self) -> list[str]:
        return sorted(self._handlers)

    async def dispatch(
        self,
        pattern: str,
        data: dict[str, Any] | None,
        service: DirectoryService,
        caller: Caller | None,
    ) -> Any:
        handler = self._handlers.get(pattern)
        if handler is None:
            raise NotFound(f"Unknown message pattern '{pattern}'")
        logger.debug("Dispatching %s for caller %s", pattern, caller.id if caller else "anonymous")
        return serialize(await handler(service, data or {}, caller))


def parse_payload(model: type[ModelT], data: dict[str, Any]) -> ModelT:
    """Validate ``data`` against ``model``, reporting failures as InvalidPayload."""

    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise InvalidPayload(describe_errors(exc.errors())) from exc


def describe_errors(errors: Sequence[Any]) -> str:
    """Flatten pydantic error dicts into ``loc: msg`` pairs."""

    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'payload'}: {error['msg']}" for error in errors
    )


def serialize(result: Any) -> Any:
    if isinstance(result, UserPage):
        return {
            "items": [item.model_dump(mode="json") for item in result.items],
            "meta": result.meta.model_dump(mode="json"),
        }
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json")
    return result


messages = MessageRouter()


@messages.pattern("users.health")
async def health(service: DirectoryService, data: dict[str, Any], caller: Caller | None) -> str:
    return HEALTH_MESSAGE


@messages.pattern("users.create")
async def create(service: DirectoryService, data: dict[str, Any], caller: Caller | None):
    return await service.create(parse_payload(UserCreate, data), caller)


@messages.pattern("users.findAll", "users.all")
async def find_all(service: DirectoryService, data: dict[str, Any], caller: Caller | None):
    return await service.find_all(parse_payload(PaginationParams, data), caller)


@messages.pattern("users.find.id")
async def find_by_id(service: DirectoryService, data: dict[str, Any], caller: Caller | None):
    return await service.find_by_id(parse_payload(IdPayload, data).id, caller)


@messages.pattern("users.find.username")
async def find_by_username(service: DirectoryService, data: dict[str, Any], caller: Caller | None):
    return await service.find_by_username(parse_payload(UsernamePayload, data).username, caller)


@messages.pattern("users.find.email")
async def find_by_email(service: DirectoryService, data: dict[str, Any], caller: Caller | None):
    return await service.find_by_email(parse_payload(EmailPayload, data).email, caller)


@messages.pattern("users.find.meta")
async def find_meta(service: DirectoryService, data: dict[str, Any], caller: Caller | None):
    return await service.find_meta(parse_payload(IdPayload, data).id, caller)


@messages.pattern("users.find.summary")
async def find_summary(service: DirectoryService, data: dict[str, Any], caller: Caller | None):
    return await service.find_summary(parse_payload(IdPayload, data).id, caller)


@messages.pattern("users.update")
async def update(service: DirectoryService, data: dict[str, Any], caller: Caller | None):
    payload = parse_payload(UpdatePayload, data)
    return await service.update(payload.id, payload.patch, caller)


@messages.pattern("users.remove")
async def remove(service: DirectoryService, data: dict[str, Any], caller: Caller | None):
    return await service.remove(parse_payload(IdPayload, data).id, caller)


@messages.pattern("users.restore")
async def restore(service: DirectoryService, data: dict[str, Any], caller: Caller | None):
    return await service.restore(parse_payload(IdPayload, data).id, caller)


__all__ = ["HEALTH_MESSAGE", "MessageRouter", "describe_errors", "messages", "parse_payload", "serialize"]
