"""Internal message-pattern endpoint used by the gateway."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from userdir.api.messages import messages
from userdir.core.dependencies import get_caller, get_directory
from userdir.schemas.messages import MessageEnvelope
from userdir.schemas.user import Caller
from userdir.services.users import DirectoryService

router = APIRouter(tags=["rpc"])


@router.post("/rpc")
async def handle_message(
    message: MessageEnvelope,
    caller: Caller | None = Depends(get_caller),
    service: DirectoryService = Depends(get_directory),
) -> dict[str, Any]:
    return {"data": await messages.dispatch(message.pattern, message.data, service, caller)}


@router.get("/rpc/patterns")
async def list_patterns() -> dict[str, list[str]]:
    return {"patterns": messages.patterns}
