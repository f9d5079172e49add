"""API router aggregator."""
from fastapi import APIRouter

from userdir.api.routes import rpc

api_router = APIRouter(prefix="/internal")
api_router.include_router(rpc.router)

__all__ = ["api_router"]
