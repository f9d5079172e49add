"""FastAPI application entrypoint for the internal message transport."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine

from userdir.api import api_router
from userdir.api.messages import describe_errors
from userdir.core.config import Settings, get_settings
from userdir.core.exceptions import DirectoryError, InvalidPayload
from userdir.db.session import build_engine, build_session_factory, create_schema
from userdir.repositories.users import SqlUserRepository, UserRepository
from userdir.services.users import DirectoryService

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    repository: UserRepository | None = None,
    engine: AsyncEngine | None = None,
) -> FastAPI:
    """Build the application; tests pass their own repository."""

    settings = settings or get_settings()
    if repository is None:
        engine = engine or build_engine(settings.database_url)
        repository = SqlUserRepository(build_session_factory(engine))

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if engine is not None:
            await create_schema(engine)
            logger.info("User schema ready")
        try:
            yield
        finally:
            if engine is not None:
                await engine.dispose()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.directory = DirectoryService(repository, settings=settings)
    app.include_router(api_router)

    @app.exception_handler(DirectoryError)
    async def handle_directory_error(_: Request, exc: DirectoryError):
        if exc.transient:
            logger.warning("Transient failure: %s", exc.message)
        return JSONResponse(status_code=exc.status, content={"error": exc.to_payload()})

    @app.exception_handler(RequestValidationError)
    async def handle_malformed_envelope(request: Request, exc: RequestValidationError):
        return await handle_directory_error(request, InvalidPayload(describe_errors(exc.errors())))

    return app


def run() -> None:
    """Serve the internal API with uvicorn."""

    import uvicorn

    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
