"""
Vanishpaste - Main FastAPI application.
"""
import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from vanishpaste.config import Settings, settings as default_settings
from vanishpaste.database import PasteStore, connect_store
from vanishpaste.exceptions import PasteNotFoundError, StorageError, ValidationError
from vanishpaste.routes import health, pastes

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


async def sweep_inert_pastes(store: PasteStore, interval: int) -> None:
    """Periodically delete pastes that expired or ran out of views."""
    while True:
        await asyncio.sleep(interval)
        try:
            purged = await store.purge_inert(datetime.now(timezone.utc))
        except StorageError:
            logger.exception("Sweep of inert pastes failed")
            continue
        if purged:
            logger.info(f"Swept {purged} inert pastes")


def _describe_request_errors(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())[1:]) or "body"
        messages.append(f"{field}: {error.get('msg')}")
    return "; ".join(messages) or "Invalid request"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": _describe_request_errors(exc)})

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"detail": exc.message})

    @app.exception_handler(PasteNotFoundError)
    async def not_found_handler(request: Request, exc: PasteNotFoundError):
        return JSONResponse(status_code=404, content={"detail": exc.message})

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error(f"Storage failure on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application; the paste store is connected on startup."""
    settings = settings or default_settings
    configure_logging(settings)

    app = FastAPI(
        title="Vanishpaste",
        description="Share text that disappears after a deadline or a number of views",
        version="1.0.0",
        debug=settings.DEBUG,
    )
    app.state.settings = settings
    app.state.store = None
    app.state.sweeper = None

    # Add CORS middleware (for cross-origin API clients)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Include route modules
    app.include_router(health.router)
    app.include_router(pastes.router)

    @app.on_event("startup")
    async def startup_event():
        """Connect the paste store and start housekeeping."""
        logger.info("Vanishpaste application starting...")
        if app.state.store is None:
            app.state.store = await connect_store(settings)

        if app.state.store.backend_name == "memory":
            logger.warning("DATABASE: Using IN-MEMORY storage (Redis not available)")
            logger.warning("   Data will NOT persist across server restarts!")
        else:
            logger.info(f"DATABASE: Using {app.state.store.backend_name} storage")

        if settings.reference_time_override_enabled:
            logger.warning("TEST_MODE: x-test-now-ms header controls the reference time")

        if settings.SWEEP_INTERVAL_SECONDS > 0:
            app.state.sweeper = asyncio.create_task(
                sweep_inert_pastes(app.state.store, settings.SWEEP_INTERVAL_SECONDS)
            )

    @app.on_event("shutdown")
    async def shutdown_event():
        """Stop housekeeping and drain the store connection."""
        logger.info("Vanishpaste application shutting down...")
        if app.state.sweeper is not None:
            app.state.sweeper.cancel()
            try:
                await app.state.sweeper
            except asyncio.CancelledError:
                pass
            app.state.sweeper = None
        if app.state.store is not None:
            await app.state.store.close()
            app.state.store = None

    @app.get("/", response_class=FileResponse)
    async def root():
        """Serve the create paste HTML page."""
        return FileResponse(TEMPLATES_DIR / "create.html", media_type="text/html")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "vanishpaste.main:app",
        host="0.0.0.0",
        port=8000,
        reload=default_settings.DEBUG,
    )
