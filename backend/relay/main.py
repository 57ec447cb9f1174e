"""Photo Relay Backend Application.

This is the main entry point for the Photo Relay backend service.
A phone uploads images, a PC downloads each one exactly once, and nothing
is kept longer than the configured TTL.

Modules:
    - transfers: upload, one-shot download, listing and clear-all
    - config: YAML settings
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from relay.config import get_config
from relay.transfers.router import router as transfers_router
from relay.transfers.service import TransferService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# multipart parsing logs every part at debug level
for _noisy in ("multipart", "python_multipart"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    service = TransferService.from_settings(config.storage)
    await service.start()
    app.state.transfer_service = service
    logger.info(
        "Relay ready: storing in %s (TTL=%ss, max=%d bytes, clear_on_upload=%s)",
        config.storage.upload_dir,
        config.storage.ttl_seconds,
        config.storage.max_file_size_bytes,
        config.storage.clear_on_upload,
    )

    yield  # Application runs here

    # Shutdown
    await service.stop()
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    application = FastAPI(
        title="Photo Relay API",
        description="Ephemeral phone-to-PC file relay",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=get_config().server.allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.include_router(transfers_router)

    @application.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object indicating the server is running.
        """
        return {"status": "ok"}

    return application


app = create_app()
