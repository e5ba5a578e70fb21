"""Roomhub Backend Application.

This is the main entry point for the Roomhub chat service: a single-room,
real-time chat hub with presence, typing indicators, reactions, read
receipts and paginated history. All state lives in process memory.

Modules:
    - chat: Room state machine and WebSocket transport
    - files: Attachment descriptors for file messages

Run with:
    uvicorn roomhub.main:app --port 5000
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roomhub.chat.router import router as chat_router
from roomhub.config import get_config

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# uvicorn.access logs every HTTP request; not useful when debugging the room.
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in roomhub.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    logger.info(
        f"Chat server running on "
        f"http://{config.server.host}:{config.server.port}"
    )

    yield  # Application runs here

    # Shutdown
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI application with middleware and routers."""
    config = get_config()
    application = FastAPI(
        title="Roomhub API",
        description="Real-time single-room chat hub",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.allowed_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    application.include_router(chat_router)

    @application.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object indicating the server is running.
        """
        return {"status": "ok"}

    return application


app = create_app()
