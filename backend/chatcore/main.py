"""Chatcore Backend Application.

Entry point of the real-time messaging core: direct messages, rooms,
presence, typing indicators, @mention suggestions and delivery status.

Modules:
    - chat: WebSocket push transport, rooms, messages, conversations
    - users: read-only user directory and search
    - auth: JWT bearer verification
    - store: DuckDB message store
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chatcore.chat.http_router import router as chat_http_router
from chatcore.chat.hub import ChatHub
from chatcore.chat.router import router as chat_ws_router
from chatcore.config import get_config
from chatcore.errors import ChatError
from chatcore.store.service import MessageStore
from chatcore.users.router import router as users_router
from chatcore.users.service import UserDirectory

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in chatcore.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    # Open both databases up front so a bad path fails at boot, not on first use.
    MessageStore.get_instance(config.store.db_path)
    UserDirectory.get_instance(config.store.users_db_path)
    ChatHub.get_instance()
    logger.info(
        f"Chat core ready on http://{config.server.host}:{config.server.port}"
    )

    yield  # Application runs here

    # Shutdown
    ChatHub.reset_instance()
    MessageStore.reset_instance()
    UserDirectory.reset_instance()
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="Chatcore API",
    description="Real-time messaging core: direct messages, rooms, presence and mentions",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}", exc_info=exc)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse({"error": message}, status_code=400)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# Register all routers
app.include_router(chat_ws_router)
app.include_router(chat_http_router)
app.include_router(users_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}
