"""
TripChat Backend - FastAPI + Socket.IO Application

Main application entry point with middleware, routers, the chat gateway
and OpenAPI documentation.

Run with: uvicorn tripchat.main:asgi_app
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import socketio
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tripchat import __version__
from tripchat.config import settings
from tripchat.database import close_db, get_db, get_redis, init_db
from tripchat.middleware.rate_limit import RateLimitMiddleware
from tripchat.realtime.gateway import ChatGateway, create_socket_server
from tripchat.routers import messages
from tripchat.utils.telegram_log_handler import setup_telegram_logging

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

sio = create_socket_server()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    Handles startup and shutdown events:
    - Initialize database connections
    - Forward warnings to Telegram when configured
    - Create the chat gateway
    - Cleanup on shutdown
    """
    # Startup
    await init_db()

    setup_telegram_logging(settings.telegram_bot_token, settings.telegram_log_chat_id)

    try:
        await get_db().client.admin.command("ping")
        logger.info("Connected to db")
    except Exception as e:
        logger.error(f"FAILED to connect to db: {e}")

    try:
        await get_redis().ping()
        logger.info("Redis connected")
    except Exception as e:
        logger.error(f"FAILED to connect to Redis: {e}")

    gateway = ChatGateway(sio)
    app.state.chat_gateway = gateway
    logger.info("Chat gateway ready")

    yield

    # Shutdown
    await gateway.shutdown()
    app.state.chat_gateway = None
    await close_db()


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="TripChat API",
    description="""
    TripChat - Real-time trip chat

    ## Features
    - Per-trip chat rooms over Socket.IO (`joinRoom`, `leaveRoom`, `sendMessage`, `typing`)
    - Cursor-paginated message history
    - REST fallback for sending without a live connection

    ## Authentication
    Authenticated endpoints require a JWT in the Authorization header:
    `Authorization: Bearer <token>` (or the `token` cookie).
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


# =============================================================================
# Middleware
# =============================================================================

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Rate Limiting Middleware
app.add_middleware(RateLimitMiddleware)


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler for unhandled errors.

    SECURITY: Do not leak internal error details.
    """
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Something went wrong. Please try again later."
        },
    )


# =============================================================================
# Routers
# =============================================================================

# Trip chat routes
app.include_router(
    messages.router, prefix=f"{settings.api_v1_str}/trips", tags=["Trip Chat"]
)


# =============================================================================
# Health Check
# =============================================================================


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for load balancers and monitoring."""
    return {"status": "healthy", "version": __version__}


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": "TripChat API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "socket": "/socket.io",
    }


# Socket.IO handles /socket.io/*, everything else goes to FastAPI
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)
