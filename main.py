"""
FastAPI backend for cinema-explorer.

This module provides the web API of the linked-view ensemble explorer:
database registry and CSV ingestion, the dataset model and similarity
queries, parallel coordinates brushing and axis reordering, the scatter plot,
and index-color pointer picking. Selection and ordering changes are pushed to
clients over the /ws WebSocket.
"""

import os

import uvicorn
from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse

from explorer.app_config import AppConfig, DatabaseRegistry
from explorer.shared.logger import get_logger, setup_logging

config = AppConfig.from_env()
setup_logging(config.log_level)
logger = get_logger(__name__)

from explorer.databases import router as databases_router
from explorer.hit_test import router as hit_test_router
from explorer.selection import router as selection_router
from explorer.session import session
from explorer.system import router as system_router
from websocket import ws_manager

# Create FastAPI app
app = FastAPI(
    title="cinema-explorer API",
    description="API for exploring Cinema ensemble databases through linked views",
    version="1.0.0",
    default_response_class=ORJSONResponse,
)


# ============= Exception Handlers for Error Logging =============


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Log HTTP exceptions and return JSON response."""
    # Only log 5xx errors (server errors)
    if exc.status_code >= 500:
        logger.error("%s: %s (status %d)", request.url.path, exc.detail, exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Log unexpected exceptions and return JSON response."""
    logger.critical(
        "%s: unhandled %s: %s", request.url.path, type(exc).__name__, exc, exc_info=exc
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# The viewer may be served from another origin (file:// or a dev server)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,  # Must be False when using allow_origins=["*"]
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include API routes
app.include_router(system_router, prefix="/api", tags=["system"])
app.include_router(databases_router, prefix="/api", tags=["databases"])
app.include_router(selection_router, prefix="/api", tags=["selection"])
app.include_router(hit_test_router, prefix="/api", tags=["hit-test"])


# ============= Startup Events =============


@app.on_event("startup")
async def startup_event():
    """Load the database registry on application startup."""
    logger.info("cinema-explorer starting...")

    path = config.databases_path
    try:
        session.registry = DatabaseRegistry.load(path)
    except (OSError, ValueError) as e:
        logger.error("Failed to load database registry %s: %s", path, e)


# ============= WebSocket Endpoints =============


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, client_id: str = None):
    """
    Main WebSocket endpoint for real-time updates.

    Clients can subscribe to channels:
    - dataset - loading, ready, failed and warning notifications
    - selection - selection changes
    - axes - axis order changes
    - picks - picked rows, highlighted rows and mouseover
    - system - system-wide notifications

    Message format (JSON):
    {
        "type": "subscribe" | "unsubscribe" | "ping",
        "channel": "channel_name",
        "data": {}
    }
    """
    await ws_manager.connect(websocket, client_id)

    try:
        while True:
            message_text = await websocket.receive_text()
            response = await ws_manager.handle_message(websocket, message_text)
            if response:
                await ws_manager.send_to_connection(websocket, response)

    except WebSocketDisconnect:
        await ws_manager.disconnect(websocket)
    except Exception as e:
        logger.error("WebSocket error: %s", e)
        await ws_manager.disconnect(websocket)


@app.get("/api/ws/stats")
async def get_websocket_stats():
    """Get WebSocket connection statistics."""
    return ws_manager.get_stats()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="cinema-explorer backend server")
    parser.add_argument(
        "--port",
        type=int,
        default=config.port,
        help="Port to run the server on (default: 8000 or CINEMA_EXPLORER_PORT env var)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=config.host,
        help="Host to bind to (default: 127.0.0.1 or CINEMA_EXPLORER_HOST env var)",
    )
    parser.add_argument(
        "--databases",
        type=str,
        default=None,
        help="Path to databases.json (default: CINEMA_EXPLORER_DATABASES or the user config dir)",
    )
    parser.add_argument(
        "--reload",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Enable auto-reload",
    )
    args = parser.parse_args()

    # The app is re-imported by uvicorn, so settings travel through the environment
    if args.databases:
        os.environ["CINEMA_EXPLORER_DATABASES"] = os.path.abspath(args.databases)

    uvicorn.run(
        "main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=config.log_level.lower(),
    )
