"""Nulm Backend Application.

This is the main entry point for the Nulm backend service. Nulm pairs
anonymous visitors into one-on-one text chats, tracks reports against
network addresses across reconnections and enforces bans and session expiry.

Modules:
    - chat: WebSocket endpoint and the matchmaking/session-state engine
    - matching: Waiting queue, room registry and FIFO matchmaker
    - session: Per-connection expiry timers
    - reports: DuckDB-backed report/ban accumulator and report endpoints
    - chat_log: DuckDB-backed chat message log
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from nulm.chat.engine import get_engine, set_engine
from nulm.chat.router import router as chat_router
from nulm.config import get_config
from nulm.reports.router import router as reports_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

for _noisy in ("uvicorn.access", "duckdb"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    config = get_config()

    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    engine = get_engine()
    logger.info(
        f"Chat engine ready: session={config.session.duration_seconds}s, "
        f"ban_threshold={config.reports.ban_threshold}"
    )

    yield  # Application runs here

    engine.shutdown()
    set_engine(None)
    logger.info("Application shutdown complete")


app = FastAPI(
    title="Nulm API",
    description="Anonymous one-on-one chat matchmaking service",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(chat_router)
app.include_router(reports_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    config = get_config()
    uvicorn.run(app, host=config.server.host, port=config.server.port)
