"""
Chat Relay - real-time conversational relay
FastAPI backend: websocket rooms, tool-augmented model turns, vector memory
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import asyncio

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from routers import chat, history, config_routes
from logging_config import setup_logging
from config import runtime_config

setup_logging()
logger = logging.getLogger(__name__)


async def periodic_history_cleanup(interval_seconds: int = 3600):
    """Periodically drop idle room histories"""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            evicted = chat.get_chat_runtime().history.evict_idle()
            if evicted:
                logger.info(f"History cleanup: {len(evicted)} idle rooms removed")
        except Exception as e:
            logger.error(f"Periodic history cleanup error: {e}", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown events"""
    # Startup
    runtime = chat.get_chat_runtime()
    runtime.queue.start()

    if not runtime_config.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set - model and embedding calls will fail")

    cleanup_task = asyncio.create_task(
        periodic_history_cleanup(interval_seconds=runtime_config.history_cleanup_interval)
    )
    logger.info(f"Chat relay ready (model={runtime_config.model_chat}, rag={runtime_config.rag_enabled})")

    yield

    # Shutdown
    cleanup_task.cancel()
    await runtime.controller.shutdown()
    await runtime.queue.stop()
    logger.info("Chat relay signing off")


app = FastAPI(
    title="Chat Relay",
    description="Real-time conversational relay with tools and memory",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS - restrict to localhost and private network IPs on port 3000
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1|100\.\d+\.\d+\.\d+|192\.168\.\d+\.\d+|[a-zA-Z][a-zA-Z0-9\-]*):3000$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API Routers
# Chat router is mounted WITHOUT /api prefix so WebSocket is at /ws/chat
app.include_router(chat.router, tags=["chat"])
app.include_router(history.router, prefix="/api", tags=["history"])
app.include_router(config_routes.router, prefix="/api", tags=["config"])


@app.get("/health")
async def health():
    """Health check - connection, room and ingestion queue state."""
    runtime = chat.get_chat_runtime()
    return {
        "status": "healthy",
        "message": "WebSocket server is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "connectedClients": runtime.registry.connection_count(),
        "rooms": len(runtime.registry.room_ids()),
        "embeddingQueue": runtime.queue.stats(),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=runtime_config.port, ws_max_size=1048576)  # 1MB WS frame limit
