"""Main module for the trade ledger and price-alert service."""
import asyncio
import logging
import os
import subprocess
import sys
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI

from trade_engine.deps import build_stores, wire_services
from trade_engine.routers import (alerts_router, summaries_router,
                                  ticks_router, trades_router)
from trade_engine.services.tick_feed import WebSocketTickFeed

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    """Wire services and start background tasks at startup; stop them on shutdown."""
    storage = os.getenv("TRADE_ENGINE_STORAGE", "sql")
    wire_services(fastapi_app, build_stores(storage))
    await fastapi_app.state.alert_service.load_index()

    stop_event = asyncio.Event()
    retry_interval = float(os.getenv("EVENT_RETRY_INTERVAL", "5"))
    tasks = [
        asyncio.create_task(
            fastapi_app.state.bus.run_retry_loop(retry_interval, stop_event),
            name="trade-closed-retry",
        )
    ]

    feed_url = os.getenv("TICK_FEED_URL")
    if feed_url:
        feed = WebSocketTickFeed(feed_url, fastapi_app.state.alert_index.symbols)
        tasks.append(
            asyncio.create_task(
                fastapi_app.state.evaluator.consume(feed.stream(stop_event)),
                name="tick-feed",
            )
        )
        logger.info("Consuming ticks from %s", feed_url)

    yield

    stop_event.set()
    for task in tasks:
        task.cancel()
    for result in await asyncio.gather(*tasks, return_exceptions=True):
        if isinstance(result, Exception):
            logger.warning("Background task ended with error: %s", result)


app = FastAPI(
    title="Trade Ledger & Alert Engine",
    description="Trade lifecycle, profit summaries and exactly-once price alerts",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(trades_router)
app.include_router(summaries_router)
app.include_router(alerts_router)
app.include_router(ticks_router)


@app.get("/")
def health():
    """Return health check status."""
    return {"status": "ok"}


def run():
    """Run the server (uvicorn). Use for `poetry run start`."""
    uvicorn.run("trade_engine.main:app", host="127.0.0.1", port=8001)


def run_dev():
    """Run the development server with Postgres running via Docker."""
    project_root = Path(__file__).resolve().parent.parent.parent
    try:
        subprocess.run(
            ["docker", "compose", "up", "-d", "postgres"],
            cwd=project_root,
            capture_output=True,
            text=True,
            check=True,
        )
    except subprocess.CalledProcessError as e:
        print("Failed to start Postgres:", e.stderr or e.stdout, file=sys.stderr)
        sys.exit(1)
    uvicorn.run("trade_engine.main:app", host="0.0.0.0", port=8000, reload=True)
