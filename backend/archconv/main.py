"""
archconv monitoring service.

The read-only API is served next to a running conversion, in a daemon
thread of the CLI process.
"""

import logging
import threading
from typing import Optional

from fastapi import FastAPI

from . import __version__
from .execution.runner import ConversionRunner
from .monitoring import server as monitoring

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8085


def create_app(runner: Optional[ConversionRunner] = None) -> FastAPI:
    """Build the monitoring app observing runner."""
    app = FastAPI(title="archconv monitor", version=__version__)
    app.state.runner = runner
    app.include_router(monitoring.router)

    @app.get("/")
    async def root():
        return {"service": "archconv", "status": "running"}

    return app


def start_monitor_server(
    runner: ConversionRunner,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> threading.Thread:
    """
    Serve the monitoring API for runner in a daemon thread.

    The thread dies with the process; nothing waits for it.
    """
    import uvicorn

    app = create_app(runner)
    config = uvicorn.Config(app, host=host, port=port, log_level="warning")
    server = uvicorn.Server(config)

    if host == "0.0.0.0":
        logger.warning("[Monitor] LAN exposure is enabled, anyone on the network can view run data")

    thread = threading.Thread(target=server.run, name="archconv-monitor", daemon=True)
    thread.start()
    logger.info(f"[Monitor] Serving read-only API on http://{host}:{port}/monitor")
    return thread
