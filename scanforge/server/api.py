# scanforge/server/api.py
# FastAPI application: scan control, direct targets, live progress, diagnostics

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from scanforge.base.config import ScanForgeConfig, get_config, setup_logging
from scanforge.errors import ScanForgeError
from scanforge.server.routers import realtime, scans, system, targets
from scanforge.server.state import ApplicationState, get_state

logger = logging.getLogger(__name__)


async def scanforge_error_handler(request: Request, exc: ScanForgeError):
    """Convert ScanForgeError to a JSON error response."""
    logger.error(f"[API] {exc.code.value}: {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@asynccontextmanager
async def lifespan(app: FastAPI):
    state = get_state()
    logger.info(f"[API] Ready (simulate_tools={state.config.scan.simulate_tools})")
    yield
    await state.orchestrator.shutdown()
    logger.info("[API] Shut down")


def create_app(config: Optional[ScanForgeConfig] = None) -> FastAPI:
    cfg = config or get_config()

    app = FastAPI(
        title="ScanForge API",
        description="Security scan orchestration over static analysis and dependency scanners",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cfg.security.allowed_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ScanForgeError, scanforge_error_handler)

    app.include_router(scans.router, prefix="/api")
    app.include_router(targets.router, prefix="/api")
    app.include_router(system.router, prefix="/api")
    app.include_router(realtime.sse_router, prefix="/api")
    app.include_router(realtime.router)
    return app


app = create_app()


def serve(port: Optional[int] = None, host: Optional[str] = None):
    """Run the API with uvicorn using the global configuration."""
    config = get_config()
    setup_logging(config)
    ApplicationState.instance()
    uvicorn.run(app, host=host or config.api_host, port=port or config.api_port, log_level="info")
