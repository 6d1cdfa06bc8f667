from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from .config import Settings, settings
from .database import init_db
from .services.allocation import AllocationService
from .services.errors import AllocationError
from .services.notifier import Notifier

from .api.events import router as events_router
from .api.signup import router as signup_router
from .api.manage import router as manage_router
from .api.admin import router as admin_router

logger = logging.getLogger(__name__)


def create_app(
    engine: Optional[Engine] = None,
    notifier: Optional[Notifier] = None,
    cfg: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the API. engine/notifier/cfg default to the process-wide ones;
    tests pass their own.
    """
    cfg = cfg or settings
    app = FastAPI(title="Slotkeeper API", version=cfg.app_version)

    app.state.settings = cfg
    app.state.allocation = AllocationService(engine=engine, notifier=notifier, cfg=cfg)

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Startup ---
    @app.on_event("startup")
    def _startup() -> None:
        # Creates missing tables for all registered models (non-destructive)
        init_db(engine)

    # --- Friendly error envelope ---
    @app.exception_handler(AllocationError)
    async def allocation_error_handler(request: Request, exc: AllocationError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("Allocation error on %s: %s", request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    # --- Health / meta ---
    @app.get("/health", tags=["meta"])
    def health() -> Dict[str, Any]:
        return {"ok": True, "env": cfg.env}

    @app.get("/version", tags=["meta"])
    def version() -> Dict[str, Any]:
        return {"version": cfg.app_version}

    # --- API routers ---
    app.include_router(events_router)
    app.include_router(signup_router)
    app.include_router(manage_router)
    app.include_router(admin_router)

    return app


app = create_app()


def run() -> None:
    logging.basicConfig(level=getattr(logging, str(settings.log_level).upper(), logging.INFO))
    import uvicorn

    # init_db is handled by the FastAPI startup hook.
    uvicorn.run(
        "slotkeeper.main:app",
        host=settings.host,
        port=int(settings.port),
        reload=bool(settings.reload),
    )
