"""
SnapShop Scan API - FastAPI Main Entry

✅ LOCAL:
    cd backend
    source .venv/bin/activate
    python -m uvicorn snapshop.main:app --reload --host 0.0.0.0 --port 8000

✅ TEST:
    curl -i http://127.0.0.1:8000/health
    curl -i -X POST http://127.0.0.1:8000/v1/scan                      # demo mode
    curl -i -X POST -F image=@shoe.jpg http://127.0.0.1:8000/v1/scan   # real scan
    curl -i -X PUT -H 'Content-Type: application/json' \
        -d '{"key": "..."}' http://127.0.0.1:8000/v1/settings/key

✅ ENV:
    GEMINI_API_KEY   default key (a key set via /v1/settings/key wins)
    CAPTURE_FILE     optional JPEG used when /v1/scan gets no image
    LOG_LEVEL        INFO by default
"""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# ✅ Routers
from snapshop.api.routes_identify import router as identify_router
from snapshop.api.routes_scan import router as scan_router
from snapshop.core.capture import CaptureSource, FileCaptureSource, NullCaptureSource
from snapshop.core.config import settings
from snapshop.core.scanner import ScanOrchestrator


def default_capture_source(capture_file: Optional[str] = None) -> CaptureSource:
    path = (settings.CAPTURE_FILE if capture_file is None else capture_file).strip()
    return FileCaptureSource(path) if path else NullCaptureSource()


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    )
    # Reduce noise from external libs (httpx logs full URLs, key included)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def create_app(orchestrator: Optional[ScanOrchestrator] = None) -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="SnapShop Scan API",
        version=settings.APP_VERSION,
        description="Snap a product, identify it with Gemini, get shopping links",
    )

    # ✅ CORS (browser front-ends and Swagger docs)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # One scan state per process
    app.state.orchestrator = orchestrator or ScanOrchestrator()
    app.state.default_capture_source = default_capture_source()

    # ✅ Root (GET /)
    @app.get("/")
    def root():
        return {
            "name": "SnapShop Scan API",
            "status": "ok",
            "docs": "/docs",
            "health": "/health",
            "version": "/version",
        }

    # ✅ Health Check (GET /health)
    @app.get("/health")
    def health():
        return {"ok": True}

    # ✅ Version endpoint (GET /version)
    @app.get("/version")
    def version():
        return {"version": settings.APP_VERSION, "build": settings.BUILD_ID}

    # ✅ Mount routers
    app.include_router(identify_router)
    app.include_router(scan_router)

    return app


app = create_app()
