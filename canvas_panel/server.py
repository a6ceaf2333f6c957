"""
Canvas Macro Panel Server
=========================

FastAPI server for bulk zone macros against a remote shared canvas.

Features:
- Move / copy / delete / undelete everything inside a zone
- Layout macros: auto-grid, group by color, group by title, pin/unpin
- Deletion ledger with JSON persistence
- Zone grid administration (script-made anchors)
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Import services
from .services.canvas_client import CanvasAPIError, CanvasClient
from .services.macro_service import MacroConfig, MacroService
from .services.zone_service import ZoneService

# Import canvas ledger
from .canvas.ledger import DeletionLedger
from .models.errors import MacroError

# Import API routers
from .api import macro_routes, zone_routes


# Shared service instances
canvas_client: CanvasClient = None
deletion_ledger: DeletionLedger = None
macro_service: MacroService = None
zone_service: ZoneService = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global canvas_client, deletion_ledger, macro_service, zone_service

    logger.info("[CANVAS-PANEL] Starting up...")

    macro_config = MacroConfig()

    # Initialize canvas client
    canvas_client = CanvasClient()
    if not canvas_client.config.is_configured:
        logger.warning("[CANVAS-PANEL] CANVUS_SERVER, CANVAS_ID or CANVUS_API_KEY is not set")

    # Initialize deletion ledger
    deletion_ledger = DeletionLedger(
        records_file=Path(macro_config.deleted_records_file),
        max_records=macro_config.max_deleted_records
    )

    macro_service = MacroService(canvas_client, deletion_ledger, macro_config)
    zone_service = ZoneService(canvas_client, macro_service.mutator)

    # Inject into route modules
    macro_routes.macro_service = macro_service
    zone_routes.zone_service = zone_service

    logger.info("[CANVAS-PANEL] Services initialized")

    yield

    # Cleanup
    logger.info("[CANVAS-PANEL] Shutting down...")
    if canvas_client:
        await canvas_client.close()


# Create FastAPI app
app = FastAPI(
    title="Canvas Macro Panel",
    description="Bulk zone macros for a remote shared canvas",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@app.exception_handler(MacroError)
async def macro_error_handler(request: Request, exc: MacroError):
    logger.warning(f"[CANVAS-PANEL] {request.url.path}: {exc.message}")
    return _error(exc.status_code, exc.message)


@app.exception_handler(CanvasAPIError)
async def canvas_error_handler(request: Request, exc: CanvasAPIError):
    logger.error(f"[CANVAS-PANEL-ERROR] {request.url.path}: remote canvas call failed: {exc.message}")
    return _error(502, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
        for err in exc.errors()
    )
    return _error(400, f"Invalid request: {errors}")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"[CANVAS-PANEL-ERROR] {request.url.path}: unhandled {type(exc).__name__}")
    return _error(500, f"Internal error: {type(exc).__name__}")


# Include API routers
app.include_router(macro_routes.router)
app.include_router(zone_routes.router)


@app.get("/")
async def root():
    """Return API info."""
    return {
        "service": "Canvas Macro Panel",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "macros": "/api/macros/{macro}",
            "zones": "/api/zones",
            "health": "/health"
        }
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    if not canvas_client:
        return {
            "status": "healthy",
            "service": "canvas-macro-panel",
            "canvas_server": None,
            "canvas_reachable": None
        }
    reachable = await canvas_client.health_check()
    return {
        "status": "healthy" if reachable else "degraded",
        "service": "canvas-macro-panel",
        "canvas_server": canvas_client.config.server,
        "canvas_reachable": reachable
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "canvas_panel.server:app",
        host="0.0.0.0",
        port=8080,
        reload=True
    )
