# camfleet/main.py
"""
FastAPI application entry point for the coordinator.
Includes bearer-token middleware, global error handlers, and all routers.

Run: uvicorn camfleet.main:app --host 0.0.0.0 --port 8000
"""

import hmac
import time
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from camfleet.routers import commands, devices, status as status_router, uploads
from camfleet.database import create_tables
from camfleet.config import settings
from camfleet.exceptions import CamfleetError, Unauthorized
from camfleet.utils.logger import get_logger

logger = get_logger(__name__)

ENDPOINTS = {
    "POST /register": "Device registration",
    "POST /command": "Send command to device",
    "POST /check-commands": "Check pending commands",
    "POST /upload": "Upload video file",
    "GET /status": "Server status",
}

app = FastAPI(
    title="camfleet coordinator",
    description="Device registry, command mailbox and upload receiver for recording agents.",
    version="1.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS (allow an operator dashboard to call the API) ──────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Bearer Token Middleware ─────────────────────────────────────────────────
class BearerTokenMiddleware(BaseHTTPMiddleware):
    """
    Static bearer token auth for the control endpoints.
    /register and /status stay open — agents register before they are trusted.
    CORS preflights carry no credentials and are answered by CORSMiddleware.
    """
    protected_paths = {"/command", "/check-commands", "/upload"}

    async def dispatch(self, request: Request, call_next):
        if request.method == "OPTIONS" or request.url.path not in self.protected_paths:
            return await call_next(request)

        expected = f"Bearer {settings.AUTH_TOKEN}"
        supplied = request.headers.get("Authorization", "")
        if not hmac.compare_digest(supplied.encode(), expected.encode()):
            logger.warning(f"Unauthorized {request.method} {request.url.path} attempt")
            err = Unauthorized()
            return JSONResponse(status_code=err.status_code, content={"error": err.message})
        return await call_next(request)


app.add_middleware(BearerTokenMiddleware)


# ── Request Timing Middleware ────────────────────────────────────────────────
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 2)
    logger.debug(f"{request.method} {request.url.path} → {response.status_code} ({duration}ms)")
    return response


# ── Exception Handlers ───────────────────────────────────────────────────────
@app.exception_handler(CamfleetError)
async def camfleet_error_handler(request: Request, exc: CamfleetError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Bad request on {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request body"},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
        logger.warning(f"404 Not Found: {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": "Not found", "endpoints": ENDPOINTS},
        )
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(devices.router,       tags=["📟 Devices"])
app.include_router(commands.router,      tags=["📨 Commands"])
app.include_router(uploads.router,       tags=["📼 Uploads"])
app.include_router(status_router.router, tags=["💚 Status"])


# ── Startup ───────────────────────────────────────────────────────────────────
@app.on_event("startup")
async def startup():
    logger.info("🚀 camfleet coordinator starting up...")
    create_tables()
    logger.info("✅ Database tables ready")
    logger.info(f"📼 Upload storage: {settings.STORAGE_PATH}")
    logger.info(f"🌐 Listening on http://{settings.BACKEND_IP}:{settings.BACKEND_PORT}")


@app.on_event("shutdown")
async def shutdown():
    logger.info("🛑 camfleet coordinator shutting down...")
