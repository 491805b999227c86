"""
Document Converter API
FastAPI application that converts uploaded documents between formats.
"""

import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app import config
from app.cors import ALLOWED_METHODS, EXPOSED_HEADERS, PreflightCORSMiddleware
from app.routers import convert

# Configure logging to output to console
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"

app = FastAPI(
    title="Document Converter API",
    description="Stateless conversion of email, office, markup and text files to PDF, DOCX, TXT and HTML",
    version=API_VERSION,
)

# CORS origins are resolved at startup from the environment
_cors_origins = config.get_cors_origins()
app.add_middleware(
    PreflightCORSMiddleware,
    allow_origins=_cors_origins,
    # Browsers reject credentials together with a wildcard origin
    allow_credentials="*" not in _cors_origins,
    allow_methods=ALLOWED_METHODS,
    allow_headers=["*"],
    expose_headers=EXPOSED_HEADERS,
)

# Include routers
app.include_router(convert.router, prefix="/api", tags=["convert"])


# ---------------------------------------------------------------------------
# Error responses: every failure is returned as {"error": "<message>"}
# ---------------------------------------------------------------------------

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', 'invalid')}"
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request: " + "; ".join(messages)},
    )


@app.on_event("startup")
async def log_startup_urls() -> None:
    """
    Log the URL the API is accessible at.

    The port shown is taken from the ``HOST_PORT`` environment variable so
    that Docker-mapped ports are reported correctly. Defaults to 8000.
    """
    host_port = os.getenv("HOST_PORT", "8000")
    logger.info(
        "Document Converter API running at http://localhost:%s (max upload %d bytes)",
        host_port,
        config.MAX_UPLOAD_BYTES,
    )


@app.get("/")
async def root():
    return {"message": "Document Converter API", "version": API_VERSION}


@app.get("/health")
async def health():
    return {"status": "ok"}
