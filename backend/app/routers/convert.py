"""
Conversion router.

Endpoints:
  POST    /convert   multipart upload (file + targetFormat), returns the converted file
  OPTIONS /convert   CORS preflight, always 200 with an empty body
  GET     /formats   supported source extensions and target formats
"""

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response

from app import config
from app.cors import preflight_headers
from app.services.conversion import convert_document
from app.services.extractor import SUPPORTED_EXTENSIONS
from app.services.renderer import RenderError, TargetFormat, UnsupportedFormatError

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_UPLOAD_NAME = "file"


def _error(status_code: int, message: str) -> HTTPException:
    """Build an HTTPException; the app-level handler renders it as {"error": message}."""
    return HTTPException(status_code=status_code, detail=message)


def _missing_parts_message(has_file: bool, has_format: bool) -> Optional[str]:
    missing = []
    if not has_file:
        missing.append("file")
    if not has_format:
        missing.append("targetFormat")
    if not missing:
        return None
    return "Missing " + " and ".join(missing)


def _content_disposition(filename: str) -> str:
    """
    attachment header with an ASCII fallback name plus the RFC 5987 UTF-8 name.

    HTTP header values must be latin-1, so non-ASCII names only travel in
    the filename* parameter.
    """
    stem, dot, ext = filename.rpartition(".")
    if not dot:
        stem, ext = filename, ""
    stem = _ascii_only(stem).strip(". ") or "converted"
    fallback = f"{stem}{dot}{_ascii_only(ext)}"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


def _ascii_only(value: str) -> str:
    return value.encode("ascii", "ignore").decode("ascii").replace('"', "").replace("\\", "")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.options("/convert")
async def convert_preflight(request: Request) -> Response:
    """
    Answer a bare OPTIONS request.

    Browser preflights (Origin + Access-Control-Request-Method) are answered
    by PreflightCORSMiddleware with the same headers before they reach this
    route.
    """
    headers = preflight_headers(
        config.get_cors_origins(),
        request_origin=request.headers.get("origin"),
        requested_headers=request.headers.get("access-control-request-headers"),
    )
    return Response(status_code=200, headers=headers)


@router.post("/convert")
async def convert_file(
    file: Optional[UploadFile] = File(None),
    target_format: Optional[str] = Form(None, alias="targetFormat"),
) -> Response:
    """
    Convert an uploaded file to the requested format.

    Returns the converted bytes as an attachment. Errors are returned as
    {"error": message}: 400 for missing parts, unsupported formats and
    oversized files, 500 for conversion failures.
    """
    missing = _missing_parts_message(file is not None, bool(target_format and target_format.strip()))
    if missing:
        raise _error(400, missing)

    # File size check (before reading full content)
    if file.size is not None and file.size > config.MAX_UPLOAD_BYTES:
        raise _error(400, f"File exceeds {config.MAX_UPLOAD_BYTES} byte limit.")

    content = await file.read()

    # Double-check size after reading (in case .size was not set)
    if len(content) > config.MAX_UPLOAD_BYTES:
        raise _error(400, f"File exceeds {config.MAX_UPLOAD_BYTES} byte limit.")

    filename = file.filename or DEFAULT_UPLOAD_NAME

    try:
        result = await run_in_threadpool(convert_document, content, filename, target_format)
    except UnsupportedFormatError as e:
        raise _error(400, e.message)
    except RenderError as e:
        raise _error(500, e.message)
    except Exception as e:
        logger.exception("Conversion failed")
        raise _error(500, str(e) or "Conversion failed")

    return Response(
        content=result.content,
        media_type=result.mime_type,
        headers={
            "Content-Disposition": _content_disposition(result.filename),
            "X-Filename": quote(result.filename),
        },
    )


@router.get("/formats")
async def list_formats() -> dict:
    return {
        "source_extensions": SUPPORTED_EXTENSIONS,
        "target_formats": [fmt.value for fmt in TargetFormat],
    }
