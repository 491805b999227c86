"""
CORS handling.

Starlette's CORSMiddleware answers browser preflights itself with an "OK"
body, and with a 400 when the request asks for a header or comes from an
origin outside its lists. Here every preflight gets an empty 200 carrying
the allow headers; whether the real request may follow is left to the
browser, based on Access-Control-Allow-Origin.
"""

from typing import Optional, Sequence

from starlette.datastructures import Headers
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

ALLOWED_METHODS = ["POST", "OPTIONS"]
EXPOSED_HEADERS = ["Content-Disposition", "X-Filename"]
PREFLIGHT_MAX_AGE = 600


def preflight_headers(
    origins: Sequence[str],
    request_origin: Optional[str] = None,
    requested_headers: Optional[str] = None,
) -> dict[str, str]:
    """
    Headers for an OPTIONS response.

    Any requested header is allowed. A configured origin list is echoed back
    only for origins on it; other origins get no Allow-Origin header.
    """
    headers = {
        "Access-Control-Allow-Methods": ", ".join(ALLOWED_METHODS),
        "Access-Control-Allow-Headers": requested_headers or "Content-Type",
        "Access-Control-Max-Age": str(PREFLIGHT_MAX_AGE),
    }
    if "*" in origins:
        headers["Access-Control-Allow-Origin"] = "*"
    elif request_origin and request_origin in origins:
        headers["Access-Control-Allow-Origin"] = request_origin
        headers["Access-Control-Allow-Credentials"] = "true"
        headers["Vary"] = "Origin"
    return headers


class PreflightCORSMiddleware(CORSMiddleware):
    """CORSMiddleware whose preflight responses are always an empty 200."""

    def __init__(self, app: ASGIApp, allow_origins: Sequence[str] = (), **kwargs):
        super().__init__(app, allow_origins=allow_origins, **kwargs)
        self.origins = list(allow_origins)

    def preflight_response(self, request_headers: Headers) -> Response:
        headers = preflight_headers(
            self.origins,
            request_origin=request_headers.get("origin"),
            requested_headers=request_headers.get("access-control-request-headers"),
        )
        return Response(status_code=200, headers=headers)
