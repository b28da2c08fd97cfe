"""Error taxonomy for the request-serving engine.

Per-request failures are ``HTTPException`` subclasses and are turned into
plain-text responses by the dispatcher. ``ConfigurationError`` is only raised
while building a server and is meant to stop the process from listening.
"""
from typing import Dict, Optional

from fastapi import HTTPException

from static_file_server import config


class ConfigurationError(RuntimeError):
    """Invalid options, root directory or TLS files."""


class ServerError(HTTPException):
    status_code = 500
    default_detail = "Internal Server Error"

    def __init__(
        self,
        detail: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        reason: Optional[str] = None,
    ):
        super().__init__(
            status_code=self.status_code,
            detail=detail or self.default_detail,
            headers=headers,
        )
        # What gets logged; the response body only ever carries `detail`.
        self.reason = reason or self.detail


class NotFound(ServerError):
    status_code = 404
    default_detail = "Not Found"


class Forbidden(NotFound):
    """Traversal attempts and hidden paths. Reported as 404 so existence does not leak."""

    default_detail = "Not Found"


class Unauthorized(ServerError):
    status_code = 401
    default_detail = "Access denied"

    def __init__(
        self,
        detail: Optional[str] = None,
        realm: str = config.AUTH_REALM,
        reason: Optional[str] = None,
    ):
        super().__init__(
            detail,
            headers={"WWW-Authenticate": f'Basic realm="{realm}"'},
            reason=reason,
        )


class MethodNotAllowed(ServerError):
    status_code = 405
    default_detail = "Method Not Allowed"

    def __init__(self, detail: Optional[str] = None, reason: Optional[str] = None):
        super().__init__(detail, headers={"Allow": "GET, HEAD, OPTIONS"}, reason=reason)


class NotSatisfiable(ServerError):
    status_code = 416
    default_detail = "Range Not Satisfiable"

    def __init__(self, length: int, detail: Optional[str] = None, reason: Optional[str] = None):
        self.length = length
        super().__init__(detail, headers={"Content-Range": f"bytes */{length}"}, reason=reason)


class UpstreamUnavailable(ServerError):
    status_code = 502
    default_detail = "Bad Gateway"


class UpstreamTimeout(UpstreamUnavailable):
    status_code = 504
    default_detail = "Gateway Timeout"
