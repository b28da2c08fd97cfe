"""Checks applied to a request before any filesystem access."""
import logging
import secrets
from typing import Optional
from urllib.parse import unquote

from fastapi import HTTPException, Request
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from static_file_server import config
from static_file_server.errors import Forbidden, Unauthorized
from static_file_server.models import Credentials, ServerConfig

logger = logging.getLogger(f"{config.LOGGER_NAME}.access")

_basic = HTTPBasic(auto_error=False, realm=config.AUTH_REALM)


def is_hidden(url_path: str) -> bool:
    """True if any segment of the decoded path is a dotfile or dot-directory."""
    for segment in unquote(url_path).split("/"):
        if segment.startswith(".") and segment not in (".", ".."):
            return True
    return False


def check_dotfiles(url_path: str, server_config: ServerConfig) -> None:
    if not server_config.show_dotfiles and is_hidden(url_path):
        raise Forbidden(reason=f"Hidden path requested: {url_path}")


def credentials_match(supplied: HTTPBasicCredentials, credentials: Credentials) -> bool:
    username, password = supplied.username, supplied.password
    # Both halves are always compared so a wrong username costs the same as a wrong password
    user_ok = secrets.compare_digest(username.encode("utf-8"), credentials.username.encode("utf-8"))
    pass_ok = secrets.compare_digest(password.encode("utf-8"), credentials.password.encode("utf-8"))
    return user_ok and pass_ok


async def read_credentials(request: Request) -> Optional[HTTPBasicCredentials]:
    """The basic auth credentials of the request, None if absent or malformed."""
    try:
        return await _basic(request)
    except HTTPException:
        # Undecodable payload or missing ":" separator
        return None


def check_credentials(supplied: Optional[HTTPBasicCredentials], credentials: Optional[Credentials]) -> None:
    """Raise Unauthorized unless the supplied credentials are the configured ones."""
    if credentials is None:
        return
    if supplied is None:
        raise Unauthorized(reason="Missing or malformed basic auth credentials")
    if not credentials_match(supplied, credentials):
        logger.warning(f"Rejected basic auth credentials for user: {supplied.username!r}")
        raise Unauthorized(reason="Invalid basic auth credentials")


async def authenticate(request: Request, server_config: ServerConfig) -> None:
    if not server_config.auth_required:
        return
    check_credentials(await read_credentials(request), server_config.credentials)


def is_robots_request(url_path: str, server_config: ServerConfig) -> bool:
    return server_config.robots and url_path == config.ROBOTS_PATH
