import base64

import pytest
from fastapi import Request
from fastapi.security import HTTPBasicCredentials

from static_file_server.app.services.access_policy import (
    authenticate,
    check_credentials,
    check_dotfiles,
    is_hidden,
    is_robots_request,
    read_credentials,
)
from static_file_server.errors import Forbidden, NotFound, Unauthorized
from static_file_server.models import Credentials


def encode(value: str) -> str:
    return "Basic " + base64.b64encode(value.encode()).decode()


def make_request(authorization=None) -> Request:
    headers = []
    if authorization is not None:
        headers.append((b"authorization", authorization.encode("latin-1")))
    return Request({"type": "http", "method": "GET", "path": "/", "query_string": b"", "headers": headers})


def test_is_hidden():
    assert is_hidden("/.env")
    assert is_hidden("/docs/.git/config")
    assert is_hidden("/%2esecret")
    assert not is_hidden("/docs/a.txt")
    assert not is_hidden("/docs/../a.txt")
    assert not is_hidden("/file.with.dots")


def test_check_dotfiles(make_config):
    with pytest.raises(Forbidden) as exc_info:
        check_dotfiles("/.secret", make_config())
    # Hidden paths look exactly like missing ones
    assert isinstance(exc_info.value, NotFound)
    assert exc_info.value.status_code == 404

    check_dotfiles("/.secret", make_config(show_dotfiles=True))
    check_dotfiles("/docs/a.txt", make_config())


@pytest.mark.asyncio
async def test_read_credentials():
    supplied = await read_credentials(make_request(encode("admin:p:w")))
    assert (supplied.username, supplied.password) == ("admin", "p:w")

    assert await read_credentials(make_request()) is None
    assert await read_credentials(make_request("Bearer token")) is None
    assert await read_credentials(make_request("Basic !!!not-base64")) is None
    assert await read_credentials(make_request(encode("no-separator"))) is None


def test_check_credentials():
    credentials = Credentials(username="admin", password="pw")

    check_credentials(HTTPBasicCredentials(username="admin", password="pw"), credentials)
    check_credentials(None, None)

    rejected = (
        None,
        HTTPBasicCredentials(username="admin", password="nope"),
        HTTPBasicCredentials(username="other", password="pw"),
    )
    for supplied in rejected:
        with pytest.raises(Unauthorized) as exc_info:
            check_credentials(supplied, credentials)
        assert exc_info.value.status_code == 401
        assert exc_info.value.headers["WWW-Authenticate"].startswith("Basic realm=")


@pytest.mark.asyncio
async def test_authenticate(make_config):
    await authenticate(make_request(), make_config())

    protected = make_config(username="admin", password="pw")
    await authenticate(make_request(encode("admin:pw")), protected)
    for header in (None, "Basic", encode("admin:nope")):
        with pytest.raises(Unauthorized):
            await authenticate(make_request(header), protected)


def test_is_robots_request(make_config):
    assert is_robots_request("/robots.txt", make_config(robots=True))
    assert not is_robots_request("/robots.txt", make_config())
    assert not is_robots_request("/docs/robots.txt", make_config(robots=True))
