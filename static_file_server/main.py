import asyncio
import logging
import mimetypes
import os
import socket
from typing import Callable, Dict, Optional
from urllib.parse import quote, unquote

import aiofiles
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse, Response, StreamingResponse

from static_file_server import config
from static_file_server.app.services import access_policy, cache_policy, path_resolver
from static_file_server.app.services.content_negotiator import IDENTITY, negotiate
from static_file_server.app.services.directory_listing import directory_listing
from static_file_server.app.services.proxy_service import ProxyService
from static_file_server.errors import Forbidden, MethodNotAllowed, NotFound, ServerError
from static_file_server.logger_config import request_logger, setup_logger
from static_file_server.models import ResolvedResource, ResourceKind, ServerConfig, build_config

logger = logging.getLogger(config.LOGGER_NAME)

PREFLIGHT_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

# Non text/* types that still carry a charset
TEXT_LIKE_TYPES = {"application/javascript", "application/json", "application/xml", "image/svg+xml"}


def raw_request_path(request: Request) -> str:
    """The request path exactly as sent, still percent-encoded."""
    raw = request.scope.get("raw_path")
    if raw:
        return raw.decode("latin-1").split("?", 1)[0] or "/"
    return quote(request.url.path)


def content_type_for(path: str, server_config: ServerConfig) -> str:
    ctype, _ = mimetypes.guess_type(path)
    ctype = ctype or server_config.content_type
    if ctype.startswith("text/") or ctype in TEXT_LIKE_TYPES:
        ctype += "; charset=utf-8"
    return ctype


def cors_headers(server_config: ServerConfig) -> Dict[str, str]:
    if not server_config.cors:
        return {}
    headers = {"Access-Control-Allow-Origin": "*"}
    if server_config.cors_headers:
        headers["Access-Control-Allow-Headers"] = ", ".join(server_config.cors_headers)
    return headers


async def file_iterator(path: str, start: int, length: int, chunk_size: int):
    """Stream `length` bytes of `path` starting at `start`.

    Closing the generator (client gone) closes the file.
    """
    async with aiofiles.open(path, "rb") as f:
        await f.seek(start)
        remaining = length
        while remaining > 0:
            chunk = await f.read(min(chunk_size, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk


class Dispatcher:
    """Per-request orchestration of the access, resolution and transmission steps."""

    def __init__(self, server_config: ServerConfig, proxy: Optional[ProxyService] = None):
        self.config = server_config
        self.proxy = proxy

    async def __call__(self, scope, receive, send):
        request = Request(scope, receive, send)
        response = await self.handle(request)
        await response(scope, receive, send)

    async def handle(self, request: Request) -> Response:
        server_config = self.config
        method = request.method.upper()
        raw_path = raw_request_path(request)

        if method == "OPTIONS" and server_config.cors:
            return Response(
                status_code=204,
                headers={"Access-Control-Allow-Methods": ", ".join(PREFLIGHT_METHODS)},
            )

        await access_policy.authenticate(request, server_config)

        if access_policy.is_robots_request(unquote(raw_path), server_config):
            return PlainTextResponse(config.ROBOTS_BODY)

        access_policy.check_dotfiles(raw_path, server_config)

        if method not in ("GET", "HEAD"):
            if self.proxy is not None:
                return await self.proxy.forward(request, raw_path)
            raise MethodNotAllowed(reason=f"{method} is not supported for static files")

        resource = await path_resolver.resolve(raw_path, server_config)

        if resource.kind is ResourceKind.FILE:
            return await self.serve_file(request, resource)
        if resource.kind is ResourceKind.DIRECTORY:
            return await self.serve_directory(resource, raw_path)
        if resource.kind is ResourceKind.REDIRECT:
            location = resource.location
            if request.url.query:
                location += "?" + request.url.query
            return RedirectResponse(location, status_code=302)
        if resource.kind is ResourceKind.FORBIDDEN:
            raise Forbidden(reason=resource.reason)

        if self.proxy is not None:
            return await self.proxy.forward(request, raw_path)
        return await self.not_found(request, resource)

    async def serve_file(self, request: Request, resource: ResolvedResource) -> Response:
        server_config = self.config
        headers = cache_policy.validator_headers(resource, server_config)

        if cache_policy.is_not_modified(request.headers, resource.etag, resource.mtime):
            response = Response(status_code=304, headers=headers)
            if "content-length" in response.headers:
                del response.headers["content-length"]
            return response

        outcome = await negotiate(resource, request.headers, server_config)
        headers.update({
            "ETag": cache_policy.representation_tag(resource.etag, outcome.encoding),
            "Content-Type": content_type_for(resource.path, server_config),
            "Content-Length": str(outcome.content_length),
            "Accept-Ranges": "bytes",
        })
        if server_config.compression_enabled:
            headers["Vary"] = "Accept-Encoding"
        if outcome.encoding != IDENTITY:
            headers["Content-Encoding"] = outcome.encoding
        if outcome.is_partial:
            headers["Content-Range"] = outcome.content_range

        if request.method.upper() == "HEAD":
            return Response(status_code=outcome.status, headers=headers)

        return StreamingResponse(
            file_iterator(outcome.path, outcome.start, outcome.content_length, server_config.chunk_size),
            status_code=outcome.status,
            headers=headers,
        )

    async def serve_directory(self, resource: ResolvedResource, raw_path: str) -> Response:
        body = await directory_listing(resource.path, raw_path, self.config)
        return HTMLResponse(body, headers={"Cache-Control": cache_policy.cache_control(self.config)})

    async def not_found(self, request: Request, resource: ResolvedResource) -> Response:
        """Serve the root's 404.html with status 404 if there is one."""
        root = self.config.root
        try:
            page = await path_resolver.find_file(root, os.path.join(root, config.NOT_FOUND_PAGE))
        except PermissionError:
            page = None
        if page is None:
            raise NotFound(reason=resource.reason)

        request.state.error = resource.reason
        async with aiofiles.open(page, "rb") as f:
            body = await f.read()
        return HTMLResponse(body, status_code=404)


def create_app(
    server_config: ServerConfig,
    log_fn: Optional[Callable] = None,
    proxy_transport=None,
) -> FastAPI:
    """Build the ASGI application serving `server_config.root`."""
    app = FastAPI(title="Static File Server", docs_url=None, redoc_url=None, openapi_url=None)

    proxy = None
    if server_config.proxy:
        proxy = ProxyService(server_config.proxy, timeout=server_config.proxy_timeout, transport=proxy_transport)
    dispatcher = Dispatcher(server_config, proxy)
    app.state.config = server_config
    app.state.dispatcher = dispatcher
    extra_headers = cors_headers(server_config)

    @app.exception_handler(ServerError)
    async def server_error_handler(request: Request, exc: ServerError):
        request.state.error = exc.reason
        return PlainTextResponse(exc.detail, status_code=exc.status_code, headers=exc.headers)

    @app.middleware("http")
    async def decorate_response(request: Request, call_next):
        request.state.error = None
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled error serving {request.method} {request.url.path}: {str(e)}", exc_info=True)
            request.state.error = str(e)
            response = PlainTextResponse("Internal Server Error", status_code=500)

        response.headers.update(extra_headers)
        if log_fn is not None:
            log_fn(request, response, request.state.error)
        return response

    # Mounted as a plain ASGI app so every method reaches it, WebDAV verbs included
    app.mount("/", dispatcher)

    return app


class Server:
    def __init__(self, server_config: ServerConfig, log_fn: Optional[Callable] = None, proxy_transport=None):
        self.config = server_config
        self.app = create_app(server_config, log_fn=log_fn, proxy_transport=proxy_transport)
        self._uvicorn: Optional[uvicorn.Server] = None

    @property
    def root(self) -> str:
        return self.config.root

    def listen(
        self,
        port: int = config.DEFAULT_PORT,
        host: str = config.DEFAULT_HOST,
        on_ready: Optional[Callable[["Server"], None]] = None,
    ) -> None:
        """Bind and serve until shutdown; `on_ready` runs once the socket is bound."""
        asyncio.run(self.serve(port, host, on_ready))

    async def serve(self, port: int, host: str, on_ready: Optional[Callable] = None) -> None:
        tls = self.config.https
        uv_config = uvicorn.Config(
            self.app,
            host=host,
            port=port,
            log_config=None,
            access_log=False,
            ssl_certfile=tls.cert if tls else None,
            ssl_keyfile=tls.key if tls else None,
        )
        # A taken port raises OSError here, not SystemExit from inside uvicorn
        sock = self._create_listen_socket(host, port, uv_config.backlog)
        self._uvicorn = uvicorn.Server(uv_config)
        task = asyncio.create_task(self._uvicorn.serve(sockets=[sock]))

        try:
            while not self._uvicorn.started and not task.done():
                await asyncio.sleep(0.05)
            if self._uvicorn.started and on_ready is not None:
                on_ready(self)
            await task
        finally:
            sock.close()

    @staticmethod
    def _create_listen_socket(host: str, port: int, backlog: int) -> socket.socket:
        """Create/bind/listen; OSError (e.g. address in use) reaches the caller."""
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
            sock.listen(backlog)
        except OSError:
            sock.close()
            raise
        return sock

    def close(self) -> None:
        """Ask the listener to stop; in-flight requests are allowed to finish."""
        if self._uvicorn is not None:
            self._uvicorn.should_exit = True


def create_server(options: Optional[dict] = None, **kwargs) -> Server:
    """Validate the options and build a server for them.

    Raises ConfigurationError for a bad root, TLS files or proxy target.
    """
    options = dict(options or {})
    options.update(kwargs)
    log_fn = options.pop("log_fn", None)
    log_fn = options.pop("logFn", None) or log_fn
    proxy_transport = options.pop("proxy_transport", None)

    server_config = build_config(options)
    logger.debug(f"Document root: {server_config.root}")
    if log_fn is None:
        log_fn = request_logger(log_ip=server_config.log_ip)
    return Server(server_config, log_fn=log_fn, proxy_transport=proxy_transport)


if __name__ == "__main__":
    logger = setup_logger()
    server = create_server(root=os.getcwd(), log_fn=request_logger(logger))
    logger.info("Starting Static File Server...")
    logger.info(f"Document root: {server.root}")
    server.listen(
        on_ready=lambda s: logger.info(f"Listening on {config.DEFAULT_HOST}:{config.DEFAULT_PORT}")
    )
