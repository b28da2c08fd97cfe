import logging
from typing import List, Optional, Tuple
from urllib.parse import urlparse

import httpx
from fastapi import BackgroundTasks, Request
from fastapi.responses import StreamingResponse

from static_file_server import config
from static_file_server.errors import UpstreamTimeout, UpstreamUnavailable

logger = logging.getLogger(f"{config.LOGGER_NAME}.proxy")

# Connection-scoped headers that must not be relayed in either direction
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "proxy-connection",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
}


async def relay_body(upstream: httpx.Response):
    # Responses handed over already read (mock transports) have no raw stream left
    if upstream.is_stream_consumed:
        yield upstream.content
        return
    async for chunk in upstream.aiter_raw():
        yield chunk


class ProxyService:
    """Relay requests the document root cannot answer to a single upstream origin."""

    def __init__(
        self,
        target: str,
        timeout: float = config.PROXY_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.target = target.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.netloc = urlparse(self.target).netloc

    def build_url(self, raw_path: str, query: str = "") -> str:
        url = self.target + (raw_path if raw_path.startswith("/") else "/" + raw_path)
        if query:
            url += "?" + query
        return url

    def forward_headers(self, headers) -> List[Tuple[str, str]]:
        # Set up headers, excluding problematic ones
        forwarded = [
            (k, v) for k, v in headers.items()
            if k.lower() not in HOP_BY_HOP_HEADERS and k.lower() not in ("host", "content-length")
        ]
        # Set the correct Host header for the target
        forwarded.append(("host", self.netloc))
        return forwarded

    async def forward(self, request: Request, raw_path: str) -> StreamingResponse:
        """Forward the request upstream and stream the answer back untouched."""
        url = self.build_url(raw_path, request.url.query)
        body = await request.body()

        client = httpx.AsyncClient(transport=self.transport, timeout=self.timeout, follow_redirects=False)
        upstream_request = client.build_request(
            request.method,
            url,
            headers=self.forward_headers(request.headers),
            content=body or None,
        )
        logger.debug(f"Proxying {request.method} {raw_path} to {url}")

        try:
            upstream = await client.send(upstream_request, stream=True)
        except httpx.TimeoutException as e:
            await client.aclose()
            logger.error(f"Proxy request timed out for {url}: {str(e)}")
            raise UpstreamTimeout(reason=f"Upstream timed out: {url}")
        except httpx.RequestError as e:
            await client.aclose()
            logger.error(f"Proxy request error for {url}: {str(e)}")
            raise UpstreamUnavailable(reason=f"Error forwarding request to {url}: {str(e)}")

        async def close_upstream():
            await upstream.aclose()
            await client.aclose()

        cleanup = BackgroundTasks()
        cleanup.add_task(close_upstream)
        response = StreamingResponse(
            relay_body(upstream),
            status_code=upstream.status_code,
            background=cleanup,
        )
        for key, value in upstream.headers.multi_items():
            if key.lower() not in HOP_BY_HOP_HEADERS:
                response.headers.append(key, value)
        return response
