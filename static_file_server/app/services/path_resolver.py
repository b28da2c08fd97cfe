import logging
import os
import posixpath
from urllib.parse import quote, unquote

import aiofiles.os

from static_file_server import config
from static_file_server.app.services.cache_policy import entity_tag
from static_file_server.models import ResolvedResource, ResourceKind, ServerConfig

logger = logging.getLogger(f"{config.LOGGER_NAME}.resolver")

realpath = aiofiles.os.wrap(os.path.realpath)


def is_within(root: str, path: str) -> bool:
    """Check that `path` is `root` itself or lives below it."""
    return path == root or path.startswith(root.rstrip(os.sep) + os.sep)


def url_for(root: str, path: str) -> str:
    """The quoted URL path of a filesystem path inside root."""
    rel = os.path.relpath(path, root)
    if rel == os.curdir:
        return "/"
    return quote("/" + "/".join(rel.split(os.sep)))


def forbidden(reason: str) -> ResolvedResource:
    logger.debug(f"Rejected path: {reason}")
    return ResolvedResource(ResourceKind.FORBIDDEN, reason=reason)


async def file_resource(path: str) -> ResolvedResource:
    stat = await aiofiles.os.stat(path)
    return ResolvedResource(
        ResourceKind.FILE,
        path=path,
        size=stat.st_size,
        mtime=stat.st_mtime,
        etag=entity_tag(path, stat.st_size, stat.st_mtime_ns),
    )


async def find_file(root: str, candidate: str):
    """Return the real path of `candidate` if it is a regular file inside root.

    Raises PermissionError when the file exists but its real path (after
    following symlinks) leaves the root.
    """
    if not await aiofiles.os.path.isfile(candidate):
        return None
    real = await realpath(candidate)
    if not is_within(root, real):
        raise PermissionError(f"{candidate} resolves outside the document root")
    return real


async def resolve(url_path: str, server_config: ServerConfig) -> ResolvedResource:
    """Map a raw request path to a resource under the document root."""
    root = server_config.root
    decoded = unquote(url_path or "/")
    if "\x00" in decoded:
        return forbidden("null byte in path")

    trailing_slash = decoded.endswith("/")
    rel = decoded.lstrip("/")
    candidate = os.path.normpath(os.path.join(root, *rel.split("/"))) if rel else root
    if not is_within(root, candidate):
        return forbidden(f"{decoded} escapes the document root")

    try:
        if await aiofiles.os.path.isdir(candidate):
            real = await realpath(candidate)
            if not is_within(root, real):
                return forbidden(f"{decoded} resolves outside the document root")
            if not trailing_slash:
                return ResolvedResource(
                    ResourceKind.REDIRECT, path=real, location=url_for(root, candidate) + "/"
                )
            return await resolve_directory(real, server_config)

        if trailing_slash:
            # Only directories answer to a path ending in "/"
            return ResolvedResource(ResourceKind.NOT_FOUND, path=candidate, reason=f"{decoded} is not a directory")

        found = await find_file(root, candidate)
        if found is None and server_config.ext:
            if not posixpath.splitext(posixpath.basename(rel))[1]:
                found = await find_file(root, f"{candidate}.{server_config.ext}")
    except PermissionError as e:
        return forbidden(str(e))

    if found is None:
        return ResolvedResource(ResourceKind.NOT_FOUND, path=candidate, reason=f"{decoded} not found")
    return await file_resource(found)


async def resolve_directory(directory: str, server_config: ServerConfig) -> ResolvedResource:
    root = server_config.root
    if server_config.auto_index:
        index = await find_file(root, os.path.join(directory, config.INDEX_FILE))
        if index is not None:
            return await file_resource(index)

    if server_config.ext and directory != root:
        sibling = await find_file(root, f"{directory.rstrip(os.sep)}.{server_config.ext}")
        if sibling is not None:
            return await file_resource(sibling)

    if server_config.show_dir:
        return ResolvedResource(ResourceKind.DIRECTORY, path=directory)
    return ResolvedResource(ResourceKind.NOT_FOUND, path=directory, reason="directory listing disabled")
