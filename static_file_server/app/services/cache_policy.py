"""Validators and cache headers for files served from disk."""
import hashlib
import re
from email.utils import formatdate, parsedate_to_datetime
from typing import Dict, Mapping

from static_file_server import config
from static_file_server.models import ResolvedResource, ServerConfig


def entity_tag(path: str, size: int, mtime_ns: int) -> str:
    """Return a strong, quoted entity tag for one version of a file."""
    digest = hashlib.md5(f"{path}:{size}:{mtime_ns}".encode("utf-8")).hexdigest()
    return f'"{digest}"'


# Suffix marking the tag of a pre-compressed representation
ENCODED_TAG = re.compile(r'-(?:br|gzip)"$')


def representation_tag(etag: str, encoding: str) -> str:
    """Tag one encoded form of a file so byte ranges never mix representations."""
    if encoding == config.IDENTITY_ENCODING:
        return etag
    return f'{etag[:-1]}-{encoding}"'


def file_tag(tag: str) -> str:
    """Strip any weak prefix and encoding suffix, leaving the file's own tag."""
    if tag.startswith("W/"):
        tag = tag[2:]
    return ENCODED_TAG.sub('"', tag)

def last_modified(mtime: float) -> str:
    return formatdate(mtime, usegmt=True)


def cache_control(server_config: ServerConfig) -> str:
    if isinstance(server_config.cache, str):
        return server_config.cache
    if server_config.caching_disabled:
        return config.NO_CACHE_DIRECTIVE
    return f"max-age={server_config.cache}"


def etag_matches(if_none_match: str, etag: str) -> bool:
    """Weak comparison of an If-None-Match list against the current tag."""
    if if_none_match.strip() == "*":
        return True
    current = file_tag(etag)
    for candidate in if_none_match.split(","):
        if file_tag(candidate.strip()) == current:
            return True
    return False


def modified_since(if_modified_since: str, mtime: float) -> bool:
    """True unless the file is unchanged since the given date.

    Compared at second granularity; an unparsable date counts as modified.
    """
    try:
        since = parsedate_to_datetime(if_modified_since)
    except (TypeError, ValueError, IndexError):
        return True
    if since is None:
        return True
    return int(mtime) > int(since.timestamp())


def is_not_modified(headers: Mapping[str, str], etag: str, mtime: float) -> bool:
    """Evaluate conditional request headers; either fresh validator means 304."""
    if_none_match = headers.get("if-none-match")
    if if_none_match and etag_matches(if_none_match, etag):
        return True
    if_modified_since = headers.get("if-modified-since")
    if if_modified_since and not modified_since(if_modified_since, mtime):
        return True
    return False


def validator_headers(resource: ResolvedResource, server_config: ServerConfig) -> Dict[str, str]:
    return {
        "ETag": resource.etag,
        "Last-Modified": last_modified(resource.mtime),
        "Cache-Control": cache_control(server_config),
    }
