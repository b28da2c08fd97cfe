"""Representation selection: pre-compressed siblings first, then byte ranges.

Compressed representations are never produced on the fly. A `<file>.br` or
`<file>.gz` sitting next to the source is served when the client accepts the
coding, the coding is enabled and the artifact is at least as new as the
source. Range arithmetic is then done against whichever artifact was picked.
"""
import logging
import stat as stat_module
from typing import Dict, Mapping, Optional, Tuple

import aiofiles.os

from static_file_server import config
from static_file_server.app.services.cache_policy import last_modified, representation_tag
from static_file_server.errors import NotSatisfiable
from static_file_server.models import NegotiationOutcome, ResolvedResource, ServerConfig

logger = logging.getLogger(f"{config.LOGGER_NAME}.negotiator")

IDENTITY = config.IDENTITY_ENCODING

# (content-coding, sibling suffix), highest precedence first
ENCODINGS = (
    ("br", ".br"),
    ("gzip", ".gz"),
)


def parse_accept_encoding(header: Optional[str]) -> Dict[str, float]:
    """Parse `Accept-Encoding` into a {coding: qvalue} mapping."""
    accepted: Dict[str, float] = {}
    if not header:
        return accepted
    for item in header.split(","):
        coding, _, params = item.strip().partition(";")
        coding = coding.strip().lower()
        if not coding:
            continue
        q = 1.0
        for param in params.split(";"):
            name, _, value = param.strip().partition("=")
            if name.strip().lower() == "q":
                try:
                    q = float(value)
                except ValueError:
                    q = 0.0
        accepted[coding] = q
    return accepted


def accepts(accepted: Mapping[str, float], coding: str) -> bool:
    if coding in accepted:
        return accepted[coding] > 0
    return accepted.get("*", 0) > 0


def enabled_encodings(server_config: ServerConfig):
    for coding, suffix in ENCODINGS:
        if coding == "br" and server_config.brotli:
            yield coding, suffix
        elif coding == "gzip" and server_config.gzip:
            yield coding, suffix


async def select_encoding(
    resource: ResolvedResource, accept_encoding: Optional[str], server_config: ServerConfig
) -> Tuple[str, str, int]:
    """Stage one: pick (encoding, artifact path, artifact length)."""
    accepted = parse_accept_encoding(accept_encoding)
    for coding, suffix in enabled_encodings(server_config):
        if not accepts(accepted, coding):
            continue
        sibling = resource.path + suffix
        try:
            st = await aiofiles.os.stat(sibling)
        except OSError:
            continue
        if not stat_module.S_ISREG(st.st_mode):
            continue
        if st.st_mtime < resource.mtime:
            logger.debug(f"Ignoring stale {coding} artifact: {sibling}")
            continue
        return coding, sibling, st.st_size
    return IDENTITY, resource.path, resource.size


def parse_range(range_header: Optional[str], length: int) -> Optional[Tuple[int, int]]:
    """Stage two: turn a `Range` header into an inclusive (start, end) window.

    Returns None when the whole body should be sent. Only single `bytes`
    ranges are supported; anything that cannot be satisfied raises
    NotSatisfiable.
    """
    if not range_header:
        return None
    unit, sep, spec = range_header.strip().partition("=")
    if not sep or unit.strip().lower() != "bytes":
        return None
    spec = spec.strip()
    if "," in spec:
        raise NotSatisfiable(length, reason=f"Multiple ranges are not supported: {range_header}")

    start_s, sep, end_s = spec.partition("-")
    start_s, end_s = start_s.strip(), end_s.strip()
    if not sep or not (start_s or end_s):
        return None
    if (start_s and not start_s.isdigit()) or (end_s and not end_s.isdigit()):
        return None

    if not start_s:
        # Suffix range: the last N bytes
        suffix = int(end_s)
        if suffix == 0 or length == 0:
            raise NotSatisfiable(length, reason=f"Unsatisfiable suffix range: {range_header}")
        return max(length - suffix, 0), length - 1

    start = int(start_s)
    end = int(end_s) if end_s else length - 1
    if start >= length or start > end:
        raise NotSatisfiable(length, reason=f"Range {range_header} outside of {length} bytes")
    return start, min(end, length - 1)


def if_range_matches(if_range: str, resource: ResolvedResource, encoding: str) -> bool:
    """True if the If-Range validator names the representation about to be sent.

    A date only identifies the identity form; a compressed form must be
    named by its own entity tag.
    """
    if_range = if_range.strip()
    if if_range == representation_tag(resource.etag, encoding):
        return True
    return encoding == IDENTITY and if_range == last_modified(resource.mtime)

async def negotiate(
    resource: ResolvedResource, headers: Mapping[str, str], server_config: ServerConfig
) -> NegotiationOutcome:
    encoding, artifact, length = await select_encoding(
        resource, headers.get("accept-encoding"), server_config
    )
    range_header = headers.get("range")
    if_range = headers.get("if-range")
    if range_header and if_range and not if_range_matches(if_range, resource, encoding):
        # The client holds a different version: send the whole representation
        range_header = None
    window = parse_range(range_header, length)
    if window is None:
        return NegotiationOutcome(encoding, artifact, length, 0, max(length - 1, 0), 200)
    start, end = window
    return NegotiationOutcome(encoding, artifact, length, start, end, 206)
