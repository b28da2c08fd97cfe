from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ResourceKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    REDIRECT = "redirect"


@dataclass(frozen=True)
class ResolvedResource:
    kind: ResourceKind
    path: Optional[str] = None
    size: int = 0
    mtime: float = 0.0
    etag: Optional[str] = None
    # Set for REDIRECT: the URL path the client should retry with
    location: Optional[str] = None
    # Set for FORBIDDEN / NOT_FOUND, used in logs only
    reason: Optional[str] = None


@dataclass(frozen=True)
class NegotiationOutcome:
    encoding: str
    path: str
    length: int
    start: int
    end: int
    status: int = 200

    @property
    def content_length(self) -> int:
        if self.length == 0:
            return 0
        return self.end - self.start + 1

    @property
    def is_partial(self) -> bool:
        return self.status == 206

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.length}"
