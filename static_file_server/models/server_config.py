import os
import ssl
from typing import Optional, Tuple, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from static_file_server import config
from static_file_server.errors import ConfigurationError


class Credentials(BaseModel):
    """The single username/password pair checked on every guarded request."""

    model_config = ConfigDict(frozen=True)

    username: str
    password: str = Field(repr=False)


class TLSConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    cert: str
    key: str


class ServerConfig(BaseModel):
    """Immutable server configuration, built once at startup.

    Fields accept both the snake_case names and the camelCase spelling
    (``showDir``, ``autoIndex``, ``showDotfiles`` ...).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    root: str = Field(".", validate_default=True)
    cache: Union[int, str] = config.DEFAULT_CACHE_SECONDS
    show_dir: bool = Field(True, alias="showDir")
    auto_index: bool = Field(True, alias="autoIndex")
    gzip: bool = False
    brotli: bool = False
    ext: Optional[str] = None
    show_dotfiles: bool = Field(False, alias="showDotfiles")
    cors: bool = False
    cors_headers: Tuple[str, ...] = Field((), alias="corsHeaders")
    robots: bool = False
    proxy: Optional[str] = None
    proxy_timeout: float = Field(config.PROXY_TIMEOUT, alias="proxyTimeout", gt=0)
    credentials: Optional[Credentials] = None
    https: Optional[TLSConfig] = None
    log_ip: bool = Field(False, alias="logIp")
    chunk_size: int = Field(config.CHUNK_SIZE, alias="chunkSize", gt=0)
    content_type: str = Field(config.DEFAULT_CONTENT_TYPE, alias="contentType")

    @model_validator(mode="before")
    @classmethod
    def split_cors(cls, data):
        # `cors` is either a flag or a comma separated header allow-list
        if isinstance(data, dict) and isinstance(data.get("cors"), str):
            data = dict(data)
            headers = tuple(h.strip() for h in data["cors"].split(",") if h.strip())
            data["cors"] = True
            data["cors_headers"] = headers
            data.pop("corsHeaders", None)
        return data

    @field_validator("root")
    @classmethod
    def validate_root(cls, v):
        root = os.path.realpath(os.path.abspath(v or "."))
        if not os.path.isdir(root):
            raise ValueError(f"Root directory does not exist: {v}")
        return root

    @field_validator("cache", mode="before")
    @classmethod
    def validate_cache(cls, v):
        if v is None:
            return config.DEFAULT_CACHE_SECONDS
        if isinstance(v, str) and v.strip().lstrip("-").isdigit():
            return int(v)
        return v

    @field_validator("ext")
    @classmethod
    def validate_ext(cls, v):
        if v is None:
            return None
        v = v.strip().lstrip(".")
        return v or None

    @field_validator("proxy")
    @classmethod
    def validate_proxy(cls, v):
        if not v:
            return None
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https"):
            raise ValueError("Only HTTP(S) proxy targets are supported")
        if not parsed.netloc:
            raise ValueError(f"Invalid proxy URL format: {v}")
        return v.rstrip("/")

    @field_validator("https")
    @classmethod
    def validate_https(cls, v):
        if v is None:
            return None
        context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
        try:
            context.load_cert_chain(certfile=v.cert, keyfile=v.key)
        except (OSError, ssl.SSLError) as e:
            raise ValueError(f"Unable to load TLS certificate/key: {e}")
        return v

    @property
    def caching_disabled(self) -> bool:
        return isinstance(self.cache, int) and self.cache < 0

    @property
    def compression_enabled(self) -> bool:
        return self.gzip or self.brotli

    @property
    def auth_required(self) -> bool:
        return self.credentials is not None


def build_config(options: Optional[dict] = None, environ=None, **kwargs) -> ServerConfig:
    """Build the immutable server configuration from caller options.

    Credentials missing from the options are taken from the environment
    here, once, so requests never re-read them.
    """
    data = dict(options or {})
    data.update(kwargs)
    environ = os.environ if environ is None else environ

    username = data.pop("username", None) or environ.get(config.USERNAME_ENV)
    password = data.pop("password", None) or environ.get(config.PASSWORD_ENV)
    if username or password:
        data["credentials"] = Credentials(username=username or "", password=password or "")

    try:
        return ServerConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid server configuration: {e}") from e
