"""Serve a local directory tree over HTTP(S)."""
from static_file_server.errors import ConfigurationError
from static_file_server.main import Server, create_app, create_server
from static_file_server.models import ServerConfig, build_config

__version__ = "0.1.0"
