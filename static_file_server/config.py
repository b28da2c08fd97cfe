"""Configuration settings for the Static File Server."""

# Listener defaults
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080

# Caching
DEFAULT_CACHE_SECONDS = 3600  # 1 hour
NO_CACHE_DIRECTIVE = "no-cache, no-store, must-revalidate"

# File transmission
CHUNK_SIZE = 64 * 1024  # 64KB chunks
DEFAULT_CONTENT_TYPE = "application/octet-stream"
IDENTITY_ENCODING = "identity"
INDEX_FILE = "index.html"
NOT_FOUND_PAGE = "404.html"

# Proxy fallback
PROXY_TIMEOUT = 30.0  # seconds

# Basic auth
AUTH_REALM = "static-file-server"
USERNAME_ENV = "STATIC_FILE_SERVER_USERNAME"
PASSWORD_ENV = "STATIC_FILE_SERVER_PASSWORD"

# robots.txt
ROBOTS_PATH = "/robots.txt"
ROBOTS_BODY = "User-agent: *\nDisallow: /\n"

# Logging
LOGGER_NAME = "static_file_server"
LOGS_DIR = "logs"
