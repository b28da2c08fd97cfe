import json
import logging
import platform
import socket
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Union

from static_file_server import config


class StructuredMessage:
    def __init__(self, message, **kwargs):
        self.message = message
        self.kwargs = kwargs

    def __str__(self):
        if not self.kwargs:
            return '%s' % (self.message)
        fields = " ".join(f"{k}={v}" for k, v in self.kwargs.items())
        return '%s %s' % (self.message, fields)


class StructuredFormatter(logging.Formatter):
    def __init__(self):
        super().__init__()
        self.hostname = socket.gethostname()

    def format(self, record):
        # Get the original message
        if isinstance(record.msg, StructuredMessage):
            message = record.msg.message
            extra = record.msg.kwargs
        else:
            message = record.getMessage()
            extra = {}

        log_data = {
            'message': message,
            'level': record.levelname,
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'logger': record.name,
            'hostname': self.hostname,
            'python_version': platform.python_version(),
            'function': record.funcName,
            'line_number': record.lineno,
            'filename': record.filename,
        }

        # Add any extra fields from the StructuredMessage
        log_data.update(extra)
        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logger(
    name: str = config.LOGGER_NAME,
    level: int = logging.INFO,
    log_dir: Optional[Union[str, Path]] = None,
    json_format: bool = False,
) -> logging.Logger:
    """Configure the named logger with a console handler and an optional file handler.

    Calling it twice for the same logger does not stack handlers.
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    if getattr(logger, "_static_file_server_configured", False):
        return logger

    # Create formatters
    file_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
    )
    console_formatter = StructuredFormatter() if json_format else logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s'
    )

    # File handler (for detailed logging)
    if log_dir is not None:
        logs_dir = Path(log_dir)
        logs_dir.mkdir(exist_ok=True, parents=True)
        file_handler = logging.FileHandler(logs_dir / f"{name}.log")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    # Console handler (for basic logging)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    logger._static_file_server_configured = True
    return logger


# Helper function to create structured logs
def structured_log(message, **kwargs):
    return StructuredMessage(message, **kwargs)


def request_logger(logger: Optional[logging.Logger] = None, log_ip: bool = False) -> Callable:
    """Build the default per-request logging callback.

    The callback receives the request, the response and an optional error
    description, and writes one structured record.
    """
    logger = logger or logging.getLogger(config.LOGGER_NAME)

    def log_fn(request, response, error=None):
        fields = {
            "event": "request",
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
        }
        if log_ip and request.client is not None:
            fields["client"] = request.client.host
        message = f'"{request.method} {request.url.path}" {response.status_code}'
        if error:
            fields["error"] = str(error)
        if response.status_code >= 500:
            logger.error(structured_log(message, **fields))
        else:
            logger.info(structured_log(message, **fields))

    return log_fn
