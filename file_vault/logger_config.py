import json
import logging
import platform
import socket
import sys
from datetime import datetime, timezone
from pathlib import Path

from logzio.handler import LogzioHandler

from file_vault import config


class StructuredMessage:
    def __init__(self, message, **kwargs):
        self.message = message
        self.kwargs = kwargs

    def __str__(self):
        if not self.kwargs:
            return '%s' % (self.message)
        fields = ' '.join(f"{k}={v}" for k, v in self.kwargs.items())
        return '%s [%s]' % (self.message, fields)


class StructuredJsonFormatter(logging.Formatter):
    def __init__(self):
        super().__init__()
        self.hostname = socket.gethostname()

    def format(self, record):
        if isinstance(record.msg, StructuredMessage):
            message = record.msg.message
            extra = record.msg.kwargs
        else:
            message = record.getMessage()
            extra = {}

        log_data = {
            'message': f"[file-vault] {message}",
            'level': record.levelname,
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'logger': record.name,
            'environment': config.APP_ENV,
            'application': 'file-vault',
            'hostname': self.hostname,
            'platform': platform.platform(),
            'python_version': platform.python_version(),
            'function': record.funcName,
            'line_number': record.lineno,
            'filename': record.filename,
        }
        log_data.update(extra)

        return json.dumps(log_data, default=str)


def setup_logger():
    logger = logging.getLogger("file_vault")
    # Handlers are attached once per process; every module calls this on import
    if logger.handlers:
        return logger
    logger.setLevel(logging.DEBUG)

    logs_dir = Path(config.LOGS_DIR)
    logs_dir.mkdir(exist_ok=True, parents=True)

    file_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
    )
    console_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s'
    )

    # File handler (for detailed logging)
    file_handler = logging.FileHandler(logs_dir / "file_vault.log")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(file_formatter)

    # Console handler (for basic logging)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(console_formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    if config.LOGZIO_TOKEN:
        logzio_handler = LogzioHandler(
            token=config.LOGZIO_TOKEN,
            url=config.LOGZIO_URL,
            logs_drain_timeout=5,
            network_timeout=10.0
        )
        logzio_handler.setLevel(logging.INFO)
        logzio_handler.setFormatter(StructuredJsonFormatter())
        logger.addHandler(logzio_handler)

    return logger


def structured_log(message, **kwargs):
    return StructuredMessage(message, **kwargs)
