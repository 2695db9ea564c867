import logging
import os
from logging.handlers import RotatingFileHandler

DEFAULT_LOG_BACKUP_COUNT = 10
DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_NOISY_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "web3",
    "httpx",
    "httpcore",
    "aiohttp.access",
)

_RPC_NOISE_SUBSTR = "Making request HTTP"


class _RpcNoiseFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except Exception:
            return True
        return _RPC_NOISE_SUBSTR not in message


_rpc_noise_filter = _RpcNoiseFilter()


def quiet_library_loggers(level: int = logging.WARNING) -> None:
    for name in _NOISY_LOGGERS:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        logger.addFilter(_rpc_noise_filter)


def configure_logging(log_dir, *, level="INFO", retention_bytes=50 * 1024 * 1024):
    """Console plus size-rotated file logging for the oracle process."""
    formatter = logging.Formatter(DEFAULT_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root = logging.getLogger()
    root.setLevel(level.upper() if isinstance(level, str) else level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, "oracle.log"),
            maxBytes=retention_bytes,
            backupCount=DEFAULT_LOG_BACKUP_COUNT,
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    quiet_library_loggers()
    return root
