import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from juku_admin.config import settings

FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATEFMT = "%Y-%m-%d %H:%M:%S"

# 外部ライブラリのログは WARNING 以上のみ
QUIET_LOGGERS = ("passlib", "multipart", "httpx")


def setup_logging():
    """
    Console + rotating file (<LOG_DIR>/juku_admin.log).
    Calling it twice does not attach duplicate handlers.
    """
    level = settings.LOG_LEVEL.upper()
    root = logging.getLogger()
    root.setLevel(level)

    if any(getattr(h, "_juku_admin", False) for h in root.handlers):
        return

    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(fmt=FORMAT, datefmt=DATEFMT)

    console = logging.StreamHandler()
    file_handler = RotatingFileHandler(
        log_dir / "juku_admin.log",
        maxBytes=5 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    for handler in (console, file_handler):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler._juku_admin = True
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
