import logging
import os
import structlog
import sys
from pathlib import Path
from dotenv import load_dotenv

# Request-level chatter; the fetcher logs one event per strategy attempt instead.
QUIET_LOGGERS = ("httpx", "httpcore")
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def _renderer(console: bool):
    if console:
        return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    return structlog.processors.JSONRenderer(ensure_ascii=False)


def setup_logging(console: bool | None = None):
    """Route structlog through stdlib logging.

    The service logs JSON lines. Scripts pass ``console=True`` (or set
    ``LOG_FORMAT=console``) for readable output.
    """
    load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")
    log_level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    error_log_path = os.getenv("LOG_ERROR_FILE", "").strip()
    if console is None:
        console = os.getenv("LOG_FORMAT", "json").strip().lower() == "console"

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG)
    formatter = logging.Formatter("%(message)s")

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if error_log_path:
        Path(error_log_path).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(error_log_path, encoding="utf-8")
        file_handler.setLevel(logging.ERROR)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _renderer(console),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    for name in SERVER_LOGGERS:
        logging.getLogger(name).setLevel(log_level)
