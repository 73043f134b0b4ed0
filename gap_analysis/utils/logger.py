"""Centralized logging configuration.
Call setup_logging() once at application startup.
"""

from __future__ import annotations

import io
import logging
import sys

_QUIET_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "urllib3": logging.WARNING,
    "groq": logging.WARNING,
    "langchain": logging.INFO,
    "langchain_core": logging.INFO,
    "langchain_groq": logging.INFO,
    "langgraph": logging.INFO,
    "pymongo": logging.WARNING,
    "uvicorn": logging.INFO,
    "fastapi": logging.INFO,
}


def setup_logging(level: str = "INFO") -> None:
    """Configure pipeline logging on the root logger."""
    root = logging.getLogger()
    # Avoid duplicate handlers on repeated calls
    if root.handlers:
        return

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(numeric_level)

    # Wrap stdout so non-ASCII document text never breaks a console write
    buffer = getattr(sys.stdout, "buffer", None)
    if buffer is not None:
        stream = io.TextIOWrapper(buffer, encoding="utf-8", errors="replace", line_buffering=True)
    else:
        stream = sys.stdout
    handler = logging.StreamHandler(stream)
    handler.setLevel(numeric_level)

    formatter = logging.Formatter(
        fmt=(
            "\n%(asctime)s │ %(levelname)-8s │ %(name)s │ %(funcName)s:%(lineno)d\n"
            "  %(message)s"
        ),
        datefmt="%H:%M:%S",
    )
    handler.setFormatter(formatter)
    root.addHandler(handler)

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)
