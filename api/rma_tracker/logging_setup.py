# -*- coding: utf-8 -*-
from __future__ import annotations
import logging, logging.handlers
from pathlib import Path

LOG_NAME = "rma_tracker.log"


def _is_ours(h: logging.Handler) -> bool:
    return isinstance(h, logging.handlers.RotatingFileHandler) and getattr(h, "baseFilename", "").endswith(LOG_NAME)


def setup_logging(settings) -> Path:
    """Configure rotating file logging under LOG_DIR/rma_tracker.log plus console output."""
    log_dir = Path(settings.LOG_DIR).expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / LOG_NAME
    level = getattr(logging, str(settings.LOG_LEVEL).upper(), logging.INFO)

    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")
    handler = logging.handlers.RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=3, encoding="utf-8")
    handler.setFormatter(fmt)
    handler.setLevel(level)

    logger = logging.getLogger()  # root
    logger.setLevel(level)
    # avoid duplicate handlers when the app is built more than once
    if not any(_is_ours(h) for h in logger.handlers):
        logger.addHandler(handler)
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        console.setLevel(level)
        logger.addHandler(console)

    # uvicorn / fastapi keep their own handlers; route them to the file too
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi"):
        lg = logging.getLogger(name)
        lg.setLevel(level)
        if not any(_is_ours(h) for h in lg.handlers):
            lg.addHandler(handler)

    return log_path
