"""Structured colored logging for the pipeline, the extraction agent and the job server.

Messages carry their own ANSI status glyph colors (``f"{GREEN}✓{RESET} ..."``).
When stderr is not a terminal (server logs, CI) the codes are stripped.
"""

import logging
import re
import sys
from datetime import datetime

GREEN = "\x1b[32m"
RED = "\x1b[31m"
YELLOW = "\x1b[33m"
DIM = "\x1b[2m"
BOLD = "\x1b[1m"
RESET = "\x1b[0m"

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


class PipelineFormatter(logging.Formatter):
    LEVEL_COLORS = {
        logging.DEBUG: DIM,
        logging.INFO: "",
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: RED + BOLD,
    }

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.now().strftime("%H:%M:%S")
        if not self.use_color:
            return f"[{ts}] {record.levelname:<7} {_ANSI_RE.sub('', record.getMessage())}"
        color = self.LEVEL_COLORS.get(record.levelno, "")
        return f"{DIM}[{ts}]{RESET} {color}{record.getMessage()}{RESET}"


def get_logger(name: str = "provider_scout", level: str | None = None) -> logging.Logger:
    """Return the shared logger, attaching the formatter once.

    The level defaults to ``settings.log_level``.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(PipelineFormatter(use_color=sys.stderr.isatty()))
        logger.addHandler(handler)
    if level is None:
        from provider_scout.config import settings

        level = settings.log_level
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger
