#!/usr/bin/env python3
"""
Logging Configuration for the Junos NETCONF client

Provides:
- Console and rotating file output for the standard library logger tree
- The NETCONF debug-log sink: an append-only, timestamped text file that
  records every RPC a session sends, independent of fake mode
"""

import logging
import logging.handlers
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

DIRECTORY_PERMISSION = 0o755


class NetconfFormatter(logging.Formatter):
    """Formatter with optional console colors"""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True, include_module: bool = True):
        """
        Initialize formatter

        Args:
            use_colors: Use ANSI color codes for console output
            include_module: Include module name in log output
        """
        self.use_colors = use_colors and sys.stderr.isatty()
        self.include_module = include_module

        if include_module:
            format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        else:
            format_str = "%(asctime)s - %(levelname)s - %(message)s"

        super().__init__(fmt=format_str, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record):
        formatted = super().format(record)
        if self.use_colors and record.levelname in self.COLORS:
            formatted = f"{self.COLORS[record.levelname]}{formatted}{self.RESET}"
        return formatted


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    console_colors: bool = True,
    include_modules: bool = True,
) -> Dict[str, logging.Handler]:
    """
    Configure the root logger

    Args:
        level: Log level name
        log_file: Optional path for a rotating log file
        console_colors: Use colors in console output
        include_modules: Include module names in log format

    Returns:
        Dictionary of configured handlers
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handlers = {}

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(
        NetconfFormatter(use_colors=console_colors, include_module=include_modules)
    )
    root_logger.addHandler(console_handler)
    handlers["console"] = console_handler

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(NetconfFormatter(use_colors=False, include_module=True))
        root_logger.addHandler(file_handler)
        handlers["file"] = file_handler

    logger = logging.getLogger("junos_netconf.logging")
    logger.info(f"Logging configured: level={level}, handlers={list(handlers.keys())}")

    return handlers


def append_lines(path: str, lines, file_permission: int = 0o644) -> None:
    """
    Append lines to a text file, one per line.

    Parent directories are created with a fixed 0o755 mode and a new file is
    created with `file_permission`.

    Raises:
        OSError: directory creation or write failed
    """
    file_path = Path(path)
    file_path.parent.mkdir(mode=DIRECTORY_PERMISSION, parents=True, exist_ok=True)
    fd = os.open(file_path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, file_permission)
    with os.fdopen(fd, "a") as f:
        for line in lines:
            f.write(line + "\n")


class NetconfDebugLog:
    """
    Append-only debug log of the RPC traffic of a session.

    Writing never raises: failures degrade to a warning on the module logger
    so a broken log path cannot abort a configuration transaction.
    """

    def __init__(self, path: Optional[str] = None, file_permission: int = 0o644):
        self.path = path or ""
        self.file_permission = file_permission
        self.logger = logging.getLogger(__name__)

    @property
    def enabled(self) -> bool:
        return bool(self.path)

    def write(self, message: str) -> None:
        if not self.enabled:
            return
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")
        try:
            append_lines(self.path, [f"{timestamp} {message}"], self.file_permission)
        except OSError as e:
            self.logger.warning(f"Failed to write netconf debug log {self.path}: {e}")

    def __call__(self, message: str) -> None:
        self.write(message)
