# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.01
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/system/logging_setup.py

import sys
from typing import Optional

from loguru import logger

from cloudsave.config.manager import UserConfig, load_merged_user_config
from cloudsave.system.exceptions import ConfigError

LOG_FILE_NAME = "cloudsave.log"
CONSOLE_FORMAT = "<level>{level}</level>: {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logging(config: Optional[UserConfig] = None, debug: bool = False) -> None:
    """Route loguru output for a CLI run.

    stderr gets WARNING and up (everything with ``debug``). When the user
    config names a ``local_log`` directory, a rotating DEBUG log is kept
    there as well. A log directory that cannot be used is reported and
    otherwise ignored.
    """
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if debug else "WARNING",
               format=CONSOLE_FORMAT, colorize=True)

    try:
        log_dir = (config or load_merged_user_config()).local_log
        if log_dir is None:
            return
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / LOG_FILE_NAME
        logger.add(log_file, level="DEBUG", format=FILE_FORMAT,
                   rotation="10 MB", retention="30 days", compression="gz")
    except (OSError, ConfigError) as e:
        logger.warning(f"Failed to setup file logging: {e}")
        return
    logger.debug(f"File logging enabled: {log_file}")
