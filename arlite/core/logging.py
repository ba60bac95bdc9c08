import os
import sys
from typing import Optional

from loguru import logger

from .config import config

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def setup_logging(debug_mode: Optional[bool] = None, log_dir: Optional[str] = None):
    """
    Configures Loguru logger.

    Arguments left as None come from `config.data.general`. The record layer
    logs lifecycle steps and dropped mass-assignment keys at DEBUG, so
    `debug_mode=False` hides them on the console. The rotating file sink,
    added only when a log directory is known, always keeps DEBUG.
    """
    general = config.data.general
    if debug_mode is None:
        debug_mode = general.debug_mode
    if log_dir is None:
        log_dir = general.log_dir

    logger.remove()
    level = "DEBUG" if debug_mode else "INFO"
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        logger.add(os.path.join(log_dir, "arlite_{time}.log"), rotation="10 MB", retention="1 week", level="DEBUG")

    logger.info(f"Logging initialized at {level}.")
