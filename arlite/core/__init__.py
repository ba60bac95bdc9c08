"""
arlite core - configuration, logging and observer events shared by the
record layer.

Usage:
    from arlite.core.config import config
    config.update("records", "default_timezone", "utc")
"""
from .config import ConfigManager, AppConfig, RecordSettings, MongoSettings, GeneralSettings, config
from .events import ObserverEvent
from .logging import setup_logging
