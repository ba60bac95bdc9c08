from typing import Any, Literal, Optional
import json
import os
from pydantic import BaseModel, Field
from loguru import logger
from .events import ObserverEvent

# --- Settings Models ---
class RecordSettings(BaseModel):
    default_timezone: Literal["utc", "local"] = "local"
    pluralize_table_names: bool = True
    table_name_prefix: str = ""
    table_name_suffix: str = ""
    strict_mass_assignment: bool = False  # raise instead of dropping protected keys

class MongoSettings(BaseModel):
    host: str = 'localhost'
    port: int = 27017
    database_name: str = "arlite"

class GeneralSettings(BaseModel):
    debug_mode: bool = True
    log_dir: Optional[str] = None

class AppConfig(BaseModel):
    model_config = {"validate_assignment": True}

    general: GeneralSettings = Field(default_factory=GeneralSettings)
    records: RecordSettings = Field(default_factory=RecordSettings)
    mongo: MongoSettings = Field(default_factory=MongoSettings)

# --- Manager ---
class ConfigManager:
    """
    Manages configuration with optional persistence and reactivity.

    Without a filepath the configuration lives in memory only; this is how the
    process-wide `config` instance is built.
    """
    def __init__(self, filepath: Optional[str] = None):
        self.filepath = filepath
        self._data = AppConfig()
        self.on_changed = ObserverEvent("ConfigChanged")
        if self.filepath:
            self._load()

    @property
    def data(self) -> AppConfig:
        return self._data

    def update(self, section: str, key: str, value: Any):
        """Update a setting, validate via Pydantic, autosave, and emit change event."""
        if not hasattr(self._data, section):
            raise ValueError(f"Invalid section: {section}")

        section_obj = getattr(self._data, section)
        if key not in type(section_obj).model_fields:
            raise ValueError(f"Invalid key: {key} in section {section}")

        validated = section_obj.model_validate({**section_obj.model_dump(), key: value})
        setattr(self._data, section, validated)
        if self.filepath:
            self._save()
        self.on_changed.emit(section, key, getattr(validated, key))

    def get(self, section: str, key: str) -> Any:
        section_obj = getattr(self._data, section)
        return getattr(section_obj, key)

    def reset(self):
        """Restore defaults without touching the file."""
        self._data = AppConfig()

    def _load(self):
        """Load settings from JSON or TOML file if present; otherwise keep defaults."""
        if os.path.isfile(self.filepath):
            try:
                if self.filepath.endswith('.toml'):
                    import tomllib
                    with open(self.filepath, "rb") as f:
                        raw = tomllib.load(f)
                else:
                    with open(self.filepath, "r", encoding="utf-8") as f:
                        raw = json.load(f)
                self._data = AppConfig.model_validate(raw)
            except Exception as e:
                logger.error(f"Failed to load config from {self.filepath}: {e}")
                self._save()
        else:
            self._save()

    def _save(self):
        """Persist current config to JSON file."""
        if self.filepath.endswith('.toml'):
            logger.warning(f"Not writing TOML config {self.filepath}; TOML files are read-only")
            return
        try:
            dirname = os.path.dirname(self.filepath)
            if dirname:
                os.makedirs(dirname, exist_ok=True)
            with open(self.filepath, "w", encoding="utf-8") as f:
                json.dump(self._data.model_dump(), f, indent=4)
        except OSError as e:
            logger.error(f"Failed to save config to {self.filepath}: {e}")


# Process-wide default; record classes read `config.data.records`.
config = ConfigManager()
