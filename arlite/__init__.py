"""
arlite - ActiveRecord-style attribute coercion and mass-assignment engine.

Typed columns, protected/accessible mass assignment, multiparameter
date/time composition, serialized attributes and a record lifecycle over a
pluggable record store (in-memory or MongoDB).
"""

# Core systems
from arlite.core.config import ConfigManager, AppConfig, RecordSettings, MongoSettings, GeneralSettings, config
from arlite.core.events import ObserverEvent
from arlite.core.logging import setup_logging

# Database
from arlite.core.database.orm import Record, DbRecordMeta
from arlite.core.database.schema import (
    ColumnType,
    EntityDescriptor,
    Field,
    StringField,
    IntField,
    FloatField,
    BoolField,
    DateField,
    TimeField,
    DateTimeField,
    BinaryField,
    SerializedField,
)
from arlite.core.database.associations import BelongsTo, HasMany
from arlite.core.database.store import RecordStore, MemoryRecordStore
from arlite.core.database.manager import MongoManager, MongoRecordStore, db_manager
from arlite.core.database.errors import (
    RecordError,
    RecordNotFoundError,
    TypeCoercionError,
    AttributeAssignmentError,
    MultiparameterAssignmentErrors,
    SerializationTypeMismatch,
    FrozenRecordError,
    ProtectedAttributeError,
    RecordStateError,
    ConfigurationError,
)

__version__ = "0.1.0"

__all__ = [
    # Core
    "ConfigManager",
    "AppConfig",
    "RecordSettings",
    "MongoSettings",
    "GeneralSettings",
    "config",
    "ObserverEvent",
    "setup_logging",

    # Database
    "Record",
    "DbRecordMeta",
    "ColumnType",
    "EntityDescriptor",
    "Field",
    "StringField",
    "IntField",
    "FloatField",
    "BoolField",
    "DateField",
    "TimeField",
    "DateTimeField",
    "BinaryField",
    "SerializedField",
    "BelongsTo",
    "HasMany",
    "RecordStore",
    "MemoryRecordStore",
    "MongoManager",
    "MongoRecordStore",
    "db_manager",

    # Errors
    "RecordError",
    "RecordNotFoundError",
    "TypeCoercionError",
    "AttributeAssignmentError",
    "MultiparameterAssignmentErrors",
    "SerializationTypeMismatch",
    "FrozenRecordError",
    "ProtectedAttributeError",
    "RecordStateError",
    "ConfigurationError",
]
