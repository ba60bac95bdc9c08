"""
Schema descriptors.

`Field` subclasses are the column definitions: declared on a record class body,
they carry name, semantic type, default and nullability, act as the generated
getter/setter, and convert values to and from the store representation.
`EntityDescriptor` is the per-class metadata built by the record metaclass.
"""
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Type, Union

from .errors import ConfigurationError
from .serialization import encode, is_encoded, is_structured
from . import protection


class ColumnType(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    BINARY = "binary"
    SERIALIZED = "serialized"

    def __str__(self):
        return self.value


TEMPORAL_TYPES = (ColumnType.DATE, ColumnType.TIME, ColumnType.DATETIME)
NUMERIC_TYPES = (ColumnType.INTEGER, ColumnType.FLOAT, ColumnType.BOOLEAN)


class TableRef(NamedTuple):
    """What a record store needs to address a table."""
    name: str
    primary_key: str = "id"


# --- Field Descriptors ---

class Field:
    """Base class for all column fields."""
    column_type: ColumnType = ColumnType.STRING

    def __init__(self, name: str = None, default: Any = None, nullable: bool = True):
        self.name = name  # Set by metaclass
        self.default = default
        self.nullable = nullable

    @property
    def type(self) -> ColumnType:
        return self.column_type

    def __set_name__(self, owner, name):
        if self.name is None:
            self.name = name

    def __get__(self, instance, owner):
        if instance is None:
            return self
        return instance.read_attribute(self.name)

    def __set__(self, instance, value):
        instance.write_attribute(self.name, value)

    def initial_value(self) -> Any:
        return self.default() if callable(self.default) else self.default

    def to_store(self, value: Any, serialized: bool = False) -> Any:
        if value is None or is_encoded(value):
            return value
        if serialized or is_structured(value):
            return encode(value)
        return value

    def from_store(self, value: Any) -> Any:
        return value

    def __repr__(self):
        return f"<{type(self).__name__} {self.name}:{self.column_type}>"


class StringField(Field):
    column_type = ColumnType.STRING


class IntField(Field):
    column_type = ColumnType.INTEGER


class FloatField(Field):
    column_type = ColumnType.FLOAT


class BoolField(Field):
    column_type = ColumnType.BOOLEAN


class DateField(Field):
    """Stored as a midnight datetime; BSON has no date-only type."""
    column_type = ColumnType.DATE

    def to_store(self, value: Any, serialized: bool = False) -> Any:
        if isinstance(value, date) and not isinstance(value, datetime):
            return datetime(value.year, value.month, value.day)
        return super().to_store(value, serialized)

    def from_store(self, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.date()
        return value


class DateTimeField(Field):
    column_type = ColumnType.DATETIME


class TimeField(Field):
    """Time of day anchored to the dummy date 2000-01-01."""
    column_type = ColumnType.TIME

    def to_store(self, value: Any, serialized: bool = False) -> Any:
        if isinstance(value, time):
            return datetime(2000, 1, 1, value.hour, value.minute, value.second,
                            value.microsecond, tzinfo=value.tzinfo)
        return super().to_store(value, serialized)


class BinaryField(Field):
    column_type = ColumnType.BINARY

    def to_store(self, value: Any, serialized: bool = False) -> Any:
        if isinstance(value, (bytes, bytearray)) and not serialized:
            return bytes(value)
        return super().to_store(value, serialized)


class SerializedField(Field):
    """Column whose value is always stored as an encoded blob."""
    column_type = ColumnType.SERIALIZED

    def __init__(self, constraint: Optional[Type] = None, **kwargs):
        super().__init__(**kwargs)
        self.constraint = constraint

    def to_store(self, value: Any, serialized: bool = True) -> Any:
        return super().to_store(value, serialized=True)


# --- Entity Descriptor ---

Override = Union[str, Callable[[str], str], None]


def _resolve(override: Override, original: str) -> str:
    if callable(override):
        return override(original)
    return override


class EntityDescriptor:
    """Static per-class metadata: columns, keys, protection lists, serialized columns."""

    DEFAULT_PRIMARY_KEY = "id"
    DEFAULT_INHERITANCE_COLUMN = "type"

    def __init__(self, model_name: str, parent: Optional['EntityDescriptor'] = None):
        self.model_name = model_name
        self.parent = parent
        self.columns: Dict[str, Field] = dict(parent.columns) if parent else {}
        self.serialized: Dict[str, Optional[Type]] = dict(parent.serialized) if parent else {}

        self.table_name_override: Override = None
        self.primary_key_override: Override = None
        self.inheritance_column_override: Override = None

        self.declared_protected: List[str] = []
        self.declared_accessible: List[str] = []
        self.protected_attributes: Optional[List[str]] = None
        self.accessible_attributes: Optional[List[str]] = None
        self.refresh_protection()

    def add_column(self, field: Field):
        self.columns[field.name] = field
        if isinstance(field, SerializedField):
            self.serialized[field.name] = field.constraint

    def column(self, name: str) -> Optional[Field]:
        return self.columns.get(name)

    @property
    def column_names(self) -> List[str]:
        return list(self.columns)

    # --- Overridable keys ---

    def _lookup(self, attr: str) -> Override:
        node = self
        while node is not None:
            value = getattr(node, attr)
            if value is not None:
                return value
            node = node.parent
        return None

    @property
    def primary_key(self) -> str:
        override = self._lookup("primary_key_override")
        return _resolve(override, self.DEFAULT_PRIMARY_KEY) if override else self.DEFAULT_PRIMARY_KEY

    @property
    def inheritance_column(self) -> str:
        override = self._lookup("inheritance_column_override")
        return _resolve(override, self.DEFAULT_INHERITANCE_COLUMN) if override else self.DEFAULT_INHERITANCE_COLUMN

    @property
    def uses_inheritance(self) -> bool:
        return self.inheritance_column in self.columns

    def table_name(self, derived: str) -> str:
        """`derived` is the inflected name; an override (value or callable) wins."""
        override = self._lookup("table_name_override")
        return _resolve(override, derived) if override else derived

    # --- Mass-assignment lists ---

    def declare_protected(self, names):
        self._declare("declared_protected", names)

    def declare_accessible(self, names):
        self._declare("declared_accessible", names)

    def _declare(self, attr: str, names):
        previous = getattr(self, attr)
        setattr(self, attr, protection.effective_list(previous, names))
        try:
            self.refresh_protection()
        except ConfigurationError:
            setattr(self, attr, previous)
            self.refresh_protection()
            raise

    def refresh_protection(self):
        inherited_protected = self.parent.protected_attributes if self.parent else None
        inherited_accessible = self.parent.accessible_attributes if self.parent else None
        self.protected_attributes = protection.combine(inherited_protected, self.declared_protected)
        self.accessible_attributes = protection.combine(inherited_accessible, self.declared_accessible)
        protection.check_exclusive(self.model_name, self.protected_attributes, self.accessible_attributes)

    def always_protected(self) -> List[str]:
        return [self.primary_key, self.inheritance_column]

    def policy(self) -> 'protection.MassAssignmentPolicy':
        return protection.MassAssignmentPolicy(
            protected=self.protected_attributes,
            accessible=self.accessible_attributes,
            always_protected=self.always_protected(),
            model_name=self.model_name,
        )

    def __repr__(self):
        return f"<EntityDescriptor {self.model_name} columns={self.column_names}>"
