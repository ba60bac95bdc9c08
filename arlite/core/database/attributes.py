"""
Per-instance attribute storage.

Holds the current typed value of every column, the dirty set, and a snapshot
of structured values so in-place mutations (appending to a list attribute)
are seen as changes on the next save.
"""
import copy
from typing import Any, Callable, Dict, List, Optional, Set

from ..config import RecordSettings
from .coercion import coerce
from .errors import FrozenRecordError
from .schema import EntityDescriptor
from .serialization import decode, is_encoded, is_structured

_MISSING = object()


class AttributeStore:
    def __init__(self, descriptor: EntityDescriptor, settings_provider: Callable[[], RecordSettings]):
        self.descriptor = descriptor
        self._settings = settings_provider
        self._values: Dict[str, Any] = {}
        self._unknown: Set[str] = set()
        self._dirty: Set[str] = set()
        self._original: Dict[str, Any] = {}
        self.frozen = False

    def materialize_defaults(self):
        settings = self._settings()
        for name, column in self.descriptor.columns.items():
            value = column.initial_value()
            self._values[name] = coerce(column, value, settings) if value is not None else None

    # --- Access ---

    def read(self, name: str) -> Any:
        value = self._values.get(name)
        if is_encoded(value):
            value = decode(value, self.descriptor.serialized.get(name), column=name)
            self._values[name] = value
            if name not in self._dirty:
                self._original[name] = copy.deepcopy(value)
        return value

    def write(self, name: str, value: Any) -> bool:
        """Coerce and store; returns True when the value changed."""
        if self.frozen:
            raise FrozenRecordError(f"can't modify frozen {self.descriptor.model_name}: '{name}'")
        column = self.descriptor.column(name)
        if column is not None:
            value = coerce(column, value, self._settings())
        else:
            self._unknown.add(name)

        old = self._values.get(name, _MISSING)
        changed = old is _MISSING or type(old) is not type(value) or old != value
        self._values[name] = value
        if changed:
            self._dirty.add(name)
        return changed

    def has_attribute(self, name: str) -> bool:
        return name in self._values

    def names(self) -> List[str]:
        return list(self._values)

    def values(self) -> Dict[str, Any]:
        return {name: self.read(name) for name in self._values}

    def raw(self, name: str) -> Any:
        """Stored value without decoding blobs."""
        return self._values.get(name)

    # --- Dirty tracking ---

    @property
    def dirty(self) -> Set[str]:
        return set(self._dirty)

    def changed(self) -> List[str]:
        result = [n for n in self._values if n in self._dirty]
        for name, original in self._original.items():
            if name in self._dirty or name not in self._values:
                continue
            current = self._values[name]
            if not is_encoded(current) and current != original:
                result.append(name)
        return [n for n in result if n not in self._unknown]

    def snapshot(self):
        self._dirty.clear()
        self._original = {
            name: copy.deepcopy(value)
            for name, value in self._values.items()
            if is_structured(value) and not is_encoded(value)
        }

    # --- Bulk state ---

    def replace(self, values: Dict[str, Any]):
        """Load a fresh attribute map from the store; no coercion, no dirty marks."""
        self._values = {name: None for name in self.descriptor.columns}
        self._values.update(values)
        self._unknown.clear()
        self.snapshot()

    def copy_values(self) -> Dict[str, Any]:
        return copy.deepcopy(self._values)

    def known_values(self, names: Optional[List[str]] = None) -> Dict[str, Any]:
        """Raw values of persistable columns, optionally limited to `names`."""
        wanted = names if names is not None else list(self._values)
        return {n: self._values[n] for n in wanted if n in self.descriptor.columns and n in self._values}

    def freeze(self):
        self.frozen = True
