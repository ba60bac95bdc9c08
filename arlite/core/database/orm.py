"""
Record base class and lifecycle controller.

Columns are declared as Field descriptors on the class body; the DbRecordMeta
metaclass harvests them into an EntityDescriptor and applies class keywords:

    class Topic(Record, serialize={"content": None}):
        title = StringField()
        approved = IntField(default=1)

    class Firm(Record, protected=["rating"], table="companies"):
        ...

Instances move NEW -> PERSISTED -> DESTROYED. Destroyed records are frozen.
"""
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar, Union

from loguru import logger

from ..config import RecordSettings, config
from ..events import ObserverEvent
from . import serialization
from .associations import Association, HasMany
from .attributes import AttributeStore
from .coercion import coerce, compose_multiparameter, extract_multiparameter, is_blank, query_value
from .errors import (
    AttributeAssignmentError,
    ConfigurationError,
    FrozenRecordError,
    MultiparameterAssignmentErrors,
    RecordNotFoundError,
    RecordStateError,
)
from .inflector import table_name_for
from .schema import EntityDescriptor, Field, TableRef
from .store import Condition, RecordStore, matches

T = TypeVar('T', bound='Record')

LIFECYCLE_EVENTS = ("after_create", "after_update", "after_destroy")


# --- Metaclass ---

class DbRecordMeta(type):
    """Builds the EntityDescriptor and exposes class-level schema attributes."""

    def __new__(mcs, name, bases, namespace, table=None, primary_key=None, inheritance_column=None,
                protected=None, accessible=None, serialize=None, **kwargs):
        # Descriptor first, so an invalid declaration never creates the class
        parent = next((b._descriptor for b in bases if isinstance(b, DbRecordMeta)), None)
        descriptor = EntityDescriptor(name, parent)

        # 1. Harvest fields
        own_columns = []
        for key, value in namespace.items():
            if isinstance(value, Field):
                if value.name is None:
                    value.name = key
                descriptor.add_column(value)
                own_columns.append(value.name)

        # 2. Keyword overrides
        descriptor.table_name_override = table
        descriptor.primary_key_override = primary_key
        descriptor.inheritance_column_override = inheritance_column
        if protected:
            descriptor.declare_protected(protected)
        if accessible:
            descriptor.declare_accessible(accessible)
        for column, constraint in (serialize or {}).items():
            serialization.register_serialized_column(descriptor, column, constraint)

        new_class = super().__new__(mcs, name, bases, namespace, **kwargs)
        new_class._descriptor = descriptor
        for event in LIFECYCLE_EVENTS:
            setattr(new_class, event, ObserverEvent(f"{event}-{name}"))

        # 3. Predicate accessors
        for column in own_columns:
            predicate = f"is_{column}"
            if not hasattr(new_class, predicate):
                setattr(new_class, predicate, property(lambda self, n=column: self.query_attribute(n)))

        return new_class

    def __init__(cls, name, bases, namespace, **kwargs):
        super().__init__(name, bases, namespace)

    @property
    def descriptor(cls) -> EntityDescriptor:
        return cls._descriptor

    @property
    def table_name(cls) -> str:
        derived = table_name_for(cls.base_class().__name__, cls.settings())
        return cls._descriptor.table_name(derived)

    @table_name.setter
    def table_name(cls, value):
        cls.set_table_name(value)

    @property
    def primary_key(cls) -> str:
        return cls._descriptor.primary_key

    @primary_key.setter
    def primary_key(cls, value):
        cls.set_primary_key(value)

    @property
    def inheritance_column(cls) -> str:
        return cls._descriptor.inheritance_column

    @inheritance_column.setter
    def inheritance_column(cls, value):
        cls.set_inheritance_column(value)

    @property
    def protected_attributes(cls) -> Optional[List[str]]:
        return cls._descriptor.protected_attributes

    @property
    def accessible_attributes(cls) -> Optional[List[str]]:
        return cls._descriptor.accessible_attributes

    @property
    def column_names(cls) -> List[str]:
        return cls._descriptor.column_names


# --- Record ---

class Record(metaclass=DbRecordMeta):
    _store: Optional[RecordStore] = None

    def __init__(self, attributes: Optional[Dict[str, Any]] = None, **kwargs):
        self._init_state()
        self._attributes.materialize_defaults()
        if self._descriptor.uses_inheritance:
            self._attributes.write(self._descriptor.inheritance_column, type(self).__name__)
        self._attributes.snapshot()

        merged = dict(attributes or {})
        merged.update(kwargs)
        if merged:
            self.assign_attributes(merged)

    def _init_state(self):
        self._attributes = AttributeStore(self._descriptor, self.settings)
        self._id = None
        self._new_record = True
        self._destroyed = False
        self._association_cache: Dict[str, Any] = {}
        self.on_change = ObserverEvent(f"Change-{type(self).__name__}")
        self.on_destroy = ObserverEvent(f"Destroy-{type(self).__name__}")

    # --- Class configuration ---

    @classmethod
    def settings(cls) -> RecordSettings:
        return config.data.records

    @classmethod
    def use_store(cls, store: Optional[RecordStore]):
        """Bind a record store to this class and its subclasses; None unbinds."""
        if store is None and cls is not Record:
            # fall back to the parent's binding
            if "_store" in vars(cls):
                delattr(cls, "_store")
            return
        cls._store = store

    @classmethod
    def store(cls) -> RecordStore:
        if cls._store is None:
            raise ConfigurationError(f"No record store bound to {cls.__name__}; call use_store() first")
        return cls._store

    @classmethod
    def base_class(cls) -> Type['Record']:
        """The class directly below Record; subclasses share its table."""
        for klass in cls.__mro__:
            if Record in klass.__bases__:
                return klass
        return cls

    @classmethod
    def descendants(cls) -> List[Type['Record']]:
        result = []
        for sub in cls.__subclasses__():
            result.append(sub)
            result.extend(sub.descendants())
        return result

    @classmethod
    def model_named(cls, name: str) -> Optional[Type['Record']]:
        if cls.__name__ == name:
            return cls
        found = [klass for klass in cls.descendants() if klass.__name__ == name]
        return found[-1] if found else None

    @classmethod
    def set_table_name(cls, value):
        """`value` is a name or a callable receiving the derived name."""
        cls._descriptor.table_name_override = value

    @classmethod
    def set_primary_key(cls, value):
        """`value` is a name or a callable receiving the original ("id")."""
        cls._descriptor.primary_key_override = value

    @classmethod
    def set_inheritance_column(cls, value):
        cls._descriptor.inheritance_column_override = value

    @classmethod
    def attr_protected(cls, *names: str):
        cls._descriptor.declare_protected(names)
        cls._refresh_descendant_protection()

    @classmethod
    def attr_accessible(cls, *names: str):
        cls._descriptor.declare_accessible(names)
        cls._refresh_descendant_protection()

    @classmethod
    def _refresh_descendant_protection(cls):
        for klass in cls.descendants():
            klass._descriptor.refresh_protection()

    @classmethod
    def serialize(cls, column: str, constraint: Optional[type] = None):
        serialization.register_serialized_column(cls._descriptor, column, constraint)

    @classmethod
    def unserialize(cls, column: str):
        serialization.unregister_serialized_column(cls._descriptor, column)

    @classmethod
    def table_ref(cls) -> TableRef:
        return TableRef(cls.table_name, cls.primary_key)

    @classmethod
    def associations(cls) -> Dict[str, Association]:
        found: Dict[str, Association] = {}
        for klass in reversed(cls.__mro__):
            for name, value in vars(klass).items():
                if isinstance(value, Association):
                    found[name] = value
        return found

    # --- Identity & state ---

    @property
    def id(self):
        return self._id

    @id.setter
    def id(self, value):
        self._check_not_frozen(f"assign {type(self).primary_key} of")
        self._id = value

    @property
    def new_record(self) -> bool:
        return self._new_record

    @property
    def persisted(self) -> bool:
        return not self._new_record and not self._destroyed

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def frozen(self) -> bool:
        return self._attributes.frozen

    def _check_not_frozen(self, action: str):
        if self.frozen:
            raise FrozenRecordError(f"can't {action} frozen {type(self).__name__}")

    def _emit_lifecycle(self, event_name: str):
        # most derived class first
        for klass in type(self).__mro__:
            event = vars(klass).get(event_name)
            if isinstance(event, ObserverEvent):
                event.emit(self)

    # --- Attribute access ---

    def read_attribute(self, name: str) -> Any:
        name = str(name)
        if name == type(self).primary_key:
            return self._id
        return self._attributes.read(name)

    def write_attribute(self, name: str, value: Any):
        """Low-level write: coerces known columns, accepts unknown names."""
        name = str(name)
        if name == type(self).primary_key:
            self._check_not_frozen(f"assign {name} of")
            self._id = value
            return
        if self._attributes.write(name, value):
            self.on_change.emit(self, name, self._attributes.raw(name))

    def __getitem__(self, name: str) -> Any:
        return self.read_attribute(name)

    def __setitem__(self, name: str, value: Any):
        self.write_attribute(name, value)

    def query_attribute(self, name: str) -> bool:
        return query_value(self._descriptor.column(str(name)), self.read_attribute(name))

    def has_attribute(self, name: str) -> bool:
        name = str(name)
        return name == type(self).primary_key or self._attributes.has_attribute(name)

    def attribute_present(self, name: str) -> bool:
        value = self.read_attribute(name)
        if is_blank(value):
            return False
        if hasattr(value, "__len__"):
            return len(value) > 0
        return True

    def attribute_names(self) -> List[str]:
        return sorted([type(self).primary_key] + self._attributes.names())

    @property
    def attributes(self) -> Dict[str, Any]:
        values = {type(self).primary_key: self._id}
        values.update(self._attributes.values())
        return values

    @attributes.setter
    def attributes(self, pairs: Dict[str, Any]):
        self.assign_attributes(pairs)

    @property
    def changed(self) -> List[str]:
        return self._attributes.changed()

    def assign_attributes(self, pairs: Optional[Dict[str, Any]]):
        """Mass assignment: protection filter, then plain keys, then multiparameter keys."""
        if not pairs:
            return
        settings = self.settings()
        permitted = self._descriptor.policy().permit(dict(pairs), strict=settings.strict_mass_assignment)
        plain, fragments = extract_multiparameter(permitted)

        associations = type(self).associations()
        for key, value in plain.items():
            if key in self._descriptor.columns:
                self.write_attribute(key, value)
            elif key in associations:
                setattr(self, key, value)
            else:
                logger.debug(f"{type(self).__name__}: ignoring unknown attribute '{key}'")

        errors: List[AttributeAssignmentError] = []
        for name, fragment in fragments.items():
            column = self._descriptor.column(name)
            if column is None:
                logger.debug(f"{type(self).__name__}: ignoring unknown multiparameter attribute '{name}'")
                continue
            try:
                self.write_attribute(name, compose_multiparameter(column, fragment, settings))
            except AttributeAssignmentError as e:
                errors.append(e)
        if errors:
            raise MultiparameterAssignmentErrors(errors)

    # --- Store conversion ---

    @classmethod
    def _to_store(cls, values: Dict[str, Any]) -> Dict[str, Any]:
        descriptor = cls._descriptor
        return {
            name: descriptor.columns[name].to_store(value, serialized=name in descriptor.serialized)
            for name, value in values.items()
        }

    @classmethod
    def _from_store(cls, row: Dict[str, Any]) -> Dict[str, Any]:
        pk = cls.primary_key
        values = {}
        for name, value in row.items():
            if name == pk:
                continue
            column = cls._descriptor.column(name)
            values[name] = column.from_store(value) if column is not None else value
        return values

    @classmethod
    def _instantiate_from_data(cls: Type[T], data: Dict[str, Any]) -> T:
        target_cls = cls
        descriptor = cls._descriptor
        if descriptor.uses_inheritance and data.get(descriptor.inheritance_column):
            type_name = data[descriptor.inheritance_column]
            target_cls = cls.base_class().model_named(type_name)
            if target_cls is None:
                logger.warning(f"Unknown {descriptor.inheritance_column} '{type_name}' for {cls.__name__}; loading as {cls.__name__}")
                target_cls = cls

        obj = target_cls.__new__(target_cls)
        obj._init_state()
        obj._load_row(data)
        return obj

    def _load_row(self, row: Dict[str, Any]):
        self._attributes.replace(self._from_store(row))
        self._id = row.get(type(self).primary_key)
        self._new_record = False

    # --- Lifecycle ---

    def save(self) -> bool:
        self._check_not_frozen("save")
        if self._new_record:
            self.create_record()
        else:
            self.update_record()
        return True

    def create_record(self):
        self._check_not_frozen("create")
        if not self._new_record:
            raise RecordStateError(f"{type(self).__name__} {self._id!r} is already persisted")

        data = self._to_store(self._attributes.known_values())
        if self._id is not None:
            data[type(self).primary_key] = self._id
        identity = self.store().insert(self.table_ref(), data)

        self._id = identity
        self._new_record = False
        self._attributes.snapshot()
        logger.debug(f"Created {type(self).__name__} {identity!r}")

        for name, association in type(self).associations().items():
            if isinstance(association, HasMany) and name in self._association_cache:
                self._association_cache[name].save_pending()
        self._emit_lifecycle("after_create")
        return identity

    def update_record(self) -> int:
        self._check_not_frozen("update")
        if self._new_record:
            raise RecordStateError(f"{type(self).__name__} has not been created yet")

        changed = self._attributes.changed()
        if not changed:
            return 0
        data = self._to_store(self._attributes.known_values(changed))
        count = self.store().update(self.table_ref(), self._id, data)
        self._attributes.snapshot()
        logger.debug(f"Updated {type(self).__name__} {self._id!r}: {changed}")
        self._emit_lifecycle("after_update")
        return count

    def destroy(self: T) -> T:
        if self._destroyed:
            return self
        if not self._new_record:
            for name, association in type(self).associations().items():
                if isinstance(association, HasMany) and association.dependent:
                    getattr(self, name).destroy_dependents()
            self.store().delete(self.table_ref(), self._id)
            logger.debug(f"Destroyed {type(self).__name__} {self._id!r}")

        was_persisted = not self._new_record
        self._destroyed = True
        self._attributes.freeze()
        self.on_destroy.emit(self)
        if was_persisted:
            self._emit_lifecycle("after_destroy")
        return self

    def reload(self: T) -> T:
        self._check_not_frozen("reload")
        if self._new_record:
            raise RecordStateError(f"Can't reload a new {type(self).__name__}")
        row = self.store().find(self.table_ref(), self._id)
        if row is None:
            raise RecordNotFoundError(type(self).__name__, self._id)
        self._load_row(row)
        self._association_cache.clear()
        return self

    def clone(self: T) -> T:
        """New-record copy with independently owned attribute values."""
        cls = type(self)
        cloned = cls.__new__(cls)
        cloned._init_state()
        cloned._attributes.replace(self._attributes.copy_values())
        return cloned

    def update_attribute(self, name: str, value: Any) -> bool:
        self.write_attribute(name, value)
        return self.save()

    def update_attributes(self, pairs: Dict[str, Any]) -> bool:
        self.assign_attributes(pairs)
        return self.save()

    def increment(self: T, name: str, by: int = 1) -> T:
        self.write_attribute(name, (self.read_attribute(name) or 0) + by)
        return self

    def decrement(self: T, name: str, by: int = 1) -> T:
        return self.increment(name, -by)

    def toggle(self: T, name: str) -> T:
        self.write_attribute(name, not self.query_attribute(name))
        return self

    def increment_and_save(self, name: str, by: int = 1) -> bool:
        return self.increment(name, by).save()

    def decrement_and_save(self, name: str, by: int = 1) -> bool:
        return self.decrement(name, by).save()

    def toggle_and_save(self, name: str) -> bool:
        return self.toggle(name).save()

    def clear_association_cache(self):
        # New records keep pending association members
        if not self._new_record:
            self._association_cache.clear()

    # --- Class-level queries ---

    @classmethod
    def _type_condition(cls) -> Optional[Dict[str, Any]]:
        descriptor = cls._descriptor
        if not descriptor.uses_inheritance or cls is cls.base_class():
            return None
        names = [cls.__name__] + [klass.__name__ for klass in cls.descendants()]
        return {descriptor.inheritance_column: {"$in": names}}

    @classmethod
    def _scoped(cls, condition: Condition) -> Condition:
        type_condition = cls._type_condition()
        if type_condition is None:
            return condition
        if not condition:
            return type_condition
        if callable(condition):
            return lambda row: condition(row) and matches(row, type_condition)
        return {"$and": [condition, type_condition]}

    @classmethod
    def _find_one(cls: Type[T], identity: Any) -> T:
        row = cls.store().find(cls.table_ref(), identity)
        if row is None or not matches(row, cls._type_condition()):
            raise RecordNotFoundError(cls.__name__, identity)
        return cls._instantiate_from_data(row)

    @classmethod
    def find(cls: Type[T], *ids: Any) -> Union[T, List[T]]:
        """find(1) -> record; find(1, 2) or find([1, 2]) -> list. Missing ids raise."""
        if not ids:
            raise RecordNotFoundError(cls.__name__, None, f"Couldn't find {cls.__name__} without an ID")
        if len(ids) == 1 and not isinstance(ids[0], (list, tuple, set)):
            return cls._find_one(ids[0])
        wanted = list(ids[0]) if len(ids) == 1 else list(ids)
        return [cls._find_one(identity) for identity in wanted]

    @classmethod
    def find_all(cls: Type[T], condition: Condition = None, order: Optional[str] = None,
                 limit: Optional[int] = None) -> List[T]:
        rows = cls.store().find_all(cls.table_ref(), cls._scoped(condition), order=order, limit=limit)
        return [cls._instantiate_from_data(row) for row in rows]

    @classmethod
    def find_first(cls: Type[T], condition: Condition = None, order: Optional[str] = None) -> Optional[T]:
        found = cls.find_all(condition, order=order, limit=1)
        return found[0] if found else None

    @classmethod
    def exists(cls, identity: Any) -> bool:
        try:
            cls._find_one(identity)
        except RecordNotFoundError:
            return False
        return True

    @classmethod
    def count(cls, condition: Condition = None) -> int:
        return cls.store().count(cls.table_ref(), cls._scoped(condition))

    @classmethod
    def count_by_query(cls, query: List[Dict[str, Any]]) -> int:
        """Raw aggregate escape hatch (Mongo-style pipeline)."""
        pipeline = list(query)
        type_condition = cls._type_condition()
        if type_condition is not None:
            pipeline.insert(0, {"$match": type_condition})
        return cls.store().count_by_query(cls.table_ref(), pipeline)

    # --- Class-level writes ---

    @classmethod
    def create(cls: Type[T], attributes: Union[Dict[str, Any], Iterable[Dict[str, Any]], None] = None,
               **kwargs) -> Union[T, List[T]]:
        if isinstance(attributes, (list, tuple)):
            return [cls.create(item, **kwargs) for item in attributes]
        obj = cls(attributes, **kwargs)
        obj.save()
        return obj

    @classmethod
    def update_by_id(cls: Type[T], identity: Any, attributes: Any) -> Union[T, List[T]]:
        if isinstance(identity, (list, tuple)):
            return [cls.update_by_id(i, a) for i, a in zip(identity, attributes)]
        obj = cls.find(identity)
        obj.update_attributes(attributes)
        return obj

    @classmethod
    def _store_updates(cls, updates: Dict[str, Any]) -> Dict[str, Any]:
        settings = cls.settings()
        result = {}
        for name, value in updates.items():
            column = cls._descriptor.column(name)
            if column is not None:
                value = coerce(column, value, settings)
                value = column.to_store(value, serialized=name in cls._descriptor.serialized)
            result[name] = value
        return result

    @classmethod
    def update_all(cls, updates: Dict[str, Any], condition: Condition = None) -> int:
        count = cls.store().update_all(cls.table_ref(), cls._store_updates(updates), cls._scoped(condition))
        logger.debug(f"{cls.__name__}.update_all touched {count} row(s)")
        return count

    @classmethod
    def delete_by_id(cls, identity: Any) -> int:
        """Delete rows without loading them; no dependents are processed."""
        target = list(identity) if isinstance(identity, (list, tuple, set)) else identity
        if cls._type_condition() is not None:
            ids = target if isinstance(target, list) else [target]
            target = cls._scoped({cls.primary_key: {"$in": ids}})
        return cls.store().delete(cls.table_ref(), target)

    @classmethod
    def delete_all(cls, condition: Condition = None) -> int:
        count = cls.store().delete(cls.table_ref(), cls._scoped(condition) or {})
        logger.debug(f"{cls.__name__}.delete_all removed {count} row(s)")
        return count

    @classmethod
    def destroy_by_id(cls: Type[T], identity: Any) -> Union[T, List[T]]:
        """Load and destroy, so dependent associations are processed."""
        found = cls.find(identity)
        if isinstance(found, list):
            return [record.destroy() for record in found]
        return found.destroy()

    @classmethod
    def destroy_all(cls: Type[T], condition: Condition = None) -> List[T]:
        return [record.destroy() for record in cls.find_all(condition)]

    @classmethod
    def update_counters(cls, identity: Any, **counters: int) -> int:
        condition = cls._scoped({cls.primary_key: identity})
        return cls.store().increment_all(cls.table_ref(), counters, condition)

    @classmethod
    def increment_counter(cls, counter: str, identity: Any) -> int:
        return cls.update_counters(identity, **{counter: 1})

    @classmethod
    def decrement_counter(cls, counter: str, identity: Any) -> int:
        return cls.update_counters(identity, **{counter: -1})

    # --- Identity semantics ---

    def __eq__(self, other):
        if self is other:
            return True
        if not isinstance(other, Record) or self._new_record or other._new_record:
            return False
        return self.base_class() is other.base_class() and self._id == other._id

    def __hash__(self):
        if self._new_record:
            return id(self)
        return hash((self.base_class().__name__, self._id))

    def __repr__(self):
        values = ", ".join(f"{k}={v!r}" for k, v in self._attributes.values().items())
        return f"<{type(self).__name__} {type(self).primary_key}={self._id!r} {values}>"
