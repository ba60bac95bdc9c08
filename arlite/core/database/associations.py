"""
Association descriptors with a per-instance cache.

BelongsTo reads a foreign key column of the owner; HasMany loads the records
whose foreign key points at the owner. Loaded targets are cached on the owner
until `clear_association_cache()` or `reload()`.
"""
from typing import Any, Iterator, List, Optional, Sequence, Type, Union

from loguru import logger

DEPENDENT_OPTIONS = (None, "destroy", "delete")


class Association:
    def __init__(self, target: Union[str, Type], foreign_key: Optional[str] = None):
        self._target = target
        self.foreign_key = foreign_key
        self.name: Optional[str] = None

    def __set_name__(self, owner, name):
        self.name = name

    def target(self, owner_cls) -> Type:
        if isinstance(self._target, str):
            # Late import to avoid circular dependency
            from .orm import Record
            resolved = Record.model_named(self._target)
            if resolved is None:
                raise NameError(f"Unknown record class '{self._target}' for association '{self.name}'")
            self._target = resolved
        return self._target


class BelongsTo(Association):
    """owner.<name> -> target record referenced by owner.<name>_id."""

    def __set_name__(self, owner, name):
        super().__set_name__(owner, name)
        if self.foreign_key is None:
            self.foreign_key = f"{name}_id"

    def __get__(self, instance, owner):
        if instance is None:
            return self
        cache = instance._association_cache
        if self.name not in cache:
            key = instance.read_attribute(self.foreign_key)
            record = None
            if key is not None:
                target = self.target(type(instance))
                record = target.find_first({target.primary_key: key})
            cache[self.name] = record
        return cache[self.name]

    def __set__(self, instance, value):
        key = getattr(value, "id", value)
        instance.write_attribute(self.foreign_key, key)
        if hasattr(value, "_descriptor"):
            instance._association_cache[self.name] = value
        else:
            instance._association_cache.pop(self.name, None)


class AssociationList(Sequence):
    """
    Records of a HasMany association.

    Members added to a new owner are held pending and saved when the owner is
    created.
    """
    def __init__(self, owner, association: 'HasMany'):
        self._owner = owner
        self._association = association
        self._records: Optional[List[Any]] = None
        self._pending: List[Any] = []

    def _target(self):
        return self._association.target(type(self._owner))

    def _load(self) -> List[Any]:
        if self._records is None:
            if self._owner.new_record:
                self._records = []
            else:
                fk = self._association.foreign_key
                self._records = self._target().find_all({fk: self._owner.id})
        return self._records + self._pending

    def __getitem__(self, index):
        return self._load()[index]

    def __len__(self):
        return len(self._load())

    def __iter__(self) -> Iterator[Any]:
        return iter(self._load())

    @property
    def pending(self) -> List[Any]:
        return list(self._pending)

    def add(self, *items):
        """Accepts records or lists of records."""
        self._owner._check_not_frozen("add to")
        for item in items:
            records = item if isinstance(item, (list, tuple)) else [item]
            for record in records:
                if self._owner.new_record:
                    if record not in self._pending:
                        self._pending.append(record)
                    continue
                record.write_attribute(self._association.foreign_key, self._owner.id)
                record.save()
                loaded = self._load()
                if record not in loaded:
                    self._records.append(record)
        return self

    def save_pending(self):
        if self._owner.new_record:
            return
        pending, self._pending = self._pending, []
        if self._records is None:
            self._records = []
        for record in pending:
            record.write_attribute(self._association.foreign_key, self._owner.id)
            record.save()
            self._records.append(record)

    def destroy_dependents(self):
        fk = self._association.foreign_key
        if self._association.dependent == "destroy":
            for record in list(self._target().find_all({fk: self._owner.id})):
                record.destroy()
        elif self._association.dependent == "delete":
            count = self._target().delete_all({fk: self._owner.id})
            logger.debug(f"Deleted {count} dependent {self._association.name} row(s)")
        self._records = []

    def __repr__(self):
        return f"<AssociationList {self._association.name} {self._load()!r}>"


class HasMany(Association):
    def __init__(self, target: Union[str, Type], foreign_key: str, dependent: Optional[str] = None):
        if dependent not in DEPENDENT_OPTIONS:
            raise ValueError(f"dependent must be one of {DEPENDENT_OPTIONS}, got {dependent!r}")
        super().__init__(target, foreign_key)
        self.dependent = dependent

    def __get__(self, instance, owner):
        if instance is None:
            return self
        cache = instance._association_cache
        if self.name not in cache:
            cache[self.name] = AssociationList(instance, self)
        return cache[self.name]

    def __set__(self, instance, value):
        raise AttributeError(f"Can't replace association '{self.name}'; use .add()")
