"""
Exception taxonomy for the record layer.

Coercion and mass-assignment failures surface to the immediate caller.
Store failures are not wrapped: whatever the store raises propagates as-is.
"""
from typing import Any, List, Optional


class RecordError(Exception):
    """Base class for all record layer errors."""


class RecordNotFoundError(RecordError):
    """Lookup by identity found nothing."""

    def __init__(self, model: str, identity: Any = None, message: Optional[str] = None):
        self.model = model
        self.identity = identity
        super().__init__(message or f"Couldn't find {model} with {identity!r}")


class TypeCoercionError(RecordError, TypeError):
    """A single value could not be converted to its column type."""

    def __init__(self, column: str, value: Any, column_type: Any, reason: str = ""):
        self.column = column
        self.value = value
        self.column_type = column_type
        detail = f": {reason}" if reason else ""
        super().__init__(f"Cannot coerce {value!r} to {column_type} for column '{column}'{detail}")


class AttributeAssignmentError(RecordError):
    """One multiparameter attribute failed to compose."""

    def __init__(self, message: str, exception: Optional[BaseException], attribute: str):
        super().__init__(message)
        self.exception = exception
        self.attribute = attribute


class MultiparameterAssignmentErrors(RecordError):
    """Carries every AttributeAssignmentError from one assignment batch."""

    def __init__(self, errors: List[AttributeAssignmentError]):
        self.errors = list(errors)
        names = ", ".join(e.attribute for e in self.errors)
        super().__init__(f"{len(self.errors)} error(s) on assignment of multiparameter attributes: {names}")


class SerializationTypeMismatch(RecordError):
    """A decoded blob is not an instance of the registered constraint."""


class FrozenRecordError(RecordError, TypeError):
    """Mutation attempted on a destroyed record."""


class ProtectedAttributeError(RecordError):
    """Mass assignment touched a protected key (strict mode only)."""

    def __init__(self, model: str, keys: List[str]):
        self.model = model
        self.keys = list(keys)
        super().__init__(f"Can't mass-assign protected attributes for {model}: {', '.join(self.keys)}")


class RecordStateError(RecordError):
    """Lifecycle operation not allowed in the record's current state."""


class ConfigurationError(RecordError):
    """Invalid record class declaration or missing store binding."""
