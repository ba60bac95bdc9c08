"""
Serialization adapter.

Structured attribute values are stored as opaque blobs: a pickle payload
wrapped in a BSON Binary with a user-defined subtype, so both the in-memory
store and MongoDB keep them apart from plain binary columns.

Blobs are trusted data: unpickling can build arbitrary objects, so only
point a record store at a database your own application writes. Decoding
refuses the shell and eval-style callables hostile payloads reach for,
which is not a sandbox.
"""
import io
import pickle
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional, Type

from bson import Binary, ObjectId

from .errors import SerializationTypeMismatch

SERIALIZED_SUBTYPE = 0x80

SCALAR_TYPES = (str, bytes, bytearray, bool, int, float, Decimal, date, datetime, time, ObjectId)

BLOCKED_MODULES = frozenset({"os", "posix", "nt", "subprocess", "sys", "shutil", "socket", "importlib", "runpy", "pty"})
BLOCKED_BUILTINS = frozenset({"eval", "exec", "compile", "open", "__import__", "getattr", "setattr", "delattr", "input", "breakpoint"})


class RecordUnpickler(pickle.Unpickler):
    def find_class(self, module, name):
        root = module.split(".")[0]
        if root in BLOCKED_MODULES or (root == "builtins" and name in BLOCKED_BUILTINS):
            raise pickle.UnpicklingError(f"refusing to load {module}.{name} from a serialized column")
        return super().find_class(module, name)


def is_structured(value: Any) -> bool:
    return value is not None and not isinstance(value, SCALAR_TYPES)


def is_encoded(value: Any) -> bool:
    return isinstance(value, Binary) and value.subtype == SERIALIZED_SUBTYPE


def encode(value: Any) -> Binary:
    return Binary(pickle.dumps(value), SERIALIZED_SUBTYPE)


def decode(blob: Any, constraint: Optional[Type] = None, column: str = "") -> Any:
    """Decode a stored blob; non-blob values pass through unchanged."""
    value = RecordUnpickler(io.BytesIO(bytes(blob))).load() if is_encoded(blob) else blob
    if constraint is not None and value is not None and not isinstance(value, constraint):
        raise SerializationTypeMismatch(
            f"{column} was supposed to be a {constraint.__name__}, but was a {type(value).__name__}"
        )
    return value


def register_serialized_column(descriptor, column: str, constraint: Optional[Type] = None):
    descriptor.serialized[str(column)] = constraint


def unregister_serialized_column(descriptor, column: str):
    descriptor.serialized.pop(str(column), None)
