"""
Type coercion engine.

Converts wire/string-form input into the typed value of a column, composes
multiparameter date/time fragments, and answers predicate queries.

All temporal values the engine parses or composes follow
`RecordSettings.default_timezone`: "local" yields naive datetimes, "utc"
yields datetimes aware of `timezone.utc`. Native datetimes handed in by the
caller are kept as given.
"""
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Tuple

from ..config import RecordSettings, config
from .errors import AttributeAssignmentError, TypeCoercionError
from .schema import ColumnType, Field, NUMERIC_TYPES, TEMPORAL_TYPES
from .serialization import is_encoded, is_structured

DUMMY_DATE = (2000, 1, 1)

TRUE_STRINGS = {"1", "t", "true", "y", "yes", "on"}
FALSE_STRINGS = {"0", "f", "false", "n", "no", "off"}

DATETIME_FORMATS = (
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%d %b %Y %H:%M:%S",
    "%d %b %Y",
)

TIME_FORMATS = (
    "%I:%M:%S%p",
    "%I:%M%p",
    "%I:%M:%S %p",
    "%I:%M %p",
    "%H:%M:%S",
    "%H:%M:%S.%f",
    "%H:%M",
)

MULTIPARAMETER_KEY = re.compile(r"^(?P<name>[^()]+)\((?P<position>\d+)(?P<code>[ifs]?)\)$")


def _settings(settings: Optional[RecordSettings]) -> RecordSettings:
    return settings if settings is not None else config.data.records


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def localize(value: datetime, settings: Optional[RecordSettings] = None) -> datetime:
    """Anchor an engine-built datetime to the configured default time zone."""
    if _settings(settings).default_timezone == "utc":
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def parse_datetime(text: str) -> datetime:
    text = text.strip()
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    for fmt in DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    raise ValueError(f"unrecognised date/time {text!r}")


def parse_time_of_day(text: str) -> time:
    text = text.strip()
    for fmt in TIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    # Full timestamps keep only their time part
    return parse_datetime(text).time()


def anchor_time(value: time, settings: Optional[RecordSettings] = None) -> datetime:
    anchored = datetime(*DUMMY_DATE, value.hour, value.minute, value.second, value.microsecond, tzinfo=value.tzinfo)
    return localize(anchored, settings)


# --- Per-type coercers ---

def _to_string(column: Field, value: Any, settings: RecordSettings) -> Any:
    if isinstance(value, str) or is_structured(value):
        return value
    if isinstance(value, (bytes, bytearray)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError as e:
            raise TypeCoercionError(column.name, value, column.type, str(e)) from e
    return str(value)


def _to_integer(column: Field, value: Any, settings: RecordSettings) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        try:
            return int(value)
        except (ValueError, OverflowError) as e:
            raise TypeCoercionError(column.name, value, column.type, "not a finite number") from e
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return int(Decimal(text))
        except (InvalidOperation, ValueError, OverflowError) as e:
            raise TypeCoercionError(column.name, value, column.type, "not a number") from e
    raise TypeCoercionError(column.name, value, column.type)


def _to_float(column: Field, value: Any, settings: RecordSettings) -> Any:
    if isinstance(value, (bool, int, float, Decimal)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError as e:
            raise TypeCoercionError(column.name, value, column.type, "not a number") from e
    raise TypeCoercionError(column.name, value, column.type)


def _to_boolean(column: Field, value: Any, settings: RecordSettings) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return value != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUE_STRINGS:
            return True
        if text in FALSE_STRINGS:
            return False
    raise TypeCoercionError(column.name, value, column.type)


def _to_date(column: Field, value: Any, settings: RecordSettings) -> Any:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return parse_datetime(value).date()
        except ValueError as e:
            raise TypeCoercionError(column.name, value, column.type, str(e)) from e
    raise TypeCoercionError(column.name, value, column.type)


def _to_datetime(column: Field, value: Any, settings: RecordSettings) -> Any:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return localize(datetime(value.year, value.month, value.day), settings)
    if isinstance(value, str):
        try:
            return localize(parse_datetime(value), settings)
        except ValueError as e:
            raise TypeCoercionError(column.name, value, column.type, str(e)) from e
    raise TypeCoercionError(column.name, value, column.type)


def _to_time(column: Field, value: Any, settings: RecordSettings) -> Any:
    if isinstance(value, datetime):
        if value.timetuple()[:3] == DUMMY_DATE:
            return value
        return value.replace(year=DUMMY_DATE[0], month=DUMMY_DATE[1], day=DUMMY_DATE[2])
    if isinstance(value, time):
        return anchor_time(value, settings)
    if isinstance(value, str):
        try:
            return anchor_time(parse_time_of_day(value), settings)
        except ValueError as e:
            raise TypeCoercionError(column.name, value, column.type, str(e)) from e
    raise TypeCoercionError(column.name, value, column.type)


def _to_binary(column: Field, value: Any, settings: RecordSettings) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    raise TypeCoercionError(column.name, value, column.type)


COERCERS = {
    ColumnType.STRING: _to_string,
    ColumnType.INTEGER: _to_integer,
    ColumnType.FLOAT: _to_float,
    ColumnType.BOOLEAN: _to_boolean,
    ColumnType.DATE: _to_date,
    ColumnType.TIME: _to_time,
    ColumnType.DATETIME: _to_datetime,
    ColumnType.BINARY: _to_binary,
}

# Columns where a blank string means "no value" rather than an empty string
BLANK_AS_NONE = NUMERIC_TYPES + TEMPORAL_TYPES


def coerce(column: Field, value: Any, settings: Optional[RecordSettings] = None) -> Any:
    """Convert `value` to the column's semantic type or raise TypeCoercionError."""
    settings = _settings(settings)
    if column.type is ColumnType.SERIALIZED or is_encoded(value):
        return value
    if value is None or (column.type in BLANK_AS_NONE and is_blank(value)):
        if column.nullable:
            return None
        raise TypeCoercionError(column.name, value, column.type, "column is not nullable")
    return COERCERS[column.type](column, value, settings)


def query_value(column: Optional[Field], value: Any) -> bool:
    """Predicate form of an attribute (`is_<name>`)."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return value != 0
    if isinstance(value, str):
        text = value.strip()
        if column is not None and column.type in NUMERIC_TYPES and text.lower() in FALSE_STRINGS:
            return False
        return bool(text)
    return bool(value)


# --- Multiparameter composition ---

@dataclass
class MultiparameterFragments:
    """Same-named date/time components collected from one assignment batch."""
    attribute: str
    components: Dict[int, Tuple[Any, str]] = field(default_factory=dict)

    def add(self, position: int, value: Any, code: str = "i"):
        self.components[position] = (value, code or "i")


def extract_multiparameter(pairs: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, MultiparameterFragments]]:
    """Split `name(Ni)` keys from plain keys, preserving order."""
    plain: Dict[str, Any] = {}
    fragments: Dict[str, MultiparameterFragments] = {}
    for key, value in pairs.items():
        match = MULTIPARAMETER_KEY.match(str(key))
        if not match:
            plain[str(key)] = value
            continue
        name = match.group("name")
        fragments.setdefault(name, MultiparameterFragments(name)).add(
            int(match.group("position")), value, match.group("code")
        )
    return plain, fragments


def _cast_component(value: Any, code: str) -> Any:
    if code == "f":
        return float(value)
    if code == "s":
        return str(value)
    return int(value)


def compose_multiparameter(column: Field, fragments: MultiparameterFragments,
                           settings: Optional[RecordSettings] = None) -> Any:
    name = fragments.attribute
    if column.type not in TEMPORAL_TYPES:
        raise AttributeAssignmentError(f"{name} is not a date or time column", None, name)

    positions = {
        ColumnType.DATE: range(1, 4),
        ColumnType.DATETIME: range(1, 7),
        ColumnType.TIME: range(4, 7),
    }[column.type]
    raw = [(p, *fragments.components.get(p, (None, "i"))) for p in positions]

    present = [p for p, value, _ in raw if not is_blank(value)]
    if not present:
        return None
    missing = [p for p, value, _ in raw if is_blank(value) and p < present[-1]]
    if missing:
        raise AttributeAssignmentError(
            f"{name} is missing component(s) {missing} before ({present[-1]})", None, name
        )

    # year, month, day, hour, minute, second
    parts = [DUMMY_DATE[0], 1, 1, 0, 0, 0]
    try:
        for p, value, code in raw:
            if not is_blank(value):
                parts[p - 1] = _cast_component(value, code)
        year, month, day, hour, minute, second = parts
        if column.type is ColumnType.DATE:
            return date(int(year), int(month), int(day))
        whole_seconds = int(second)
        micro = int(round((float(second) - whole_seconds) * 1_000_000))
        value = datetime(int(year), int(month), int(day), int(hour), int(minute), whole_seconds, micro)
    except (TypeError, ValueError, OverflowError) as e:
        raise AttributeAssignmentError(f"error on assignment {parts} to {name}: {e}", e, name) from e
    return localize(value, settings)
