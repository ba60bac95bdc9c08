import pytest
from datetime import date, datetime, time, timezone

from arlite.core.config import RecordSettings, config
from arlite.core.database.coercion import (
    coerce,
    compose_multiparameter,
    extract_multiparameter,
    query_value,
)
from arlite.core.database.errors import (
    AttributeAssignmentError,
    MultiparameterAssignmentErrors,
    TypeCoercionError,
)
from arlite.core.database.schema import (
    BinaryField, BoolField, DateField, DateTimeField, FloatField, IntField,
    SerializedField, StringField, TimeField,
)

from record_models import Topic

UTC = RecordSettings(default_timezone="utc")
LOCAL = RecordSettings(default_timezone="local")


# --- Scalar coercion ---

def test_blank_numeric_is_none():
    assert coerce(IntField(name="approved"), "") is None
    assert coerce(IntField(name="approved"), "   ") is None
    assert coerce(FloatField(name="ratio"), "") is None
    assert coerce(DateField(name="last_read"), "") is None


def test_blank_on_non_nullable_column_raises():
    with pytest.raises(TypeCoercionError):
        coerce(IntField(name="approved", nullable=False), "")
    with pytest.raises(TypeCoercionError):
        coerce(StringField(name="title", nullable=False), None)


def test_blank_string_column_keeps_empty_string():
    assert coerce(StringField(name="title"), "") == ""


def test_integer_coercion():
    column = IntField(name="count")
    assert coerce(column, "12") == 12
    assert coerce(column, " 7 ") == 7
    assert coerce(column, "3.0") == 3
    assert coerce(column, 3.9) == 3
    assert coerce(column, True) == 1
    assert type(coerce(column, True)) is int


def test_integer_coercion_rejects_garbage():
    with pytest.raises(TypeCoercionError) as exc_info:
        coerce(IntField(name="count"), "abc")

    assert isinstance(exc_info.value, TypeError)
    assert exc_info.value.column == "count"
    assert exc_info.value.value == "abc"


@pytest.mark.parametrize("value", ["Infinity", "NaN", " -inf ", float("nan"), float("inf")])
def test_integer_coercion_rejects_non_finite_numbers(value):
    with pytest.raises(TypeCoercionError):
        coerce(IntField(name="count"), value)


def test_float_coercion():
    assert coerce(FloatField(name="ratio"), "1.5") == 1.5
    assert coerce(FloatField(name="ratio"), 2) == 2.0
    with pytest.raises(TypeCoercionError):
        coerce(FloatField(name="ratio"), "one and a half")


def test_boolean_coercion():
    column = BoolField(name="value")
    assert coerce(column, "f") is False
    assert coerce(column, "true") is True
    assert coerce(column, "1") is True
    assert coerce(column, 0) is False
    with pytest.raises(TypeCoercionError):
        coerce(column, "maybe")


def test_string_coercion():
    column = StringField(name="title")
    assert coerce(column, 123) == "123"
    assert coerce(column, b"bytes") == "bytes"
    # structured values are kept for serialization
    assert coerce(column, ["a", "b"]) == ["a", "b"]


def test_binary_coercion():
    assert coerce(BinaryField(name="data"), "abc") == b"abc"
    assert coerce(BinaryField(name="data"), bytearray(b"xy")) == b"xy"


def test_serialized_values_pass_through():
    value = {"a": 1}
    assert coerce(SerializedField(name="prefs"), value) is value


# --- Temporal coercion ---

def test_date_coercion():
    column = DateField(name="last_read")
    assert coerce(column, "2004-06-24") == date(2004, 6, 24)
    assert coerce(column, datetime(2004, 6, 24, 12, 30)) == date(2004, 6, 24)
    with pytest.raises(TypeCoercionError):
        coerce(column, "not a date")


def test_datetime_coercion_follows_default_timezone():
    column = DateTimeField(name="written_on")
    assert coerce(column, "2004-06-24 12:00:00", LOCAL) == datetime(2004, 6, 24, 12)
    assert coerce(column, "2004/06/24 12:00", LOCAL) == datetime(2004, 6, 24, 12)
    assert coerce(column, "2004-06-24 12:00:00", UTC) == datetime(2004, 6, 24, 12, tzinfo=timezone.utc)


def test_native_datetime_is_kept():
    moment = datetime(2004, 6, 24, 12, tzinfo=timezone.utc)
    assert coerce(DateTimeField(name="written_on"), moment, LOCAL) is moment


def test_time_coercion_uses_dummy_date():
    column = TimeField(name="bonus_time")
    assert coerce(column, "5:42:00AM", LOCAL) == datetime(2000, 1, 1, 5, 42)
    assert coerce(column, "17:42", LOCAL) == datetime(2000, 1, 1, 17, 42)
    assert coerce(column, time(5, 42), LOCAL) == datetime(2000, 1, 1, 5, 42)
    assert coerce(column, datetime(2004, 6, 24, 5, 42), LOCAL) == datetime(2000, 1, 1, 5, 42)


def test_utc_as_time_zone():
    config.update("records", "default_timezone", "utc")
    topic = Topic()
    topic.attributes = {"bonus_time": "5:42:00AM"}
    assert topic.bonus_time == datetime(2000, 1, 1, 5, 42, tzinfo=timezone.utc)


def test_attributes_on_dummy_time():
    topic = Topic()
    topic.attributes = {"bonus_time": "5:42:00AM"}
    assert topic.bonus_time == datetime(2000, 1, 1, 5, 42)
    assert topic.bonus_time.tzinfo is None


# --- Predicates ---

def test_query_value():
    assert not query_value(IntField(name="n"), None)
    assert not query_value(IntField(name="n"), 0)
    assert not query_value(IntField(name="n"), "0")
    assert not query_value(StringField(name="s"), "")
    assert not query_value(StringField(name="s"), "   ")
    assert query_value(StringField(name="s"), "abc")
    assert query_value(IntField(name="n"), 5)
    assert query_value(None, [1])
    assert not query_value(None, [])


def test_predicate_accessors():
    topic = Topic()
    assert not topic.is_title
    topic.title = "Budget"
    assert topic.is_title
    assert topic.query_attribute("title")


# --- Multiparameter composition ---

def test_extract_multiparameter():
    plain, fragments = extract_multiparameter({"title": "x", "written_on(1i)": "2004", "written_on(6f)": "1.5"})
    assert plain == {"title": "x"}
    assert list(fragments) == ["written_on"]
    assert fragments["written_on"].components == {1: ("2004", "i"), 6: ("1.5", "f")}


def test_multiparameter_attributes_on_date():
    topic = Topic()
    topic.attributes = {"last_read(1i)": "2004", "last_read(2i)": "6", "last_read(3i)": "24"}
    assert topic.last_read == date(2004, 6, 24)


def test_multiparameter_attributes_on_date_with_empty_date():
    topic = Topic()
    topic.attributes = {"last_read(1i)": "2004", "last_read(2i)": "6", "last_read(3i)": ""}
    assert topic.last_read == date(2004, 6, 1)


def test_multiparameter_attributes_on_date_with_all_empty():
    topic = Topic()
    topic.attributes = {"last_read(1i)": "", "last_read(2i)": "", "last_read(3i)": ""}
    assert topic.last_read is None


def test_multiparameter_attributes_on_time():
    topic = Topic()
    topic.attributes = {
        "written_on(1i)": "2004", "written_on(2i)": "6", "written_on(3i)": "24",
        "written_on(4i)": "16", "written_on(5i)": "24", "written_on(6i)": "00",
    }
    assert topic.written_on == datetime(2004, 6, 24, 16, 24, 0)


def test_multiparameter_attributes_on_time_with_empty_seconds():
    topic = Topic()
    topic.attributes = {
        "written_on(1i)": "2004", "written_on(2i)": "6", "written_on(3i)": "24",
        "written_on(4i)": "16", "written_on(5i)": "24", "written_on(6i)": "",
    }
    assert topic.written_on == datetime(2004, 6, 24, 16, 24, 0)


def test_multiparameter_attributes_on_time_in_utc():
    config.update("records", "default_timezone", "utc")
    topic = Topic()
    topic.attributes = {
        "written_on(1i)": "2004", "written_on(2i)": "6", "written_on(3i)": "24",
        "written_on(4i)": "16", "written_on(5i)": "24", "written_on(6i)": "00",
    }
    assert topic.written_on == datetime(2004, 6, 24, 16, 24, tzinfo=timezone.utc)


def test_multiparameter_attributes_on_time_of_day_column():
    topic = Topic()
    topic.attributes = {"bonus_time(4i)": "16", "bonus_time(5i)": "24"}
    assert topic.bonus_time == datetime(2000, 1, 1, 16, 24)


def test_multiparameter_fractional_seconds():
    _, fragments = extract_multiparameter({
        "written_on(1i)": "2004", "written_on(2i)": "6", "written_on(3i)": "24",
        "written_on(4i)": "16", "written_on(5i)": "24", "written_on(6f)": "12.5",
    })
    value = compose_multiparameter(DateTimeField(name="written_on"), fragments["written_on"], LOCAL)
    assert value == datetime(2004, 6, 24, 16, 24, 12, 500000)


def test_multiparameter_leading_blank_is_an_error():
    with pytest.raises(MultiparameterAssignmentErrors) as exc_info:
        Topic({"written_on(1i)": "", "written_on(2i)": "6", "written_on(3i)": "24"})

    (error,) = exc_info.value.errors
    assert error.attribute == "written_on"


def test_multiparameter_errors_are_collected():
    with pytest.raises(MultiparameterAssignmentErrors) as exc_info:
        Topic({
            "last_read(1i)": "2005", "last_read(2i)": "2", "last_read(3i)": "31",
            "written_on(1i)": "2004", "written_on(2i)": "13", "written_on(3i)": "1",
        })

    assert sorted(e.attribute for e in exc_info.value.errors) == ["last_read", "written_on"]
    assert all(isinstance(e.exception, ValueError) for e in exc_info.value.errors)


def test_plain_keys_are_applied_before_multiparameter_errors():
    topic = Topic()
    with pytest.raises(MultiparameterAssignmentErrors):
        topic.attributes = {"title": "kept", "last_read(1i)": "2005", "last_read(2i)": "2", "last_read(3i)": "31"}
    assert topic.title == "kept"


def test_multiparameter_on_non_temporal_column():
    _, fragments = extract_multiparameter({"title(1i)": "1"})
    with pytest.raises(AttributeAssignmentError):
        compose_multiparameter(StringField(name="title"), fragments["title"], LOCAL)
