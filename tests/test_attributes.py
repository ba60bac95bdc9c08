import pytest
from datetime import timezone

from arlite.core.config import RecordSettings
from arlite.core.database.attributes import AttributeStore
from arlite.core.database.errors import FrozenRecordError, TypeCoercionError
from arlite.core.database.schema import DateTimeField, EntityDescriptor, IntField, StringField
from arlite.core.database.serialization import encode


@pytest.fixture
def descriptor():
    descriptor = EntityDescriptor("Counter")
    descriptor.add_column(StringField(name="label"))
    descriptor.add_column(IntField(name="count", default=0))
    descriptor.add_column(StringField(name="tags"))
    return descriptor


@pytest.fixture
def attrs(descriptor):
    store = AttributeStore(descriptor, RecordSettings)
    store.materialize_defaults()
    store.snapshot()
    return store


def test_defaults_are_materialized(attrs):
    assert attrs.read("count") == 0
    assert attrs.read("label") is None
    assert attrs.names() == ["label", "count", "tags"]
    assert attrs.changed() == []


def test_write_coerces_and_marks_dirty(attrs):
    assert attrs.write("count", "5")
    assert attrs.read("count") == 5
    assert attrs.changed() == ["count"]


def test_writing_equal_value_is_not_a_change(attrs):
    assert not attrs.write("count", 0)
    assert attrs.changed() == []


def test_write_rejects_bad_values(attrs):
    with pytest.raises(TypeCoercionError):
        attrs.write("count", "many")
    assert attrs.read("count") == 0


def test_unknown_names_are_kept_but_never_changed(attrs):
    attrs.write("scratch", object())
    assert attrs.has_attribute("scratch")
    assert "scratch" not in attrs.changed()
    assert "scratch" not in attrs.known_values()


def test_in_place_mutation_is_detected(attrs):
    attrs.write("tags", ["a"])
    attrs.snapshot()
    assert attrs.changed() == []

    attrs.read("tags").append("b")
    assert attrs.changed() == ["tags"]


def test_encoded_values_decode_lazily(attrs):
    attrs.replace({"tags": encode(["a", "b"]), "count": 2})
    assert attrs.raw("tags") != ["a", "b"]
    assert attrs.read("tags") == ["a", "b"]
    assert attrs.changed() == []

    attrs.read("tags").append("c")
    assert attrs.changed() == ["tags"]


def test_replace_fills_missing_columns(attrs):
    attrs.write("label", "x")
    attrs.replace({"count": 3})
    assert attrs.read("label") is None
    assert attrs.read("count") == 3
    assert attrs.dirty == set()


def test_copy_values_is_deep(attrs):
    attrs.write("tags", {"a": ["b"]})
    copied = attrs.copy_values()
    copied["tags"]["a"].append("c")
    assert attrs.read("tags") == {"a": ["b"]}


def test_known_values_limited_to_names(attrs):
    attrs.write("label", "x")
    assert attrs.known_values(["label", "nope"]) == {"label": "x"}


def test_freeze(attrs):
    attrs.freeze()
    assert attrs.read("count") == 0
    with pytest.raises(FrozenRecordError):
        attrs.write("count", 1)


def test_settings_are_read_on_every_write(descriptor):
    descriptor.add_column(DateTimeField(name="seen"))
    settings = {"value": RecordSettings()}
    attrs = AttributeStore(descriptor, lambda: settings["value"])

    attrs.write("seen", "2004-01-01 10:00")
    assert attrs.read("seen").tzinfo is None

    settings["value"] = RecordSettings(default_timezone="utc")
    attrs.write("seen", "2004-01-01 10:00")
    assert attrs.read("seen").tzinfo is timezone.utc


def test_non_nullable_column(descriptor):
    descriptor.add_column(StringField(name="note", nullable=False))
    attrs = AttributeStore(descriptor, RecordSettings)
    with pytest.raises(TypeCoercionError):
        attrs.write("note", None)
