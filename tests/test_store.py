import pytest

from pymongo.errors import DuplicateKeyError

from arlite.core.database.schema import TableRef
from arlite.core.database.store import MemoryRecordStore, matches

PEOPLE = TableRef("people")


@pytest.fixture
def memory_store():
    store = MemoryRecordStore()
    for name, age in [("ann", 31), ("bob", 25), ("cid", None)]:
        store.insert(PEOPLE, {"name": name, "age": age})
    return store


# --- Condition matching ---

def test_matches_equality():
    row = {"name": "ann", "age": 31}
    assert matches(row, {"name": "ann"})
    assert not matches(row, {"name": "bob"})
    assert matches(row, None)
    assert matches(row, {})


def test_matches_operators():
    row = {"name": "ann", "age": 31}
    assert matches(row, {"age": {"$gt": 30, "$lte": 31}})
    assert not matches(row, {"age": {"$lt": 30}})
    assert matches(row, {"name": {"$in": ["ann", "bob"]}})
    assert matches(row, {"name": {"$nin": ["bob"]}})
    assert matches(row, {"name": {"$ne": "bob"}})
    assert matches(row, {"email": {"$exists": False}})
    assert not matches(row, {"email": {"$exists": True}})


def test_matches_null_never_compares():
    assert not matches({"age": None}, {"age": {"$gt": 1}})
    assert matches({"age": None}, {"age": None})


def test_matches_logical_operators():
    row = {"name": "ann", "age": 31}
    assert matches(row, {"$or": [{"name": "bob"}, {"age": 31}]})
    assert not matches(row, {"$and": [{"name": "ann"}, {"age": 30}]})


def test_matches_callable():
    assert matches({"age": 31}, lambda row: row["age"] > 30)


def test_matches_unknown_operator():
    with pytest.raises(ValueError):
        matches({"age": 1}, {"age": {"$regex": "1"}})


# --- Memory store ---

def test_insert_assigns_sequential_ids(memory_store):
    assert [row["id"] for row in memory_store.find_all(PEOPLE, order="id")] == [1, 2, 3]
    assert memory_store.insert(PEOPLE, {"id": 10, "name": "dee"}) == 10
    assert memory_store.insert(PEOPLE, {"name": "eve"}) == 11


def test_insert_rejects_taken_identity(memory_store):
    with pytest.raises(DuplicateKeyError):
        memory_store.insert(PEOPLE, {"id": 1, "name": "imposter"})
    assert memory_store.find(PEOPLE, 1)["name"] == "ann"
    assert memory_store.count(PEOPLE) == 3


def test_rows_are_copies(memory_store):
    row = memory_store.find(PEOPLE, 1)
    row["name"] = "changed"
    assert memory_store.find(PEOPLE, 1)["name"] == "ann"


def test_find_all_order_and_limit(memory_store):
    names = [row["name"] for row in memory_store.find_all(PEOPLE, order="-age")]
    assert names == ["ann", "bob", "cid"]
    assert [row["name"] for row in memory_store.find_all(PEOPLE, order="age", limit=2)] == ["cid", "bob"]


def test_update_and_delete(memory_store):
    assert memory_store.update(PEOPLE, 2, {"age": 26}) == 1
    assert memory_store.update(PEOPLE, 99, {"age": 26}) == 0
    assert memory_store.find(PEOPLE, 2)["age"] == 26

    assert memory_store.delete(PEOPLE, 1) == 1
    assert memory_store.delete(PEOPLE, [2, 99]) == 1
    assert memory_store.delete(PEOPLE, {"name": "cid"}) == 1
    assert memory_store.count(PEOPLE) == 0


def test_update_all_and_increment_all(memory_store):
    assert memory_store.update_all(PEOPLE, {"age": 40}, {"name": {"$in": ["ann", "bob"]}}) == 2
    assert memory_store.increment_all(PEOPLE, {"age": 2}) == 3
    ages = {row["name"]: row["age"] for row in memory_store.find_all(PEOPLE)}
    assert ages == {"ann": 42, "bob": 42, "cid": 2}


def test_count_by_query(memory_store):
    assert memory_store.count_by_query(PEOPLE, [{"$match": {"age": {"$gte": 25}}}, {"$count": "n"}]) == 2
    with pytest.raises(ValueError):
        memory_store.count_by_query(PEOPLE, [{"$group": {"_id": "$age"}}])


def test_clear(memory_store):
    memory_store.clear()
    assert memory_store.count(PEOPLE) == 0
    assert memory_store.insert(PEOPLE, {"name": "new"}) == 1
