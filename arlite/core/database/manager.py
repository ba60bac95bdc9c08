from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from loguru import logger

from ..config import MongoSettings, config
from .schema import TableRef
from .store import Condition, RecordStore


class MongoManager:
    def __init__(self):
        self.client: Optional[MongoClient] = None
        self.db: Optional[Database] = None

    def init(self, settings: Optional[MongoSettings] = None, client: Optional[MongoClient] = None):
        settings = settings or config.data.mongo
        connection_url = f"mongodb://{settings.host}:{settings.port}"
        try:
            self.client = client if client is not None else MongoClient(connection_url)
            self.db = self.client[settings.database_name]
            logger.info(f"Connected to MongoDB: {connection_url}/{settings.database_name}")
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise e

    def reset_db(self):
        """Drops the entire database."""
        if self.client is not None and self.db is not None:
            name = self.db.name
            self.client.drop_database(name)
            logger.warning(f"Database '{name}' dropped.")
            self.db = self.client[name]

    def get_collection(self, collection_name: str):
        if self.db is None:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self.db[collection_name]

    def close(self):
        if self.client is not None:
            self.client.close()
        self.client = None
        self.db = None


class MongoRecordStore(RecordStore):
    """
    RecordStore over MongoDB collections.

    The record primary key is stored as `_id`; every condition, order and row
    is translated in both directions.
    """
    def __init__(self, manager: MongoManager):
        self.manager = manager

    def _collection(self, table: TableRef):
        return self.manager.get_collection(table.name)

    @staticmethod
    def _key(table: TableRef, name: str) -> str:
        return "_id" if name == table.primary_key else name

    def _filter(self, table: TableRef, condition: Condition) -> Dict[str, Any]:
        if not condition:
            return {}
        if callable(condition):
            raise TypeError("MongoRecordStore only accepts filter documents as conditions")
        translated = {}
        for key, value in condition.items():
            if key in ("$and", "$or", "$nor"):
                translated[key] = [self._filter(table, sub) for sub in value]
            else:
                translated[self._key(table, key)] = value
        return translated

    def _to_doc(self, table: TableRef, attributes: Dict[str, Any]) -> Dict[str, Any]:
        return {self._key(table, k): v for k, v in attributes.items()}

    @staticmethod
    def _from_doc(table: TableRef, doc: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(doc)
        if table.primary_key != "_id" and "_id" in row:
            row[table.primary_key] = row.pop("_id")
        return row

    def find(self, table: TableRef, identity: Any) -> Optional[Dict[str, Any]]:
        doc = self._collection(table).find_one({"_id": identity})
        return self._from_doc(table, doc) if doc else None

    def find_all(self, table: TableRef, condition: Condition = None,
                 order: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        cursor = self._collection(table).find(self._filter(table, condition))
        if order:
            sort = []
            for part in (p.strip() for p in order.split(",") if p.strip()):
                direction = DESCENDING if part.startswith("-") else ASCENDING
                sort.append((self._key(table, part.lstrip("-")), direction))
            cursor = cursor.sort(sort)
        if limit is not None:
            cursor = cursor.limit(limit)
        return [self._from_doc(table, doc) for doc in cursor]

    def insert(self, table: TableRef, attributes: Dict[str, Any]) -> Any:
        doc = self._to_doc(table, attributes)
        if doc.get("_id") is None:
            doc.pop("_id", None)
        result = self._collection(table).insert_one(doc)
        logger.debug(f"Mongo store: inserted {table.name}#{result.inserted_id}")
        return result.inserted_id

    def update(self, table: TableRef, identity: Any, attributes: Dict[str, Any]) -> int:
        if not attributes:
            return 0
        result = self._collection(table).update_one({"_id": identity}, {"$set": self._to_doc(table, attributes)})
        return result.matched_count

    def delete(self, table: TableRef, target: Any) -> int:
        coll = self._collection(table)
        if isinstance(target, dict):
            result = coll.delete_many(self._filter(table, target))
        elif isinstance(target, (list, tuple, set)):
            result = coll.delete_many({"_id": {"$in": list(target)}})
        else:
            result = coll.delete_one({"_id": target})
        return result.deleted_count

    def update_all(self, table: TableRef, updates: Dict[str, Any], condition: Condition = None) -> int:
        result = self._collection(table).update_many(
            self._filter(table, condition), {"$set": self._to_doc(table, updates)}
        )
        return result.matched_count

    def increment_all(self, table: TableRef, counters: Dict[str, int], condition: Condition = None) -> int:
        # Update pipeline so a null counter is treated as zero
        stage = {name: {"$add": [{"$ifNull": [f"${name}", 0]}, by]} for name, by in counters.items()}
        result = self._collection(table).update_many(self._filter(table, condition), [{"$set": stage}])
        return result.matched_count

    def count(self, table: TableRef, condition: Condition = None) -> int:
        return self._collection(table).count_documents(self._filter(table, condition))

    def count_by_query(self, table: TableRef, query: Any) -> int:
        pipeline = []
        for stage in query:
            if "$match" in stage:
                stage = {"$match": self._filter(table, stage["$match"])}
            pipeline.append(stage)
        if not pipeline or "$count" not in pipeline[-1]:
            pipeline.append({"$count": "count"})
        key = pipeline[-1]["$count"]
        results = list(self._collection(table).aggregate(pipeline))
        return results[0][key] if results else 0


# Global instance for easy access
db_manager = MongoManager()
