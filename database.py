from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import MongoClient, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database

_clients: Dict[str, MongoClient] = {}


def get_db(database_url: str, database_name: str) -> Database:
    client = _clients.get(database_url)
    if client is None:
        client = _clients[database_url] = MongoClient(database_url)
    return client[database_name]


def collection(db: Database, name: str) -> Collection:
    return db[name]


def next_id(db: Database, name: str) -> int:
    """Return the next integer id for a collection, backed by a counter document."""
    counter = collection(db, "counter").find_one_and_update(
        {"_id": name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return counter["seq"]


def create_document(db: Database, collection_name: str, data: Dict[str, Any], timestamped: bool = False) -> Dict[str, Any]:
    doc = {"_id": next_id(db, collection_name), **data}
    if timestamped:
        doc["created_at"] = datetime.now()
    collection(db, collection_name).insert_one(doc)
    return doc


def get_documents(db: Database, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    cursor = collection(db, collection_name).find(filter_dict or {}).sort("_id", 1)
    return list(cursor)


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    doc = dict(doc)
    doc["id"] = doc.pop("_id")
    return doc
