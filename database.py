"""
Database helpers

MongoDB access for the storefront. ``connect`` builds a database handle with
bounded timeouts; ``DocumentStore`` wraps the user and product collections and
is passed into every service.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.errors import (
    DuplicateKeyError, ExecutionTimeout, NetworkTimeout, PyMongoError, ServerSelectionTimeoutError,
)

from errors import DuplicateUser, ProductNotFound, StoreError, StoreTimeout, UserNotFound

log = logging.getLogger(__name__)

USER_COLLECTION = "user"
PRODUCT_COLLECTION = "product"


def connect(url: str, name: str, timeout_ms: int = 5000):
    client = MongoClient(
        url,
        tz_aware=True,
        serverSelectionTimeoutMS=timeout_ms,
        connectTimeoutMS=timeout_ms,
        socketTimeoutMS=timeout_ms,
    )
    return client[name]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Union[str, ObjectId]) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


def canonical_id(value: str) -> str:
    """Lowercase hex form of an ObjectId string; other text is returned as-is."""
    oid = to_object_id(value)
    return str(oid) if oid is not None else value


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


@contextmanager
def _guard(action: str):
    try:
        yield
    except DuplicateKeyError:
        raise
    except (ServerSelectionTimeoutError, NetworkTimeout, ExecutionTimeout) as e:
        log.error("Timed out while trying to %s: %s", action, e)
        raise StoreTimeout() from e
    except PyMongoError as e:
        log.exception("Database error while trying to %s", action)
        raise StoreError() from e


class DocumentStore:
    """Typed access to the user and product collections."""

    def __init__(self, db):
        self.db = db
        self.users = db[USER_COLLECTION]
        self.products = db[PRODUCT_COLLECTION]

    def ensure_indexes(self) -> None:
        with _guard("create indexes"):
            self.users.create_index("email", unique=True)
            self.users.create_index("phone", unique=True)

    def ping(self) -> List[str]:
        with _guard("list collections"):
            return self.db.list_collection_names()

    # --------------------- Users ---------------------

    def insert_user(self, data: Union[BaseModel, dict]) -> str:
        try:
            return self._create_document(self.users, data)
        except DuplicateKeyError as e:
            email = data.email if isinstance(data, BaseModel) else data.get("email")
            if self.count_users({"email": email}) == 0:
                raise DuplicateUser("this phone number is already in use") from e
            raise DuplicateUser("user already exists") from e

    def count_users(self, filter_dict: Dict[str, Any]) -> int:
        with _guard("count users"):
            return self.users.count_documents(filter_dict)

    def find_user_by_field(self, field: str, value: Any) -> Dict[str, Any]:
        with _guard("find user"):
            doc = self.users.find_one({field: value})
        if doc is None:
            raise UserNotFound()
        return doc

    def find_user(self, user_id: str) -> Dict[str, Any]:
        oid = to_object_id(user_id)
        if oid is None:
            raise UserNotFound()
        return self.find_user_by_field("_id", oid)

    def update_user_fields(self, user_id: str, fields: Dict[str, Any]):
        """$set only the given fields (plus updated_at) on one user document."""
        oid = to_object_id(user_id)
        if oid is None:
            raise UserNotFound()
        update = dict(fields)
        update["updated_at"] = utcnow()
        with _guard("update user"):
            result = self.users.update_one({"_id": oid}, {"$set": update})
        if result.matched_count == 0:
            raise UserNotFound()
        return result

    def sold_product_ids(self) -> Set[str]:
        """Ids of every product that appears in any user's order history."""
        sold = set()
        with _guard("scan orders"):
            for user in self.users.find({}, {"order_status": 1}):
                for order in user.get("order_status") or []:
                    for line in order.get("order_cart") or []:
                        sold.add(str(line["product_id"]))
        return sold

    # --------------------- Products ---------------------

    def insert_product(self, data: Union[BaseModel, dict]) -> str:
        return self._create_document(self.products, data)

    def find_product_by_id(self, product_id: str) -> Dict[str, Any]:
        oid = to_object_id(product_id)
        if oid is None:
            raise ProductNotFound()
        with _guard("find product"):
            doc = self.products.find_one({"_id": oid})
        if doc is None:
            raise ProductNotFound()
        return doc

    def count_products(self, filter_dict: Dict[str, Any]) -> int:
        with _guard("count products"):
            return self.products.count_documents(filter_dict)

    def find_products(self, filter_dict: Dict[str, Any], skip: int = 0, limit: int = 0) -> List[Dict[str, Any]]:
        with _guard("find products"):
            cursor = self.products.find(filter_dict).sort("_id", ASCENDING)
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            return list(cursor)

    # --------------------- Helpers ---------------------

    def _create_document(self, collection, data: Union[BaseModel, dict]) -> str:
        if isinstance(data, BaseModel):
            data_dict = data.model_dump()
        else:
            data_dict = dict(data)
        now = utcnow()
        data_dict.setdefault("created_at", now)
        data_dict.setdefault("updated_at", now)
        with _guard("insert into %s" % collection.name):
            result = collection.insert_one(data_dict)
        return str(result.inserted_id)


def object_ids(ids: Iterable[str]) -> List[ObjectId]:
    return [oid for oid in (to_object_id(i) for i in ids) if oid is not None]
