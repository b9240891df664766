"""
Data access for the product, order, category and user collections.

Each repository wraps one pymongo collection and hands back raw documents
(dicts with an ObjectId ``_id``). Ids arrive from the API as strings; a string
that is not a valid ObjectId simply matches nothing.
"""
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends
from pymongo import ReturnDocument
from pymongo.database import Database

from database import create_document, get_db, get_documents, utcnow


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    # ObjectId(None) would mint a fresh id
    if value is None:
        return None
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


class ProductRepository:
    collection_name = "product"

    def __init__(self, db: Database):
        self.db = db
        self.collection = db[self.collection_name]

    def find_by_id(self, product_id: Any) -> Optional[Dict[str, Any]]:
        oid = to_object_id(product_id)
        if oid is None:
            return None
        return self.collection.find_one({"_id": oid})

    def find_published(self, category: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {"is_published": True}
        if category:
            query["category"] = category
        return get_documents(self.collection_name, query, limit=limit, database=self.db)

    def exists_in_category(self, category_id: str) -> bool:
        return self.collection.find_one({"category": category_id}, {"_id": 1}) is not None

    def insert(self, data: Dict[str, Any]) -> Dict[str, Any]:
        new_id = create_document(self.collection_name, data, database=self.db)
        return self.collection.find_one({"_id": ObjectId(new_id)})

    def save(self, product_id: Any, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Persist only the changed fields of a product and return the stored document.

        Fields not in ``changes`` are left alone, so a concurrent inventory
        decrement is never overwritten by a stale count.
        """
        oid = to_object_id(product_id)
        if oid is None:
            return None
        fields = {k: v for k, v in changes.items() if k != "_id"}
        fields["updated_at"] = utcnow()
        return self.collection.find_one_and_update(
            {"_id": oid}, {"$set": fields}, return_document=ReturnDocument.AFTER
        )

    def decrement_inventory(self, product_id: Any, quantity: int) -> Optional[Dict[str, Any]]:
        """
        Atomically take ``quantity`` units off a product's inventory.

        The filter only matches while inventory >= quantity, so concurrent
        orders can never push the count below zero. Returns the updated
        document, or None when the product is gone or short of stock.
        """
        oid = to_object_id(product_id)
        if oid is None:
            return None
        return self.collection.find_one_and_update(
            {"_id": oid, "inventory": {"$gte": quantity}},
            {"$inc": {"inventory": -quantity}, "$set": {"updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )

    def delete(self, product_id: Any) -> bool:
        oid = to_object_id(product_id)
        if oid is None:
            return False
        return self.collection.delete_one({"_id": oid}).deleted_count == 1


class OrderRepository:
    collection_name = "order"

    def __init__(self, db: Database):
        self.db = db
        self.collection = db[self.collection_name]

    def insert(self, order: Dict[str, Any]) -> Dict[str, Any]:
        """Store a new order; the returned document carries its _id and timestamps."""
        new_id = create_document(self.collection_name, order, database=self.db)
        return self.collection.find_one({"_id": ObjectId(new_id)})

    def find_by_id(self, order_id: Any) -> Optional[Dict[str, Any]]:
        oid = to_object_id(order_id)
        if oid is None:
            return None
        return self.collection.find_one({"_id": oid})

    def find_by_user(self, user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        return get_documents(self.collection_name, {"user_id": user_id}, limit=limit, database=self.db)

    def find_all(self, status: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        query = {"status": status} if status else {}
        return get_documents(self.collection_name, query, limit=limit, database=self.db)

    def update_status(self, order_id: Any, status: str, tracking_number: Optional[str] = None) -> Optional[Dict[str, Any]]:
        oid = to_object_id(order_id)
        if oid is None:
            return None
        update: Dict[str, Any] = {"status": status, "updated_at": utcnow()}
        if tracking_number:
            update["tracking_number"] = tracking_number
        return self.collection.find_one_and_update(
            {"_id": oid}, {"$set": update}, return_document=ReturnDocument.AFTER
        )


class CategoryRepository:
    collection_name = "category"

    def __init__(self, db: Database):
        self.db = db
        self.collection = db[self.collection_name]

    def find_active(self) -> List[Dict[str, Any]]:
        return list(self.collection.find({"is_active": True}).sort("name", 1))

    def find_by_id(self, category_id: Any) -> Optional[Dict[str, Any]]:
        oid = to_object_id(category_id)
        if oid is None:
            return None
        return self.collection.find_one({"_id": oid})

    def find_by_id_or_slug(self, id_or_slug: str) -> Optional[Dict[str, Any]]:
        if ObjectId.is_valid(id_or_slug):
            return self.find_by_id(id_or_slug)
        return self.collection.find_one({"slug": id_or_slug})

    def slug_taken(self, slug: str, exclude_id: Any = None) -> bool:
        query: Dict[str, Any] = {"slug": slug}
        oid = to_object_id(exclude_id) if exclude_id is not None else None
        if oid is not None:
            query["_id"] = {"$ne": oid}
        return self.collection.find_one(query, {"_id": 1}) is not None

    def has_children(self, category_id: str) -> bool:
        return self.collection.find_one({"parent": category_id}, {"_id": 1}) is not None

    def insert(self, data: Dict[str, Any]) -> Dict[str, Any]:
        new_id = create_document(self.collection_name, data, database=self.db)
        return self.collection.find_one({"_id": ObjectId(new_id)})

    def update(self, category_id: Any, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        oid = to_object_id(category_id)
        if oid is None:
            return None
        fields = dict(fields, updated_at=utcnow())
        return self.collection.find_one_and_update(
            {"_id": oid}, {"$set": fields}, return_document=ReturnDocument.AFTER
        )

    def delete(self, category_id: Any) -> bool:
        oid = to_object_id(category_id)
        if oid is None:
            return False
        return self.collection.delete_one({"_id": oid}).deleted_count == 1


class UserRepository:
    collection_name = "user"

    def __init__(self, db: Database):
        self.collection = db[self.collection_name]

    def find_by_id(self, user_id: Any) -> Optional[Dict[str, Any]]:
        """Look up a user without the password hash."""
        oid = to_object_id(user_id)
        if oid is None:
            return None
        return self.collection.find_one({"_id": oid}, {"password": 0})


# ---------- FastAPI dependencies ----------

def get_product_repository(db: Database = Depends(get_db)) -> ProductRepository:
    return ProductRepository(db)


def get_order_repository(db: Database = Depends(get_db)) -> OrderRepository:
    return OrderRepository(db)


def get_category_repository(db: Database = Depends(get_db)) -> CategoryRepository:
    return CategoryRepository(db)


def get_user_repository(db: Database = Depends(get_db)) -> UserRepository:
    return UserRepository(db)
