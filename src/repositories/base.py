"""
Generic Repository Base Class
Async CRUD and field-level update operations on MongoDB collections.
"""
from typing import Generic, TypeVar, Type, Optional, List, Dict, Any
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from bson import ObjectId
from bson.errors import InvalidId
import datetime as dt

from ..models.base import MongoBaseModel
from ..utils.observability import logger

# Generic type for domain models
T = TypeVar("T", bound=MongoBaseModel)


def to_object_id(document_id: str) -> Optional[ObjectId]:
    """Parse a string id, returning None when it is not a valid ObjectId."""
    try:
        return ObjectId(document_id)
    except (InvalidId, TypeError):
        return None


class BaseRepository(Generic[T]):
    """
    Generic async repository for MongoDB collections.

    Usage:
        class CalendarEventRepository(BaseRepository[CalendarEvent]):
            def __init__(self, database: AsyncIOMotorDatabase):
                super().__init__(database, "calendar_events", CalendarEvent)
    """

    def __init__(
        self,
        database: AsyncIOMotorDatabase,
        collection_name: str,
        model_class: Type[T]
    ):
        self.database = database
        self.collection: AsyncIOMotorCollection = database[collection_name]
        self.model_class = model_class
        self.collection_name = collection_name

    async def create(self, document: T) -> T:
        """
        Insert a new document into the collection.

        Args:
            document: Domain model instance to persist

        Returns:
            The created document with `id` populated
        """
        now = dt.datetime.now(dt.UTC)
        document.created_at = now
        document.updated_at = now

        doc_dict = document.model_dump(by_alias=True, exclude={"id"}, exclude_none=True)
        result = await self.collection.insert_one(doc_dict)

        document.id = str(result.inserted_id)
        logger.debug(f"Created document in {self.collection_name}: {document.id}")
        return document

    async def find_by_id(self, document_id: str) -> Optional[T]:
        """
        Retrieve a document by its ObjectId string.

        Returns:
            Domain model instance, or None if missing or the id is malformed
        """
        object_id = to_object_id(document_id)
        if object_id is None:
            return None

        doc = await self.collection.find_one({"_id": object_id})
        return self._to_model(doc) if doc else None

    async def find_one(self, filter_dict: Dict[str, Any]) -> Optional[T]:
        doc = await self.collection.find_one(filter_dict)
        return self._to_model(doc) if doc else None

    async def find_many(
        self,
        filter_dict: Dict[str, Any],
        limit: int = 100,
        skip: int = 0,
        sort: Optional[List[tuple]] = None
    ) -> List[T]:
        """
        Retrieve multiple documents matching the filter.

        Args:
            filter_dict: MongoDB query filter
            limit: Maximum number of documents to return (0 = no limit)
            skip: Number of documents to skip (pagination)
            sort: List of (field, direction) tuples for sorting

        Returns:
            List of domain model instances
        """
        cursor = self.collection.find(filter_dict)
        if sort:
            cursor = cursor.sort(sort)
        cursor = cursor.skip(skip).limit(limit)

        docs = await cursor.to_list(length=limit or None)
        return [self._to_model(doc) for doc in docs]

    async def update_fields(self, document_id: str, fields: Dict[str, Any]) -> bool:
        """
        Field-level ``$set`` on a single document; also bumps ``updated_at``.

        Returns:
            True if a document matched, False otherwise
        """
        object_id = to_object_id(document_id)
        if object_id is None:
            return False

        result = await self.collection.update_one(
            {"_id": object_id},
            {"$set": {**fields, "updated_at": dt.datetime.now(dt.UTC)}}
        )

        if result.matched_count == 0:
            return False

        logger.debug(
            f"Updated {sorted(fields)} in {self.collection_name}: {document_id}"
        )
        return True

    async def delete(self, document_id: str) -> bool:
        object_id = to_object_id(document_id)
        if object_id is None:
            return False

        result = await self.collection.delete_one({"_id": object_id})
        return result.deleted_count > 0

    async def count(self, filter_dict: Optional[Dict[str, Any]] = None) -> int:
        return await self.collection.count_documents(filter_dict or {})

    def _to_model(self, doc: Dict[str, Any]) -> T:
        """
        Convert a raw MongoDB document to the model, dropping unknown keys.
        """
        if "_id" in doc:
            doc["_id"] = str(doc["_id"])

        model_fields = self.model_class.model_fields.keys()
        cleaned_doc = {
            k: v for k, v in doc.items()
            if k in model_fields or k == "_id"
        }
        return self.model_class.model_validate(cleaned_doc)
