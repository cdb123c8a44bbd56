"""
Pydantic models for the documents stored in MongoDB.
Field aliases match the stored (camelCase) layout of each collection.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp used for every createdAt/updatedAt value."""
    return datetime.now(timezone.utc)


class MongoDocument(BaseModel):
    """Base class for stored documents."""

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        str_strip_whitespace=True,
    )

    def to_mongo(self) -> Dict[str, Any]:
        """Dump the document with its stored field names, leaving out unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True)


class UserDocument(MongoDocument):
    """User record. ``password`` always holds a bcrypt digest."""
    username: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1, description="bcrypt digest")
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")


class BookDocument(MongoDocument):
    """Catalog entry added by a user."""
    title: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    genre: str = Field(..., min_length=1)
    isbn: str = Field(..., min_length=1)
    publication_year: int = Field(..., alias="publicationYear")
    added_by: ObjectId = Field(..., alias="addedBy")
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")


class ReviewDocument(MongoDocument):
    """One rating (1-5) and optional comment by one user for one book."""
    book: ObjectId
    user: ObjectId
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    def to_mongo(self) -> Dict[str, Any]:
        doc = super().to_mongo()
        # both timestamps start out identical
        doc.setdefault("updatedAt", doc["createdAt"])
        return doc
