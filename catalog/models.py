"""
Document models for the three catalog collections.

Authors and categories keep a ``books`` array of back references; a book keeps
the authoritative forward references ``author`` and ``categories``.
"""

from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Collection names
AUTHORS = "authors"
CATEGORIES = "categories"
BOOKS = "books"


def to_object_id(value: Any) -> Optional[ObjectId]:
    """
    Convert an id received from a client into an ObjectId.

    Only 24 character hex strings (or ObjectIds) are accepted; anything else
    returns None and is treated by callers as a document that does not exist.
    """
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str):
        value = value.strip()
        if len(value) == 24 and ObjectId.is_valid(value):
            return ObjectId(value)
    return None


def unique_ids(ids: Iterable[ObjectId]) -> List[ObjectId]:
    """Drop duplicate ids, keeping the first occurrence order."""
    seen = set()
    result = []
    for object_id in ids:
        if object_id not in seen:
            seen.add(object_id)
            result.append(object_id)
    return result


class _Document(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True)

    def to_mongo(self) -> Dict[str, Any]:
        """Dump the document in the shape stored in MongoDB."""
        return self.model_dump(by_alias=True, exclude_none=True)


class AuthorDocument(_Document):
    """Author as stored in the ``authors`` collection."""
    name: str = Field(..., min_length=1, description="Author name")
    country: str = Field(..., min_length=1, description="Author country")
    books: List[ObjectId] = Field(default_factory=list, description="Back references to books")


class CategoryDocument(_Document):
    """Category as stored in the ``categories`` collection."""
    name: str = Field(..., min_length=1, description="Category name")
    books: List[ObjectId] = Field(default_factory=list, description="Back references to books")


class BookDocument(_Document):
    """Book as stored in the ``books`` collection."""
    title: str = Field(..., min_length=1, description="Book title")
    author: ObjectId = Field(..., description="Owning author")
    categories: List[ObjectId] = Field(default_factory=list, description="Categories of the book")
    cover_image: Optional[str] = Field(None, alias="coverImage", description="Cover image filename")

    @field_validator("categories")
    @classmethod
    def collapse_duplicate_categories(cls, v):
        """Categories are a set; keep each id once."""
        return unique_ids(v)
