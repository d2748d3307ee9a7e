"""
API models and schemas for the FastAPI application.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field

from catalog.covers import CoverImageStorage


# ── Request bodies ────────────────────────────────────────────────────────

class AuthorCreate(BaseModel):
    """Body of POST /api/authors. Required fields are checked by the service."""
    name: Optional[str] = Field(None, description="Author name")
    country: Optional[str] = Field(None, description="Author country")


class AuthorUpdate(BaseModel):
    """Body of PUT /api/authors/{id}; omitted fields are left unchanged."""
    name: Optional[str] = Field(None, description="New author name")
    country: Optional[str] = Field(None, description="New author country")


class CategoryCreate(BaseModel):
    """Body of POST /api/categories."""
    name: Optional[str] = Field(None, description="Category name")


class CategoryUpdate(BaseModel):
    """Body of PUT /api/categories/{id}."""
    name: Optional[str] = Field(None, description="New category name")


class BookPayload(BaseModel):
    """Fields of a book create/update request, from a JSON or multipart body."""
    title: Optional[str] = Field(None, description="Book title")
    author: Optional[str] = Field(None, description="Author id")
    categories: Optional[List[str]] = Field(None, description="Category ids; an empty list clears them")


# ── Response payloads ─────────────────────────────────────────────────────

def _document_id(value: Any) -> str:
    if isinstance(value, dict):
        return str(value["_id"])
    return str(value)


class BookSummary(BaseModel):
    """A book as listed on its author or category."""
    id: str = Field(..., description="Book id")
    title: Optional[str] = Field(None, description="Book title")

    @classmethod
    def from_reference(cls, value: Any) -> "BookSummary":
        if isinstance(value, dict):
            return cls(id=_document_id(value), title=value.get("title"))
        return cls(id=_document_id(value))


class AuthorSummary(BaseModel):
    """An author as embedded in a book."""
    id: str = Field(..., description="Author id")
    name: Optional[str] = Field(None, description="Author name")
    country: Optional[str] = Field(None, description="Author country")

    @classmethod
    def from_reference(cls, value: Any) -> Optional["AuthorSummary"]:
        if value is None:
            return None
        if isinstance(value, dict):
            return cls(id=_document_id(value), name=value.get("name"), country=value.get("country"))
        return cls(id=_document_id(value))


class CategorySummary(BaseModel):
    """A category as embedded in a book."""
    id: str = Field(..., description="Category id")
    name: Optional[str] = Field(None, description="Category name")

    @classmethod
    def from_reference(cls, value: Any) -> "CategorySummary":
        if isinstance(value, dict):
            return cls(id=_document_id(value), name=value.get("name"))
        return cls(id=_document_id(value))


class AuthorResponse(BaseModel):
    """Author response model for API."""
    id: str = Field(..., description="Author id")
    name: str = Field(..., description="Author name")
    country: str = Field(..., description="Author country")
    books: List[BookSummary] = Field(default_factory=list, description="Books by this author")

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "AuthorResponse":
        return cls(
            id=_document_id(document),
            name=document["name"],
            country=document["country"],
            books=[BookSummary.from_reference(book) for book in document.get("books", [])],
        )


class CategoryResponse(BaseModel):
    """Category response model for API."""
    id: str = Field(..., description="Category id")
    name: str = Field(..., description="Category name")
    books: List[BookSummary] = Field(default_factory=list, description="Books in this category")

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "CategoryResponse":
        return cls(
            id=_document_id(document),
            name=document["name"],
            books=[BookSummary.from_reference(book) for book in document.get("books", [])],
        )


class BookResponse(BaseModel):
    """Book response model for API."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Book id")
    title: str = Field(..., description="Book title")
    author: Optional[AuthorSummary] = Field(None, description="Author of the book")
    categories: List[CategorySummary] = Field(default_factory=list, description="Categories of the book")
    cover_image: Optional[str] = Field(None, alias="coverImage", description="Cover image filename")
    cover_image_url: Optional[str] = Field(None, alias="coverImageUrl", description="Public URL of the cover")

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "BookResponse":
        cover_image = document.get("coverImage")
        return cls(
            id=_document_id(document),
            title=document["title"],
            author=AuthorSummary.from_reference(document.get("author")),
            categories=[CategorySummary.from_reference(category) for category in document.get("categories", [])],
            cover_image=cover_image,
            cover_image_url=CoverImageStorage.url_for(cover_image),
        )


# ── Envelope ──────────────────────────────────────────────────────────────

class APIResponse(BaseModel):
    """Uniform response envelope; unset keys are omitted from the JSON."""
    success: bool = Field(..., description="Whether the request succeeded")
    data: Optional[Any] = Field(None, description="Response payload")
    count: Optional[int] = Field(None, description="Number of items in data for list endpoints")
    message: Optional[str] = Field(None, description="Human readable message")
    error: Optional[str] = Field(None, description="Error detail")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
    transactions: Optional[bool] = Field(None, description="Whether relationship updates run in transactions")


def serialize(value: Any) -> Any:
    """Dump response models (by alias) so they can be placed in an envelope."""
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    if isinstance(value, list):
        return [serialize(item) for item in value]
    if isinstance(value, ObjectId):
        return str(value)
    return value
