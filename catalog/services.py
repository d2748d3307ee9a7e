"""
Catalog services: the operations behind the authors, categories and books
endpoints.

Services work on raw MongoDB documents and raise ``CatalogError`` subclasses;
the API layer turns both into the response envelope.
"""

from typing import Any, List, Optional, Sequence

import structlog
from bson import ObjectId

from .covers import CoverImageStorage
from .database import CatalogDatabase, Document
from .exceptions import ConflictError, NotFoundError, ValidationError
from .models import (
    AUTHORS,
    BOOKS,
    CATEGORIES,
    AuthorDocument,
    BookDocument,
    CategoryDocument,
    to_object_id,
)
from .relationships import BookRelationships

logger = structlog.get_logger(__name__)


def _clean(value: Any) -> Optional[str]:
    """Strip a text field; blank values count as not supplied."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _require_id(value: Any, resource: str) -> ObjectId:
    object_id = to_object_id(value)
    if object_id is None:
        raise NotFoundError(resource, str(value))
    return object_id


class AuthorService:
    """CRUD for authors. Books are listed through the ``books`` back references."""

    def __init__(self, database: CatalogDatabase):
        self.database = database

    async def _expand(self, authors: List[Document]) -> List[Document]:
        return await self.database.populate(authors, "books", BOOKS, projection=["title"])

    async def list_authors(self) -> List[Document]:
        authors = await self.database.find_all(AUTHORS)
        return await self._expand(authors)

    async def get_author(self, author_id: Any) -> Document:
        object_id = _require_id(author_id, "Author")
        author = await self.database.find_by_id(AUTHORS, object_id)
        if author is None:
            raise NotFoundError("Author", str(author_id))
        return (await self._expand([author]))[0]

    async def create_author(self, name: Any, country: Any) -> Document:
        name, country = _clean(name), _clean(country)
        if not name or not country:
            raise ValidationError("Name and country are required")

        author = await self.database.insert(
            AUTHORS, AuthorDocument(name=name, country=country).to_mongo()
        )
        logger.info("Author created", author_id=str(author["_id"]), name=name)
        return author

    async def update_author(self, author_id: Any, name: Any = None, country: Any = None) -> Document:
        object_id = _require_id(author_id, "Author")

        fields = {}
        if _clean(name):
            fields["name"] = _clean(name)
        if _clean(country):
            fields["country"] = _clean(country)

        if fields:
            author = await self.database.update_by_id(AUTHORS, object_id, fields)
        else:
            author = await self.database.find_by_id(AUTHORS, object_id)
        if author is None:
            raise NotFoundError("Author", str(author_id))

        logger.info("Author updated", author_id=str(object_id), fields=sorted(fields))
        return (await self._expand([author]))[0]

    async def delete_author(self, author_id: Any) -> Document:
        """
        Delete an author that no book points to.

        Raises:
            NotFoundError: no such author
            ConflictError: books still reference the author
        """
        object_id = _require_id(author_id, "Author")

        async with self.database.transaction() as session:
            author = await self.database.find_by_id(AUTHORS, object_id, session=session)
            if author is None:
                raise NotFoundError("Author", str(author_id))

            referencing = await self.database.count_referencing(BOOKS, "author", object_id, session=session)
            if referencing:
                raise ConflictError(
                    f"Author is referenced by {referencing} book(s); delete or reassign them first",
                    context={"author_id": str(object_id), "books": referencing},
                )

            await self.database.delete_by_id(AUTHORS, object_id, session=session)

        logger.info("Author deleted", author_id=str(object_id))
        return author


class CategoryService:
    """CRUD for categories. Deleting a category removes it from every book."""

    def __init__(self, database: CatalogDatabase):
        self.database = database

    async def _expand(self, categories: List[Document]) -> List[Document]:
        return await self.database.populate(categories, "books", BOOKS, projection=["title"])

    async def list_categories(self) -> List[Document]:
        categories = await self.database.find_all(CATEGORIES)
        return await self._expand(categories)

    async def get_category(self, category_id: Any) -> Document:
        object_id = _require_id(category_id, "Category")
        category = await self.database.find_by_id(CATEGORIES, object_id)
        if category is None:
            raise NotFoundError("Category", str(category_id))
        return (await self._expand([category]))[0]

    async def create_category(self, name: Any) -> Document:
        name = _clean(name)
        if not name:
            raise ValidationError("Name is required")

        category = await self.database.insert(CATEGORIES, CategoryDocument(name=name).to_mongo())
        logger.info("Category created", category_id=str(category["_id"]), name=name)
        return category

    async def update_category(self, category_id: Any, name: Any = None) -> Document:
        object_id = _require_id(category_id, "Category")

        name = _clean(name)
        if name:
            category = await self.database.update_by_id(CATEGORIES, object_id, {"name": name})
        else:
            category = await self.database.find_by_id(CATEGORIES, object_id)
        if category is None:
            raise NotFoundError("Category", str(category_id))

        logger.info("Category updated", category_id=str(object_id), renamed=bool(name))
        return (await self._expand([category]))[0]

    async def delete_category(self, category_id: Any) -> Document:
        object_id = _require_id(category_id, "Category")

        async with self.database.transaction() as session:
            category = await self.database.delete_by_id(CATEGORIES, object_id, session=session)
            if category is None:
                raise NotFoundError("Category", str(category_id))
            detached = await self.database.pull_everywhere(BOOKS, "categories", object_id, session=session)

        logger.info("Category deleted", category_id=str(object_id), books_detached=detached)
        return category


class BookService:
    """
    Book operations. Every mutation validates the forward references and
    updates the author/category back references in the same transaction.
    """

    def __init__(self, database: CatalogDatabase, cover_storage: Optional[CoverImageStorage] = None):
        self.database = database
        self.cover_storage = cover_storage
        self.relationships = BookRelationships(database)

    async def _expand(self, books: List[Document]) -> List[Document]:
        books = await self.database.populate(books, "author", AUTHORS, projection=["name", "country"])
        return await self.database.populate(books, "categories", CATEGORIES, projection=["name"])

    async def _discard_cover(self, filename: Optional[str]) -> None:
        if filename and self.cover_storage:
            await self.cover_storage.remove(filename)

    async def list_books(self) -> List[Document]:
        books = await self.database.find_all(BOOKS)
        return await self._expand(books)

    async def get_book(self, book_id: Any) -> Document:
        object_id = _require_id(book_id, "Book")
        book = await self.database.find_by_id(BOOKS, object_id)
        if book is None:
            raise NotFoundError("Book", str(book_id))
        return (await self._expand([book]))[0]

    async def create_book(
        self,
        title: Any,
        author: Any,
        categories: Optional[Sequence[Any]] = None,
        cover_image: Optional[str] = None,
    ) -> Document:
        """
        Create a book and register it with its author and categories.

        ``cover_image`` is an already stored file; it is removed again if the
        book is not committed.

        Raises:
            ValidationError: title/author missing, or a reference does not exist
        """
        try:
            title = _clean(title)
            if not title or not _clean(author):
                raise ValidationError("Title and author are required")

            async with self.database.transaction() as session:
                author_id = await self.relationships.resolve_author(author, session=session)
                category_ids = await self.relationships.resolve_categories(categories or [], session=session)

                document = BookDocument(
                    title=title,
                    author=author_id,
                    categories=category_ids,
                    cover_image=cover_image,
                ).to_mongo()
                book = await self.database.insert(BOOKS, document, session=session)
                await self.relationships.attach(book["_id"], author_id, category_ids, session=session)
        except Exception:
            await self._discard_cover(cover_image)
            raise

        logger.info(
            "Book created",
            book_id=str(book["_id"]),
            author_id=str(author_id),
            categories=len(category_ids),
        )
        return await self.get_book(book["_id"])

    async def update_book(
        self,
        book_id: Any,
        title: Any = None,
        author: Any = None,
        categories: Optional[Sequence[Any]] = None,
        cover_image: Optional[str] = None,
    ) -> Document:
        """
        Apply a partial update and migrate back references.

        ``categories=None`` leaves the categories alone; an empty sequence
        clears them. A new ``cover_image`` is removed again if the update is
        not committed; the replaced one is removed once it is.

        Raises:
            NotFoundError: no such book
            ValidationError: the new author or a new category does not exist
        """
        try:
            object_id = _require_id(book_id, "Book")

            async with self.database.transaction() as session:
                original = await self.database.find_by_id(BOOKS, object_id, session=session)
                if original is None:
                    raise NotFoundError("Book", str(book_id))

                fields = {}
                if _clean(title):
                    fields["title"] = _clean(title)

                new_author_id = None
                if _clean(author):
                    new_author_id = await self.relationships.resolve_author(author, session=session)
                    fields["author"] = new_author_id

                new_category_ids = None
                if categories is not None:
                    new_category_ids = await self.relationships.resolve_categories(categories, session=session)
                    fields["categories"] = new_category_ids

                if cover_image:
                    fields["coverImage"] = cover_image

                if fields:
                    updated = await self.database.update_by_id(BOOKS, object_id, fields, session=session)
                    if updated is None:
                        raise NotFoundError("Book", str(book_id))

                if new_author_id is not None:
                    await self.relationships.reassign_author(
                        object_id, original.get("author"), new_author_id, session=session
                    )
                if new_category_ids is not None:
                    await self.relationships.reassign_categories(
                        object_id, original.get("categories", []), new_category_ids, session=session
                    )
        except Exception:
            await self._discard_cover(cover_image)
            raise

        replaced_cover = original.get("coverImage")
        if cover_image and replaced_cover and replaced_cover != cover_image:
            await self._discard_cover(replaced_cover)

        logger.info("Book updated", book_id=str(object_id), fields=sorted(fields))
        return await self.get_book(object_id)

    async def delete_book(self, book_id: Any) -> Document:
        """Delete a book after removing it from its author and categories."""
        object_id = _require_id(book_id, "Book")

        async with self.database.transaction() as session:
            book = await self.database.find_by_id(BOOKS, object_id, session=session)
            if book is None:
                raise NotFoundError("Book", str(book_id))

            await self.relationships.detach(book, session=session)
            await self.database.delete_by_id(BOOKS, object_id, session=session)

        await self._discard_cover(book.get("coverImage"))

        logger.info("Book deleted", book_id=str(object_id))
        return book
