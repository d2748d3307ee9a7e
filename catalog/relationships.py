"""
Back-reference maintenance between books and their authors and categories.

A book's ``author`` and ``categories`` fields are authoritative. The ``books``
arrays on authors and categories mirror them and are rewritten here whenever a
book is created, re-assigned or deleted. Callers pass the transaction session
so the book write and the back-reference writes commit together.
"""

from typing import Any, Iterable, List, Optional, Sequence, Tuple

import structlog
from bson import ObjectId

from .database import CatalogDatabase, Document, Session
from .exceptions import ValidationError
from .models import AUTHORS, CATEGORIES, to_object_id, unique_ids

logger = structlog.get_logger(__name__)

BACK_REFERENCE_FIELD = "books"


def diff_references(
    old_ids: Sequence[ObjectId], new_ids: Sequence[ObjectId]
) -> Tuple[List[ObjectId], List[ObjectId]]:
    """
    Split a change of reference set into the ids to detach and to attach.

    Returns ``(removed, added)``: ids only in ``old_ids`` and ids only in
    ``new_ids``. Ids present in both are in neither list.
    """
    old_set = set(old_ids)
    new_set = set(new_ids)
    removed = [object_id for object_id in unique_ids(old_ids) if object_id not in new_set]
    added = [object_id for object_id in unique_ids(new_ids) if object_id not in old_set]
    return removed, added


class BookRelationships:
    """Validates a book's forward references and keeps back references in step."""

    def __init__(self, database: CatalogDatabase):
        self.database = database

    async def resolve_author(self, author_id: Any, session: Session = None) -> ObjectId:
        """
        Return the ObjectId of an existing author.

        Raises:
            ValidationError: the id is malformed or has no document
        """
        object_id = to_object_id(author_id)
        if object_id is None or await self.database.find_by_id(
            AUTHORS, object_id, projection=["_id"], session=session
        ) is None:
            raise ValidationError("Author not found", field="author", context={"author": str(author_id)})
        return object_id

    async def resolve_categories(
        self, category_ids: Iterable[Any], session: Session = None
    ) -> List[ObjectId]:
        """
        Return the ObjectIds of existing categories, duplicates collapsed.

        The whole set is rejected if a single id is malformed or unknown.

        Raises:
            ValidationError: one or more categories do not exist
        """
        raw_ids = list(category_ids)
        object_ids = [to_object_id(category_id) for category_id in raw_ids]
        if any(object_id is None for object_id in object_ids):
            raise ValidationError(
                "One or more categories not found",
                field="categories",
                context={"categories": [str(category_id) for category_id in raw_ids]},
            )

        object_ids = unique_ids(object_ids)
        if not object_ids:
            return []

        found = await self.database.find_by_ids(
            CATEGORIES, object_ids, projection=["_id"], session=session
        )
        if len(found) != len(object_ids):
            missing = set(object_ids) - {category["_id"] for category in found}
            raise ValidationError(
                "One or more categories not found",
                field="categories",
                context={"missing": [str(object_id) for object_id in missing]},
            )
        return object_ids

    async def attach(
        self,
        book_id: ObjectId,
        author_id: ObjectId,
        category_ids: Sequence[ObjectId],
        session: Session = None,
    ) -> None:
        """Register a new book with its author and categories."""
        await self.database.add_to_set(AUTHORS, [author_id], BACK_REFERENCE_FIELD, book_id, session=session)
        await self.database.add_to_set(CATEGORIES, category_ids, BACK_REFERENCE_FIELD, book_id, session=session)
        logger.debug(
            "Attached book to owners",
            book_id=str(book_id),
            author_id=str(author_id),
            categories=len(category_ids),
        )

    async def reassign_author(
        self,
        book_id: ObjectId,
        old_author_id: Optional[ObjectId],
        new_author_id: ObjectId,
        session: Session = None,
    ) -> bool:
        """
        Move the book's back reference from one author to another.

        Returns False without writing when the author did not change.
        """
        if old_author_id == new_author_id:
            return False
        if old_author_id is not None:
            await self.database.pull(AUTHORS, [old_author_id], BACK_REFERENCE_FIELD, book_id, session=session)
        await self.database.add_to_set(AUTHORS, [new_author_id], BACK_REFERENCE_FIELD, book_id, session=session)
        logger.debug(
            "Reassigned book author",
            book_id=str(book_id),
            old_author_id=str(old_author_id),
            new_author_id=str(new_author_id),
        )
        return True

    async def reassign_categories(
        self,
        book_id: ObjectId,
        old_category_ids: Sequence[ObjectId],
        new_category_ids: Sequence[ObjectId],
        session: Session = None,
    ) -> Tuple[List[ObjectId], List[ObjectId]]:
        """
        Move the book's back references to match a new category set.

        Only categories entering or leaving the set are written.
        Returns ``(removed, added)``.
        """
        removed, added = diff_references(old_category_ids, new_category_ids)
        if removed:
            await self.database.pull(CATEGORIES, removed, BACK_REFERENCE_FIELD, book_id, session=session)
        if added:
            await self.database.add_to_set(CATEGORIES, added, BACK_REFERENCE_FIELD, book_id, session=session)
        if removed or added:
            logger.debug(
                "Reassigned book categories",
                book_id=str(book_id),
                removed=[str(object_id) for object_id in removed],
                added=[str(object_id) for object_id in added],
            )
        return removed, added

    async def detach(self, book: Document, session: Session = None) -> None:
        """Remove a book's id from its author and every category it belongs to."""
        book_id = book["_id"]
        if book.get("author") is not None:
            await self.database.pull(AUTHORS, [book["author"]], BACK_REFERENCE_FIELD, book_id, session=session)
        await self.database.pull(
            CATEGORIES, book.get("categories", []), BACK_REFERENCE_FIELD, book_id, session=session
        )
        logger.debug("Detached book from owners", book_id=str(book_id))
