"""
Reference integrity audit and repair.

Back-reference arrays are derived from the books' forward references. When
the server runs without transactions, or documents were edited by hand, the
two can drift apart; this module reports the drift and rebuilds the derived
side.
"""

from collections import Counter
from typing import Dict, List

import structlog
from bson import ObjectId
from pydantic import BaseModel, Field

from .database import CatalogDatabase, Document
from .models import AUTHORS, BOOKS, CATEGORIES, unique_ids

logger = structlog.get_logger(__name__)


class ReferenceIssue(BaseModel):
    """One back reference that disagrees with the books collection."""
    collection: str = Field(..., description="Owner collection (authors or categories)")
    owner_id: str = Field(..., description="Author or category id")
    book_id: str = Field(..., description="Book id concerned")


class DanglingReference(BaseModel):
    """A book pointing at an author or category that does not exist."""
    book_id: str
    field: str
    missing_id: str


class ReferenceReport(BaseModel):
    """Result of an audit run."""
    missing: List[ReferenceIssue] = Field(default_factory=list)
    stale: List[ReferenceIssue] = Field(default_factory=list)
    duplicates: List[ReferenceIssue] = Field(default_factory=list)
    dangling: List[DanglingReference] = Field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not (self.missing or self.stale or self.duplicates or self.dangling)


class RepairResult(BaseModel):
    """Counts of documents rewritten by a repair run."""
    owners_rewritten: int = 0
    books_cleaned: int = 0
    dangling_authors: List[str] = Field(default_factory=list)


def _expected_back_references(
    books: List[Document], owners: List[Document], field: str
) -> Dict[ObjectId, List[ObjectId]]:
    """Map each existing owner id to the ids of the books pointing at it, in book order."""
    expected = {owner["_id"]: [] for owner in owners}
    for book in books:
        value = book.get(field)
        targets = value if isinstance(value, list) else [value]
        for target in unique_ids(t for t in targets if t is not None):
            if target in expected:
                expected[target].append(book["_id"])
    return expected


class ReferenceAuditor:
    """Compares back references with forward references and fixes the back side."""

    def __init__(self, database: CatalogDatabase):
        self.database = database

    async def _load(self):
        authors = await self.database.find_all(AUTHORS)
        categories = await self.database.find_all(CATEGORIES)
        books = await self.database.find_all(BOOKS)
        return authors, categories, books

    async def audit(self) -> ReferenceReport:
        authors, categories, books = await self._load()
        report = ReferenceReport()

        for collection, owners, field in (
            (AUTHORS, authors, "author"),
            (CATEGORIES, categories, "categories"),
        ):
            expected = _expected_back_references(books, owners, field)
            for owner in owners:
                actual = owner.get("books", [])
                wanted = set(expected[owner["_id"]])
                counts = Counter(actual)

                for book_id in unique_ids(actual):
                    issue = ReferenceIssue(collection=collection, owner_id=str(owner["_id"]), book_id=str(book_id))
                    if book_id not in wanted:
                        report.stale.append(issue)
                    if counts[book_id] > 1:
                        report.duplicates.append(issue)
                for book_id in expected[owner["_id"]]:
                    if book_id not in counts:
                        report.missing.append(
                            ReferenceIssue(collection=collection, owner_id=str(owner["_id"]), book_id=str(book_id))
                        )

        author_ids = {author["_id"] for author in authors}
        category_ids = {category["_id"] for category in categories}
        for book in books:
            if book.get("author") not in author_ids:
                report.dangling.append(
                    DanglingReference(book_id=str(book["_id"]), field="author", missing_id=str(book.get("author")))
                )
            for category_id in book.get("categories", []):
                if category_id not in category_ids:
                    report.dangling.append(
                        DanglingReference(book_id=str(book["_id"]), field="categories", missing_id=str(category_id))
                    )

        logger.info(
            "Reference audit completed",
            missing=len(report.missing),
            stale=len(report.stale),
            duplicates=len(report.duplicates),
            dangling=len(report.dangling),
        )
        return report

    async def repair(self) -> RepairResult:
        """
        Rebuild every ``books`` array from the forward references.

        Ids that stay keep their position, missing ones are appended. Unknown
        category ids are pulled from books; unknown authors are only reported
        because a book cannot exist without one.
        """
        authors, categories, books = await self._load()
        result = RepairResult()

        for collection, owners, field in (
            (AUTHORS, authors, "author"),
            (CATEGORIES, categories, "categories"),
        ):
            expected = _expected_back_references(books, owners, field)
            for owner in owners:
                actual = owner.get("books", [])
                wanted = expected[owner["_id"]]
                wanted_set = set(wanted)
                kept = [book_id for book_id in unique_ids(actual) if book_id in wanted_set]
                kept_set = set(kept)
                rebuilt = kept + [book_id for book_id in wanted if book_id not in kept_set]
                if rebuilt != actual:
                    await self.database.update_by_id(collection, owner["_id"], {"books": rebuilt})
                    result.owners_rewritten += 1

        author_ids = {author["_id"] for author in authors}
        category_ids = {category["_id"] for category in categories}
        for book in books:
            if book.get("author") not in author_ids:
                result.dangling_authors.append(str(book["_id"]))
            current = book.get("categories", [])
            valid = [category_id for category_id in unique_ids(current) if category_id in category_ids]
            if valid != current:
                await self.database.update_by_id(BOOKS, book["_id"], {"categories": valid})
                result.books_cleaned += 1

        logger.info(
            "Reference repair completed",
            owners_rewritten=result.owners_rewritten,
            books_cleaned=result.books_cleaned,
            dangling_authors=len(result.dangling_authors),
        )
        return result
