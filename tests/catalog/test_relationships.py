"""
Tests for back-reference maintenance on book create, update and delete.
"""

import pytest
import pytest_asyncio
from bson import ObjectId

from catalog.exceptions import NotFoundError, ValidationError
from catalog.models import AUTHORS, BOOKS, CATEGORIES
from catalog.relationships import BookRelationships, diff_references
from catalog.services import BookService


def books_of(database, collection, owner_id):
    return database.get(collection, owner_id)["books"]


class TestDiffReferences:
    """Test cases for diff_references."""

    def test_disjoint_and_shared_ids(self):
        c1, c2, c3 = ObjectId(), ObjectId(), ObjectId()
        removed, added = diff_references([c1, c2], [c2, c3])
        assert removed == [c1]
        assert added == [c3]

    def test_same_set_in_other_order(self):
        c1, c2 = ObjectId(), ObjectId()
        assert diff_references([c1, c2], [c2, c1]) == ([], [])

    def test_duplicates_are_reported_once(self):
        c1, c2 = ObjectId(), ObjectId()
        removed, added = diff_references([c1, c1], [c2, c2])
        assert removed == [c1]
        assert added == [c2]

    def test_clearing(self):
        c1 = ObjectId()
        assert diff_references([c1], []) == ([c1], [])


class TestBookCreation:
    """Book creation registers the book with its author and categories."""

    @pytest.mark.asyncio
    async def test_create_with_author_and_two_categories(self, catalog):
        database, ids = catalog
        service = BookService(database)

        book = await service.create_book(
            "The Hobbit", str(ids["tolkien"]), [str(ids["fantasy"]), str(ids["classic"])]
        )
        book_id = book["_id"]

        assert database.get(BOOKS, book_id)["title"] == "The Hobbit"
        assert books_of(database, AUTHORS, ids["tolkien"]).count(book_id) == 1
        assert books_of(database, CATEGORIES, ids["fantasy"]).count(book_id) == 1
        assert books_of(database, CATEGORIES, ids["classic"]).count(book_id) == 1
        assert books_of(database, CATEGORIES, ids["adventure"]) == []

    @pytest.mark.asyncio
    async def test_created_book_is_populated(self, catalog):
        database, ids = catalog
        service = BookService(database)

        book = await service.create_book("The Hobbit", str(ids["tolkien"]), [str(ids["fantasy"])])

        assert book["author"] == {
            "_id": ids["tolkien"],
            "name": "J. R. R. Tolkien",
            "country": "United Kingdom",
        }
        assert book["categories"] == [{"_id": ids["fantasy"], "name": "Fantasy"}]

    @pytest.mark.asyncio
    async def test_duplicate_categories_are_collapsed(self, catalog):
        database, ids = catalog
        service = BookService(database)
        fantasy = str(ids["fantasy"])

        book = await service.create_book("The Hobbit", str(ids["tolkien"]), [fantasy, fantasy])

        assert database.get(BOOKS, book["_id"])["categories"] == [ids["fantasy"]]
        assert books_of(database, CATEGORIES, ids["fantasy"]) == [book["_id"]]

    @pytest.mark.asyncio
    async def test_unknown_author_changes_nothing(self, catalog):
        database, ids = catalog
        service = BookService(database)
        before = database.snapshot()

        with pytest.raises(ValidationError) as exc_info:
            await service.create_book("Orphan", str(ObjectId()), [str(ids["fantasy"])])

        assert exc_info.value.message == "Author not found"
        assert database.snapshot() == before
        assert database.writes == []

    @pytest.mark.asyncio
    async def test_malformed_author_id_is_not_found(self, catalog):
        database, _ = catalog
        service = BookService(database)

        with pytest.raises(ValidationError) as exc_info:
            await service.create_book("Orphan", "not-an-id")

        assert exc_info.value.message == "Author not found"
        assert database.writes == []

    @pytest.mark.asyncio
    async def test_one_unknown_category_rejects_the_whole_set(self, catalog):
        database, ids = catalog
        service = BookService(database)
        before = database.snapshot()

        with pytest.raises(ValidationError) as exc_info:
            await service.create_book(
                "The Hobbit", str(ids["tolkien"]), [str(ids["fantasy"]), str(ObjectId())]
            )

        assert exc_info.value.message == "One or more categories not found"
        assert database.snapshot() == before

    @pytest.mark.asyncio
    @pytest.mark.parametrize("title, author", [(None, "x"), ("  ", "x"), ("Title", None), ("Title", "")])
    async def test_title_and_author_are_required(self, catalog, title, author):
        database, _ = catalog
        service = BookService(database)

        with pytest.raises(ValidationError) as exc_info:
            await service.create_book(title, author)

        assert exc_info.value.message == "Title and author are required"


class TestBookUpdate:
    """Book update migrates back references."""

    @pytest_asyncio.fixture
    async def hobbit(self, catalog):
        database, ids = catalog
        service = BookService(database)
        book = await service.create_book(
            "The Hobbit", str(ids["tolkien"]), [str(ids["fantasy"]), str(ids["classic"])]
        )
        database.writes.clear()
        return database, ids, service, book["_id"]

    @pytest.mark.asyncio
    async def test_change_author(self, hobbit):
        database, ids, service, book_id = hobbit

        await service.update_book(str(book_id), author=str(ids["le_guin"]))

        assert book_id not in books_of(database, AUTHORS, ids["tolkien"])
        assert books_of(database, AUTHORS, ids["le_guin"]).count(book_id) == 1
        assert database.get(BOOKS, book_id)["author"] == ids["le_guin"]

    @pytest.mark.asyncio
    async def test_change_categories_touches_only_the_difference(self, hobbit):
        database, ids, service, book_id = hobbit
        classic_before = list(books_of(database, CATEGORIES, ids["classic"]))

        await service.update_book(
            str(book_id), categories=[str(ids["classic"]), str(ids["adventure"])]
        )

        assert book_id not in books_of(database, CATEGORIES, ids["fantasy"])
        assert books_of(database, CATEGORIES, ids["classic"]) == classic_before
        assert books_of(database, CATEGORIES, ids["adventure"]).count(book_id) == 1
        touched = {(op, document_id) for op, collection, document_id in database.writes if collection == CATEGORIES}
        assert touched == {("pull", ids["fantasy"]), ("add_to_set", ids["adventure"])}

    @pytest.mark.asyncio
    async def test_same_author_and_categories_write_no_back_references(self, hobbit):
        database, ids, service, book_id = hobbit

        await service.update_book(
            str(book_id),
            author=str(ids["tolkien"]),
            categories=[str(ids["classic"]), str(ids["fantasy"])],
        )

        assert [write for write in database.writes if write[1] != BOOKS] == []

    @pytest.mark.asyncio
    async def test_empty_categories_clear_the_book(self, hobbit):
        database, ids, service, book_id = hobbit

        book = await service.update_book(str(book_id), categories=[])

        assert book["categories"] == []
        assert book_id not in books_of(database, CATEGORIES, ids["fantasy"])
        assert book_id not in books_of(database, CATEGORIES, ids["classic"])

    @pytest.mark.asyncio
    async def test_omitted_categories_are_left_alone(self, hobbit):
        database, ids, service, book_id = hobbit

        book = await service.update_book(str(book_id), title="There and Back Again")

        assert book["title"] == "There and Back Again"
        assert [category["_id"] for category in book["categories"]] == [ids["fantasy"], ids["classic"]]

    @pytest.mark.asyncio
    async def test_repeating_an_update_is_idempotent(self, hobbit):
        database, ids, service, book_id = hobbit
        changes = dict(author=str(ids["le_guin"]), categories=[str(ids["adventure"])])

        await service.update_book(str(book_id), **changes)
        once = database.snapshot()
        await service.update_book(str(book_id), **changes)

        assert database.snapshot() == once

    @pytest.mark.asyncio
    async def test_unknown_new_author_changes_nothing(self, hobbit):
        database, _, service, book_id = hobbit
        before = database.snapshot()

        with pytest.raises(ValidationError):
            await service.update_book(str(book_id), title="Changed", author=str(ObjectId()))

        assert database.snapshot() == before

    @pytest.mark.asyncio
    async def test_unknown_new_category_changes_nothing(self, hobbit):
        database, _, service, book_id = hobbit
        before = database.snapshot()

        with pytest.raises(ValidationError):
            await service.update_book(str(book_id), categories=[str(ObjectId())])

        assert database.snapshot() == before

    @pytest.mark.asyncio
    async def test_missing_book(self, hobbit):
        _, _, service, _ = hobbit

        with pytest.raises(NotFoundError) as exc_info:
            await service.update_book(str(ObjectId()), title="Nothing")

        assert exc_info.value.message == "Book not found"


class TestBookDeletion:
    """Book deletion removes the book from its author and categories."""

    @pytest.mark.asyncio
    async def test_delete_detaches_and_removes(self, catalog):
        database, ids = catalog
        service = BookService(database)
        book = await service.create_book(
            "The Hobbit", str(ids["tolkien"]), [str(ids["fantasy"]), str(ids["classic"])]
        )
        book_id = book["_id"]

        await service.delete_book(str(book_id))

        assert database.get(BOOKS, book_id) is None
        assert book_id not in books_of(database, AUTHORS, ids["tolkien"])
        assert book_id not in books_of(database, CATEGORIES, ids["fantasy"])
        assert book_id not in books_of(database, CATEGORIES, ids["classic"])
        with pytest.raises(NotFoundError):
            await service.get_book(str(book_id))

    @pytest.mark.asyncio
    async def test_delete_missing_book(self, database):
        service = BookService(database)

        with pytest.raises(NotFoundError):
            await service.delete_book(str(ObjectId()))


class TestResolve:
    """Test cases for reference resolution."""

    @pytest.mark.asyncio
    async def test_resolve_categories_keeps_first_occurrence_order(self, catalog):
        database, ids = catalog
        relationships = BookRelationships(database)

        resolved = await relationships.resolve_categories(
            [str(ids["classic"]), str(ids["fantasy"]), str(ids["classic"])]
        )

        assert resolved == [ids["classic"], ids["fantasy"]]

    @pytest.mark.asyncio
    async def test_resolve_categories_rejects_malformed_id(self, catalog):
        database, ids = catalog
        relationships = BookRelationships(database)

        with pytest.raises(ValidationError):
            await relationships.resolve_categories([str(ids["fantasy"]), "123"])

    @pytest.mark.asyncio
    async def test_reassign_same_author_returns_false(self, catalog):
        database, ids = catalog
        relationships = BookRelationships(database)

        changed = await relationships.reassign_author(ObjectId(), ids["tolkien"], ids["tolkien"])

        assert changed is False
        assert database.writes == []
