"""
Book endpoints.

Create and update accept either a multipart form (``title``, ``author``,
repeated ``categories`` or ``categories[]``, optional ``coverImage`` file) or
a JSON body with the same fields.
"""

import json
from typing import NamedTuple, Optional, Tuple

from fastapi import APIRouter, Depends, Request, status
from pydantic import ValidationError as PydanticValidationError
from starlette.datastructures import UploadFile

from api.dependencies import get_book_service, get_cover_storage
from api.errors import wrap_errors
from api.models import BookPayload, BookResponse
from api.responses import success_response
from catalog.covers import CoverImageStorage
from catalog.exceptions import ValidationError
from catalog.services import BookService

router = APIRouter(prefix="/api/books", tags=["Books"])

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")
CATEGORY_FIELDS = ("categories", "categories[]")


class CoverUpload(NamedTuple):
    filename: Optional[str]
    content: bytes


def _text(value) -> Optional[str]:
    return value if isinstance(value, str) else None


async def read_cover(upload: UploadFile, storage: CoverImageStorage) -> CoverUpload:
    """
    Read an uploaded cover without holding more than the size limit in memory.

    The declared size is checked before reading, then at most one byte past
    the limit is read to catch uploads that under-report their size.
    """
    storage.validate_extension(upload.filename)
    if upload.size is not None:
        storage.validate_size(upload.size)

    content = await upload.read(storage.max_size + 1)
    storage.validate_size(len(content))
    return CoverUpload(upload.filename, content)


async def read_book_request(
    request: Request, storage: CoverImageStorage
) -> Tuple[BookPayload, Optional[CoverUpload]]:
    """
    Parse a book create/update request.

    The body is read by hand rather than declared as an endpoint parameter
    because the same route accepts either a multipart form (with an optional
    ``coverImage`` file) or a JSON object, and FastAPI binds a route to one
    body encoding. JSON errors are reported as catalog validation errors so
    both encodings fail with the same envelope.

    ``categories`` stays None when the field is absent, so an update can tell
    "leave alone" from "clear".
    """
    content_type = request.headers.get("content-type", "")

    if content_type.startswith(FORM_CONTENT_TYPES):
        async with request.form() as form:
            categories = None
            if any(field in form for field in CATEGORY_FIELDS):
                categories = [
                    value.strip()
                    for field in CATEGORY_FIELDS
                    for value in form.getlist(field)
                    if isinstance(value, str) and value.strip()
                ]

            cover = None
            upload = form.get("coverImage")
            if isinstance(upload, UploadFile) and upload.filename:
                cover = await read_cover(upload, storage)

            payload = BookPayload(
                title=_text(form.get("title")),
                author=_text(form.get("author")),
                categories=categories,
            )
        return payload, cover

    body = await request.body()
    if not body.strip():
        return BookPayload(), None

    try:
        data = json.loads(body)
    except ValueError:
        raise ValidationError("Malformed JSON body")
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    if isinstance(data.get("categories"), str):
        data["categories"] = [data["categories"]]

    try:
        return BookPayload.model_validate(data), None
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise ValidationError(f"Invalid value for '{field}': {first['msg']}", field=field)


async def _store_cover(storage: CoverImageStorage, cover: Optional[CoverUpload]) -> Optional[str]:
    if cover is None:
        return None
    with wrap_errors("Error storing cover image"):
        return await storage.save(cover.filename, cover.content)


@router.get("")
async def list_books(service: BookService = Depends(get_book_service)):
    """Get all books with their author and categories."""
    with wrap_errors("Error fetching books"):
        books = await service.list_books()

    data = [BookResponse.from_document(book) for book in books]
    return success_response(data, count=len(data))


@router.get("/{book_id}")
async def get_book(book_id: str, service: BookService = Depends(get_book_service)):
    with wrap_errors("Error fetching book", book_id=book_id):
        book = await service.get_book(book_id)

    return success_response(BookResponse.from_document(book))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_book(
    request: Request,
    service: BookService = Depends(get_book_service),
    storage: CoverImageStorage = Depends(get_cover_storage),
):
    """
    Create a book.

    - **title**: Book title (required)
    - **author**: Id of an existing author (required)
    - **categories**: Ids of existing categories
    - **coverImage**: Cover image file (multipart only)

    The stored cover is removed by the service if the book is not committed.
    """
    payload, cover = await read_book_request(request, storage)
    cover_image = await _store_cover(storage, cover)

    with wrap_errors("Error creating book"):
        book = await service.create_book(
            payload.title, payload.author, payload.categories, cover_image=cover_image
        )

    return success_response(BookResponse.from_document(book), status_code=status.HTTP_201_CREATED)


@router.put("/{book_id}")
async def update_book(
    book_id: str,
    request: Request,
    service: BookService = Depends(get_book_service),
    storage: CoverImageStorage = Depends(get_cover_storage),
):
    """Update any of title, author, categories and cover image of a book."""
    payload, cover = await read_book_request(request, storage)
    cover_image = await _store_cover(storage, cover)

    with wrap_errors("Error updating book", book_id=book_id):
        book = await service.update_book(
            book_id,
            title=payload.title,
            author=payload.author,
            categories=payload.categories,
            cover_image=cover_image,
        )

    return success_response(BookResponse.from_document(book))


@router.delete("/{book_id}")
async def delete_book(book_id: str, service: BookService = Depends(get_book_service)):
    """Delete a book and remove it from its author and categories."""
    with wrap_errors("Error deleting book", book_id=book_id):
        await service.delete_book(book_id)

    return success_response(message="Book deleted successfully")
