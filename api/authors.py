"""
Author endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from api.dependencies import get_author_service
from api.errors import wrap_errors
from api.models import AuthorCreate, AuthorResponse, AuthorUpdate
from api.responses import success_response
from catalog.services import AuthorService

router = APIRouter(prefix="/api/authors", tags=["Authors"])


@router.get("")
async def list_authors(service: AuthorService = Depends(get_author_service)):
    """Get all authors with the titles of their books."""
    with wrap_errors("Error fetching authors"):
        authors = await service.list_authors()

    data = [AuthorResponse.from_document(author) for author in authors]
    return success_response(data, count=len(data))


@router.get("/{author_id}")
async def get_author(author_id: str, service: AuthorService = Depends(get_author_service)):
    """Get a single author by id."""
    with wrap_errors("Error fetching author", author_id=author_id):
        author = await service.get_author(author_id)

    return success_response(AuthorResponse.from_document(author))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_author(
    payload: Optional[AuthorCreate] = None,
    service: AuthorService = Depends(get_author_service),
):
    """
    Create an author.

    - **name**: Author name (required)
    - **country**: Author country (required)
    """
    payload = payload or AuthorCreate()
    with wrap_errors("Error creating author"):
        author = await service.create_author(payload.name, payload.country)

    return success_response(AuthorResponse.from_document(author), status_code=status.HTTP_201_CREATED)


@router.put("/{author_id}")
async def update_author(
    author_id: str,
    payload: Optional[AuthorUpdate] = None,
    service: AuthorService = Depends(get_author_service),
):
    """Update the name and/or country of an author."""
    payload = payload or AuthorUpdate()
    with wrap_errors("Error updating author", author_id=author_id):
        author = await service.update_author(author_id, name=payload.name, country=payload.country)

    return success_response(AuthorResponse.from_document(author))


@router.delete("/{author_id}")
async def delete_author(author_id: str, service: AuthorService = Depends(get_author_service)):
    """Delete an author. Rejected with 409 while books still reference it."""
    with wrap_errors("Error deleting author", author_id=author_id):
        await service.delete_author(author_id)

    return success_response(message="Author deleted successfully")
