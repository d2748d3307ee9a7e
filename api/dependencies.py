"""
FastAPI dependencies handing the database handle and services to endpoints.

The database handle and cover storage live on ``app.state``; they are set by
the application lifespan (or directly by tests) rather than kept in module
globals.
"""

from fastapi import Depends, Request

from catalog.covers import CoverImageStorage
from catalog.database import CatalogDatabase
from catalog.exceptions import ServiceUnavailableError
from catalog.services import AuthorService, BookService, CategoryService


def get_database(request: Request) -> CatalogDatabase:
    database = getattr(request.app.state, "database", None)
    if database is None:
        raise ServiceUnavailableError()
    return database


def get_cover_storage(request: Request) -> CoverImageStorage:
    return request.app.state.cover_storage


def get_author_service(database: CatalogDatabase = Depends(get_database)) -> AuthorService:
    return AuthorService(database)


def get_category_service(database: CatalogDatabase = Depends(get_database)) -> CategoryService:
    return CategoryService(database)


def get_book_service(
    database: CatalogDatabase = Depends(get_database),
    cover_storage: CoverImageStorage = Depends(get_cover_storage),
) -> BookService:
    return BookService(database, cover_storage)
