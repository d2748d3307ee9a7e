"""
Category endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from api.dependencies import get_category_service
from api.errors import wrap_errors
from api.models import CategoryCreate, CategoryResponse, CategoryUpdate
from api.responses import success_response
from catalog.services import CategoryService

router = APIRouter(prefix="/api/categories", tags=["Categories"])


@router.get("")
async def list_categories(service: CategoryService = Depends(get_category_service)):
    """Get all categories with the titles of their books."""
    with wrap_errors("Error fetching categories"):
        categories = await service.list_categories()

    data = [CategoryResponse.from_document(category) for category in categories]
    return success_response(data, count=len(data))


@router.get("/{category_id}")
async def get_category(category_id: str, service: CategoryService = Depends(get_category_service)):
    with wrap_errors("Error fetching category", category_id=category_id):
        category = await service.get_category(category_id)

    return success_response(CategoryResponse.from_document(category))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: Optional[CategoryCreate] = None,
    service: CategoryService = Depends(get_category_service),
):
    """Create a category. **name** is required."""
    payload = payload or CategoryCreate()
    with wrap_errors("Error creating category"):
        category = await service.create_category(payload.name)

    return success_response(CategoryResponse.from_document(category), status_code=status.HTTP_201_CREATED)


@router.put("/{category_id}")
async def update_category(
    category_id: str,
    payload: Optional[CategoryUpdate] = None,
    service: CategoryService = Depends(get_category_service),
):
    payload = payload or CategoryUpdate()
    with wrap_errors("Error updating category", category_id=category_id):
        category = await service.update_category(category_id, name=payload.name)

    return success_response(CategoryResponse.from_document(category))


@router.delete("/{category_id}")
async def delete_category(category_id: str, service: CategoryService = Depends(get_category_service)):
    """Delete a category and remove it from every book that lists it."""
    with wrap_errors("Error deleting category", category_id=category_id):
        await service.delete_category(category_id)

    return success_response(message="Category deleted successfully")
