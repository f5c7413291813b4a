"""
Category routes, including the public category product pages.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from catalog_backend.cache import ResponseCache
from catalog_backend.catalog import (
    delete_category_cascade,
    find_category,
    list_products,
    product_summary,
)
from catalog_backend.db import (
    UNCATEGORIZED,
    Category,
    ProductCategory,
    User,
    transaction,
)
from catalog_backend.dependencies import (
    get_response_cache,
    get_session,
    get_storage_client,
)
from catalog_backend.errors import ApiError, api_response
from catalog_backend.helpers import normalize_text, page_info, parse_positive_int
from catalog_backend.images import delete_images
from catalog_backend.schemas import CategoryRequest
from catalog_backend.security import ADMIN, MANAGER, PRODUCT_MANAGER, current_user, require_roles
from catalog_backend.storage import StorageClient

logger = logging.getLogger(__name__)

router = APIRouter()

manage_catalog = require_roles(ADMIN, MANAGER, PRODUCT_MANAGER)


def _category_name(name: Optional[str]) -> str:
    if not name or not name.strip():
        raise ApiError(400, "Category name is required")
    return name.lower().strip()


def _with_subcategories(category: Category) -> dict:
    data = category.as_dict()
    data["subCategories"] = [sub.as_dict() for sub in category.subcategories]
    return data


@router.get("/products")
def category_products(
    category: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    session: Session = Depends(get_session),
):
    page_num = parse_positive_int(page, 1)
    limit_num = parse_positive_int(limit, 1000)
    offset = (page_num - 1) * limit_num

    category_id = None
    if category and category != "all":
        match = find_category(session, normalize_text(category))
        if match is None:
            return {
                "success": False,
                "data": {
                    "products": [],
                    "totalProducts": 0,
                    "totalPages": 0,
                    "currentPage": page_num,
                },
                "message": "Category not found",
            }
        category_id = match.id

    products, total = list_products(
        session, category_id=category_id, offset=offset, limit=limit_num
    )
    return {
        "success": True,
        "data": {
            "products": [product_summary(p) for p in products],
            "totalProducts": total,
            **page_info(total, page_num, limit_num),
        },
        "message": "Products fetched successfully",
    }


@router.get("/with-subcategories")
def category_with_subcategories(
    category: Optional[str] = None, session: Session = Depends(get_session)
):
    if not category or category == "all":
        categories = session.scalars(
            select(Category)
            .options(selectinload(Category.subcategories))
            .order_by(Category.created_at.asc())
        ).all()
        data = [_with_subcategories(c) for c in categories]
    else:
        term = category.lower().replace("-", " ").replace("&", "and").strip()
        match = find_category(session, term)
        if match is None:
            raise ApiError(404, "Category not found")
        data = _with_subcategories(match)
    return {
        "success": True,
        "data": data,
        "message": "Category data fetched successfully",
    }


@router.get("/length")
def categories_length(
    user: User = Depends(current_user),
    session: Session = Depends(get_session),
):
    total = session.scalar(select(func.count()).select_from(Category))
    return api_response(200, "Categories length retrieved successfully", total)


@router.get("/length-date")
def categories_length_and_date(
    user: User = Depends(current_user),
    session: Session = Depends(get_session),
):
    dates = session.scalars(select(Category.created_at)).all()
    return api_response(
        200,
        "Total categories and creation dates retrieved successfully",
        {
            "totalCategories": len(dates),
            "creationDates": [d.date().isoformat() for d in dates],
        },
    )


@router.get("/{category}/subcategories")
def category_subcategories(category: str, session: Session = Depends(get_session)):
    match = session.scalars(
        select(Category).where(func.lower(Category.name) == category.lower().strip())
    ).first()
    if match is None:
        raise ApiError(404, "Category not found")
    data = [
        {"id": sub.id, "name": sub.name, "categoryId": sub.category_id}
        for sub in match.subcategories
    ]
    return api_response(200, "Subcategories fetched successfully", data)


@router.post("", status_code=201)
def create_category(
    payload: CategoryRequest,
    user: User = Depends(manage_catalog),
    session: Session = Depends(get_session),
    cache: ResponseCache = Depends(get_response_cache),
):
    name = _category_name(payload.name)
    if session.scalars(select(Category).where(Category.name == name)).first():
        raise ApiError(400, "Category with this name already exists")
    category = Category(name=name)
    try:
        with transaction(session):
            session.add(category)
    except IntegrityError:
        raise ApiError(400, "Category with this name already exists")
    cache.clear_all()
    return api_response(201, "Category created successfully", category.as_dict())


@router.get("")
def list_categories(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    session: Session = Depends(get_session),
):
    page_num = parse_positive_int(page, 1)
    limit_num = parse_positive_int(limit, 50)
    offset = (page_num - 1) * limit_num

    categories = session.scalars(
        select(Category)
        .options(selectinload(Category.subcategories))
        .order_by(Category.created_at.asc())
        .offset(offset)
        .limit(limit_num)
    ).all()
    total = session.scalar(select(func.count()).select_from(Category))

    product_counts = dict(
        session.execute(
            select(ProductCategory.category_id, func.count())
            .group_by(ProductCategory.category_id)
        ).all()
    )
    items = []
    for category in categories:
        data = category.as_dict()
        data["subCategories"] = [
            {
                "id": sub.id,
                "name": sub.name,
                "image": sub.image,
                "created_at": sub.as_dict()["created_at"],
            }
            for sub in category.subcategories
        ]
        data["_count"] = {
            "products": product_counts.get(category.id, 0),
            "subCategories": len(category.subcategories),
        }
        items.append(data)

    return api_response(
        200,
        "Categories retrieved successfully",
        {"categories": items, "totalCategories": total, **page_info(total, page_num, limit_num)},
    )


@router.put("/{category_id}")
def update_category(
    category_id: str,
    payload: CategoryRequest,
    user: User = Depends(manage_catalog),
    session: Session = Depends(get_session),
    cache: ResponseCache = Depends(get_response_cache),
):
    category = session.get(Category, category_id)
    if category is None:
        raise ApiError(404, "Category not found")
    if category.name == UNCATEGORIZED:
        raise ApiError(400, "Cannot rename uncategorized category")

    name = _category_name(payload.name)
    clash = session.scalars(
        select(Category).where(Category.name == name, Category.id != category.id)
    ).first()
    if clash:
        raise ApiError(400, "Category with this name already exists")

    with transaction(session):
        category.name = name
    cache.clear_all()
    return api_response(200, "Category updated successfully", category.as_dict())


@router.delete("/{category_id}")
def delete_category(
    category_id: str,
    user: User = Depends(manage_catalog),
    session: Session = Depends(get_session),
    storage: StorageClient = Depends(get_storage_client),
    cache: ResponseCache = Depends(get_response_cache),
):
    category = session.get(Category, category_id)
    if category is None:
        raise ApiError(404, "Category not found")

    images = delete_category_cascade(session, category)
    delete_images(storage, images)
    cache.clear_all()
    return api_response(200, "Category and all subcategories deleted successfully")
