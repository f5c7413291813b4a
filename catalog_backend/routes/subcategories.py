"""
Subcategory routes. Listing pages are public, management needs a login.
"""

from __future__ import annotations

import logging
import re
from typing import Optional
from urllib.parse import unquote

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, selectinload

from catalog_backend.cache import ResponseCache
from catalog_backend.catalog import (
    _contains,
    _exact,
    find_category,
    find_subcategory,
    list_products,
    load_product,
    product_summary,
)
from catalog_backend.db import Category, ProductSubCategory, SubCategory, User, transaction
from catalog_backend.dependencies import (
    get_response_cache,
    get_session,
    get_storage_client,
)
from catalog_backend.errors import ApiError, api_response
from catalog_backend.helpers import (
    normalize_for_storage,
    page_info,
    parse_positive_int,
    robust_normalize,
)
from catalog_backend.images import delete_images, process_and_upload
from catalog_backend.security import (
    ADMIN,
    MANAGER,
    PRODUCT_MANAGER,
    current_user,
    require_roles,
)
from catalog_backend.storage import StorageClient

logger = logging.getLogger(__name__)

router = APIRouter()

manage_catalog = require_roles(ADMIN, MANAGER, PRODUCT_MANAGER)

PLACEHOLDER_IMAGE = "/place.jpeg"


def _with_category(subcategory: SubCategory) -> dict:
    data = subcategory.as_dict()
    data["category"] = subcategory.category.as_dict() if subcategory.category else None
    return data


async def _upload(storage: StorageClient, image: Optional[UploadFile]) -> Optional[str]:
    if image is None or not image.filename:
        return None
    data = await image.read()
    return process_and_upload(storage, data, image.filename)


@router.get("/products")
def subcategory_products(
    subcategory: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    session: Session = Depends(get_session),
):
    # Without both page and limit the whole list comes back in one page.
    paginate = bool(page and limit)
    page_num = parse_positive_int(page, 1)
    limit_num = parse_positive_int(limit, 1000)
    offset = (page_num - 1) * limit_num if paginate else 0
    take = limit_num if paginate else None

    subcategory_id = None
    if subcategory and subcategory != "all":
        term = robust_normalize(subcategory)
        match = find_subcategory(session, term)
        if match is None:
            logger.info("Subcategory not found: %s", term)
            return {
                "success": False,
                "data": {
                    "products": [],
                    "totalProducts": 0,
                    "totalPages": 0,
                    "currentPage": page_num,
                },
                "message": "Subcategory not found",
            }
        subcategory_id = match.id

    products, total = list_products(
        session, subcategory_id=subcategory_id, offset=offset, limit=take
    )
    if paginate:
        pages = page_info(total, page_num, limit_num)
    else:
        pages = {
            "totalPages": 1,
            "currentPage": page_num,
            "hasNextPage": False,
            "hasPrevPage": False,
        }
    return {
        "success": True,
        "data": {
            "products": [product_summary(p) for p in products],
            "totalProducts": total,
            **pages,
        },
        "message": "Products fetched successfully",
    }


@router.get("/by-category")
def subcategories_by_category(
    category: Optional[str] = None, session: Session = Depends(get_session)
):
    if not category:
        raise ApiError(400, "Category parameter is required")

    match = find_category(session, category.lower().strip())
    if match is None:
        return {
            "success": False,
            "data": {"subcategories": []},
            "message": "Category not found",
        }

    counts = dict(
        session.execute(
            select(ProductSubCategory.subcategory_id, func.count()).group_by(
                ProductSubCategory.subcategory_id
            )
        ).all()
    )
    subcategories = []
    for sub in match.subcategories:
        data = sub.as_dict()
        data["image"] = sub.image or PLACEHOLDER_IMAGE
        data["category"] = match.as_dict()
        data["_count"] = {"products": counts.get(sub.id, 0)}
        subcategories.append(data)

    return {
        "success": True,
        "data": {"category": match.as_dict(), "subcategories": subcategories},
        "message": "Subcategories fetched successfully",
    }


@router.get("/info/{name}")
def subcategory_info(name: str, session: Session = Depends(get_session)):
    term = re.sub(r"\s+", " ", unquote(name).lower().strip().replace("-", " "))
    if not term:
        raise ApiError(400, "Subcategory name is required")

    cleaned = re.sub(r"[^a-z0-9\s]", "", term).strip()
    for condition in (
        _exact(SubCategory.name, term),
        _contains(SubCategory.name, term),
        _exact(SubCategory.name, cleaned),
    ):
        match = session.scalars(
            select(SubCategory)
            .options(selectinload(SubCategory.category))
            .where(condition)
            .order_by(SubCategory.created_at)
        ).first()
        if match:
            return api_response(
                200, "Sub-category fetched successfully", _with_category(match)
            )
    raise ApiError(404, "Sub-category not found")


@router.post("", status_code=201)
async def create_subcategory(
    name: Optional[str] = Form(None),
    categoryId: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    user: User = Depends(manage_catalog),
    session: Session = Depends(get_session),
    storage: StorageClient = Depends(get_storage_client),
    cache: ResponseCache = Depends(get_response_cache),
):
    if not name or not categoryId:
        raise ApiError(400, "Name and category ID are required")

    normalized = normalize_for_storage(name)
    if session.scalars(select(SubCategory).where(SubCategory.name == normalized)).first():
        raise ApiError(400, "Sub-category with this name already exists")
    if session.get(Category, categoryId) is None:
        raise ApiError(404, "Parent category not found")

    image_url = await _upload(storage, image)
    subcategory = SubCategory(name=normalized, category_id=categoryId, image=image_url)
    try:
        with transaction(session):
            session.add(subcategory)
    except Exception as exc:
        delete_images(storage, [image_url])
        logger.exception("Error creating subcategory")
        raise ApiError(500, f"Failed to create subcategory: {exc}")

    cache.clear_all()
    return api_response(201, "Sub-category created successfully", subcategory.as_dict())


@router.get("")
def list_subcategories(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    user: User = Depends(current_user),
    session: Session = Depends(get_session),
):
    page_num = parse_positive_int(page, 1)
    limit_num = parse_positive_int(limit, 50)
    offset = (page_num - 1) * limit_num

    subcategories = session.scalars(
        select(SubCategory)
        .options(selectinload(SubCategory.category))
        .order_by(SubCategory.created_at.desc())
        .offset(offset)
        .limit(limit_num)
    ).all()
    total = session.scalar(select(func.count()).select_from(SubCategory))
    counts = dict(
        session.execute(
            select(ProductSubCategory.subcategory_id, func.count()).group_by(
                ProductSubCategory.subcategory_id
            )
        ).all()
    )

    items = []
    for sub in subcategories:
        data = sub.as_dict()
        data["category"] = {"id": sub.category.id, "name": sub.category.name}
        data["_count"] = {"products": counts.get(sub.id, 0)}
        items.append(data)

    return api_response(
        200,
        "Sub-categories fetched successfully",
        {
            "subCategories": items,
            "totalSubCategories": total,
            **page_info(total, page_num, limit_num),
        },
    )


@router.get("/{subcategory_id}")
def get_subcategory(
    subcategory_id: str,
    user: User = Depends(current_user),
    session: Session = Depends(get_session),
):
    subcategory = session.get(SubCategory, subcategory_id)
    if subcategory is None:
        raise ApiError(404, "Sub-category not found")
    data = _with_category(subcategory)
    data["products"] = [
        product_summary(load_product(session, id=link.product_id))
        for link in subcategory.product_links
    ]
    return api_response(200, "Sub-category fetched successfully", data)


@router.patch("/{subcategory_id}")
async def update_subcategory(
    subcategory_id: str,
    name: Optional[str] = Form(None),
    categoryId: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    user: User = Depends(manage_catalog),
    session: Session = Depends(get_session),
    storage: StorageClient = Depends(get_storage_client),
    cache: ResponseCache = Depends(get_response_cache),
):
    has_image = image is not None and bool(image.filename)
    if not name and not categoryId and not has_image:
        raise ApiError(400, "At least one field is required for update")

    subcategory = session.get(SubCategory, subcategory_id)
    if subcategory is None:
        raise ApiError(404, "Sub-category not found")
    if categoryId and session.get(Category, categoryId) is None:
        raise ApiError(404, "Parent category not found")

    normalized = normalize_for_storage(name) if name else None
    if normalized:
        clash = session.scalars(
            select(SubCategory).where(
                SubCategory.name == normalized, SubCategory.id != subcategory.id
            )
        ).first()
        if clash:
            raise ApiError(400, "Sub-category with this name already exists")

    old_image = subcategory.image
    new_image = await _upload(storage, image)
    try:
        with transaction(session):
            if normalized:
                subcategory.name = normalized
            if categoryId:
                subcategory.category_id = categoryId
            if new_image:
                subcategory.image = new_image
    except Exception as exc:
        delete_images(storage, [new_image])
        logger.exception("Error updating subcategory")
        raise ApiError(500, f"Failed to update subcategory: {exc}")

    if new_image:
        delete_images(storage, [old_image])
    cache.clear_all()
    return api_response(200, "Sub-category updated successfully", subcategory.as_dict())


@router.delete("/{subcategory_id}")
def delete_subcategory(
    subcategory_id: str,
    user: User = Depends(manage_catalog),
    session: Session = Depends(get_session),
    storage: StorageClient = Depends(get_storage_client),
    cache: ResponseCache = Depends(get_response_cache),
):
    subcategory = session.get(SubCategory, subcategory_id)
    if subcategory is None:
        raise ApiError(404, "Sub-category not found")
    image = subcategory.image

    with transaction(session):
        session.execute(
            delete(ProductSubCategory).where(
                ProductSubCategory.subcategory_id == subcategory_id
            ),
            execution_options={"synchronize_session": False},
        )
        session.execute(
            delete(SubCategory).where(SubCategory.id == subcategory_id),
            execution_options={"synchronize_session": False},
        )
    session.expire_all()

    delete_images(storage, [image])
    cache.clear_all()
    return api_response(200, "Sub-category deleted successfully", None)
