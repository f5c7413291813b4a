"""
Product routes: public storefront reads (cached), dashboard CRUD and the
multipart create/update endpoints with thumbnail and gallery uploads.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session
from starlette.datastructures import FormData, UploadFile

from catalog_backend.cache import ResponseCache
from catalog_backend.catalog import (
    _contains,
    _with_relations,
    get_uncategorized,
    list_products,
    load_product,
)
from catalog_backend.db import (
    Category,
    Product,
    ProductCategory,
    ProductImage,
    ProductSubCategory,
    SubCategory,
    User,
    transaction,
)
from catalog_backend.dependencies import (
    get_response_cache,
    get_session,
    get_storage_client,
)
from catalog_backend.errors import ApiError, api_response
from catalog_backend.helpers import (
    clean_search_query,
    create_meta_description,
    is_uuid,
    page_info,
    parse_positive_int,
    parse_price,
    unique_slug,
    validate_text,
)
from catalog_backend.images import delete_images, process_and_upload
from catalog_backend.schemas import DeleteImageRequest
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

MAX_GALLERY_IMAGES = 10
NOT_AVAILABLE = "N/A"


def _form_list(form: FormData, name: str) -> list[str]:
    values = form.getlist(name) + form.getlist(f"{name}[]")
    return [str(v).strip() for v in values if isinstance(v, str) and v.strip()]


def _form_text(form: FormData, name: str) -> Optional[str]:
    value = form.get(name)
    return value if isinstance(value, str) else None


def _form_files(form: FormData, name: str) -> list[UploadFile]:
    return [f for f in form.getlist(name) if isinstance(f, UploadFile) and f.filename]


def _slug_taken(session: Session):
    def exists(slug: str) -> bool:
        return session.scalar(select(Product.id).where(Product.slug == slug)) is not None

    return exists


def _resolve_categories(session: Session, category_ids: list[str]) -> list[str]:
    if not category_ids:
        uncategorized = get_uncategorized(session)
        if uncategorized is None:
            raise ApiError(500, "Uncategorized category not found")
        return [uncategorized.id]
    found = session.scalars(select(Category.id).where(Category.id.in_(category_ids))).all()
    if not found:
        raise ApiError(404, "No valid categories found")
    return list(found)


def _valid_subcategories(
    session: Session, subcategory_ids: list[str], category_ids: list[str]
) -> list[str]:
    if not subcategory_ids:
        return []
    return list(
        session.scalars(
            select(SubCategory.id).where(
                SubCategory.id.in_(subcategory_ids),
                SubCategory.category_id.in_(category_ids),
            )
        ).all()
    )


def _replace_links(session: Session, links, key: str, wanted: list[str], build) -> None:
    """Delete links not in ``wanted`` and add the missing ones."""
    current = {getattr(link, key): link for link in links}
    for target_id, link in current.items():
        if target_id not in wanted:
            session.delete(link)
    for target_id in wanted:
        if target_id not in current:
            session.add(build(target_id))


async def _upload_all(storage: StorageClient, files: list[UploadFile]) -> list[str]:
    urls: list[str] = []
    try:
        for upload in files:
            data = await upload.read()
            urls.append(process_and_upload(storage, data, upload.filename))
    except Exception:
        delete_images(storage, urls)
        raise
    return urls


def _product_detail(session: Session, product_id: str) -> dict:
    product = load_product(session, id=product_id)
    return product.with_relations()


@router.get("/product/{slug}")
def product_by_slug(
    slug: str,
    request: Request,
    session: Session = Depends(get_session),
    cache: ResponseCache = Depends(get_response_cache),
):
    def produce():
        product = load_product(session, slug=slug)
        if product is None:
            raise ApiError(404, "Product not found")
        data = product.with_relations()
        data["images"] = [{"id": img.id, "url": img.url} for img in product.images]
        return api_response(200, "Product retrieved successfully", data)

    return cache.fetch(request, produce, ttl=120)


@router.get("/user-search")
def user_search(
    request: Request,
    q: Optional[str] = None,
    session: Session = Depends(get_session),
    cache: ResponseCache = Depends(get_response_cache),
):
    if not q:
        raise ApiError(400, "Please provide a search query")

    def produce():
        query = clean_search_query(q)
        if len(query) < 2:
            return api_response(
                200, "Please provide at least 2 characters for search", []
            )
        products = session.scalars(
            _with_relations(
                select(Product)
                .where(_contains(Product.title, query))
                .order_by(Product.created_at.desc())
                .limit(10)
            )
        ).all()
        results = [
            {
                "id": p.id,
                "title": p.title,
                "slug": p.slug,
                "image": p.image,
                "shortDesc": p.short_desc,
                "category": (
                    p.category_links[0].category.name
                    if p.category_links
                    else "Uncategorized"
                ),
            }
            for p in products
        ]
        message = f"Found {len(results)} products" if results else "No products found"
        return api_response(200, message, results)

    return cache.fetch(request, produce, ttl=60)


@router.get("/all")
def export_products(
    request: Request,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    session: Session = Depends(get_session),
    cache: ResponseCache = Depends(get_response_cache),
):
    page_num = parse_positive_int(page, 1)
    limit_num = parse_positive_int(limit, 1000)

    def produce():
        products, total = list_products(
            session, offset=(page_num - 1) * limit_num, limit=limit_num
        )
        if not products:
            return api_response(200, "No products found", [])
        rows = []
        for p in products:
            rows.append(
                {
                    "id": p.id,
                    "title": p.title,
                    "description": p.description or NOT_AVAILABLE,
                    "shortDesc": p.short_desc or NOT_AVAILABLE,
                    "price": p.price or NOT_AVAILABLE,
                    "salePrice": p.sale_price or NOT_AVAILABLE,
                    "image": p.image or NOT_AVAILABLE,
                    "slug": p.slug,
                    "categories": ", ".join(
                        link.category.name for link in p.category_links
                    )
                    or NOT_AVAILABLE,
                    "subCategories": ", ".join(
                        link.subcategory.name for link in p.subcategory_links
                    )
                    or NOT_AVAILABLE,
                    "created_at": p.as_dict()["created_at"],
                    "updated_at": p.as_dict()["updated_at"],
                    "images": [img.url for img in p.images],
                }
            )
        return api_response(
            200,
            "Products retrieved successfully",
            {
                "products": rows,
                "totalProducts": total,
                **page_info(total, page_num, limit_num),
            },
        )

    return cache.fetch(request, produce, ttl=180)


@router.get("/search")
def search_products(
    request: Request,
    q: Optional[str] = None,
    user: User = Depends(current_user),
    session: Session = Depends(get_session),
    cache: ResponseCache = Depends(get_response_cache),
):
    if not q:
        raise ApiError(400, "Please provide a search query")

    def produce():
        products = session.scalars(
            _with_relations(
                select(Product).where(
                    or_(_contains(Product.title, q), _contains(Product.description, q))
                )
            )
        ).all()
        return api_response(
            200,
            "Products retrieved successfully",
            [p.with_relations() for p in products],
        )

    return cache.fetch(request, produce, ttl=60)


@router.get("/product-length")
def products_length(
    request: Request,
    user: User = Depends(current_user),
    session: Session = Depends(get_session),
    cache: ResponseCache = Depends(get_response_cache),
):
    def produce():
        total = session.scalar(select(func.count()).select_from(Product))
        return api_response(200, "Total products retrieved successfully", total)

    return cache.fetch(request, produce, ttl=300)


@router.get("/length-date")
def products_length_and_date(
    request: Request,
    user: User = Depends(current_user),
    session: Session = Depends(get_session),
    cache: ResponseCache = Depends(get_response_cache),
):
    def produce():
        dates = session.scalars(select(Product.created_at)).all()
        return api_response(
            200,
            "Total products and creation dates retrieved successfully",
            {
                "totalProducts": len(dates),
                "creationDates": [d.date().isoformat() for d in dates],
            },
        )

    return cache.fetch(request, produce, ttl=300)


@router.post("/delete-image")
def delete_product_image(
    payload: DeleteImageRequest,
    user: User = Depends(manage_catalog),
    session: Session = Depends(get_session),
    storage: StorageClient = Depends(get_storage_client),
    cache: ResponseCache = Depends(get_response_cache),
):
    if not payload.imageId:
        raise ApiError(400, "Please provide a valid image ID to delete")
    image = session.get(ProductImage, payload.imageId)
    if image is None:
        raise ApiError(404, "No image found with the provided ID")

    url = image.url
    with transaction(session):
        session.delete(image)
    delete_images(storage, [url])
    cache.clear_all()
    return api_response(200, "Image deleted successfully")


@router.post("", status_code=201)
async def create_product(
    request: Request,
    user: User = Depends(manage_catalog),
    session: Session = Depends(get_session),
    storage: StorageClient = Depends(get_storage_client),
    cache: ResponseCache = Depends(get_response_cache),
):
    form = await request.form()
    title = validate_text(_form_text(form, "title"), "Title")
    description = _form_text(form, "description") or ""
    short_desc = _form_text(form, "shortDesc") or ""
    price = parse_price(_form_text(form, "price"), "price") or 0.0
    sale_price = parse_price(_form_text(form, "salePrice"), "sale price") or 0.0

    category_ids = [c for c in _form_list(form, "categoryIds") if is_uuid(c)]
    category_ids = _resolve_categories(session, category_ids)
    subcategory_ids = _valid_subcategories(
        session,
        [s for s in _form_list(form, "subCategoryIds") if is_uuid(s)],
        category_ids,
    )

    thumbnails = _form_files(form, "image")
    if not thumbnails:
        raise ApiError(400, "Please provide a valid image file")
    gallery = _form_files(form, "images")
    if len(gallery) > MAX_GALLERY_IMAGES:
        raise ApiError(400, f"A product can have at most {MAX_GALLERY_IMAGES} images")

    seo_title = _form_text(form, "seoTitle") or title
    seo_desc = _form_text(form, "seoDesc") or create_meta_description(description)

    uploaded = await _upload_all(storage, thumbnails[:1] + gallery)
    try:
        with transaction(session):
            product = Product(
                title=title.strip(),
                description=description.strip(),
                short_desc=short_desc.strip(),
                price=price,
                sale_price=sale_price,
                image=uploaded[0],
                seo_title=seo_title.strip(),
                seo_desc=seo_desc.strip(),
                slug=unique_slug(title, _slug_taken(session)),
            )
            session.add(product)
            session.flush()
            for category_id in category_ids:
                session.add(ProductCategory(product_id=product.id, category_id=category_id))
            for subcategory_id in subcategory_ids:
                session.add(
                    ProductSubCategory(product_id=product.id, subcategory_id=subcategory_id)
                )
            for position, url in enumerate(uploaded[1:]):
                session.add(ProductImage(url=url, position=position, product_id=product.id))
    except Exception as exc:
        delete_images(storage, uploaded)
        logger.exception("Error creating product")
        raise ApiError(500, f"Failed to create product: {exc}")

    session.expire_all()
    cache.clear_all()
    logger.info("Created product %s", product.slug)
    return api_response(
        201, "Product created successfully", _product_detail(session, product.id)
    )


@router.get("")
def list_all_products(
    request: Request,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    session: Session = Depends(get_session),
    cache: ResponseCache = Depends(get_response_cache),
):
    page_num = parse_positive_int(page, 1)
    limit_num = parse_positive_int(limit, 10)

    def produce():
        products, total = list_products(
            session,
            offset=(page_num - 1) * limit_num,
            limit=limit_num,
            newest_first=False,
        )
        return api_response(
            200,
            "Products retrieved successfully",
            {
                "products": [p.with_relations() for p in products],
                "totalProducts": total,
                "totalPages": page_info(total, page_num, limit_num)["totalPages"],
                "currentPage": page_num,
            },
        )

    return cache.fetch(request, produce, ttl=120)


@router.get("/{slug}")
def get_product(
    slug: str,
    request: Request,
    user: User = Depends(current_user),
    session: Session = Depends(get_session),
    cache: ResponseCache = Depends(get_response_cache),
):
    def produce():
        product = load_product(session, slug=slug)
        if product is None:
            raise ApiError(404, "Product not found")
        return api_response(
            200, "Product retrieved successfully", product.with_relations()
        )

    return cache.fetch(request, produce, ttl=120)


@router.put("/{slug}")
async def update_product(
    slug: str,
    request: Request,
    user: User = Depends(manage_catalog),
    session: Session = Depends(get_session),
    storage: StorageClient = Depends(get_storage_client),
    cache: ResponseCache = Depends(get_response_cache),
):
    product = load_product(session, slug=slug)
    if product is None:
        raise ApiError(404, "Product not found")

    form = await request.form()
    category_ids = _resolve_categories(session, _form_list(form, "categoryIds"))
    subcategory_ids = _valid_subcategories(
        session, _form_list(form, "subCategoryIds"), category_ids
    )

    updates: dict = {}
    title = _form_text(form, "title")
    if title and title != product.title:
        validate_text(title, "Title")
        updates["title"] = title.strip()
        updates["slug"] = unique_slug(title, _slug_taken(session))
    for field, column in (
        ("description", "description"),
        ("shortDesc", "short_desc"),
        ("seoTitle", "seo_title"),
        ("seoDesc", "seo_desc"),
    ):
        value = _form_text(form, field)
        if value and value != getattr(product, column):
            updates[column] = value.strip()

    price = parse_price(_form_text(form, "price"), "price")
    if price is not None:
        updates["price"] = price
    sale_price = parse_price(_form_text(form, "salePrice"), "sale price")
    if sale_price is not None:
        updates["sale_price"] = sale_price

    thumbnails = _form_files(form, "image")[:1]
    gallery = _form_files(form, "images")
    if len(gallery) > MAX_GALLERY_IMAGES:
        raise ApiError(400, f"A product can have at most {MAX_GALLERY_IMAGES} images")

    new_thumbnail = await _upload_all(storage, thumbnails)
    try:
        new_gallery = await _upload_all(storage, gallery)
    except Exception:
        delete_images(storage, new_thumbnail)
        raise
    uploaded = new_thumbnail + new_gallery

    replaced: list[str] = []
    product_id = product.id
    try:
        with transaction(session):
            _replace_links(
                session, product.category_links, "category_id", category_ids,
                lambda cid: ProductCategory(product_id=product_id, category_id=cid),
            )
            _replace_links(
                session, product.subcategory_links, "subcategory_id", subcategory_ids,
                lambda sid: ProductSubCategory(product_id=product_id, subcategory_id=sid),
            )

            for column, value in updates.items():
                setattr(product, column, value)
            if new_thumbnail:
                if product.image:
                    replaced.append(product.image)
                product.image = new_thumbnail[0]
            if new_gallery:
                for img in product.images:
                    replaced.append(img.url)
                    session.delete(img)
                for position, url in enumerate(new_gallery):
                    session.add(
                        ProductImage(url=url, position=position, product_id=product_id)
                    )
    except Exception as exc:
        delete_images(storage, uploaded)
        logger.exception("Error updating product")
        raise ApiError(500, f"Failed to update product: {exc}")

    session.expire_all()
    delete_images(storage, replaced)
    cache.clear_all()
    return api_response(
        200, "Product updated successfully", _product_detail(session, product_id)
    )


@router.delete("/{slug}")
def delete_product(
    slug: str,
    user: User = Depends(manage_catalog),
    session: Session = Depends(get_session),
    storage: StorageClient = Depends(get_storage_client),
    cache: ResponseCache = Depends(get_response_cache),
):
    product = load_product(session, slug=slug)
    if product is None:
        raise ApiError(404, "Product not found")

    product_id = product.id
    images = [product.image] + [img.url for img in product.images]
    with transaction(session):
        for model in (ProductImage, ProductSubCategory, ProductCategory):
            session.execute(
                delete(model).where(model.product_id == product_id),
                execution_options={"synchronize_session": False},
            )
        session.execute(
            delete(Product).where(Product.id == product_id),
            execution_options={"synchronize_session": False},
        )
    session.expire_all()

    delete_images(storage, images)
    cache.clear_all()
    return api_response(200, "Product and associated data deleted successfully")
