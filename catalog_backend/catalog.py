"""
Catalog taxonomy operations that span several tables.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from sqlalchemy import String, delete, func, or_, select
from sqlalchemy.orm import Session, selectinload

from catalog_backend.db import (
    UNCATEGORIZED,
    Active,
    Category,
    Product,
    ProductCategory,
    ProductSubCategory,
    SubCategory,
    UserLimit,
    transaction,
)
from catalog_backend.errors import ApiError

logger = logging.getLogger(__name__)


def get_uncategorized(session: Session) -> Optional[Category]:
    return session.scalars(
        select(Category).where(Category.name == UNCATEGORIZED)
    ).first()


def ensure_defaults(session: Session, default_user_limit: int) -> None:
    """Create the singleton rows and the Uncategorized category when missing."""
    with transaction(session):
        if session.scalars(select(UserLimit)).first() is None:
            session.add(UserLimit(max_role=default_user_limit))
        if session.scalars(select(Active)).first() is None:
            session.add(Active(status=True))
        if get_uncategorized(session) is None:
            session.add(Category(name=UNCATEGORIZED))
            logger.info("Default category created: %s", UNCATEGORIZED)


def delete_category_cascade(session: Session, category: Category) -> list[str]:
    """
    Delete ``category`` with its subcategories.

    Products left without any category are attached to Uncategorized. All
    database changes commit together. Returns the subcategory image URLs so
    the caller can remove them from storage once the commit succeeded.
    """
    if category.name == UNCATEGORIZED:
        raise ApiError(400, "Cannot delete uncategorized category")

    uncategorized = get_uncategorized(session)
    if uncategorized is None:
        raise ApiError(500, "Uncategorized category not found")

    category_id = category.id
    subcategories = session.scalars(
        select(SubCategory).where(SubCategory.category_id == category_id)
    ).all()
    subcategory_ids = [sub.id for sub in subcategories]
    images = [sub.image for sub in subcategories if sub.image]

    with transaction(session):
        if subcategory_ids:
            session.execute(
                delete(ProductSubCategory).where(
                    ProductSubCategory.subcategory_id.in_(subcategory_ids)
                ),
                execution_options={"synchronize_session": False},
            )

        product_ids = session.scalars(
            select(ProductCategory.product_id).where(
                ProductCategory.category_id == category_id
            )
        ).all()
        moved = 0
        for product_id in product_ids:
            other_categories = session.scalar(
                select(func.count())
                .select_from(ProductCategory)
                .where(
                    ProductCategory.product_id == product_id,
                    ProductCategory.category_id != category_id,
                )
            )
            if not other_categories:
                session.add(
                    ProductCategory(product_id=product_id, category_id=uncategorized.id)
                )
                moved += 1
        session.flush()

        session.execute(
            delete(ProductCategory).where(ProductCategory.category_id == category_id),
            execution_options={"synchronize_session": False},
        )
        if subcategory_ids:
            session.execute(
                delete(SubCategory).where(SubCategory.id.in_(subcategory_ids)),
                execution_options={"synchronize_session": False},
            )
        session.execute(
            delete(Category).where(Category.id == category_id),
            execution_options={"synchronize_session": False},
        )

    session.expire_all()
    logger.info(
        "Deleted category %s with %d subcategories; %d products moved to %s",
        category_id,
        len(subcategory_ids),
        moved,
        UNCATEGORIZED,
    )
    return images


def _exact(column, term: str):
    return func.lower(column, type_=String) == term.lower()


def _contains(column, term: str):
    return func.lower(column, type_=String).contains(term.lower(), autoescape=True)


def find_category(session: Session, term: str) -> Optional[Category]:
    """Case-insensitive exact match first, then substring match."""
    for condition in (_exact(Category.name, term), _contains(Category.name, term)):
        category = session.scalars(
            select(Category).where(condition).order_by(Category.created_at)
        ).first()
        if category:
            return category
    return None


def find_subcategory(session: Session, term: str) -> Optional[SubCategory]:
    """
    Match a subcategory from a URL-ish name: exact, substring, dash variants,
    then ``and``/``&`` variants.
    """
    attempts = [_exact(SubCategory.name, term), _contains(SubCategory.name, term)]
    for variant in (
        re.sub(r"\s+", " - ", term),
        re.sub(r"\s*-\s*", " ", term),
        re.sub(r"\s+", "-", term),
    ):
        attempts.append(_exact(SubCategory.name, variant))
    amp_variant = re.sub(r"\band\b", "&", term)
    and_variant = term.replace("&", "and")
    attempts.append(
        or_(
            _exact(SubCategory.name, amp_variant),
            _exact(SubCategory.name, and_variant),
            _contains(SubCategory.name, amp_variant),
            _contains(SubCategory.name, and_variant),
        )
    )
    for condition in attempts:
        subcategory = session.scalars(
            select(SubCategory).where(condition).order_by(SubCategory.created_at)
        ).first()
        if subcategory:
            return subcategory
    return None


def _with_relations(stmt):
    return stmt.options(
        selectinload(Product.category_links).selectinload(ProductCategory.category),
        selectinload(Product.subcategory_links).selectinload(
            ProductSubCategory.subcategory
        ),
        selectinload(Product.images),
    )


def list_products(
    session: Session,
    *,
    category_id: Optional[str] = None,
    subcategory_id: Optional[str] = None,
    offset: int = 0,
    limit: Optional[int] = None,
    newest_first: bool = True,
) -> tuple[list[Product], int]:
    """One page of products (with relations loaded) and the total count."""
    conditions = []
    if category_id:
        conditions.append(
            Product.category_links.any(ProductCategory.category_id == category_id)
        )
    if subcategory_id:
        conditions.append(
            Product.subcategory_links.any(
                ProductSubCategory.subcategory_id == subcategory_id
            )
        )
    order = Product.created_at.desc() if newest_first else Product.created_at.asc()
    stmt = _with_relations(select(Product).where(*conditions).order_by(order))
    if offset:
        stmt = stmt.offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    products = session.scalars(stmt).all()
    total = session.scalar(
        select(func.count()).select_from(Product).where(*conditions)
    )
    return list(products), total or 0


def load_product(session: Session, **criteria) -> Optional[Product]:
    stmt = _with_relations(select(Product).filter_by(**criteria))
    return session.scalars(stmt).first()


def product_summary(product: Product) -> dict:
    """Listing card shape shared by the category and subcategory pages."""
    data = product.with_relations()
    for key in ("description", "seoTitle", "seoDesc", "updated_at"):
        data.pop(key, None)
    data["images"] = [{"id": img.id, "url": img.url} for img in product.images]
    return data
