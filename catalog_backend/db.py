"""
SQLAlchemy models and the database wrapper used by the API.
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
)
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

UNCATEGORIZED = "Uncategorized"


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


Base = declarative_base()


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)
    password = Column(String, nullable=False)
    role = Column(String, nullable=False, default="Admin")
    refresh_token = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
        }


class UserLimit(Base):
    __tablename__ = "user_limits"

    id = Column(String, primary_key=True, default=_new_id)
    max_role = Column(Integer, nullable=False, default=6)

    def as_dict(self) -> dict:
        return {"id": self.id, "maxRole": self.max_role}


class Active(Base):
    __tablename__ = "active"

    id = Column(String, primary_key=True, default=_new_id)
    status = Column(Boolean, nullable=False, default=True)


class Category(Base):
    __tablename__ = "categories"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, nullable=False, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )

    subcategories = relationship(
        "SubCategory",
        back_populates="category",
        order_by="SubCategory.created_at",
    )
    product_links = relationship("ProductCategory", back_populates="category")

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class SubCategory(Base):
    __tablename__ = "subcategories"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, nullable=False, unique=True, index=True)
    image = Column(String, nullable=True)
    category_id = Column(String, ForeignKey("categories.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )

    category = relationship("Category", back_populates="subcategories")
    product_links = relationship("ProductSubCategory", back_populates="subcategory")

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "image": self.image,
            "categoryId": self.category_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Product(Base):
    __tablename__ = "products"

    id = Column(String, primary_key=True, default=_new_id)
    title = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    short_desc = Column(Text, nullable=False, default="")
    price = Column(Float, nullable=False, default=0.0)
    sale_price = Column(Float, nullable=False, default=0.0)
    image = Column(String, nullable=True)
    seo_title = Column(String, nullable=True)
    seo_desc = Column(Text, nullable=True)
    slug = Column(String, nullable=False, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )

    category_links = relationship("ProductCategory", back_populates="product")
    subcategory_links = relationship("ProductSubCategory", back_populates="product")
    images = relationship(
        "ProductImage", back_populates="product", order_by="ProductImage.position"
    )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "shortDesc": self.short_desc,
            "price": self.price,
            "salePrice": self.sale_price,
            "image": self.image,
            "seoTitle": self.seo_title,
            "seoDesc": self.seo_desc,
            "slug": self.slug,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def with_relations(self) -> dict:
        data = self.as_dict()
        data["categories"] = [
            {"id": link.category.id, "name": link.category.name}
            for link in self.category_links
        ]
        data["subCategories"] = [
            {"id": link.subcategory.id, "name": link.subcategory.name}
            for link in self.subcategory_links
        ]
        data["images"] = [image.as_dict() for image in self.images]
        return data


class ProductCategory(Base):
    __tablename__ = "product_categories"

    product_id = Column(String, ForeignKey("products.id"), primary_key=True)
    category_id = Column(String, ForeignKey("categories.id"), primary_key=True)

    product = relationship("Product", back_populates="category_links")
    category = relationship("Category", back_populates="product_links")


class ProductSubCategory(Base):
    __tablename__ = "product_subcategories"

    product_id = Column(String, ForeignKey("products.id"), primary_key=True)
    subcategory_id = Column(String, ForeignKey("subcategories.id"), primary_key=True)

    product = relationship("Product", back_populates="subcategory_links")
    subcategory = relationship("SubCategory", back_populates="product_links")


class ProductImage(Base):
    __tablename__ = "product_images"

    id = Column(String, primary_key=True, default=_new_id)
    url = Column(String, nullable=False)
    position = Column(Integer, nullable=False, default=0)
    product_id = Column(String, ForeignKey("products.id"), nullable=False, index=True)

    product = relationship("Product", back_populates="images")

    def as_dict(self) -> dict:
        return {"id": self.id, "url": self.url, "productId": self.product_id}


class Lead(Base):
    __tablename__ = "leads"

    id = Column(String, primary_key=True, default=_new_id)
    slug = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    subject = Column(String, nullable=True)
    message = Column(Text, nullable=False)
    type = Column(String, nullable=False, default="onprocess", index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )

    comments = relationship(
        "Comment", back_populates="lead", order_by="Comment.created_at"
    )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "slug": self.slug,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "subject": self.subject,
            "message": self.message,
            "type": self.type,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Comment(Base):
    __tablename__ = "comments"

    id = Column(String, primary_key=True, default=_new_id)
    message = Column(Text, nullable=False)
    name = Column(String, nullable=True)
    lead_id = Column(String, ForeignKey("leads.id"), nullable=False, index=True)
    user_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )

    lead = relationship("Lead", back_populates="comments")

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "message": self.message,
            "name": self.name,
            "lead_id": self.lead_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Banner(Base):
    __tablename__ = "banners"

    id = Column(String, primary_key=True, default=_new_id)
    title = Column(String, nullable=True)
    image_url = Column(String, nullable=False)
    link_url = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    position = Column(Integer, nullable=False, default=0, index=True)
    is_active = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "imageUrl": self.image_url,
            "linkUrl": self.link_url,
            "description": self.description,
            "position": self.position,
            "isActive": self.is_active,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class Database:
    """
    Engine and session factory. Accepts any SQLAlchemy URL (Postgres in
    production, SQLite for local runs and tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("database_url is required")
        engine_kwargs: dict = {"future": True}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_pre_ping"] = True
            engine_kwargs["pool_recycle"] = 1800
        self.engine = create_engine(database_url, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def reset(self) -> None:
        """Drop and recreate every table (useful in tests)."""
        Base.metadata.drop_all(self.engine)
        Base.metadata.create_all(self.engine)


@contextmanager
def transaction(session: Session) -> Iterator[Session]:
    """Commit everything done inside the block, or roll all of it back."""
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
