"""
API routers, one module per resource, mounted under the API prefix.
"""

from fastapi import APIRouter

from catalog_backend.routes import (
    banners,
    categories,
    comments,
    leads,
    products,
    subcategories,
    users,
)

router = APIRouter()
router.include_router(users.router, prefix="/user", tags=["users"])
router.include_router(products.router, prefix="/product", tags=["products"])
router.include_router(leads.router, prefix="/leads", tags=["leads"])
router.include_router(comments.router, prefix="/comments", tags=["comments"])
router.include_router(categories.router, prefix="/category", tags=["categories"])
router.include_router(banners.router, prefix="/banner", tags=["banners"])
router.include_router(
    subcategories.router, prefix="/subcategory", tags=["subcategories"]
)
