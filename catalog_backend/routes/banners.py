"""
Homepage banners ordered by a 1-based ``position``.

Every write that moves positions runs in one transaction so the sequence
stays 1..n without gaps.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy import select
from sqlalchemy.orm import Session

from catalog_backend import positions
from catalog_backend.db import Banner, User, transaction
from catalog_backend.dependencies import get_session, get_storage_client
from catalog_backend.errors import ApiError, api_response
from catalog_backend.images import delete_images, process_and_upload
from catalog_backend.schemas import BannerPositionRequest
from catalog_backend.security import ADMIN, MANAGER, require_roles
from catalog_backend.storage import StorageClient

logger = logging.getLogger(__name__)

router = APIRouter()

manage_banners = require_roles(ADMIN, MANAGER)


def _banner_list(banners) -> dict:
    if not banners:
        return api_response(200, "No banners found", [])
    return api_response(
        200, "Banners fetched successfully", [b.as_dict() for b in banners]
    )


def _get_banner(session: Session, banner_id: str) -> Banner:
    banner = session.get(Banner, banner_id)
    if banner is None:
        raise ApiError(404, "Banner not found")
    return banner


@router.get("")
@router.get("/", include_in_schema=False)
def active_banners(session: Session = Depends(get_session)):
    banners = session.scalars(
        select(Banner).where(Banner.is_active.is_(True)).order_by(Banner.position)
    ).all()
    return _banner_list(banners)


@router.post("/banners", status_code=201)
async def create_banner(
    title: Optional[str] = Form(None),
    linkUrl: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    isActive: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    user: User = Depends(manage_banners),
    session: Session = Depends(get_session),
    storage: StorageClient = Depends(get_storage_client),
):
    if image is None or not image.filename:
        raise ApiError(400, "Image is required")

    image_url = process_and_upload(storage, await image.read(), image.filename)
    try:
        with transaction(session):
            taken = session.scalars(select(Banner.position)).all()
            banner = Banner(
                title=title,
                image_url=image_url,
                link_url=linkUrl,
                description=description,
                position=positions.next_position(taken),
                is_active=isActive == "true",
            )
            session.add(banner)
    except Exception as exc:
        delete_images(storage, [image_url])
        logger.exception("Error creating banner")
        raise ApiError(500, f"Failed to create banner: {exc}")

    logger.info("Created banner %s at position %d", banner.id, banner.position)
    return api_response(201, "Banner created successfully", banner.as_dict())


@router.get("/banners")
def all_banners(session: Session = Depends(get_session)):
    banners = session.scalars(select(Banner).order_by(Banner.position)).all()
    return _banner_list(banners)


@router.get("/banners/{banner_id}")
def get_banner(banner_id: str, session: Session = Depends(get_session)):
    banner = _get_banner(session, banner_id)
    return api_response(200, "Banner fetched successfully", banner.as_dict())


@router.put("/banners/{banner_id}")
async def update_banner(
    banner_id: str,
    title: Optional[str] = Form(None),
    linkUrl: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    isActive: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    user: User = Depends(manage_banners),
    session: Session = Depends(get_session),
    storage: StorageClient = Depends(get_storage_client),
):
    banner = _get_banner(session, banner_id)

    new_image = None
    if image is not None and image.filename:
        new_image = process_and_upload(storage, await image.read(), image.filename)
    old_image = banner.image_url

    try:
        with transaction(session):
            if title is not None:
                banner.title = title
            if linkUrl is not None:
                banner.link_url = linkUrl
            if description is not None:
                banner.description = description
            if isActive is not None:
                banner.is_active = isActive == "true"
            if new_image:
                banner.image_url = new_image
    except Exception as exc:
        delete_images(storage, [new_image])
        logger.exception("Error updating banner %s", banner_id)
        raise ApiError(500, f"Failed to update banner: {exc}")

    if new_image:
        delete_images(storage, [old_image])
    return api_response(200, "Banner updated successfully", banner.as_dict())


@router.delete("/banners/{banner_id}")
def delete_banner(
    banner_id: str,
    user: User = Depends(manage_banners),
    session: Session = Depends(get_session),
    storage: StorageClient = Depends(get_storage_client),
):
    banner = _get_banner(session, banner_id)
    image_url = banner.image_url

    with transaction(session):
        deleted_position = banner.position
        session.delete(banner)
        session.flush()
        rest = session.scalars(
            select(Banner).where(Banner.position > deleted_position).with_for_update()
        ).all()
        shifted = positions.shift_after_delete(
            ((b.id, b.position) for b in rest), deleted_position
        )
        for b in rest:
            b.position = shifted[b.id]

    delete_images(storage, [image_url])
    logger.info("Deleted banner %s, shifted %d banners", banner_id, len(shifted))
    return api_response(200, "Banner deleted successfully")


@router.put("/banners/{banner_id}/position")
def update_banner_position(
    banner_id: str,
    payload: BannerPositionRequest,
    user: User = Depends(manage_banners),
    session: Session = Depends(get_session),
):
    with transaction(session):
        banners = session.scalars(
            select(Banner).order_by(Banner.position).with_for_update()
        ).all()
        by_id = {b.id: b for b in banners}
        if banner_id not in by_id:
            raise ApiError(404, "Banner not found")
        changes = positions.move(
            [(b.id, b.position) for b in banners], banner_id, payload.newPosition
        )
        for row_id, position in changes.items():
            by_id[row_id].position = position

    return api_response(200, "Banner position updated successfully")


@router.get("/assign-positions")
def assign_positions(
    user: User = Depends(manage_banners),
    session: Session = Depends(get_session),
):
    with transaction(session):
        banners = session.scalars(select(Banner).with_for_update()).all()
        by_id = {b.id: b for b in banners}
        ordered = positions.assign_missing(
            (b.id, b.position, b.created_at) for b in banners
        )
        for row_id, position in ordered:
            by_id[row_id].position = position

    return api_response(
        200,
        "Positions assigned successfully",
        [by_id[row_id].as_dict() for row_id, _ in ordered],
    )
