"""
Contact-form leads. Submitting and listing are public, the rest needs a
dashboard login with lead access.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session, selectinload

from catalog_backend.catalog import _contains
from catalog_backend.db import Comment, Lead, User, transaction
from catalog_backend.dependencies import get_session
from catalog_backend.errors import ApiError, api_response
from catalog_backend.helpers import (
    create_slug,
    page_info,
    parse_positive_int,
    validate_email,
    validate_text,
)
from catalog_backend.schemas import LeadCreate, LeadUpdate
from catalog_backend.security import ADMIN, MANAGER, SALES, require_roles

logger = logging.getLogger(__name__)

router = APIRouter()

manage_leads = require_roles(ADMIN, MANAGER, SALES)

LEAD_STATUSES = ("onprocess", "Converted", "notinterested")
ALL_STATUSES = "All"
RECENT_LEADS = 5


def _lead_slug(session: Session, name: str) -> str:
    root = create_slug(name)
    while True:
        slug = f"{root}-{uuid.uuid4().hex[:6]}"
        if session.scalar(select(Lead.id).where(Lead.slug == slug)) is None:
            return slug


def _get_lead(session: Session, slug: str) -> Lead:
    lead = session.scalars(
        select(Lead).options(selectinload(Lead.comments)).where(Lead.slug == slug)
    ).first()
    if lead is None:
        raise ApiError(404, "Lead not found")
    return lead


def _check_status(status: str) -> str:
    if status not in LEAD_STATUSES:
        raise ApiError(400, f"Lead type must be one of: {', '.join(LEAD_STATUSES)}")
    return status


@router.post("", status_code=201)
def create_lead(payload: LeadCreate, session: Session = Depends(get_session)):
    name = validate_text(payload.name, "Name").strip()
    email = validate_email(payload.email)
    phone = validate_text(payload.phone, "Phone").strip()
    message = validate_text(payload.message, "Message").strip()

    lead = Lead(
        slug=_lead_slug(session, name),
        name=name,
        email=email,
        phone=phone,
        subject=(payload.subject or "").strip() or None,
        message=message,
    )
    with transaction(session):
        session.add(lead)
    logger.info("New lead %s", lead.slug)
    return api_response(201, "Lead created successfully", lead.as_dict())


@router.get("")
def list_leads(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    type: Optional[str] = None,
    session: Session = Depends(get_session),
):
    page_num = parse_positive_int(page, 1)
    limit_num = parse_positive_int(limit, 10)

    conditions = []
    if type and type != ALL_STATUSES:
        conditions.append(Lead.type == _check_status(type))

    leads = session.scalars(
        select(Lead)
        .where(*conditions)
        .order_by(Lead.created_at.desc())
        .offset((page_num - 1) * limit_num)
        .limit(limit_num)
    ).all()
    total = session.scalar(select(func.count()).select_from(Lead).where(*conditions))
    return api_response(
        200,
        "Leads fetched successfully",
        {
            "leads": [lead.as_dict() for lead in leads],
            "totalLeads": total,
            "totalPages": page_info(total, page_num, limit_num)["totalPages"],
            "currentPage": page_num,
        },
    )


@router.get("/search")
def search_leads(
    q: Optional[str] = None,
    user: User = Depends(manage_leads),
    session: Session = Depends(get_session),
):
    if not q or not q.strip():
        raise ApiError(400, "Please provide a search query")
    term = q.strip()
    leads = session.scalars(
        select(Lead)
        .where(
            or_(
                _contains(Lead.name, term),
                _contains(Lead.email, term),
                _contains(Lead.phone, term),
                _contains(Lead.subject, term),
            )
        )
        .order_by(Lead.created_at.desc())
    ).all()
    return api_response(200, "Leads fetched successfully", [lead.as_dict() for lead in leads])


@router.get("/recent")
def recent_leads(
    user: User = Depends(manage_leads),
    session: Session = Depends(get_session),
):
    leads = session.scalars(
        select(Lead).order_by(Lead.created_at.desc()).limit(RECENT_LEADS)
    ).all()
    return api_response(
        200, "Recent leads fetched successfully", [lead.as_dict() for lead in leads]
    )


@router.get("/all")
def export_leads(
    user: User = Depends(manage_leads),
    session: Session = Depends(get_session),
):
    leads = session.scalars(select(Lead).order_by(Lead.created_at.desc())).all()
    return api_response(200, "Leads fetched successfully", [lead.as_dict() for lead in leads])


@router.get("/leads-length")
def leads_length(
    user: User = Depends(manage_leads),
    session: Session = Depends(get_session),
):
    total = session.scalar(select(func.count()).select_from(Lead))
    return api_response(200, "Total leads retrieved successfully", total)


@router.get("/length-date")
def leads_length_and_date(
    user: User = Depends(manage_leads),
    session: Session = Depends(get_session),
):
    dates = session.scalars(select(Lead.created_at)).all()
    return api_response(
        200,
        "Total leads and creation dates retrieved successfully",
        {
            "totalLeads": len(dates),
            "creationDates": [d.date().isoformat() for d in dates],
        },
    )


@router.get("/{slug}")
def get_lead(
    slug: str,
    user: User = Depends(manage_leads),
    session: Session = Depends(get_session),
):
    lead = _get_lead(session, slug)
    data = lead.as_dict()
    data["comments"] = [c.as_dict() for c in lead.comments]
    return api_response(200, "Lead fetched successfully", data)


@router.put("/{slug}")
def update_lead(
    slug: str,
    payload: LeadUpdate,
    user: User = Depends(manage_leads),
    session: Session = Depends(get_session),
):
    lead = _get_lead(session, slug)
    changes = payload.model_dump(exclude_none=True)
    if "email" in changes:
        changes["email"] = validate_email(changes["email"])
    if "type" in changes:
        _check_status(changes["type"])
    for field in ("name", "phone", "message"):
        if field in changes:
            changes[field] = validate_text(changes[field], field.capitalize()).strip()

    with transaction(session):
        for field, value in changes.items():
            setattr(lead, field, value)
    return api_response(200, "Lead updated successfully", lead.as_dict())


@router.delete("/{slug}")
def delete_lead(
    slug: str,
    user: User = Depends(manage_leads),
    session: Session = Depends(get_session),
):
    lead = _get_lead(session, slug)
    lead_id = lead.id
    with transaction(session):
        session.execute(
            delete(Comment).where(Comment.lead_id == lead_id),
            execution_options={"synchronize_session": False},
        )
        session.execute(
            delete(Lead).where(Lead.id == lead_id),
            execution_options={"synchronize_session": False},
        )
    session.expire_all()
    logger.info("Deleted lead %s", slug)
    return api_response(200, "Lead deleted successfully")
