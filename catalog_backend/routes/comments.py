"""
Follow-up comments on leads.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from catalog_backend.db import Comment, Lead, User, transaction
from catalog_backend.dependencies import get_session
from catalog_backend.errors import ApiError, api_response
from catalog_backend.helpers import validate_text
from catalog_backend.schemas import CommentCreate, CommentUpdate
from catalog_backend.security import ADMIN, MANAGER, SALES, require_roles

router = APIRouter()

manage_leads = require_roles(ADMIN, MANAGER, SALES)


def _get_comment(session: Session, comment_id: str) -> Comment:
    comment = session.get(Comment, comment_id)
    if comment is None:
        raise ApiError(404, "Comment not found")
    return comment


@router.post("", status_code=201)
def create_comment(
    payload: CommentCreate,
    user: User = Depends(manage_leads),
    session: Session = Depends(get_session),
):
    message = validate_text(payload.message, "Message").strip()
    if not payload.lead_id:
        raise ApiError(400, "Lead ID is required")
    if session.get(Lead, payload.lead_id) is None:
        raise ApiError(404, "Lead not found")

    comment = Comment(
        message=message, name=user.name, lead_id=payload.lead_id, user_id=user.id
    )
    with transaction(session):
        session.add(comment)
    return api_response(201, "Comment created successfully", comment.as_dict())


@router.get("/lead/{lead_id}")
def lead_comments(
    lead_id: str,
    user: User = Depends(manage_leads),
    session: Session = Depends(get_session),
):
    comments = session.scalars(
        select(Comment).where(Comment.lead_id == lead_id).order_by(Comment.created_at)
    ).all()
    return api_response(
        200,
        "Comments fetched successfully",
        {"comments": [c.as_dict() for c in comments]},
    )


@router.get("/{comment_id}")
def get_comment(
    comment_id: str,
    user: User = Depends(manage_leads),
    session: Session = Depends(get_session),
):
    comment = _get_comment(session, comment_id)
    return api_response(200, "Comment fetched successfully", comment.as_dict())


@router.put("/{comment_id}")
def update_comment(
    comment_id: str,
    payload: CommentUpdate,
    user: User = Depends(manage_leads),
    session: Session = Depends(get_session),
):
    comment = _get_comment(session, comment_id)
    message = validate_text(payload.message, "Message").strip()
    with transaction(session):
        comment.message = message
    return api_response(200, "Comment updated successfully", comment.as_dict())


@router.delete("/{comment_id}")
def delete_comment(
    comment_id: str,
    user: User = Depends(manage_leads),
    session: Session = Depends(get_session),
):
    comment = _get_comment(session, comment_id)
    with transaction(session):
        session.delete(comment)
    return api_response(200, "Comment deleted successfully")
