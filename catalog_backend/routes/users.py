"""
Dashboard users, login cookies, role creation and the site singletons.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from catalog_backend.catalog import ensure_defaults
from catalog_backend.config import get_settings
from catalog_backend.db import Active, User, UserLimit, transaction
from catalog_backend.dependencies import get_session
from catalog_backend.errors import ApiError, api_response
from catalog_backend.helpers import validate_email, validate_password
from catalog_backend.schemas import (
    ChangePasswordRequest,
    CreateRoleRequest,
    EditUserRequest,
    LoginRequest,
    RegisterRequest,
    UserLimitUpdate,
)
from catalog_backend.security import (
    ADMIN,
    MANAGER,
    ROLES,
    clear_auth_cookies,
    create_access_token,
    create_refresh_token,
    current_user,
    hash_password,
    require_roles,
    set_auth_cookies,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter()

manage_users = require_roles(ADMIN, MANAGER)


def _find_user_by_email(session: Session, email: str) -> User | None:
    return session.scalars(select(User).where(User.email == email)).first()


def _max_roles(session: Session) -> int:
    limit = session.scalars(select(UserLimit)).first()
    if limit is None:
        raise ApiError(404, "User limit not found")
    return limit.max_role


@router.get("/active-status")
def active_status(session: Session = Depends(get_session)):
    record = session.scalars(select(Active)).first()
    return api_response(200, "Active status fetched", bool(record and record.status))


@router.post("/register", status_code=201)
def register_user(payload: RegisterRequest, session: Session = Depends(get_session)):
    email = validate_email(payload.email)
    if _find_user_by_email(session, email):
        raise ApiError(400, "User already exists with this email")
    validate_password(payload.password)

    user = User(
        name=payload.name.strip(),
        email=email,
        password=hash_password(payload.password),
        role=ADMIN,
    )
    with transaction(session):
        session.add(user)
    ensure_defaults(session, get_settings().default_user_limit)
    return api_response(201, "User registered successfully", user.as_dict())


@router.post("/login")
def login_user(
    payload: LoginRequest,
    response: Response,
    session: Session = Depends(get_session),
):
    try:
        email = validate_email(payload.email)
        validate_password(payload.password)
    except ApiError:
        raise ApiError(401, "Invalid email or password")

    user = _find_user_by_email(session, email)
    if user is None or not verify_password(payload.password, user.password):
        logger.info("Failed login for %s", email)
        raise ApiError(401, "Invalid email or password")

    access_token = create_access_token(user)
    refresh_token = create_refresh_token(user.id)
    with transaction(session):
        user.refresh_token = refresh_token
    set_auth_cookies(response, access_token, refresh_token)
    return api_response(200, "Login successful", access_token)


@router.post("/logout")
def logout_user(
    response: Response,
    user: User = Depends(current_user),
    session: Session = Depends(get_session),
):
    with transaction(session):
        user.refresh_token = None
    clear_auth_cookies(response)
    return api_response(200, "User logged out successfully", {})


@router.get("/get-user")
def get_logged_in_user(user: User = Depends(current_user)):
    return api_response(200, "User details fetched successfully", user.as_dict())


@router.get("/check-auth")
def check_auth(user: User = Depends(current_user)):
    return api_response(200, "Authenticated user!", {"user": user.as_dict()})


@router.post("/create-role", status_code=201)
def create_role(
    payload: CreateRoleRequest,
    user: User = Depends(current_user),
    session: Session = Depends(get_session),
):
    if not (payload.name and payload.email and payload.password and payload.role):
        raise ApiError(400, "All fields are required")
    if user.role != ADMIN:
        raise ApiError(403, "Only admins can create roles")
    if payload.role not in ROLES:
        raise ApiError(400, f"Role must be one of: {', '.join(ROLES)}")

    email = validate_email(payload.email)
    if _find_user_by_email(session, email):
        raise ApiError(400, "User already exists with this email")

    user_count = session.scalar(select(func.count()).select_from(User))
    max_roles = _max_roles(session)
    if user_count >= max_roles:
        raise ApiError(400, f"Cannot create more than {max_roles - 1} users.")

    validate_password(payload.password)
    created = User(
        name=payload.name.strip(),
        email=email,
        password=hash_password(payload.password),
        role=payload.role,
    )
    with transaction(session):
        session.add(created)
    return api_response(201, "Role created successfully", created.as_dict())


@router.get("/users")
def list_users(
    user: User = Depends(manage_users),
    session: Session = Depends(get_session),
):
    users = session.scalars(
        select(User).where(User.role != ADMIN).order_by(User.created_at.desc())
    ).all()
    return api_response(200, "Users fetched successfully", [u.as_dict() for u in users])


def _check_can_manage(user: User, target: User) -> None:
    """Only an Admin may change or remove an Admin account."""
    if target.role == ADMIN and user.role != ADMIN:
        raise ApiError(403, "You do not have permission to manage this user")


@router.put("/users/{user_id}")
def edit_user(
    user_id: str,
    payload: EditUserRequest,
    user: User = Depends(manage_users),
    session: Session = Depends(get_session),
):
    target = session.get(User, user_id)
    if target is None:
        raise ApiError(404, "User not found or already deleted")
    _check_can_manage(user, target)
    if payload.role == ADMIN and user.role != ADMIN:
        raise ApiError(403, "Only an Admin can grant the Admin role")

    if payload.email:
        email = validate_email(payload.email)
        existing = _find_user_by_email(session, email)
        if existing and existing.id != target.id:
            raise ApiError(400, "User already exists with this email")
        target.email = email
    if payload.name:
        target.name = payload.name.strip()
    if payload.password:
        validate_password(payload.password)
        target.password = hash_password(payload.password)
    if payload.role:
        if payload.role not in ROLES:
            raise ApiError(400, f"Role must be one of: {', '.join(ROLES)}")
        target.role = payload.role

    with transaction(session):
        session.add(target)
    return api_response(200, "User updated successfully")


@router.delete("/users/{user_id}")
def delete_user(
    user_id: str,
    user: User = Depends(manage_users),
    session: Session = Depends(get_session),
):
    target = session.get(User, user_id)
    if target is None:
        raise ApiError(404, "User not found or already deleted")
    if target.id == user.id:
        raise ApiError(400, "You cannot delete your own account")
    _check_can_manage(user, target)
    with transaction(session):
        session.delete(target)
    return api_response(200, "User deleted successfully")


@router.get("/user-limit")
def get_user_limit(
    user: User = Depends(current_user),
    session: Session = Depends(get_session),
):
    limit = session.scalars(select(UserLimit)).first()
    if limit is None:
        raise ApiError(404, "User limit not found")
    return api_response(200, "User limit fetched successfully", limit.as_dict())


@router.put("/user-limit/{limit_id}")
def update_user_limit(
    limit_id: str,
    payload: UserLimitUpdate,
    user: User = Depends(require_roles(ADMIN)),
    session: Session = Depends(get_session),
):
    limit = session.get(UserLimit, limit_id)
    if limit is None:
        raise ApiError(404, "User limit not found")
    with transaction(session):
        limit.max_role = payload.maxRole
    return api_response(200, "User limit updated successfully", limit.as_dict())


@router.put("/change-password")
def change_password(
    payload: ChangePasswordRequest,
    user: User = Depends(current_user),
    session: Session = Depends(get_session),
):
    if not payload.currentPassword or not payload.newPassword:
        raise ApiError(400, "Current password and new password are required")
    if not verify_password(payload.currentPassword, user.password):
        raise ApiError(401, "Current password is incorrect")
    validate_password(payload.newPassword)
    with transaction(session):
        user.password = hash_password(payload.newPassword)
    return api_response(200, "Password changed successfully")
