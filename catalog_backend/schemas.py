"""
Pydantic schemas for JSON request bodies.

Multipart endpoints (products, subcategories, banners) read their forms
directly and are not described here.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    email: str
    password: str


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""


class CreateRoleRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None


class EditUserRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None


class UserLimitUpdate(BaseModel):
    maxRole: int = Field(..., ge=1)


class ChangePasswordRequest(BaseModel):
    currentPassword: Optional[str] = None
    newPassword: Optional[str] = None


class CategoryRequest(BaseModel):
    name: Optional[str] = None


class LeadCreate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None


class LeadUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None
    type: Optional[str] = None


class CommentCreate(BaseModel):
    message: Optional[str] = None
    lead_id: Optional[str] = None


class CommentUpdate(BaseModel):
    message: Optional[str] = None


class BannerPositionRequest(BaseModel):
    newPosition: int


class DeleteImageRequest(BaseModel):
    imageId: Optional[str] = None
