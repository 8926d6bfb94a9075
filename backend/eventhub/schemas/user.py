"""
Pydantic schemas for user-related request/response validation.
"""

from pydantic import BaseModel, EmailStr, Field


class UserCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=250)
    email: EmailStr


class UserResponse(BaseModel):
    id: int
    name: str
    email: str

    model_config = {"from_attributes": True}


class UserShort(BaseModel):
    id: int
    name: str

    model_config = {"from_attributes": True}
