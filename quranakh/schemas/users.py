"""Account and parent-link models."""

from typing import List

from pydantic import BaseModel, Field

from quranakh.models.enums import UserRole


class Token(BaseModel):
    access_token: str
    token_type: str


class SchoolRegister(BaseModel):
    school_name: str = Field(min_length=1, max_length=200)
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=6)
    name: str = Field(min_length=1, max_length=100)


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=6)
    role: UserRole
    name: str = Field(min_length=1, max_length=100)


class UserResponse(BaseModel):
    id: int
    school_id: int
    username: str
    role: UserRole
    name: str

    model_config = {"from_attributes": True}


class ParentLinkCreate(BaseModel):
    parent_id: int
    student_id: int


class ParentLinkResponse(BaseModel):
    parent_id: int
    student_id: int

    model_config = {"from_attributes": True}


class ChildrenResponse(BaseModel):
    children: List[UserResponse]
    total: int
