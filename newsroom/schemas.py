from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime

from newsroom.models import ArticleStatus, Role


# --- User ---

class UserBase(BaseModel):
    name: str = Field(min_length=1, max_length=150)
    email: str = Field(max_length=255)


class UserCreate(UserBase):
    role: Role = Role.READER


class UserUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=150)
    email: str | None = Field(None, max_length=255)
    role: Role | None = None


class UserResponse(UserBase):
    id: int
    role: Role
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# --- Category ---

class CategoryCreate(BaseModel):
    name: str = Field(max_length=100)


class CategoryUpdate(BaseModel):
    name: str = Field(max_length=100)


class CategoryResponse(BaseModel):
    id: int
    name: str
    slug: str
    model_config = ConfigDict(from_attributes=True)


# --- Article ---

class ImageIn(BaseModel):
    url: str = Field(max_length=1000)
    is_main: bool = False
    caption: str = Field("", max_length=500)
    alt_text: str = Field("", max_length=500)
    credit: str | None = Field(None, max_length=255)


Tag = Annotated[str, Field(max_length=100)]


class ArticleCreate(BaseModel):
    # Emptiness is checked by the lifecycle manager so it surfaces as INVALID_INPUT.
    title: str = Field(max_length=200)
    content: str
    summary: str | None = Field(None, max_length=500)
    category_id: int
    status: ArticleStatus = ArticleStatus.DRAFT
    tags: list[Tag] = []
    images: list[ImageIn] = []


class ArticleUpdate(BaseModel):
    title: str | None = Field(None, max_length=200)
    content: str | None = None
    summary: str | None = Field(None, max_length=500)
    category_id: int | None = None
    status: ArticleStatus | None = None
    tags: list[Tag] | None = None
    images: list[ImageIn] | None = None


# --- Pagination ---

class ArticlePage(BaseModel):
    items: list
    total: int
    has_more: bool
    limit: int
    offset: int
