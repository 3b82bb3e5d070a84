from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from listing_pipeline.schemas.images import ImageSource


PENDING_APPROVAL = "pending_approval"

_CATEGORY_SEPARATORS = re.compile(r"\s*[>/]\s*")


def _split_category_path(v: Any) -> Any:
    # "Elektronik > Telefon" and "Elektronik/Telefon" both become ["Elektronik", "Telefon"]
    if isinstance(v, str):
        return [part.strip() for part in _CATEGORY_SEPARATORS.split(v) if part.strip()]
    return v


def _normalize_attributes(v: Any) -> Any:
    # {key: value} or {key: [values]} -> {key: [str, ...]}
    if not isinstance(v, dict):
        return v
    out: dict[str, list[str]] = {}
    for key, value in v.items():
        values = value if isinstance(value, (list, tuple)) else [value]
        out[str(key)] = [str(x) for x in values]
    return out


class PremiumFeatures(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_featured: bool = False
    is_urgent_premium: bool = False
    is_showcase: bool = False


class ListingDraft(BaseModel):
    """
    Client-side listing as handed to the submission pipeline. Frozen: the
    pipeline never mutates a draft it was given.
    """
    model_config = ConfigDict(frozen=True)

    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=10_000)
    price: Decimal = Field(default=Decimal("0"), ge=0)
    category_path: list[str] = Field(default_factory=list)
    location: str = Field(default="", max_length=200)

    images: list[ImageSource] = Field(default_factory=list)
    main_image_index: int = Field(default=0, ge=0)

    attributes: dict[str, list[str]] = Field(default_factory=dict)
    condition: list[str] = Field(default_factory=list)
    urgency: str = Field(default="medium", max_length=20)
    premium: PremiumFeatures = Field(default_factory=PremiumFeatures)

    expires_at: datetime | None = None
    geolocation: str | None = Field(default=None, max_length=120)
    duration_days: int | None = Field(default=None, ge=1)

    @field_validator("category_path", mode="before")
    @classmethod
    def split_category_path(cls, v: Any) -> Any:
        return _split_category_path(v)

    @field_validator("attributes", mode="before")
    @classmethod
    def normalize_attributes(cls, v: Any) -> Any:
        return _normalize_attributes(v)

    @model_validator(mode="after")
    def validate_main_image(self) -> "ListingDraft":
        if self.images and self.main_image_index >= len(self.images):
            raise ValueError("main_image_index must point at one of the images")
        if not self.images and self.main_image_index != 0:
            raise ValueError("main_image_index must be 0 when there are no images")
        return self

    @property
    def category(self) -> str:
        return " > ".join(self.category_path)


class ListingPatch(BaseModel):
    """
    Partial update. Only fields that are set travel to the backend.
    """
    model_config = ConfigDict(frozen=True)

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=10_000)
    price: Decimal | None = Field(default=None, ge=0)
    category_path: list[str] | None = None
    location: str | None = Field(default=None, max_length=200)

    images: list[ImageSource] | None = None
    main_image_index: int | None = Field(default=None, ge=0)

    attributes: dict[str, list[str]] | None = None
    condition: list[str] | None = None
    urgency: str | None = Field(default=None, max_length=20)
    premium: PremiumFeatures | None = None

    expires_at: datetime | None = None
    geolocation: str | None = Field(default=None, max_length=120)
    status: str | None = Field(default=None, max_length=30)

    @field_validator("category_path", mode="before")
    @classmethod
    def split_category_path(cls, v: Any) -> Any:
        return _split_category_path(v)

    @field_validator("attributes", mode="before")
    @classmethod
    def normalize_attributes(cls, v: Any) -> Any:
        return _normalize_attributes(v)

    @property
    def has_new_images(self) -> bool:
        return bool(self.images)

    @property
    def category(self) -> str | None:
        if self.category_path is None:
            return None
        return " > ".join(self.category_path)


class ListingRecord(BaseModel):
    """
    The persisted listing as read back from the system of record. A degraded
    stub carries only `id` and `status`.
    """
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str
    status: str = PENDING_APPROVAL

    user_id: str | None = None
    title: str | None = None
    description: str | None = None
    price: Decimal | None = None
    category: str | None = None
    category_id: int | None = None
    category_path: list[int] | None = None
    location: str | None = None
    images: list[str] | None = None
    main_image_index: int | None = None
    attributes: dict[str, list[str]] | None = None
    condition: list[str] | None = None
    urgency: str | None = None
    geolocation: str | None = None
    is_featured: bool | None = None
    is_urgent_premium: bool | None = None
    is_showcase: bool | None = None
    expires_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def stub(cls, listing_id: str) -> "ListingRecord":
        return cls(id=listing_id, status=PENDING_APPROVAL)

    @property
    def is_stub(self) -> bool:
        return self.title is None and self.created_at is None
