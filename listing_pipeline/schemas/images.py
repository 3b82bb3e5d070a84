from __future__ import annotations

import base64
import binascii
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


class RawImage(BaseModel):
    """
    Binary image handed over directly (file upload, bytes read from disk).
    Over JSON, `data` travels base64 encoded.
    """
    model_config = ConfigDict(frozen=True)

    kind: Literal["raw"] = "raw"
    data: bytes = Field(min_length=1)
    filename: str = Field(default="image.jpg", min_length=1, max_length=255)
    content_type: str | None = Field(default=None, max_length=100)

    @field_validator("data", mode="before")
    @classmethod
    def decode_base64(cls, v):
        if isinstance(v, str):
            try:
                return base64.b64decode(v, validate=True)
            except (binascii.Error, ValueError):
                raise ValueError("data must be base64 encoded")
        return v

    @field_serializer("data", when_used="json")
    def encode_base64(self, v: bytes) -> str:
        return base64.b64encode(v).decode("ascii")


class WrappedImage(BaseModel):
    """
    Form-side image object: an optional underlying file plus a preview
    reference (a `data:` URI). The file wins when both are present.
    """
    model_config = ConfigDict(frozen=True)

    kind: Literal["wrapped"] = "wrapped"
    file: RawImage | None = None
    preview: str | None = None
    name: str | None = Field(default=None, max_length=255)


class UploadedImage(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["uploaded"] = "uploaded"
    url: str = Field(min_length=1, max_length=2000)


ImageSource = Annotated[Union[RawImage, WrappedImage, UploadedImage], Field(discriminator="kind")]
