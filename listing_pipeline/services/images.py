from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Sequence, Union
from urllib.parse import unquote_to_bytes

from listing_pipeline.schemas.images import RawImage, UploadedImage, WrappedImage


log = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "image/jpeg"

_DATA_URI = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^,;]+)*?)(?P<b64>;base64)?,(?P<data>.*)$", re.DOTALL)


@dataclass(frozen=True)
class ImagePayload:
    """Binary image ready for a multipart upload."""
    filename: str
    content_type: str
    data: bytes

    def as_multipart(self, field: str = "images") -> tuple[str, tuple[str, bytes, str]]:
        return field, (self.filename, self.data, self.content_type)


NormalizedImage = Union[ImagePayload, UploadedImage]


@dataclass(frozen=True)
class NormalizedImageSet:
    """
    Normalizer output. `positions[i]` is the source index `images[i]` came from,
    so indexes into the source list can be carried over after drops.
    """
    images: list[NormalizedImage]
    positions: list[int]
    source_count: int

    @property
    def dropped(self) -> int:
        return self.source_count - len(self.images)

    def main_index(self, source_index: int) -> int:
        # a dropped main image falls back to the first surviving one
        try:
            return self.positions.index(source_index)
        except ValueError:
            return 0


def _image_content_type(content_type: str | None) -> str:
    if content_type and content_type.lower().startswith("image/"):
        return content_type
    return DEFAULT_CONTENT_TYPE


def _from_raw(raw: RawImage) -> ImagePayload:
    return ImagePayload(
        filename=raw.filename,
        content_type=_image_content_type(raw.content_type),
        data=raw.data,
    )


def decode_data_uri(uri: str) -> tuple[bytes, str | None] | None:
    """
    Decode a `data:` URI into (bytes, mime). Returns None when the reference is
    not a data URI or its body does not decode.
    """
    m = _DATA_URI.match(uri.strip())
    if not m:
        return None
    body = m.group("data")
    try:
        if m.group("b64"):
            data = base64.b64decode(body, validate=True)
        else:
            data = unquote_to_bytes(body)
    except (binascii.Error, ValueError):
        return None
    if not data:
        return None
    return data, m.group("mime")


def _from_wrapped(img: WrappedImage, index: int) -> ImagePayload | None:
    if img.file is not None:
        return _from_raw(img.file)

    if img.preview:
        decoded = decode_data_uri(img.preview)
        if decoded is not None:
            data, mime = decoded
            return ImagePayload(
                filename=img.name or f"image-{index}.jpg",
                content_type=_image_content_type(mime),
                data=data,
            )
    return None


def normalize_images(sources: Sequence[RawImage | WrappedImage | UploadedImage]) -> NormalizedImageSet:
    """
    Resolve each image source into either an uploadable payload or an
    already-uploaded passthrough, keeping input order. Sources that resolve to
    nothing are dropped with a warning; the rest of the set still goes through.
    """
    out: list[NormalizedImage] = []
    positions: list[int] = []
    for index, src in enumerate(sources):
        if isinstance(src, RawImage):
            img: NormalizedImage | None = _from_raw(src)
        elif isinstance(src, UploadedImage):
            img = src
        elif isinstance(src, WrappedImage):
            img = _from_wrapped(src, index)
            if img is None:
                log.warning("image %d dropped: wrapped image has no file and no decodable preview (name=%s)", index, src.name)
        else:
            img = None
            log.warning("image %d dropped: unsupported source type %s", index, type(src).__name__)

        if img is not None:
            out.append(img)
            positions.append(index)
    return NormalizedImageSet(images=out, positions=positions, source_count=len(sources))


def payloads_to_stage(images: Sequence[NormalizedImage]) -> list[ImagePayload]:
    return [img for img in images if isinstance(img, ImagePayload)]


def merge_staged_urls(images: Sequence[NormalizedImage], staged_urls: Sequence[str]) -> list[str]:
    """
    Rebuild the final URL list: staged URLs fill the payload slots in order,
    passthrough images keep their existing URL in place.
    """
    staged = iter(staged_urls)
    urls: list[str] = []
    for img in images:
        if isinstance(img, UploadedImage):
            urls.append(img.url)
        else:
            urls.append(next(staged))
    return urls
