from __future__ import annotations
import re
from pathlib import Path
from urllib.parse import urlparse

from listing_pipeline.services.images import ImagePayload


_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


class LocalObjectStore:
    """
    Filesystem store used by the direct-write path for images that never went
    through the upload service.
    """

    def __init__(self, base_dir: str):
        self.base = Path(base_dir)
        self.base.mkdir(parents=True, exist_ok=True)

    def put_bytes(self, *, key: str, data: bytes) -> str:
        path = self.base / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return f"file://{path.resolve().as_posix()}"

    def resolve_path(self, uri: str) -> Path:
        parsed = urlparse(uri)
        if parsed.scheme == "file":
            return Path(parsed.path)
        if parsed.scheme == "":
            p = Path(uri)
            return p if p.is_absolute() else self.base / p
        raise ValueError(f"Unsupported storage scheme: {parsed.scheme}")

    def delete(self, uri: str) -> None:
        self.resolve_path(uri).unlink(missing_ok=True)

    def put_listing_image(self, *, listing_id: str, position: int, payload: ImagePayload) -> str:
        # position prefix keeps the stored order stable and names unique
        name = _UNSAFE.sub("_", payload.filename).strip("._") or "image.jpg"
        return self.put_bytes(key=f"listings/{listing_id}/{position:02d}-{name}", data=payload.data)
