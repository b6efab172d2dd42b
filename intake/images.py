"""Staged (not yet persisted) item images and their preview thumbnails"""
import base64
import io
import logging
import tempfile
import uuid
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from PIL import Image, UnidentifiedImageError

from . import config


logger = logging.getLogger(__name__)


def sniff_mime(data: bytes) -> str:
    """Detect jpeg/png/webp from magic bytes, defaulting to jpeg"""
    if data.startswith(b"\x89PNG"):
        return "image/png"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


@dataclass(frozen=True)
class ImageUpload:
    filename: str
    data: bytes


@dataclass(frozen=True)
class TempImage:
    id: str
    data: bytes
    filename: str
    content_type: str
    preview_ref: str
    is_primary: bool = False

    def summary(self) -> dict:
        return {
            "id": self.id,
            "filename": self.filename,
            "content_type": self.content_type,
            "size_bytes": len(self.data),
            "preview": self.preview_ref,
            "is_primary": self.is_primary,
        }


class PreviewStore:
    """Writes preview thumbnails to a directory and deletes them on release.

    Each reference can be released once; a second release is logged and
    ignored so callers can tell leaks and double releases apart in tests.
    """

    def __init__(self, directory: Optional[Path] = None, size: Tuple[int, int] = config.PREVIEW_SIZE):
        if directory is None:
            directory = Path(tempfile.mkdtemp(prefix="intake-previews-"))
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.size = size
        self._live = set()
        self.released: List[str] = []

    @property
    def live(self) -> frozenset:
        return frozenset(self._live)

    def path(self, ref: str) -> Path:
        return self.directory / ref

    def create(self, data: bytes) -> str:
        """Render a JPEG thumbnail; raises ``UnidentifiedImageError`` for non-images"""
        with Image.open(io.BytesIO(data)) as img:
            thumb = img.convert("RGB") if img.mode != "RGB" else img.copy()
        thumb.thumbnail(self.size)

        ref = f"{uuid.uuid4().hex}.jpg"
        thumb.save(self.path(ref), format="JPEG", quality=80)
        self._live.add(ref)
        return ref

    def release(self, ref: str) -> bool:
        if ref not in self._live:
            logger.warning("Preview %s is not live, ignoring release", ref)
            return False
        self._live.discard(ref)
        self.path(ref).unlink(missing_ok=True)
        self.released.append(ref)
        return True

    def close(self) -> None:
        for ref in list(self._live):
            self.release(ref)


def stage_images(
    current: Sequence[TempImage],
    uploads: Sequence[ImageUpload],
    previews: PreviewStore,
    max_images: int = config.MAX_IMAGES,
    max_bytes: int = config.MAX_IMAGE_BYTES,
) -> Tuple[Tuple[TempImage, ...], List[str]]:
    """Add uploaded files to the staged list.

    Returns the new list and any per-file error messages. The first image
    staged into an empty list becomes primary.
    """
    images = list(current)
    errors: List[str] = []

    remaining = max_images - len(images)
    if remaining <= 0:
        return tuple(images), [f"Maximum {max_images} images allowed"]

    for upload in uploads[:remaining]:
        if len(upload.data) > max_bytes:
            errors.append("File size must be less than 10MB")
            continue
        try:
            preview_ref = previews.create(upload.data)
        except (UnidentifiedImageError, OSError):
            errors.append(f"{upload.filename} is not a valid image")
            continue

        images.append(TempImage(
            id=uuid.uuid4().hex,
            data=upload.data,
            filename=upload.filename,
            content_type=sniff_mime(upload.data),
            preview_ref=preview_ref,
            is_primary=len(images) == 0,
        ))

    if len(uploads) > remaining:
        errors.append(f"Maximum {max_images} images allowed")

    return tuple(images), errors


def remove_image(images: Sequence[TempImage], image_id: str, previews: PreviewStore) -> Tuple[TempImage, ...]:
    target = next((img for img in images if img.id == image_id), None)
    if target is None:
        raise KeyError(image_id)

    previews.release(target.preview_ref)
    remaining = [img for img in images if img.id != image_id]

    # Removing the primary promotes the first remaining image
    if target.is_primary and remaining:
        remaining[0] = replace(remaining[0], is_primary=True)
    return tuple(remaining)


def set_primary(images: Sequence[TempImage], image_id: str) -> Tuple[TempImage, ...]:
    if not any(img.id == image_id for img in images):
        raise KeyError(image_id)
    return tuple(replace(img, is_primary=img.id == image_id) for img in images)


def release_all(images: Sequence[TempImage], previews: PreviewStore) -> None:
    for img in images:
        previews.release(img.preview_ref)


def encode_images(images: Sequence[TempImage]) -> List[str]:
    return [base64.b64encode(img.data).decode("utf-8") for img in images]
