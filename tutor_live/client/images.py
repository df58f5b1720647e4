"""Stage problem images for the one-shot solver."""

from __future__ import annotations

import base64
import mimetypes
from pathlib import Path
from typing import List, Optional, Union

from tutor_live.backend.core.types import InlineImage
from tutor_live.config.default import DEFAULT_MAX_IMAGE_MB
from tutor_live.errors import ErrorCode, ImageValidationError
from tutor_live.utils.logger import LOGGER

ACCEPTED_MIME_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")
DIRECTORY_SUFFIXES = (".jpg", ".jpeg", ".png")

_SUFFIX_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


def guess_mime_type(path: Path) -> Optional[str]:
    mime_type = _SUFFIX_MIME_TYPES.get(path.suffix.lower())
    if mime_type:
        return mime_type
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed


def validate_image(
    mime_type: Optional[str], size_bytes: int, max_mb: float = DEFAULT_MAX_IMAGE_MB
) -> None:
    """Raise ImageValidationError for unsupported types or oversized files."""
    if mime_type not in ACCEPTED_MIME_TYPES:
        raise ImageValidationError(
            ErrorCode.IMAGE_TYPE_UNSUPPORTED,
            f"{mime_type or 'unknown'} is not one of {', '.join(ACCEPTED_MIME_TYPES)}",
        )
    if size_bytes > max_mb * 1024 * 1024:
        raise ImageValidationError(
            ErrorCode.IMAGE_TOO_LARGE,
            f"{size_bytes} bytes exceeds {max_mb:g} MB",
        )


def load_image(
    path: Union[str, Path], max_mb: float = DEFAULT_MAX_IMAGE_MB
) -> InlineImage:
    image_path = Path(path).expanduser()
    if not image_path.is_file():
        raise ImageValidationError(ErrorCode.IMAGE_NOT_FOUND, str(image_path))
    mime_type = guess_mime_type(image_path)
    validate_image(mime_type, image_path.stat().st_size, max_mb)
    data = base64.b64encode(image_path.read_bytes()).decode("ascii")
    return InlineImage(base64=data, mime_type=mime_type or "")


def load_images_from_directory(
    directory: Union[str, Path], max_mb: float = DEFAULT_MAX_IMAGE_MB
) -> List[InlineImage]:
    """Load every jpg/jpeg/png in ``directory`` in name order.

    Files that fail validation are logged and skipped; a missing directory
    yields an empty list.
    """
    root = Path(directory).expanduser()
    if not root.is_dir():
        LOGGER.warning("Image directory %s does not exist", root)
        return []
    images: List[InlineImage] = []
    for entry in sorted(root.iterdir()):
        if entry.suffix.lower() not in DIRECTORY_SUFFIXES:
            continue
        try:
            images.append(load_image(entry, max_mb))
        except ImageValidationError as exc:
            LOGGER.warning("Skipping %s: %s", entry.name, exc)
    return images


def load_images(
    paths: List[Union[str, Path]], max_mb: float = DEFAULT_MAX_IMAGE_MB
) -> List[InlineImage]:
    """Load files and directories given on the command line."""
    images: List[InlineImage] = []
    for raw in paths:
        path = Path(raw).expanduser()
        if path.is_dir():
            images.extend(load_images_from_directory(path, max_mb))
        else:
            images.append(load_image(path, max_mb))
    return images


__all__ = [
    "ACCEPTED_MIME_TYPES",
    "guess_mime_type",
    "load_image",
    "load_images",
    "load_images_from_directory",
    "validate_image",
]
