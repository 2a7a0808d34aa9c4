"""
Bundle data model: five role-tagged screenshots and their file records.

A bundle is exactly one image per :class:`ImageRole`.  :meth:`Bundle.from_uploads`
is the structural gate: it rejects missing, extra, empty, oversize or
undecodable uploads with :class:`BundleValidationError` before any analysis
runs.
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from imaging.utils import probe_image

from .errors import BundleValidationError

SIGNATURE_DELIMITER = "|"


class ImageRole(str, enum.Enum):
    LIKE = "like"
    COMMENT1 = "comment1"
    COMMENT2 = "comment2"
    REPLY1 = "reply1"
    REPLY2 = "reply2"

    @property
    def kind(self) -> str:
        """``"like"``, ``"comment"`` or ``"reply"``."""
        return self.value.rstrip("12")


ROLE_ORDER: Tuple[ImageRole, ...] = tuple(ImageRole)
COMMENT_ROLES = (ImageRole.COMMENT1, ImageRole.COMMENT2)
REPLY_ROLES = (ImageRole.REPLY1, ImageRole.REPLY2)


@dataclass(frozen=True)
class FileRecord:
    role: ImageRole
    perceptual_hash: str      # hex
    content_hash: str         # sha256 hex, audit only
    byte_size: int
    mime_type: str

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["role"] = self.role.value
        return d

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FileRecord":
        return cls(
            role=ImageRole(data["role"]),
            perceptual_hash=data["perceptual_hash"],
            content_hash=data["content_hash"],
            byte_size=int(data["byte_size"]),
            mime_type=data["mime_type"],
        )


def bundle_signature(hashes: Iterable[str]) -> str:
    """Order-independent fingerprint: sorted hashes joined by ``|``."""
    return SIGNATURE_DELIMITER.join(sorted(hashes))


@dataclass(frozen=True)
class Bundle:
    """Five validated image payloads keyed by role, with their detected MIME types."""

    images: Mapping[ImageRole, bytes]
    mime_types: Mapping[ImageRole, str]

    @classmethod
    def from_uploads(
        cls,
        uploads: Mapping[Any, bytes],
        max_image_bytes: int = 10 * 1024 * 1024,
        max_image_pixels: Optional[int] = 40_000_000,
    ) -> "Bundle":
        """
        Validate raw uploads keyed by role (``ImageRole`` or its string value).

        Raises
        ------
        BundleValidationError
            On unknown, missing or extra roles, empty or oversize payloads,
            images above *max_image_pixels* or bytes Pillow cannot decode.
        """
        expected = ", ".join(r.value for r in ROLE_ORDER)
        images: Dict[ImageRole, bytes] = {}
        for key, data in uploads.items():
            try:
                role = ImageRole(key)
            except ValueError:
                raise BundleValidationError(
                    f"Unexpected upload {key!r}; upload exactly 5 images: {expected}", role=str(key),
                ) from None
            images[role] = data

        missing = [r.value for r in ROLE_ORDER if r not in images]
        if missing:
            raise BundleValidationError(
                f"Missing images {missing}; upload exactly 5 images: {expected}", role=missing[0],
            )

        mime_types: Dict[ImageRole, str] = {}
        for role in ROLE_ORDER:
            data = images[role]
            if not data:
                raise BundleValidationError(f"Image {role.value!r} is empty", role=role.value)
            if len(data) > max_image_bytes:
                raise BundleValidationError(
                    f"Image {role.value!r} is {len(data)} bytes, limit is {max_image_bytes}",
                    role=role.value,
                )
            try:
                mime_types[role], _size = probe_image(data, max_pixels=max_image_pixels)
            except ValueError as exc:
                raise BundleValidationError(f"Invalid image file {role.value!r}: {exc}", role=role.value) from exc

        ordered = {r: images[r] for r in ROLE_ORDER}
        return cls(images=MappingProxyType(ordered), mime_types=MappingProxyType(mime_types))

    def __getitem__(self, role: ImageRole) -> bytes:
        return self.images[role]
