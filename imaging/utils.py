"""
Shared image helpers for the screenshot analysers.

Provides:
- Byte decoding (decode_image_rgb, probe_image) with alpha flattened onto white
- Grayscale conversion and long-side downscaling
- PNG export of single-channel buffers (used by the ``binarize`` CLI command)
"""

from __future__ import annotations

import io
from pathlib import Path
from typing import Optional, Tuple, Union

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError


def _flatten_alpha(img: Image.Image) -> Image.Image:
    """Composite RGBA/LA/transparent-P images onto white and return RGB."""
    if img.mode == "P" and "transparency" in img.info:
        img = img.convert("RGBA")
    if img.mode in ("RGBA", "LA"):
        if img.mode == "LA":
            img = img.convert("RGBA")
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(img, mask=img.split()[-1])
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def probe_image(data: bytes, max_pixels: Optional[int] = None) -> Tuple[str, Tuple[int, int]]:
    """
    Check that *data* holds a decodable image without fully loading it.

    Only the header is parsed, so the pixel cap is enforced before any
    decoding happens.

    Returns
    -------
    (mime_type, (width, height))

    Raises
    ------
    ValueError
        If Pillow cannot identify or verify the bytes, or the image has
        more than *max_pixels* pixels.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
            size = img.size
            if max_pixels is not None and size[0] * size[1] > max_pixels:
                raise ValueError(f"image is {size[0]}x{size[1]} pixels, limit is {max_pixels}")
            img.verify()
    except Image.DecompressionBombError as exc:
        raise ValueError(f"image too large: {exc}") from exc
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ValueError(f"undecodable image: {exc}") from exc
    mime = Image.MIME.get(fmt or "", "application/octet-stream")
    return mime, size


def decode_image_rgb(data: bytes) -> np.ndarray:
    """Decode image bytes as an HxWx3 uint8 RGB array."""
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except Image.DecompressionBombError as exc:
        raise ValueError(f"image too large: {exc}") from exc
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError(f"undecodable image: {exc}") from exc
    return np.array(_flatten_alpha(img), dtype=np.uint8)


def to_gray_u8(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image.astype(np.uint8, copy=False)
    return cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)


def downscale(image: np.ndarray, max_side: int) -> np.ndarray:
    """Shrink so the longest side is at most *max_side*; never upscales."""
    h, w = image.shape[:2]
    longest = max(h, w)
    if max_side <= 0 or longest <= max_side:
        return image
    scale = max_side / float(longest)
    size = (max(1, int(w * scale)), max(1, int(h * scale)))
    return cv2.resize(image, size, interpolation=cv2.INTER_AREA)


def save_gray_png(gray: np.ndarray, out_path: Union[str, Path]) -> str:
    out_path = str(out_path)
    Image.fromarray(gray.astype(np.uint8)).save(out_path)
    return out_path
