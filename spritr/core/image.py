# spritr/core/image.py
from __future__ import annotations
from dataclasses import dataclass

import cv2
import numpy as np

from app_config import IMAGE_EXT
from spritr.core.errors import ImageCorrupt


@dataclass(eq=False)
class Raster:
    """
    Decoded frame image. ``pixels`` is (h, w, 4) uint8 RGBA.
    Rasters are shared between frames; equality compares pixel content.
    """
    pixels: np.ndarray

    def __post_init__(self) -> None:
        px = np.asarray(self.pixels)
        if px.ndim != 3 or px.shape[2] != 4 or px.dtype != np.uint8:
            raise ValueError(f"expected (h, w, 4) uint8 RGBA, got {px.shape} {px.dtype}")
        self.pixels = px

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @classmethod
    def blank(cls, width: int, height: int) -> "Raster":
        return cls(np.zeros((height, width, 4), dtype=np.uint8))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Raster):
            return NotImplemented
        return self is other or np.array_equal(self.pixels, other.pixels)

    __hash__ = object.__hash__

    def __repr__(self) -> str:
        return f"Raster({self.width}x{self.height})"


def _to_rgba(img: np.ndarray) -> np.ndarray:
    # 16-bit PNGs keep their high byte
    if img.dtype == np.uint16:
        img = (img >> 8).astype(np.uint8)
    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2RGBA)
    channels = img.shape[2]
    if channels == 1:
        return cv2.cvtColor(img[:, :, 0], cv2.COLOR_GRAY2RGBA)
    if channels == 3:
        return cv2.cvtColor(img, cv2.COLOR_BGR2RGBA)
    return cv2.cvtColor(img, cv2.COLOR_BGRA2RGBA)


def decode(data: bytes, entry: str = "<image>") -> Raster:
    """PNG bytes -> RGBA raster. Raises ImageCorrupt on anything unreadable."""
    buf = np.frombuffer(data, dtype=np.uint8)
    if buf.size == 0:
        raise ImageCorrupt(entry, "empty image data")
    try:
        img = cv2.imdecode(buf, cv2.IMREAD_UNCHANGED)
    except cv2.error as ex:
        raise ImageCorrupt(entry, str(ex)) from ex
    if img is None or img.size == 0:
        raise ImageCorrupt(entry)
    return Raster(np.ascontiguousarray(_to_rgba(img)))


def encode(raster: Raster, entry: str = "<image>") -> bytes:
    """RGBA raster -> PNG bytes (lossless, alpha kept)."""
    bgra = cv2.cvtColor(raster.pixels, cv2.COLOR_RGBA2BGRA)
    ok, png = cv2.imencode(IMAGE_EXT, bgra)
    if not ok:
        raise ImageCorrupt(entry, "cannot encode image")
    return png.tobytes()
