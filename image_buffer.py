"""
Pixel Buffer Utilities
======================
Pure image transforms used by the ID card pipeline. Every function returns a
new PixelBuffer backed by a fresh array; inputs are never modified.

Buffers hold OpenCV-style arrays: H x W (grayscale) or H x W x C in BGR(A)
channel order, dtype uint8.
"""

from dataclasses import dataclass

import cv2
import numpy as np

from scan_types import ImageDecodeError


@dataclass(frozen=True, eq=False)
class PixelBuffer:
    """Owned 2-D pixel buffer."""
    pixels: np.ndarray

    def __post_init__(self):
        arr = self.pixels
        if not isinstance(arr, np.ndarray):
            raise TypeError("pixels must be a numpy array")
        if arr.ndim not in (2, 3) or arr.shape[0] == 0 or arr.shape[1] == 0:
            raise ValueError(f"Malformed pixel buffer with shape {arr.shape}")
        if arr.ndim == 3 and arr.shape[2] == 0:
            raise ValueError("Pixel buffer has no channels")

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def channels(self) -> int:
        return 1 if self.pixels.ndim == 2 else int(self.pixels.shape[2])


def decode_image(data: bytes) -> PixelBuffer:
    """Decode JPEG/PNG/BMP/WebP/... bytes into a BGR buffer."""
    if not data:
        raise ImageDecodeError("Empty image data")
    try:
        image = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise ImageDecodeError(f"Cannot decode image: {e}") from e
    if image is None:
        raise ImageDecodeError("Cannot decode image: unsupported or corrupt data")
    return PixelBuffer(image)


_ROTATIONS = {
    90: cv2.ROTATE_90_CLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


def rotate(buffer: PixelBuffer, degrees: int) -> PixelBuffer:
    """Rotate clockwise by 0, 90, 180 or 270 degrees."""
    degrees = degrees % 360
    if degrees == 0:
        return PixelBuffer(buffer.pixels.copy())
    if degrees not in _ROTATIONS:
        raise ValueError(f"Unsupported rotation: {degrees}")
    return PixelBuffer(cv2.rotate(buffer.pixels, _ROTATIONS[degrees]))


def scale_up(buffer: PixelBuffer, target_min_dimension: int) -> PixelBuffer:
    """Scale uniformly so the shorter side is at least `target_min_dimension`."""
    w, h = buffer.width, buffer.height
    if min(w, h) >= target_min_dimension:
        return PixelBuffer(buffer.pixels.copy())

    scale = target_min_dimension / min(w, h)
    if w <= h:
        new_w, new_h = target_min_dimension, max(h, int(round(h * scale)))
    else:
        new_w, new_h = max(w, int(round(w * scale))), target_min_dimension
    resized = cv2.resize(buffer.pixels, (new_w, new_h), interpolation=cv2.INTER_CUBIC)
    return PixelBuffer(resized)


def upscale(buffer: PixelBuffer, factor: float) -> PixelBuffer:
    """Uniform scale-up by a fixed multiplier, for small crops."""
    if factor < 1:
        raise ValueError(f"Upscale factor must be >= 1, got {factor}")
    new_w = max(1, int(round(buffer.width * factor)))
    new_h = max(1, int(round(buffer.height * factor)))
    resized = cv2.resize(buffer.pixels, (new_w, new_h), interpolation=cv2.INTER_CUBIC)
    return PixelBuffer(resized)


def crop_canvas(buffer: PixelBuffer, x: float, y: float, w: float, h: float) -> PixelBuffer:
    """Crop a rectangle, shrinking it to the part that lies inside the buffer."""
    x0 = min(max(int(round(x)), 0), buffer.width - 1)
    y0 = min(max(int(round(y)), 0), buffer.height - 1)
    x1 = min(max(int(round(x + w)), x0 + 1), buffer.width)
    y1 = min(max(int(round(y + h)), y0 + 1), buffer.height)
    return PixelBuffer(buffer.pixels[y0:y1, x0:x1].copy())


def grayscale(buffer: PixelBuffer) -> PixelBuffer:
    """Luma conversion (0.299 R + 0.587 G + 0.114 B)."""
    if buffer.channels == 1:
        return PixelBuffer(buffer.pixels.reshape(buffer.height, buffer.width).copy())
    if buffer.channels == 4:
        return PixelBuffer(cv2.cvtColor(buffer.pixels, cv2.COLOR_BGRA2GRAY))
    return PixelBuffer(cv2.cvtColor(buffer.pixels, cv2.COLOR_BGR2GRAY))


def enhance_contrast(buffer: PixelBuffer, strength: float) -> PixelBuffer:
    """Linear stretch of intensities around the midpoint."""
    values = buffer.pixels.astype(np.float32) / 255.0
    values = ((values - 0.5) * strength + 0.5) * 255.0
    return PixelBuffer(np.clip(np.round(values), 0, 255).astype(np.uint8))


def stretch_contrast(buffer: PixelBuffer, low_percentile: float = 5,
                     high_percentile: float = 95) -> PixelBuffer:
    """Map the [low, high] percentile range onto 0-255."""
    low, high = np.percentile(buffer.pixels, [low_percentile, high_percentile])
    span = max(float(high - low), 1.0)
    values = (buffer.pixels.astype(np.float32) - low) / span * 255.0
    return PixelBuffer(np.clip(np.round(values), 0, 255).astype(np.uint8))


def sharpen(buffer: PixelBuffer, amount: float = 0.8) -> PixelBuffer:
    """Unsharp mask: original + (original - 3x3 box blur) * amount."""
    original = buffer.pixels.astype(np.float32)
    blurred = cv2.blur(original, (3, 3))
    sharpened = original + (original - blurred) * amount
    return PixelBuffer(np.clip(np.round(sharpened), 0, 255).astype(np.uint8))


def adaptive_threshold(buffer: PixelBuffer, block_size: int, c: float) -> PixelBuffer:
    """
    Binarize each pixel against the mean of its block_size x block_size
    neighbourhood minus `c`.

    Neighbourhood sums come from an integral image, so the cost per pixel is
    constant regardless of block size. Windows are clipped at the borders.
    Output samples are 0 (ink) or 255 (background).
    """
    if block_size < 1:
        raise ValueError(f"block_size must be positive, got {block_size}")

    gray = grayscale(buffer).pixels
    h, w = gray.shape
    integral = cv2.integral(gray, sdepth=cv2.CV_64F)  # (h + 1) x (w + 1)

    half = block_size // 2
    k = 2 * half + 1
    # Edge padding clamps window corners to the image, so every corner
    # table below is a plain view: padded[i] == integral[clip(i - half, 0, h)]
    padded = np.pad(integral, half, mode="edge")

    local_mean = padded[k:k + h, k:k + w] - padded[:h, k:k + w]
    local_mean -= padded[k:k + h, :w]
    local_mean += padded[:h, :w]

    ys = np.arange(h)
    xs = np.arange(w)
    rows = np.clip(ys + half + 1, 0, h) - np.clip(ys - half, 0, h)
    cols = np.clip(xs + half + 1, 0, w) - np.clip(xs - half, 0, w)
    local_mean /= rows[:, None]
    local_mean /= cols[None, :]
    local_mean -= c

    binary = np.zeros((h, w), dtype=np.uint8)
    binary[gray > local_mean] = 255
    return PixelBuffer(binary)
