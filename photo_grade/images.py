# ── Подготовка изображения для модели: ресайз + JPEG + base64 ─────────────────

from __future__ import annotations

import base64
import io
from dataclasses import dataclass

from PIL import Image, ImageOps

from config import JPEG_QUALITY, MAX_DIMENSION


@dataclass
class PreparedImage:
    """Изображение, готовое к отправке в модель."""
    data: str                            # base64
    mime_type: str = "image/jpeg"


def fit_dimensions(width: int, height: int, max_dimension: int = MAX_DIMENSION) -> tuple[int, int]:
    """Размеры с длинной стороной ≤ max_dimension (пропорции сохраняются)."""
    if width > height:
        if width > max_dimension:
            return max_dimension, round(height * max_dimension / width)
    elif height > max_dimension:
        return round(width * max_dimension / height), max_dimension
    return width, height


def prepare_for_grading(data: bytes, max_dimension: int = MAX_DIMENSION) -> PreparedImage:
    """Уменьшает изображение и перекодирует в JPEG. Ошибки Pillow пробрасываются."""
    with Image.open(io.BytesIO(data)) as img:
        img = ImageOps.exif_transpose(img)
        size = fit_dimensions(img.width, img.height, max_dimension)
        if size != img.size:
            img = img.resize(size, Image.LANCZOS)
        if img.mode != "RGB":
            img = img.convert("RGB")

        buffer = io.BytesIO()
        img.save(buffer, format="JPEG", quality=JPEG_QUALITY)

    return PreparedImage(data=base64.b64encode(buffer.getvalue()).decode("utf-8"))
