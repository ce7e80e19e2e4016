"""Resize image bytes to a fixed width with Pillow."""

import io

from PIL import Image

# Formats Pillow can write; anything else is re-encoded as PNG
_WRITABLE_FORMATS = {"PNG", "JPEG", "GIF", "BMP", "WEBP", "TIFF"}


def make_thumbnail(data: bytes, width: int) -> bytes:
    """Return data resized to width pixels, keeping the aspect ratio.

    Raises PIL.UnidentifiedImageError if data is not an image.
    """
    if width <= 0:
        raise ValueError(f"Invalid thumbnail width: {width}")
    with Image.open(io.BytesIO(data)) as img:
        fmt = img.format if img.format in _WRITABLE_FORMATS else "PNG"
        height = max(1, round(img.height * width / img.width))
        resized = img.resize((width, height))
        if fmt == "JPEG" and resized.mode not in ("RGB", "L"):
            resized = resized.convert("RGB")
        out = io.BytesIO()
        resized.save(out, format=fmt)
    return out.getvalue()
