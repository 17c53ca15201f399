"""Page image normalisation before upload to the document service."""

import base64
import binascii
import io

from courierbill.domain.capture import Page

MAX_IMAGE_DIMENSION = 3000  # Resize if either dimension exceeds this
JPEG_QUALITY = 90


def resize_image_bytes(image_bytes: bytes, max_dimension: int = MAX_IMAGE_DIMENSION) -> bytes:
    """
    Resize image bytes if either side exceeds max_dimension.

    EXIF orientation is applied first so a phone photo taken sideways is
    sent upright.

    Returns:
        JPEG bytes, resized if necessary
    """
    from PIL import Image, ImageOps

    img = Image.open(io.BytesIO(image_bytes))
    img = ImageOps.exif_transpose(img)

    width, height = img.size
    if width > max_dimension or height > max_dimension:
        if width > height:
            new_width = max_dimension
            new_height = int(height * (max_dimension / width))
        else:
            new_height = max_dimension
            new_width = int(width * (max_dimension / height))
        img = img.resize((new_width, new_height), Image.Resampling.LANCZOS)

    buffer = io.BytesIO()
    img.convert("RGB").save(buffer, format="JPEG", quality=JPEG_QUALITY)
    return buffer.getvalue()


def page_from_bytes(image_bytes: bytes, mime_type: str) -> Page:
    return Page(image_data=base64.b64encode(image_bytes).decode("ascii"), mime_type=mime_type)


def normalize_page(page: Page, max_dimension: int = MAX_IMAGE_DIMENSION) -> Page:
    """Re-encode image pages as bounded JPEG; other MIME types pass through."""
    if not page.mime_type.startswith("image/"):
        return page
    try:
        raw = base64.b64decode(page.image_data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Page image data is not valid base64") from exc
    return page_from_bytes(resize_image_bytes(raw, max_dimension), "image/jpeg")
