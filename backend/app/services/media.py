from __future__ import annotations
import io
import secrets
from PIL import Image, UnidentifiedImageError

PHOTO_MIME = {"image/jpeg", "image/jpg", "image/png"}
VIDEO_MIME = {"video/mp4", "video/quicktime", "video/mov"}
EXT_FOR_MIME = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "video/mp4": "mp4",
    "video/quicktime": "mov",
    "video/mov": "mov",
}

def sniff_image_mime(data: bytes) -> str | None:
    try:
        with Image.open(io.BytesIO(data)) as img:
            if img.format == "JPEG":
                return "image/jpeg"
            elif img.format == "PNG":
                return "image/png"
            return None
    except (UnidentifiedImageError, OSError):
        return None

def classify_upload(content_type: str | None, data: bytes) -> tuple[str, str]:
    """
    Returns (media_type, mime) where media_type is 'photo' or 'video'.
    Photos are checked for integrity; videos are trusted by declared type.
    Raises ValueError for anything else.
    """
    ct = (content_type or "").lower()
    if ct in VIDEO_MIME:
        return "video", ct
    if ct in PHOTO_MIME:
        mime = sniff_image_mime(data)
        if mime is None:
            raise ValueError("Invalid image file")
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.verify()
        except (UnidentifiedImageError, OSError, SyntaxError):
            raise ValueError("Invalid image file")
        return "photo", mime
    raise ValueError("Invalid file type. Only images and videos are allowed")

def ext_for_mime(mime: str) -> str:
    return EXT_FOR_MIME.get(mime, "bin")

def new_media_id() -> str:
    return secrets.token_hex(16)
