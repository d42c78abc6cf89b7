"""Image intake: sniffing, encoding and resolution of uploaded photos."""

import base64
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DATA_URI_PREFIX = re.compile(r"^data:image/[a-z0-9.+-]+;base64,", re.IGNORECASE)

EXTENSION_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
}


def sniff_mime(data: bytes, filename: Optional[str] = None) -> str:
    """Detect the image MIME type from magic bytes, falling back to the file extension."""
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    suffix = Path(filename or "").suffix.lower()
    if suffix in EXTENSION_TYPES:
        return EXTENSION_TYPES[suffix]
    raise ValueError(f"Not a supported image file: {filename or '(unnamed upload)'}")


def strip_data_uri(value: str) -> str:
    """Remove a leading data:image/...;base64, header if present."""
    return DATA_URI_PREFIX.sub("", value or "", count=1)


@dataclass(frozen=True)
class ImageFile:
    """One selected photo, held in memory only."""
    filename: str
    mime_type: str
    data: bytes

    @classmethod
    def from_bytes(cls, data: bytes, filename: str = "upload") -> "ImageFile":
        if not data:
            raise ValueError("The selected image is empty.")
        return cls(filename=filename or "upload", mime_type=sniff_mime(data, filename), data=data)

    @classmethod
    def from_upload(cls, upload) -> "ImageFile":
        """Build from a werkzeug FileStorage (the browser upload)."""
        if upload is None or not upload.filename:
            raise ValueError("Please choose a photo first.")
        return cls.from_bytes(upload.read(), upload.filename)

    @classmethod
    def from_path(cls, name: str) -> "ImageFile":
        path = resolve_image(name)
        if path is None:
            raise ValueError(f"Image not found: {name}")
        return cls.from_bytes(path.read_bytes(), path.name)

    @property
    def payload(self) -> str:
        """Bare base64 string, as transmitted to the model."""
        return base64.b64encode(self.data).decode("utf-8")

    @property
    def base64_data(self) -> str:
        """Data URI used for the on-screen preview and the history thumbnail."""
        return f"data:{self.mime_type};base64,{self.payload}"


def resolve_image(name: str) -> Optional[Path]:
    """Resolve an image path from common locations; return None when it is missing."""
    name = str(name).strip()
    if not name:
        return None
    # Absolute or relative path direct hit
    p = Path(name).expanduser()
    if p.is_file():
        return p.resolve()

    cwd = Path.cwd()
    home = Path.home()
    common_dirs = [
        cwd,
        cwd / "images",
        home / "Downloads",
        home / "Pictures",
    ]
    for folder in common_dirs:
        candidate = folder / name
        if candidate.is_file():
            print(f"[images] Resolved {name} -> {candidate.resolve()}")
            return candidate.resolve()

    print(f"[images] Missing file: {name}")
    return None
