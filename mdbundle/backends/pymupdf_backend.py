"""PyMuPDF-based image backend: dimensions via fitz.Pixmap, JPEG passthrough, Flate for the rest."""

import threading
import zlib
from pathlib import Path

import fitz  # PyMuPDF

from mdbundle.backends.base import EmbeddedImage, ImageBackend, ImageInfo
from mdbundle.errors import ImageDecodeFailure

# MuPDF is not thread-safe; every fitz call in the package runs under this lock
FITZ_LOCK = threading.Lock()

# Leading bytes → format tag
_SIGNATURES: list[tuple[bytes, str]] = [
    (b"\x89PNG\r\n\x1a\n", "png"),
    (b"\xff\xd8\xff", "jpeg"),
    (b"GIF87a", "gif"),
    (b"GIF89a", "gif"),
    (b"BM", "bmp"),
]


def _sniff_format(head: bytes, path: Path) -> str:
    for magic, fmt in _SIGNATURES:
        if head.startswith(magic):
            return fmt
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "webp"
    suffix = path.suffix.lower().lstrip(".")
    return "jpeg" if suffix == "jpg" else suffix or "unknown"


def _read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise ImageDecodeFailure(path, str(e)) from e


def _open_pixmap(path: Path, data: bytes) -> fitz.Pixmap:
    if not data:
        raise ImageDecodeFailure(path, "empty file")
    try:
        pix = fitz.Pixmap(str(path))
    except Exception as e:
        raise ImageDecodeFailure(path, f"cannot decode: {e}") from e
    if pix.width <= 0 or pix.height <= 0:
        raise ImageDecodeFailure(path, f"zero dimensions ({pix.width}x{pix.height})")
    return pix


def _packed_samples(pix: fitz.Pixmap) -> bytes:
    """Pixel rows without stride padding."""
    row = pix.width * pix.n
    samples = pix.samples
    if pix.stride == row:
        return bytes(samples)
    return b"".join(samples[y * pix.stride:y * pix.stride + row] for y in range(pix.height))


def _embed(path: Path, data: bytes) -> EmbeddedImage:
    pix = _open_pixmap(path, data)
    components = pix.n - pix.alpha
    if _sniff_format(data[:16], path) == "jpeg" and components in (1, 3):
        return EmbeddedImage(
            width=pix.width,
            height=pix.height,
            color_space="DeviceGray" if components == 1 else "DeviceRGB",
            bits_per_component=8,
            filter="DCTDecode",
            data=data,
        )
    try:
        if pix.colorspace is None or pix.colorspace.n not in (1, 3):
            pix = fitz.Pixmap(fitz.csRGB, pix)
        if pix.alpha:
            # PDF has no alpha in the base image; drop it rather than build an SMask
            pix = fitz.Pixmap(pix, 0)
    except Exception as e:
        raise ImageDecodeFailure(path, f"cannot convert colorspace: {e}") from e
    return EmbeddedImage(
        width=pix.width,
        height=pix.height,
        color_space="DeviceGray" if pix.n == 1 else "DeviceRGB",
        bits_per_component=8,
        filter="FlateDecode",
        data=zlib.compress(_packed_samples(pix)),
    )


class PyMuPDFImageBackend(ImageBackend):
    """Decode images with MuPDF. JPEG files in Gray/RGB are embedded unchanged."""

    @property
    def name(self) -> str:
        return "pymupdf"

    def probe(self, path: Path) -> ImageInfo:
        path = Path(path)
        data = _read_bytes(path)
        with FITZ_LOCK:
            pix = _open_pixmap(path, data)
            width, height = pix.width, pix.height
        return ImageInfo(
            width=width,
            height=height,
            byte_length=len(data),
            format=_sniff_format(data[:16], path),
        )

    def load(self, path: Path) -> EmbeddedImage:
        path = Path(path)
        data = _read_bytes(path)
        with FITZ_LOCK:
            return _embed(path, data)
