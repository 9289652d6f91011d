"""Image backends: each probes image metadata and produces embeddable image data."""

from mdbundle.backends.base import EmbeddedImage, ImageBackend, ImageInfo
from mdbundle.backends.pymupdf_backend import PyMuPDFImageBackend

__all__ = ["EmbeddedImage", "ImageBackend", "ImageInfo", "PyMuPDFImageBackend", "get_backend"]

REGISTRY: dict[str, type[ImageBackend]] = {
    "pymupdf": PyMuPDFImageBackend,
}


def get_backend(name: str) -> type[ImageBackend]:
    """Return backend class for the given name. Raises KeyError if unknown."""
    if name not in REGISTRY:
        raise KeyError(f"Unknown image backend: {name}. Available: {list(REGISTRY)}")
    return REGISTRY[name]
