"""Abstract interface for image backends: probe metadata, produce PDF-ready image data."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ImageInfo:
    """Decoded metadata recorded in the asset manifest."""

    width: int
    height: int
    byte_length: int
    format: str


@dataclass(frozen=True)
class EmbeddedImage:
    """Image samples ready to become a PDF image XObject."""

    width: int
    height: int
    color_space: str  # DeviceRGB | DeviceGray
    bits_per_component: int
    filter: str  # DCTDecode | FlateDecode
    data: bytes


class ImageBackend(ABC):
    """Interface that each image backend must implement."""

    @abstractmethod
    def probe(self, path: Path) -> ImageInfo:
        """
        Return pixel dimensions, byte length and format of the image at path.
        Raises ImageDecodeFailure when the file cannot be decoded or has a zero dimension.
        """
        ...

    @abstractmethod
    def load(self, path: Path) -> EmbeddedImage:
        """Decode the image at path into embeddable data. Raises ImageDecodeFailure."""
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend identifier (e.g. 'pymupdf')."""
        ...
