"""
Exceptions raised by the conversion pipeline.

Fatal errors abort a job. PathEscape and ImageDecodeFailure are raised by the
low-level helpers but caught by the resolver, which turns them into warnings on
the job result so a messy input still produces a best-effort PDF.
"""

from pathlib import Path


class MdBundleError(Exception):
    """Base class for every error raised by mdbundle."""

    kind = "MdBundleError"

    def as_warning(self) -> str:
        return f"{self.kind}: {self}"


class InputNotFound(MdBundleError):
    """An input path does not exist."""

    kind = "InputNotFound"


class UnsupportedInputKind(MdBundleError):
    """An input path is neither a Markdown file, a directory nor a zip archive."""

    kind = "UnsupportedInputKind"


class PathEscape(MdBundleError):
    """A reference resolves outside the job's root directory."""

    kind = "PathEscape"

    def __init__(self, reference: str, root: Path, detail: str = "") -> None:
        self.reference = reference
        self.root = root
        msg = f"{reference!r} escapes {root}"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)


class OrderMismatch(MdBundleError):
    """A manual document order is not a permutation of the discovered documents."""

    kind = "OrderMismatch"

    def __init__(
        self,
        missing: list[str],
        unexpected: list[str],
        duplicates: list[str],
    ) -> None:
        self.missing = missing
        self.unexpected = unexpected
        self.duplicates = duplicates
        parts = []
        if missing:
            parts.append(f"missing {missing}")
        if unexpected:
            parts.append(f"unexpected {unexpected}")
        if duplicates:
            parts.append(f"duplicated {duplicates}")
        super().__init__("Manual order does not match resolved documents: " + "; ".join(parts))


class ImageDecodeFailure(MdBundleError):
    """An image could not be decoded, or decoded to zero dimensions."""

    kind = "ImageDecodeFailure"

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class EncodingConsistencyFailure(MdBundleError):
    """The encoded PDF failed its structural self-check."""

    kind = "EncodingConsistencyFailure"


class IoFailure(MdBundleError):
    """Reading an input or writing the output failed at the OS level."""

    kind = "IoFailure"


class JobCancelled(MdBundleError):
    """The caller cancelled the job between two stages."""

    kind = "JobCancelled"
