"""Path safety and input classification. No CLI (typer) dependency."""

import os
import re
from enum import Enum
from pathlib import Path
from urllib.parse import unquote

from mdbundle.errors import InputNotFound, PathEscape, UnsupportedInputKind

MARKDOWN_SUFFIXES = {".md", ".markdown"}
IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp"}
ARCHIVE_SUFFIXES = {".zip"}


class InputKind(str, Enum):
    """What an input path is. Decided once, when the job starts."""

    MARKDOWN_FILE = "markdown-file"
    DIRECTORY = "directory"
    ARCHIVE = "archive"


def is_markdown(path: Path) -> bool:
    return Path(path).suffix.lower() in MARKDOWN_SUFFIXES


def is_image(path: Path) -> bool:
    return Path(path).suffix.lower() in IMAGE_SUFFIXES


def canonical(path: Path) -> Path:
    """Absolute, symlink-resolved form of path (need not exist)."""
    return Path(os.path.realpath(os.path.abspath(path)))


def classify_input(path: Path) -> InputKind:
    """
    Classify an input path. Raises InputNotFound if it does not exist and
    UnsupportedInputKind for files that are neither Markdown nor a zip archive.
    """
    path = Path(path)
    if not path.exists():
        raise InputNotFound(f"Input path does not exist: {path}")
    if path.is_dir():
        return InputKind.DIRECTORY
    if path.is_file():
        suffix = path.suffix.lower()
        if suffix in MARKDOWN_SUFFIXES:
            return InputKind.MARKDOWN_FILE
        if suffix in ARCHIVE_SUFFIXES:
            return InputKind.ARCHIVE
    raise UnsupportedInputKind(f"Not a Markdown file, directory or .zip archive: {path}")


_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]+:")


def is_remote(reference: str) -> bool:
    """True for URLs (http:, mailto:, data:, //host/...) that never name a local file."""
    ref = reference.strip().strip("<>")
    return bool(_SCHEME_RE.match(ref)) or ref.startswith("//")


def clean_reference(reference: str) -> str:
    """Strip fragment/query and decode percent-escapes: 'a%20b.md#x' -> 'a b.md'."""
    ref = reference.strip()
    if ref.startswith("<") and ref.endswith(">"):
        ref = ref[1:-1]
    for sep in ("#", "?"):
        idx = ref.find(sep)
        if idx != -1:
            ref = ref[:idx]
    ref = unquote(ref)
    return ref.replace("\\", "/")


def resolve_within(root: Path, reference: str, base_dir: Path | None = None) -> Path:
    """
    Resolve a relative reference (as written in Markdown) against base_dir and
    return its canonical path. A leading '/' means root-relative.

    The containment check runs on the final, symlink-resolved path, so '..'
    segments, percent-encoded separators and symlinks pointing outside all
    fail the same way. Raises PathEscape.
    """
    root = canonical(root)
    ref = clean_reference(reference)
    if not ref:
        raise PathEscape(reference, root, "empty reference")
    if "\x00" in ref:
        raise PathEscape(reference, root, "NUL byte")
    if ref.startswith("/"):
        candidate = root / ref.lstrip("/")
    else:
        candidate = Path(base_dir if base_dir is not None else root) / ref
    try:
        resolved = canonical(candidate)
    except (OSError, ValueError) as e:
        raise PathEscape(reference, root, str(e)) from e
    if resolved != root and root not in resolved.parents:
        raise PathEscape(reference, root)
    return resolved


def common_root(paths: list[Path]) -> Path | None:
    """Longest common ancestor directory of paths, or None when they only share '/'."""
    if not paths:
        return None
    parts = [Path(p).parts for p in paths]
    first = parts[0]
    common_len = len(first)
    for other in parts[1:]:
        common_len = min(common_len, len(other))
        for i in range(common_len):
            if other[i] != first[i]:
                common_len = i
                break
    if common_len <= 1:
        return None
    return Path(*first[:common_len])


def discover_markdown(directory: Path) -> list[Path]:
    """
    Every Markdown file under directory, in lexical order of relative path.
    Hidden entries and macOS '__MACOSX' metadata folders are skipped.
    """
    directory = Path(directory)
    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(directory):
        dirnames[:] = sorted(d for d in dirnames if not d.startswith(".") and d != "__MACOSX")
        for name in filenames:
            if name.startswith("."):
                continue
            if is_markdown(Path(name)):
                found.append(Path(dirpath) / name)
    return sorted(found, key=lambda p: p.relative_to(directory).as_posix())
