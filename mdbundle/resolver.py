"""
Document graph resolver: from entry Markdown files, follow Markdown links
breadth-first and collect image references into an asset manifest.

Traversal uses an explicit queue and a visited set keyed by canonical path,
so cyclic links terminate and each file is included once, at its first visit.
Every reference goes through path_utils.resolve_within before it is enqueued
or probed; references that fail become warnings, never fatal errors.
"""

import logging
from collections import Counter, deque
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Sequence

from mdbundle.backends.base import ImageBackend
from mdbundle.errors import ImageDecodeFailure, IoFailure, OrderMismatch, PathEscape
from mdbundle.markdown import iter_destinations
from mdbundle.path_utils import canonical, clean_reference, is_markdown, is_remote, resolve_within

log = logging.getLogger(__name__)

IMAGE = "image"
MARKDOWN_LINK = "markdown-link"


@dataclass(frozen=True)
class AssetReference:
    """A reference as written in Markdown. target is set only once it passed path safety."""

    raw: str
    kind: str  # image | markdown-link
    target: Path | None = None


@dataclass(frozen=True)
class DocumentNode:
    """One resolved Markdown file. Identity is the canonical path."""

    path: Path
    root: Path
    text: str
    ordinal: int
    references: tuple[AssetReference, ...] = ()

    def image_target(self, raw: str) -> Path | None:
        """Canonical image path for a destination written in this document, if it resolved."""
        for ref in self.references:
            if ref.kind == IMAGE and ref.raw == raw:
                return ref.target
        return None


@dataclass(frozen=True)
class ImageAsset:
    """Manifest entry. error is set when the image is unavailable for rendering."""

    path: Path
    width: int = 0
    height: int = 0
    byte_length: int = 0
    format: str = ""
    error: str | None = None

    @property
    def available(self) -> bool:
        return self.error is None and self.width > 0 and self.height > 0


AssetManifest = dict[Path, ImageAsset]


@dataclass(frozen=True)
class Resolution:
    documents: tuple[DocumentNode, ...]
    manifest: AssetManifest = field(default_factory=dict)
    warnings: tuple[str, ...] = ()


def _read_text(path: Path) -> str:
    try:
        data = path.read_bytes()
    except OSError as e:
        raise IoFailure(f"Cannot read {path}: {e}") from e
    return data.decode("utf-8", errors="replace").lstrip("\ufeff")


def _probe_image(path: Path, backend: ImageBackend, warnings: list[str]) -> ImageAsset:
    """Manifest entry for path; decode problems are recorded on the entry, not raised."""
    if not path.is_file():
        failure = ImageDecodeFailure(path, "file not found")
    else:
        try:
            info = backend.probe(path)
            return ImageAsset(path, info.width, info.height, info.byte_length, info.format)
        except ImageDecodeFailure as e:
            failure = e
    warnings.append(failure.as_warning())
    log.warning("Image unavailable: %s", failure)
    try:
        size = path.stat().st_size
    except OSError:
        size = 0
    return ImageAsset(path, byte_length=size, error=failure.reason)


def resolve(entries: Sequence[tuple[Path, Path]], backend: ImageBackend) -> Resolution:
    """
    Resolve entry documents and everything they link to.

    Args:
        entries: (markdown path, trust root) pairs, in the order they should appear.
        backend: Image backend used to probe image metadata.

    Returns:
        Resolution with documents in first-visit order, the image manifest and warnings.
    """
    warnings: list[str] = []
    visited: set[Path] = set()
    queue: deque[tuple[Path, Path]] = deque()

    for path, root in entries:
        root = canonical(root)
        try:
            target = resolve_within(root, Path(path).name, canonical(Path(path).parent))
        except PathEscape as e:
            warnings.append(e.as_warning())
            log.warning("Skipping entry outside root: %s", e)
            continue
        if target not in visited:
            visited.add(target)
            queue.append((target, root))

    documents: list[DocumentNode] = []
    manifest: AssetManifest = {}

    while queue:
        path, root = queue.popleft()
        text = _read_text(path)
        references: list[AssetReference] = []

        for kind, dest in iter_destinations(text):
            if not dest or is_remote(dest) or dest.startswith("#"):
                continue
            if kind == "link" and not is_markdown(Path(clean_reference(dest))):
                continue
            ref_kind = IMAGE if kind == "image" else MARKDOWN_LINK
            try:
                target = resolve_within(root, dest, path.parent)
            except PathEscape as e:
                warnings.append(f"{e.as_warning()} in {path.name}")
                log.warning("Dropping reference in %s: %s", path, e)
                references.append(AssetReference(dest, ref_kind))
                continue

            if ref_kind == IMAGE:
                references.append(AssetReference(dest, IMAGE, target))
                if target not in manifest:
                    manifest[target] = _probe_image(target, backend, warnings)
                continue

            if not target.is_file():
                warnings.append(f"MissingDocument: {dest!r} linked from {path.name} not found")
                references.append(AssetReference(dest, MARKDOWN_LINK))
                continue
            references.append(AssetReference(dest, MARKDOWN_LINK, target))
            if target not in visited:
                visited.add(target)
                queue.append((target, root))

        documents.append(DocumentNode(path, root, text, len(documents), tuple(references)))
        log.info("Resolved %s (%d references)", path, len(references))

    return Resolution(tuple(documents), manifest, tuple(warnings))


def apply_order(resolution: Resolution, order: Sequence[str | Path]) -> tuple[DocumentNode, ...]:
    """
    Reorder documents by a caller-supplied list of paths. The list must be a
    permutation of the resolved documents; raises OrderMismatch otherwise.
    """
    by_path = {doc.path: doc for doc in resolution.documents}
    wanted = [canonical(Path(p)) for p in order]
    wanted_set = set(wanted)
    missing = [str(p) for p in by_path if p not in wanted_set]
    unexpected = [str(p) for p in wanted if p not in by_path]
    duplicates = [str(p) for p, count in Counter(wanted).items() if count > 1]
    if missing or unexpected or duplicates:
        raise OrderMismatch(missing, unexpected, duplicates)
    return tuple(replace(by_path[p], ordinal=i) for i, p in enumerate(wanted))
