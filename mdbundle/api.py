"""
Public API: resolve inputs and render them to one PDF from code.

    from mdbundle import JobContext, process_input, convert_to_pdf

    with JobContext() as ctx:
        processed = process_input(["docs/"], context=ctx)
        result = convert_to_pdf(processed, context=ctx)

process_input only resolves (documents, images, warnings); convert_to_pdf
builds blocks, lays them out, encodes and writes <root>/<output_name>.
Reordering processed.markdown_files before converting sets a manual order.
"""

import logging
import os
import shutil
import tempfile
import threading
import zipfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Sequence

from mdbundle.backends import EmbeddedImage, ImageBackend, get_backend
from mdbundle.blocks import build_document_stream
from mdbundle.errors import (
    ImageDecodeFailure,
    IoFailure,
    JobCancelled,
    MdBundleError,
    PathEscape,
    UnsupportedInputKind,
)
from mdbundle.fonts import FontMetrics
from mdbundle.layout import ImagePlacement, layout
from mdbundle.models import ConvertResult, ProcessedInput, RenderConfig
from mdbundle.path_utils import InputKind, canonical, classify_input, common_root, discover_markdown, resolve_within
from mdbundle.pdf import encode_pdf
from mdbundle.resolver import AssetManifest, Resolution, apply_order, resolve

log = logging.getLogger(__name__)


class JobContext:
    """
    Per-job state: temporary extraction directories, the most recent
    resolution and a cancellation flag. Use as a context manager so the
    temporary directories are removed when the job ends. Not shared across jobs.
    """

    def __init__(self) -> None:
        self._temp_dirs: list[tempfile.TemporaryDirectory] = []
        self.resolution: Resolution | None = None
        self._cancelled = threading.Event()

    def __enter__(self) -> "JobContext":
        return self

    def __exit__(self, *exc) -> None:
        self.cleanup()

    def make_temp_dir(self, prefix: str = "mdbundle-") -> Path:
        tmp = tempfile.TemporaryDirectory(prefix=prefix)
        self._temp_dirs.append(tmp)
        return Path(tmp.name)

    def cleanup(self) -> None:
        while self._temp_dirs:
            self._temp_dirs.pop().cleanup()

    def cancel(self) -> None:
        """Request cancellation; honored at the next stage boundary."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def check_cancelled(self, stage: str) -> None:
        if self._cancelled.is_set():
            raise JobCancelled(f"Job cancelled before {stage}")


def _extract_archive(archive: Path, context: JobContext, warnings: list[str]) -> Path:
    """Extract a zip into a job temp dir. Members that would land outside it are skipped."""
    dest = canonical(context.make_temp_dir(prefix="mdbundle-zip-"))
    try:
        with zipfile.ZipFile(archive) as zf:
            for info in zf.infolist():
                if info.is_dir():
                    continue
                try:
                    target = resolve_within(dest, info.filename)
                except PathEscape as e:
                    warnings.append(f"{e.as_warning()} in {archive.name}")
                    log.warning("Skipping archive member %s: %s", info.filename, e)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(info) as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst)
    except zipfile.BadZipFile as e:
        raise UnsupportedInputKind(f"Not a readable zip archive: {archive} ({e})") from e
    except OSError as e:
        raise IoFailure(f"Cannot extract {archive}: {e}") from e
    log.info("Extracted %s to %s", archive, dest)
    return dest


def _collect_entries(
    input_paths: Sequence[str | Path],
    context: JobContext | None,
    warnings: list[str],
) -> tuple[list[tuple[Path, Path]], Path]:
    """Entry (markdown, trust root) pairs for every input, and the output root."""
    entries: list[tuple[Path, Path]] = []
    output_roots: list[Path] = []
    for raw in input_paths:
        path = canonical(Path(raw))
        kind = classify_input(path)
        if kind is InputKind.MARKDOWN_FILE:
            entries.append((path, path.parent))
            output_roots.append(path.parent)
        elif kind is InputKind.DIRECTORY:
            found = discover_markdown(path)
            if not found:
                warnings.append(f"NoMarkdown: no Markdown files under {path}")
            entries.extend((md, path) for md in found)
            output_roots.append(path)
        else:
            if context is None:
                raise UnsupportedInputKind(f"Archive inputs need a JobContext to extract into: {path}")
            extracted = _extract_archive(path, context, warnings)
            found = discover_markdown(extracted)
            if not found:
                warnings.append(f"NoMarkdown: no Markdown files in {path.name}")
            entries.extend((md, extracted) for md in found)
            output_roots.append(path.parent)
    if not output_roots:
        raise UnsupportedInputKind("No input paths given")
    root = common_root(output_roots) or output_roots[0]
    return entries, root


def process_input(
    input_paths: Sequence[str | Path],
    *,
    context: JobContext | None = None,
    config: RenderConfig | None = None,
) -> ProcessedInput:
    """
    Resolve inputs without rendering: which documents, in which order, which images.

    Args:
        input_paths: Markdown files, directories or .zip archives.
        context: Job state; required for archives, and lets convert_to_pdf reuse this resolution.
        config: Render options (image backend).

    Returns:
        ProcessedInput. Raises InputNotFound / UnsupportedInputKind for bad inputs.
    """
    config = config or RenderConfig()
    if isinstance(input_paths, (str, Path)):
        input_paths = [input_paths]
    warnings: list[str] = []
    entries, root = _collect_entries(input_paths, context, warnings)
    if context is not None:
        context.check_cancelled("resolution")

    backend = get_backend(config.image_backend)()
    resolution = resolve(entries, backend)
    if context is not None:
        context.resolution = resolution

    warnings.extend(resolution.warnings)
    log.info(
        "Resolved %d documents and %d images under %s",
        len(resolution.documents),
        len(resolution.manifest),
        root,
    )
    return ProcessedInput(
        markdown_files=[str(d.path) for d in resolution.documents],
        image_files=[str(p) for p in resolution.manifest],
        root=str(root),
        inputs=[str(p) for p in input_paths],
        warnings=warnings,
    )


def _load_images(
    resolution: Resolution,
    backend: ImageBackend,
    warnings: list[str],
) -> tuple[AssetManifest, dict[Path, EmbeddedImage]]:
    """Embeddable data for every available image; failures are marked unavailable in a new manifest."""
    manifest = dict(resolution.manifest)
    images: dict[Path, EmbeddedImage] = {}
    for path, asset in resolution.manifest.items():
        if not asset.available:
            continue
        try:
            images[path] = backend.load(path)
        except ImageDecodeFailure as e:
            warnings.append(e.as_warning())
            log.warning("Cannot embed image: %s", e)
            manifest[path] = replace(asset, error=e.reason)
    return manifest, images


def _write_atomic(target: Path, data: bytes) -> None:
    """Write to a temp file next to target, then rename over it."""
    tmp: str | None = None
    try:
        fd, tmp = tempfile.mkstemp(prefix=".mdbundle-", suffix=".tmp", dir=target.parent)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp, target)
    except OSError as e:
        if tmp is not None and os.path.exists(tmp):
            os.unlink(tmp)
        raise IoFailure(f"Cannot write {target}: {e}") from e


def convert_to_pdf(
    processed: ProcessedInput,
    *,
    context: JobContext | None = None,
    config: RenderConfig | None = None,
    creation_date: datetime | None = None,
) -> ConvertResult:
    """
    Render processed inputs into <root>/<output_name>.

    processed.markdown_files is the document order; it must be a permutation of
    the resolved documents or OrderMismatch is raised before any layout happens.

    Args:
        processed: Result of process_input, optionally reordered.
        context: Job state; its resolution is reused when present. Required for
            archive inputs, which only exist inside the context that extracted them.
        config: Render options; defaults when None.
        creation_date: PDF CreationDate; fix it for reproducible output.

    Returns:
        ConvertResult with output path, counts and warnings.
    """
    config = config or RenderConfig()
    if context is None:
        with JobContext() as ctx:
            return _render(processed, ctx, config, creation_date)
    return _render(processed, context, config, creation_date)


def _render(
    processed: ProcessedInput,
    ctx: JobContext,
    config: RenderConfig,
    creation_date: datetime | None,
) -> ConvertResult:
    resolution = ctx.resolution
    warnings = list(processed.warnings)
    if resolution is None:
        archives = [p for p in processed.inputs if classify_input(Path(p)) is InputKind.ARCHIVE]
        if archives:
            # a fresh extraction would give every document a new path
            raise UnsupportedInputKind(
                f"Archive jobs must be converted with the JobContext used by process_input: {archives}"
            )
        log.info("No cached resolution; resolving %s again", processed.inputs)
        process_input(processed.inputs, context=ctx, config=config)
        resolution = ctx.resolution

    documents = apply_order(resolution, processed.markdown_files)
    root = canonical(Path(processed.root))
    target = resolve_within(root, config.output_name)

    ctx.check_cancelled("image loading")
    backend = get_backend(config.image_backend)()
    manifest, images = _load_images(resolution, backend, warnings)

    ctx.check_cancelled("block building")
    blocks = build_document_stream(documents, manifest, config)

    ctx.check_cancelled("layout")
    pages = layout(blocks, manifest, config, FontMetrics())

    ctx.check_cancelled("encoding")
    data = encode_pdf(pages, images, config, creation_date)

    ctx.check_cancelled("writing")
    _write_atomic(target, data)

    embedded = {
        frag.path
        for page in pages
        for frag in page.fragments
        if isinstance(frag, ImagePlacement) and frag.path in images
    }
    log.info("Wrote %s (%d pages)", target, len(pages))
    return ConvertResult(
        output_path=target,
        page_count=len(pages),
        document_count=len(documents),
        image_count=len(embedded),
        warnings=warnings,
    )


def convert_paths(
    input_paths: Sequence[str | Path],
    *,
    config: RenderConfig | None = None,
    order: Sequence[str | Path] | None = None,
    creation_date: datetime | None = None,
) -> ConvertResult:
    """One-shot: process_input then convert_to_pdf in a fresh JobContext."""
    with JobContext() as ctx:
        processed = process_input(input_paths, context=ctx, config=config)
        if order is not None:
            processed.markdown_files = [str(canonical(Path(p))) for p in order]
        return convert_to_pdf(processed, context=ctx, config=config, creation_date=creation_date)


def convert_many(
    jobs: Sequence[Sequence[str | Path]],
    *,
    config: RenderConfig | None = None,
    max_workers: int = 4,
) -> list[ConvertResult | MdBundleError]:
    """
    Run independent jobs concurrently. Each job owns its JobContext; nothing is
    shared between them. Returns one ConvertResult or MdBundleError per job, in input order.
    """

    def run(paths: Sequence[str | Path]) -> ConvertResult | MdBundleError:
        try:
            return convert_paths(paths, config=config)
        except MdBundleError as e:
            log.warning("Job %s failed: %s", list(paths), e)
            return e

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        return list(pool.map(run, jobs))
