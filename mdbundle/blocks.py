"""Block model: typed blocks built from resolved documents, in source order."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from mdbundle.markdown import InlineImage, InlineRun, RawBlock, parse_blocks, plain_text
from mdbundle.models import RenderConfig
from mdbundle.resolver import AssetManifest, DocumentNode

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Heading:
    level: int
    runs: tuple[InlineRun, ...]


@dataclass(frozen=True)
class Paragraph:
    runs: tuple[InlineRun, ...]


@dataclass(frozen=True)
class ListItem:
    """An empty label marks a further paragraph of the item above."""

    ordered: bool
    depth: int
    runs: tuple[InlineRun, ...]
    label: str = "•"


@dataclass(frozen=True)
class CodeBlock:
    language: str
    lines: tuple[str, ...]


@dataclass(frozen=True)
class Image:
    """path is None when the reference was dropped (escape, remote URL, unresolved)."""

    path: Path | None
    alt: str


@dataclass(frozen=True)
class Rule:
    pass


Block = Heading | Paragraph | ListItem | CodeBlock | Image | Rule


def _has_text(runs: Sequence[InlineRun]) -> bool:
    return any(r.text.strip() for r in runs)


def _trim(runs: list[InlineRun]) -> tuple[InlineRun, ...]:
    """Drop whitespace left at the edges where an image was cut out."""
    runs = list(runs)
    if runs and not runs[0].is_hard_break:
        first = runs[0]
        runs[0] = InlineRun.make(first.text.lstrip(), first.bold, first.italic, first.code)
    if runs and not runs[-1].is_hard_break:
        last = runs[-1]
        runs[-1] = InlineRun.make(last.text.rstrip(), last.bold, last.italic, last.code)
    return tuple(r for r in runs if r.text)


def _image_block(tok: InlineImage, document: DocumentNode, manifest: AssetManifest) -> Image:
    target = document.image_target(tok.dest)
    if target is not None and target not in manifest:
        target = None
    return Image(path=target, alt=tok.alt)


def _split_inlines(
    tokens: list[InlineRun | InlineImage],
    document: DocumentNode,
    manifest: AssetManifest,
) -> list[tuple[InlineRun, ...] | Image]:
    """Cut a token list at its images: [runs, Image, runs, ...]."""
    parts: list[tuple[InlineRun, ...] | Image] = []
    current: list[InlineRun] = []
    for tok in tokens:
        if isinstance(tok, InlineImage):
            if _has_text(current):
                parts.append(_trim(current))
            current = []
            parts.append(_image_block(tok, document, manifest))
        else:
            current.append(tok)
    if _has_text(current):
        parts.append(_trim(current))
    return parts


def _convert(raw: RawBlock, document: DocumentNode, manifest: AssetManifest) -> list[Block]:
    if raw.kind == "rule":
        return [Rule()]
    if raw.kind == "code":
        return [CodeBlock(language=raw.language, lines=raw.lines)]

    tokens = list(raw.inlines)
    if raw.kind == "heading":
        # images in a heading show as their alt text
        text_runs = tuple(
            InlineRun.make(t.alt) if isinstance(t, InlineImage) else t for t in tokens
        )
        return [Heading(level=raw.level, runs=text_runs)]

    out: list[Block] = []
    parts = _split_inlines(tokens, document, manifest)
    if raw.kind == "list_item":
        runs: tuple[InlineRun, ...] = ()
        images: list[Image] = []
        for part in parts:
            if isinstance(part, Image):
                images.append(part)
            else:
                runs += part
        if runs or raw.label:
            out.append(ListItem(ordered=raw.ordered, depth=raw.depth, runs=runs, label=raw.label))
        out.extend(images)
        return out

    for part in parts:
        out.append(part if isinstance(part, Image) else Paragraph(runs=part))
    return out


def build_blocks(document: DocumentNode, manifest: AssetManifest) -> list[Block]:
    """Blocks of one document in source order. Never raises on malformed Markdown."""
    blocks: list[Block] = []
    for raw in parse_blocks(document.text):
        blocks.extend(_convert(raw, document, manifest))
    log.debug("%s: %d blocks", document.path.name, len(blocks))
    return blocks


def build_document_stream(
    documents: Sequence[DocumentNode],
    manifest: AssetManifest,
    config: RenderConfig,
) -> list[Block]:
    """Concatenate the blocks of all documents, in the given document order."""
    stream: list[Block] = []
    for document in documents:
        if config.file_title_headings:
            stream.append(Heading(level=2, runs=(InlineRun.make(f"File: {document.path.name}"),)))
        stream.extend(build_blocks(document, manifest))
    return stream


def block_text(block: Block) -> str:
    """Plain text of a block, for logs and tests."""
    if isinstance(block, (Heading, Paragraph, ListItem)):
        return plain_text(list(block.runs))
    if isinstance(block, CodeBlock):
        return "\n".join(block.lines)
    if isinstance(block, Image):
        return block.alt
    return ""
