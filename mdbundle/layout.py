"""
Layout engine: turn the block stream into pages of positioned fragments.

Coordinates are PDF points with the origin at the top-left corner of the page
and y growing downwards; the encoder flips them. The engine carries one piece
of state across the stream: the current page's fragment list and a vertical
cursor inside the content area.

Page-break rule: a fragment that would cross the bottom margin starts a new
page before it is placed, so no line, image or rule is ever split. A heading
is kept together with the first fragment of the block that follows it.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from mdbundle.blocks import Block, CodeBlock, Heading, Image, ListItem, Paragraph, Rule
from mdbundle.fonts import CODE, FontMetrics, face_key, to_winansi
from mdbundle.markdown import InlineRun
from mdbundle.models import RenderConfig
from mdbundle.resolver import AssetManifest

log = logging.getLogger(__name__)

# Float tolerance (points) for fit checks
EPSILON = 1e-6
# Baseline offset inside a line box, as a fraction of font size
ASCENT = 0.8


# ---------------------------------------------------------------------------
# Fragments and pages
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TextSpan:
    x: float
    text: str
    face: str
    size: float


@dataclass(frozen=True)
class TextLine:
    x: float
    y: float
    width: float
    height: float
    baseline: float
    spans: tuple[TextSpan, ...]

    @property
    def text(self) -> str:
        return "".join(s.text for s in self.spans)


@dataclass(frozen=True)
class ImagePlacement:
    x: float
    y: float
    width: float
    height: float
    path: Path  # canonical, key into the manifest


@dataclass(frozen=True)
class RuleLine:
    x: float
    y: float
    width: float
    height: float


Fragment = TextLine | ImagePlacement | RuleLine


@dataclass(frozen=True)
class Page:
    index: int
    width: float
    height: float
    margin: float
    fragments: tuple[Fragment, ...]


# ---------------------------------------------------------------------------
# Line breaking
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class _Piece:
    text: str
    face: str
    width: float


@dataclass
class _Word:
    pieces: list[_Piece]
    space_before: bool

    @property
    def width(self) -> float:
        return sum(p.width for p in self.pieces)


_HARD_BREAK = object()


def _has_text(runs: Sequence[InlineRun]) -> bool:
    return any(r.text.strip() for r in runs)


def _words(runs: Sequence[InlineRun], size: float, metrics: FontMetrics, bold: bool = False, italic: bool = False) -> list:
    """Split runs at their break offsets into words; style boundaries inside a word are kept."""
    items: list = []
    current: _Word | None = None
    pending_space = False

    for run in runs:
        if run.is_hard_break:
            if current is not None:
                items.append(current)
                current = None
            items.append(_HARD_BREAK)
            pending_space = False
            continue
        face = face_key(bold or run.bold, italic or run.italic, run.code)
        text = to_winansi(run.text)
        cuts = [-1, *run.breaks, len(text)]
        for idx in range(len(cuts) - 1):
            if idx > 0:
                # a break offset: whitespace ends the current word
                if current is not None:
                    items.append(current)
                    current = None
                pending_space = True
            segment = text[cuts[idx] + 1:cuts[idx + 1]]
            if not segment:
                continue
            piece = _Piece(segment, face, metrics.width(segment, face, size))
            if current is None:
                current = _Word([piece], pending_space)
                pending_space = False
            else:
                current.pieces.append(piece)
    if current is not None:
        items.append(current)
    return items


def _split_long_word(word: _Word, max_width: float, size: float, metrics: FontMetrics) -> list[list[_Piece]]:
    """Character-level split of a word wider than the line."""
    chunks: list[list[_Piece]] = []
    line: list[_Piece] = []
    line_width = 0.0
    for piece in word.pieces:
        buf = ""
        for ch in piece.text:
            w = metrics.width(ch, piece.face, size)
            if line_width + w > max_width + EPSILON and (line or buf):
                if buf:
                    line.append(_Piece(buf, piece.face, metrics.width(buf, piece.face, size)))
                chunks.append(line)
                line, line_width, buf = [], 0.0, ""
            buf += ch
            line_width += w
        if buf:
            line.append(_Piece(buf, piece.face, metrics.width(buf, piece.face, size)))
    if line:
        chunks.append(line)
    return chunks


def wrap_runs(
    runs: Sequence[InlineRun],
    max_width: float,
    size: float,
    metrics: FontMetrics,
    bold: bool = False,
    italic: bool = False,
) -> list[list[_Piece]]:
    """
    Greedy line breaking: add words to the line until the next one would
    overflow max_width, then start a new line. Always returns at least one line.
    """
    lines: list[list[_Piece]] = []
    current: list[_Piece] = []
    width = 0.0

    for item in _words(runs, size, metrics, bold, italic):
        if item is _HARD_BREAK:
            lines.append(current)
            current, width = [], 0.0
            continue
        word_width = item.width
        space = None
        if current and item.space_before:
            face = item.pieces[0].face
            space = _Piece(" ", face, metrics.width(" ", face, size))
        space_width = space.width if space else 0.0
        if current and width + space_width + word_width > max_width + EPSILON:
            lines.append(current)
            current, width, space, space_width = [], 0.0, None, 0.0
        if not current and word_width > max_width + EPSILON:
            chunks = _split_long_word(item, max_width, size, metrics)
            lines.extend(chunks[:-1])
            current = chunks[-1]
            width = sum(p.width for p in current)
            continue
        if space is not None:
            current.append(space)
        current.extend(item.pieces)
        width += space_width + word_width

    if current or not lines:
        lines.append(current)
    return lines


def _spans(pieces: list[_Piece], x: float, size: float) -> tuple[tuple[TextSpan, ...], float]:
    """Merge same-face neighbours into spans; return (spans, total width)."""
    spans: list[TextSpan] = []
    cursor = x
    text, face, start = "", None, x
    for piece in pieces:
        if piece.face != face:
            if text:
                spans.append(TextSpan(start, text, face, size))
            text, face, start = "", piece.face, cursor
        text += piece.text
        cursor += piece.width
    if text:
        spans.append(TextSpan(start, text, face, size))
    return tuple(spans), cursor - x


def _truncate(text: str, face: str, size: float, max_width: float, metrics: FontMetrics) -> str:
    """Longest prefix of text that fits max_width."""
    if metrics.width(text, face, size) <= max_width + EPSILON:
        return text
    lo, hi = 0, len(text)
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if metrics.width(text[:mid], face, size) <= max_width + EPSILON:
            lo = mid
        else:
            hi = mid - 1
    return text[:lo]


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class LayoutEngine:
    """Single-use: one engine lays out one block stream."""

    def __init__(self, config: RenderConfig, manifest: AssetManifest, metrics: FontMetrics | None = None) -> None:
        self.config = config
        self.manifest = manifest
        self.metrics = metrics or FontMetrics()
        self.pages: list[Page] = []
        self.fragments: list[Fragment] = []
        self.cursor = config.margin

    # -- page state ---------------------------------------------------------

    @property
    def top(self) -> float:
        return self.config.margin

    @property
    def bottom(self) -> float:
        return self.config.page_height - self.config.margin

    def _new_page(self) -> None:
        self.pages.append(
            Page(
                index=len(self.pages),
                width=self.config.page_width,
                height=self.config.page_height,
                margin=self.config.margin,
                fragments=tuple(self.fragments),
            )
        )
        self.fragments = []
        self.cursor = self.top

    def _fits(self, height: float) -> bool:
        return self.cursor + height <= self.bottom + EPSILON

    def _ensure(self, height: float) -> None:
        """Break the page first if a fragment of this height would cross the bottom margin."""
        if not self._fits(height) and self.fragments:
            self._new_page()

    def _space(self, amount: float) -> None:
        # spacing is dropped at the top of a page
        if self.fragments:
            self.cursor += amount

    # -- measurements --------------------------------------------------------

    def _line_height(self, size: float) -> float:
        return size * self.config.line_spacing

    def _image_size(self, block: Image) -> tuple[float, float] | None:
        asset = self.manifest.get(block.path) if block.path is not None else None
        if asset is None or not asset.available:
            return None
        cfg = self.config
        width = asset.width * 72.0 / cfg.image_dpi
        height = asset.height * 72.0 / cfg.image_dpi
        max_width = cfg.content_width * cfg.max_image_width_fraction
        if width > max_width:
            height *= max_width / width
            width = max_width
        if height > cfg.content_height:
            width *= cfg.content_height / height
            height = cfg.content_height
        return width, height

    def _first_height(self, block: Block) -> float:
        """Height of the first fragment a block would emit, with any space placed before it."""
        cfg = self.config
        if isinstance(block, Heading):
            return self._line_height(cfg.heading_size(block.level))
        if isinstance(block, CodeBlock):
            return cfg.code_spacing + self._line_height(cfg.code_font_size)
        if isinstance(block, Image):
            size = self._image_size(block)
            return size[1] if size else self._line_height(cfg.body_font_size)
        if isinstance(block, Rule):
            return cfg.rule_height
        return self._line_height(cfg.body_font_size)

    # -- emitters -----------------------------------------------------------

    def _emit_lines(self, lines: list[list[_Piece]], x: float, size: float, label: str | None = None, label_x: float = 0.0) -> None:
        height = self._line_height(size)
        for i, pieces in enumerate(lines):
            self._ensure(height)
            spans, width = _spans(pieces, x, size)
            if i == 0 and label:
                label_text = to_winansi(label)
                spans = (TextSpan(label_x, label_text, face_key(), size), *spans)
            self.fragments.append(
                TextLine(
                    x=x,
                    y=self.cursor,
                    width=width,
                    height=height,
                    baseline=self.cursor + (height - size) / 2 + ASCENT * size,
                    spans=spans,
                )
            )
            self.cursor += height

    def _headings(self, blocks: Sequence[Block], start: int) -> tuple[int, bool]:
        """
        Lay out the run of consecutive headings starting at blocks[start] as one
        unit, kept on a page with the first fragment of the block after the run.
        Returns the index of that block and whether any heading was placed.
        """
        cfg = self.config
        group: list[tuple[float, list[list[_Piece]]]] = []
        end = start
        while end < len(blocks) and isinstance(blocks[end], Heading):
            block = blocks[end]
            if _has_text(block.runs):
                size = cfg.heading_size(block.level)
                group.append((size, wrap_runs(block.runs, cfg.content_width, size, self.metrics, bold=True)))
            end += 1
        if not group:
            return end, False
        following = blocks[end] if end < len(blocks) else None

        self._space(cfg.heading_space_before)
        needed = 0.0
        for n, (size, lines) in enumerate(group):
            if n:
                needed += cfg.heading_space_after + cfg.heading_space_before
            needed += len(lines) * self._line_height(size)
        if following is not None:
            needed += cfg.heading_space_after + self._first_height(following)
        if self.fragments and not self._fits(needed):
            log.debug("Moving %d heading(s) to a new page to keep them with the following block", len(group))
            self._new_page()

        for n, (size, lines) in enumerate(group):
            if n:
                self._space(cfg.heading_space_before)
            self._emit_lines(lines, cfg.margin, size)
            self.cursor += cfg.heading_space_after
        return end, True

    def _paragraph(self, runs: Sequence[InlineRun], italic: bool = False) -> None:
        cfg = self.config
        size = cfg.body_font_size
        lines = wrap_runs(runs, cfg.content_width, size, self.metrics, italic=italic)
        self._emit_lines(lines, cfg.margin, size)
        self.cursor += cfg.paragraph_spacing

    def _list_item(self, block: ListItem, next_block: Block | None) -> None:
        cfg = self.config
        size = cfg.body_font_size
        label_x = cfg.margin + block.depth * cfg.list_indent
        text_x = label_x + cfg.list_indent
        width = max(cfg.content_width - (block.depth + 1) * cfg.list_indent, size)
        lines = wrap_runs(block.runs, width, size, self.metrics)
        self._emit_lines(lines, text_x, size, label=block.label, label_x=label_x)
        self.cursor += cfg.list_item_spacing
        if not isinstance(next_block, ListItem):
            self.cursor += max(cfg.paragraph_spacing - cfg.list_item_spacing, 0.0)

    def _code(self, block: CodeBlock) -> None:
        cfg = self.config
        size = cfg.code_font_size
        x = cfg.margin + cfg.code_indent
        max_width = cfg.content_width - cfg.code_indent
        height = self._line_height(size)
        self._space(cfg.code_spacing)
        for line in block.lines:
            text = _truncate(to_winansi(line.rstrip().expandtabs(4)), CODE, size, max_width, self.metrics)
            self._ensure(height)
            width = self.metrics.width(text, CODE, size)
            spans = (TextSpan(x, text, CODE, size),) if text else ()
            self.fragments.append(
                TextLine(x=x, y=self.cursor, width=width, height=height,
                         baseline=self.cursor + (height - size) / 2 + ASCENT * size, spans=spans)
            )
            self.cursor += height
        self.cursor += cfg.code_spacing

    def _image(self, block: Image, under_heading: bool = False) -> None:
        size = self._image_size(block)
        if size is None:
            alt = block.alt or (block.path.name if block.path is not None else "image")
            self._paragraph([InlineRun.make(alt)], italic=True)
            return
        width, height = size
        room = self.bottom - self.cursor
        if under_heading and height > room + EPSILON and room > EPSILON:
            # the headings above already start this page: shrink to stay with them
            width *= room / height
            height = room
        self._ensure(height)
        self.fragments.append(ImagePlacement(self.config.margin, self.cursor, width, height, block.path))
        self.cursor += height + self.config.image_spacing

    def _rule(self) -> None:
        height = self.config.rule_height
        self._ensure(height)
        self.fragments.append(RuleLine(self.config.margin, self.cursor, self.config.content_width, height))
        self.cursor += height

    # -- driver -------------------------------------------------------------

    def run(self, blocks: Sequence[Block]) -> list[Page]:
        i = 0
        under_heading = False
        while i < len(blocks):
            block = blocks[i]
            if isinstance(block, Heading):
                i, under_heading = self._headings(blocks, i)
                continue
            next_block = blocks[i + 1] if i + 1 < len(blocks) else None
            if isinstance(block, Paragraph):
                self._paragraph(block.runs)
            elif isinstance(block, ListItem):
                self._list_item(block, next_block)
            elif isinstance(block, CodeBlock):
                self._code(block)
            elif isinstance(block, Image):
                self._image(block, under_heading)
            elif isinstance(block, Rule):
                self._rule()
            under_heading = False
            i += 1
        if self.fragments or not self.pages:
            self._new_page()
        log.info("Laid out %d blocks on %d pages", len(blocks), len(self.pages))
        return self.pages


def layout(
    blocks: Sequence[Block],
    manifest: AssetManifest,
    config: RenderConfig,
    metrics: FontMetrics | None = None,
) -> list[Page]:
    """Lay out a block stream into pages."""
    return LayoutEngine(config, manifest, metrics).run(blocks)
