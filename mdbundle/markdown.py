"""
Markdown grammar on top of markdown-it-py (CommonMark).

parse_blocks flattens the token stream into RawBlocks (heading, paragraph,
list_item, code, rule) whose inline content is already a list of InlineRun /
InlineImage in source order. Block quotes are unwrapped; raw HTML is dropped.

Nothing here raises on bad input: CommonMark has no syntax errors, anything
it does not recognize stays literal text.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterator, Sequence

from markdown_it import MarkdownIt
from markdown_it.token import Token

log = logging.getLogger(__name__)

MAX_LIST_DEPTH = 8

_MD_PARSER: MarkdownIt | None = None


def _parser() -> MarkdownIt:
    global _MD_PARSER
    if _MD_PARSER is None:
        _MD_PARSER = MarkdownIt("commonmark", {"linkify": False, "typographer": False})
    return _MD_PARSER


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

def _break_offsets(text: str) -> tuple[int, ...]:
    return tuple(i for i, c in enumerate(text) if c.isspace())


@dataclass(frozen=True)
class InlineRun:
    """Styled text fragment. breaks = offsets of whitespace where a line may wrap."""

    text: str
    bold: bool = False
    italic: bool = False
    code: bool = False
    breaks: tuple[int, ...] = field(default=(), compare=False)

    @classmethod
    def make(cls, text: str, bold=False, italic=False, code=False) -> "InlineRun":
        return cls(text, bold, italic, code, _break_offsets(text))

    @property
    def is_hard_break(self) -> bool:
        return self.text == "\n"


@dataclass(frozen=True)
class InlineImage:
    dest: str
    alt: str


Inline = InlineRun | InlineImage


@dataclass(frozen=True)
class RawBlock:
    """
    One block in document order; blocks.py turns these into typed Blocks.
    A list_item with an empty label continues the item above it (a second
    paragraph inside the same item).
    """

    kind: str  # heading | paragraph | list_item | code | rule
    inlines: tuple[Inline, ...] = ()
    level: int = 0
    lines: tuple[str, ...] = ()
    ordered: bool = False
    depth: int = 0
    label: str = ""
    language: str = ""

    @property
    def text(self) -> str:
        return plain_text(self.inlines)


# ---------------------------------------------------------------------------
# Inline content
# ---------------------------------------------------------------------------

def _inlines(children: Sequence[Token]) -> list[Inline]:
    out: list[Inline] = []
    bold = italic = 0
    for child in children:
        t = child.type
        if t == "text":
            if child.content:
                out.append(InlineRun.make(child.content, bold > 0, italic > 0))
        elif t == "code_inline":
            out.append(InlineRun.make(child.content, bold > 0, italic > 0, code=True))
        elif t == "softbreak":
            out.append(InlineRun.make(" ", bold > 0, italic > 0))
        elif t == "hardbreak":
            out.append(InlineRun.make("\n"))
        elif t == "strong_open":
            bold += 1
        elif t == "strong_close":
            bold = max(bold - 1, 0)
        elif t == "em_open":
            italic += 1
        elif t == "em_close":
            italic = max(italic - 1, 0)
        elif t == "image":
            alt = plain_text(_inlines(child.children or []))
            out.append(InlineImage(dest=str(child.attrGet("src") or ""), alt=alt))
        # link_open/link_close keep only their label; html_inline is dropped
    return out


def _merge(items: list[Inline]) -> list[Inline]:
    merged: list[Inline] = []
    for tok in items:
        prev = merged[-1] if merged else None
        if (
            isinstance(tok, InlineRun)
            and isinstance(prev, InlineRun)
            and not tok.is_hard_break
            and not prev.is_hard_break
            and (prev.bold, prev.italic, prev.code) == (tok.bold, tok.italic, tok.code)
        ):
            merged[-1] = InlineRun.make(prev.text + tok.text, tok.bold, tok.italic, tok.code)
        else:
            merged.append(tok)
    return merged


def parse_inlines(text: str) -> list[Inline]:
    """Inline tokens of a single line or paragraph of text. Soft line breaks become spaces."""
    tokens = _parser().parseInline(text.strip())
    if not tokens:
        return []
    return _merge(_inlines(tokens[0].children or []))


def plain_text(items: Sequence[Inline]) -> str:
    """Concatenated text of runs; images contribute their alt text."""
    parts = []
    for tok in items:
        if isinstance(tok, InlineImage):
            parts.append(tok.alt)
        elif tok.is_hard_break:
            parts.append(" ")
        else:
            parts.append(tok.text)
    return "".join(parts)


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------

@dataclass
class _OpenList:
    ordered: bool
    number: int
    delimiter: str


@dataclass
class _OpenItem:
    label: str
    ordered: bool
    depth: int
    labelled: bool = False


def _code_lines(content: str) -> tuple[str, ...]:
    if content.endswith("\n"):
        content = content[:-1]
    return tuple(content.split("\n"))


def parse_blocks(text: str) -> list[RawBlock]:
    """Split Markdown text into RawBlocks in source order."""
    blocks: list[RawBlock] = []
    lists: list[_OpenList] = []
    items: list[_OpenItem] = []
    heading_level = 0

    def claim_label() -> None:
        # an item that starts with something other than text still shows its label
        if items and not items[-1].labelled:
            item = items[-1]
            blocks.append(RawBlock("list_item", ordered=item.ordered, depth=item.depth, label=item.label))
            item.labelled = True

    for tok in _parser().parse(text):
        t = tok.type
        if t in ("bullet_list_open", "ordered_list_open"):
            claim_label()
            ordered = t == "ordered_list_open"
            start = tok.attrGet("start")
            lists.append(_OpenList(ordered, int(start) if start is not None else 1, tok.markup or "."))
        elif t in ("bullet_list_close", "ordered_list_close"):
            lists.pop()
        elif t == "list_item_open":
            current = lists[-1]
            label = f"{current.number}{current.delimiter}" if current.ordered else "•"
            current.number += 1
            items.append(_OpenItem(label, current.ordered, min(len(lists) - 1, MAX_LIST_DEPTH)))
        elif t == "list_item_close":
            claim_label()
            items.pop()
        elif t == "heading_open":
            claim_label()
            heading_level = int(tok.tag[1:])
        elif t == "heading_close":
            heading_level = 0
        elif t == "inline":
            inlines = tuple(_merge(_inlines(tok.children or [])))
            if heading_level:
                blocks.append(RawBlock("heading", inlines=inlines, level=heading_level))
            elif items:
                item = items[-1]
                label = "" if item.labelled else item.label
                item.labelled = True
                blocks.append(
                    RawBlock("list_item", inlines=inlines, ordered=item.ordered, depth=item.depth, label=label)
                )
            else:
                blocks.append(RawBlock("paragraph", inlines=inlines))
        elif t == "fence":
            claim_label()
            info = tok.info.strip()
            blocks.append(RawBlock("code", lines=_code_lines(tok.content), language=info.split()[0] if info else ""))
        elif t == "code_block":
            claim_label()
            blocks.append(RawBlock("code", lines=_code_lines(tok.content)))
        elif t == "hr":
            claim_label()
            blocks.append(RawBlock("rule"))
        # paragraph_open/close, blockquote_open/close and html_block carry nothing to render
    return blocks


def iter_destinations(text: str) -> Iterator[tuple[str, str]]:
    """
    Yield (kind, dest) for every image and link in a Markdown document, in
    source order. kind is 'image' or 'link'. Code blocks and code spans are skipped.
    """
    for tok in _parser().parse(text):
        if tok.type != "inline":
            continue
        for child in tok.children or []:
            if child.type == "image":
                yield "image", str(child.attrGet("src") or "")
            elif child.type == "link_open":
                yield "link", str(child.attrGet("href") or "")
