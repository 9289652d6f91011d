"""Tests for mdbundle.blocks: typed block stream built from resolved documents."""

from mdbundle.blocks import (
    CodeBlock,
    Heading,
    Image,
    ListItem,
    Paragraph,
    Rule,
    block_text,
    build_blocks,
    build_document_stream,
)
from mdbundle.models import RenderConfig
from mdbundle.path_utils import canonical
from mdbundle.resolver import resolve


def resolve_one(root, backend, name="a.md"):
    res = resolve([(root / name, root)], backend)
    return res.documents[0], res.manifest


class TestBuildBlocks:
    def test_block_types_in_order(self, md_tree, backend):
        root = md_tree({"a.md": "# Title\n\ntext\n\n- item\n\n```\ncode\n```\n\n---\n"})
        doc, manifest = resolve_one(root, backend)
        blocks = build_blocks(doc, manifest)
        assert [type(b) for b in blocks] == [Heading, Paragraph, ListItem, CodeBlock, Rule]
        assert [block_text(b) for b in blocks] == ["Title", "text", "item", "code", ""]

    def test_image_splits_paragraph(self, md_tree, backend, write_png):
        root = md_tree({"a.md": "Before ![pic](p.png) after.\n"})
        write_png(root / "p.png")
        doc, manifest = resolve_one(root, backend)
        blocks = build_blocks(doc, manifest)
        assert [type(b) for b in blocks] == [Paragraph, Image, Paragraph]
        assert blocks[1].path == canonical(root / "p.png")
        assert blocks[1].alt == "pic"
        assert block_text(blocks[0]) == "Before"
        assert block_text(blocks[2]) == "after."

    def test_image_alone_has_no_empty_paragraphs(self, md_tree, backend, write_png):
        root = md_tree({"a.md": "![only](p.png)\n"})
        write_png(root / "p.png")
        doc, manifest = resolve_one(root, backend)
        assert [type(b) for b in build_blocks(doc, manifest)] == [Image]

    def test_escaped_image_has_no_path(self, md_tree, backend):
        root = md_tree({"docs/a.md": "![secret](../../x.png)\n"})
        res = resolve([(root / "docs" / "a.md", root / "docs")], backend)
        blocks = build_blocks(res.documents[0], res.manifest)
        assert blocks == [Image(path=None, alt="secret")]

    def test_image_in_list_item_follows_item(self, md_tree, backend, write_png):
        root = md_tree({"a.md": "- step ![s](s.png)\n- next\n"})
        write_png(root / "s.png")
        doc, manifest = resolve_one(root, backend)
        blocks = build_blocks(doc, manifest)
        assert [type(b) for b in blocks] == [ListItem, Image, ListItem]

    def test_heading_image_becomes_alt_text(self, md_tree, backend, write_png):
        root = md_tree({"a.md": "# Logo ![brand](b.png)\n"})
        write_png(root / "b.png")
        doc, manifest = resolve_one(root, backend)
        blocks = build_blocks(doc, manifest)
        assert block_text(blocks[0]) == "Logo brand"

    def test_malformed_markdown_never_raises(self, md_tree, backend):
        root = md_tree({"a.md": "**unclosed `tick [bracket](\n![](\n```\n"})
        doc, manifest = resolve_one(root, backend)
        assert build_blocks(doc, manifest)


class TestDocumentStream:
    def test_documents_concatenated_in_order(self, md_tree, backend):
        root = md_tree({"a.md": "alpha\n", "b.md": "beta\n"})
        res = resolve([(root / "a.md", root), (root / "b.md", root)], backend)
        stream = build_document_stream(res.documents, res.manifest, RenderConfig())
        assert [block_text(b) for b in stream] == ["alpha", "beta"]

    def test_file_title_headings(self, md_tree, backend):
        root = md_tree({"a.md": "alpha\n"})
        res = resolve([(root / "a.md", root)], backend)
        stream = build_document_stream(res.documents, res.manifest, RenderConfig(file_title_headings=True))
        assert isinstance(stream[0], Heading)
        assert block_text(stream[0]) == "File: a.md"

    def test_file_title_headings_off_by_default(self):
        assert RenderConfig().file_title_headings is False
        assert "off by default" in RenderConfig.model_fields["file_title_headings"].description


class TestGrammarEdges:
    def test_second_paragraph_stays_in_list_item(self, md_tree, backend):
        root = md_tree({"a.md": "- a\n\n  second para\n- b\n"})
        doc, manifest = resolve_one(root, backend)
        blocks = build_blocks(doc, manifest)
        assert [(type(b), block_text(b), b.label) for b in blocks] == [
            (ListItem, "a", "•"),
            (ListItem, "second para", ""),
            (ListItem, "b", "•"),
        ]

    def test_quoted_heading_is_a_heading(self, md_tree, backend):
        root = md_tree({"a.md": "> # quoted heading\n> text\n"})
        doc, manifest = resolve_one(root, backend)
        blocks = build_blocks(doc, manifest)
        assert [type(b) for b in blocks] == [Heading, Paragraph]
        assert block_text(blocks[0]) == "quoted heading"

    def test_raw_html_not_rendered(self, md_tree, backend):
        root = md_tree({"a.md": "<div>\n<b>hi</b>\n</div>\n\nafter\n"})
        doc, manifest = resolve_one(root, backend)
        assert [block_text(b) for b in build_blocks(doc, manifest)] == ["after"]
