"""Tests for mdbundle.path_utils: path safety and input classification."""

import os
from pathlib import Path

import pytest

from mdbundle.errors import InputNotFound, PathEscape, UnsupportedInputKind
from mdbundle.path_utils import (
    InputKind,
    canonical,
    classify_input,
    clean_reference,
    common_root,
    discover_markdown,
    is_image,
    is_markdown,
    is_remote,
    resolve_within,
)


# ── resolve_within ─────────────────────────────────────────────────


class TestResolveWithin:
    def test_relative_reference_inside_root(self, tmp_path):
        (tmp_path / "img").mkdir()
        result = resolve_within(tmp_path, "img/a.png", tmp_path)
        assert result == canonical(tmp_path) / "img" / "a.png"

    def test_reference_relative_to_base_dir(self, tmp_path):
        sub = tmp_path / "docs"
        sub.mkdir()
        result = resolve_within(tmp_path, "../shared/b.png", sub)
        assert result == canonical(tmp_path) / "shared" / "b.png"

    def test_parent_traversal_rejected(self, tmp_path):
        with pytest.raises(PathEscape):
            resolve_within(tmp_path, "../../../etc/passwd.png", tmp_path)

    def test_percent_encoded_traversal_rejected(self, tmp_path):
        with pytest.raises(PathEscape):
            resolve_within(tmp_path, "%2e%2e/%2e%2e/secret.png", tmp_path)

    def test_backslash_traversal_rejected(self, tmp_path):
        with pytest.raises(PathEscape):
            resolve_within(tmp_path, "..\\..\\secret.png", tmp_path)

    def test_leading_slash_is_root_relative(self, tmp_path):
        sub = tmp_path / "a" / "b"
        sub.mkdir(parents=True)
        result = resolve_within(tmp_path, "/img/x.png", sub)
        assert result == canonical(tmp_path) / "img" / "x.png"

    def test_symlink_pointing_outside_rejected(self, tmp_path):
        outside = tmp_path / "outside"
        root = tmp_path / "root"
        outside.mkdir()
        root.mkdir()
        (outside / "secret.png").write_bytes(b"x")
        os.symlink(outside, root / "link")
        with pytest.raises(PathEscape):
            resolve_within(root, "link/secret.png", root)

    def test_empty_reference_rejected(self, tmp_path):
        with pytest.raises(PathEscape):
            resolve_within(tmp_path, "", tmp_path)

    def test_nul_byte_rejected(self, tmp_path):
        with pytest.raises(PathEscape):
            resolve_within(tmp_path, "a\x00.png", tmp_path)

    def test_fragment_and_query_stripped(self, tmp_path):
        result = resolve_within(tmp_path, "guide.md#install", tmp_path)
        assert result.name == "guide.md"

    def test_root_itself_allowed(self, tmp_path):
        assert resolve_within(tmp_path, ".", tmp_path) == canonical(tmp_path)


class TestCleanReference:
    def test_strips_fragment(self):
        assert clean_reference("a.md#top") == "a.md"

    def test_decodes_percent_escapes(self):
        assert clean_reference("my%20file.md") == "my file.md"

    def test_angle_brackets(self):
        assert clean_reference("<a b.png>") == "a b.png"


class TestIsRemote:
    @pytest.mark.parametrize("ref", ["https://example.com/a.png", "mailto:x@y.z", "data:image/png;base64,AA", "//cdn/x.png"])
    def test_remote(self, ref):
        assert is_remote(ref)

    @pytest.mark.parametrize("ref", ["img/a.png", "../b.md", "/abs/c.png", "a:b.png"])
    def test_local(self, ref):
        # a single-letter scheme is a Windows drive, not a URL
        assert not is_remote(ref)


# ── classification and discovery ───────────────────────────────────


class TestClassifyInput:
    def test_markdown_file(self, tmp_path):
        p = tmp_path / "a.md"
        p.write_text("# A")
        assert classify_input(p) is InputKind.MARKDOWN_FILE

    def test_markdown_suffix_case_insensitive(self, tmp_path):
        p = tmp_path / "A.MARKDOWN"
        p.write_text("# A")
        assert classify_input(p) is InputKind.MARKDOWN_FILE

    def test_directory(self, tmp_path):
        assert classify_input(tmp_path) is InputKind.DIRECTORY

    def test_archive(self, tmp_path):
        p = tmp_path / "docs.zip"
        p.write_bytes(b"PK")
        assert classify_input(p) is InputKind.ARCHIVE

    def test_missing_path(self, tmp_path):
        with pytest.raises(InputNotFound):
            classify_input(tmp_path / "nope.md")

    def test_unsupported_file(self, tmp_path):
        p = tmp_path / "notes.txt"
        p.write_text("x")
        with pytest.raises(UnsupportedInputKind):
            classify_input(p)


class TestPredicates:
    def test_is_markdown(self):
        assert is_markdown(Path("a.md"))
        assert is_markdown(Path("a.markdown"))
        assert not is_markdown(Path("a.txt"))

    def test_is_image(self):
        for name in ("a.png", "a.JPG", "a.jpeg", "a.gif", "a.webp", "a.bmp"):
            assert is_image(Path(name))
        assert not is_image(Path("a.svg"))


class TestDiscoverMarkdown:
    def test_lexical_order_and_skips(self, md_tree):
        root = md_tree(
            {
                "b.md": "b",
                "a/z.md": "z",
                "a/y.markdown": "y",
                ".hidden/h.md": "h",
                "__MACOSX/m.md": "m",
                ".dot.md": "d",
                "notes.txt": "t",
            }
        )
        found = [p.relative_to(root).as_posix() for p in discover_markdown(root)]
        assert found == ["a/y.markdown", "a/z.md", "b.md"]


class TestCommonRoot:
    def test_shared_parent(self):
        assert common_root([Path("/data/docs/a"), Path("/data/docs/b/c")]) == Path("/data/docs")

    def test_single_path(self):
        assert common_root([Path("/data/docs")]) == Path("/data/docs")

    def test_only_filesystem_root_shared(self):
        assert common_root([Path("/a/x"), Path("/b/y")]) is None

    def test_empty(self):
        assert common_root([]) is None
