"""Tests for mdbundle.api: process_input, convert_to_pdf and job handling end to end."""

import zipfile
from pathlib import Path

import pytest

from mdbundle.api import JobContext, convert_many, convert_paths, convert_to_pdf, process_input
from mdbundle.errors import InputNotFound, JobCancelled, MdBundleError, OrderMismatch, PathEscape, UnsupportedInputKind
from mdbundle.models import RenderConfig
from mdbundle.path_utils import canonical


@pytest.fixture
def docs(md_tree, write_png):
    root = md_tree(
        {
            "docs/index.md": "# Guide\n\nIntro text.\n\n![Diagram](img/diagram.png)\n\nSee [setup](setup.md).\n",
            "docs/setup.md": "## Setup\n\n1. Install\n2. Run\n\n```\nmake all\n```\n",
        }
    )
    write_png(root / "docs" / "img" / "diagram.png", 200, 100)
    return root / "docs"


# ── process_input ──────────────────────────────────────────────────


class TestProcessInput:
    def test_directory(self, docs):
        processed = process_input([docs])
        assert [Path(p).name for p in processed.markdown_files] == ["index.md", "setup.md"]
        assert [Path(p).name for p in processed.image_files] == ["diagram.png"]
        assert processed.root == str(canonical(docs))
        assert processed.warnings == []

    def test_single_file_follows_links(self, docs):
        processed = process_input([docs / "index.md"])
        assert [Path(p).name for p in processed.markdown_files] == ["index.md", "setup.md"]
        assert processed.inputs == [str(docs / "index.md")]

    def test_single_path_argument(self, docs):
        assert process_input(docs).markdown_files == process_input([docs]).markdown_files

    def test_missing_input(self, tmp_path):
        with pytest.raises(InputNotFound):
            process_input([tmp_path / "nope"])

    def test_unsupported_input(self, tmp_path):
        (tmp_path / "notes.txt").write_text("x")
        with pytest.raises(UnsupportedInputKind):
            process_input([tmp_path / "notes.txt"])

    def test_escape_is_warning_not_error(self, md_tree):
        root = md_tree({"docs/a.md": "Text\n\n![x](../../../etc/passwd.png)\n"})
        processed = process_input([root / "docs"])
        assert processed.image_files == []
        assert processed.warnings[0].startswith("PathEscape")

    def test_multiple_inputs_use_common_root(self, md_tree):
        root = md_tree({"a/one.md": "one", "b/two.md": "two"})
        processed = process_input([root / "a", root / "b"])
        assert processed.root == str(canonical(root))
        assert len(processed.markdown_files) == 2

    def test_context_keeps_resolution(self, docs):
        with JobContext() as ctx:
            process_input([docs], context=ctx)
            assert ctx.resolution is not None
            assert len(ctx.resolution.documents) == 2


# ── convert_to_pdf ─────────────────────────────────────────────────


class TestConvertToPdf:
    def test_writes_pdf_at_root(self, docs, pdf_text):
        result = convert_to_pdf(process_input([docs]))
        assert result.output_path == canonical(docs) / "markdown_export.pdf"
        assert result.document_count == 2
        assert result.image_count == 1
        page_count, text = pdf_text(result.output_path)
        assert page_count == result.page_count == 1
        assert "Guide" in text
        assert "make all" in text

    def test_no_temp_files_left(self, docs):
        convert_to_pdf(process_input([docs]))
        leftovers = [p.name for p in docs.iterdir() if p.name.startswith(".mdbundle-")]
        assert leftovers == []

    def test_byte_identical_for_fixed_date(self, docs, fixed_date):
        first = convert_to_pdf(process_input([docs]), creation_date=fixed_date).output_path.read_bytes()
        second = convert_to_pdf(process_input([docs]), creation_date=fixed_date).output_path.read_bytes()
        assert first == second

    def test_reuses_context_resolution(self, docs, fixed_date):
        with JobContext() as ctx:
            processed = process_input([docs], context=ctx)
            a = convert_to_pdf(processed, context=ctx, creation_date=fixed_date).output_path.read_bytes()
        b = convert_to_pdf(processed, creation_date=fixed_date).output_path.read_bytes()
        assert a == b

    def test_manual_order(self, docs, pdf_text):
        processed = process_input([docs])
        processed.markdown_files = list(reversed(processed.markdown_files))
        _, text = pdf_text(convert_to_pdf(processed).output_path)
        assert text.index("Setup") < text.index("Guide")

    def test_order_mismatch_before_any_output(self, docs):
        processed = process_input([docs])
        processed.markdown_files = processed.markdown_files[:1]
        with pytest.raises(OrderMismatch):
            convert_to_pdf(processed)
        assert not (docs / "markdown_export.pdf").exists()

    def test_broken_image_still_produces_pdf(self, md_tree, pdf_text):
        root = md_tree(
            {
                "d/a.md": "Before the picture.\n\n![Broken chart](chart.png)\n\nAfter the picture.\n",
                "d/chart.png": b"\x89PNG\r\n\x1a\nthis is not really a png",
            }
        )
        result = convert_to_pdf(process_input([root / "d"]))
        assert any(w.startswith("ImageDecodeFailure") for w in result.warnings)
        assert result.image_count == 0
        _, text = pdf_text(result.output_path)
        assert "Before the picture." in text
        assert "Broken chart" in text
        assert "After the picture." in text

    def test_escaped_image_absent_from_pdf(self, md_tree, pdf_text):
        root = md_tree({"d/a.md": "Safe text.\n\n![leak](../../../etc/passwd.png)\n"})
        result = convert_to_pdf(process_input([root / "d"]))
        assert result.image_count == 0
        assert any(w.startswith("PathEscape") for w in result.warnings)
        assert b"/Subtype /Image" not in result.output_path.read_bytes()

    def test_output_name_from_config(self, docs):
        config = RenderConfig(output_name="handbook.pdf")
        result = convert_to_pdf(process_input([docs]), config=config)
        assert result.output_path.name == "handbook.pdf"

    def test_output_name_cannot_escape_root(self, docs):
        with pytest.raises(PathEscape):
            convert_to_pdf(process_input([docs]), config=RenderConfig(output_name="../out.pdf"))

    def test_cancelled_job_writes_nothing(self, docs):
        with JobContext() as ctx:
            processed = process_input([docs], context=ctx)
            ctx.cancel()
            with pytest.raises(JobCancelled):
                convert_to_pdf(processed, context=ctx)
        assert not (docs / "markdown_export.pdf").exists()

    def test_many_pages(self, md_tree):
        body = "\n\n".join(f"Paragraph number {i} with some filler text." for i in range(200))
        root = md_tree({"long/a.md": body})
        result = convert_to_pdf(process_input([root / "long"]))
        assert result.page_count > 1


# ── archives ───────────────────────────────────────────────────────


class TestArchives:
    @pytest.fixture
    def archive(self, tmp_path, write_png):
        png = write_png(tmp_path / "src" / "p.png", 10, 10)
        path = tmp_path / "bundle.zip"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("book/a.md", "# Zipped\n\n![p](p.png)\n")
            zf.write(png, "book/p.png")
            zf.writestr("../evil.md", "# Evil")
            zf.writestr("__MACOSX/book/._a.md", "junk")
        return path

    def test_archive_needs_context(self, archive):
        with pytest.raises(UnsupportedInputKind):
            process_input([archive])

    def test_archive_converted_next_to_zip(self, archive, pdf_text):
        with JobContext() as ctx:
            processed = process_input([archive], context=ctx)
            result = convert_to_pdf(processed, context=ctx)
        assert result.output_path == canonical(archive.parent) / "markdown_export.pdf"
        assert [Path(p).name for p in processed.markdown_files] == ["a.md"]
        assert any(w.startswith("PathEscape") for w in processed.warnings)
        assert result.image_count == 1
        _, text = pdf_text(result.output_path)
        assert "Zipped" in text

    def test_convert_without_the_extracting_context(self, archive):
        with JobContext() as ctx:
            processed = process_input([archive], context=ctx)
        with pytest.raises(UnsupportedInputKind, match="JobContext used by process_input"):
            convert_to_pdf(processed)
        assert not (archive.parent / "markdown_export.pdf").exists()

    def test_temp_dirs_removed_on_exit(self, archive):
        with JobContext() as ctx:
            process_input([archive], context=ctx)
            extracted = ctx.resolution.documents[0].root
            assert extracted.exists()
        assert not extracted.exists()

    def test_bad_zip(self, tmp_path):
        path = tmp_path / "broken.zip"
        path.write_bytes(b"not a zip")
        with JobContext() as ctx, pytest.raises(UnsupportedInputKind):
            process_input([path], context=ctx)


# ── one-shot and batch ─────────────────────────────────────────────


class TestBatch:
    def test_convert_paths_with_order(self, docs, pdf_text):
        result = convert_paths([docs], order=[docs / "setup.md", docs / "index.md"])
        _, text = pdf_text(result.output_path)
        assert text.index("Setup") < text.index("Guide")

    def test_convert_many_keeps_input_order(self, md_tree, tmp_path):
        root = md_tree({"one/a.md": "one", "two/b.md": "two"})
        results = convert_many([[root / "one"], [tmp_path / "missing"], [root / "two"]], max_workers=2)
        assert results[0].output_path.parent == canonical(root / "one")
        assert isinstance(results[1], MdBundleError)
        assert results[2].output_path.parent == canonical(root / "two")
