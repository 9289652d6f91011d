"""Shared test fixtures for mdbundle."""

from datetime import datetime, timezone
from pathlib import Path

import fitz  # PyMuPDF
import pytest

from mdbundle.backends import PyMuPDFImageBackend
from mdbundle.models import RenderConfig


def _write_png(path: Path, width: int = 20, height: int = 10, alpha: bool = False) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    pix = fitz.Pixmap(fitz.csRGB, fitz.IRect(0, 0, width, height), alpha)
    pix.clear_with(180)
    pix.save(str(path))
    return path


def _write_tree(root: Path, files: dict[str, str | bytes]) -> Path:
    for rel, content in files.items():
        target = root / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            target.write_bytes(content)
        else:
            target.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def write_png():
    """write_png(path, width=20, height=10, alpha=False) -> path"""
    return _write_png


@pytest.fixture
def md_tree(tmp_path):
    """md_tree({"rel/path.md": "text", ...}) -> tmp_path with the files written."""

    def make(files: dict[str, str | bytes]) -> Path:
        return _write_tree(tmp_path, files)

    return make


@pytest.fixture
def backend():
    return PyMuPDFImageBackend()


@pytest.fixture
def fixed_date():
    return datetime(2024, 1, 31, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def small_config():
    """160pt of content height, 16pt lines: ten body lines per page."""
    return RenderConfig(
        page_height=200,
        margin=20,
        body_font_size=8,
        line_spacing=2.0,
        paragraph_spacing=0,
    )


@pytest.fixture
def pdf_text():
    """pdf_text(path_or_bytes) -> (page count, text of all pages)"""

    def read(source: Path | bytes) -> tuple[int, str]:
        data = source if isinstance(source, bytes) else Path(source).read_bytes()
        with fitz.open(stream=data, filetype="pdf") as doc:
            return doc.page_count, "\n".join(page.get_text() for page in doc)

    return read
