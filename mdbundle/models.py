"""Data models for render config and job results."""

from pathlib import Path

from pydantic import BaseModel, Field

# A4 in PDF points
A4_WIDTH = 595.28
A4_HEIGHT = 841.89


class RenderConfig(BaseModel):
    """Options for Markdown → PDF rendering. Every field has a fixed default."""

    page_width: float = Field(default=A4_WIDTH, gt=0, description="Page width in points")
    page_height: float = Field(default=A4_HEIGHT, gt=0, description="Page height in points")
    margin: float = Field(default=42.5, ge=0, description="Margin on all four sides, in points")
    body_font_size: float = Field(default=11.0, gt=0, description="Paragraph and list text size")
    heading_font_sizes: dict[int, float] = Field(
        default_factory=lambda: {1: 24.0, 2: 18.0, 3: 14.0, 4: 12.0, 5: 12.0, 6: 12.0},
        description="Font size per heading level (1-6)",
    )
    code_font_size: float = Field(default=9.5, gt=0, description="Code block text size")
    line_spacing: float = Field(default=1.25, gt=0, description="Line height as a multiple of font size")
    max_image_width_fraction: float = Field(
        default=1.0,
        gt=0,
        le=1.0,
        description="Widest an image may be, as a fraction of the content width",
    )
    image_dpi: float = Field(default=96.0, gt=0, description="Pixels per inch used for natural image size")
    paragraph_spacing: float = Field(default=6.0, ge=0, description="Space after a paragraph")
    heading_space_before: float = Field(default=10.0, ge=0, description="Space before a heading")
    heading_space_after: float = Field(default=8.0, ge=0, description="Space after a heading")
    list_item_spacing: float = Field(default=2.0, ge=0, description="Space after each list item")
    list_indent: float = Field(default=17.0, ge=0, description="Indent per list nesting level")
    code_indent: float = Field(default=11.0, ge=0, description="Left indent of code blocks")
    code_spacing: float = Field(default=6.0, ge=0, description="Space before and after a code block")
    image_spacing: float = Field(default=6.0, ge=0, description="Space after an image")
    rule_height: float = Field(default=12.0, gt=0, description="Height reserved for a horizontal rule")
    compress_streams: bool = Field(default=True, description="Flate-compress page content streams")
    output_name: str = Field(default="markdown_export.pdf", description="File name written under the root")
    title: str = Field(default="Markdown Export", description="PDF document title")
    image_backend: str = Field(default="pymupdf", description="Image backend: pymupdf (default)")
    file_title_headings: bool = Field(
        default=False,
        description="Insert a 'File: <name>' level-2 heading before each document (off by default)",
    )

    model_config = {"frozen": True}

    @property
    def content_width(self) -> float:
        return self.page_width - 2 * self.margin

    @property
    def content_height(self) -> float:
        return self.page_height - 2 * self.margin

    def heading_size(self, level: int) -> float:
        return self.heading_font_sizes.get(level, self.body_font_size)


class ProcessedInput(BaseModel):
    """Result of resolution only: what would be converted, before layout."""

    markdown_files: list[str] = Field(description="Canonical Markdown paths in document order")
    image_files: list[str] = Field(default_factory=list, description="Canonical image paths in discovery order")
    root: str = Field(description="Directory the PDF is written to")
    inputs: list[str] = Field(default_factory=list, description="Input paths as given to process_input")
    warnings: list[str] = Field(default_factory=list, description="Non-fatal resolution warnings")


class ConvertResult(BaseModel):
    """Result of a conversion run."""

    output_path: Path = Field(description="Path of the written PDF")
    page_count: int = Field(default=0, description="Number of pages written")
    document_count: int = Field(default=0, description="Number of Markdown documents rendered")
    image_count: int = Field(default=0, description="Number of distinct images embedded")
    warnings: list[str] = Field(default_factory=list, description="Non-fatal errors or warnings")

    model_config = {"arbitrary_types_allowed": True}
