"""Fixed base-14 font set shared by layout (widths) and the PDF encoder (font resources)."""

from dataclasses import dataclass

import fitz  # PyMuPDF

from mdbundle.backends.pymupdf_backend import FITZ_LOCK


@dataclass(frozen=True)
class FontFace:
    resource: str  # name in the page resource dictionary
    base_font: str  # PDF /BaseFont
    fitz_name: str  # PyMuPDF base-14 short name, for metrics


REGULAR = "regular"
BOLD = "bold"
ITALIC = "italic"
BOLD_ITALIC = "bold-italic"
CODE = "code"

FACES: dict[str, FontFace] = {
    REGULAR: FontFace("F1", "Helvetica", "helv"),
    BOLD: FontFace("F2", "Helvetica-Bold", "hebo"),
    ITALIC: FontFace("F3", "Helvetica-Oblique", "heit"),
    BOLD_ITALIC: FontFace("F4", "Helvetica-BoldOblique", "hebi"),
    CODE: FontFace("F5", "Courier", "cour"),
}


def face_key(bold: bool = False, italic: bool = False, code: bool = False) -> str:
    if code:
        return CODE
    if bold and italic:
        return BOLD_ITALIC
    if bold:
        return BOLD
    if italic:
        return ITALIC
    return REGULAR


def to_winansi(text: str) -> str:
    """Replace characters the fonts' WinAnsiEncoding cannot show with '?'."""
    return text.encode("cp1252", errors="replace").decode("cp1252")


class FontMetrics:
    """Text widths in points. One instance per job; widths are memoized per instance."""

    def __init__(self) -> None:
        self._unit_widths: dict[tuple[str, str], float] = {}

    def width(self, text: str, face: str, size: float) -> float:
        if not text:
            return 0.0
        key = (text, face)
        unit = self._unit_widths.get(key)
        if unit is None:
            with FITZ_LOCK:
                unit = fitz.get_text_length(text, fontname=FACES[face].fitz_name, fontsize=1)
            self._unit_widths[key] = unit
        return unit * size
