"""Hand-written PDF 1.4 encoder for laid-out pages."""

from mdbundle.pdf.encoder import encode_pdf, verify_structure
from mdbundle.pdf.objects import Name, PdfArena, PdfObject, Ref

__all__ = ["Name", "PdfArena", "PdfObject", "Ref", "encode_pdf", "verify_structure"]
