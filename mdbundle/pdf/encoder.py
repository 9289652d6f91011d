"""
Serialize laid-out pages into PDF 1.4 bytes.

Object order: catalog, page tree, shared resources, info, fonts, image
XObjects, then one page object and one content stream per page. All pages
share a single resources dictionary. Given the same pages, images, config and
creation date the output is byte-identical.
"""

import logging
import re
import zlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping, Sequence

from mdbundle.backends.base import EmbeddedImage
from mdbundle.errors import EncodingConsistencyFailure
from mdbundle.fonts import FACES
from mdbundle.layout import ImagePlacement, Page, RuleLine, TextLine
from mdbundle.models import RenderConfig
from mdbundle.pdf.objects import Name, PdfArena, Ref, escape_string, format_number, serialize

log = logging.getLogger(__name__)

PDF_HEADER = b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n"
PRODUCER = "mdbundle"
RULE_GRAY = 0.6
RULE_WIDTH = 0.75


def pdf_date(moment: datetime) -> str:
    """PDF date string, e.g. D:20240131120000Z."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("D:%Y%m%d%H%M%SZ")


def _n(value: float) -> str:
    return format_number(float(value))


def _image_names(pages: Sequence[Page], images: Mapping[Path, EmbeddedImage]) -> dict[Path, str]:
    """XObject resource name per distinct image path, in first-appearance order."""
    names: dict[Path, str] = {}
    for page in pages:
        for frag in page.fragments:
            if isinstance(frag, ImagePlacement) and frag.path in images and frag.path not in names:
                names[frag.path] = f"Im{len(names) + 1}"
    return names


def content_stream(page: Page, image_names: Mapping[Path, str]) -> bytes:
    """Drawing operators for one page. Layout y (top-down) is flipped to PDF y (bottom-up)."""
    ops: list[bytes] = []
    h = page.height
    for frag in page.fragments:
        if isinstance(frag, TextLine):
            y = _n(h - frag.baseline)
            for span in frag.spans:
                if not span.text:
                    continue
                resource = FACES[span.face].resource
                ops.append(
                    f"BT /{resource} {_n(span.size)} Tf 1 0 0 1 {_n(span.x)} {y} Tm ".encode("ascii")
                    + b"(" + escape_string(span.text) + b") Tj ET"
                )
        elif isinstance(frag, ImagePlacement):
            name = image_names.get(frag.path)
            if name is None:
                log.warning("No image data for %s; placement skipped", frag.path)
                continue
            ops.append(
                f"q {_n(frag.width)} 0 0 {_n(frag.height)} {_n(frag.x)} {_n(h - frag.y - frag.height)} cm "
                f"/{name} Do Q".encode("ascii")
            )
        elif isinstance(frag, RuleLine):
            y = _n(h - frag.y - frag.height / 2)
            ops.append(
                f"q {_n(RULE_GRAY)} G {_n(RULE_WIDTH)} w {_n(frag.x)} {y} m "
                f"{_n(frag.x + frag.width)} {y} l S Q".encode("ascii")
            )
    return b"\n".join(ops) + b"\n" if ops else b""


def _image_dict(image: EmbeddedImage) -> dict:
    return {
        "Type": Name("XObject"),
        "Subtype": Name("Image"),
        "Width": image.width,
        "Height": image.height,
        "ColorSpace": Name(image.color_space),
        "BitsPerComponent": image.bits_per_component,
        "Filter": Name(image.filter),
    }


def build_arena(
    pages: Sequence[Page],
    images: Mapping[Path, EmbeddedImage],
    config: RenderConfig,
    creation_date: datetime,
) -> tuple[PdfArena, Ref, Ref]:
    """Build the object graph. Returns (arena, catalog ref, info ref)."""
    arena = PdfArena()
    catalog = arena.allocate()
    page_tree = arena.allocate()
    resources = arena.allocate()
    info = arena.allocate()

    font_refs: dict[str, Ref] = {}
    for face in FACES.values():
        font_refs[face.resource] = arena.add(
            {
                "Type": Name("Font"),
                "Subtype": Name("Type1"),
                "BaseFont": Name(face.base_font),
                "Encoding": Name("WinAnsiEncoding"),
            }
        )

    image_names = _image_names(pages, images)
    xobjects: dict[str, Ref] = {}
    for path, name in image_names.items():
        image = images[path]
        xobjects[name] = arena.add(_image_dict(image), image.data)

    kids: list[Ref] = []
    for page in pages:
        page_ref = arena.allocate()
        stream = content_stream(page, image_names)
        stream_dict: dict = {}
        if config.compress_streams:
            stream = zlib.compress(stream)
            stream_dict["Filter"] = Name("FlateDecode")
        contents = arena.add(stream_dict, stream)
        arena.define(
            page_ref,
            {
                "Type": Name("Page"),
                "Parent": page_tree,
                "MediaBox": [0, 0, page.width, page.height],
                "Resources": resources,
                "Contents": contents,
            },
        )
        kids.append(page_ref)

    resource_dict: dict = {
        "ProcSet": [Name("PDF"), Name("Text"), Name("ImageB"), Name("ImageC")],
        "Font": {name: ref for name, ref in font_refs.items()},
    }
    if xobjects:
        resource_dict["XObject"] = xobjects
    arena.define(resources, resource_dict)
    arena.define(page_tree, {"Type": Name("Pages"), "Kids": kids, "Count": len(kids)})
    arena.define(catalog, {"Type": Name("Catalog"), "Pages": page_tree})
    arena.define(
        info,
        {"Title": config.title, "Producer": PRODUCER, "CreationDate": pdf_date(creation_date)},
    )
    return arena, catalog, info


def write_pdf(arena: PdfArena, catalog: Ref, info: Ref) -> bytes:
    """Write objects, the xref table and the trailer."""
    out = bytearray(PDF_HEADER)
    offsets: list[int] = []
    for obj in arena.objects():
        offsets.append(len(out))
        value = obj.value
        if obj.stream is not None:
            value = {**value, "Length": len(obj.stream)}
        out += f"{obj.id} 0 obj\n".encode("ascii") + serialize(value) + b"\n"
        if obj.stream is not None:
            out += b"stream\n" + obj.stream + b"\nendstream\n"
        out += b"endobj\n"

    startxref = len(out)
    size = len(offsets) + 1
    out += f"xref\n0 {size}\n".encode("ascii")
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += f"{offset:010} 00000 n \n".encode("ascii")
    out += b"trailer\n" + serialize({"Size": size, "Root": catalog, "Info": info}) + b"\n"
    out += f"startxref\n{startxref}\n%%EOF\n".encode("ascii")
    return bytes(out)


def encode_pdf(
    pages: Sequence[Page],
    images: Mapping[Path, EmbeddedImage],
    config: RenderConfig,
    creation_date: datetime | None = None,
) -> bytes:
    """
    Encode pages into a PDF document and self-check it.

    Args:
        pages: Laid-out pages, at least one.
        images: Embeddable image data by canonical path; placements of paths
            missing here are skipped.
        config: Render options (title, stream compression).
        creation_date: Info CreationDate; defaults to now (UTC).

    Returns:
        The PDF bytes. Raises EncodingConsistencyFailure if the self-check fails.
    """
    if not pages:
        raise EncodingConsistencyFailure("A PDF needs at least one page")
    arena, catalog, info = build_arena(pages, images, config, creation_date or datetime.now(timezone.utc))
    data = write_pdf(arena, catalog, info)
    verify_structure(data)
    log.info("Encoded %d pages, %d objects, %d bytes", len(pages), len(arena), len(data))
    return data


# ---------------------------------------------------------------------------
# Structural self-check
# ---------------------------------------------------------------------------

_STARTXREF_RE = re.compile(rb"startxref\n(\d+)\n%%EOF\n?$")
_XREF_HEAD_RE = re.compile(rb"xref\n0 (\d+)\n")
_REF_RE = re.compile(rb"(\d+) 0 R\b")
_LENGTH_RE = re.compile(rb"/Length (\d+)")
_STRING_RE = re.compile(rb"\((?:\\.|[^\\)])*\)", re.DOTALL)


def _refs(line: bytes) -> list[int]:
    return [int(m) for m in _REF_RE.findall(_STRING_RE.sub(b"()", line))]


def verify_structure(data: bytes) -> None:
    """
    Check the file's own bookkeeping: startxref points at the xref keyword,
    every xref offset points at its 'N 0 obj' header, every reference targets
    an allocated object and every stream's /Length matches its data.
    Raises EncodingConsistencyFailure on the first violation.
    """
    m = _STARTXREF_RE.search(data)
    if not m:
        raise EncodingConsistencyFailure("missing startxref trailer")
    xref_at = int(m.group(1))
    head = _XREF_HEAD_RE.match(data, xref_at)
    if head is None:
        raise EncodingConsistencyFailure(f"startxref {xref_at} does not point at an xref table")
    size = int(head.group(1))

    entries_at = head.end()
    offsets: dict[int, int] = {}
    for i in range(size):
        entry = data[entries_at + 20 * i:entries_at + 20 * (i + 1)]
        if len(entry) != 20 or entry[17:18] not in (b"n", b"f"):
            raise EncodingConsistencyFailure(f"malformed xref entry {i}")
        if entry[17:18] == b"n":
            offsets[i] = int(entry[:10])

    trailer_at = entries_at + 20 * size
    if not data.startswith(b"trailer\n", trailer_at):
        raise EncodingConsistencyFailure("xref table is not followed by a trailer")
    trailer_line = data[trailer_at + 8:data.index(b"\n", trailer_at + 8)]
    to_check: list[tuple[str, int]] = [("trailer", r) for r in _refs(trailer_line)]

    for obj_id, offset in offsets.items():
        header = f"{obj_id} 0 obj\n".encode("ascii")
        if not data.startswith(header, offset):
            raise EncodingConsistencyFailure(f"xref offset {offset} for object {obj_id} does not point at its header")
        dict_start = offset + len(header)
        dict_end = data.index(b"\n", dict_start)
        line = data[dict_start:dict_end]
        to_check.extend((f"object {obj_id}", r) for r in _refs(line))
        after = dict_end + 1
        if data.startswith(b"stream\n", after):
            length = _LENGTH_RE.search(_STRING_RE.sub(b"()", line))
            if length is None:
                raise EncodingConsistencyFailure(f"stream object {obj_id} has no /Length")
            end = after + len(b"stream\n") + int(length.group(1))
            if not data.startswith(b"\nendstream\nendobj\n", end):
                raise EncodingConsistencyFailure(f"/Length of object {obj_id} does not match its stream")
        elif not data.startswith(b"endobj\n", after):
            raise EncodingConsistencyFailure(f"object {obj_id} is not terminated by endobj")

    for where, ref in to_check:
        if ref not in offsets:
            raise EncodingConsistencyFailure(f"{where} references unallocated object {ref}")
