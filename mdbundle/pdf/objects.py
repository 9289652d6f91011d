"""
PDF object arena and value serializer.

Objects live in an arena indexed by id and refer to each other by Ref(id), so
the object graph never holds Python references between objects. Ids are
allocated before objects are defined, which lets the page tree and its kids
point at each other.
"""

from dataclasses import dataclass


class Name(str):
    """A PDF name object: Name("Page") serializes as /Page."""


@dataclass(frozen=True)
class Ref:
    id: int


@dataclass
class PdfObject:
    id: int
    value: dict
    stream: bytes | None = None


def format_number(value: float) -> str:
    """Integers as-is, reals with at most two decimals and no trailing zeros."""
    if isinstance(value, bool):
        raise TypeError("bool is not a PDF number")
    if isinstance(value, int):
        return str(value)
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def escape_string(text: str) -> bytes:
    """Literal string body in WinAnsi bytes, with delimiters and controls escaped."""
    raw = text.encode("cp1252", errors="replace")
    out = bytearray()
    for byte in raw:
        if byte in (0x28, 0x29, 0x5C):  # ( ) backslash
            out += b"\\" + bytes([byte])
        elif byte == 0x0A:
            out += b"\\n"
        elif byte == 0x0D:
            out += b"\\r"
        elif byte < 0x20:
            out += f"\\{byte:03o}".encode("ascii")
        else:
            out.append(byte)
    return bytes(out)


def serialize(value) -> bytes:
    """Serialize a Python value as a PDF object on a single line."""
    if isinstance(value, Name):
        return b"/" + value.encode("ascii")
    if isinstance(value, Ref):
        return f"{value.id} 0 R".encode("ascii")
    if isinstance(value, bool):
        return b"true" if value else b"false"
    if isinstance(value, (int, float)):
        return format_number(value).encode("ascii")
    if isinstance(value, str):
        return b"(" + escape_string(value) + b")"
    if isinstance(value, (list, tuple)):
        return b"[" + b" ".join(serialize(v) for v in value) + b"]"
    if isinstance(value, dict):
        parts = [b"/" + str(k).encode("ascii") + b" " + serialize(v) for k, v in value.items()]
        return b"<< " + b" ".join(parts) + b" >>"
    if value is None:
        return b"null"
    raise TypeError(f"Cannot serialize {type(value).__name__} as a PDF object")


class PdfArena:
    """Id-indexed store of PdfObjects. Ids start at 1 and are dense."""

    def __init__(self) -> None:
        self._objects: dict[int, PdfObject | None] = {}

    def allocate(self) -> Ref:
        ref = Ref(len(self._objects) + 1)
        self._objects[ref.id] = None
        return ref

    def define(self, ref: Ref, value: dict, stream: bytes | None = None) -> Ref:
        if ref.id not in self._objects:
            raise KeyError(f"Object {ref.id} was never allocated")
        self._objects[ref.id] = PdfObject(ref.id, value, stream)
        return ref

    def add(self, value: dict, stream: bytes | None = None) -> Ref:
        return self.define(self.allocate(), value, stream)

    def __len__(self) -> int:
        return len(self._objects)

    def objects(self) -> list[PdfObject]:
        """All objects in id order. Raises ValueError if an allocated id was never defined."""
        undefined = [i for i, obj in self._objects.items() if obj is None]
        if undefined:
            raise ValueError(f"Allocated but undefined PDF objects: {undefined}")
        return [self._objects[i] for i in sorted(self._objects)]
