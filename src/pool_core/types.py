"""Type registry: numeric kinds, shapes and the 16-bit type tag space.

Tag layout (see ``pool_core.protocol``)::

    0                 end of stream
    1     .. 64000    built-in: 1 + kind * 6400 + (rows - 1) * 80 + (cols - 1)
    64001 .. 65535    custom formats, raw bytes

A scalar is a 1x1 shape and a vector of length N is a 1xN shape, so a
1xN matrix and an N-vector are the same shape and share one tag.
"""
from __future__ import annotations

import struct
from collections import namedtuple
from dataclasses import dataclass
from enum import IntEnum, unique
from functools import lru_cache
from typing import Any, Iterable, Iterator

from .errors import MisalignedPayload, ShapeError, UnknownTypeTag
from .protocol import (
    CUSTOM_ELEMENT_WIDTH,
    CUSTOM_FORMAT_COUNT,
    CUSTOM_FORMAT_OFFSET,
    DIM_LIMIT,
    FIRST_BUILTIN_TAG,
    MAX_U16,
)


@unique
class Kind(IntEnum):
    """Primitive numeric kinds. The value is the kind id used in tags."""

    U8 = 0
    U16 = 1
    U32 = 2
    U64 = 3
    I8 = 4
    I16 = 5
    I32 = 6
    I64 = 7
    F32 = 8
    F64 = 9

    @property
    def char(self) -> str:
        return _KIND_LAYOUT[self][0]

    @property
    def size(self) -> int:
        return _KIND_LAYOUT[self][1]

    @property
    def is_float(self) -> bool:
        return self in (Kind.F32, Kind.F64)

    @property
    def zero(self) -> int | float:
        return 0.0 if self.is_float else 0


# struct format character and byte size per kind
_KIND_LAYOUT = {
    Kind.U8: ("B", 1),
    Kind.U16: ("H", 2),
    Kind.U32: ("I", 4),
    Kind.U64: ("Q", 8),
    Kind.I8: ("b", 1),
    Kind.I16: ("h", 2),
    Kind.I32: ("i", 4),
    Kind.I64: ("q", 8),
    Kind.F32: ("f", 4),
    Kind.F64: ("d", 8),
}


@lru_cache(maxsize=1024)
def _packer(char: str, count: int) -> struct.Struct:
    return struct.Struct(f"<{count}{char}")


@dataclass(frozen=True)
class Shape:
    """Rows x columns of one element. Both dimensions must be in 1..80."""

    rows: int
    cols: int

    def __post_init__(self):
        for name, dim in (("rows", self.rows), ("cols", self.cols)):
            if isinstance(dim, bool) or not isinstance(dim, int):
                raise TypeError(f"Shape {name} must be an int, got {dim!r}")
            if not 1 <= dim <= DIM_LIMIT:
                raise ShapeError(f"Shape {name} {dim} outside 1..{DIM_LIMIT}")

    @classmethod
    def scalar(cls) -> "Shape":
        return cls(1, 1)

    @classmethod
    def vector(cls, dim: int) -> "Shape":
        return cls(1, dim)

    @classmethod
    def matrix(cls, rows: int, cols: int) -> "Shape":
        return cls(rows, cols)

    @property
    def count(self) -> int:
        """Number of numbers in one element."""
        return self.rows * self.cols

    @property
    def category(self) -> str:
        if self.rows == 1:
            return "scalar" if self.cols == 1 else "vector"
        return "matrix"


@dataclass(frozen=True)
class TypeFormat:
    """A built-in (kind, shape) pair, addressable by a single type tag."""

    kind: Kind
    shape: Shape

    @property
    def tag(self) -> int:
        return (
            FIRST_BUILTIN_TAG
            + int(self.kind) * DIM_LIMIT * DIM_LIMIT
            + (self.shape.rows - 1) * DIM_LIMIT
            + (self.shape.cols - 1)
        )

    @property
    def byte_width(self) -> int:
        """Bytes per element: kind size times shape element count."""
        return self.kind.size * self.shape.count

    @property
    def zero(self) -> Any:
        """The all-zero element, used to pad sparse arrays."""
        return self._group((self.kind.zero,) * self.shape.count)

    def element_count(self, length: int) -> int:
        """Infer the number of elements in a payload of *length* bytes."""
        count, rest = divmod(length, self.byte_width)
        if rest:
            raise MisalignedPayload(length, self.byte_width)
        return count

    def encode_element(self, value: Any) -> bytes:
        return self.encode_elements((value,))

    def decode_element(self, data: bytes) -> Any:
        if len(data) != self.byte_width:
            raise MisalignedPayload(len(data), self.byte_width)
        return self.decode_elements(data)[0]

    def encode_elements(self, values: Iterable[Any]) -> bytes:
        """Serialize elements in order to little-endian bytes."""
        flat: list = []
        n = 0
        for value in values:
            flat.extend(self._flatten(value))
            n += 1
        if n == 0:
            return b""
        try:
            return _packer(self.kind.char, n * self.shape.count).pack(*flat)
        except (struct.error, OverflowError) as e:
            raise ValueError(f"Value not representable as {self.kind.name}: {e}") from e

    def decode_elements(self, data: bytes) -> list:
        """Deserialize a payload into a list of elements, in byte order."""
        n = self.element_count(len(data))
        if n == 0:
            return []
        step = self.shape.count
        flat = _packer(self.kind.char, n * step).unpack(data)
        return [self._group(flat[i:i + step]) for i in range(0, len(flat), step)]

    def _flatten(self, value: Any) -> Iterator:
        shape = self.shape
        category = shape.category
        if category == "scalar":
            yield value
            return
        if category == "vector":
            items = tuple(value)
            if len(items) != shape.cols:
                raise ValueError(f"Expected vector of length {shape.cols}, got {len(items)}")
            yield from items
            return
        rows = tuple(value)
        if len(rows) != shape.rows:
            raise ValueError(f"Expected {shape.rows} matrix rows, got {len(rows)}")
        for row in rows:
            row = tuple(row)
            if len(row) != shape.cols:
                raise ValueError(f"Expected matrix row of length {shape.cols}, got {len(row)}")
            yield from row

    def _group(self, flat: tuple) -> Any:
        shape = self.shape
        category = shape.category
        if category == "scalar":
            return flat[0]
        if category == "vector":
            return tuple(flat)
        cols = shape.cols
        return tuple(tuple(flat[r * cols:(r + 1) * cols]) for r in range(shape.rows))


def scalar(kind: Kind) -> TypeFormat:
    return TypeFormat(Kind(kind), Shape.scalar())


def vector(kind: Kind, dim: int) -> TypeFormat:
    return TypeFormat(Kind(kind), Shape.vector(dim))


def matrix(kind: Kind, rows: int, cols: int) -> TypeFormat:
    return TypeFormat(Kind(kind), Shape.matrix(rows, cols))


def is_builtin(tag: int) -> bool:
    return FIRST_BUILTIN_TAG <= tag < CUSTOM_FORMAT_OFFSET


def is_custom(tag: int) -> bool:
    return CUSTOM_FORMAT_OFFSET <= tag <= MAX_U16


def custom_tag(index: int) -> int:
    """Return the type tag of the *index*-th custom format."""
    if not 0 <= index < CUSTOM_FORMAT_COUNT:
        raise ValueError(f"Custom format index {index} outside 0..{CUSTOM_FORMAT_COUNT - 1}")
    return CUSTOM_FORMAT_OFFSET + index


def type_info(tag: int) -> TypeFormat:
    """Return the kind and shape of a built-in type tag.

    Raises UnknownTypeTag for the end-of-stream tag, custom tags and
    anything outside the 16-bit range.
    """
    if not is_builtin(tag):
        raise UnknownTypeTag(tag)
    kind_id, rest = divmod(tag - FIRST_BUILTIN_TAG, DIM_LIMIT * DIM_LIMIT)
    rows, cols = divmod(rest, DIM_LIMIT)
    return TypeFormat(Kind(kind_id), Shape(rows + 1, cols + 1))


class CustomFormat(namedtuple("CustomFormat", ["tag", "load", "dump"], defaults=(None, None))):
    """Application-defined binary layout in the custom tag range.

    *load* maps payload bytes to an object and *dump* maps an object to
    bytes. Either may be None, in which case the payload is raw bytes.
    """

    def __init__(self, *args, **kwargs):
        validate_custom_format(self)

    @property
    def byte_width(self) -> int:
        return CUSTOM_ELEMENT_WIDTH

    def encode(self, obj: Any) -> bytes:
        if self.dump is None:
            return bytes(obj)
        return bytes(self.dump(obj))

    def decode(self, data: bytes) -> Any:
        if self.load is None:
            return bytes(data)
        return self.load(bytes(data))


def validate_custom_format(fmt: CustomFormat) -> None:
    if isinstance(fmt.tag, bool) or not isinstance(fmt.tag, int):
        raise TypeError(f"Custom format has an invalid 'tag' field: {fmt.tag!r}")
    if not is_custom(fmt.tag):
        raise ValueError(
            f"Custom format tag {fmt.tag} outside {CUSTOM_FORMAT_OFFSET}..{MAX_U16}"
        )
    for field in ("load", "dump"):
        fn = getattr(fmt, field)
        if fn is not None and not callable(fn):
            raise TypeError(f"Custom format has a non-callable '{field}' field: {fn!r}")


class CustomFormats:
    """Caller-supplied mapping of custom tags to their encode/decode callables.

    One instance configures one reader or writer; nothing is registered
    globally.
    """

    def __init__(self, formats: Iterable[CustomFormat] = ()):
        self._by_tag: dict[int, CustomFormat] = {}
        for fmt in formats:
            self.register(fmt)

    def register(self, fmt: CustomFormat) -> CustomFormat:
        if not isinstance(fmt, CustomFormat):
            raise TypeError(f"Expected CustomFormat, got {type(fmt).__name__}")
        if fmt.tag in self._by_tag:
            raise ValueError(f"Custom format tag {fmt.tag} already registered")
        self._by_tag[fmt.tag] = fmt
        return fmt

    def get(self, tag: int) -> CustomFormat | None:
        return self._by_tag.get(tag)

    def __contains__(self, tag: int) -> bool:
        return tag in self._by_tag

    def __iter__(self) -> Iterator[CustomFormat]:
        return iter(self._by_tag.values())

    def __len__(self) -> int:
        return len(self._by_tag)

    def resolve(self, tag: int) -> TypeFormat | CustomFormat:
        """Resolve a tag to a built-in format or a registered custom format."""
        if is_custom(tag):
            fmt = self._by_tag.get(tag)
            if fmt is None:
                raise UnknownTypeTag(tag)
            return fmt
        return type_info(tag)


def resolve(tag: int, formats: CustomFormats | None = None) -> TypeFormat | CustomFormat:
    """Resolve a tag. Without *formats* every custom tag decodes as raw bytes."""
    if formats is not None:
        return formats.resolve(tag)
    if is_custom(tag):
        return CustomFormat(tag)
    return type_info(tag)
