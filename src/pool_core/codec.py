"""Record codec: framing of headers, payloads and sentinels.

Wire format (little-endian, unpadded)::

    header          := type_tag:u16 property_id:u16
    payload         := length:u64 offset_instance_id:u64 data:u8[length]   ; length > 0
    end_of_property := length:u64 = 0
    end_of_stream   := type_tag:u16 = 0

A writer or reader owns its file-like object for its lifetime but never
opens or closes it.
"""
from __future__ import annotations

import struct
from collections import namedtuple
from enum import Enum
from typing import BinaryIO, Iterator

from .errors import CodecStateError, StreamEnded, UnexpectedEof, UnknownTypeTag
from .protocol import (
    END_OF_PROPERTY,
    END_OF_STREAM,
    HEADER_FMT,
    LENGTH_FMT,
    MAX_U16,
    MAX_U64,
    OFFSET_FMT,
    PROPERTY_FMT,
    TAG_FMT,
)
from .types import CustomFormats, is_custom


class StreamStruct(struct.Struct):
    """``struct.Struct`` that packs to and unpacks from file-like objects."""

    def pack_write(self, fp: BinaryIO, *args) -> None:
        fp.write(self.pack(*args))

    def unpack_read(self, fp: BinaryIO) -> tuple:
        """Unpack exactly ``self.size`` bytes from *fp*.

        Raises UnexpectedEof if fewer bytes are available.
        """
        data = fp.read(self.size)
        if len(data) != self.size:
            raise UnexpectedEof(f"Expected {self.size} bytes, got {len(data)}")
        return self.unpack(data)


header_struct = StreamStruct(HEADER_FMT)
tag_struct = StreamStruct(TAG_FMT)
property_struct = StreamStruct(PROPERTY_FMT)
length_struct = StreamStruct(LENGTH_FMT)
offset_struct = StreamStruct(OFFSET_FMT)


class StreamState(Enum):
    ACTIVE = "active"
    ENDED = "ended"


class PropertyState(Enum):
    MORE_DATA = "more_data"
    EXHAUSTED = "exhausted"


# One non-empty payload. Transient: built per read, never cached.
Record = namedtuple(
    "Record", ["group", "type_tag", "property_id", "offset_instance_id", "payload"]
)


def _check_uint(value: int, limit: int, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {value!r}")
    if not 0 <= value <= limit:
        raise ValueError(f"{name} {value} outside 0..{limit}")


def read_exact(fp: BinaryIO, size: int) -> bytes:
    """Read exactly *size* bytes, in bounded chunks.

    The length comes off the wire, so a corrupt field must run into the
    end of the source rather than into one huge allocation.
    """
    chunk_size = 64 * 1024  # 64KB
    if size <= chunk_size:
        data = fp.read(size)
        if len(data) != size:
            raise UnexpectedEof(f"Expected {size} payload bytes, got {len(data)}")
        return data

    buf = bytearray()
    while len(buf) < size:
        chunk = fp.read(min(chunk_size, size - len(buf)))
        if not chunk:
            raise UnexpectedEof(f"Expected {size} payload bytes, got {len(buf)}")
        buf += chunk
    return bytes(buf)


class RecordWriter:
    """Writes framed records to a binary sink."""

    def __init__(self, fp: BinaryIO):
        self.fp = fp
        self.state = StreamState.ACTIVE
        self.property_state = PropertyState.EXHAUSTED
        self.groups = 0

    def _check_active(self) -> None:
        if self.state is StreamState.ENDED:
            raise StreamEnded("Write after end of stream")

    def _check_open(self) -> None:
        self._check_active()
        if self.property_state is not PropertyState.MORE_DATA:
            raise CodecStateError("No open property; call write_header() first")

    def write_header(self, type_tag: int, property_id: int) -> None:
        self._check_active()
        if self.property_state is PropertyState.MORE_DATA:
            raise CodecStateError("Previous property was not terminated with end_property()")
        _check_uint(type_tag, MAX_U16, "Type tag")
        _check_uint(property_id, MAX_U16, "Property id")
        if type_tag == END_OF_STREAM:
            raise ValueError("Type tag 0 is reserved for end of stream; use write_end()")
        header_struct.pack_write(self.fp, type_tag, property_id)
        self.property_state = PropertyState.MORE_DATA
        self.groups += 1

    def write_payload(self, data: bytes | bytearray | memoryview, offset_instance_id: int = 0) -> None:
        """Write one payload. Empty *data* terminates the property instead."""
        self._check_open()
        # Length is in bytes, not items (memoryview, array.array).
        data = memoryview(data).tobytes()
        if len(data) == 0:
            self.end_property()
            return
        _check_uint(offset_instance_id, MAX_U64, "Offset instance id")
        if len(data) > MAX_U64:
            raise ValueError(f"Payload of {len(data)} bytes exceeds the u64 length field")
        length_struct.pack_write(self.fp, len(data))
        offset_struct.pack_write(self.fp, offset_instance_id)
        self.fp.write(data)

    def end_property(self) -> None:
        self._check_open()
        length_struct.pack_write(self.fp, END_OF_PROPERTY)
        self.property_state = PropertyState.EXHAUSTED

    def write_end(self) -> None:
        self._check_active()
        if self.property_state is PropertyState.MORE_DATA:
            raise CodecStateError("Cannot end stream inside an open property")
        tag_struct.pack_write(self.fp, END_OF_STREAM)
        self.state = StreamState.ENDED
        self.fp.flush()


class RecordReader:
    """Reads framed records from a binary source.

    If *formats* is given, custom tags missing from it raise UnknownTypeTag
    after the header is consumed, so the property can still be skipped.
    """

    def __init__(self, fp: BinaryIO, formats: CustomFormats | None = None):
        self.fp = fp
        self.formats = formats
        self.state = StreamState.ACTIVE
        self.property_state = PropertyState.EXHAUSTED
        self.type_tag: int | None = None
        self.property_id: int | None = None
        self.groups = 0

    def read_header(self) -> tuple[int, int] | None:
        """Return ``(type_tag, property_id)``, or None at end of stream."""
        if self.state is StreamState.ENDED:
            raise StreamEnded("Read after end of stream")
        if self.property_state is PropertyState.MORE_DATA:
            raise CodecStateError("Previous property still has data; read or skip it first")

        (type_tag,) = tag_struct.unpack_read(self.fp)
        if type_tag == END_OF_STREAM:
            self.state = StreamState.ENDED
            self.type_tag = self.property_id = None
            return None

        (property_id,) = property_struct.unpack_read(self.fp)
        self.type_tag, self.property_id = type_tag, property_id
        self.property_state = PropertyState.MORE_DATA
        self.groups += 1

        if self.formats is not None and is_custom(type_tag) and type_tag not in self.formats:
            raise UnknownTypeTag(type_tag, property_id)
        return type_tag, property_id

    def read_payload(self) -> tuple[int, bytes] | None:
        """Return ``(offset_instance_id, data)``, or None when the property is exhausted."""
        if self.state is StreamState.ENDED:
            raise StreamEnded("Read after end of stream")
        if self.property_state is not PropertyState.MORE_DATA:
            raise CodecStateError("No open property; call read_header() first")

        (length,) = length_struct.unpack_read(self.fp)
        if length == END_OF_PROPERTY:
            self.property_state = PropertyState.EXHAUSTED
            return None

        (offset_instance_id,) = offset_struct.unpack_read(self.fp)
        return offset_instance_id, read_exact(self.fp, length)

    def skip_property(self) -> int:
        """Consume the rest of the current property. Returns payloads skipped."""
        skipped = 0
        while self.read_payload() is not None:
            skipped += 1
        return skipped


def iter_records(fp: BinaryIO, formats: CustomFormats | None = None) -> Iterator[Record]:
    """Yield every non-empty payload in stream order until end of stream."""
    reader = RecordReader(fp, formats)
    while True:
        header = reader.read_header()
        if header is None:
            return
        type_tag, property_id = header
        while True:
            payload = reader.read_payload()
            if payload is None:
                break
            offset_instance_id, data = payload
            yield Record(reader.groups - 1, type_tag, property_id, offset_instance_id, data)
