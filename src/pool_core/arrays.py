"""Typed array adapter: typed sequences <-> record payloads.

Writing serializes elements in sequence order, so element order in memory
is byte order on the wire. Reading appends to a caller-owned list; the
caller decides whether to clear it between records.
"""
from __future__ import annotations

from typing import Any, Iterable, MutableSequence

from .codec import RecordReader, RecordWriter
from .errors import MisalignedPayload, OffsetOutOfRange, TypeMismatch
from .protocol import MAX_PLACED_INSTANCES
from .types import CustomFormat, CustomFormats, TypeFormat, resolve


def _expect(fmt: TypeFormat | CustomFormat, type_tag: int) -> None:
    if type_tag != fmt.tag:
        raise TypeMismatch(type_tag, fmt.tag)


def write_payload_values(
    writer: RecordWriter,
    fmt: TypeFormat,
    values: Iterable[Any],
    offset_instance_id: int = 0,
) -> None:
    """Write one payload of *values* under the open header.

    An empty *values* writes the end-of-property sentinel.
    """
    writer.write_payload(fmt.encode_elements(values), offset_instance_id)


def write_array(
    writer: RecordWriter,
    property_id: int,
    fmt: TypeFormat,
    values: Iterable[Any],
    offset_instance_id: int = 0,
) -> None:
    """Write a complete property: header, one payload, end of property."""
    data = fmt.encode_elements(values)
    writer.write_header(fmt.tag, property_id)
    if data:
        writer.write_payload(data, offset_instance_id)
    writer.end_property()


def write_property(writer: RecordWriter, property_id: int, fmt: TypeFormat, value: Any) -> None:
    """Write a single value at offset 0."""
    write_array(writer, property_id, fmt, (value,))


def decode_payload(
    fmt: TypeFormat,
    type_tag: int,
    payload: bytes,
    into: MutableSequence[Any],
) -> int:
    """Append the elements of *payload* to *into*. Returns the element count."""
    _expect(fmt, type_tag)
    items = fmt.decode_elements(payload)
    into.extend(items)
    return len(items)


def read_array(
    reader: RecordReader,
    type_tag: int,
    fmt: TypeFormat,
    into: MutableSequence[Any],
) -> list[int]:
    """Append every payload of the current property to *into*.

    Returns the offset instance ids in the order they were read. A type
    mismatch is raised before any payload is consumed, so the caller can
    still ``reader.skip_property()``.
    """
    _expect(fmt, type_tag)
    offsets = []
    while True:
        payload = reader.read_payload()
        if payload is None:
            return offsets
        offset_instance_id, data = payload
        decode_payload(fmt, type_tag, data, into)
        offsets.append(offset_instance_id)


def read_array_at(
    reader: RecordReader,
    type_tag: int,
    fmt: TypeFormat,
    into: MutableSequence[Any],
    max_instances: int = MAX_PLACED_INSTANCES,
) -> int:
    """Store every payload of the current property at its instance offset.

    Element ``i`` of a payload with offset ``k`` lands at ``into[k + i]``;
    *into* grows with zero elements as needed. Returns the number of
    elements written.

    Raises OffsetOutOfRange if ``k + count`` exceeds *max_instances*; the
    payload is consumed but nothing is stored.
    """
    _expect(fmt, type_tag)
    written = 0
    while True:
        payload = reader.read_payload()
        if payload is None:
            return written
        offset_instance_id, data = payload
        items = fmt.decode_elements(data)
        end = offset_instance_id + len(items)
        if end > max_instances:
            raise OffsetOutOfRange(offset_instance_id, len(items), max_instances)
        if len(into) < end:
            into.extend([fmt.zero] * (end - len(into)))
        into[offset_instance_id:end] = items
        written += len(items)


def read_property(reader: RecordReader, type_tag: int, fmt: TypeFormat) -> Any:
    """Read a property holding exactly one element at offset 0."""
    _expect(fmt, type_tag)
    payload = reader.read_payload()
    if payload is None:
        raise ValueError(f"Property {reader.property_id} has no data")
    offset_instance_id, data = payload
    if len(data) != fmt.byte_width:
        raise MisalignedPayload(len(data), fmt.byte_width)
    if offset_instance_id != 0:
        raise ValueError(
            f"Property {reader.property_id} has offset {offset_instance_id}, expected 0"
        )
    value = fmt.decode_element(data)
    if reader.read_payload() is not None:
        raise ValueError(f"Property {reader.property_id} has more than one payload")
    return value


def write_custom(
    writer: RecordWriter,
    property_id: int,
    custom: CustomFormat,
    obj: Any,
    offset_instance_id: int = 0,
) -> None:
    """Write an object through a custom format's ``dump``, or raw bytes."""
    data = custom.encode(obj)
    writer.write_header(custom.tag, property_id)
    if data:
        writer.write_payload(data, offset_instance_id)
    writer.end_property()


def read_custom(reader: RecordReader, type_tag: int, custom: CustomFormat) -> list[tuple[int, Any]]:
    """Return ``(offset_instance_id, object)`` for each payload of the property."""
    _expect(custom, type_tag)
    out = []
    while True:
        payload = reader.read_payload()
        if payload is None:
            return out
        offset_instance_id, data = payload
        out.append((offset_instance_id, custom.decode(data)))


def decode_any(type_tag: int, payload: bytes, formats: CustomFormats | None = None) -> Any:
    """Decode a payload by its own tag.

    Built-in tags give a list of elements; custom tags give whatever the
    custom format's ``load`` returns, or the raw bytes.
    """
    fmt = resolve(type_tag, formats)
    if isinstance(fmt, CustomFormat):
        return fmt.decode(payload)
    return fmt.decode_elements(payload)
