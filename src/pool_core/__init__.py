"""Pool Core - type registry, record codec and typed array adapter."""
from .arrays import (
    decode_any,
    decode_payload,
    read_array,
    read_array_at,
    read_custom,
    read_property,
    write_array,
    write_custom,
    write_payload_values,
    write_property,
)
from .codec import PropertyState, Record, RecordReader, RecordWriter, StreamState, iter_records
from .errors import (
    CodecStateError,
    MisalignedPayload,
    OffsetOutOfRange,
    PoolError,
    ShapeError,
    StreamEnded,
    TypeMismatch,
    UnexpectedEof,
    UnknownTypeTag,
)
from .types import (
    CustomFormat,
    CustomFormats,
    Kind,
    Shape,
    TypeFormat,
    custom_tag,
    is_builtin,
    is_custom,
    matrix,
    resolve,
    scalar,
    type_info,
    vector,
)

__all__ = [
    "CodecStateError", "MisalignedPayload", "OffsetOutOfRange", "PoolError", "ShapeError", "StreamEnded",
    "TypeMismatch", "UnexpectedEof", "UnknownTypeTag",
    "CustomFormat", "CustomFormats", "Kind", "Shape", "TypeFormat",
    "custom_tag", "is_builtin", "is_custom", "matrix", "resolve", "scalar", "type_info", "vector",
    "PropertyState", "Record", "RecordReader", "RecordWriter", "StreamState", "iter_records",
    "decode_any", "decode_payload", "read_array", "read_array_at", "read_custom",
    "read_property", "write_array", "write_custom", "write_payload_values", "write_property",
]
