"""Pool codec error taxonomy.

Every error carries a stable ``code`` so tooling can report it without
matching on message text.
"""
from __future__ import annotations


class PoolError(Exception):
    """Base class for every error raised by the pool codec."""

    code = "E_POOL"


class UnknownTypeTag(PoolError, ValueError):
    """A type tag outside the registered built-in or custom range."""

    code = "E_UNKNOWN_TYPE_TAG"

    def __init__(self, type_tag: int, property_id: int | None = None):
        self.type_tag = type_tag
        self.property_id = property_id
        msg = f"Unknown type tag {type_tag}"
        if property_id is not None:
            msg += f" for property {property_id}"
        super().__init__(msg)


class TypeMismatch(PoolError, TypeError):
    """Payload type does not match the element type the caller decodes into."""

    code = "E_TYPE_MISMATCH"

    def __init__(self, found: int, expected: int):
        self.found = found
        self.expected = expected
        super().__init__(f"Type tag {found} does not match expected tag {expected}")


class MisalignedPayload(PoolError, ValueError):
    """Payload length is not a multiple of the element byte width."""

    code = "E_MISALIGNED_PAYLOAD"

    def __init__(self, length: int, width: int):
        self.length = length
        self.width = width
        super().__init__(f"Payload of {length} bytes is not a multiple of element width {width}")


class UnexpectedEof(PoolError, EOFError):
    """Byte source ended in the middle of a header or payload."""

    code = "E_UNEXPECTED_EOF"


class ShapeError(PoolError, ValueError):
    """Vector or matrix dimension outside 1..80."""

    code = "E_SHAPE"


class StreamEnded(PoolError, RuntimeError):
    """Read or write attempted after the end-of-stream marker."""

    code = "E_STREAM_ENDED"


class CodecStateError(PoolError, RuntimeError):
    """Codec operation called out of order (e.g. payload without a header)."""

    code = "E_CODEC_STATE"


class OffsetOutOfRange(PoolError, ValueError):
    """Offset instance id places elements beyond what the reader will index."""

    code = "E_OFFSET_RANGE"

    def __init__(self, offset_instance_id: int, count: int, limit: int):
        self.offset_instance_id = offset_instance_id
        self.count = count
        self.limit = limit
        super().__init__(
            f"Offset {offset_instance_id} + {count} elements exceeds instance limit {limit}"
        )
