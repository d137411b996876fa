"""Pool stream protocol constants.

Single source of truth for the wire layout and the type-tag partition.
Keep this file stable. Writers and readers must remain synchronized.
"""

# Stream and property sentinels
END_OF_STREAM = 0  # type tag terminating the stream
END_OF_PROPERTY = 0  # payload length terminating one property's data

# Header: [TypeTag(2) | PropertyID(2)] = 4 bytes
# End of stream is the bare TypeTag(2) == 0, so readers take the tag alone first.
HEADER_FMT = "<HH"
HEADER_LEN = 4
TAG_FMT = "<H"
TAG_LEN = 2
PROPERTY_FMT = "<H"
PROPERTY_LEN = 2

# Payload: [Length(8)] then, if Length > 0, [OffsetInstanceID(8) | Data(Length)]
LENGTH_FMT = "<Q"
LENGTH_LEN = 8
OFFSET_FMT = "<Q"
OFFSET_LEN = 8

# Field bounds
MAX_U16 = 0xFFFF
MAX_U64 = 0xFFFFFFFFFFFFFFFF

# Built-in tags: 1 + kind_id * DIM_LIMIT**2 + (rows - 1) * DIM_LIMIT + (cols - 1)
KIND_COUNT = 10
DIM_LIMIT = 80  # maximum vector length and matrix dimension
FIRST_BUILTIN_TAG = 1
CUSTOM_FORMAT_OFFSET = FIRST_BUILTIN_TAG + KIND_COUNT * DIM_LIMIT * DIM_LIMIT  # 64001
CUSTOM_FORMAT_COUNT = (MAX_U16 + 1) - CUSTOM_FORMAT_OFFSET  # 1535

# Custom payloads carry raw bytes; element count == byte length
CUSTOM_ELEMENT_WIDTH = 1

# Default bound on k + count for offset placement (read_array_at)
MAX_PLACED_INSTANCES = 1 << 24
