import struct

import pytest

from pool_core import (
    CustomFormat,
    CustomFormats,
    Kind,
    MisalignedPayload,
    Shape,
    ShapeError,
    TypeFormat,
    UnknownTypeTag,
    custom_tag,
    is_builtin,
    is_custom,
    matrix,
    resolve,
    scalar,
    type_info,
    vector,
)
from pool_core.protocol import CUSTOM_FORMAT_COUNT, CUSTOM_FORMAT_OFFSET


def test_tag_layout():
    assert scalar(Kind.U8).tag == 1
    assert scalar(Kind.F32).tag == 51201
    assert vector(Kind.F64, 2).tag == 57602
    assert matrix(Kind.I32, 3, 2).tag == 38562
    # Last built-in tag sits right below the custom range.
    assert matrix(Kind.F64, 80, 80).tag == 64000
    assert CUSTOM_FORMAT_OFFSET == 64001
    assert CUSTOM_FORMAT_COUNT == 1535


def test_byte_width_is_kind_size_times_element_count():
    assert scalar(Kind.I16).byte_width == 2
    assert vector(Kind.F32, 3).byte_width == 12
    assert matrix(Kind.U64, 4, 5).byte_width == 160
    assert matrix(Kind.I8, 80, 80).byte_width == 6400


def test_type_info_inverts_every_kind_and_corner_shape():
    shapes = [Shape.scalar(), Shape.vector(80), Shape.matrix(80, 1), Shape.matrix(80, 80), Shape.matrix(7, 13)]
    seen = set()
    for kind in Kind:
        for shape in shapes:
            fmt = TypeFormat(kind, shape)
            assert type_info(fmt.tag) == fmt
            seen.add(fmt.tag)
    assert len(seen) == len(Kind) * len(shapes)


def test_row_matrix_is_a_vector():
    assert vector(Kind.I64, 1) == scalar(Kind.I64)
    assert matrix(Kind.F32, 1, 3) == vector(Kind.F32, 3)
    assert Shape.matrix(1, 3).category == "vector"
    assert Shape.matrix(1, 1).category == "scalar"
    assert Shape.matrix(2, 1).category == "matrix"


@pytest.mark.parametrize("dims", [(0, 1), (1, 0), (81, 1), (1, 81), (-1, 3)])
def test_shape_bounds_fail_at_construction(dims):
    with pytest.raises(ShapeError):
        Shape(*dims)


@pytest.mark.parametrize("dim", [1, 2, 40, 80])
def test_shape_bounds_accept_1_to_80(dim):
    assert vector(Kind.U8, dim).shape.cols == dim
    assert matrix(Kind.U8, dim, dim).shape.count == dim * dim


def test_shape_rejects_non_int():
    with pytest.raises(TypeError):
        Shape(1, 2.0)
    with pytest.raises(TypeError):
        Shape(True, 1)


@pytest.mark.parametrize("tag", [0, 64001, 65535, 65536, -1])
def test_type_info_rejects_non_builtin_tags(tag):
    with pytest.raises(UnknownTypeTag) as exc:
        type_info(tag)
    assert exc.value.type_tag == tag
    assert exc.value.code == "E_UNKNOWN_TYPE_TAG"


def test_builtin_and_custom_ranges_partition_the_tag_space():
    assert not is_builtin(0) and not is_custom(0)
    assert is_builtin(1) and is_builtin(64000)
    assert is_custom(64001) and is_custom(65535)
    assert not is_custom(65536)
    assert custom_tag(0) == 64001
    assert custom_tag(CUSTOM_FORMAT_COUNT - 1) == 65535
    with pytest.raises(ValueError):
        custom_tag(CUSTOM_FORMAT_COUNT)


@pytest.mark.parametrize(
    "fmt, values",
    [
        (scalar(Kind.U8), [0, 255, 7]),
        (scalar(Kind.I8), [-128, 127]),
        (scalar(Kind.U16), [0, 65535]),
        (scalar(Kind.I16), [-32768, 32767]),
        (scalar(Kind.U32), [0, 2**32 - 1]),
        (scalar(Kind.I32), [-2**31, 2**31 - 1]),
        (scalar(Kind.U64), [0, 2**64 - 1]),
        (scalar(Kind.I64), [-2**63, 2**63 - 1]),
        (scalar(Kind.F32), [1.0, -0.5, 3.25, float("inf")]),
        (scalar(Kind.F64), [0.1, -1e300, 2.5]),
        (vector(Kind.F32, 3), [(1.0, 2.0, 3.0), (-4.5, 0.0, 8.0)]),
        (vector(Kind.I64, 2), [(5, -5), (-6, 6)]),
        (matrix(Kind.U16, 2, 3), [((1, 2, 3), (4, 5, 6))]),
        (matrix(Kind.F64, 80, 80), [tuple(tuple(float(r * 80 + c) for c in range(80)) for r in range(80))]),
    ],
)
def test_elements_round_trip_in_order(fmt, values):
    data = fmt.encode_elements(values)
    assert len(data) == fmt.byte_width * len(values)
    assert fmt.decode_elements(data) == values


def test_encoding_is_little_endian():
    assert scalar(Kind.U32).encode_element(0x01020304) == b"\x04\x03\x02\x01"
    assert scalar(Kind.F32).encode_element(1.0) == struct.pack("<f", 1.0)
    assert matrix(Kind.U8, 2, 2).encode_element(((1, 2), (3, 4))) == b"\x01\x02\x03\x04"


def test_encode_rejects_out_of_range_and_wrong_arity():
    with pytest.raises(ValueError):
        scalar(Kind.U8).encode_element(256)
    with pytest.raises(ValueError):
        scalar(Kind.I8).encode_element(-129)
    with pytest.raises(ValueError):
        scalar(Kind.F32).encode_element(1e300)
    with pytest.raises(ValueError):
        vector(Kind.F32, 3).encode_element((1.0, 2.0))
    with pytest.raises(ValueError):
        matrix(Kind.I32, 2, 2).encode_element(((1, 2), (3,)))
    with pytest.raises(ValueError):
        matrix(Kind.I32, 2, 2).encode_element(((1, 2),))


def test_element_count_is_inferred_from_length():
    fmt = vector(Kind.F64, 2)
    assert fmt.element_count(0) == 0
    assert fmt.element_count(48) == 3
    with pytest.raises(MisalignedPayload) as exc:
        fmt.element_count(50)
    assert (exc.value.length, exc.value.width) == (50, 16)


def test_decode_element_requires_exact_width():
    with pytest.raises(MisalignedPayload):
        scalar(Kind.F32).decode_element(b"\x00" * 8)
    assert scalar(Kind.I16).decode_element(b"\xff\xff") == -1


def test_zero_element():
    assert scalar(Kind.I32).zero == 0
    assert vector(Kind.F32, 2).zero == (0.0, 0.0)
    assert matrix(Kind.U8, 2, 2).zero == ((0, 0), (0, 0))


def test_custom_format_validation():
    with pytest.raises(ValueError):
        CustomFormat(64000)
    with pytest.raises(TypeError):
        CustomFormat("64001")
    with pytest.raises(TypeError):
        CustomFormat(64001, load="not callable")
    fmt = CustomFormat(64001)
    assert fmt.byte_width == 1
    assert fmt.decode(b"raw") == b"raw"
    assert fmt.encode(bytearray(b"xy")) == b"xy"


def test_custom_formats_registry_is_per_instance():
    a = CustomFormats([CustomFormat(custom_tag(0))])
    b = CustomFormats()
    assert custom_tag(0) in a
    assert custom_tag(0) not in b
    assert len(a) == 1 and len(b) == 0
    with pytest.raises(ValueError):
        a.register(CustomFormat(custom_tag(0)))
    with pytest.raises(TypeError):
        a.register((custom_tag(1), None, None))


def test_resolve():
    registry = CustomFormats([CustomFormat(custom_tag(3), load=bytes.upper)])
    assert resolve(51201) == scalar(Kind.F32)
    assert resolve(custom_tag(9)) == CustomFormat(custom_tag(9))
    assert registry.resolve(custom_tag(3)).decode(b"ab") == b"AB"
    with pytest.raises(UnknownTypeTag):
        resolve(custom_tag(9), registry)
    with pytest.raises(UnknownTypeTag):
        resolve(0)
