import json
import struct

import pyarrow as pa
import pyarrow.parquet as pq
import pytest
from click.testing import CliRunner

from pool_core import (
    CustomFormat,
    Kind,
    MisalignedPayload,
    RecordWriter,
    custom_tag,
    matrix,
    scalar,
    vector,
    write_array,
    write_custom,
    write_payload_values,
)
from pool_compile.cli import REPRODUCIBLE_TIMESTAMP, compile_stream, main
from pool_compile.streams import StreamDecoder

TIME = scalar(Kind.F64)
POS = vector(Kind.F32, 3)
SPIN = matrix(Kind.I16, 2, 2)
FLAG = scalar(Kind.U8)


def write_frames(path):
    with open(path, "wb") as f:
        w = RecordWriter(f)
        write_array(w, 9, SPIN, [((1, 0), (0, -1))])
        for frame in range(3):
            write_array(w, 0, TIME, [frame * 0.5])
            write_array(w, 1, POS, [(float(frame), 0.0, 1.0), (float(frame), 2.0, 3.0)])
        w.write_header(FLAG.tag, 3)
        write_payload_values(w, FLAG, [1, 1], offset_instance_id=4)
        w.end_property()
        write_custom(w, 7, CustomFormat(custom_tag(2)), b"\x01\x02\x03")
        w.write_end()
    return path


def test_decoder_indexes_every_payload(tmp_path):
    decoder = StreamDecoder(write_frames(tmp_path / "s.pool"))
    stats = decoder.get_scan_stats()
    assert stats == {
        "groups": 9,
        "records": 9,
        "elements": 1 + 3 + 6 + 2,
        "custom_records": 1,
        "skipped_groups": 0,
    }
    assert [r["property_id"] for r in decoder.records] == [9, 0, 1, 0, 1, 0, 1, 3, 7]
    assert [r["group"] for r in decoder.records] == list(range(9))
    assert decoder.records[0]["byte_offset"] == 4
    flag = decoder.records[7]
    assert (flag["kind"], flag["offset_instance_id"], flag["element_count"]) == ("u8", 4, 2)
    custom = decoder.records[8]
    assert (custom["kind"], custom["byte_length"], custom["element_count"]) == ("custom", 3, 3)


def test_compile_writes_tables_and_manifest(tmp_path):
    out = tmp_path / "out"
    manifest = compile_stream(write_frames(tmp_path / "s.pool"), out, timestamp=REPRODUCIBLE_TIMESTAMP)

    assert json.loads((out / "manifest.json").read_text()) == manifest
    assert manifest["created"] == REPRODUCIBLE_TIMESTAMP
    assert manifest["stats"]["records"] == 9
    files = {p["property_id"]: p["file"] for p in manifest["properties"]}
    assert sorted(files) == [0, 1, 3, 9]

    records = pq.read_table(out / "records.parquet").to_pandas()
    assert len(records) == 9
    assert list(records["property_id"]) == [9, 0, 1, 0, 1, 0, 1, 3, 7]

    time = pq.read_table(out / files[0])
    assert time.schema.field("value").type == pa.float64()
    assert time.column("value").to_pylist() == [0.0, 0.5, 1.0]
    assert time.column("group").to_pylist() == [1, 3, 5]

    pos = pq.read_table(out / files[1])
    assert pos.column_names == ["group", "instance_id", "v0", "v1", "v2"]
    assert pos.schema.field("v0").type == pa.float32()
    assert pos.column("instance_id").to_pylist() == [0, 1] * 3
    assert pos.column("v1").to_pylist() == [0.0, 2.0] * 3

    spin = pq.read_table(out / files[9]).to_pylist()
    assert spin == [{"group": 0, "instance_id": 0, "r0c0": 1, "r0c1": 0, "r1c0": 0, "r1c1": -1}]

    flags = pq.read_table(out / files[3])
    assert flags.column("instance_id").to_pylist() == [4, 5]


def test_compile_is_reproducible(tmp_path):
    stream = write_frames(tmp_path / "s.pool")
    compile_stream(stream, tmp_path / "a", timestamp=REPRODUCIBLE_TIMESTAMP)
    compile_stream(stream, tmp_path / "b", timestamp=REPRODUCIBLE_TIMESTAMP)
    assert (tmp_path / "a" / "manifest.json").read_bytes() == (tmp_path / "b" / "manifest.json").read_bytes()


def test_undeclared_custom_tag_is_skipped_with_warning(tmp_path):
    stream = write_frames(tmp_path / "s.pool")
    with pytest.warns(UserWarning, match="unknown type tag"):
        manifest = compile_stream(stream, tmp_path / "out", custom_tags=[custom_tag(0)])
    assert manifest["stats"]["skipped_groups"] == 1
    assert manifest["stats"]["custom_records"] == 0


def test_empty_stream_compiles(tmp_path):
    stream = tmp_path / "s.pool"
    stream.write_bytes(b"\x00\x00")
    manifest = compile_stream(stream, tmp_path / "out")
    assert manifest["properties"] == []
    assert pq.read_table(tmp_path / "out" / "records.parquet").num_rows == 0


def test_misaligned_stream_fails(tmp_path):
    stream = tmp_path / "s.pool"
    stream.write_bytes(
        struct.pack("<HH", TIME.tag, 0) + struct.pack("<QQ", 5, 0) + b"\x00" * 5 + struct.pack("<Q", 0) + b"\x00\x00"
    )
    with pytest.raises(MisalignedPayload):
        compile_stream(stream, tmp_path / "out")


def test_cli_fails_closed(tmp_path):
    stream = tmp_path / "s.pool"
    stream.write_bytes(b"\x01\x00")
    r = CliRunner().invoke(main, [str(stream), str(tmp_path / "out")])
    assert r.exit_code == 1
    assert "FATAL:" in r.output


def test_cli_compiles(tmp_path):
    stream = write_frames(tmp_path / "s.pool")
    r = CliRunner().invoke(main, [str(stream), str(tmp_path / "out"), "--reproducible"])
    assert r.exit_code == 0, r.output
    assert "PASS" in r.output
    assert (tmp_path / "out" / "manifest.json").exists()
